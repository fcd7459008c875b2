"""
Analysis pipeline: rows -> prompt -> provider -> JSON recovery -> AnalysisResult.
"""

import logging
from typing import Any

from .extraction import extract_json
from .normalizer import normalize
from .prompts import ANALYSIS_MAX_ROWS, build_analysis_prompt
from .types import AnalysisConfig, AnalysisRequest, AnalysisResult, utc_now

NO_DATA_SUMMARY = "No data was provided for analysis."


class Analyzer:
    """
    Run one analysis against a text-generation provider.

    Model-output problems never raise: unparseable text degrades to the
    fallback analysis. Transport failures (ProviderError) propagate.
    """

    def __init__(
        self,
        provider,
        logger: logging.Logger | None = None,
        max_rows: int = ANALYSIS_MAX_ROWS,
    ):
        self.provider = provider
        self.max_rows = max_rows
        self._log = logger or logging.getLogger(__name__)

    def analyze(self, request: AnalysisRequest, model: str | None = None) -> AnalysisResult:
        rows = [list(r) for r in request.data or [] if r]
        if not rows:
            self._log.warning("Analysis requested with no data")
            return AnalysisResult(title="Data Analysis", summary=NO_DATA_SUMMARY, generated_at=utc_now())

        prompt = build_analysis_prompt(rows, request.config, max_rows=self.max_rows)
        raw = self.provider.generate_text(prompt, model=model)
        self._log.info(
            "%s analysis: %d rows in, %d chars out",
            getattr(self.provider, "name", "provider"), len(rows), len(raw or ""),
        )
        return normalize(extract_json(raw, self._log), self._log)

    def analyze_rows(
        self,
        rows: list[list[Any]],
        config: AnalysisConfig | dict | None = None,
        model: str | None = None,
    ) -> AnalysisResult:
        """Convenience wrapper taking rows and an optional config mapping."""
        if not isinstance(config, AnalysisConfig):
            config = AnalysisConfig.from_dict(config)
        return self.analyze(AnalysisRequest(data=rows, config=config), model=model)
