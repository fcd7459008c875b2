"""
Narrative synthesis from analyses.

``from_analysis`` projects fields directly and makes no model call, so a
narrative never compounds the unreliability of two chained generations.
``generate`` and ``customize`` do call the model and go through the same
extract -> normalize discipline as analysis.
"""

import logging
from collections.abc import Mapping
from typing import Any

from .errors import ConfigError
from .extraction import clean_content, extract_json
from .normalizer import normalize_narrative
from .prompts import build_customization_prompt, build_narrative_prompt
from .types import AnalysisConfig, AnalysisResult, NarrativeResult, utc_now

DEFAULT_TITLE = "Analysis of Data"
SUMMARY_SECTION = "Executive Summary"


class NarrativeSynthesizer:
    """
    Produce NarrativeResults from analyses.

    Args:
        provider: Generation provider; only needed for ``generate`` and
            ``customize``
        logger: Logger to use instead of the module logger
    """

    def __init__(self, provider=None, logger: logging.Logger | None = None):
        self.provider = provider
        self._log = logger or logging.getLogger(__name__)

    def _require_provider(self):
        if self.provider is None:
            raise ConfigError("A generation provider is required for model-driven narratives")
        return self.provider

    def from_analysis(self, analysis: AnalysisResult) -> NarrativeResult:
        """
        Project an analysis into a narrative without calling the model.

        Key points are the insight titles in order. Insights with an empty
        title are left out rather than producing blank points.
        """
        summary = clean_content(analysis.summary) or ""
        return NarrativeResult(
            title=analysis.title or DEFAULT_TITLE,
            content=summary,
            key_points=[i.title for i in analysis.insights if i.title],
            sections={SUMMARY_SECTION: summary},
            generated_at=utc_now(),
        )

    def generate(
        self,
        analysis: AnalysisResult,
        config: AnalysisConfig | None = None,
        rows: list[list[Any]] | None = None,
        model: str | None = None,
    ) -> NarrativeResult:
        """
        Ask the model to restate ``analysis`` as a narrative.

        Empty model content falls back to the projected summary so the
        result is always narratively complete.
        """
        provider = self._require_provider()
        raw = provider.generate_text(build_narrative_prompt(analysis, config, rows), model=model)
        narrative = normalize_narrative(extract_json(raw, self._log), self._log)
        if not narrative.content.strip():
            self._log.warning("Model narrative had no content; using the analysis summary")
            projected = self.from_analysis(analysis)
            narrative.content = projected.content
            if not narrative.key_points:
                narrative.key_points = projected.key_points
            if not narrative.sections:
                narrative.sections = projected.sections
        return narrative

    def customize(
        self,
        narrative_id: str,
        modifications: Mapping[str, Any],
        reviewer: str | None = None,
        comments: str | None = None,
        model: str | None = None,
    ) -> NarrativeResult:
        """Apply reviewer modifications to an existing narrative via the model."""
        provider = self._require_provider()
        prompt = build_customization_prompt(narrative_id, modifications, reviewer, comments)
        raw = provider.generate_text(prompt, model=model)
        self._log.info("Customized narrative %s (%d modifications)", narrative_id, len(modifications))
        return normalize_narrative(extract_json(raw, self._log), self._log)
