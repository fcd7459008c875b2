"""
Prompt builders for analysis, narrative and section identification.

Every prompt asks for a single JSON object and shows the expected shape;
the extraction and normalization layers tolerate whatever comes back anyway.
"""

import json
from collections.abc import Mapping, Sequence
from typing import Any

from .tabular import render_table, sample_rows
from .types import AnalysisConfig, AnalysisResult

# Rows shown to the model in the analysis prompt
ANALYSIS_MAX_ROWS = 5

# Document text beyond this is cut before prompting
MAX_DOCUMENT_CHARS = 50000

JSON_RULES = """=== INSTRUCTIONS ===
1. Respond ONLY with a JSON object.
2. Do not add any text before or after the JSON.
3. Do not wrap the JSON in markdown fences.
4. The JSON must be valid."""

ANALYSIS_FORMAT = """{
  "title": "Analysis title",
  "summary": "Two or three sentences summarizing the data.",
  "insights": [
    {"title": "Insight", "description": "What was found", "severity": "Media", "confidence": 0.8, "impact": "Business impact"}
  ],
  "trends": [
    {"metric": "Metric name", "direction": "up", "change": 12.5, "description": "What changed"}
  ],
  "recommendations": ["Recommendation 1", "Recommendation 2"]
}"""

NARRATIVE_FORMAT = """{
  "title": "Narrative title",
  "content": "The narrative as plain prose.",
  "keyPoints": ["Point 1", "Point 2"],
  "sections": {"Executive Summary": "..."}
}"""

SECTIONS_FORMAT = """{
  "sections": [
    {
      "title": "Exact section title",
      "subtitle": "Subtitle or empty string",
      "content": "Main content, at most 300 characters",
      "pageNumber": 1,
      "order": 1,
      "keywords": ["keyword1", "keyword2", "keyword3"],
      "contentType": "text|data|charts|tables|mixed"
    }
  ]
}"""


def _context_block(config: AnalysisConfig) -> str:
    return (
        "=== CONTEXT ===\n"
        f"- Analysis type: {config.analysis_type}\n"
        f"- Language: {config.language}\n"
        f"- Tone: {config.tone}"
    )


def build_analysis_prompt(
    rows: Sequence[Sequence[Any]],
    config: AnalysisConfig | None = None,
    max_rows: int = ANALYSIS_MAX_ROWS,
) -> str:
    """Prompt asking for an AnalysisResult-shaped JSON object for ``rows``."""
    config = config or AnalysisConfig()
    return f"""You are a data analyst. Analyze the following data.

=== DATA ===
{render_table(rows, max_rows=max_rows)}

=== SAMPLE ===
{sample_rows(rows)}

{JSON_RULES}

=== REQUIRED JSON FORMAT ===
{ANALYSIS_FORMAT}

{_context_block(config)}

Generate the JSON now:"""


def build_narrative_prompt(
    analysis: AnalysisResult,
    config: AnalysisConfig | None = None,
    rows: Sequence[Sequence[Any]] | None = None,
) -> str:
    """Prompt asking the model to restate an analysis as a narrative."""
    config = config or AnalysisConfig()
    data_block = ""
    if rows:
        data_block = f"\n=== SOURCE DATA ===\n{render_table(rows, max_rows=ANALYSIS_MAX_ROWS)}\n"
    return f"""Write a professional report narrative from this analysis.

=== ANALYSIS ===
{json.dumps(analysis.to_dict(), ensure_ascii=False)}
{data_block}
The narrative must include a title, the narrative text, named sections and key points.

{JSON_RULES}

=== REQUIRED JSON FORMAT ===
{NARRATIVE_FORMAT}

{_context_block(config)}

Generate the JSON now:"""


def build_customization_prompt(
    narrative_id: str,
    modifications: Mapping[str, Any],
    reviewer: str | None = None,
    comments: str | None = None,
) -> str:
    """Prompt asking the model to apply edits to an existing narrative."""
    lines = [
        f"Customize the existing narrative with ID: {narrative_id}.",
        f"Modifications: {json.dumps(dict(modifications), ensure_ascii=False)}",
    ]
    if reviewer:
        lines.append(f"Reviewer: {reviewer}")
    if comments:
        lines.append(f"Comments: {comments}")
    lines.append("Keep the JSON structure.")
    return "\n".join(lines) + f"\n\n{JSON_RULES}\n\n=== REQUIRED JSON FORMAT ===\n{NARRATIVE_FORMAT}"


def build_sections_prompt(document_text: str) -> str:
    """Prompt asking the model to split a report into titled sections."""
    text = document_text[:MAX_DOCUMENT_CHARS]
    return f"""Analyze the following report and identify its main sections.

For each section give the exact title and subtitle, the main content (at most
300 characters), the page number, its order in the document, up to 3 keywords
and the kind of content.

Document:
{text}

{JSON_RULES}

=== REQUIRED JSON FORMAT ===
{SECTIONS_FORMAT}"""
