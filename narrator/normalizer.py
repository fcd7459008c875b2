"""
Normalize model JSON into AnalysisResult / NarrativeResult.

Model output varies by provider in key casing, nesting and value kinds. Each
field is extracted independently with ``try_extract_field``: a bad field gets
its default and the rest of the result survives. Nothing here raises.
"""

import json
import logging
import math
from collections.abc import Callable, Sequence
from typing import Any

from .extraction import clean_content
from .types import (
    DIRECTIONS,
    SEVERITIES,
    AnalysisResult,
    DataPoint,
    Insight,
    NarrativeResult,
    Trend,
    utc_now,
)

PLACEHOLDER_SUMMARY = "No summary could be extracted from the model response."
DEFAULT_NARRATIVE_TITLE = "Generated Narrative"

# Display preview length for JSON found where text was expected
PREVIEW_CHARS = 100

_MISSING = object()

_SEVERITY_ALIASES = {s.lower(): s for s in SEVERITIES}

_DIRECTION_ALIASES = {
    **{d: d for d in DIRECTIONS},
    "increase": "up", "increasing": "up", "ascending": "up",
    "rising": "up", "upward": "up", "growth": "up",
    "aumento": "up", "creciente": "up", "subida": "up",
    "decrease": "down", "decreasing": "down", "descending": "down",
    "falling": "down", "downward": "down", "decline": "down",
    "disminución": "down", "disminucion": "down", "decreciente": "down", "bajada": "down",
    "flat": "stable", "steady": "stable", "unchanged": "stable",
    "neutral": "stable", "estable": "stable",
}


# ---------------------------------------------------------------------------
# Field access
# ---------------------------------------------------------------------------

def _lookup(data: dict, keys: Sequence[str]) -> Any:
    """Non-null value for the first matching key; exact match wins over case-insensitive."""
    for key in keys:
        if data.get(key) is not None:
            return data[key]
    lowered = {}
    for actual, value in data.items():
        if isinstance(actual, str) and value is not None:
            lowered.setdefault(actual.lower(), actual)
    for key in keys:
        actual = lowered.get(key.lower())
        if actual is not None:
            return data[actual]
    return _MISSING


def try_extract_field(
    data: dict,
    key: str | Sequence[str],
    extractor: Callable[[Any], Any],
    default: Any,
    logger: logging.Logger | None = None,
) -> Any:
    """
    Extract one field, isolating any failure to that field.

    Args:
        data: Parsed JSON object
        key: Field name, or a sequence of aliases tried in order
            (e.g. ``("keyMetrics", "key_metrics")``); matched case-insensitively
        extractor: Converts the raw value; may raise on a wrong value kind
        default: Returned when the key is missing, null, or extraction fails

    Returns:
        The extracted value or ``default``
    """
    keys = (key,) if isinstance(key, str) else tuple(key)
    raw = _lookup(data, keys)
    if raw is _MISSING or raw is None:
        return default
    try:
        return extractor(raw)
    except Exception as e:
        (logger or logging.getLogger(__name__)).warning(
            "Could not extract field %r (%s): %s", keys[0], type(raw).__name__, e
        )
        return default


# ---------------------------------------------------------------------------
# Value extractors (raise on the wrong value kind)
# ---------------------------------------------------------------------------

def as_text(value: Any) -> str:
    """Display text. JSON containers collapse to a bounded preview."""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, (dict, list)):
        text = json.dumps(value, ensure_ascii=False)
        if len(text) > PREVIEW_CHARS:
            return text[:PREVIEW_CHARS] + "..."
        return text
    raise TypeError(f"expected text, got {type(value).__name__}")


def as_number(value: Any) -> float:
    """JSON numbers only; strings and booleans are rejected."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeError(f"expected number, got {type(value).__name__}")
    number = float(value)
    if math.isnan(number) or math.isinf(number):
        raise ValueError("number is not finite")
    return number


def as_confidence(value: Any) -> float:
    return min(1.0, max(0.0, as_number(value)))


def as_severity(value: Any) -> str:
    if not isinstance(value, str):
        return "Info"
    return _SEVERITY_ALIASES.get(value.strip().lower(), "Info")


def as_direction(value: Any) -> str:
    if not isinstance(value, str):
        return "stable"
    return _DIRECTION_ALIASES.get(value.strip().lower(), "stable")


def as_mapping(value: Any) -> dict:
    if not isinstance(value, dict):
        raise TypeError(f"expected object, got {type(value).__name__}")
    return dict(value)


def as_list(item: Callable[[Any], Any], logger: logging.Logger | None = None) -> Callable[[Any], list]:
    """Extractor for a JSON array; items that fail ``item`` are skipped."""
    def extract(value: Any) -> list:
        if not isinstance(value, list):
            raise TypeError(f"expected array, got {type(value).__name__}")
        items = []
        for i, raw in enumerate(value):
            try:
                items.append(item(raw))
            except Exception as e:
                (logger or logging.getLogger(__name__)).debug("Skipping item %d: %s", i, e)
        return items
    return extract


def _require_object(value: Any) -> dict:
    if not isinstance(value, dict):
        raise TypeError(f"expected object, got {type(value).__name__}")
    return value


def as_insight(value: Any, logger: logging.Logger | None = None) -> Insight:
    data = _require_object(value)
    return Insight(
        title=try_extract_field(data, "title", as_text, "", logger),
        description=try_extract_field(data, "description", as_text, "", logger),
        severity=try_extract_field(data, "severity", as_severity, "Info", logger),
        confidence=try_extract_field(data, "confidence", as_confidence, 0.0, logger),
        impact=try_extract_field(data, "impact", as_text, None, logger),
    )


def as_data_point(value: Any, logger: logging.Logger | None = None) -> DataPoint:
    data = _require_object(value)
    return DataPoint(
        date=try_extract_field(data, "date", as_text, None, logger),
        value=try_extract_field(data, "value", as_number, 0.0, logger),
        label=try_extract_field(data, "label", as_text, "", logger),
    )


def as_trend(value: Any, logger: logging.Logger | None = None) -> Trend:
    data = _require_object(value)
    return Trend(
        metric=try_extract_field(data, "metric", as_text, "", logger),
        direction=try_extract_field(data, "direction", as_direction, "stable", logger),
        change=try_extract_field(data, "change", as_number, 0.0, logger),
        description=try_extract_field(data, "description", as_text, None, logger),
        data_points=try_extract_field(
            data, ("dataPoints", "data_points"),
            as_list(lambda v: as_data_point(v, logger), logger), None, logger,
        ),
    )


def as_narrative(value: Any) -> Any:
    """Embedded narrative: prose or a mapping of named parts."""
    if isinstance(value, str):
        return clean_content(value)
    if isinstance(value, dict):
        return dict(value)
    return as_text(value)


def _prose_parts(value: Any) -> list[str]:
    """Readable text leaves of a nested value, in document order."""
    if isinstance(value, str):
        text = clean_content(value)
        return [text] if text and text.strip() else []
    if isinstance(value, dict):
        for key in ("content", "text"):
            parts = _prose_parts(value.get(key))
            if parts:
                return parts
        children = value.values()
    elif isinstance(value, list):
        children = value
    else:
        return []
    parts = []
    for child in children:
        parts.extend(_prose_parts(child))
    return parts


def as_prose(value: Any) -> str:
    """
    Plain prose from text, a mapping of parts, or a list of paragraphs.

    Containers are flattened to their text leaves (``content`` then ``text``
    first) and joined into paragraphs; never serialized back to JSON.
    """
    if isinstance(value, str):
        return clean_content(value)
    if isinstance(value, (dict, list)):
        return "\n\n".join(_prose_parts(value))
    return as_text(value)


# ---------------------------------------------------------------------------
# Normalizers
# ---------------------------------------------------------------------------

def _parse_root(json_text: Any, logger: logging.Logger) -> Any:
    if isinstance(json_text, dict):
        return json_text
    if not isinstance(json_text, str):
        return None
    try:
        return json.loads(json_text)
    except (ValueError, RecursionError) as e:
        logger.warning("Could not parse model JSON: %s", e)
        return None


def normalize(json_text: str | dict | None, logger: logging.Logger | None = None) -> AnalysisResult:
    """
    Map extracted JSON into an AnalysisResult. Never raises.

    Missing or malformed fields get their defaults; ``summary`` falls back to
    a placeholder. ``generated_at`` is always the normalization time, whatever
    the model claimed.
    """
    log = logger or logging.getLogger(__name__)
    data = _parse_root(json_text, log)
    if not isinstance(data, dict):
        log.warning("Analysis JSON root is not an object; using defaults")
        return AnalysisResult(summary=PLACEHOLDER_SUMMARY, generated_at=utc_now())

    summary = try_extract_field(data, "summary", as_text, None, log)
    if not summary or not summary.strip():
        summary = PLACEHOLDER_SUMMARY

    return AnalysisResult(
        title=try_extract_field(data, "title", as_text, None, log),
        summary=summary,
        insights=try_extract_field(
            data, "insights", as_list(lambda v: as_insight(v, log), log), [], log
        ),
        trends=try_extract_field(
            data, "trends", as_list(lambda v: as_trend(v, log), log), [], log
        ),
        recommendations=try_extract_field(
            data, "recommendations", as_list(as_text, log), [], log
        ),
        key_metrics=try_extract_field(data, ("keyMetrics", "key_metrics"), as_mapping, None, log),
        narrative=try_extract_field(data, "narrative", as_narrative, None, log),
        generated_at=utc_now(),
    )


def normalize_narrative(
    json_text: str | dict | None,
    logger: logging.Logger | None = None,
) -> NarrativeResult:
    """
    Map extracted JSON into a NarrativeResult. Never raises.

    ``content`` is always display-ready prose: wrapped JSON is unwrapped with
    ``clean_content`` and structured narratives are joined into paragraphs.
    Non-JSON input is treated as the narrative text itself.
    """
    log = logger or logging.getLogger(__name__)
    data = _parse_root(json_text, log)
    if not isinstance(data, dict):
        text = json_text if isinstance(json_text, str) else ""
        return NarrativeResult(
            title=DEFAULT_NARRATIVE_TITLE,
            content=clean_content(text.strip()) or "",
            generated_at=utc_now(),
        )

    title = try_extract_field(data, "title", as_text, "", log) or DEFAULT_NARRATIVE_TITLE
    content = try_extract_field(data, ("content", "narrative", "text", "summary"), as_prose, "", log)

    sections = {}
    raw_sections = try_extract_field(data, "sections", as_mapping, {}, log)
    for name, value in raw_sections.items():
        try:
            sections[str(name)] = as_prose(value)
        except (TypeError, ValueError) as e:
            log.debug("Skipping narrative section %r: %s", name, e)

    return NarrativeResult(
        title=title,
        content=content,
        key_points=try_extract_field(
            data, ("keyPoints", "key_points"), as_list(as_text, log), [], log
        ),
        sections=sections,
        generated_at=utc_now(),
    )
