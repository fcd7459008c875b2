"""
Recover structured JSON from free-form model output.

Models wrap their JSON in prose, markdown fences, provider envelopes and
even string-encoded JSON inside arrays. Everything here is total: callers
always get parseable JSON (or clean prose) back, never an exception.
"""

import json
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

# Greedy: first "{" to last "}" so nested objects stay intact
_JSON_SPAN_RE = re.compile(r"\{.*\}", re.DOTALL)

# Any fenced block, optionally tagged json
_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.DOTALL | re.IGNORECASE)

# A ```json block holding an object
_JSON_FENCE_RE = re.compile(r"```json\s*(\{.*?\})\s*```", re.DOTALL | re.IGNORECASE)

# Keys that mark an object as a result payload rather than an envelope
RESULT_FIELDS = ("content", "title", "summary")

MAX_UNWRAP_PASSES = 3
FALLBACK_EXCERPT_CHARS = 200


def _loads(text: str) -> Any:
    """json.loads that returns None instead of raising."""
    try:
        return json.loads(text)
    except (ValueError, TypeError, RecursionError):
        return None


def _has_result_fields(obj: Any) -> bool:
    return isinstance(obj, dict) and any(k in obj for k in RESULT_FIELDS)


# ---------------------------------------------------------------------------
# Structural sniffers
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Sniffer:
    """A predicate plus the unwrap step it licenses.

    ``unwrap`` returns the next value to inspect: a string (more text to
    sniff) or a parsed object. It returns None when the shape doesn't hold.
    """
    name: str
    matches: Callable[[str], bool]
    unwrap: Callable[[str], Any]


def _unwrap_text_array(text: str) -> Any:
    data = _loads(text.strip())
    if not isinstance(data, list) or not data:
        return None
    first = data[0]
    if isinstance(first, dict):
        if isinstance(first.get("text"), str):
            return first["text"]
        return first
    return None


def _unwrap_fence(text: str) -> Any:
    m = _FENCE_RE.search(text)
    if not m:
        return None
    return m.group(1)


def _unwrap_object(text: str) -> Any:
    data = _loads(text.strip())
    if not isinstance(data, dict):
        return None
    # Message envelope: {"content": [{"type": "text", "text": "..."}]}
    content = data.get("content")
    if isinstance(content, list) and content and isinstance(content[0], dict):
        inner = content[0].get("text")
        if isinstance(inner, str):
            return inner
    return data


SNIFFERS: tuple[Sniffer, ...] = (
    Sniffer("text-array", lambda s: s.lstrip().startswith("[{"), _unwrap_text_array),
    Sniffer("fenced-block", lambda s: "```" in s, _unwrap_fence),
    Sniffer("bare-object", lambda s: s.strip().startswith("{") and s.strip().endswith("}"), _unwrap_object),
)


def _unwrap_once(text: str) -> Any:
    for sniffer in SNIFFERS:
        if sniffer.matches(text):
            value = sniffer.unwrap(text)
            if value is not None:
                return value
    return None


def unwrap_nested(text: str, max_passes: int = MAX_UNWRAP_PASSES) -> dict | None:
    """
    Peel envelopes off ``text`` and return the innermost result object.

    Applies the sniffer chain at most ``max_passes`` times; unwrapped text
    that no sniffer recognizes is searched for an embedded object. Prefers the
    innermost object carrying a result field (content/title/summary); falls
    back to the first object seen. None if no object can be recovered.
    """
    if not isinstance(text, str):
        return None

    current: Any = text
    best: dict | None = None
    first_obj: dict | None = None
    for _ in range(max_passes):
        step = _unwrap_once(current)
        if step is None:
            break
        if isinstance(step, dict):
            if first_obj is None:
                first_obj = step
            if _has_result_fields(step):
                best = step
            # Keep digging if a text field is itself wrapped JSON
            inner = next(
                (v for v in (step.get("content"), step.get("text"))
                 if isinstance(v, str) and _unwrap_once(v) is not None),
                None,
            )
            if inner is None:
                break
            current = inner
        elif isinstance(step, str):
            if _unwrap_once(step) is None:
                # Prose around an object: "Here you go: {...}"
                span = _JSON_SPAN_RE.search(step)
                if span is None or not isinstance(_loads(span.group(0)), dict):
                    break
                step = span.group(0)
            current = step
        else:
            break
    return best or first_obj


# ---------------------------------------------------------------------------
# JSON extraction
# ---------------------------------------------------------------------------

def build_fallback(raw_text: str | None) -> dict:
    """
    Degraded-but-typed analysis payload for unparseable model output.

    Echoes a prefix of the original text in ``summary`` so nothing is
    silently dropped. Normalizes cleanly like any model response.
    """
    text = raw_text or ""
    excerpt = text[:FALLBACK_EXCERPT_CHARS]
    if len(text) > FALLBACK_EXCERPT_CHARS:
        excerpt += "..."
    return {
        "title": "Data Analysis",
        "summary": (
            "The data was processed but the model response was not in the "
            f"expected format. Original response: {excerpt}"
        ),
        "insights": [
            {
                "title": "Processing Error",
                "description": "The model did not produce a response in the expected format",
                "severity": "Media",
                "confidence": 0.5,
                "impact": "Manual review required",
            }
        ],
        "trends": [],
        "recommendations": [
            "Check the model configuration",
            "Review the prompt used",
            "Consider using a different model",
        ],
        "keyMetrics": {
            "totalRecords": 0,
            "dateRange": "Not available",
            "mainCategories": [],
        },
        "narrative": {
            "introduction": "There was a problem processing the data.",
            "mainFindings": "No findings could be extracted because of a format error.",
            "conclusions": "Review the system configuration.",
        },
    }


def extract_json(raw_text: str | None, logger: logging.Logger | None = None) -> str:
    """
    Recover a single JSON object from arbitrary model output.

    Never raises. Returns, in order of preference:
    1. An unwrapped result object when the text is structurally nested
       (leading ``[{`` or a fenced block)
    2. The greedy first-``{``-to-last-``}`` span, unchanged, if it parses
    3. Any object the sniffer chain can recover
    4. The serialized fallback payload from ``build_fallback``
    """
    log = logger or logging.getLogger(__name__)
    if raw_text is None:
        raw_text = ""
    elif not isinstance(raw_text, str):
        raw_text = str(raw_text)

    stripped = raw_text.strip()
    if stripped.startswith("[{") or "```" in stripped:
        nested = unwrap_nested(stripped)
        if _has_result_fields(nested):
            log.debug("Unwrapped nested JSON from model response")
            return json.dumps(nested, ensure_ascii=False)

    match = _JSON_SPAN_RE.search(raw_text)
    if match:
        span = match.group(0)
        if isinstance(_loads(span), dict):
            return span
        log.warning("Invalid JSON in model response: %.200s", raw_text)
    else:
        log.warning("No JSON object found in model response: %.200s", raw_text)

    nested = unwrap_nested(stripped)
    if nested is not None:
        return json.dumps(nested, ensure_ascii=False)

    return json.dumps(build_fallback(raw_text), ensure_ascii=False)


# ---------------------------------------------------------------------------
# Display cleanup
# ---------------------------------------------------------------------------

def _text_field(obj: Any) -> str | None:
    if not isinstance(obj, dict):
        return None
    for key in ("content", "text"):
        value = obj.get(key)
        if isinstance(value, str) and value:
            return value
    return None


def _resolve_inner_text(inner: str) -> str:
    """Text from an array element: may itself be fenced or bare JSON."""
    if "```json" in inner.lower():
        m = _JSON_FENCE_RE.search(inner)
        if m:
            return _text_field(json.loads(m.group(1))) or inner
    stripped = inner.strip()
    if stripped.startswith("{") and stripped.endswith("}"):
        return _text_field(json.loads(stripped)) or inner
    return inner


def _clean_once(text: str) -> str:
    stripped = text.strip()
    try:
        if stripped.startswith("[{") and '"text"' in stripped:
            data = json.loads(stripped)
            if isinstance(data, list) and data and isinstance(data[0], dict):
                inner = data[0].get("text")
                if isinstance(inner, str) and inner:
                    return _resolve_inner_text(inner)
        elif "```json" in stripped.lower():
            m = _JSON_FENCE_RE.search(stripped)
            if m:
                return _text_field(json.loads(m.group(1))) or text
        elif stripped.startswith("{") and stripped.endswith("}"):
            return _text_field(json.loads(stripped)) or text
    except (ValueError, TypeError, RecursionError):
        return text
    return text


def clean_content(content: str | None) -> str | None:
    """
    Strip JSON wrapping from narrative content before display.

    Handles ``[{"text": "..."}]`` arrays, ```json fenced blocks and bare
    objects by taking their ``content`` (then ``text``) field. Falls back to
    the input whenever a step fails. Idempotent: iterates to a fixed point,
    and each accepted unwrap strictly shortens the text.
    """
    if not isinstance(content, str) or not content:
        return content

    cleaned = content
    while True:
        nxt = _clean_once(cleaned)
        if nxt == cleaned or len(nxt) >= len(cleaned):
            return cleaned
        cleaned = nxt
