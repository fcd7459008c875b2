"""
Render tabular data as bounded-size markdown tables for prompts.
"""

import math
from collections.abc import Sequence
from typing import Any

NO_DATA = "No data available"


def format_cell(value: Any) -> str:
    """Stringify a cell uniformly: None -> "", bools lowercase, integral floats without ".0"."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            return ""
        if value.is_integer():
            return str(int(value))
        return repr(value)
    text = str(value)
    # Keep each cell on one line and out of the column separators
    text = " ".join(text.split())
    return text.replace("|", "\\|")


def _is_number(text: str) -> bool:
    try:
        float(text.replace(",", ""))
    except ValueError:
        return False
    return True


def looks_like_header(row: Sequence[Any]) -> bool:
    """True if every cell is a non-blank, non-numeric string label."""
    if not row:
        return False
    for cell in row:
        if not isinstance(cell, str):
            return False
        stripped = cell.strip()
        if not stripped or _is_number(stripped):
            return False
    return True


def render_table(rows: Sequence[Sequence[Any]] | None, max_rows: int = 10) -> str:
    """
    Convert rows into a markdown table with at most ``max_rows`` body rows.

    The first row becomes the header when it looks like a row of labels;
    otherwise synthetic "Column N" headers are used and every row is body.
    Elided rows are announced with a trailing "... and N additional rows"
    line so the model knows the data was truncated.
    """
    if not rows:
        return NO_DATA

    rows = [list(r) if r is not None else [] for r in rows]
    width = max(len(r) for r in rows)
    if width == 0:
        return NO_DATA

    if looks_like_header(rows[0]):
        headers = [format_cell(c) for c in rows[0]]
        headers += [f"Column {i + 1}" for i in range(len(headers), width)]
        body = rows[1:]
    else:
        headers = [f"Column {i + 1}" for i in range(width)]
        body = rows

    limit = max(0, max_rows)
    shown = body[:limit]
    hidden = len(body) - len(shown)

    lines = [
        "| " + " | ".join(headers) + " |",
        "| " + " | ".join("---" for _ in headers) + " |",
    ]
    for row in shown:
        cells = [format_cell(c) for c in row]
        cells += [""] * (width - len(cells))
        lines.append("| " + " | ".join(cells) + " |")

    if hidden > 0:
        lines.append(f"... and {hidden} additional rows")

    return "\n".join(lines)


def sample_rows(rows: Sequence[Sequence[Any]] | None, limit: int = 5) -> str:
    """Plain "Row i: a, b" listing of the first rows, for prompt context."""
    if not rows or len(rows) < 2:
        return "No sample data"

    # Header plus `limit` data rows
    shown = min(limit + 1, len(rows))
    lines = [f"First {shown - 1} data rows:"]
    for i in range(shown):
        lines.append(f"Row {i}: " + ", ".join(format_cell(c) for c in rows[i]))
    if len(rows) > shown:
        lines.append(f"... and {len(rows) - shown} additional rows")
    return "\n".join(lines)
