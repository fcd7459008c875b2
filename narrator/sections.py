"""
Report sections: component classification and area assignment.

Sections come from an external PDF extractor as (page, text) pairs or from a
model-driven identification pass. Classification is regex/heuristic and
deterministic. Area assignment scores each section against a catalog of
organizational areas using a bilingual keyword dictionary and records the
literal keyword/area pairs behind every suggestion.
"""

import json
import logging
import re
import unicodedata
from collections import Counter
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from .extraction import extract_json, unwrap_nested
from .normalizer import as_list, as_number, as_text, try_extract_field
from .prompts import build_sections_prompt
from .types import (
    Area,
    AreaAssignment,
    ComponentPosition,
    ComponentType,
    PDFComponent,
    PDFSection,
)

DEFAULT_MIN_CONFIDENCE = 0.7
KEYWORD_WEIGHT = 0.8
TITLE_TOKEN_WEIGHT = 0.4
AREA_NAME_WEIGHT = 0.8

UNTITLED_DOCUMENT = "Untitled Document"

# Canonical area keys and the names they go by in area catalogs
AREA_ALIASES: dict[str, tuple[str, ...]] = {
    "Finance": ("finance", "finances", "finanzas", "financial"),
    "HumanResources": (
        "human resources", "humanresources", "hr", "recursos humanos", "rrhh",
        "talento humano",
    ),
    "Operations": ("operations", "operaciones"),
    "Marketing": ("marketing", "mercadeo", "mercadotecnia"),
    "Technology": ("technology", "tecnologia", "it", "ti"),
    "Legal": ("legal", "juridico", "legal affairs", "asuntos juridicos"),
    "Sustainability": ("sustainability", "sostenibilidad", "esg"),
}

# Domain term -> canonical area. English and Spanish.
KEYWORD_AREA_MAP: dict[str, str] = {
    # Finance
    "financiero": "Finance", "finanzas": "Finance", "contabilidad": "Finance",
    "presupuesto": "Finance", "ingresos": "Finance", "gastos": "Finance",
    "costos": "Finance", "utilidad": "Finance", "rentabilidad": "Finance",
    "estados financieros": "Finance", "dividendos": "Finance", "bursatil": "Finance",
    "financial": "Finance", "finance": "Finance", "accounting": "Finance",
    "budget": "Finance", "revenue": "Finance", "expenses": "Finance",
    "costs": "Finance", "profit": "Finance", "forecast": "Finance",
    "cash flow": "Finance", "financial statements": "Finance", "dividend": "Finance",
    # Human resources
    "recursos humanos": "HumanResources", "personal": "HumanResources",
    "empleados": "HumanResources", "trabajadores": "HumanResources",
    "capacitacion": "HumanResources", "salarios": "HumanResources",
    "nomina": "HumanResources", "contratacion": "HumanResources",
    "human resources": "HumanResources", "personnel": "HumanResources",
    "employees": "HumanResources", "staff": "HumanResources",
    "workforce": "HumanResources", "training": "HumanResources",
    "salaries": "HumanResources", "payroll": "HumanResources",
    "hiring": "HumanResources",
    # Operations
    "operaciones": "Operations", "produccion": "Operations",
    "manufactura": "Operations", "logistica": "Operations",
    "inventario": "Operations", "calidad": "Operations",
    "cadena de suministro": "Operations",
    "operations": "Operations", "production": "Operations",
    "manufacturing": "Operations", "logistics": "Operations",
    "inventory": "Operations", "quality": "Operations",
    "supply chain": "Operations",
    # Marketing
    "marketing": "Marketing", "publicidad": "Marketing", "promocion": "Marketing",
    "mercado": "Marketing", "clientes": "Marketing", "ventas": "Marketing",
    "competencia": "Marketing", "marca": "Marketing",
    "advertising": "Marketing", "promotion": "Marketing", "market": "Marketing",
    "customers": "Marketing", "sales": "Marketing", "brand": "Marketing",
    "competition": "Marketing",
    # Technology
    "tecnologia": "Technology", "sistemas": "Technology", "software": "Technology",
    "digital": "Technology", "automatizacion": "Technology",
    "innovacion": "Technology", "ciberseguridad": "Technology",
    "technology": "Technology", "systems": "Technology",
    "automation": "Technology", "innovation": "Technology",
    "cybersecurity": "Technology", "infrastructure": "Technology",
    # Legal
    "juridico": "Legal", "regulatorio": "Legal", "cumplimiento": "Legal",
    "contratos": "Legal", "normativa": "Legal", "gobernanza": "Legal",
    "legal": "Legal", "regulatory": "Legal", "compliance": "Legal",
    "contracts": "Legal", "litigation": "Legal", "governance": "Legal",
    # Sustainability
    "sostenibilidad": "Sustainability", "ambiental": "Sustainability",
    "medio ambiente": "Sustainability", "emisiones": "Sustainability",
    "carbono": "Sustainability", "responsabilidad social": "Sustainability",
    "sustainability": "Sustainability", "environmental": "Sustainability",
    "emissions": "Sustainability", "carbon": "Sustainability",
    "esg": "Sustainability", "social responsibility": "Sustainability",
}

STOPWORDS = frozenset("""
a an and are as at be by for from has have in into is it its of on or that the
their this to was were will with which while than then there these those also
el la los las un una unos unas y o de del al en por para con sin sobre que se
su sus es son fue como mas pero este esta estos estas ese esa entre durante
""".split())

_WORD_RE = re.compile(r"[^\W\d_]+")

_PIPE_TABLE_RE = re.compile(r"(\|[^\n]*\|[\s\S]*?)(?=\n\n|\n[^|]|$)")
_GRID_TABLE_RE = re.compile(r"(\+[-=]+\+[\s\S]*?)(?=\n\n|\n[^+|]|$)")
_LIST_ITEM_RE = re.compile(r"^\s*(?:[-*•]|\d{1,3}[.)])\s+\S")
_KPI_RE = re.compile(
    r"\d+(?:[.,]\d+)?\s?%"
    r"|[$€£]\s?\d"
    r"|\b\d+(?:[.,]\d+)*\s?(?:USD|EUR|MXN|COP|CLP)\b"
    r"|\bKPIs?\b",
    re.IGNORECASE,
)
_URL_RE = re.compile(r"https?://[^\s)>\]]+|www\.[^\s)>\]]+", re.IGNORECASE)
_FOOTER_RE = re.compile(r"\b(?:page|p[aá]gina)\s+\d+\s+(?:of|de)\s+\d+\b", re.IGNORECASE)
_SUMMARY_RE = re.compile(
    r"\b(?:summary|overview|conclusions?|resumen|conclusi[oó]n(?:es)?)\b", re.IGNORECASE
)
_VISUAL_PATTERNS = (
    (ComponentType.CHART, re.compile(r"\b(?:chart|gr[aá]fic[oa]s?)\b", re.IGNORECASE)),
    (ComponentType.GRAPH, re.compile(r"\b(?:graph|diagram|diagrama)s?\b", re.IGNORECASE)),
    (ComponentType.IMAGE, re.compile(r"\b(?:image|imagen|figure|figura|photo|foto)s?\b", re.IGNORECASE)),
)

_TYPE_RANK = {t: i for i, t in enumerate(ComponentType)}


def fold(text: str) -> str:
    """Lowercase, strip accents and collapse whitespace for matching."""
    decomposed = unicodedata.normalize("NFKD", text)
    stripped = "".join(c for c in decomposed if not unicodedata.combining(c))
    return " ".join(stripped.lower().split())


def _canonical_area(name: str) -> str:
    folded = fold(name)
    for key, aliases in AREA_ALIASES.items():
        if folded == key.lower() or folded in aliases:
            return key
    return folded


def _phrase_pattern(phrase: str) -> re.Pattern:
    return re.compile(r"(?<!\w)" + re.escape(phrase) + r"(?!\w)")


def tokenize(text: str) -> list[str]:
    """Folded word tokens of three or more letters, stopwords removed."""
    return [
        t for t in _WORD_RE.findall(fold(text))
        if len(t) >= 3 and t not in STOPWORDS
    ]


# ---------------------------------------------------------------------------
# Component classification
# ---------------------------------------------------------------------------

def classify_components(section_text: str | None, page_number: int = 0) -> list[PDFComponent]:
    """
    Detect typed components in a section's text.

    Tables (pipe and +---+ grid), lists, KPI figures, chart/graph/image
    mentions, links, "page N of M" footers, an all-caps header line and
    summary markers are recognized; remaining prose becomes one Text
    component. Components are ordered by position, then by type.
    """
    if not section_text or not section_text.strip():
        return []

    text = section_text.replace("\r\n", "\n")
    lines = text.split("\n")
    found: list[tuple[int, int, PDFComponent]] = []
    consumed: set[int] = set()

    def add(line_no: int, ctype: ComponentType, content: str, caption: str = "") -> None:
        component = PDFComponent(
            type=ctype,
            content=content,
            caption=caption,
            position=ComponentPosition(page=page_number),
        )
        found.append((line_no, _TYPE_RANK[ctype], component))

    for pattern, caption in ((_GRID_TABLE_RE, "Grid table"), (_PIPE_TABLE_RE, "Table")):
        for m in pattern.finditer(text):
            block = m.group(1).strip()
            first = text.count("\n", 0, m.start())
            span = range(first, first + m.group(1).rstrip("\n").count("\n") + 1)
            # A single delimited line is prose with pipes, not a table
            if len(span) < 2 or any(i in consumed for i in span):
                continue
            consumed.update(span)
            add(first, ComponentType.TABLE, block, caption)

    header_done = False
    list_start: int | None = None
    list_lines: list[str] = []

    def flush_list() -> None:
        nonlocal list_start, list_lines
        if list_start is not None:
            add(list_start, ComponentType.LIST, "\n".join(list_lines))
        list_start, list_lines = None, []

    for i, line in enumerate(lines):
        stripped = line.strip()
        if i in consumed or not stripped:
            flush_list()
            continue

        if not header_done:
            header_done = True
            letters = [c for c in stripped if c.isalpha()]
            if len(letters) >= 3 and all(c.isupper() for c in letters) and len(stripped) <= 80:
                consumed.add(i)
                add(i, ComponentType.HEADER, stripped)
                continue

        if _FOOTER_RE.search(stripped):
            flush_list()
            consumed.add(i)
            add(i, ComponentType.FOOTER, stripped)
            continue

        if _LIST_ITEM_RE.match(line):
            if list_start is None:
                list_start = i
            list_lines.append(stripped)
            consumed.add(i)
        else:
            flush_list()

        if _KPI_RE.search(stripped):
            add(i, ComponentType.KPI, stripped)
        for ctype, pattern in _VISUAL_PATTERNS:
            if pattern.search(stripped):
                add(i, ctype, stripped)
                break
        for url in _URL_RE.findall(stripped):
            add(i, ComponentType.LINK, url.rstrip(".,;"))
    flush_list()

    for i, line in enumerate(lines):
        if i not in consumed and _SUMMARY_RE.search(line):
            add(i, ComponentType.SUMMARY, line.strip())
            break

    prose = [(i, line.strip()) for i, line in enumerate(lines) if i not in consumed and line.strip()]
    if prose:
        add(prose[0][0], ComponentType.TEXT, "\n".join(p for _, p in prose))

    found.sort(key=lambda item: (item[0], item[1]))
    return [component for _, _, component in found]


# ---------------------------------------------------------------------------
# Section building
# ---------------------------------------------------------------------------

def document_title(text: str | None) -> str:
    """First line of 6 to 99 characters that isn't a "===" rule."""
    for line in (text or "").splitlines():
        candidate = line.strip()
        if 5 < len(candidate) < 100 and not candidate.startswith("==="):
            return candidate
    return UNTITLED_DOCUMENT


def extract_keywords(text: str | None, limit: int = 3) -> list[str]:
    """Most frequent non-stopword tokens (4+ letters), ties by first occurrence."""
    tokens = [t for t in tokenize(text or "") if len(t) >= 4]
    counts = Counter(tokens)
    first_seen = {}
    for i, t in enumerate(tokens):
        first_seen.setdefault(t, i)
    ranked = sorted(counts, key=lambda t: (-counts[t], first_seen[t]))
    return ranked[:limit]


def _content_type(components: Sequence[PDFComponent]) -> str:
    types = {c.type for c in components}
    has_table = ComponentType.TABLE in types
    if has_table and len(types) > 1:
        return "mixed"
    if has_table:
        return "tables"
    return "text"


def build_sections(raw_sections: Iterable[Any]) -> list[PDFSection]:
    """
    Build PDFSections from extracted (page_number, text) pairs.

    Mappings with ``pageNumber``/``page_number`` and ``text``/``content`` keys
    are accepted too. The first meaningful line becomes the title; the rest
    is the content. Blank sections are skipped.
    """
    sections = []
    for raw in raw_sections:
        if isinstance(raw, Mapping):
            page = raw.get("pageNumber", raw.get("page_number", 0))
            text = raw.get("text", raw.get("content", ""))
        else:
            page, text = raw
        if not isinstance(text, str) or not text.strip():
            continue

        lines = text.replace("\r\n", "\n").split("\n")
        title_index = next(
            (i for i, line in enumerate(lines)
             if line.strip() and not line.strip().startswith("===")),
            None,
        )
        if title_index is None:
            continue
        title = lines[title_index].strip()[:100]
        content = "\n".join(lines[title_index + 1:]).strip()

        page_number = page if isinstance(page, int) and not isinstance(page, bool) else 0
        components = classify_components(content or title, page_number)
        sections.append(PDFSection(
            title=title,
            page_number=page_number,
            order=len(sections) + 1,
            content=content,
            components=components,
            keywords=extract_keywords(f"{title}\n{content}"),
            content_type=_content_type(components),
        ))
    return sections


# ---------------------------------------------------------------------------
# Model-driven section identification
# ---------------------------------------------------------------------------

def _as_int(value: Any) -> int:
    return int(as_number(value))


def _parse_section(value: Any, logger: logging.Logger | None = None) -> PDFSection:
    if not isinstance(value, dict):
        raise TypeError(f"expected object, got {type(value).__name__}")
    title = try_extract_field(value, "title", as_text, "", logger) or "Untitled"
    content = try_extract_field(value, "content", as_text, "", logger)
    page_number = try_extract_field(value, ("pageNumber", "page_number", "page"), _as_int, 0, logger)
    return PDFSection(
        title=title,
        subtitle=try_extract_field(value, "subtitle", as_text, "", logger),
        page_number=page_number,
        order=try_extract_field(value, "order", _as_int, 0, logger),
        content=content,
        components=classify_components(content, page_number),
        keywords=[
            k for k in try_extract_field(value, "keywords", as_list(as_text, logger), [], logger)
            if k
        ],
        content_type=try_extract_field(value, ("contentType", "content_type"), as_text, "text", logger),
    )


def fallback_section(raw_text: str | None) -> PDFSection:
    """Single catch-all section used when identification yields nothing."""
    text = raw_text or ""
    content = text[:1000] + "..." if len(text) > 1000 else text
    return PDFSection(
        title="Report Content",
        page_number=1,
        order=1,
        content=content,
        keywords=["report", "financial", "analysis"],
        content_type="text",
    )


class SectionIdentifier:
    """Split report text into sections with one provider call."""

    def __init__(self, provider, logger: logging.Logger | None = None):
        self.provider = provider
        self._log = logger or logging.getLogger(__name__)

    def identify_sections(self, document_text: str, model: str | None = None) -> list[PDFSection]:
        """
        Ask the model for a ``{"sections": [...]}`` breakdown.

        Unparseable output degrades to ``fallback_section``; ProviderError
        propagates.
        """
        if not document_text or not document_text.strip():
            return []

        raw = self.provider.generate_text(build_sections_prompt(document_text), model=model)
        data = json.loads(extract_json(raw, self._log))

        if "sections" not in data:
            # Message envelope around the payload: {"content": [{"text": "..."}]}
            nested = unwrap_nested(raw)
            if isinstance(nested, dict) and "sections" in nested:
                data = nested

        sections = try_extract_field(
            data, "sections", as_list(lambda v: _parse_section(v, self._log), self._log), [], self._log
        )
        if not sections:
            self._log.warning("No sections identified; using a single fallback section")
            return [fallback_section(raw)]

        for i, section in enumerate(sections, start=1):
            if section.order <= 0:
                section.order = i
        self._log.info("Identified %d sections", len(sections))
        return sections


# ---------------------------------------------------------------------------
# Area assignment
# ---------------------------------------------------------------------------

@dataclass
class _Score:
    area: Area
    total: float = 0.0
    matches: int = 0
    reasoning: list[str] = field(default_factory=list)


class AreaAssigner:
    """
    Suggest owning areas for report sections.

    Each section's keyword set is its explicit keywords (weight 0.8) plus
    title/subtitle tokens (weight 0.4). Every keyword -> area dictionary match
    contributes its weight independently; a keyword containing the area's own
    name contributes 0.8. Scores cap at 1.0.

    Args:
        keyword_map: Term -> area mapping; defaults to KEYWORD_AREA_MAP.
            Targets may be canonical keys ("Finance") or catalog names
            ("Finanzas"); a value may also be a list of areas.
        min_confidence: Suggestions scoring below this are dropped
    """

    def __init__(
        self,
        keyword_map: Mapping[str, str | Sequence[str]] | None = None,
        min_confidence: float = DEFAULT_MIN_CONFIDENCE,
        logger: logging.Logger | None = None,
    ):
        if not 0.0 <= min_confidence <= 1.0:
            raise ValueError(f"min_confidence must be between 0 and 1, got {min_confidence}")
        self.min_confidence = min_confidence
        self._log = logger or logging.getLogger(__name__)

        mapping = KEYWORD_AREA_MAP if keyword_map is None else keyword_map
        self._terms: list[tuple[str, re.Pattern, frozenset[str]]] = []
        for term, targets in mapping.items():
            folded = fold(term)
            if not folded:
                continue
            if isinstance(targets, str):
                targets = (targets,)
            areas = frozenset(_canonical_area(t) for t in targets)
            self._terms.append((folded, _phrase_pattern(folded), areas))

    def keyword_set(self, section: PDFSection) -> list[tuple[str, str, float]]:
        """(keyword, folded keyword, weight) triples; explicit keywords win over title tokens."""
        weighted: dict[str, tuple[str, float]] = {}
        for keyword in section.keywords:
            folded = fold(keyword)
            if folded:
                weighted.setdefault(folded, (keyword.strip(), KEYWORD_WEIGHT))
        for token in tokenize(f"{section.title} {section.subtitle}"):
            weighted.setdefault(token, (token, TITLE_TOKEN_WEIGHT))
        return [(shown, folded, weight) for folded, (shown, weight) in weighted.items()]

    def _score(self, section: PDFSection, area: Area) -> _Score:
        score = _Score(area=area)
        canonical = _canonical_area(area.name)
        name_patterns = [_phrase_pattern(fold(area.name))]
        name_patterns += [_phrase_pattern(a) for a in AREA_ALIASES.get(canonical, ())]

        for keyword, folded, weight in self.keyword_set(section):
            matched = False
            for term, pattern, areas in self._terms:
                if canonical in areas and pattern.search(folded):
                    matched = True
                    score.total += weight
                    score.matches += 1
                    reason = f'keyword "{keyword}" -> {area.name}'
                    if term != folded:
                        reason += f' (term "{term}")'
                    score.reasoning.append(reason)
            if not matched and any(p.search(folded) for p in name_patterns):
                score.total += AREA_NAME_WEIGHT
                score.matches += 1
                score.reasoning.append(f'area name "{area.name}" in keyword "{keyword}"')
        return score

    def required_components(self, section: PDFSection) -> list[ComponentType]:
        """Distinct component types of the section, in enum order."""
        components = section.components or classify_components(section.content, section.page_number)
        present = {c.type for c in components}
        return [t for t in ComponentType if t in present]

    def suggest_for_section(
        self,
        section: PDFSection,
        available_areas: Sequence[Area],
        min_confidence: float | None = None,
        limit: int | None = None,
    ) -> list[AreaAssignment]:
        """Ranked suggestions for one section; empty when nothing clears the threshold."""
        threshold = self.min_confidence if min_confidence is None else min_confidence
        scored = []
        for area in available_areas:
            score = self._score(section, area)
            confidence = round(min(1.0, score.total), 4)
            if score.matches and confidence >= threshold:
                scored.append((confidence, score))

        scored.sort(key=lambda item: (-item[0], -item[1].matches, item[1].area.id))
        if limit is not None:
            scored = scored[:max(0, limit)]

        if not scored:
            self._log.info("Section %r: no area reaches %.2f, needs manual triage", section.title, threshold)
            return []

        required = self.required_components(section)
        return [
            AreaAssignment(
                section_id=section.id,
                section_title=section.title,
                area_id=score.area.id,
                area_name=score.area.name,
                confidence=confidence,
                reasoning=list(score.reasoning),
                required_components=list(required),
            )
            for confidence, score in scored
        ]

    def suggest_assignments(
        self,
        sections: Sequence[PDFSection],
        available_areas: Sequence[Area],
        min_confidence: float | None = None,
        limit: int | None = None,
    ) -> list[AreaAssignment]:
        """
        Suggestions for every section, sections in input order.

        Args:
            sections: Sections to assign
            available_areas: Area catalog
            min_confidence: Override the assigner's threshold for this call
            limit: Maximum suggestions per section

        Returns:
            Flat list of AreaAssignment; a section with no area above the
            threshold contributes nothing.
        """
        assignments = []
        for section in sections:
            assignments.extend(
                self.suggest_for_section(section, available_areas, min_confidence, limit)
            )
        self._log.debug(
            "Suggested %d assignments for %d sections across %d areas",
            len(assignments), len(sections), len(available_areas),
        )
        return assignments


DEFAULT_AREAS = (
    Area(id=1, name="Finanzas"),
    Area(id=2, name="Recursos Humanos"),
    Area(id=3, name="Operaciones"),
    Area(id=4, name="Marketing"),
    Area(id=5, name="Tecnología"),
)
