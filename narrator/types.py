"""
Data types for the analysis and narrative pipeline.

Everything here is a transient, request-scoped value. ``to_dict()`` emits the
camelCase field names the surrounding API layer serializes to clients.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


# Allowed insight severities, Spanish and English forms
SEVERITIES = ("Baja", "Media", "Alta", "Low", "Medium", "High", "Info")

# Allowed trend directions
DIRECTIONS = ("up", "down", "stable")


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def format_timestamp(dt: datetime) -> str:
    """Render a datetime as ISO-8601 (UTC assumed when naive)."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.isoformat()


def _new_id() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class GenerationOptions:
    """Per-call provider options. Unset fields fall back to provider config."""
    model: str | None = None
    max_tokens: int | None = None
    temperature: float | None = None
    timeout_seconds: float | None = None


@dataclass
class AnalysisConfig:
    """Caller preferences for an analysis run."""
    analysis_type: str = "comprehensive"
    language: str = "es"
    tone: str = "professional"

    @classmethod
    def from_dict(cls, data: dict | None) -> "AnalysisConfig":
        data = data or {}
        return cls(
            analysis_type=str(data.get("analysisType") or data.get("analysis_type") or "comprehensive"),
            language=str(data.get("language") or "es"),
            tone=str(data.get("tone") or "professional"),
        )


@dataclass
class AnalysisRequest:
    """
    Tabular data to analyze.

    Attributes:
        data: Ordered rows, each an ordered sequence of cell values. The first
              row may be a header row.
        config: Analysis preferences
    """
    data: list[list[Any]] = field(default_factory=list)
    config: AnalysisConfig = field(default_factory=AnalysisConfig)


# ---------------------------------------------------------------------------
# Analysis results
# ---------------------------------------------------------------------------

@dataclass
class Insight:
    title: str = ""
    description: str = ""
    severity: str = "Info"
    confidence: float = 0.0
    impact: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "title": self.title,
            "description": self.description,
            "severity": self.severity,
            "confidence": self.confidence,
            "impact": self.impact,
        }


@dataclass
class DataPoint:
    date: Optional[str] = None
    value: float = 0.0
    label: str = ""

    def to_dict(self) -> dict:
        return {"date": self.date, "value": self.value, "label": self.label}


@dataclass
class Trend:
    metric: str = ""
    direction: str = "stable"
    change: float = 0.0  # percentage
    description: Optional[str] = None
    data_points: Optional[list[DataPoint]] = None

    def to_dict(self) -> dict:
        return {
            "metric": self.metric,
            "direction": self.direction,
            "change": self.change,
            "description": self.description,
            "dataPoints": (
                [p.to_dict() for p in self.data_points]
                if self.data_points is not None else None
            ),
        }


@dataclass
class AnalysisResult:
    """
    Normalized analysis of a dataset.

    ``summary`` is never None and the list fields are never None; a degraded
    analysis carries an explanatory summary instead of raising.
    """
    summary: str
    title: Optional[str] = None
    insights: list[Insight] = field(default_factory=list)
    trends: list[Trend] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
    key_metrics: Optional[dict[str, Any]] = None
    narrative: Any = None  # str or mapping, depending on the provider
    generated_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict:
        return {
            "title": self.title,
            "summary": self.summary,
            "insights": [i.to_dict() for i in self.insights],
            "trends": [t.to_dict() for t in self.trends],
            "recommendations": list(self.recommendations),
            "keyMetrics": self.key_metrics,
            "narrative": self.narrative,
            "generatedAt": format_timestamp(self.generated_at),
        }


@dataclass
class NarrativeResult:
    """Readable narrative. ``content`` is plain prose, never JSON or fenced."""
    title: str = ""
    content: str = ""
    key_points: list[str] = field(default_factory=list)
    sections: dict[str, str] = field(default_factory=dict)
    generated_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict:
        return {
            "title": self.title,
            "content": self.content,
            "keyPoints": list(self.key_points),
            "sections": dict(self.sections),
            "generatedAt": format_timestamp(self.generated_at),
        }


# ---------------------------------------------------------------------------
# Document sections and area assignment
# ---------------------------------------------------------------------------

class ComponentType(str, Enum):
    """Closed set of component kinds found in report sections."""
    TEXT = "Text"
    TABLE = "Table"
    CHART = "Chart"
    IMAGE = "Image"
    KPI = "KPI"
    GRAPH = "Graph"
    LIST = "List"
    HEADER = "Header"
    FOOTER = "Footer"
    NAVIGATION = "Navigation"
    SUMMARY = "Summary"
    DATA_GRID = "DataGrid"
    FORM = "Form"
    BUTTON = "Button"
    LINK = "Link"

    @classmethod
    def parse(cls, value: Any) -> "ComponentType | None":
        """Look up a member by value, case-insensitively. None if unknown."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        wanted = value.strip().lower()
        for member in cls:
            if member.value.lower() == wanted:
                return member
        return None


@dataclass
class ComponentPosition:
    page: int = 0
    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0

    def to_dict(self) -> dict:
        return {
            "page": self.page, "x": self.x, "y": self.y,
            "width": self.width, "height": self.height,
        }


@dataclass
class PDFComponent:
    type: ComponentType
    content: str = ""
    caption: str = ""
    position: ComponentPosition = field(default_factory=ComponentPosition)
    id: str = field(default_factory=_new_id)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type.value,
            "content": self.content,
            "caption": self.caption,
            "position": self.position.to_dict(),
        }


@dataclass
class PDFSection:
    """A section of an extracted report, with its classification state."""
    title: str = ""
    subtitle: str = ""
    page_number: int = 0
    order: int = 0
    content: str = ""
    components: list[PDFComponent] = field(default_factory=list)
    keywords: list[str] = field(default_factory=list)
    suggested_area: Optional[str] = None
    confidence: float = 0.0
    content_type: str = "text"
    id: str = field(default_factory=_new_id)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "subtitle": self.subtitle,
            "pageNumber": self.page_number,
            "order": self.order,
            "content": self.content,
            "components": [c.to_dict() for c in self.components],
            "keywords": list(self.keywords),
            "suggestedArea": self.suggested_area,
            "confidence": self.confidence,
            "contentType": self.content_type,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PDFSection":
        """Build a section from API-shaped input. Unknown component types are dropped."""
        components = []
        for raw in data.get("components") or []:
            if not isinstance(raw, dict):
                continue
            ctype = ComponentType.parse(raw.get("type"))
            if ctype is None:
                continue
            components.append(PDFComponent(
                type=ctype,
                content=str(raw.get("content") or ""),
                caption=str(raw.get("caption") or ""),
            ))
        section = cls(
            title=str(data.get("title") or ""),
            subtitle=str(data.get("subtitle") or ""),
            page_number=_as_int(data.get("pageNumber", data.get("page_number"))),
            order=_as_int(data.get("order")),
            content=str(data.get("content") or ""),
            components=components,
            keywords=[str(k) for k in data.get("keywords") or [] if k],
            suggested_area=data.get("suggestedArea"),
            content_type=str(data.get("contentType") or "text"),
        )
        if data.get("id"):
            section.id = str(data["id"])
        return section


@dataclass(frozen=True)
class Area:
    """Organizational unit that may own a report section."""
    id: int
    name: str

    @classmethod
    def from_dict(cls, data: dict) -> "Area":
        return cls(id=int(data["id"]), name=str(data["name"]))


@dataclass
class AreaAssignment:
    section_id: str
    section_title: str
    area_id: int
    area_name: str
    confidence: float
    reasoning: list[str] = field(default_factory=list)
    required_components: list[ComponentType] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "sectionId": self.section_id,
            "sectionTitle": self.section_title,
            "areaId": self.area_id,
            "areaName": self.area_name,
            "confidence": self.confidence,
            "reasoning": list(self.reasoning),
            "requiredComponents": [c.value for c in self.required_components],
        }


def _as_int(value: Any) -> int:
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    return 0
