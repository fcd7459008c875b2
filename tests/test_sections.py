"""Tests for component classification, section building and area assignment."""

import json

import pytest

from narrator.errors import ProviderError
from narrator.sections import (
    DEFAULT_AREAS,
    UNTITLED_DOCUMENT,
    AreaAssigner,
    SectionIdentifier,
    build_sections,
    classify_components,
    document_title,
    extract_keywords,
    fold,
)
from narrator.types import Area, ComponentType, PDFSection

FINANCE = Area(id=2, name="Finance")
CATALOG = [Area(id=1, name="Marketing"), FINANCE, Area(id=3, name="Operations")]


def _types(components):
    return [c.type for c in components]


class TestClassifyComponents:

    def test_empty(self):
        assert classify_components("") == []
        assert classify_components(None) == []
        assert classify_components("  \n ") == []

    def test_mixed_section(self):
        text = "\n".join([
            "FINANCIAL OVERVIEW",
            "Revenue grew 12% year over year.",
            "- North region",
            "- South region",
            "See chart below.",
            "Page 1 of 3",
        ])
        components = classify_components(text, page_number=4)
        assert _types(components) == [
            ComponentType.HEADER,
            ComponentType.TEXT,
            ComponentType.KPI,
            ComponentType.LIST,
            ComponentType.CHART,
            ComponentType.FOOTER,
        ]
        by_type = {c.type: c for c in components}
        assert by_type[ComponentType.LIST].content == "- North region\n- South region"
        assert by_type[ComponentType.TEXT].content == "Revenue grew 12% year over year.\nSee chart below."
        assert all(c.position.page == 4 for c in components)

    def test_pipe_table(self):
        text = "Intro text\n| A | B |\n|---|---|\n| 1 | 2 |\nAfter the table"
        components = classify_components(text)
        assert _types(components) == [ComponentType.TEXT, ComponentType.TABLE]
        assert components[1].content == "| A | B |\n|---|---|\n| 1 | 2 |"
        assert components[0].content == "Intro text\nAfter the table"

    def test_single_pipe_line_is_prose(self):
        components = classify_components("Revenue | Costs | Margin")
        assert _types(components) == [ComponentType.TEXT]

    def test_links_and_summary(self):
        text = "Details at https://example.com/report.\nIn summary, costs fell."
        components = classify_components(text)
        links = [c for c in components if c.type == ComponentType.LINK]
        assert [c.content for c in links] == ["https://example.com/report"]
        summaries = [c for c in components if c.type == ComponentType.SUMMARY]
        assert summaries[0].content == "In summary, costs fell."

    def test_spanish_markers(self):
        text = "Ver gráfico adjunto.\nPágina 2 de 10"
        assert _types(classify_components(text)) == [
            ComponentType.TEXT, ComponentType.CHART, ComponentType.FOOTER,
        ]

    def test_deterministic(self):
        text = "HEADER LINE\n| a | b |\n| c | d |\nMargin 5%\n1. first\n2. second"
        first = [(c.type, c.content) for c in classify_components(text)]
        second = [(c.type, c.content) for c in classify_components(text)]
        assert first == second


class TestBuildSections:

    def test_pairs(self):
        sections = build_sections([
            (1, "Quarterly Results\nRevenue grew 12% in the north region."),
            (2, "   "),
            (3, "=====\nStaff Training\nPayroll and hiring plans."),
        ])
        assert [s.title for s in sections] == ["Quarterly Results", "Staff Training"]
        assert [s.order for s in sections] == [1, 2]
        assert [s.page_number for s in sections] == [1, 3]
        first = sections[0]
        assert first.content == "Revenue grew 12% in the north region."
        assert first.keywords == ["quarterly", "results", "revenue"]
        assert ComponentType.KPI in _types(first.components)
        assert first.content_type == "text"

    def test_mappings(self):
        sections = build_sections([{"pageNumber": 5, "text": "Tables\n| a | b |\n| 1 | 2 |"}])
        assert sections[0].page_number == 5
        assert sections[0].content_type == "tables"

    def test_keywords_rank_by_frequency(self):
        assert extract_keywords("sales sales budget budget budget north") == ["budget", "sales", "north"]


class TestDocumentTitle:

    def test_skips_rules_and_short_lines(self):
        assert document_title("=========\nQ3\nAnnual Report 2024\nBody") == "Annual Report 2024"

    def test_untitled(self):
        assert document_title("") == UNTITLED_DOCUMENT
        assert document_title(None) == UNTITLED_DOCUMENT
        assert document_title("x" * 200) == UNTITLED_DOCUMENT


class TestSectionIdentifier:

    PAYLOAD = {"sections": [
        {"title": "Budget", "content": "Budget for 2024 is 5% higher.", "pageNumber": 2,
         "keywords": ["budget", "", "forecast"], "contentType": "data"},
        {"title": "Staff", "content": "Headcount stable.", "page": 3, "order": 7},
    ]}

    def test_parses_sections(self, scripted_provider):
        provider = scripted_provider("Sections:\n" + json.dumps(self.PAYLOAD))
        sections = SectionIdentifier(provider).identify_sections("Full report text")
        assert [s.title for s in sections] == ["Budget", "Staff"]
        assert [s.order for s in sections] == [1, 7]
        assert sections[0].page_number == 2
        assert sections[0].keywords == ["budget", "forecast"]
        assert sections[0].content_type == "data"
        assert sections[1].page_number == 3
        assert ComponentType.KPI in _types(sections[0].components)
        assert "Full report text" in provider.prompts[0]

    def test_message_envelope(self, scripted_provider):
        raw = json.dumps({"content": [{"type": "text", "text": json.dumps(self.PAYLOAD)}]})
        sections = SectionIdentifier(scripted_provider(raw)).identify_sections("doc")
        assert len(sections) == 2

    def test_unparseable_falls_back(self, scripted_provider):
        sections = SectionIdentifier(scripted_provider("I could not find sections")).identify_sections("doc")
        assert len(sections) == 1
        assert sections[0].title == "Report Content"
        assert sections[0].keywords == ["report", "financial", "analysis"]
        assert sections[0].content == "I could not find sections"

    def test_empty_document_skips_provider(self, scripted_provider):
        provider = scripted_provider()
        assert SectionIdentifier(provider).identify_sections("  ") == []
        assert provider.prompts == []

    def test_provider_error_propagates(self, scripted_provider):
        provider = scripted_provider(ProviderError("anthropic", None, "timed out"))
        with pytest.raises(ProviderError):
            SectionIdentifier(provider).identify_sections("doc")


class TestAreaAssigner:

    def test_keyword_suggests_area(self):
        section = PDFSection(title="", keywords=["budget", "forecast"])
        assigner = AreaAssigner(keyword_map={"budget": "Finance"})
        assignments = assigner.suggest_assignments([section], CATALOG)
        assert len(assignments) == 1
        assignment = assignments[0]
        assert assignment.area_id == 2
        assert assignment.section_id == section.id
        assert any("budget" in r for r in assignment.reasoning)
        assert assignment.confidence == 0.8

    def test_nothing_above_threshold_is_empty(self):
        section = PDFSection(title="", keywords=["budget"])
        assigner = AreaAssigner(keyword_map={"budget": "Finance"})
        assert assigner.suggest_assignments([section], CATALOG, min_confidence=0.9) == []

    def test_threshold_from_constructor(self):
        section = PDFSection(title="", keywords=["budget"])
        assigner = AreaAssigner(keyword_map={"budget": "Finance"}, min_confidence=0.9)
        assert assigner.suggest_assignments([section], CATALOG) == []

    def test_invalid_threshold(self):
        with pytest.raises(ValueError):
            AreaAssigner(min_confidence=1.5)

    def test_scores_accumulate_and_cap(self):
        section = PDFSection(title="", keywords=["budget", "forecast", "revenue"])
        assignment = AreaAssigner().suggest_for_section(section, CATALOG)[0]
        assert assignment.area_name == "Finance"
        assert assignment.confidence == 1.0
        assert len(assignment.reasoning) == 3

    def test_title_tokens_weigh_less(self):
        section = PDFSection(title="Budget", keywords=[])
        assigner = AreaAssigner(keyword_map={"budget": "Finance"})
        assert assigner.suggest_for_section(section, CATALOG, min_confidence=0.0)[0].confidence == 0.4
        assert assigner.suggest_for_section(section, CATALOG) == []

    def test_area_name_in_keyword(self):
        section = PDFSection(title="", keywords=["Operations review"])
        assignment = AreaAssigner(keyword_map={}).suggest_for_section(section, CATALOG)[0]
        assert assignment.area_id == 3
        assert assignment.reasoning == ['area name "Operations" in keyword "Operations review"']

    def test_spanish_catalog_and_accents(self):
        section = PDFSection(title="", keywords=["Tecnología", "ciberseguridad"])
        assignments = AreaAssigner().suggest_for_section(section, DEFAULT_AREAS)
        assert [a.area_name for a in assignments] == ["Tecnología"]
        assert assignments[0].area_id == 5

    def test_term_reported_when_keyword_differs(self):
        section = PDFSection(title="", keywords=["Annual budget"])
        assignment = AreaAssigner(keyword_map={"budget": "Finance"}).suggest_for_section(section, CATALOG)[0]
        assert assignment.reasoning == ['keyword "Annual budget" -> Finance (term "budget")']

    def test_ordering_ties_by_area_id(self):
        section = PDFSection(title="", keywords=["budget", "sales"])
        assigner = AreaAssigner(keyword_map={"budget": "Finance", "sales": "Marketing"})
        assignments = assigner.suggest_for_section(section, CATALOG)
        assert [a.area_id for a in assignments] == [1, 2]

    def test_ordering_by_confidence(self):
        section = PDFSection(title="", keywords=["budget", "forecast", "sales"])
        assigner = AreaAssigner(keyword_map={"budget": "Finance", "forecast": "Finance", "sales": "Marketing"})
        assignments = assigner.suggest_for_section(section, CATALOG)
        assert [a.area_id for a in assignments] == [2, 1]

    def test_ordering_ties_by_match_count(self):
        section = PDFSection(title="", keywords=["budget", "forecast", "revenue", "sales", "brand"])
        assigner = AreaAssigner(keyword_map={
            "budget": "Finance", "forecast": "Finance", "revenue": "Finance",
            "sales": "Marketing", "brand": "Marketing",
        })
        areas = [Area(1, "Marketing"), Area(2, "Finance")]
        assignments = assigner.suggest_for_section(section, areas)
        assert [(a.area_id, a.confidence) for a in assignments] == [(2, 1.0), (1, 1.0)]
        assert [len(a.reasoning) for a in assignments] == [3, 2]

    def test_limit(self):
        section = PDFSection(title="", keywords=["budget", "sales"])
        assigner = AreaAssigner(keyword_map={"budget": "Finance", "sales": "Marketing"})
        assert len(assigner.suggest_for_section(section, CATALOG, limit=1)) == 1

    def test_sections_in_input_order(self):
        hr = PDFSection(title="", keywords=["payroll"])
        fin = PDFSection(title="", keywords=["budget"])
        areas = [Area(1, "Finance"), Area(2, "Human Resources")]
        assignments = AreaAssigner().suggest_assignments([hr, fin], areas)
        assert [a.section_id for a in assignments] == [hr.id, fin.id]
        assert [a.area_id for a in assignments] == [2, 1]

    def test_required_components(self):
        section = PDFSection(title="", keywords=["budget"], content="Margin 12%\n| a | b |\n| c | d |")
        assignment = AreaAssigner().suggest_for_section(section, CATALOG)[0]
        assert assignment.required_components == [
            ComponentType.TEXT, ComponentType.TABLE, ComponentType.KPI,
        ]

    def test_deterministic(self):
        section = PDFSection(title="Sales and budget", keywords=["forecast", "brand"])
        assigner = AreaAssigner()
        first = [a.to_dict() for a in assigner.suggest_for_section(section, CATALOG, min_confidence=0.0)]
        second = [a.to_dict() for a in assigner.suggest_for_section(section, CATALOG, min_confidence=0.0)]
        assert first == second

    def test_fold(self):
        assert fold("  Tecnología   DIGITAL ") == "tecnologia digital"
