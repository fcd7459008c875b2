"""
Report Narrator

AI-generated analyses and narratives for tabular business data, and
classification of extracted report sections to the organizational areas that
own them.

Quick Start:
    from narrator import Analyzer, NarrativeSynthesizer, load_or_create_config, create_provider

    config = load_or_create_config()
    analyzer = Analyzer(create_provider(config))
    analysis = analyzer.analyze_rows([["Region", "Sales"], ["North", 120], ["South", 95]])
    narrative = NarrativeSynthesizer().from_analysis(analysis)

CLI Usage:
    narrator analyze sales.csv --narrative
    narrator assign sections.json areas.json
    narrator classify report.txt --pages

Environment Variables:
    NARRATOR_HOME        - Config directory (default: ~/.narrator)
    NARRATOR_PROVIDER    - Override the configured provider
    NARRATOR_VERBOSE     - Set to 1 for debug logging
    OLLAMA_HOST          - Ollama server URL
    ANTHROPIC_API_KEY    - API key for Anthropic
    DEEPSEEK_API_KEY     - API key for DeepSeek
    OPENAI_API_KEY       - API key for OpenAI

Model output is treated as untrusted text: analyses and narratives always come
back as typed results, degraded when the response cannot be parsed. Only
transport failures (ProviderError) raise.
"""

from .analysis import Analyzer
from .config import (
    NarratorConfig,
    create_assigner,
    create_provider,
    load_config,
    load_or_create_config,
    save_config,
)
from .errors import ConfigError, NarratorError, ProviderError
from .extraction import clean_content, extract_json
from .narrative import NarrativeSynthesizer
from .normalizer import normalize, normalize_narrative
from .sections import (
    DEFAULT_AREAS,
    AreaAssigner,
    SectionIdentifier,
    build_sections,
    classify_components,
)
from .tabular import render_table
from .types import (
    AnalysisConfig,
    AnalysisRequest,
    AnalysisResult,
    Area,
    AreaAssignment,
    ComponentType,
    NarrativeResult,
    PDFComponent,
    PDFSection,
)

__all__ = [
    "Analyzer",
    "NarrativeSynthesizer",
    "SectionIdentifier",
    "AreaAssigner",
    "DEFAULT_AREAS",
    "build_sections",
    "classify_components",
    "extract_json",
    "clean_content",
    "normalize",
    "normalize_narrative",
    "render_table",
    "NarratorConfig",
    "load_config",
    "load_or_create_config",
    "save_config",
    "create_provider",
    "create_assigner",
    "NarratorError",
    "ConfigError",
    "ProviderError",
    "AnalysisConfig",
    "AnalysisRequest",
    "AnalysisResult",
    "NarrativeResult",
    "Area",
    "AreaAssignment",
    "ComponentType",
    "PDFComponent",
    "PDFSection",
]
