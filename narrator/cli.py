"""
CLI interface for report narration.

Usage:
    narrator analyze sales.csv --narrative
    narrator narrate analysis.json
    narrator assign sections.json areas.json
    narrator classify report.txt
"""

import csv
import io
import json
import os
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Optional

import typer
from typing_extensions import Annotated

from .analysis import Analyzer
from .config import (
    PROVIDER_NAMES,
    NarratorConfig,
    create_assigner,
    create_provider,
    get_config_dir,
    load_or_create_config,
    save_config,
)
from .errors import NarratorError, log_exception
from .logging_config import configure_ops_log, configure_quiet_mode, enable_debug_mode
from .narrative import NarrativeSynthesizer
from .normalizer import normalize
from .sections import (
    DEFAULT_AREAS,
    SectionIdentifier,
    build_sections,
    classify_components,
    document_title,
)
from .types import AnalysisConfig, AnalysisRequest, Area, PDFSection


# Configure quiet mode by default (suppress verbose library output)
# Set NARRATOR_VERBOSE=1 to enable debug mode via environment
if os.environ.get("NARRATOR_VERBOSE") == "1":
    enable_debug_mode()
else:
    configure_quiet_mode(quiet=True)


def _version_callback(value: bool):
    if value:
        from importlib.metadata import version
        print(f"narrator {version('report-narrator')}")
        raise typer.Exit()


def _verbose_callback(value: bool):
    if value:
        enable_debug_mode()


# Global state for CLI options
_store_override: Optional[Path] = None
_provider_override: Optional[str] = None
_ops_handler = None


def _store_callback(value: Optional[Path]):
    global _store_override
    if value is not None:
        _store_override = value


def _provider_callback(value: Optional[str]):
    global _provider_override
    if value is not None:
        _provider_override = value


app = typer.Typer(
    name="narrator",
    help="AI-generated analyses, narratives and area assignments for business reports.",
    no_args_is_help=True,
    rich_markup_mode=None,
)


@app.callback()
def main_callback(
    verbose: Annotated[bool, typer.Option(
        "--verbose", "-v",
        help="Enable debug-level logging to stderr",
        callback=_verbose_callback,
        is_eager=True,
    )] = False,
    provider: Annotated[Optional[str], typer.Option(
        "--provider", "-p",
        help="Generation provider to use (ollama, anthropic, deepseek, openai)",
        callback=_provider_callback,
        is_eager=True,
    )] = None,
    store: Annotated[Optional[Path], typer.Option(
        "--store", "-s",
        envvar="NARRATOR_HOME",
        help="Config directory (default: ~/.narrator)",
        callback=_store_callback,
        is_eager=True,
    )] = None,
    version: Annotated[Optional[bool], typer.Option(
        "--version",
        help="Show version and exit",
        callback=_version_callback,
        is_eager=True,
    )] = None,
):
    """AI-generated analyses, narratives and area assignments for business reports."""


# -----------------------------------------------------------------------------
# Common Options
# -----------------------------------------------------------------------------

ModelOption = Annotated[
    Optional[str],
    typer.Option(
        "--model", "-m",
        help="Model override for this call"
    )
]


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------

def _get_config() -> NarratorConfig:
    global _ops_handler
    config_dir = Path(_store_override).expanduser() if _store_override else get_config_dir()
    config = load_or_create_config(config_dir)
    if _ops_handler is None:
        _ops_handler = configure_ops_log(config_dir)
    return config


def _get_provider(config: NarratorConfig):
    return create_provider(config, _provider_override)


@contextmanager
def _handle_errors(command: str):
    """Clean message plus a logged traceback for configuration and transport failures."""
    try:
        yield
    except (NarratorError, RuntimeError, OSError) as e:
        log_path = log_exception(e, context=f"narrator {command}")
        typer.echo(f"Error: {e}", err=True)
        typer.echo(f"Details logged to {log_path}", err=True)
        raise typer.Exit(1)


def _echo_json(value: Any) -> None:
    typer.echo(json.dumps(value, indent=2, ensure_ascii=False))


def _read_text(path: Path) -> str:
    if str(path) == "-":
        return sys.stdin.read()
    try:
        return path.read_text(encoding="utf-8")
    except OSError as e:
        raise typer.BadParameter(f"Cannot read {path}: {e}")


def _read_json(path: Path) -> Any:
    try:
        return json.loads(_read_text(path))
    except json.JSONDecodeError as e:
        raise typer.BadParameter(f"{path} is not valid JSON: {e}")


def _rows_from_json(data: Any) -> tuple[list[list[Any]], dict]:
    """Rows (and optional config) from a JSON document.

    Accepts a list of rows, a list of objects (keys become the header), or
    ``{"data": [...], "config": {...}}``.
    """
    config: dict = {}
    if isinstance(data, dict):
        config = data.get("config") or {}
        data = data.get("data", [])
    if not isinstance(data, list):
        raise typer.BadParameter("Expected a list of rows")
    if data and all(isinstance(r, dict) for r in data):
        header = list(dict.fromkeys(k for r in data for k in r))
        return [header] + [[r.get(k) for k in header] for r in data], config
    rows = [r for r in data if isinstance(r, list)]
    return rows, config


def _load_rows(path: Path) -> tuple[list[list[Any]], dict]:
    text = _read_text(path)
    if path.suffix.lower() == ".json" or text.lstrip().startswith(("[", "{")):
        try:
            return _rows_from_json(json.loads(text))
        except json.JSONDecodeError as e:
            raise typer.BadParameter(f"{path} is not valid JSON: {e}")
    return [row for row in csv.reader(io.StringIO(text)) if row], {}


def _parse_assignments(values: list[str]) -> dict[str, str]:
    result = {}
    for item in values:
        if "=" not in item:
            raise typer.BadParameter(f"Expected key=value, got {item!r}")
        key, _, value = item.partition("=")
        result[key.strip()] = value.strip()
    return result


# -----------------------------------------------------------------------------
# Commands
# -----------------------------------------------------------------------------

@app.command()
def analyze(
    data: Annotated[Path, typer.Argument(help="CSV or JSON rows ('-' for stdin)")],
    narrative: Annotated[bool, typer.Option(
        "--narrative", "-n",
        help="Also project a narrative from the analysis (no extra model call)"
    )] = False,
    analysis_type: Annotated[Optional[str], typer.Option(
        "--type", help="Analysis type (default: comprehensive)"
    )] = None,
    language: Annotated[Optional[str], typer.Option(
        "--language", "-l", help="Output language (default: es)"
    )] = None,
    tone: Annotated[Optional[str], typer.Option(
        "--tone", help="Narrative tone (default: professional)"
    )] = None,
    max_rows: Annotated[int, typer.Option(
        "--max-rows", help="Rows shown to the model"
    )] = 5,
    model: ModelOption = None,
):
    """
    Analyze tabular data and print the AnalysisResult as JSON.

    \b
    Examples:
        narrator analyze sales.csv
        narrator analyze sales.json --narrative
        narrator -p anthropic analyze sales.csv --language en
    """
    rows, file_config = _load_rows(data)
    config = AnalysisConfig.from_dict(file_config)
    if analysis_type:
        config.analysis_type = analysis_type
    if language:
        config.language = language
    if tone:
        config.tone = tone

    with _handle_errors("analyze"):
        cfg = _get_config()
        analyzer = Analyzer(_get_provider(cfg), max_rows=max_rows)
        result = analyzer.analyze(AnalysisRequest(data=rows, config=config), model=model)

    if narrative:
        projected = NarrativeSynthesizer().from_analysis(result)
        _echo_json({"analysis": result.to_dict(), "narrative": projected.to_dict()})
    else:
        _echo_json(result.to_dict())


@app.command()
def narrate(
    analysis: Annotated[Path, typer.Argument(help="AnalysisResult JSON ('-' for stdin)")],
    use_model: Annotated[bool, typer.Option(
        "--model-driven", "-M",
        help="Ask the model to write the narrative instead of projecting it"
    )] = False,
    model: ModelOption = None,
):
    """
    Turn an AnalysisResult into a NarrativeResult.

    By default the narrative is projected directly from the analysis with no
    model call. Use --model-driven for a generated narrative.
    """
    data = _read_json(analysis)
    if isinstance(data, dict) and isinstance(data.get("analysis"), dict):
        data = data["analysis"]
    result = normalize(data)

    if not use_model:
        _echo_json(NarrativeSynthesizer().from_analysis(result).to_dict())
        return

    with _handle_errors("narrate"):
        cfg = _get_config()
        synthesizer = NarrativeSynthesizer(_get_provider(cfg))
        _echo_json(synthesizer.generate(result, model=model).to_dict())


@app.command()
def customize(
    narrative_id: Annotated[str, typer.Argument(help="Narrative to customize")],
    changes: Annotated[list[str], typer.Option(
        "--set",
        help="Modification as key=value (repeatable)"
    )],
    reviewer: Annotated[Optional[str], typer.Option("--reviewer", help="Reviewer name")] = None,
    comments: Annotated[Optional[str], typer.Option("--comments", help="Reviewer comments")] = None,
    model: ModelOption = None,
):
    """
    Apply modifications to a narrative through the model.

    \b
    Example:
        narrator customize 42 --set tone=formal --set length=short
    """
    modifications = _parse_assignments(changes)
    with _handle_errors("customize"):
        cfg = _get_config()
        synthesizer = NarrativeSynthesizer(_get_provider(cfg))
        result = synthesizer.customize(narrative_id, modifications, reviewer, comments, model=model)
    _echo_json(result.to_dict())


@app.command()
def assign(
    sections: Annotated[Path, typer.Argument(help="Sections JSON (list or {\"sections\": [...]})")],
    areas: Annotated[Optional[Path], typer.Argument(
        help="Area catalog JSON [{\"id\": 1, \"name\": \"Finance\"}] (default: built-in areas)"
    )] = None,
    min_confidence: Annotated[Optional[float], typer.Option(
        "--min-confidence", help="Drop suggestions below this confidence"
    )] = None,
    limit: Annotated[Optional[int], typer.Option(
        "--limit", "-n", help="Maximum suggestions per section"
    )] = None,
):
    """Suggest owning areas for report sections. Prints AreaAssignment JSON."""
    raw = _read_json(sections)
    if isinstance(raw, dict):
        raw = raw.get("sections", [])
    if not isinstance(raw, list):
        raise typer.BadParameter("Expected a list of sections")
    parsed = [PDFSection.from_dict(s) for s in raw if isinstance(s, dict)]

    catalog = list(DEFAULT_AREAS)
    if areas is not None:
        raw_areas = _read_json(areas)
        try:
            catalog = [Area.from_dict(a) for a in raw_areas]
        except (KeyError, TypeError, ValueError) as e:
            raise typer.BadParameter(f"Invalid area catalog: {e}")

    if min_confidence is not None and not 0.0 <= min_confidence <= 1.0:
        raise typer.BadParameter("--min-confidence must be between 0 and 1")

    with _handle_errors("assign"):
        assigner = create_assigner(_get_config())
    assignments = assigner.suggest_assignments(parsed, catalog, min_confidence=min_confidence, limit=limit)
    _echo_json([a.to_dict() for a in assignments])


@app.command()
def classify(
    text_file: Annotated[Path, typer.Argument(help="Extracted report text ('-' for stdin)")],
    page: Annotated[int, typer.Option("--page", help="Page number for the components")] = 0,
    pages: Annotated[bool, typer.Option(
        "--pages",
        help="Split on form feeds and build one section per page"
    )] = False,
    identify: Annotated[bool, typer.Option(
        "--identify",
        help="Ask the model to identify sections"
    )] = False,
    model: ModelOption = None,
):
    """
    Classify report text into typed components or sections.

    \b
    Examples:
        narrator classify report.txt            # Components of the text
        narrator classify report.txt --pages    # Sections, one per page
        narrator classify report.txt --identify # Model-identified sections
    """
    text = _read_text(text_file)
    title = document_title(text)

    if identify:
        with _handle_errors("classify"):
            cfg = _get_config()
            found = SectionIdentifier(_get_provider(cfg)).identify_sections(text, model=model)
        _echo_json({"title": title, "sections": [s.to_dict() for s in found]})
    elif pages:
        raw_pages = [(i, chunk) for i, chunk in enumerate(text.split("\f"), start=1)]
        _echo_json({"title": title, "sections": [s.to_dict() for s in build_sections(raw_pages)]})
    else:
        components = classify_components(text, page)
        _echo_json({"title": title, "components": [c.to_dict() for c in components]})


@app.command()
def health(
    all_providers: Annotated[bool, typer.Option(
        "--all", "-a", help="Check every configured provider"
    )] = False,
):
    """Check provider reachability. Exits 1 if any checked provider is down."""
    with _handle_errors("health"):
        cfg = _get_config()
    names = list(cfg.providers) if all_providers else [_provider_override or cfg.active_provider]

    healthy = True
    for name in names:
        try:
            provider = create_provider(cfg, name)
        except (NarratorError, RuntimeError) as e:
            typer.echo(f"{name}: not configured ({e})")
            if not all_providers:
                healthy = False
            continue
        ok = provider.health_check()
        typer.echo(f"{name}: {'ok' if ok else 'unreachable'}")
        healthy = healthy and ok
        if ok and hasattr(provider, "list_models"):
            try:
                models = provider.list_models()
            except RuntimeError:
                continue
            typer.echo(f"  models: {', '.join(models) if models else '(none)'}")

    if not healthy:
        raise typer.Exit(1)


@app.command()
def config(
    path: Annotated[Optional[str], typer.Argument(
        help="Config value to get (e.g. 'file', 'provider', 'providers.ollama.model')"
    )] = None,
    set_provider: Annotated[Optional[str], typer.Option(
        "--set-provider", help="Make this the default provider and save"
    )] = None,
):
    """
    Show configuration. Optionally get a specific value by path.

    \b
    Examples:
        narrator config                          # Show all config
        narrator config file                     # Config file location
        narrator config providers.ollama.model   # One value
        narrator config --set-provider anthropic
    """
    with _handle_errors("config"):
        cfg = _get_config()
        if set_provider:
            if set_provider not in PROVIDER_NAMES:
                raise typer.BadParameter(
                    f"Unknown provider {set_provider!r}. Choose from: {', '.join(PROVIDER_NAMES)}"
                )
            cfg.provider = set_provider
            save_config(cfg)

    view = {
        "file": str(cfg.config_path),
        "provider": cfg.active_provider,
        "providers": {
            name: {
                "endpoint": p.endpoint,
                "model": p.model,
                "max_tokens": p.max_tokens,
                "temperature": p.temperature,
                "timeout_seconds": p.timeout_seconds,
                "api_key": "set" if p.resolved_api_key() else None,
            }
            for name, p in cfg.providers.items()
        },
        "assignment": {
            "min_confidence": cfg.assignment.min_confidence,
            "keywords": dict(cfg.assignment.keywords),
        },
    }

    if path:
        value: Any = view
        for part in path.split("."):
            if not isinstance(value, dict) or part not in value:
                typer.echo(f"Error: Unknown config path: {path}", err=True)
                raise typer.Exit(1)
            value = value[part]
        if isinstance(value, (dict, list)):
            _echo_json(value)
        else:
            typer.echo("" if value is None else str(value))
        return

    _echo_json(view)


def main():
    try:
        app()
    except SystemExit:
        raise  # Let typer handle exit codes
    except KeyboardInterrupt:
        raise SystemExit(130)  # Standard exit code for Ctrl+C
    except Exception as e:
        # Log full traceback to file, show clean message to user
        log_path = log_exception(e, context="narrator CLI")
        typer.echo(f"Error: {e}", err=True)
        typer.echo(f"Details logged to {log_path}", err=True)
        raise SystemExit(1)


if __name__ == "__main__":
    main()
