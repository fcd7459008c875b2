"""
Configuration management for narrator.

The configuration is stored as a TOML file (narrator.toml) in the config
directory. It selects the active generation provider, holds per-provider
parameters and the area-assignment threshold and keyword additions.
"""

import os
import tomllib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import tomli_w

from .errors import ConfigError


CONFIG_FILENAME = "narrator.toml"
CONFIG_VERSION = 1

PROVIDER_NAMES = ("ollama", "anthropic", "deepseek", "openai")

# Per-provider defaults
PROVIDER_DEFAULTS: dict[str, dict[str, Any]] = {
    "ollama": {
        "endpoint": "http://localhost:11434",
        "model": "tinyllama:1.1b",
        "max_tokens": 2000,
        "temperature": 0.3,
        "timeout_seconds": 600,
    },
    "anthropic": {
        "model": "claude-sonnet-4-20250514",
        "max_tokens": 4000,
        "temperature": 0.7,
        "timeout_seconds": 60,
    },
    "deepseek": {
        "endpoint": "https://api.deepseek.com/v1/chat/completions",
        "model": "deepseek-chat",
        "max_tokens": 2000,
        "temperature": 0.7,
        "timeout_seconds": 60,
    },
    "openai": {
        "model": "gpt-4.1-mini",
        "max_tokens": 2000,
        "temperature": 0.7,
        "timeout_seconds": 60,
    },
}

# Environment fallbacks for values left out of the file
API_KEY_ENV = {
    "anthropic": "ANTHROPIC_API_KEY",
    "deepseek": "DEEPSEEK_API_KEY",
    "openai": "OPENAI_API_KEY",
}
ENDPOINT_ENV = {
    "ollama": "OLLAMA_HOST",
}


def get_config_dir() -> Path:
    """Config directory: NARRATOR_HOME, else ~/.narrator."""
    home = os.environ.get("NARRATOR_HOME")
    if home:
        return Path(home).expanduser()
    return Path.home() / ".narrator"


@dataclass
class ProviderConfig:
    """Configuration for a single generation provider."""
    name: str
    endpoint: str | None = None
    api_key: str | None = None
    model: str | None = None
    max_tokens: int = 2000
    temperature: float = 0.7
    timeout_seconds: float = 60

    @classmethod
    def default(cls, name: str) -> "ProviderConfig":
        return cls(name=name, **PROVIDER_DEFAULTS.get(name, {}))

    def resolved_api_key(self) -> str | None:
        env = API_KEY_ENV.get(self.name)
        return self.api_key or (os.environ.get(env) if env else None)

    def resolved_endpoint(self) -> str | None:
        env = ENDPOINT_ENV.get(self.name)
        if env and os.environ.get(env):
            return os.environ[env]
        return self.endpoint

    def params(self) -> dict[str, Any]:
        """Constructor kwargs for the registered provider class."""
        params = {
            "model": self.model,
            "endpoint": self.resolved_endpoint(),
            "api_key": self.resolved_api_key(),
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "timeout_seconds": self.timeout_seconds,
        }
        return {k: v for k, v in params.items() if v is not None}


@dataclass
class AssignmentConfig:
    """Area-assignment settings."""
    min_confidence: float = 0.7
    # Extra term -> area entries merged over the built-in dictionary
    keywords: dict[str, str] = field(default_factory=dict)


@dataclass
class NarratorConfig:
    """Complete narrator configuration."""
    path: Path
    version: int = CONFIG_VERSION
    created: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    provider: str = "ollama"
    providers: dict[str, ProviderConfig] = field(
        default_factory=lambda: {name: ProviderConfig.default(name) for name in PROVIDER_NAMES}
    )
    assignment: AssignmentConfig = field(default_factory=AssignmentConfig)

    @property
    def config_path(self) -> Path:
        """Path to the TOML config file."""
        return self.path / CONFIG_FILENAME

    def exists(self) -> bool:
        """Check if config file exists."""
        return self.config_path.exists()

    @property
    def active_provider(self) -> str:
        """Provider in effect: NARRATOR_PROVIDER overrides the file."""
        return os.environ.get("NARRATOR_PROVIDER") or self.provider

    def provider_config(self, name: str | None = None) -> ProviderConfig:
        name = name or self.active_provider
        return self.providers.get(name) or ProviderConfig.default(name)


def detect_default_provider() -> str:
    """
    Pick a default provider for the current environment.

    Priority:
    1. Anthropic (if ANTHROPIC_API_KEY is set)
    2. DeepSeek (if DEEPSEEK_API_KEY is set)
    3. Ollama (local, no key)
    """
    if os.environ.get("ANTHROPIC_API_KEY"):
        return "anthropic"
    if os.environ.get("DEEPSEEK_API_KEY"):
        return "deepseek"
    return "ollama"


def create_default_config(config_dir: Path) -> NarratorConfig:
    """Create a new config with auto-detected defaults."""
    return NarratorConfig(path=config_dir, provider=detect_default_provider())


def _number(section: dict, key: str, default: float, where: str) -> float:
    value = section.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"[{where}] {key} must be a number, got {value!r}")
    return value


def _parse_provider(name: str, section: Any) -> ProviderConfig:
    if not isinstance(section, dict):
        raise ConfigError(f"[providers.{name}] must be a table")
    base = ProviderConfig.default(name)
    where = f"providers.{name}"
    return ProviderConfig(
        name=name,
        endpoint=section.get("endpoint", base.endpoint),
        api_key=section.get("api_key", base.api_key),
        model=section.get("model", base.model),
        max_tokens=int(_number(section, "max_tokens", base.max_tokens, where)),
        temperature=float(_number(section, "temperature", base.temperature, where)),
        timeout_seconds=float(_number(section, "timeout_seconds", base.timeout_seconds, where)),
    )


def load_config(config_dir: Path) -> NarratorConfig:
    """
    Load configuration from a config directory.

    Raises:
        FileNotFoundError: If config doesn't exist
        ConfigError: If config is invalid
    """
    config_path = config_dir / CONFIG_FILENAME

    if not config_path.exists():
        raise FileNotFoundError(f"Config not found: {config_path}")

    try:
        with open(config_path, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid TOML in {config_path}: {e}") from e

    header = data.get("narrator", {})
    version = header.get("version", 1)
    if not isinstance(version, int):
        raise ConfigError(f"[narrator] version must be an integer, got {version!r}")
    if version > CONFIG_VERSION:
        raise ConfigError(f"Config version {version} is newer than supported ({CONFIG_VERSION})")

    providers = {name: ProviderConfig.default(name) for name in PROVIDER_NAMES}
    for name, section in data.get("providers", {}).items():
        providers[name] = _parse_provider(name, section)

    raw_assignment = data.get("assignment", {})
    min_confidence = _number(raw_assignment, "min_confidence", 0.7, "assignment")
    if not 0.0 <= min_confidence <= 1.0:
        raise ConfigError(f"[assignment] min_confidence must be between 0 and 1, got {min_confidence}")
    keywords = raw_assignment.get("keywords", {})
    if not isinstance(keywords, dict):
        raise ConfigError("[assignment.keywords] must be a table of term = area")

    return NarratorConfig(
        path=config_dir,
        version=version,
        created=header.get("created", ""),
        provider=header.get("provider", "ollama"),
        providers=providers,
        assignment=AssignmentConfig(
            min_confidence=float(min_confidence),
            keywords={str(k): str(v) for k, v in keywords.items()},
        ),
    )


def save_config(config: NarratorConfig) -> None:
    """
    Save configuration to the config directory.

    Creates the directory if it doesn't exist. Unset values (and API keys
    taken from the environment) are not written.
    """
    config.path.mkdir(parents=True, exist_ok=True)

    def provider_to_dict(p: ProviderConfig) -> dict:
        d = {
            "endpoint": p.endpoint,
            "api_key": p.api_key,
            "model": p.model,
            "max_tokens": p.max_tokens,
            "temperature": p.temperature,
            "timeout_seconds": p.timeout_seconds,
        }
        return {k: v for k, v in d.items() if v is not None}

    data = {
        "narrator": {
            "version": config.version,
            "created": config.created,
            "provider": config.provider,
        },
        "providers": {name: provider_to_dict(p) for name, p in config.providers.items()},
        "assignment": {
            "min_confidence": config.assignment.min_confidence,
            "keywords": dict(config.assignment.keywords),
        },
    }

    with open(config.config_path, "wb") as f:
        tomli_w.dump(data, f)


def load_or_create_config(config_dir: Path | None = None) -> NarratorConfig:
    """
    Load existing config or create a new one with defaults.

    This is the main entry point for config management.
    """
    config_dir = config_dir or get_config_dir()
    if (config_dir / CONFIG_FILENAME).exists():
        return load_config(config_dir)
    config = create_default_config(config_dir)
    save_config(config)
    return config


def create_provider(config: NarratorConfig, name: str | None = None, logger=None):
    """
    Instantiate the configured generation provider.

    Raises:
        ConfigError: Unknown provider name or missing credentials
    """
    from .providers import get_registry

    name = name or config.active_provider
    params = config.provider_config(name).params()
    if logger is not None:
        params["logger"] = logger
    try:
        return get_registry().create_generation(name, params)
    except ValueError as e:
        raise ConfigError(str(e)) from e


def create_assigner(config: NarratorConfig, logger=None):
    """AreaAssigner using the configured threshold and keyword additions."""
    from .sections import KEYWORD_AREA_MAP, AreaAssigner

    keyword_map = {**KEYWORD_AREA_MAP, **config.assignment.keywords}
    return AreaAssigner(
        keyword_map=keyword_map,
        min_confidence=config.assignment.min_confidence,
        logger=logger,
    )
