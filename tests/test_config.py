"""Tests for TOML configuration and config-driven construction."""

import pytest

from narrator.config import (
    CONFIG_FILENAME,
    NarratorConfig,
    ProviderConfig,
    create_assigner,
    create_provider,
    detect_default_provider,
    get_config_dir,
    load_config,
    load_or_create_config,
    save_config,
)
from narrator.errors import ConfigError
from narrator.providers.llm import OllamaGeneration
from narrator.types import Area, PDFSection


def _write(config_dir, text):
    config_dir.mkdir(parents=True, exist_ok=True)
    (config_dir / CONFIG_FILENAME).write_text(text)


class TestConfigDir:

    def test_narrator_home(self, narrator_home):
        assert get_config_dir() == narrator_home

    def test_default(self, monkeypatch, tmp_path):
        monkeypatch.delenv("NARRATOR_HOME")
        monkeypatch.setenv("HOME", str(tmp_path))
        assert get_config_dir() == tmp_path / ".narrator"


class TestDetectDefaultProvider:

    def test_ollama_without_keys(self):
        assert detect_default_provider() == "ollama"

    def test_anthropic_first(self, monkeypatch):
        monkeypatch.setenv("DEEPSEEK_API_KEY", "d")
        monkeypatch.setenv("ANTHROPIC_API_KEY", "a")
        assert detect_default_provider() == "anthropic"

    def test_deepseek(self, monkeypatch):
        monkeypatch.setenv("DEEPSEEK_API_KEY", "d")
        assert detect_default_provider() == "deepseek"


class TestLoadOrCreate:

    def test_creates_file(self, tmp_path):
        config = load_or_create_config(tmp_path / "cfg")
        assert config.exists()
        assert config.provider == "ollama"
        assert set(config.providers) == {"ollama", "anthropic", "deepseek", "openai"}

    def test_round_trip(self, tmp_path):
        config = load_or_create_config(tmp_path)
        config.provider = "deepseek"
        config.providers["deepseek"].model = "deepseek-reasoner"
        config.assignment.min_confidence = 0.5
        config.assignment.keywords["presupuesto anual"] = "Finance"
        save_config(config)

        loaded = load_config(tmp_path)
        assert loaded.provider == "deepseek"
        assert loaded.providers["deepseek"].model == "deepseek-reasoner"
        assert loaded.providers["ollama"].timeout_seconds == 600
        assert loaded.assignment.min_confidence == 0.5
        assert loaded.assignment.keywords == {"presupuesto anual": "Finance"}
        assert loaded.created == config.created

    def test_api_key_from_env_not_saved(self, tmp_path, monkeypatch):
        monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-secret")
        config = load_or_create_config(tmp_path)
        assert config.provider == "anthropic"
        assert "sk-secret" not in config.config_path.read_text()
        assert config.provider_config("anthropic").resolved_api_key() == "sk-secret"


class TestLoadConfig:

    def test_missing(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path)

    def test_partial_file_uses_defaults(self, tmp_path):
        _write(tmp_path, '[narrator]\nprovider = "ollama"\n\n[providers.ollama]\nmodel = "llama3.2"\n')
        config = load_config(tmp_path)
        ollama = config.providers["ollama"]
        assert ollama.model == "llama3.2"
        assert ollama.endpoint == "http://localhost:11434"
        assert ollama.temperature == 0.3
        assert config.providers["anthropic"].model == "claude-sonnet-4-20250514"
        assert config.assignment.min_confidence == 0.7

    @pytest.mark.parametrize("text", [
        "this is = not [toml",
        '[narrator]\nversion = "one"\n',
        "[narrator]\nversion = 99\n",
        '[providers.ollama]\ntemperature = "hot"\n',
        "[providers]\nollama = 3\n",
        "[assignment]\nmin_confidence = 1.5\n",
        "[assignment]\nkeywords = 3\n",
    ])
    def test_invalid(self, tmp_path, text):
        _write(tmp_path, text)
        with pytest.raises(ConfigError):
            load_config(tmp_path)


class TestProviderConfig:

    def test_params_drop_unset(self):
        params = ProviderConfig.default("anthropic").params()
        assert "endpoint" not in params
        assert "api_key" not in params
        assert params["model"] == "claude-sonnet-4-20250514"

    def test_ollama_host_overrides_endpoint(self, monkeypatch):
        monkeypatch.setenv("OLLAMA_HOST", "http://gpu:11434")
        assert ProviderConfig.default("ollama").resolved_endpoint() == "http://gpu:11434"

    def test_env_provider_override(self, tmp_path, monkeypatch):
        config = NarratorConfig(path=tmp_path)
        monkeypatch.setenv("NARRATOR_PROVIDER", "openai")
        assert config.active_provider == "openai"


class TestFactories:

    def test_create_ollama_provider(self, tmp_path):
        config = load_or_create_config(tmp_path)
        config.providers["ollama"].model = "llama3.2"
        provider = create_provider(config)
        assert isinstance(provider, OllamaGeneration)
        assert provider.model == "llama3.2"
        assert provider.timeout_seconds == 600

    def test_unknown_provider(self, tmp_path):
        config = load_or_create_config(tmp_path)
        with pytest.raises(ConfigError, match="Unknown generation provider"):
            create_provider(config, "nope")

    def test_missing_key(self, tmp_path):
        config = load_or_create_config(tmp_path)
        with pytest.raises(ConfigError, match="ANTHROPIC_API_KEY"):
            create_provider(config, "anthropic")

    def test_assigner_uses_config(self, tmp_path):
        config = load_or_create_config(tmp_path)
        config.assignment.min_confidence = 0.3
        config.assignment.keywords = {"tesoreria": "Finanzas"}
        assigner = create_assigner(config)
        section = PDFSection(title="Tesorería")
        assignments = assigner.suggest_assignments([section], [Area(1, "Finanzas")])
        assert [a.area_id for a in assignments] == [1]
        assert assignments[0].confidence == 0.4
