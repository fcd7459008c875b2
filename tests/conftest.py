"""
Shared pytest fixtures for narrator tests.

Provides a scripted generation provider so no test talks to a real model.
"""

import pytest


class ScriptedProvider:
    """
    Generation provider that replays canned responses.

    Each call pops the next response; an Exception instance is raised instead
    of returned. Prompts and model overrides are recorded for inspection.
    """

    name = "scripted"

    def __init__(self, *responses):
        self.responses = list(responses)
        self.prompts: list[str] = []
        self.models: list[str | None] = []
        self.healthy = True

    def generate_text(self, prompt, model=None, options=None):
        self.prompts.append(prompt)
        self.models.append(model)
        if not self.responses:
            raise AssertionError("ScriptedProvider ran out of responses")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def health_check(self):
        return self.healthy


@pytest.fixture
def scripted_provider():
    """Factory for ScriptedProvider instances."""
    return ScriptedProvider


_ENV_VARS = (
    "ANTHROPIC_API_KEY",
    "DEEPSEEK_API_KEY",
    "OPENAI_API_KEY",
    "NARRATOR_OPENAI_API_KEY",
    "NARRATOR_PROVIDER",
    "NARRATOR_VERBOSE",
    "OLLAMA_HOST",
)


@pytest.fixture(autouse=True)
def narrator_home(tmp_path, monkeypatch):
    """Isolate config, logs and credentials from the developer's environment."""
    home = tmp_path / "narrator-home"
    monkeypatch.setenv("NARRATOR_HOME", str(home))
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return home
