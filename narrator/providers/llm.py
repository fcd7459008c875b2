"""
Text-generation providers: local Ollama, Anthropic messages, OpenAI-style chat.

Every provider makes exactly one request per call. Transport failures raise
ProviderError and are never retried; the SDK clients are built with
``max_retries=0`` so they don't retry behind our back either.
"""

import json
import logging
import os

import requests

from ..errors import ProviderError
from ..types import GenerationOptions
from .base import get_registry, resolve_options
from .ollama_utils import ollama_base_url, ollama_list_models


def _sdk_error_body(exc) -> str:
    """Best-effort error body from an anthropic/openai APIStatusError."""
    body = getattr(exc, "body", None)
    if body is None:
        return getattr(exc, "message", None) or str(exc)
    if isinstance(body, str):
        return body
    try:
        return json.dumps(body)
    except (TypeError, ValueError):
        return str(body)


# -----------------------------------------------------------------------------
# Ollama
# -----------------------------------------------------------------------------

class OllamaGeneration:
    """
    Generation provider using Ollama's local /api/generate endpoint.

    Requests JSON output (``format: "json"``) and clamps temperature to 0.3
    so local models stay close to the requested structure.

    Respects OLLAMA_HOST env var (default: http://localhost:11434).
    """

    name = "ollama"
    MAX_TEMPERATURE = 0.3

    def __init__(
        self,
        model: str = "tinyllama:1.1b",
        endpoint: str | None = None,
        api_key: str | None = None,
        max_tokens: int = 2000,
        temperature: float = 0.3,
        timeout_seconds: float = 600,
        logger: logging.Logger | None = None,
    ):
        # api_key accepted for a uniform config shape; Ollama has no auth
        self.model = model
        self.base_url = ollama_base_url(endpoint)
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.timeout_seconds = timeout_seconds
        self._log = logger or logging.getLogger(__name__)

    def generate_text(
        self,
        prompt: str,
        model: str | None = None,
        options: GenerationOptions | None = None,
    ) -> str:
        """Generate text using Ollama. Raises ProviderError on transport failure."""
        opts = resolve_options(
            options, model=model, default_model=self.model,
            max_tokens=self.max_tokens, temperature=self.temperature,
            timeout_seconds=self.timeout_seconds,
        )
        payload = {
            "model": opts.model,
            "prompt": prompt,
            "stream": False,
            "format": "json",
            "options": {
                "temperature": min(opts.temperature, self.MAX_TEMPERATURE),
                "top_p": 0.9,
                "repeat_penalty": 1.1,
                "num_predict": opts.max_tokens,
            },
        }

        self._log.debug("ollama generate: model=%s prompt_chars=%d", opts.model, len(prompt))
        try:
            response = requests.post(
                f"{self.base_url}/api/generate",
                json=payload,
                timeout=opts.timeout_seconds,
            )
        except requests.Timeout as e:
            self._log.error("ollama request timed out after %ss", opts.timeout_seconds)
            raise ProviderError(self.name, None, f"timed out after {opts.timeout_seconds}s") from e
        except requests.RequestException as e:
            self._log.error("ollama request failed: %s", e)
            raise ProviderError(self.name, None, str(e)) from e

        if not response.ok:
            self._log.error("ollama returned HTTP %s (model=%s)", response.status_code, opts.model)
            raise ProviderError(self.name, response.status_code, response.text or "")

        try:
            data = response.json()
        except ValueError as e:
            raise ProviderError(self.name, response.status_code, "response was not JSON") from e

        text = data.get("response") if isinstance(data, dict) else None
        if not isinstance(text, str) or not text:
            self._log.error("ollama returned an empty response (model=%s)", opts.model)
            raise ProviderError(self.name, response.status_code, "empty response")
        return text

    def health_check(self) -> bool:
        """True if the Ollama server answers /api/tags."""
        try:
            response = requests.get(f"{self.base_url}/api/tags", timeout=5)
        except requests.RequestException as e:
            self._log.warning("ollama health check failed: %s", e)
            return False
        return response.ok

    def list_models(self) -> list[str]:
        """Names of locally installed models."""
        return ollama_list_models(self.base_url)


# -----------------------------------------------------------------------------
# Anthropic
# -----------------------------------------------------------------------------

class AnthropicGeneration:
    """
    Generation provider using Anthropic's messages API.

    Authentication (checked in priority order):
    1. api_key parameter (if provided)
    2. ANTHROPIC_API_KEY
    """

    name = "anthropic"

    def __init__(
        self,
        model: str = "claude-sonnet-4-20250514",
        endpoint: str | None = None,
        api_key: str | None = None,
        max_tokens: int = 4000,
        temperature: float = 0.7,
        timeout_seconds: float = 60,
        logger: logging.Logger | None = None,
    ):
        try:
            from anthropic import Anthropic
        except ImportError:
            raise RuntimeError("AnthropicGeneration requires 'anthropic' library")

        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.timeout_seconds = timeout_seconds
        self._log = logger or logging.getLogger(__name__)

        key = api_key or os.environ.get("ANTHROPIC_API_KEY")
        if not key:
            raise ValueError(
                "Anthropic authentication required. Set ANTHROPIC_API_KEY "
                "or api_key in narrator.toml"
            )

        client_kwargs = {"api_key": key, "max_retries": 0, "timeout": timeout_seconds}
        if endpoint:
            client_kwargs["base_url"] = endpoint
        self._client = Anthropic(**client_kwargs)

    def generate_text(
        self,
        prompt: str,
        model: str | None = None,
        options: GenerationOptions | None = None,
    ) -> str:
        """Generate text using Anthropic. Raises ProviderError on transport failure."""
        import anthropic

        opts = resolve_options(
            options, model=model, default_model=self.model,
            max_tokens=self.max_tokens, temperature=self.temperature,
            timeout_seconds=self.timeout_seconds,
        )
        self._log.debug("anthropic generate: model=%s prompt_chars=%d", opts.model, len(prompt))
        try:
            response = self._client.messages.create(
                model=opts.model,
                max_tokens=opts.max_tokens,
                temperature=opts.temperature,
                messages=[{"role": "user", "content": prompt}],
                timeout=opts.timeout_seconds,
            )
        except anthropic.APIStatusError as e:
            self._log.error("anthropic returned HTTP %s (model=%s)", e.status_code, opts.model)
            raise ProviderError(self.name, e.status_code, _sdk_error_body(e)) from e
        except anthropic.APIError as e:
            # Connection failures and timeouts carry no status
            self._log.error("anthropic request failed: %s", e)
            raise ProviderError(self.name, None, str(e)) from e

        text = None
        if response.content:
            text = getattr(response.content[0], "text", None)
        if not text:
            self._log.error("anthropic returned an empty response (model=%s)", opts.model)
            raise ProviderError(self.name, None, "empty response")
        return text

    def health_check(self) -> bool:
        """Send a minimal prompt; True if it round-trips."""
        try:
            self.generate_text("Hello", options=GenerationOptions(max_tokens=10))
        except Exception as e:
            self._log.warning("anthropic health check failed: %s", e)
            return False
        return True


# -----------------------------------------------------------------------------
# OpenAI-style chat completions (DeepSeek, OpenAI)
# -----------------------------------------------------------------------------

class ChatCompletionGeneration:
    """
    Generation provider for OpenAI-compatible chat-completion APIs.

    Defaults target DeepSeek. The endpoint may be given either as the API
    base (``https://api.deepseek.com/v1``) or as the full
    ``/chat/completions`` URL; the suffix is stripped for the SDK.

    Requires: DEEPSEEK_API_KEY environment variable (or api_key).
    """

    name = "deepseek"
    DEFAULT_MODEL = "deepseek-chat"
    DEFAULT_BASE_URL: str | None = "https://api.deepseek.com/v1"
    API_KEY_ENV: tuple[str, ...] = ("DEEPSEEK_API_KEY",)

    def __init__(
        self,
        model: str | None = None,
        endpoint: str | None = None,
        api_key: str | None = None,
        max_tokens: int = 2000,
        temperature: float = 0.7,
        timeout_seconds: float = 60,
        logger: logging.Logger | None = None,
    ):
        try:
            from openai import OpenAI
        except ImportError:
            raise RuntimeError(f"{type(self).__name__} requires 'openai' library")

        self.model = model or self.DEFAULT_MODEL
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.timeout_seconds = timeout_seconds
        self._log = logger or logging.getLogger(__name__)

        key = api_key or next(
            (os.environ[v] for v in self.API_KEY_ENV if os.environ.get(v)), None
        )
        if not key:
            raise ValueError(
                f"{self.name} API key required. Set {' or '.join(self.API_KEY_ENV)}"
            )

        self.base_url = self._api_base(endpoint or self.DEFAULT_BASE_URL)
        client_kwargs = {"api_key": key, "max_retries": 0, "timeout": timeout_seconds}
        if self.base_url:
            client_kwargs["base_url"] = self.base_url
        self._client = OpenAI(**client_kwargs)

    @staticmethod
    def _api_base(endpoint: str | None) -> str | None:
        if not endpoint:
            return None
        url = endpoint.rstrip("/")
        if url.endswith("/chat/completions"):
            url = url[: -len("/chat/completions")]
        return url

    def _completion_kwargs(self, model: str, max_tokens: int, temperature: float) -> dict:
        """Return model-appropriate kwargs for token limit and temperature."""
        # GPT-5+ and reasoning models use a different API surface:
        # - max_completion_tokens instead of max_tokens
        # - temperature must be omitted (only default=1 supported)
        if model.startswith(("gpt-5", "o3", "o4")):
            return {"max_completion_tokens": max_tokens}
        return {"max_tokens": max_tokens, "temperature": temperature}

    def generate_text(
        self,
        prompt: str,
        model: str | None = None,
        options: GenerationOptions | None = None,
    ) -> str:
        """Generate text via chat completions. Raises ProviderError on transport failure."""
        import openai

        opts = resolve_options(
            options, model=model, default_model=self.model,
            max_tokens=self.max_tokens, temperature=self.temperature,
            timeout_seconds=self.timeout_seconds,
        )
        self._log.debug("%s generate: model=%s prompt_chars=%d", self.name, opts.model, len(prompt))
        try:
            response = self._client.chat.completions.create(
                model=opts.model,
                messages=[{"role": "user", "content": prompt}],
                timeout=opts.timeout_seconds,
                **self._completion_kwargs(opts.model, opts.max_tokens, opts.temperature),
            )
        except openai.APIStatusError as e:
            self._log.error("%s returned HTTP %s (model=%s)", self.name, e.status_code, opts.model)
            raise ProviderError(self.name, e.status_code, _sdk_error_body(e)) from e
        except openai.APIError as e:
            self._log.error("%s request failed: %s", self.name, e)
            raise ProviderError(self.name, None, str(e)) from e

        text = None
        if response.choices:
            text = response.choices[0].message.content
        if not text:
            self._log.error("%s returned an empty response (model=%s)", self.name, opts.model)
            raise ProviderError(self.name, None, "empty response")
        return text

    def health_check(self) -> bool:
        """True if the API answers a model listing."""
        try:
            self._client.models.list()
        except Exception as e:
            self._log.warning("%s health check failed: %s", self.name, e)
            return False
        return True


class OpenAIGeneration(ChatCompletionGeneration):
    """
    Chat-completion provider pointed at OpenAI itself.

    Requires: NARRATOR_OPENAI_API_KEY or OPENAI_API_KEY environment variable.
    """

    name = "openai"
    DEFAULT_MODEL = "gpt-4.1-mini"
    DEFAULT_BASE_URL = None
    API_KEY_ENV = ("NARRATOR_OPENAI_API_KEY", "OPENAI_API_KEY")


# Register providers
_registry = get_registry()
_registry.register_generation("ollama", OllamaGeneration)
_registry.register_generation("anthropic", AnthropicGeneration)
_registry.register_generation("deepseek", ChatCompletionGeneration)
_registry.register_generation("openai", OpenAIGeneration)
