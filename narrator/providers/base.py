"""
Base provider protocol and registry.

Text-generation backends implement ``GenerationProvider`` structurally; no
explicit inheritance required.
"""

from typing import Protocol, runtime_checkable

from ..types import GenerationOptions

__all__ = [
    "GenerationOptions",
    "GenerationProvider",
    "ProviderRegistry",
    "get_registry",
]


# -----------------------------------------------------------------------------
# Text Generation
# -----------------------------------------------------------------------------

@runtime_checkable
class GenerationProvider(Protocol):
    """
    Turns a prompt into raw model text.

    Each backend hides its own request/response envelope, authentication and
    timeout policy behind this interface. The returned text is whatever the
    model produced: prose, fenced JSON, or JSON. Recovering structure from it
    is the caller's job (see ``narrator.extraction``).

    Example implementation:
        class EchoGeneration:
            name = "echo"

            def generate_text(self, prompt, model=None, options=None):
                return prompt

            def health_check(self):
                return True
    """

    name: str

    def generate_text(
        self,
        prompt: str,
        model: str | None = None,
        options: GenerationOptions | None = None,
    ) -> str:
        """
        Generate text for a single prompt.

        Args:
            prompt: The full prompt
            model: Model override for this call
            options: Per-call overrides for max_tokens, temperature, timeout

        Returns:
            Raw model text

        Raises:
            ProviderError: Provider unreachable, timed out, or returned a
                non-success status. Never retried.
        """
        ...

    def health_check(self) -> bool:
        """
        Check whether the provider is reachable. Never raises.

        Returns:
            True if a trivial request succeeds
        """
        ...


def resolve_options(
    options: GenerationOptions | None,
    *,
    model: str | None,
    default_model: str,
    max_tokens: int,
    temperature: float,
    timeout_seconds: float,
) -> GenerationOptions:
    """Merge per-call options over a provider's configured defaults."""
    options = options or GenerationOptions()
    return GenerationOptions(
        model=model or options.model or default_model,
        max_tokens=options.max_tokens if options.max_tokens is not None else max_tokens,
        temperature=options.temperature if options.temperature is not None else temperature,
        timeout_seconds=(
            options.timeout_seconds if options.timeout_seconds is not None else timeout_seconds
        ),
    )


# -----------------------------------------------------------------------------
# Provider Registry
# -----------------------------------------------------------------------------

class ProviderRegistry:
    """
    Registry for discovering and instantiating providers.

    Providers are registered by name and can be instantiated from configuration.
    This lets narrator.toml select a backend by name rather than requiring
    code changes.

    Example:
        registry = ProviderRegistry()
        registry.register_generation("ollama", OllamaGeneration)

        # Later, from config:
        provider = registry.create_generation("ollama", {"model": "llama3.2"})
    """

    def __init__(self):
        self._generation_providers: dict[str, type] = {}
        self._lazy_loaded = False

    def _ensure_providers_loaded(self) -> None:
        """Lazily load all provider modules."""
        if self._lazy_loaded:
            return

        self._lazy_loaded = True

        # Import provider modules to trigger registration
        from . import llm  # noqa: F401

    # Registration methods

    def register_generation(self, name: str, provider_class: type) -> None:
        """Register a text-generation provider class."""
        self._generation_providers[name] = provider_class

    # Factory methods

    @staticmethod
    def _create_provider(kind: str, name: str, providers: dict, params: dict | None):
        """Shared factory logic for all provider types."""
        if name not in providers:
            available = ", ".join(providers.keys()) or "none"
            raise ValueError(
                f"Unknown {kind} provider: '{name}'. "
                f"Available providers: {available}. "
                f"Install missing dependencies or check provider name."
            )
        try:
            return providers[name](**(params or {}))
        except ImportError as e:
            raise RuntimeError(
                f"Failed to create {kind} provider '{name}': {e}\n"
                f"Install required dependencies."
            ) from e
        except ValueError:
            # Missing credentials and similar: the message is already clear
            raise
        except Exception as e:
            raise RuntimeError(
                f"Failed to create {kind} provider '{name}': {e}"
            ) from e

    def create_generation(self, name: str, params: dict | None = None) -> GenerationProvider:
        """Create a text-generation provider instance."""
        self._ensure_providers_loaded()
        return self._create_provider("generation", name, self._generation_providers, params)

    # Introspection

    def list_generation_providers(self) -> list[str]:
        """List registered generation provider names."""
        self._ensure_providers_loaded()
        return list(self._generation_providers.keys())


# Global registry instance
# Concrete providers register themselves on import
_registry = ProviderRegistry()


def get_registry() -> ProviderRegistry:
    """Get the global provider registry."""
    return _registry

