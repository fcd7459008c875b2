"""
Text-generation providers.

Concrete backends register themselves with the global registry on import;
``get_registry().create_generation(name, params)`` instantiates one by name.
"""

from .base import GenerationProvider, ProviderRegistry, get_registry

__all__ = ["GenerationProvider", "ProviderRegistry", "get_registry"]
