"""
Shared Ollama utilities: base-URL resolution and model listing.
"""

import os

import requests

DEFAULT_OLLAMA_URL = "http://localhost:11434"


def ollama_base_url(base_url: str | None = None) -> str:
    """Resolve the Ollama base URL.

    Priority: explicit argument, then OLLAMA_HOST, then localhost:11434.
    OLLAMA_HOST may omit the scheme ("127.0.0.1:11434"), as the ollama CLI
    accepts.
    """
    url = base_url or os.environ.get("OLLAMA_HOST") or DEFAULT_OLLAMA_URL
    if not url.startswith(("http://", "https://")):
        url = f"http://{url}"
    return url.rstrip("/")


def ollama_list_models(base_url: str, timeout: float = 5) -> list[str]:
    """Return names of locally installed Ollama models.

    Raises RuntimeError if Ollama is unreachable.
    """
    try:
        resp = requests.get(f"{base_url}/api/tags", timeout=timeout)
        resp.raise_for_status()
    except requests.RequestException as e:
        raise RuntimeError(
            f"Cannot reach Ollama at {base_url}. "
            "Is Ollama running? Start it with: ollama serve"
        ) from e

    return [m["name"] for m in resp.json().get("models", []) if m.get("name")]
