"""
Exceptions and error logging for narrator.

Transport failures raise; model-output problems never do (they degrade to a
typed fallback result instead). The CLI logs full stack traces to a file
while showing clean messages to users.
"""

import os
import traceback
from datetime import datetime, timezone
from pathlib import Path


class NarratorError(Exception):
    """Base class for narrator errors."""


class ConfigError(NarratorError):
    """Configuration is missing or invalid."""


class ProviderError(NarratorError):
    """
    A text-generation provider could not be reached or rejected the request.

    Fatal for the current request and never retried.

    Attributes:
        provider: Provider name (e.g. "ollama")
        status: HTTP status code, or None for timeouts and connection errors
        body: Provider-reported error body (truncated)
    """

    def __init__(self, provider: str, status: int | None, body: str = ""):
        self.provider = provider
        self.status = status
        self.body = body[:500] if body else ""
        if status is None:
            message = f"{provider} request failed: {self.body or 'no response'}"
        else:
            message = f"{provider} returned HTTP {status}"
            if self.body:
                message += f": {self.body}"
        super().__init__(message)


def _error_log_path() -> Path:
    """Resolve error log path, respecting NARRATOR_HOME."""
    home = os.environ.get("NARRATOR_HOME")
    if home:
        return Path(home) / "narrator-errors.log"
    return Path.home() / ".narrator" / "narrator-errors.log"


def log_exception(exc: Exception, context: str = "") -> Path:
    """
    Log exception with full traceback to file.

    Args:
        exc: The exception that occurred
        context: Optional context string (e.g., command name)

    Returns:
        Path to the error log file
    """
    log_path = _error_log_path()
    timestamp = datetime.now(timezone.utc).isoformat()
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(log_path, os.O_WRONLY | os.O_CREAT | os.O_APPEND, 0o600)
        with os.fdopen(fd, "a") as f:
            f.write(f"\n{'='*60}\n")
            f.write(f"[{timestamp}]")
            if context:
                f.write(f" {context}")
            f.write("\n")
            f.write("".join(traceback.format_exception(type(exc), exc, exc.__traceback__)))
    except OSError:
        pass  # Can't write error log; don't crash over it
    return log_path
