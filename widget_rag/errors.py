"""Error taxonomy for the content pipeline.

- InputError: empty or invalid content, rejected before any external call.
- DependencyError: an embedding/LLM/HTTP provider failed. Subclasses carry the
  classification (auth, rate limit, unavailable, not found, unknown).
- ScrapeError: a web fetch failed, with a user-facing category.

Skipping a bot that is not due for retrain is not an error; the scheduler
records it as ``not_due`` in its scan report.
"""
from typing import Optional


class RagError(Exception):
    """Base class for all pipeline errors."""


class InputError(RagError):
    """Content or parameters are empty or invalid."""


class EmptyInputError(InputError):
    """Text is empty or whitespace-only after preprocessing."""


class DependencyError(RagError):
    """An external provider call failed.

    Attributes:
        provider: Short name of the collaborator (e.g. "openai", "http").
        retryable: Whether the end user may reasonably retry later.
    """
    retryable = False

    def __init__(self, message: str, provider: str = "unknown", cause: Optional[BaseException] = None):
        super().__init__(message)
        self.provider = provider
        self.cause = cause


class AuthFailed(DependencyError):
    """Credentials were rejected by the provider."""


class RateLimited(DependencyError):
    retryable = True


class Unavailable(DependencyError):
    """Network error, timeout or provider-side outage."""
    retryable = True


class NotFound(DependencyError):
    """The requested remote resource does not exist."""


class Unknown(DependencyError):
    """Any provider failure that does not fit another class."""


class ScrapeError(DependencyError):
    """Fetching or parsing a web page failed.

    ``category`` is one of ``not_found``, ``forbidden``, ``connection_refused``
    or ``generic``.
    """
    CATEGORIES = ("not_found", "forbidden", "connection_refused", "generic")

    def __init__(self, message: str, category: str = "generic", cause: Optional[BaseException] = None):
        super().__init__(message, provider="http", cause=cause)
        self.category = category if category in self.CATEGORIES else "generic"
        self.retryable = self.category in ("connection_refused", "generic")
