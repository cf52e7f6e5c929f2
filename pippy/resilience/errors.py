"""
Provider failure taxonomy.

TransportError, RateLimited and InvalidPayload are all retryable and share
one backoff budget. AllSourcesUnavailable is terminal: it is the only one
that is meant to reach the caller of the pipeline.
"""

from typing import Any, Dict, List, Optional


class ProviderError(Exception):
    """Base class for failures talking to an external provider."""

    def __init__(self, message: str, provider: Optional[str] = None,
                 context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.provider = provider
        self.context = context or {}

    def reason(self) -> str:
        """Short human-readable reason, used in Unavailable markers."""
        label = type(self).__name__
        return f"{label}: {self}" if str(self) else label


class TransportError(ProviderError):
    """Network, DNS, timeout or non-success HTTP status."""

    def __init__(self, message: str, status_code: Optional[int] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.status_code = status_code


class RateLimited(ProviderError):
    """Provider asked us to back off (HTTP 429 or an equivalent body)."""

    def __init__(self, message: str, retry_after: Optional[float] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.retry_after = retry_after


class InvalidPayload(ProviderError):
    """Response arrived but failed schema or sanity checks."""

    def __init__(self, message: str, problems: Optional[List[str]] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.problems = problems or []


class AllSourcesUnavailable(Exception):
    """No source produced any content; nothing can be returned."""

    def __init__(self, message: str, failures: Optional[Dict[str, str]] = None):
        super().__init__(message)
        self.failures = failures or {}
