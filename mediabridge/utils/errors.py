"""Custom exception hierarchy for mediabridge.

All application exceptions inherit from :class:`MediaBridgeError`, which
carries an optional ``provider_name`` so log lines can identify which
upstream (e.g. "tmdb", "tvdb", "jikan", "redis") caused the failure.

The hierarchy mirrors the failure taxonomy of the resolution substrate:

    MediaBridgeError  (base -- catch-all for any mediabridge error)
    +-- NetworkFailureError        (timeout / DNS / non-2xx response)
    +-- NotFoundError              (upstream resource does not exist)
    +-- RateLimitError             (429-equivalent; the only retryable error)
    +-- SerializationFailureError  (malformed cached payload)
    +-- BackendUnavailableError    (cache / dataset / queue dependency down)
    +-- ConfigurationError         (missing credentials or invalid config)

The request queue retries on RateLimitError only; the cache service
swallows BackendUnavailableError and SerializationFailureError; the
identity resolver logs and skips every error type.
"""

from __future__ import annotations


class MediaBridgeError(Exception):
    """Base exception for all mediabridge errors.

    Every subclass carries a human-readable ``message`` and an optional
    ``provider_name``.  ``__str__`` prefixes the provider name in brackets,
    e.g. ``[jikan] Rate limit exceeded``.
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Upstream errors
# ---------------------------------------------------------------------------

class NetworkFailureError(MediaBridgeError):
    """Raised on timeouts, connection errors, and non-2xx upstream responses."""

    def __init__(
        self,
        message: str = "Upstream request failed",
        provider_name: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
        self._status_code = status_code

    @property
    def status_code(self) -> int | None:
        return self._status_code


class NotFoundError(MediaBridgeError):
    """Raised when the upstream reports that a resource does not exist."""

    def __init__(
        self,
        message: str = "Resource not found",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class RateLimitError(MediaBridgeError):
    """Raised when an upstream answers with a rate-limit response.

    :class:`~mediabridge.services.request_queue.RateLimitedQueue` retries
    items failing with this error using exponential backoff.
    """

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        provider_name: str | None = None,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
        self._retry_after = retry_after

    @property
    def retry_after(self) -> float | None:
        return self._retry_after


# ---------------------------------------------------------------------------
# Local dependency errors
# ---------------------------------------------------------------------------

class SerializationFailureError(MediaBridgeError):
    """Raised when a cached payload cannot be decoded."""

    def __init__(
        self,
        message: str = "Cached payload could not be decoded",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class BackendUnavailableError(MediaBridgeError):
    """Raised when the cache backend, dataset source, or queue is unavailable."""

    def __init__(
        self,
        message: str = "Backend is unavailable",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ConfigurationError(MediaBridgeError):
    """Raised when configuration is invalid or a required credential is missing."""

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
