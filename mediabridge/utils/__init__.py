"""Utility modules for mediabridge.

- **errors** -- Domain exception hierarchy rooted at MediaBridgeError; the
  request queue, cache service and resolver each react to specific
  subclasses (retry, swallow, or log-and-continue).
- **concurrency** -- Semaphore-throttled gather and id chunking for
  batched provider lookups.
- **logging** -- structlog setup with a dual-renderer pattern (coloured
  console in development, JSON in production) and cache-key shortening
  for log lines.
"""

from mediabridge.utils.concurrency import chunked, throttled_gather
from mediabridge.utils.errors import (
    BackendUnavailableError,
    ConfigurationError,
    MediaBridgeError,
    NetworkFailureError,
    NotFoundError,
    RateLimitError,
    SerializationFailureError,
)
from mediabridge.utils.logging import configure_logging, get_logger, truncate_cache_key

__all__ = [
    "BackendUnavailableError",
    "ConfigurationError",
    "MediaBridgeError",
    "NetworkFailureError",
    "NotFoundError",
    "RateLimitError",
    "SerializationFailureError",
    "chunked",
    "configure_logging",
    "get_logger",
    "throttled_gather",
    "truncate_cache_key",
]
