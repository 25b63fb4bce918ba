"""Utility modules for karaoke-scout.

Available utility modules (all re-exported here for convenience):

- **errors** -- Domain-specific exception hierarchy rooted at
  KaraokeScoutError; each pipeline stage raises its own subclass and
  :func:`is_retryable` separates transient failures from fatal ones.
- **retry** -- ``retry_async``, the exponential-backoff combinator used
  for fetches and model calls.
- **concurrency** -- ``CallThrottle`` (bounded in-flight calls with a
  minimum stagger between starts) and ``throttled_gather``.
- **json_extraction** -- pulls the first balanced JSON object out of
  chatty model output.
- **logging** -- structlog setup with a dual-renderer pattern: coloured
  console output in development, structured JSON in production.
- **text_normalizer** -- venue/vendor/DJ name normalization, fuzzy
  matching, and weekday/time normalization for show schedules.
"""

# -- Async concurrency helpers ---------------------------------------------
from src.utils.concurrency import CallThrottle, throttled_gather

# -- Domain exception hierarchy --------------------------------------------
from src.utils.errors import (
    ConfigurationError,
    DiscoveryError,
    ExtractionError,
    FetchError,
    KaraokeScoutError,
    ProviderUnavailableError,
    RateLimitError,
    ReviewError,
    is_retryable,
)

# -- Model output parsing --------------------------------------------------
from src.utils.json_extraction import extract_json_object

# -- Structured logging setup ----------------------------------------------
from src.utils.logging import configure_logging, get_logger

# -- Backoff retry ---------------------------------------------------------
from src.utils.retry import retry_async

# -- Text normalization (names, days, times) -------------------------------
from src.utils.text_normalizer import fuzzy_match, name_similarity, normalize_name

__all__ = [
    "CallThrottle",
    "ConfigurationError",
    "DiscoveryError",
    "ExtractionError",
    "FetchError",
    "KaraokeScoutError",
    "ProviderUnavailableError",
    "RateLimitError",
    "ReviewError",
    "configure_logging",
    "extract_json_object",
    "fuzzy_match",
    "get_logger",
    "is_retryable",
    "name_similarity",
    "normalize_name",
    "retry_async",
    "throttled_gather",
]
