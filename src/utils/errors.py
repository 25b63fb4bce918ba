"""Custom exception hierarchy for karaokeScout.

All application exceptions inherit from :class:`KaraokeScoutError`, which
carries an optional ``provider_name`` so error handlers can identify which
external service (e.g. "openai", "httpx", "sqlite") caused the failure.

The hierarchy is organized by pipeline stage:

    KaraokeScoutError  (base -- catch-all for any karaokeScout error)
    +-- FetchError                 (content fetcher)
    |   +-- NetworkError           (DNS, connection refused, TLS)
    |   +-- FetchTimeoutError      (request exceeded its bound)
    |   +-- HttpStatusError        (non-2xx response, carries status_code)
    +-- DiscoveryError             (seed page unreachable / unusable)
    +-- ExtractionError            (AI content analysis of one unit)
    |   +-- ModelTimeoutError      (model call exceeded its bound)
    |   +-- RateLimitError         (provider rate-limit exceeded)
    |   +-- ProviderUnavailableError (5xx / provider unreachable)
    |   +-- MalformedModelOutputError (no usable JSON in the reply)
    |   +-- UnitProcessingError    (anything else isolated to one unit)
    |   +-- LLMError               (other LLM API call failure)
    +-- ConfigurationError         (startup / missing config)
    +-- ReviewError                (staging record lifecycle)
        +-- ScheduleNotFoundError
        +-- InvalidStatusTransitionError
            +-- AlreadyTerminalError

Retryable errors are listed by :func:`is_retryable`; the retry combinator
in :mod:`src.utils.retry` uses it as its default predicate.
"""


class KaraokeScoutError(Exception):
    """Base exception for all karaokeScout errors.

    Every subclass carries a human-readable ``message`` and an optional
    ``provider_name`` identifying which external service triggered the
    error.  The ``__str__`` method prefixes the provider name in brackets
    for structured log output, e.g. ``[openai] Rate limit exceeded``.
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
# Fetch errors
# ---------------------------------------------------------------------------

class FetchError(KaraokeScoutError):
    """Raised when raw content could not be retrieved for a URL."""

    def __init__(
        self,
        message: str = "Content fetch failed",
        provider_name: str | None = None,
        url: str = "",
    ) -> None:
        self._url = url
        super().__init__(message=message, provider_name=provider_name)

    @property
    def url(self) -> str:
        return self._url

    @property
    def kind(self) -> str:
        """Short machine-readable failure kind, used in discovery error detail."""
        return "fetch"


class NetworkError(FetchError):
    """Raised on DNS, connection or TLS failures."""

    def __init__(
        self,
        message: str = "Network error",
        provider_name: str | None = None,
        url: str = "",
        dns_failure: bool = False,
    ) -> None:
        self._dns_failure = dns_failure
        super().__init__(message=message, provider_name=provider_name, url=url)

    @property
    def kind(self) -> str:
        return "dns" if self._dns_failure else "network"


class FetchTimeoutError(FetchError):
    """Raised when a fetch exceeds its timeout; the request is aborted."""

    def __init__(
        self,
        message: str = "Request timed out",
        provider_name: str | None = None,
        url: str = "",
    ) -> None:
        super().__init__(message=message, provider_name=provider_name, url=url)

    @property
    def kind(self) -> str:
        return "timeout"


class HttpStatusError(FetchError):
    """Raised when the server answers with a non-success status code."""

    def __init__(
        self,
        status_code: int,
        message: str = "",
        provider_name: str | None = None,
        url: str = "",
    ) -> None:
        self._status_code = status_code
        super().__init__(
            message=message or f"HTTP {status_code}",
            provider_name=provider_name,
            url=url,
        )

    @property
    def status_code(self) -> int:
        return self._status_code

    @property
    def kind(self) -> str:
        return f"http_{self._status_code}"


# ---------------------------------------------------------------------------
# Discovery errors
# ---------------------------------------------------------------------------

class DiscoveryError(KaraokeScoutError):
    """Raised when a seed URL cannot be discovered at all.

    ``detail`` distinguishes the cause (``dns``, ``timeout``, ``http_403``,
    ...) so reviewers can tell a blocked site from a dead one.
    """

    def __init__(
        self,
        message: str = "Discovery failed",
        provider_name: str | None = None,
        detail: str = "unknown",
    ) -> None:
        self._detail = detail
        super().__init__(message=message, provider_name=provider_name)

    @property
    def detail(self) -> str:
        return self._detail


# ---------------------------------------------------------------------------
# Extraction errors
# ---------------------------------------------------------------------------

class ExtractionError(KaraokeScoutError):
    """Raised when AI content analysis of a single unit fails."""

    def __init__(
        self,
        message: str = "Content extraction failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ModelTimeoutError(ExtractionError):
    """Raised when the model call for a unit exceeds its time bound."""

    def __init__(
        self,
        message: str = "Model call timed out",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class RateLimitError(ExtractionError):
    """Raised when an API rate limit is exceeded.

    Callers should back off and retry when this is caught.
    """

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ProviderUnavailableError(ExtractionError):
    """Raised when an external provider is unreachable or returns a 5xx."""

    def __init__(
        self,
        message: str = "External service is unavailable",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class MalformedModelOutputError(ExtractionError):
    """Raised when no valid JSON object can be recovered from a model reply."""

    def __init__(
        self,
        message: str = "Model output did not contain a usable JSON object",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class UnitProcessingError(ExtractionError):
    """Raised for any other failure isolated to one content unit."""

    def __init__(
        self,
        message: str = "Content unit could not be processed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class LLMError(ExtractionError):
    """Raised when an LLM API call fails for a non-transient reason."""

    def __init__(
        self,
        message: str = "LLM API call failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Configuration errors
# ---------------------------------------------------------------------------

class ConfigurationError(KaraokeScoutError):
    """Raised when configuration is invalid or missing at startup."""

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Review / staging errors
# ---------------------------------------------------------------------------

class ReviewError(KaraokeScoutError):
    """Raised when a staging record cannot be reviewed as requested."""

    def __init__(
        self,
        message: str = "Review operation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ScheduleNotFoundError(ReviewError):
    """Raised when no parsed schedule exists for the given id."""

    def __init__(
        self,
        schedule_id: str,
        provider_name: str | None = None,
    ) -> None:
        self._schedule_id = schedule_id
        super().__init__(
            message=f"Parsed schedule {schedule_id} not found",
            provider_name=provider_name,
        )

    @property
    def schedule_id(self) -> str:
        return self._schedule_id


class InvalidStatusTransitionError(ReviewError):
    """Raised when a status change is not allowed from the current state."""

    def __init__(
        self,
        message: str = "Invalid status transition",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class AlreadyTerminalError(InvalidStatusTransitionError):
    """Raised when a terminal record (approved/rejected/failed) is reviewed again."""

    def __init__(
        self,
        message: str = "Parsed schedule is already in a terminal state",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


_TRANSIENT_TYPES = (
    RateLimitError,
    ProviderUnavailableError,
    ModelTimeoutError,
    NetworkError,
    FetchTimeoutError,
)


def is_retryable(exc: BaseException) -> bool:
    """Return True when *exc* is a transient failure worth retrying."""
    if isinstance(exc, HttpStatusError):
        return exc.status_code == 429 or exc.status_code >= 500
    if isinstance(exc, NetworkError) and exc.kind == "dns":
        return False
    return isinstance(exc, _TRANSIENT_TYPES)
