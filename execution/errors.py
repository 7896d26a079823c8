"""Error taxonomy for fetching and ingestion."""
from enum import Enum


class FetchFailure(str, Enum):
    NOT_FOUND = "not_found"
    TIMEOUT = "timeout"
    RATE_LIMITED = "rate_limited"
    SERVER_ERROR = "server_error"
    TRANSPORT_ERROR = "transport_error"
    HTTP_ERROR = "http_error"


class IngestionError(Exception):
    """Base class for every error raised by the engine."""


class FatalConfigError(IngestionError):
    """Malformed configuration or missing required files; aborts the run."""


class CheckpointError(FatalConfigError):
    """Checkpoint unreadable, or owned by another process."""


class ParseError(IngestionError):
    """A fetched payload could not be parsed."""


class UnitFailure(IngestionError):
    """A work unit could not be completed."""

    def __init__(self, unit_key: str, reason: str):
        super().__init__(f"{unit_key}: {reason}")
        self.unit_key = unit_key
        self.reason = reason


class FetchError(IngestionError):
    kind = FetchFailure.HTTP_ERROR

    def __init__(self, url: str, message: str | None = None):
        super().__init__(message or f"{self.kind.value}: {url}")
        self.url = url


class NotFoundError(FetchError):
    kind = FetchFailure.NOT_FOUND

    def __init__(self, url: str):
        super().__init__(url, f"Not found: {url}")


class TransientFetchError(FetchError):
    """Failure worth retrying with backoff."""


class TimeoutFetchError(TransientFetchError):
    kind = FetchFailure.TIMEOUT


class TransportFetchError(TransientFetchError):
    kind = FetchFailure.TRANSPORT_ERROR


class RateLimitedError(TransientFetchError):
    kind = FetchFailure.RATE_LIMITED

    def __init__(self, url: str):
        super().__init__(url, f"Rate limited (429): {url}")


class ServerError(TransientFetchError):
    kind = FetchFailure.SERVER_ERROR

    def __init__(self, url: str, status_code: int):
        super().__init__(url, f"Server error {status_code}: {url}")
        self.status_code = status_code


class HttpStatusError(FetchError):
    """Non-retryable status other than 404."""

    def __init__(self, url: str, status_code: int):
        super().__init__(url, f"HTTP {status_code}: {url}")
        self.status_code = status_code


class RetriesExhaustedError(FetchError):
    def __init__(self, url: str, attempts: int, last_error: Exception | None):
        super().__init__(url, f"Gave up after {attempts} attempts: {last_error}")
        self.attempts = attempts
        self.last_error = last_error
        if isinstance(last_error, FetchError):
            self.kind = last_error.kind
