"""Error taxonomy for OneDrive Backup."""


class DriveError(Exception):
    """Base class for remote drive failures."""


class TransientApiError(DriveError):
    """Network failure, HTTP 5xx or HTTP 429. Safe to retry with backoff."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        retry_after: float | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.retry_after = retry_after

    @property
    def is_rate_limited(self) -> bool:
        """True when the server explicitly throttled the request."""
        return self.status_code == 429


class DrivePermissionError(DriveError):
    """HTTP 403. The item is skipped and counted as an error, never retried."""


class NotFoundError(DriveError):
    """HTTP 404. The item is treated as already absent."""


class SizeMismatchError(DriveError):
    """Received byte count differs from what was requested or announced."""

    def __init__(self, expected: int, actual: int):
        super().__init__(f"expected {expected} bytes, got {actual}")
        self.expected = expected
        self.actual = actual


class ExhaustedRetriesError(DriveError):
    """All retry attempts for one item failed."""

    def __init__(self, message: str, attempts: int, last_error: Exception | None = None):
        super().__init__(message)
        self.attempts = attempts
        self.last_error = last_error


class InvalidStateError(DriveError):
    """Local state prevents the operation (e.g. wrong file type at a path)."""


class SessionExpiredError(DriveError):
    """The access token has expired or was rejected (HTTP 401)."""


class RangeNotSupportedError(DriveError):
    """The server answered a byte-range request with something other than 206."""


class TransferCancelledError(DriveError):
    """The run was asked to stop while this transfer was in progress."""
