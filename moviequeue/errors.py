from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Whether a failure is worth retrying."""

    TRANSIENT = "transient"
    PERMANENT = "permanent"


class MovieQueueError(Exception):
    """Base error carrying an HTTP status and a retry classification."""

    status_code: int = 500
    kind: ErrorKind = ErrorKind.TRANSIENT

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class InvalidJobType(MovieQueueError):
    """Raised by the producer for a job type outside the known set."""

    status_code = 400
    kind = ErrorKind.PERMANENT


class UnknownJobType(MovieQueueError):
    """Raised by the dispatcher when no handler is registered for a claimed job."""

    kind = ErrorKind.PERMANENT


class ValidationFailure(MovieQueueError):
    status_code = 400
    kind = ErrorKind.PERMANENT


class NotFound(MovieQueueError):
    status_code = 404
    kind = ErrorKind.PERMANENT


class Conflict(MovieQueueError):
    status_code = 409
    kind = ErrorKind.PERMANENT


class TransientStoreFailure(MovieQueueError):
    """Store or network unavailability."""

    status_code = 503
    kind = ErrorKind.TRANSIENT


class UpstreamError(MovieQueueError):
    """Error talking to the OMDb metadata service."""

    status_code = 502
    kind = ErrorKind.TRANSIENT


def classify(exc: BaseException) -> ErrorKind:
    """Classify a handler failure. Unrecognised exceptions count as transient."""
    if isinstance(exc, MovieQueueError):
        return exc.kind
    return ErrorKind.TRANSIENT
