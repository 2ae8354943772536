"""Job system type definitions."""

from enum import Enum


class JobType(str, Enum):
    """Job types handled by the movie-operations queue."""

    CREATE_MOVIE = "create_movie"
    UPDATE_MOVIE = "update_movie"
    BULK_CREATE_MOVIES = "bulk_create_movies"


class JobDisposition(str, Enum):
    """Where a job sits in its lifecycle."""

    PENDING = "pending"
    IN_FLIGHT = "in_flight"
    SUCCEEDED = "succeeded"
    FAILED_RETRYABLE = "failed_retryable"
    FAILED_TERMINAL = "failed_terminal"


# Default priorities (lower runs first)
DEFAULT_PRIORITIES = {
    JobType.CREATE_MOVIE: 1,
    JobType.UPDATE_MOVIE: 2,
    JobType.BULK_CREATE_MOVIES: 3,
}
