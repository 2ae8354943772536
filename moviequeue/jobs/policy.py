from dataclasses import dataclass

from ..errors import ErrorKind


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff with a fixed attempt budget.

    Attempt ``n`` (1-indexed) that failed is retried while ``n < max_attempts``;
    the delay before attempt ``n + 1`` is ``base_delay_ms * 2 ** (n - 1)``.
    """

    max_attempts: int = 3
    base_delay_ms: int = 2000
    retry_permanent_errors: bool = False

    def delay_ms(self, attempts: int) -> int:
        return self.base_delay_ms * (2 ** (attempts - 1))

    def should_retry(self, attempts: int, kind: ErrorKind = ErrorKind.TRANSIENT) -> bool:
        if kind is ErrorKind.PERMANENT and not self.retry_permanent_errors:
            return False
        return attempts < self.max_attempts
