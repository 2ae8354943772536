"""Job handler registry."""

from typing import Any, Callable, Coroutine, Dict

from ..errors import UnknownJobType
from .types import JobType

# Handler signature: async def handler(payload: dict, ctx: dict) -> Any
JobHandler = Callable[[Dict[str, Any], Dict[str, Any]], Coroutine[Any, Any, Any]]


class JobRegistry:
    """Registry mapping job types to their handlers."""

    def __init__(self):
        self._handlers: Dict[JobType, JobHandler] = {}

    def register(self, job_type: JobType, handler: JobHandler) -> None:
        """Register a handler for a job type."""
        self._handlers[JobType(job_type)] = handler

    def get_handler(self, job_type) -> JobHandler:
        """Get the handler for a job type. Raises UnknownJobType if not found."""
        try:
            return self._handlers[JobType(job_type)]
        except (KeyError, ValueError):
            name = getattr(job_type, "value", job_type)
            raise UnknownJobType(f"No handler registered for job type: {name}")
