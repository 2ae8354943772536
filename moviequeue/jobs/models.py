"""Job system data models."""

import time
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Optional

from .types import JobDisposition, JobType


@dataclass
class JobOptions:
    """Per-job delivery options attached at enqueue time."""

    priority: int = 1
    attempts: int = 3
    backoff_delay_ms: int = 2000
    remove_on_complete: bool = True
    remove_on_fail: bool = False


@dataclass
class JobEnvelope:
    """A unit of work in the queue."""

    id: str
    type: JobType
    payload: Dict[str, Any]
    priority: int = 1

    # Retry handling
    attempts: int = 0
    max_attempts: int = 3
    backoff_delay_ms: int = 2000
    remove_on_complete: bool = True
    remove_on_fail: bool = False

    disposition: JobDisposition = JobDisposition.PENDING
    idempotency_key: Optional[str] = None
    last_error: Optional[str] = None
    claimed_by: Optional[str] = None
    created_at: float = field(default_factory=time.time)
    run_after: Optional[float] = None
    finished_at: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["type"] = self.type.value
        data["disposition"] = self.disposition.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "JobEnvelope":
        data = dict(data)
        data["disposition"] = JobDisposition(data.get("disposition", JobDisposition.PENDING.value))
        # Unrecognised types are kept as raw strings so the dispatcher can terminalize them
        try:
            data["type"] = JobType(data["type"])
        except ValueError:
            pass
        return cls(**data)

    @property
    def type_name(self) -> str:
        return self.type.value if isinstance(self.type, JobType) else str(self.type)
