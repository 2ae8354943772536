from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, List, Optional


class AcceptedResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    accepted: bool = True
    message: str
    job_id: str = Field(serialization_alias="jobId")


class BulkCreateRequest(BaseModel):
    movies: List[Dict[str, Any]] = Field(min_length=1)


class ImportRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    imdb_id: Optional[str] = Field(default=None, alias="imdbID")


class FailedJobResponse(BaseModel):
    job_id: str
    type: str
    priority: int
    attempts: int
    max_attempts: int
    last_error: Optional[str] = None
    finished_at: Optional[float] = None
    payload: Dict[str, Any]


class FailedJobListResponse(BaseModel):
    jobs: List[FailedJobResponse]
