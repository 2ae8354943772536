from datetime import date
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, computed_field
from pydantic.alias_generators import to_camel

from ..errors import ValidationFailure

DEFAULT_POSTER_URL = "https://via.placeholder.com/300x450?text=No+Poster"


class _MovieBase(BaseModel):
    # Accept both snake_case and the camelCase bodies older clients send
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
        extra="ignore",
    )


class MovieCreate(_MovieBase):
    title: str = Field(min_length=1, max_length=200)
    description: str = Field(min_length=1, max_length=2000)
    rating: float = Field(ge=0, le=10)
    release_date: date
    duration: int = Field(ge=1, description="Minutes")
    genre: List[str] = Field(min_length=1)
    director: str = Field(min_length=1)
    cast: List[str] = Field(default_factory=list)
    poster_url: str = DEFAULT_POSTER_URL

    # OMDb / IMDb fields
    imdb_id: Optional[str] = None
    year: Optional[str] = None
    rated: Optional[str] = None
    writer: Optional[str] = None
    imdb_rating: Optional[float] = Field(default=None, ge=0, le=10)
    imdb_votes: Optional[str] = None
    box_office: Optional[str] = None
    awards: Optional[str] = None


class MovieUpdate(_MovieBase):
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, min_length=1, max_length=2000)
    rating: Optional[float] = Field(default=None, ge=0, le=10)
    release_date: Optional[date] = None
    duration: Optional[int] = Field(default=None, ge=1)
    genre: Optional[List[str]] = Field(default=None, min_length=1)
    director: Optional[str] = Field(default=None, min_length=1)
    cast: Optional[List[str]] = None
    poster_url: Optional[str] = None
    imdb_id: Optional[str] = None
    year: Optional[str] = None
    rated: Optional[str] = None
    writer: Optional[str] = None
    imdb_rating: Optional[float] = Field(default=None, ge=0, le=10)
    imdb_votes: Optional[str] = None
    box_office: Optional[str] = None
    awards: Optional[str] = None


class Movie(MovieCreate):
    """A stored movie as returned to clients."""

    id: str
    is_active: bool = True
    created_at: float
    updated_at: float

    @computed_field
    @property
    def release_year(self) -> int:
        return self.release_date.year

    @computed_field
    @property
    def formatted_duration(self) -> str:
        hours, minutes = divmod(self.duration, 60)
        return f"{hours}h {minutes}m" if hours > 0 else f"{minutes}m"


def _describe(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err["loc"])
        parts.append(f"{loc}: {err['msg']}" if loc else err["msg"])
    return "; ".join(parts)


def validate_create(body: Dict[str, Any]) -> Dict[str, Any]:
    """Validate a creation body, returning it in stored (JSON, snake_case) form."""
    try:
        return MovieCreate.model_validate(body).model_dump(mode="json")
    except ValidationError as exc:
        raise ValidationFailure(_describe(exc)) from exc


def validate_patch(patch: Dict[str, Any]) -> Dict[str, Any]:
    """Validate a partial update, keeping only the fields the caller sent."""
    try:
        return MovieUpdate.model_validate(patch).model_dump(mode="json", exclude_unset=True)
    except ValidationError as exc:
        raise ValidationFailure(_describe(exc)) from exc


def to_public(record: Dict[str, Any]) -> Dict[str, Any]:
    return Movie.model_validate(record).model_dump(mode="json")
