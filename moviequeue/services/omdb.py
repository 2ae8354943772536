"""OMDb metadata lookup, normalised to the movie creation body."""

import re
from datetime import date, datetime
from typing import Any, Dict, List, Optional

import httpx
import structlog

from ..config import Settings
from ..errors import MovieQueueError, NotFound, UpstreamError, ValidationFailure

logger = structlog.get_logger(__name__)

NA = "N/A"


def _present(value: Optional[str]) -> Optional[str]:
    if not value or value == NA:
        return None
    return value


def parse_rating(value: Optional[str]) -> float:
    try:
        return float(_present(value) or 0)
    except ValueError:
        return 0.0


def parse_date(value: Optional[str]) -> str:
    """OMDb dates look like '16 Jul 2010'. Falls back to today."""
    raw = _present(value)
    if raw:
        try:
            return datetime.strptime(raw, "%d %b %Y").date().isoformat()
        except ValueError:
            pass
    return date.today().isoformat()


def parse_duration(value: Optional[str]) -> int:
    match = re.search(r"(\d+)", _present(value) or "")
    return int(match.group(1)) if match else 0


def parse_list(value: Optional[str]) -> List[str]:
    raw = _present(value)
    if not raw:
        return []
    return [item.strip() for item in raw.split(",") if item.strip()]


def normalize(data: Dict[str, Any]) -> Dict[str, Any]:
    """Map an OMDb response onto movie fields, dropping N/A values."""
    imdb_rating = _present(data.get("imdbRating"))
    votes = _present(data.get("imdbVotes"))
    movie = {
        "title": data.get("Title"),
        "description": _present(data.get("Plot")) or "",
        "rating": parse_rating(data.get("imdbRating")),
        "release_date": parse_date(data.get("Released")),
        "duration": parse_duration(data.get("Runtime")),
        "genre": parse_list(data.get("Genre")),
        "director": _present(data.get("Director")) or "Unknown",
        "cast": parse_list(data.get("Actors")),
        "poster_url": _present(data.get("Poster")),
        "imdb_id": data.get("imdbID"),
        "year": data.get("Year"),
        "rated": _present(data.get("Rated")),
        "writer": _present(data.get("Writer")),
        "imdb_rating": float(imdb_rating) if imdb_rating else None,
        "imdb_votes": votes.replace(",", "") if votes else None,
        "box_office": _present(data.get("BoxOffice")),
        "awards": _present(data.get("Awards")),
    }
    return {k: v for k, v in movie.items() if v is not None}


class OMDbClient:
    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = "http://www.omdbapi.com/",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._api_key = api_key
        self._base_url = base_url
        self._timeout = timeout
        self._transport = transport
        if not api_key:
            logger.warning("omdb_api_key_missing")

    @classmethod
    def from_settings(cls, settings: Settings) -> "OMDbClient":
        return cls(
            settings.omdb_api_key,
            base_url=settings.omdb_base_url,
            timeout=settings.omdb_timeout_seconds,
        )

    async def fetch_movie_by_imdb_id(self, imdb_id: str) -> Dict[str, Any]:
        if not self._api_key:
            raise MovieQueueError("OMDb API key not configured", 500)
        if not imdb_id or not imdb_id.startswith("tt"):
            raise ValidationFailure('Invalid IMDb ID format. Must start with "tt"')

        params = {"apikey": self._api_key, "i": imdb_id, "plot": "full"}
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.get(self._base_url, params=params)
                response.raise_for_status()
        except httpx.TimeoutException as exc:
            raise UpstreamError("OMDb API request timeout", 504) from exc
        except httpx.HTTPStatusError as exc:
            raise UpstreamError(
                f"Failed to fetch movie from OMDb: {exc}", exc.response.status_code
            ) from exc
        except httpx.HTTPError as exc:
            raise UpstreamError(f"Failed to fetch movie from OMDb: {exc}") from exc

        data = response.json()
        if data.get("Response") == "False":
            raise NotFound(data.get("Error") or "Movie not found on OMDb")
        return normalize(data)
