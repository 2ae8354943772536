import json
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional, Tuple, Union

import redis.asyncio as redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from .config import Settings
from .errors import TransientStoreFailure

Score = Union[float, str]


def _score(value: Score) -> float:
    return float(value)


class AsyncInMemoryRedis:
    """Subset of the redis.asyncio API backed by dicts, for tests."""

    def __init__(self):
        self._hashes: Dict[str, Dict[str, str]] = {}
        self._zsets: Dict[str, Dict[str, float]] = {}
        self._counters: Dict[str, int] = {}
        self.closed = False

    async def ping(self) -> bool:
        return True

    async def aclose(self):
        self.closed = True

    async def incr(self, name: str) -> int:
        self._counters[name] = self._counters.get(name, 0) + 1
        return self._counters[name]

    async def hset(self, name: str, key: str, value: str):
        h = self._hashes.setdefault(name, {})
        added = 0 if key in h else 1
        h[key] = value
        return added

    async def hsetnx(self, name: str, key: str, value: str) -> int:
        h = self._hashes.setdefault(name, {})
        if key in h:
            return 0
        h[key] = value
        return 1

    async def hget(self, name: str, key: str) -> Optional[str]:
        h = self._hashes.get(name, {})
        return h.get(key)

    async def hdel(self, name: str, *keys: str) -> int:
        h = self._hashes.get(name, {})
        removed = 0
        for k in keys:
            if k in h:
                del h[k]
                removed += 1
        return removed

    async def hgetall(self, name: str) -> Dict[str, str]:
        return dict(self._hashes.get(name, {}))

    async def hlen(self, name: str) -> int:
        return len(self._hashes.get(name, {}))

    # zset methods
    async def zadd(self, name: str, mapping: Dict[str, float]):
        z = self._zsets.setdefault(name, {})
        added = 0
        for member, score in mapping.items():
            if member not in z:
                added += 1
            z[member] = float(score)
        return added

    async def zrangebyscore(
        self, name: str, min: Score, max: Score, start: Optional[int] = None, num: Optional[int] = None
    ) -> List[str]:
        z = self._zsets.get(name, {})
        lo, hi = _score(min), _score(max)
        items = sorted(((s, m) for m, s in z.items() if lo <= s <= hi))
        members = [m for _, m in items]
        if start is not None and num is not None:
            members = members[start:start + num]
        return members

    async def zrange(self, name: str, start: int, end: int) -> List[str]:
        z = self._zsets.get(name, {})
        members = [m for m, _ in sorted(z.items(), key=lambda kv: (kv[1], kv[0]))]
        if end == -1:
            return members[start:]
        return members[start:end + 1]

    async def zrem(self, name: str, *members: str) -> int:
        z = self._zsets.get(name, {})
        removed = 0
        for m in members:
            if m in z:
                del z[m]
                removed += 1
        return removed

    async def zcard(self, name: str) -> int:
        return len(self._zsets.get(name, {}))

    async def zscore(self, name: str, member: str) -> Optional[float]:
        return self._zsets.get(name, {}).get(member)

    async def zpopmin(self, name: str, count: int = 1) -> List[Tuple[str, float]]:
        z = self._zsets.get(name, {})
        if not z:
            return []
        # Get members sorted by score
        items = sorted(z.items(), key=lambda kv: (kv[1], kv[0]))
        popped = items[:count]
        for m, _ in popped:
            del z[m]
        return popped


def create_redis(settings: Settings):
    """Build a Redis client for the configured backend. Callers own its lifecycle."""
    if settings.testing:
        return AsyncInMemoryRedis()
    return redis.Redis.from_url(settings.redis_url, decode_responses=True)


@asynccontextmanager
async def store_errors(operation: str):
    """Translate Redis connectivity errors into TransientStoreFailure."""
    try:
        yield
    except (RedisConnectionError, RedisTimeoutError) as exc:
        raise TransientStoreFailure(f"{operation} failed: {exc}") from exc


def dumps(payload: Dict[str, Any]) -> str:
    return json.dumps(payload, default=str)


def loads(raw: Optional[str]) -> Optional[Dict[str, Any]]:
    if raw is None:
        return None
    return json.loads(raw)
