"""Redis implementation of the ordered store port."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, TypeVar

import redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from genqueue.config.logging_config import get_logger
from genqueue.domain.exceptions import StoreConnectionError
from genqueue.ports.ordered_store import OrderedStorePort

logger = get_logger(__name__)

T = TypeVar("T")


class RedisOrderedStore(OrderedStorePort):
    """Ordered store backed by a Redis server.

    Connectivity failures and timeouts are re-raised as
    ``StoreConnectionError`` so callers never depend on redis-py types.
    """

    def __init__(self, client: redis.Redis) -> None:
        self._client = client

    @classmethod
    def from_url(
        cls,
        url: str,
        *,
        password: str | None = None,
        socket_timeout_seconds: float = 5.0,
    ) -> RedisOrderedStore:
        client = redis.Redis.from_url(
            url,
            password=password,
            decode_responses=True,
            socket_timeout=socket_timeout_seconds,
            socket_connect_timeout=socket_timeout_seconds,
        )
        return cls(client)

    def _call(self, operation: str, func: Callable[[], T]) -> T:
        try:
            return func()
        except (RedisConnectionError, RedisTimeoutError) as exc:
            logger.error("redis_operation_failed", operation=operation, error=str(exc))
            raise StoreConnectionError(operation, str(exc)) from exc

    def ping(self) -> bool:
        return bool(self._call("ping", self._client.ping))

    def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        self._call("set", lambda: self._client.set(key, value, ex=ttl_seconds))

    def get(self, key: str) -> str | None:
        value: Any = self._call("get", lambda: self._client.get(key))
        return None if value is None else str(value)

    def delete(self, key: str) -> int:
        return int(self._call("delete", lambda: self._client.delete(key)))

    def expire(self, key: str, ttl_seconds: int) -> bool:
        return bool(self._call("expire", lambda: self._client.expire(key, ttl_seconds)))

    def incr(self, key: str) -> int:
        return int(self._call("incr", lambda: self._client.incr(key)))

    def zadd(self, key: str, member: str, score: float) -> None:
        self._call("zadd", lambda: self._client.zadd(key, {member: score}))

    def zpopmin(self, key: str) -> tuple[str, float] | None:
        popped: Any = self._call("zpopmin", lambda: self._client.zpopmin(key, 1))
        if not popped:
            return None
        member, score = popped[0]
        return str(member), float(score)

    def zrem(self, key: str, member: str) -> int:
        return int(self._call("zrem", lambda: self._client.zrem(key, member)))

    def zcard(self, key: str) -> int:
        return int(self._call("zcard", lambda: self._client.zcard(key)))

    def zrangebyscore(
        self, key: str, max_score: float, limit: int | None = None
    ) -> list[str]:
        def _query() -> Any:
            if limit is None:
                return self._client.zrangebyscore(key, "-inf", max_score)
            return self._client.zrangebyscore(
                key, "-inf", max_score, start=0, num=limit
            )

        members: Any = self._call("zrangebyscore", _query)
        return [str(member) for member in members]

    def lpush(self, key: str, value: str) -> int:
        return int(self._call("lpush", lambda: self._client.lpush(key, value)))

    def ltrim(self, key: str, start: int, stop: int) -> None:
        self._call("ltrim", lambda: self._client.ltrim(key, start, stop))

    def llen(self, key: str) -> int:
        return int(self._call("llen", lambda: self._client.llen(key)))

    def lrange(self, key: str, start: int, stop: int) -> list[str]:
        values: Any = self._call("lrange", lambda: self._client.lrange(key, start, stop))
        return [str(value) for value in values]

    def sadd(self, key: str, member: str) -> int:
        return int(self._call("sadd", lambda: self._client.sadd(key, member)))

    def srem(self, key: str, member: str) -> int:
        return int(self._call("srem", lambda: self._client.srem(key, member)))

    def scard(self, key: str) -> int:
        return int(self._call("scard", lambda: self._client.scard(key)))

    def smembers(self, key: str) -> set[str]:
        members: Any = self._call("smembers", lambda: self._client.smembers(key))
        return {str(member) for member in members}

    def hincrbyfloat(self, key: str, field: str, amount: float) -> float:
        return float(
            self._call(
                "hincrbyfloat", lambda: self._client.hincrbyfloat(key, field, amount)
            )
        )

    def hgetall(self, key: str) -> dict[str, str]:
        values: Any = self._call("hgetall", lambda: self._client.hgetall(key))
        return {str(field): str(value) for field, value in values.items()}


__all__ = ["RedisOrderedStore"]
