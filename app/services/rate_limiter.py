"""Token-bucket rate limiting.

Each client owns a bucket of `capacity` tokens refilled at `refill_rate`
tokens per second; a request spends one token and is rejected when the
bucket is empty.  Bursts up to capacity are allowed while the long-run
rate stays bounded, and only two numbers are stored per client.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Protocol, runtime_checkable


@dataclass(frozen=True, slots=True)
class RateLimitResult:
    """Outcome of one check.

    retry_after is the number of seconds until the next token (0 if allowed).
    """

    allowed: bool
    remaining: int
    limit: int
    retry_after: float


@dataclass(frozen=True, slots=True)
class RateLimitConfig:
    """capacity is the burst size, refill_rate the sustained tokens per second."""

    capacity: int = 60
    refill_rate: float = 1.0


# Login is a brute-force target: 10 attempts, then one every ~6 seconds.
LOGIN_LIMIT = RateLimitConfig(capacity=10, refill_rate=0.17)
# Progression writes lock a course row; keep a single client from hogging it.
WRITE_LIMIT = RateLimitConfig(capacity=30, refill_rate=0.5)


def _spend(tokens: float, elapsed: float, config: RateLimitConfig) -> tuple[bool, float]:
    """Refill for `elapsed` seconds, then try to take one token.

    Returns (allowed, tokens left in the bucket).
    """
    tokens = min(float(config.capacity), tokens + elapsed * config.refill_rate)
    if tokens < 1:
        return False, tokens
    return True, tokens - 1


def _result(allowed: bool, tokens: float, config: RateLimitConfig) -> RateLimitResult:
    return RateLimitResult(
        allowed=allowed,
        remaining=int(tokens) if allowed else 0,
        limit=config.capacity,
        retry_after=0 if allowed else (1 - tokens) / config.refill_rate,
    )


@runtime_checkable
class RateLimiter(Protocol):
    async def check(self, key: str, config: RateLimitConfig) -> RateLimitResult: ...
    async def reset(self, key: str) -> None: ...


class InMemoryRateLimiter:
    """Buckets in a dict, one set per process.

    Behind a load balancer each process would count separately; use the
    Redis limiter there.
    """

    def __init__(self) -> None:
        self._tokens: dict[str, float] = {}
        self._seen_at: dict[str, float] = {}

    def clear(self) -> None:
        self._tokens.clear()
        self._seen_at.clear()

    async def check(self, key: str, config: RateLimitConfig) -> RateLimitResult:
        now = time.monotonic()
        elapsed = now - self._seen_at.get(key, now)
        allowed, left = _spend(self._tokens.get(key, float(config.capacity)), elapsed, config)
        self._tokens[key], self._seen_at[key] = left, now
        return _result(allowed, left, config)

    async def reset(self, key: str) -> None:
        self._tokens.pop(key, None)
        self._seen_at.pop(key, None)


class RedisRateLimiter:
    """Buckets in Redis hashes, shared by every API instance.

    Refill and spend happen inside one Lua call so two instances can never
    take the same token.  The script reads the clock from Redis itself;
    API hosts with skewed clocks would otherwise refill unevenly.
    """

    # KEYS[1] bucket, ARGV capacity and refill_rate.
    # Returns {allowed 0|1, tokens left as a string}.
    _SPEND = """
    local capacity = tonumber(ARGV[1])
    local rate = tonumber(ARGV[2])
    local clock = redis.call('TIME')
    local now = tonumber(clock[1]) + tonumber(clock[2]) / 1000000

    local t = redis.call('HGET', KEYS[1], 't')
    local ts = redis.call('HGET', KEYS[1], 'ts')
    local left = capacity
    if t then
        left = math.min(capacity, tonumber(t) + (now - tonumber(ts)) * rate)
    end

    local ok = 0
    if left >= 1 then
        ok = 1
        left = left - 1
    end
    redis.call('HSET', KEYS[1], 't', tostring(left), 'ts', tostring(now))
    redis.call('PEXPIRE', KEYS[1], math.ceil(capacity / rate * 1000) + 60000)
    return {ok, tostring(left)}
    """

    _PREFIX = "ratelimit:"

    def __init__(self, redis_client) -> None:
        self._redis = redis_client
        self._spend = redis_client.register_script(self._SPEND)

    async def check(self, key: str, config: RateLimitConfig) -> RateLimitResult:
        ok, left = await self._spend(
            keys=[self._PREFIX + key], args=[config.capacity, config.refill_rate]
        )
        return _result(bool(ok), float(left), config)

    async def reset(self, key: str) -> None:
        await self._redis.delete(self._PREFIX + key)
