"""Simple in-memory rate limiter middleware for the chat routes.

Sliding-window limiter with a per-minute window and a small per-second
burst, keyed by client IP. State is per process; with several workers
each one enforces its own limits.
"""

from __future__ import annotations

import time
from collections import deque
from dataclasses import dataclass
from typing import Awaitable, Callable

from fastapi import Request
from fastapi.responses import JSONResponse, Response

from .config import Settings

MINUTE = 60.0
SECOND = 1.0


@dataclass
class _Bucket:
    per_minute: deque[float]
    per_second: deque[float]


@dataclass(slots=True)
class RateDecision:
    allowed: bool
    limit: int
    remaining: int
    retry_after: int


class InMemoryRateLimiter:
    def __init__(
        self,
        per_minute: int,
        per_second: int,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.per_minute_limit = per_minute
        self.per_second_limit = per_second
        self._clock = clock
        self._buckets: dict[str, _Bucket] = {}

    def _get_bucket(self, key: str) -> _Bucket:
        bucket = self._buckets.get(key)
        if bucket is None:
            bucket = _Bucket(per_minute=deque(), per_second=deque())
            self._buckets[key] = bucket
        return bucket

    def check(self, key: str) -> RateDecision:
        """Record a request for ``key`` if it fits both windows."""

        now = self._clock()
        bucket = self._get_bucket(key)

        while bucket.per_minute and now - bucket.per_minute[0] >= MINUTE:
            bucket.per_minute.popleft()
        while bucket.per_second and now - bucket.per_second[0] >= SECOND:
            bucket.per_second.popleft()

        remaining_min = self.per_minute_limit - len(bucket.per_minute)
        remaining_sec = self.per_second_limit - len(bucket.per_second)
        limit = self.per_minute_limit

        if remaining_min <= 0 or remaining_sec <= 0:
            reset_min = MINUTE - (now - bucket.per_minute[0]) if remaining_min <= 0 else 0.0
            reset_sec = SECOND - (now - bucket.per_second[0]) if remaining_sec <= 0 else 0.0
            return RateDecision(False, limit, 0, max(1, int(max(reset_min, reset_sec) + 0.999)))

        bucket.per_minute.append(now)
        bucket.per_second.append(now)
        return RateDecision(True, limit, max(remaining_min - 1, 0), 0)


def _extract_client_ip(request: Request, trust_x_forwarded_for: bool) -> str:
    """Client IP for rate limiting.

    ``X-Forwarded-For`` is only consulted when the app sits behind a proxy
    that overwrites it; otherwise a client could spoof its way past limits.
    """

    if trust_x_forwarded_for:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            ip = forwarded.split(",")[0].strip()
            if ip:
                return ip

    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def _matches(patterns: list[str], path: str) -> bool:
    for pattern in patterns:
        if pattern.endswith("/*"):
            if path.startswith(pattern[:-1]):
                return True
        elif path == pattern:
            return True
    return False


def create_rate_limit_middleware(
    settings: Settings,
    limiter: InMemoryRateLimiter | None = None,
) -> Callable[[Request, Callable[[Request], Awaitable[Response]]], Awaitable[Response]]:
    limiter = limiter or InMemoryRateLimiter(
        per_minute=settings.rate_limit_per_minute,
        per_second=settings.rate_limit_burst_per_second,
    )

    async def rate_limit_middleware(request: Request, call_next: Callable) -> Response:
        path = request.url.path
        if not settings.rate_limit_enabled or not _matches(settings.rate_limit_paths, path):
            return await call_next(request)

        key = f"ip:{_extract_client_ip(request, settings.trust_x_forwarded_for)}"
        decision = limiter.check(key)
        if not decision.allowed:
            return JSONResponse(
                status_code=429,
                headers={
                    "Retry-After": str(decision.retry_after),
                    "X-RateLimit-Limit": str(decision.limit),
                    "X-RateLimit-Remaining": "0",
                },
                content={
                    "error": "rate_limit_exceeded",
                    "message": "Trop de messages en peu de temps. Merci de patienter quelques secondes.",
                    "retry_after_seconds": decision.retry_after,
                },
            )

        response = await call_next(request)
        response.headers.setdefault("X-RateLimit-Limit", str(decision.limit))
        response.headers.setdefault("X-RateLimit-Remaining", str(decision.remaining))
        return response

    return rate_limit_middleware
