"""Per-client request ceiling enforced before a request body is read."""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from typing import Callable

from starlette.responses import PlainTextResponse
from starlette.types import ASGIApp, Receive, Scope, Send

LOGGER = logging.getLogger("pdf_image_service.ratelimit")


@dataclass
class _Window:
    started_at: float
    count: int


class FixedWindowRateLimiter:
    """Allow ``max_requests`` per client within each ``window_seconds`` window.

    A client's window opens with its first request and resets once it has
    elapsed. ``clock`` is injectable so tests can move time.
    """

    def __init__(
        self,
        max_requests: int,
        window_seconds: float,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: dict[str, _Window] = {}

    def hit(self, key: str) -> bool:
        """Record a request from ``key``; return False when it is over the ceiling."""
        now = self._clock()
        self._evict(now)
        window = self._windows.get(key)
        if window is None:
            self._windows[key] = _Window(started_at=now, count=1)
            return True
        if window.count >= self.max_requests:
            return False
        window.count += 1
        return True

    def retry_after(self, key: str) -> int:
        """Seconds until ``key``'s window resets, rounded up."""
        window = self._windows.get(key)
        if window is None:
            return 0
        remaining = window.started_at + self.window_seconds - self._clock()
        return max(0, math.ceil(remaining))

    def reset(self) -> None:
        self._windows.clear()

    def _evict(self, now: float) -> None:
        expired = [k for k, w in self._windows.items() if now - w.started_at >= self.window_seconds]
        for k in expired:
            del self._windows[k]


class RateLimitMiddleware:
    """ASGI middleware consulting ``app.state.rate_limiter`` on every HTTP request.

    The limiter is looked up per request, so it can be replaced at runtime.
    """

    def __init__(self, app: ASGIApp, *, exempt_paths: frozenset[str] = frozenset()) -> None:
        self.app = app
        self.exempt_paths = exempt_paths

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or scope.get("path") in self.exempt_paths:
            await self.app(scope, receive, send)
            return

        limiter: FixedWindowRateLimiter | None = getattr(scope["app"].state, "rate_limiter", None)
        client = scope.get("client")
        key = client[0] if client else "unknown"
        if limiter is not None and not limiter.hit(key):
            LOGGER.info("Rate limit exceeded for %s on %s", key, scope.get("path"))
            response = PlainTextResponse(
                "Too many requests, please try again later.",
                status_code=429,
                headers={"Retry-After": str(limiter.retry_after(key))},
            )
            await response(scope, receive, send)
            return

        await self.app(scope, receive, send)
