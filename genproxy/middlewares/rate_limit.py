from __future__ import annotations

import logging
import math
import time
from collections import deque
from typing import Any, Awaitable, Callable, Deque, Dict, Iterable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

logger = logging.getLogger("genproxy.ratelimit")


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Sliding-window limit of ``max_requests`` per ``window_seconds`` per client address.

    State lives on the event loop thread only.
    """

    def __init__(
        self,
        app,
        *,
        max_requests: int = 8,
        window_seconds: float = 10.0,
        watch_paths: Iterable[str] = ("/generate",),
        methods: Iterable[str] = ("POST",),
        clock: Callable[[], float] = time.monotonic,
        **_: Any,
    ) -> None:  # type: ignore[override]
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.watch_paths = tuple(watch_paths)
        self.methods = {m.upper() for m in methods}
        self.clock = clock
        self._hits: Dict[str, Deque[float]] = {}
        super().__init__(app)

    @staticmethod
    def client_key(request: Request) -> str:
        if request.client and request.client.host:
            return request.client.host
        return "unknown"

    def _prune(self, now: float) -> None:
        cutoff = now - self.window_seconds
        for key in list(self._hits):
            hits = self._hits[key]
            while hits and hits[0] <= cutoff:
                hits.popleft()
            if not hits:
                del self._hits[key]

    def check(self, key: str) -> float | None:
        """Record a hit for *key*; return seconds to wait when over the limit."""

        now = self.clock()
        self._prune(now)
        hits = self._hits.setdefault(key, deque())
        if len(hits) >= self.max_requests:
            return max(hits[0] + self.window_seconds - now, 0.0)
        hits.append(now)
        return None

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        if self.max_requests <= 0 or request.method not in self.methods or not any(
            request.url.path.startswith(prefix) for prefix in self.watch_paths
        ):
            return await call_next(request)

        key = self.client_key(request)
        retry_after = self.check(key)
        if retry_after is not None:
            logger.warning("[ratelimit] client=%s path=%s throttled", key, request.url.path)
            return JSONResponse(
                status_code=429,
                content={"error": "Too many requests, please try again later."},
                headers={"Retry-After": str(max(math.ceil(retry_after), 1))},
            )
        return await call_next(request)
