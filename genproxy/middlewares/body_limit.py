from __future__ import annotations

import logging
import time
import uuid
from typing import Any, Awaitable, Callable, Iterable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

logger = logging.getLogger("genproxy.guard")

MAX_BODY_BYTES = 2 * 1024 * 1024  # 2 MiB


class BodyLimitMiddleware(BaseHTTPMiddleware):
    """Reject requests whose body exceeds ``max_body_bytes``."""

    def __init__(
        self,
        app,
        *,
        max_body_bytes: int | None = None,
        watch_paths: Iterable[str] = ("/generate",),
        **_: Any,
    ) -> None:  # type: ignore[override]
        self.max_body_bytes = self._normalise_limit(max_body_bytes, MAX_BODY_BYTES)
        self.watch_paths = tuple(watch_paths)
        super().__init__(app)

    @staticmethod
    def _normalise_limit(candidate: int | None, fallback: int) -> int | None:
        if candidate is None:
            candidate = fallback
        if candidate <= 0:
            return None
        return candidate

    def _too_large(self, content_length: int | None, body_len: int) -> bool:
        if self.max_body_bytes is None:
            return False
        if content_length and content_length > self.max_body_bytes:
            return True
        return body_len > self.max_body_bytes

    def _reject(self, rid: str, path: str, size: int | None) -> Response:
        logger.warning(
            "[guard] rid=%s path=%s rejected oversize=%s limit=%s",
            rid,
            path,
            size,
            self.max_body_bytes,
        )
        return JSONResponse(status_code=413, content={"error": "request entity too large"})

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        if request.method not in {"POST", "PUT", "PATCH"}:
            return await call_next(request)

        path = request.url.path
        if not any(path.startswith(prefix) for prefix in self.watch_paths):
            return await call_next(request)

        rid = request.headers.get("X-Request-ID") or str(uuid.uuid4())[:8]
        start = time.time()

        content_length_header = request.headers.get("content-length")
        try:
            content_length = int(content_length_header) if content_length_header else None
        except (TypeError, ValueError):
            content_length = None

        # A declared oversize length is refused before the body is read.
        if self._too_large(content_length, 0):
            return self._reject(rid, path, content_length)

        body = await request.body()
        size = len(body)
        if self._too_large(None, size):
            return self._reject(rid, path, size)

        async def receive() -> dict[str, Any]:
            return {"type": "http.request", "body": body, "more_body": False}

        response = await call_next(Request(request.scope, receive))
        duration_ms = int((time.time() - start) * 1000)
        logger.info(
            "[guard] rid=%s path=%s size=%s status=%s dur_ms=%s",
            rid,
            path,
            size,
            response.status_code,
            duration_ms,
        )
        return response
