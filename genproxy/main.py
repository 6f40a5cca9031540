from __future__ import annotations

import logging
import uuid
from contextlib import asynccontextmanager
from typing import Any, Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from genproxy import __version__
from genproxy.config import Settings, get_settings
from genproxy.middlewares import BodyLimitMiddleware, RateLimitMiddleware
from genproxy.schemas import ErrorResponse, GenerateResponse
from genproxy.services.generation import GenerationService
from genproxy.services.identity import FirebaseIdentityVerifier, IdentityVerifier
from genproxy.services.providers import ProviderRegistry, build_http_client, build_registry

log = logging.getLogger("genproxy")


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # keep uvicorn loggers on the service level
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access", "genproxy"):
        logging.getLogger(name).setLevel(level)


def create_app(
    settings: Optional[Settings] = None,
    *,
    verifier: Optional[IdentityVerifier] = None,
    http_client: Optional[httpx.Client] = None,
    registry: Optional[ProviderRegistry] = None,
) -> FastAPI:
    """Assemble the service; collaborators can be injected for tests."""

    settings = settings or get_settings()
    owns_client = http_client is None
    client = http_client or build_http_client(settings)
    registry = registry or build_registry(settings, client)
    verifier = verifier or FirebaseIdentityVerifier(settings.firebase_project_id)
    service = GenerationService(
        verifier,
        registry,
        expose_errors=settings.upstream.expose_errors,
    )

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        yield
        if owns_client:
            client.close()

    app = FastAPI(title="Image Generation Proxy", version=__version__, lifespan=lifespan)
    app.state.settings = settings
    app.state.generation_service = service

    app.add_middleware(BodyLimitMiddleware, max_body_bytes=settings.guard.max_body_bytes)
    app.add_middleware(
        RateLimitMiddleware,
        max_requests=settings.guard.rate_limit_max,
        window_seconds=settings.guard.rate_limit_window_seconds,
    )

    allow_all = "*" in settings.allowed_origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if allow_all else settings.allowed_origins,
        allow_credentials=not allow_all,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
        max_age=86400,
    )

    log.info(
        "Generate proxy ready",
        extra={
            "providers": registry.names(),
            "max_body_bytes": settings.guard.max_body_bytes,
            "rate_limit": f"{settings.guard.rate_limit_max}/{settings.guard.rate_limit_window_seconds}s",
        },
    )

    @app.get("/health")
    def health() -> dict[str, bool]:
        return {"ok": True}

    error_responses: dict[int | str, dict[str, Any]] = {
        code: {"model": ErrorResponse} for code in (400, 401, 413, 429, 500)
    }

    @app.post(
        "/generate",
        response_model=GenerateResponse,
        responses=error_responses,
    )
    async def generate(request: Request) -> JSONResponse:
        rid = request.headers.get("X-Request-ID") or str(uuid.uuid4())[:8]
        body = await request.body()
        envelope = await run_in_threadpool(
            service.handle,
            request.headers.get("authorization"),
            body,
            rid,
        )
        return JSONResponse(
            content=envelope.body,
            status_code=envelope.status_code,
            headers={"X-Request-ID": rid},
        )

    return app


settings = get_settings()
configure_logging(settings.log_level)
app = create_app(settings)


if __name__ == "__main__":  # pragma: no cover - local dev entrypoint
    import uvicorn

    log.info("Generate proxy listening on %s", settings.port)
    uvicorn.run(app, host="0.0.0.0", port=settings.port, log_level=settings.log_level.lower())
