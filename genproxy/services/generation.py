"""Request orchestration for ``POST /generate``.

Order per request: authenticate, validate, dispatch, wrap. Identity is
checked before the body is even decoded so unauthenticated callers never
reach a provider. This is the only place failures become status codes.
"""
from __future__ import annotations

import datetime as dt
import json
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from pydantic import ValidationError as PydanticValidationError

from genproxy.errors import GenerationError, ValidationError
from genproxy.schemas import ErrorResponse, GenerateRequest, GenerateResponse, ResponseMeta
from genproxy.services.identity import AuthenticatedSubject, IdentityVerifier, extract_bearer_token
from genproxy.services.providers.registry import ProviderRegistry

log = logging.getLogger("genproxy.generate")

GENERIC_ERROR = "internal error"


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def format_timestamp(moment: dt.datetime) -> str:
    """ISO-8601 in UTC with millisecond precision and a ``Z`` suffix."""

    return moment.astimezone(dt.timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass
class Envelope:
    status_code: int
    body: Dict[str, Any]


class GenerationService:
    def __init__(
        self,
        verifier: IdentityVerifier,
        registry: ProviderRegistry,
        *,
        expose_errors: bool = True,
        clock: Optional[Callable[[], dt.datetime]] = None,
    ) -> None:
        self.verifier = verifier
        self.registry = registry
        self.expose_errors = expose_errors
        self.clock = clock or _utcnow

    def authenticate(self, authorization: str | None) -> AuthenticatedSubject:
        token = extract_bearer_token(authorization)
        return self.verifier.verify(token)

    @staticmethod
    def parse_request(body: bytes | str | None) -> GenerateRequest:
        if body is None or not body.strip():
            payload: Any = {}
        else:
            try:
                payload = json.loads(body)
            except ValueError as exc:
                raise ValidationError("Request body must be valid JSON") from exc
        if not isinstance(payload, dict):
            raise ValidationError("Request body must be a JSON object")

        try:
            request = GenerateRequest.model_validate(payload)
        except PydanticValidationError as exc:
            raise ValidationError.from_pydantic(exc) from exc

        if not (request.provider and request.provider.strip()) or not (
            request.prompt and request.prompt.strip()
        ):
            raise ValidationError("provider and prompt required")
        return request

    def _error(self, status_code: int, message: str) -> Envelope:
        if status_code >= 500 and not self.expose_errors:
            message = GENERIC_ERROR
        return Envelope(status_code, ErrorResponse(error=message or GENERIC_ERROR).model_dump())

    def handle(
        self,
        authorization: str | None,
        body: bytes | str | None,
        request_id: str | None = None,
    ) -> Envelope:
        rid = request_id or uuid.uuid4().hex[:8]
        provider = None
        try:
            subject = self.authenticate(authorization)
            request = self.parse_request(body)
            provider = request.provider
            log.info(
                "[generate] rid=%s uid=%s provider=%s model=%s prompt_len=%s",
                rid,
                subject.uid,
                provider,
                request.model,
                len(request.prompt or ""),
            )
            images = self.registry.dispatch(provider, request.prompt, request.merged_options())
        except GenerationError as exc:
            if exc.status_code >= 500:
                log.error("[generate] rid=%s provider=%s failed: %s", rid, provider, exc)
            else:
                log.warning(
                    "[generate] rid=%s rejected status=%s reason=%s", rid, exc.status_code, exc
                )
            return self._error(exc.status_code, exc.message)
        except Exception as exc:  # noqa: BLE001 - single conversion boundary
            log.exception("[generate] rid=%s provider=%s unexpected error", rid, provider)
            return self._error(500, str(exc))

        response = GenerateResponse(
            provider=provider,
            model=request.model,
            images=images,
            meta=ResponseMeta(uid=subject.uid, timestamp=format_timestamp(self.clock())),
        )
        log.info("[generate] rid=%s provider=%s images=%s", rid, provider, len(images))
        return Envelope(200, response.model_dump())
