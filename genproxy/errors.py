"""Failure kinds raised while serving a generation request.

Each error carries the HTTP status the orchestrator reports for it. Adapter
errors are left to propagate; only the orchestrator turns them into a
response envelope.
"""
from __future__ import annotations

from pydantic import ValidationError as PydanticValidationError


class GenerationError(Exception):
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class AuthenticationError(GenerationError):
    status_code = 401


class ValidationError(GenerationError):
    status_code = 400

    @classmethod
    def from_pydantic(cls, exc: PydanticValidationError, prefix: str = "Invalid request") -> "ValidationError":
        parts = []
        for err in exc.errors():
            loc = ".".join(str(p) for p in err.get("loc", ()))
            parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
        return cls(f"{prefix}: " + "; ".join(parts))


class UnknownProviderError(GenerationError):
    status_code = 400

    def __init__(self, provider: str) -> None:
        super().__init__("Unknown provider")
        self.provider = provider


class ConfigurationError(GenerationError):
    """A provider was selected but the server lacks its credential."""

    def __init__(self, setting: str) -> None:
        super().__init__(f"Missing {setting} env var")
        self.setting = setting


class UpstreamError(GenerationError):
    """The provider answered with a non-success status."""

    def __init__(self, label: str, status: int, body: str) -> None:
        super().__init__(f"{label} {status}: {body}")
        self.label = label
        self.upstream_status = status
        self.body = body


class UnsupportedResponseShapeError(GenerationError):
    pass


__all__ = [
    "AuthenticationError",
    "ConfigurationError",
    "GenerationError",
    "UnknownProviderError",
    "UnsupportedResponseShapeError",
    "UpstreamError",
    "ValidationError",
]
