from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import List
from urllib.parse import urlparse


def _as_bool(value: str | None, default: bool) -> bool:
    """Interpret common truthy / falsy strings while providing a default."""

    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _as_int(value: str | None, default: int) -> int:
    if value is None or not value.strip():
        return default
    try:
        return max(int(value), 0)
    except (TypeError, ValueError):
        return default


def _as_float(value: str | None, default: float) -> float:
    if value is None or not value.strip():
        return default
    try:
        return max(float(value), 0.0)
    except (TypeError, ValueError):
        return default


def _parse_allowed_origins(raw: str | None) -> List[str]:
    """Normalise comma-separated origins into values accepted by CORSMiddleware."""

    if not raw:
        return ["*"]

    cleaned: List[str] = []
    for origin in raw.split(","):
        value = origin.strip()
        if not value:
            continue
        if value == "*":
            return ["*"]

        parsed = urlparse(value)
        if parsed.scheme and parsed.netloc:
            normalised = f"{parsed.scheme}://{parsed.netloc}"
        else:
            normalised = value

        if normalised not in cleaned:
            cleaned.append(normalised)

    return cleaned or ["*"]


@dataclass
class StabilityConfig:
    api_key: str | None = None
    api_base: str = "https://api.stability.ai"

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)


@dataclass
class HuggingFaceConfig:
    api_key: str | None = None
    api_base: str = "https://api-inference.huggingface.co"

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)


@dataclass
class PollinationsConfig:
    api_key: str | None = None
    api_url: str = "https://pollinations.ai/api/v3/generate"


@dataclass
class UpstreamConfig:
    timeout_seconds: float = 60.0
    proxy: str | None = None
    expose_errors: bool = True


@dataclass
class GuardConfig:
    max_body_bytes: int = 2 * 1024 * 1024
    rate_limit_max: int = 8
    rate_limit_window_seconds: float = 10.0

    @classmethod
    def from_env(cls) -> "GuardConfig":
        return cls(
            max_body_bytes=_as_int(os.getenv("MAX_BODY_BYTES"), 2 * 1024 * 1024),
            rate_limit_max=_as_int(os.getenv("RATE_LIMIT_MAX"), 8),
            rate_limit_window_seconds=_as_float(os.getenv("RATE_LIMIT_WINDOW_SECONDS"), 10.0),
        )


@dataclass
class Settings:
    log_level: str = "INFO"
    port: int = 3000
    allowed_origins: List[str] | None = None
    firebase_project_id: str | None = None
    stability: StabilityConfig | None = None
    huggingface: HuggingFaceConfig | None = None
    pollinations: PollinationsConfig | None = None
    upstream: UpstreamConfig | None = None
    guard: GuardConfig | None = None

    def __post_init__(self) -> None:
        if self.allowed_origins is None:
            self.allowed_origins = ["*"]
        if self.stability is None:
            self.stability = StabilityConfig()
        if self.huggingface is None:
            self.huggingface = HuggingFaceConfig()
        if self.pollinations is None:
            self.pollinations = PollinationsConfig()
        if self.upstream is None:
            self.upstream = UpstreamConfig()
        if self.guard is None:
            self.guard = GuardConfig()


def load_settings() -> Settings:
    """Read settings from the process environment."""

    def _get(name: str, default: str | None = None) -> str | None:
        v = os.getenv(name)
        return v if v is not None else default

    stability = StabilityConfig(
        api_key=_get("STABILITY_API_KEY") or None,
        api_base=(_get("STABILITY_API_BASE") or "https://api.stability.ai").rstrip("/"),
    )
    huggingface = HuggingFaceConfig(
        api_key=_get("HUGGINGFACE_API_KEY") or None,
        api_base=(_get("HUGGINGFACE_API_BASE") or "https://api-inference.huggingface.co").rstrip("/"),
    )
    pollinations = PollinationsConfig(
        api_key=_get("POLLINATIONS_API_KEY") or None,
        api_url=_get("POLLINATIONS_API_URL") or "https://pollinations.ai/api/v3/generate",
    )
    upstream = UpstreamConfig(
        timeout_seconds=_as_float(_get("UPSTREAM_TIMEOUT_SECONDS"), 60.0),
        proxy=_get("UPSTREAM_PROXY") or None,
        expose_errors=_as_bool(_get("EXPOSE_UPSTREAM_ERRORS"), True),
    )

    return Settings(
        log_level=(_get("LOG_LEVEL", "INFO") or "INFO").upper(),
        port=_as_int(_get("PORT"), 3000),
        allowed_origins=_parse_allowed_origins(_get("ALLOWED_ORIGINS", "*")),
        firebase_project_id=_get("FIREBASE_PROJECT_ID") or _get("GOOGLE_CLOUD_PROJECT") or None,
        stability=stability,
        huggingface=huggingface,
        pollinations=pollinations,
        upstream=upstream,
        guard=GuardConfig.from_env(),
    )


@lru_cache()
def get_settings() -> Settings:
    return load_settings()
