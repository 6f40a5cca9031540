"""Provider adapters and the registry that selects between them."""
from __future__ import annotations

from genproxy.services.providers.base import ImageProvider
from genproxy.services.providers.registry import (
    ProviderName,
    ProviderRegistry,
    build_http_client,
    build_registry,
)

__all__ = [
    "ImageProvider",
    "ProviderName",
    "ProviderRegistry",
    "build_http_client",
    "build_registry",
]
