"""Provider registry built once at startup."""
from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Dict, List, Mapping

import httpx

from genproxy.config import Settings
from genproxy.errors import UnknownProviderError
from genproxy.schemas import GeneratedImage
from genproxy.services.providers.base import ImageProvider
from genproxy.services.providers.huggingface import HuggingFaceProvider
from genproxy.services.providers.pollinations import PollinationsProvider
from genproxy.services.providers.stability import StabilityProvider

log = logging.getLogger("genproxy.providers")


class ProviderName(str, Enum):
    STABILITY = "stability"
    HUGGINGFACE = "huggingface"
    POLLINATIONS = "pollinations"


class ProviderRegistry:
    def __init__(self, providers: Mapping[ProviderName, ImageProvider]) -> None:
        self._providers: Dict[ProviderName, ImageProvider] = dict(providers)

    def resolve(self, provider_id: str) -> ImageProvider:
        try:
            key = ProviderName(provider_id)
        except ValueError:
            raise UnknownProviderError(provider_id) from None
        provider = self._providers.get(key)
        if provider is None:
            raise UnknownProviderError(provider_id)
        return provider

    def dispatch(self, provider_id: str, prompt: str, options: Mapping[str, Any]) -> List[GeneratedImage]:
        provider = self.resolve(provider_id)
        log.debug("[dispatch] provider=%s option_keys=%s", provider.name, sorted(options))
        return provider.generate(prompt, options)

    def names(self) -> List[str]:
        return [name.value for name in self._providers]


def build_registry(settings: Settings, client: httpx.Client) -> ProviderRegistry:
    """Wire one adapter per known provider around the shared HTTP client."""

    return ProviderRegistry(
        {
            ProviderName.STABILITY: StabilityProvider(settings.stability, client),
            ProviderName.HUGGINGFACE: HuggingFaceProvider(settings.huggingface, client),
            ProviderName.POLLINATIONS: PollinationsProvider(settings.pollinations, client),
        }
    )


def build_http_client(settings: Settings) -> httpx.Client:
    upstream = settings.upstream
    timeout = httpx.Timeout(upstream.timeout_seconds or None, connect=10.0)
    return httpx.Client(proxy=upstream.proxy, timeout=timeout)
