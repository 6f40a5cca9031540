"""Stability AI text-to-image adapter."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional

import httpx
from pydantic import AliasChoices, Field

from genproxy.config import StabilityConfig
from genproxy.errors import ConfigurationError
from genproxy.schemas import GeneratedImage
from genproxy.services.providers.base import (
    ProviderOptions,
    ResponseParser,
    binary_images,
    encoded_image,
    has_json_content_type,
    raise_for_upstream,
)

log = logging.getLogger("genproxy.providers.stability")

DEFAULT_ENGINE = "stable-diffusion-v1-5"


class StabilityOptions(ProviderOptions):
    engine: str = Field(DEFAULT_ENGINE, validation_alias=AliasChoices("engine", "model"))
    cfg_scale: float = 7
    width: int = Field(512, gt=0)
    height: int = Field(512, gt=0)
    samples: int = Field(1, ge=1)
    steps: Optional[int] = Field(None, gt=0)


def _has_artifacts(response: httpx.Response) -> bool:
    if not has_json_content_type(response):
        return False
    try:
        payload = response.json()
    except ValueError:
        return False
    return isinstance(payload, dict) and isinstance(payload.get("artifacts"), list)


def _artifact_images(response: httpx.Response) -> List[GeneratedImage]:
    images: List[GeneratedImage] = []
    for artifact in response.json()["artifacts"]:
        if isinstance(artifact, dict) and artifact.get("base64"):
            images.append(encoded_image(artifact["base64"], "image/png", "StabilityAI"))
    return images


class StabilityProvider:
    name = "stability"
    error_label = "StabilityAI error"

    parser = ResponseParser(
        is_json=_has_artifacts,
        parse_json=_artifact_images,
        parse_binary=binary_images,
    )

    def __init__(self, config: StabilityConfig, client: httpx.Client) -> None:
        self.config = config
        self.client = client

    def build_payload(self, prompt: str, opts: StabilityOptions) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "text_prompts": [{"text": prompt}],
            "cfg_scale": opts.cfg_scale,
            "width": opts.width,
            "height": opts.height,
            "samples": opts.samples,
        }
        if opts.steps is not None:
            payload["steps"] = opts.steps
        return payload

    def generate(self, prompt: str, options: Mapping[str, Any]) -> List[GeneratedImage]:
        if not self.config.is_configured:
            raise ConfigurationError("STABILITY_API_KEY")

        opts = StabilityOptions.from_mapping(options)
        url = f"{self.config.api_base}/v1/generation/{opts.engine}/text-to-image"
        headers = {
            "Authorization": f"Bearer {self.config.api_key}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

        log.info(
            "[stability] engine=%s w=%s h=%s samples=%s",
            opts.engine,
            opts.width,
            opts.height,
            opts.samples,
        )
        response = self.client.post(url, json=self.build_payload(prompt, opts), headers=headers)
        raise_for_upstream(self.error_label, response)
        return self.parser.parse(response)
