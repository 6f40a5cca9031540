"""Hugging Face Inference API adapter.

Models are addressed by name in the URL path. Most text-to-image models
answer with raw image bytes; a few answer with JSON, of which only the
``[{"generated_image": "<base64>"}]`` shape is understood here.
"""
from __future__ import annotations

import logging
from typing import Any, List, Mapping

import httpx

from genproxy.config import HuggingFaceConfig
from genproxy.errors import ConfigurationError, UnsupportedResponseShapeError
from genproxy.schemas import GeneratedImage
from genproxy.services.providers.base import (
    ProviderOptions,
    ResponseParser,
    binary_images,
    encoded_image,
    has_json_content_type,
    raise_for_upstream,
)

log = logging.getLogger("genproxy.providers.huggingface")

DEFAULT_MODEL = "stabilityai/stable-diffusion-2"


class HuggingFaceOptions(ProviderOptions):
    model: str = DEFAULT_MODEL


def _generated_image(response: httpx.Response) -> List[GeneratedImage]:
    try:
        payload = response.json()
    except ValueError as exc:
        raise UnsupportedResponseShapeError(
            "HuggingFace returned a JSON content type with an unreadable body"
        ) from exc

    first = payload[0] if isinstance(payload, list) and payload else None
    b64 = first.get("generated_image") if isinstance(first, dict) else None
    if not b64:
        raise UnsupportedResponseShapeError(
            "HuggingFace returned JSON but no image found; adapt adapter for this model"
        )
    return [encoded_image(b64, "image/png", "HuggingFace")]


class HuggingFaceProvider:
    name = "huggingface"
    error_label = "HuggingFace error"

    parser = ResponseParser(
        is_json=has_json_content_type,
        parse_json=_generated_image,
        parse_binary=binary_images,
    )

    def __init__(self, config: HuggingFaceConfig, client: httpx.Client) -> None:
        self.config = config
        self.client = client

    def generate(self, prompt: str, options: Mapping[str, Any]) -> List[GeneratedImage]:
        if not self.config.is_configured:
            raise ConfigurationError("HUGGINGFACE_API_KEY")

        opts = HuggingFaceOptions.from_mapping(options)
        url = f"{self.config.api_base}/models/{opts.model}"
        headers = {
            "Authorization": f"Bearer {self.config.api_key}",
            "Accept": "*/*",
        }
        payload = {"inputs": prompt, "options": {"wait_for_model": True}}

        log.info("[huggingface] model=%s", opts.model)
        response = self.client.post(url, json=payload, headers=headers)
        raise_for_upstream(self.error_label, response)
        return self.parser.parse(response)
