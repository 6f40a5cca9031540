"""Pollinations adapter.

Best effort: the key is optional and only the prompt is forwarded. The
service answers with either an inline data URI or a URL that has to be
fetched separately.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping

import httpx

from genproxy.config import PollinationsConfig
from genproxy.errors import UnsupportedResponseShapeError, UpstreamError
from genproxy.schemas import GeneratedImage
from genproxy.services.encoding import encode_image_bytes, split_data_uri, strip_mime_params
from genproxy.services.providers.base import raise_for_upstream

log = logging.getLogger("genproxy.providers.pollinations")


class PollinationsProvider:
    name = "pollinations"
    error_label = "Pollinations error"

    def __init__(self, config: PollinationsConfig, client: httpx.Client) -> None:
        self.config = config
        self.client = client

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.config.api_key:
            headers["Authorization"] = f"Bearer {self.config.api_key}"
        return headers

    def _fetch(self, url: str) -> GeneratedImage:
        response = self.client.get(url)
        if not response.is_success:
            raise UpstreamError("Pollinations image fetch error", response.status_code, response.text)
        mime = strip_mime_params(response.headers.get("content-type"))
        return GeneratedImage(b64=encode_image_bytes(response.content), mime=mime)

    def generate(self, prompt: str, options: Mapping[str, Any]) -> List[GeneratedImage]:
        # Size, steps and model hints are not supported by this endpoint.
        response = self.client.post(self.config.api_url, json={"prompt": prompt}, headers=self._headers())
        raise_for_upstream(self.error_label, response)

        try:
            payload = response.json()
        except ValueError as exc:
            raise UnsupportedResponseShapeError("Pollinations returned a non-JSON body") from exc
        if not isinstance(payload, dict):
            raise UnsupportedResponseShapeError("Pollinations returned an unexpected JSON shape")

        image = payload.get("image")
        if isinstance(image, str) and image.startswith("data:"):
            try:
                mime, b64 = split_data_uri(image)
            except ValueError as exc:
                raise UnsupportedResponseShapeError("Pollinations returned a malformed data URI") from exc
            return [GeneratedImage(b64=b64, mime=mime)]

        url = payload.get("url")
        if isinstance(url, str) and url:
            log.info("[pollinations] fetching image url=%s", url)
            return [self._fetch(url)]

        log.warning("[pollinations] response carried neither image nor url; returning no images")
        return []
