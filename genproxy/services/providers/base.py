from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, List, Mapping, Protocol

import httpx
from pydantic import BaseModel, ConfigDict
from pydantic import ValidationError as PydanticValidationError

from genproxy.errors import UnsupportedResponseShapeError, UpstreamError, ValidationError
from genproxy.schemas import GeneratedImage
from genproxy.services.encoding import DEFAULT_MIME, encode_image_bytes


class ImageProvider(Protocol):
    name: str

    def generate(self, prompt: str, options: Mapping[str, Any]) -> List[GeneratedImage]:
        ...


class ProviderOptions(BaseModel):
    """Closed option set for one provider; unknown keys are dropped."""

    model_config = ConfigDict(extra="ignore", protected_namespaces=())

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any] | None) -> "ProviderOptions":
        # ``None`` and blank strings mean "not supplied" so the provider default applies.
        present = {k: v for k, v in (values or {}).items() if not _is_blank(v)}
        try:
            return cls.model_validate(present)
        except PydanticValidationError as exc:
            raise ValidationError.from_pydantic(exc, prefix="Invalid options") from exc


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


ParseStrategy = Callable[[httpx.Response], List[GeneratedImage]]


@dataclass(frozen=True)
class ResponseParser:
    """Pick the JSON or binary strategy for a successful response."""

    is_json: Callable[[httpx.Response], bool]
    parse_json: ParseStrategy
    parse_binary: ParseStrategy

    def parse(self, response: httpx.Response) -> List[GeneratedImage]:
        if self.is_json(response):
            return self.parse_json(response)
        return self.parse_binary(response)


def has_json_content_type(response: httpx.Response) -> bool:
    return "application/json" in response.headers.get("content-type", "").lower()


def raise_for_upstream(label: str, response: httpx.Response) -> None:
    if not response.is_success:
        raise UpstreamError(label, response.status_code, response.text)


def encoded_image(value: Any, mime: str, source: str) -> GeneratedImage:
    """Wrap an already base64-encoded field taken from a provider body."""

    if not isinstance(value, str):
        raise UnsupportedResponseShapeError(f"{source} returned a non-string image payload")
    return GeneratedImage(b64=value, mime=mime)


def binary_images(response: httpx.Response, mime: str = DEFAULT_MIME) -> List[GeneratedImage]:
    return [GeneratedImage(b64=encode_image_bytes(response.content), mime=mime)]


__all__ = [
    "ImageProvider",
    "ProviderOptions",
    "ResponseParser",
    "binary_images",
    "encoded_image",
    "has_json_content_type",
    "raise_for_upstream",
]
