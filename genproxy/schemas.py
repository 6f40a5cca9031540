"""Pydantic payload models for the generate endpoint."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class GenerateRequest(BaseModel):
    """Caller payload for ``POST /generate``."""

    model_config = ConfigDict(extra="ignore", protected_namespaces=())

    provider: Optional[str] = Field(None, description="Provider identifier, e.g. stability")
    model: Optional[str] = Field(None, description="Provider model or engine name")
    prompt: Optional[str] = Field(None, description="Text prompt")
    width: Optional[int] = Field(None, gt=0, description="Width hint in pixels")
    height: Optional[int] = Field(None, gt=0, description="Height hint in pixels")
    steps: Optional[int] = Field(None, gt=0, description="Sampling steps hint")
    options: Optional[Dict[str, Any]] = Field(
        None,
        description="Provider specific overrides, applied over the top-level hints",
    )

    def merged_options(self) -> Dict[str, Any]:
        """Top-level hints first, then ``options`` spread on top."""

        merged: Dict[str, Any] = {
            key: value
            for key, value in (
                ("model", self.model),
                ("width", self.width),
                ("height", self.height),
                ("steps", self.steps),
            )
            if value is not None
        }
        merged.update(self.options or {})
        return merged


class GeneratedImage(BaseModel):
    b64: str = Field(..., description="Base64 of the bytes returned by the provider")
    mime: str = Field("image/png", description="MIME type of the image")


class ResponseMeta(BaseModel):
    uid: str = Field(..., description="Verified subject identifier")
    timestamp: str = Field(..., description="ISO-8601 UTC time the response was built")


class GenerateResponse(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    provider: str
    model: Optional[str] = None
    images: List[GeneratedImage] = Field(default_factory=list)
    meta: ResponseMeta


class ErrorResponse(BaseModel):
    error: str


__all__ = [
    "ErrorResponse",
    "GenerateRequest",
    "GenerateResponse",
    "GeneratedImage",
    "ResponseMeta",
]
