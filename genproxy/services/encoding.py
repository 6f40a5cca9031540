from __future__ import annotations

import base64
import re

DEFAULT_MIME = "image/png"

DATA_URL_RX = re.compile(r"^data:(?P<mime>[^;,]*)(?P<params>(?:;[^,]*)?),(?P<payload>.*)$", re.DOTALL)


def encode_image_bytes(data: bytes) -> str:
    """Return the base64 text of *data* without altering the bytes."""

    return base64.b64encode(bytes(data)).decode("ascii")


def split_data_uri(value: str) -> tuple[str, str]:
    """Split ``data:<mime>;base64,<payload>`` into (mime, payload)."""

    match = DATA_URL_RX.match(value.strip())
    if not match:
        raise ValueError("not a data URI")
    params = [p.strip().lower() for p in match.group("params").split(";") if p.strip()]
    if "base64" not in params:
        raise ValueError("data URI is not base64 encoded")
    mime = match.group("mime").strip().lower() or DEFAULT_MIME
    return mime, match.group("payload")


def strip_mime_params(content_type: str | None, default: str = DEFAULT_MIME) -> str:
    if not content_type:
        return default
    mime = content_type.split(";", 1)[0].strip().lower()
    return mime or default
