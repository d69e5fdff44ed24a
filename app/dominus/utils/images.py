"""Helpers for moving images between uploads, messages and the screen."""

from __future__ import annotations
import base64
import binascii
from typing import Optional, Union

from ..models import ImageInput

ALLOWED_MIME_TYPES = ("image/png", "image/jpeg", "image/webp", "image/gif")


def encode_upload(data: bytes, mime_type: str) -> ImageInput:
    """Turn raw uploaded bytes into the base64 ImageInput the gateway takes."""
    if not data:
        raise ValueError("The uploaded image is empty.")
    if mime_type not in ALLOWED_MIME_TYPES:
        raise ValueError(f"Unsupported image type: {mime_type}")
    return ImageInput(data=base64.b64encode(data).decode("ascii"), mime_type=mime_type)


def data_url(data: str, mime_type: str = "image/png") -> str:
    """Base64 payload as a data URL; payloads that already are one pass through."""
    if data.startswith("data:"):
        return data
    return f"data:{mime_type};base64,{data}"


def display_source(payload: Optional[str]) -> Optional[Union[str, bytes]]:
    """
    What st.image can render for a stored payload: URLs pass through, base64
    (bare or as a data URL) is decoded to bytes. Undecodable payloads give None.
    """
    if not payload:
        return None
    if payload.startswith(("http://", "https://")):
        return payload
    if payload.startswith("data:") and "," in payload:
        payload = payload.split(",", 1)[1]
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError):
        return None
