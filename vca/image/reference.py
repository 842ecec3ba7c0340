"""Unified image reference.

Providers return either an inline data URI (Gemini) or a remote URL
(Replicate). Product and container photos are remote URLs too. Everything the
workflow stores or displays is wrapped in an `ImageReference`, which knows its
kind and can materialize itself to raw bytes for re-upload as a reference image.

The sentinel reference `"error"` marks a failed generation with nothing to
display.
"""

from __future__ import annotations

import base64
import binascii
import logging
from dataclasses import dataclass
from enum import Enum

import httpx


logger = logging.getLogger(__name__)

ERROR_SENTINEL = "error"
DEFAULT_FETCH_TIMEOUT = 30.0


class ImageKind(str, Enum):
    DATA_URI = "data_uri"
    URL = "url"
    SENTINEL = "sentinel"


def guess_mime_type(data: bytes) -> str:
    """Sniff a MIME type from magic bytes, defaulting to JPEG."""
    if data.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    if data[:6] in (b"GIF87a", b"GIF89a"):
        return "image/gif"
    return "image/jpeg"


def to_data_uri(data: bytes, mime_type: str | None = None) -> str:
    """Encode raw image bytes as a base64 data URI."""
    mime = mime_type or guess_mime_type(data)
    return f"data:{mime};base64,{base64.b64encode(data).decode('ascii')}"


@dataclass(frozen=True)
class ImageReference:
    """Reference to an image that can be displayed or fetched as bytes."""

    uri: str

    @classmethod
    def error(cls) -> "ImageReference":
        return cls(ERROR_SENTINEL)

    @classmethod
    def from_bytes(cls, data: bytes, mime_type: str | None = None) -> "ImageReference":
        return cls(to_data_uri(data, mime_type))

    @classmethod
    def coerce(cls, value: "ImageReference | str") -> "ImageReference":
        return value if isinstance(value, ImageReference) else cls(str(value))

    @property
    def kind(self) -> ImageKind:
        if self.uri == ERROR_SENTINEL:
            return ImageKind.SENTINEL
        if self.uri.startswith("data:"):
            return ImageKind.DATA_URI
        return ImageKind.URL

    @property
    def is_error(self) -> bool:
        return self.kind is ImageKind.SENTINEL

    @property
    def mime_type(self) -> str | None:
        """MIME type declared by a data URI; `None` for URLs and the sentinel."""
        if self.kind is not ImageKind.DATA_URI:
            return None
        header = self.uri[len("data:"):].split(",", 1)[0]
        return header.split(";", 1)[0] or None

    async def fetch_bytes(
        self,
        client: httpx.AsyncClient | None = None,
        timeout: float = DEFAULT_FETCH_TIMEOUT,
    ) -> bytes:
        """Materialize the referenced image as raw bytes.

        Args:
            client: Optional shared client; a short-lived one is opened otherwise.
            timeout: Request timeout for remote URLs.

        Raises:
            ValueError: For the sentinel or a malformed data URI.
            httpx.HTTPError: When a remote download fails.
        """
        kind = self.kind

        if kind is ImageKind.SENTINEL:
            raise ValueError("The error sentinel does not reference an image.")

        if kind is ImageKind.DATA_URI:
            header, _, payload = self.uri.partition(",")
            if not payload or ";base64" not in header:
                raise ValueError("Only base64 data URIs are supported.")
            try:
                return base64.b64decode(payload, validate=True)
            except binascii.Error as exc:
                raise ValueError("Malformed base64 payload in data URI.") from exc

        if client is not None:
            response = await client.get(self.uri)
            response.raise_for_status()
            return response.content

        async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as owned:
            response = await owned.get(self.uri)
            response.raise_for_status()
            return response.content

    def __str__(self) -> str:
        return self.uri
