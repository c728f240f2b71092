"""Best-effort image metadata inspection.

Every function here returns an :class:`ImageMetadata`, leaving fields ``None``
when something cannot be determined. Nothing raises: metadata is advisory and
must never abort an upload.
"""

from __future__ import annotations

import io
import mimetypes
from dataclasses import dataclass
from pathlib import Path

import httpx
from PIL import Image, UnidentifiedImageError

from .logging import setup_logger

logger = setup_logger(__name__, context={"operation": "inspect"})


@dataclass(slots=True)
class ImageMetadata:
    """Advisory metadata gathered about an image."""

    size: int | None = None
    width: int | None = None
    height: int | None = None
    content_type: str | None = None

    def merge(self, other: ImageMetadata) -> ImageMetadata:
        """Return a copy with missing fields filled from ``other``."""

        return ImageMetadata(
            size=self.size if self.size is not None else other.size,
            width=self.width if self.width is not None else other.width,
            height=self.height if self.height is not None else other.height,
            content_type=self.content_type or other.content_type,
        )


def _read_dimensions(buffer: io.BytesIO) -> ImageMetadata:
    with Image.open(buffer) as img:
        width, height = img.size
        mime = Image.MIME.get(img.format or "")
    return ImageMetadata(width=width, height=height, content_type=mime)


def inspect_image_bytes(data: bytes) -> ImageMetadata:
    """Inspect an in-memory image."""

    metadata = ImageMetadata(size=len(data))
    try:
        return metadata.merge(_read_dimensions(io.BytesIO(data)))
    except (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError) as exc:
        logger.warning("Could not determine image dimensions: %s", exc)
        return metadata


def inspect_image_file(path: str | Path) -> ImageMetadata:
    """Inspect a local image file: size from ``stat``, dimensions via Pillow."""

    file_path = Path(path)
    guessed_type, _ = mimetypes.guess_type(file_path.name)
    metadata = ImageMetadata(content_type=guessed_type)

    try:
        metadata.size = file_path.stat().st_size
        data = file_path.read_bytes()
    except OSError as exc:
        logger.warning("Could not read image metadata for %s: %s", file_path, exc)
        return metadata

    inspected = inspect_image_bytes(data)
    # Detected format beats the extension guess.
    return inspected.merge(metadata)


async def inspect_remote_image(
    url: str,
    *,
    timeout: float = 30.0,
    max_bytes: int = 20 * 1024 * 1024,
    transport: httpx.AsyncBaseTransport | None = None,
) -> ImageMetadata:
    """
    Fetch up to ``max_bytes`` of a remote image and inspect it.

    Response headers supply size and content type when the body is too large
    to read in full.
    """
    client_kwargs: dict[str, object] = {"timeout": timeout, "follow_redirects": True}
    if transport is not None:
        client_kwargs["transport"] = transport

    header_meta = ImageMetadata()
    chunks: list[bytes] = []
    received = 0
    truncated = False
    try:
        async with httpx.AsyncClient(**client_kwargs) as client:  # type: ignore[arg-type]
            async with client.stream("GET", url) as response:
                if response.status_code >= 400:
                    logger.warning(
                        "Source returned status %s during inspection", response.status_code
                    )
                    return header_meta

                length = response.headers.get("content-length")
                if length and length.isdigit():
                    header_meta.size = int(length)
                content_type = response.headers.get("content-type")
                if content_type:
                    header_meta.content_type = content_type.split(";")[0].strip() or None

                async for chunk in response.aiter_bytes():
                    chunks.append(chunk)
                    received += len(chunk)
                    if received > max_bytes:
                        truncated = True
                        break
    except httpx.HTTPError as exc:
        logger.warning("Could not fetch source for inspection: %s", exc)
        return header_meta

    if truncated:
        logger.warning("Source exceeds %d bytes; skipping dimension detection", max_bytes)
        return header_meta

    inspected = inspect_image_bytes(b"".join(chunks))
    return inspected.merge(header_meta)
