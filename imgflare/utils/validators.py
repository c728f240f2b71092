"""Input validators shared by the CLI and workflows."""

from __future__ import annotations

import re
from pathlib import PurePath
from typing import Any, Final
from urllib.parse import urlparse

IMAGE_EXTENSIONS: Final[frozenset[str]] = frozenset(
    {"jpg", "jpeg", "png", "gif", "webp", "svg", "avif"}
)
MIN_API_TOKEN_LENGTH: Final[int] = 40

_ACCOUNT_ID_PATTERN: Final = re.compile(r"^[a-f0-9]{32}$", re.IGNORECASE)


def is_valid_url(url: Any) -> bool:
    """Return True when ``url`` parses with both a scheme and a host."""

    if not isinstance(url, str) or not url.strip():
        return False
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return bool(parsed.scheme and parsed.netloc)


def is_valid_api_token(token: Any) -> bool:
    """Cloudflare API tokens are long opaque strings (at least 40 characters)."""

    return isinstance(token, str) and len(token) >= MIN_API_TOKEN_LENGTH


def is_valid_account_id(account_id: Any) -> bool:
    """Cloudflare account ids are 32-character hex strings."""

    return isinstance(account_id, str) and bool(_ACCOUNT_ID_PATTERN.match(account_id))


def _extension(name: str) -> str:
    return PurePath(name).suffix.lstrip(".").lower()


def has_image_extension(url: Any) -> bool:
    """Return True when the URL path ends in a recognised image extension."""

    if not is_valid_url(url):
        return False
    return _extension(urlparse(url).path) in IMAGE_EXTENSIONS


def is_valid_image_file_path(file_path: Any) -> bool:
    """Return True when the path string ends in a recognised image extension."""

    if not isinstance(file_path, str) or not file_path.strip():
        return False
    return _extension(file_path) in IMAGE_EXTENSIONS


def is_valid_image_batch_json(data: Any) -> bool:
    """Batch files are a list of objects, each carrying a valid ``url``."""

    if not isinstance(data, list):
        return False
    return all(
        isinstance(item, dict) and isinstance(item.get("url"), str) and is_valid_url(item["url"])
        for item in data
    )
