"""Custom exceptions for ImgFlare."""

from __future__ import annotations


class ImgFlareError(Exception):
    """Base exception for all ImgFlare errors."""

    pass


class ConfigurationError(ImgFlareError):
    """Raised when credentials or settings are missing or invalid."""

    pass


class ValidationError(ImgFlareError):
    """Raised when user input fails validation before any state change."""

    pass


class RemoteAPIError(ImgFlareError):
    """Raised when a Cloudflare Images API call fails."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class StorageError(ImgFlareError):
    """Raised when the local record store cannot complete an operation."""

    pass
