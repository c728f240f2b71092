"""Pydantic schemas for Cloudflare Images API payloads."""
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ApiMessage(BaseModel):
    """Error or informational message returned by the API."""

    model_config = ConfigDict(extra="ignore")

    code: int | None = Field(None, description="Cloudflare error code")
    message: str = Field("", description="Human-readable message")


class ApiEnvelope(BaseModel):
    """Standard Cloudflare v4 response envelope."""

    model_config = ConfigDict(extra="ignore")

    success: bool = Field(False, description="Whether the call succeeded")
    result: Any = Field(None, description="Endpoint-specific result payload")
    errors: list[ApiMessage] = Field(default_factory=list, description="Error messages")
    messages: list[ApiMessage] = Field(default_factory=list, description="Informational messages")

    @field_validator("errors", "messages", mode="before")
    @classmethod
    def _null_as_empty(cls, value: Any) -> Any:
        return [] if value is None else value

    def first_error(self) -> str | None:
        """Return the first non-empty error message, if any."""

        for error in self.errors:
            if error.message:
                return error.message
        return None


class RemoteImage(BaseModel):
    """Image object as described by the remote service."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str = Field(..., description="Remote image identifier")
    filename: str | None = Field(None, description="Original filename, when known")
    uploaded: datetime | None = Field(None, description="Remote upload timestamp")
    require_signed_urls: bool = Field(
        False,
        alias="requireSignedURLs",
        description="Whether delivery requires signed URLs",
    )
    variants: list[str] = Field(default_factory=list, description="Variant delivery URLs")
    meta: dict[str, Any] = Field(default_factory=dict, description="User metadata")

    @field_validator("variants", "meta", mode="before")
    @classmethod
    def _null_as_empty(cls, value: Any, info: Any) -> Any:
        if value is None:
            return [] if info.field_name == "variants" else {}
        return value

    def meta_int(self, key: str) -> int | None:
        """Return an integer metadata value, ignoring anything non-numeric."""

        value = self.meta.get(key)
        if isinstance(value, bool):
            return None
        if isinstance(value, int):
            return value
        if isinstance(value, str) and value.isdigit():
            return int(value)
        return None

    def meta_str(self, key: str) -> str | None:
        value = self.meta.get(key)
        return value if isinstance(value, str) and value else None
