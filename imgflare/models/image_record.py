"""SQLAlchemy model definitions for image records and configuration."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class ImageStatus(str, Enum):
    """Lifecycle states of an image record."""

    PENDING = "pending"
    UPLOADING = "uploading"
    PROCESSING = "processing"
    COMPLETE = "complete"
    FAILED = "failed"
    DELETED = "deleted"

    @classmethod
    def values(cls) -> list[str]:
        return [member.value for member in cls]


class ImageRecord(Base):
    """Database representation of one uploaded image."""

    __tablename__ = "images"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    original_url: Mapped[str] = mapped_column(Text, nullable=False)
    cloudflare_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        default=ImageStatus.PENDING.value,
        index=True,
    )
    size: Mapped[int | None] = mapped_column(Integer, nullable=True)
    width: Mapped[int | None] = mapped_column(Integer, nullable=True)
    height: Mapped[int | None] = mapped_column(Integer, nullable=True)
    content_type: Mapped[str | None] = mapped_column(String(128), nullable=True)
    variants: Mapped[str | None] = mapped_column(Text, nullable=True)
    uploaded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
    )
    error: Mapped[str | None] = mapped_column(Text, nullable=True)

    def to_dict(self) -> dict[str, object]:
        """Return a plain mapping of the record's columns."""

        return {
            "id": self.id,
            "original_url": self.original_url,
            "cloudflare_url": self.cloudflare_url,
            "status": self.status,
            "size": self.size,
            "width": self.width,
            "height": self.height,
            "content_type": self.content_type,
            "variants": self.variants,
            "uploaded_at": self.uploaded_at.isoformat() if self.uploaded_at else None,
            "error": self.error,
        }

    def __repr__(self) -> str:
        """Return a developer-friendly string representation."""

        return f"<ImageRecord id={self.id} status={self.status} source={self.original_url}>"


class ConfigEntry(Base):
    """Key/value configuration row."""

    __tablename__ = "config"

    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    value: Mapped[str | None] = mapped_column(Text, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<ConfigEntry key={self.key}>"
