"""Human-readable rendering of image records for the CLI."""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any
from urllib.parse import urlparse

import click

from ..models.image_record import ImageRecord, ImageStatus

_STATUS_STYLES: dict[str, tuple[str, str]] = {
    ImageStatus.PENDING.value: ("Pending", "yellow"),
    ImageStatus.UPLOADING.value: ("Uploading", "blue"),
    ImageStatus.PROCESSING.value: ("Processing", "blue"),
    ImageStatus.COMPLETE.value: ("Complete", "green"),
    ImageStatus.FAILED.value: ("Failed", "red"),
    ImageStatus.DELETED.value: ("Deleted", "bright_black"),
}


def format_bytes(num_bytes: int | None) -> str:
    """Format bytes as human-readable string."""
    if num_bytes is None:
        return "Unknown"
    size = float(num_bytes)
    for unit in ["B", "KB", "MB", "GB"]:
        if size < 1024.0:
            return f"{size:.1f}{unit}"
        size /= 1024.0
    return f"{size:.1f}TB"


def format_date(value: datetime | str | None) -> str:
    if value is None:
        return "Unknown"
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value)
        except ValueError:
            return value
    return value.strftime("%Y-%m-%d %H:%M:%S")


def format_status(status: str | None) -> str:
    """Return a coloured status label."""
    if not status:
        return click.style("Unknown", fg="bright_black")
    label, colour = _STATUS_STYLES.get(status.lower(), (status, "white"))
    return click.style(label, fg=colour)


def extract_host(url: str | None) -> str:
    """Return the host of ``url``, or a truncated URL when it has none."""
    if not url:
        return "Unknown"
    host = urlparse(url).hostname
    if host:
        return host
    return url if len(url) <= 30 else url[:27] + "..."


def format_content_type(content_type: str | None) -> str:
    """Shorten ``image/png; charset=...`` to ``PNG``."""
    if not content_type:
        return "Unknown"
    main_type = content_type.split(";")[0].strip()
    parts = main_type.split("/")
    if len(parts) == 2 and parts[0] == "image":
        return parts[1].upper()
    return main_type


def format_image_details(image: ImageRecord | dict[str, Any] | None) -> str:
    """Multi-line description of one record."""
    if image is None:
        return "Image not found"

    data = image if isinstance(image, dict) else image.to_dict()
    width, height = data.get("width"), data.get("height")
    dimensions = f"{width}x{height}" if width and height else "?x?"

    lines = [
        f"ID: {click.style(str(data['id']), fg='cyan')}",
        f"Original URL: {data.get('original_url')}",
        f"Status: {format_status(data.get('status'))}",
        f"Size: {format_bytes(data.get('size'))}",
        f"Dimensions: {dimensions}",
        f"Type: {data.get('content_type') or 'Unknown'}",
        f"Uploaded: {format_date(data.get('uploaded_at'))}",
    ]

    if data.get("cloudflare_url"):
        lines.append(f"Cloudflare URL: {data['cloudflare_url']}")

    variants = data.get("variants")
    if variants:
        try:
            count = len(json.loads(variants))
        except (TypeError, ValueError):
            lines.append(f"Variants: {click.style('Data Error', fg='yellow')}")
        else:
            lines.append(
                f"Variants: {click.style('Available', fg='green')} ({count}) - "
                f"Use 'imgflare variants {data['id']}' to view"
            )

    if data.get("error"):
        lines.append(f"Error: {click.style(str(data['error']), fg='red')}")

    return "\n".join(lines)


def format_images_table(images: list[ImageRecord]) -> str:
    """Render records as a fixed-width table."""
    if not images:
        return ""

    show_status = any(image.status == ImageStatus.DELETED.value for image in images)
    headers = ["ID", "Type", "Size", "Source"]
    if show_status:
        headers.append("Status")

    rows: list[list[str]] = []
    for image in images:
        row = [
            image.id,
            format_content_type(image.content_type),
            format_bytes(image.size),
            extract_host(image.original_url),
        ]
        if show_status:
            row.append("DELETED" if image.status == ImageStatus.DELETED.value else "")
        rows.append(row)

    widths = [max(len(headers[i]), *(len(row[i]) for row in rows)) for i in range(len(headers))]
    lines = [
        "  ".join(header.ljust(widths[i]) for i, header in enumerate(headers)),
        "  ".join("-" * width for width in widths),
    ]
    lines.extend("  ".join(cell.ljust(widths[i]) for i, cell in enumerate(row)) for row in rows)
    return "\n".join(lines)
