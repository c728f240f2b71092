"""Read-side operations over the local record store."""

from __future__ import annotations

import csv
import io
import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Final

from ..exceptions import ValidationError
from ..models.image_record import ImageRecord, ImageStatus
from ..models.repository import ImageQuery, RecordStore
from ..remote.cloudflare import CloudflareImagesClient

EXPORT_FORMATS: Final[tuple[str, ...]] = ("json", "csv")
EXPORT_COLUMNS: Final[tuple[str, ...]] = (
    "id",
    "original_url",
    "cloudflare_url",
    "status",
    "size",
    "width",
    "height",
    "content_type",
    "variants",
    "uploaded_at",
    "error",
)
_UNSETTLED_STATUSES: Final[tuple[str, ...]] = (
    ImageStatus.PENDING.value,
    ImageStatus.UPLOADING.value,
    ImageStatus.PROCESSING.value,
    ImageStatus.FAILED.value,
)


def _check_status(status: str | None) -> None:
    if status is not None and status not in ImageStatus.values():
        allowed = ", ".join(ImageStatus.values())
        raise ValidationError(f"Invalid status '{status}'. Use one of: {allowed}")


def list_images(
    store: RecordStore,
    *,
    status: str | None = None,
    limit: int | None = 10,
    order: str = "desc",
) -> list[ImageRecord]:
    """List records newest first (or oldest first with ``order='asc'``)."""

    _check_status(status)
    if order not in ("asc", "desc"):
        raise ValidationError("Invalid order. Use 'asc' or 'desc'.")
    if limit is not None and limit < 1:
        raise ValidationError("Limit must be a positive integer")

    return store.get_images(
        ImageQuery(status=status, limit=limit, order=order, order_by="uploaded_at")
    )


def get_status(store: RecordStore, image_id: str) -> ImageRecord | None:
    return store.get_image(image_id)


def pending_records(store: RecordStore) -> list[ImageRecord]:
    """Records that have not settled as complete or deleted."""

    records: list[ImageRecord] = []
    for status in _UNSETTLED_STATUSES:
        records.extend(store.get_images(ImageQuery(status=status)))
    records.sort(key=lambda record: record.uploaded_at, reverse=True)
    return records


class VariantsKind(str, Enum):
    FOUND = "found"
    NOT_FOUND = "not_found"
    NO_VARIANTS = "no_variants"
    MALFORMED = "malformed"


@dataclass(slots=True)
class VariantsLookup:
    """Variants lookup result, keeping "missing record", "nothing stored" and
    "stored data unreadable" apart."""

    kind: VariantsKind
    record: ImageRecord | None = None
    variants: list[str] = field(default_factory=list)
    error: str | None = None


def parse_variants(blob: str) -> list[str]:
    """Parse a stored variants blob, raising ``ValueError`` when it is not a list of strings."""

    data = json.loads(blob)
    if not isinstance(data, list) or not all(isinstance(item, str) for item in data):
        raise ValueError("variants must be a JSON array of URL strings")
    return data


def get_variants(store: RecordStore, image_id: str) -> VariantsLookup:
    record = store.get_image(image_id)
    if record is None:
        return VariantsLookup(kind=VariantsKind.NOT_FOUND)
    if not record.variants:
        return VariantsLookup(kind=VariantsKind.NO_VARIANTS, record=record)

    try:
        variants = parse_variants(record.variants)
    except ValueError as exc:
        return VariantsLookup(kind=VariantsKind.MALFORMED, record=record, error=str(exc))
    return VariantsLookup(kind=VariantsKind.FOUND, record=record, variants=variants)


async def refresh_variants(
    store: RecordStore,
    client: CloudflareImagesClient,
    image_id: str,
) -> VariantsLookup:
    """Fetch variant URLs from the remote service and store them on the record."""

    if store.get_image(image_id) is None:
        return VariantsLookup(kind=VariantsKind.NOT_FOUND)

    remote_image = await client.get_image(image_id)
    if not remote_image.variants:
        # An empty remote list leaves the stored variants as they were.
        return get_variants(store, image_id)

    written = store.update_image(image_id, {"variants": json.dumps(remote_image.variants)})
    if written is not None and not written.ok:
        return VariantsLookup(kind=VariantsKind.NOT_FOUND)
    return get_variants(store, image_id)


def variant_name(url: str) -> str:
    """Return the trailing path segment of a variant URL (its name)."""

    return url.rstrip("/").rsplit("/", 1)[-1]


def search_images(store: RecordStore, query: str, *, limit: int | None = 10) -> list[ImageRecord]:
    text = query.strip()
    if not text:
        raise ValidationError("Search query must not be empty")
    return store.search_images(text, limit=limit)


@dataclass(slots=True)
class ImageStats:
    total: int
    by_status: dict[str, int]
    total_bytes: int
    with_variants: int


def collect_stats(store: RecordStore) -> ImageStats:
    by_status = store.count_by_status()
    with_variants = sum(1 for record in store.get_images() if record.variants)
    return ImageStats(
        total=sum(by_status.values()),
        by_status=by_status,
        total_bytes=store.total_size(),
        with_variants=with_variants,
    )


def export_records(records: list[ImageRecord], fmt: str) -> str:
    """Serialise records as JSON or CSV text."""

    if fmt not in EXPORT_FORMATS:
        raise ValidationError('Invalid format. Use "json" or "csv".')

    rows = [record.to_dict() for record in records]
    if fmt == "json":
        return json.dumps(rows, indent=2)

    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=list(EXPORT_COLUMNS), lineterminator="\n")
    writer.writeheader()
    for row in rows:
        writer.writerow(
            {column: "" if row[column] is None else row[column] for column in EXPORT_COLUMNS}
        )
    return buffer.getvalue()
