"""Record store: persistence of image records and configuration."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Final

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..exceptions import StorageError
from ..utils.logging import setup_logger
from .base import Database
from .image_record import ConfigEntry, ImageRecord, ImageStatus

logger = setup_logger(__name__, context={"operation": "store"})

MUTABLE_FIELDS: Final[frozenset[str]] = frozenset(
    {
        "cloudflare_url",
        "status",
        "size",
        "width",
        "height",
        "content_type",
        "variants",
        "error",
    }
)
SORTABLE_FIELDS: Final[frozenset[str]] = frozenset(
    {"uploaded_at", "id", "status", "size", "original_url"}
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True, frozen=True)
class WriteResult:
    """Effect of a write operation: how many rows changed and why not, if none."""

    changes: int
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.changes > 0


@dataclass(slots=True)
class ImageRecordCreate:
    """Value object capturing the caller-supplied fields of a new image record."""

    id: str
    original_url: str
    cloudflare_url: str | None = None
    status: str = ImageStatus.PENDING.value
    size: int | None = None
    width: int | None = None
    height: int | None = None
    content_type: str | None = None
    variants: str | None = None
    error: str | None = None


@dataclass(slots=True)
class ImageQuery:
    """Filter, ordering and limit for :meth:`RecordStore.get_images`."""

    status: str | None = None
    limit: int | None = None
    order_by: str = "uploaded_at"
    order: str = "desc"


class RecordStore:
    """Data access for :class:`ImageRecord` and :class:`ConfigEntry`.

    Storage failures are logged here and re-raised as :class:`StorageError`;
    "not found" is ``None`` or an empty list. A duplicate id on insert is
    reported as a zero-change :class:`WriteResult`.
    """

    def __init__(
        self,
        database: Database,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._database = database.initialize()
        self._clock = clock

    @property
    def database(self) -> Database:
        return self._database

    def _fail(self, action: str, exc: SQLAlchemyError, **context: Any) -> StorageError:
        logger.error(
            "Error %s: %s",
            action,
            exc,
            extra={"status": "error", "image_id": context.get("image_id", "-")},
        )
        return StorageError(f"Local store failed while {action}: {exc}")

    # -- configuration -------------------------------------------------------

    def get_config(self, key: str) -> str | None:
        try:
            with self._database.session_scope() as session:
                entry = session.get(ConfigEntry, key)
                return entry.value if entry is not None else None
        except SQLAlchemyError as exc:
            raise self._fail("getting config", exc) from exc

    def set_config(self, key: str, value: str, description: str = "") -> WriteResult:
        """Insert or fully replace a configuration entry."""

        try:
            with self._database.session_scope() as session:
                session.merge(ConfigEntry(key=key, value=value, description=description))
        except SQLAlchemyError as exc:
            raise self._fail("setting config", exc) from exc
        return WriteResult(changes=1)

    def get_all_config(self) -> list[ConfigEntry]:
        try:
            with self._database.session_scope() as session:
                return list(session.scalars(select(ConfigEntry).order_by(ConfigEntry.key)))
        except SQLAlchemyError as exc:
            raise self._fail("getting all config", exc) from exc

    # -- images --------------------------------------------------------------

    def insert_image(self, record_data: ImageRecordCreate) -> WriteResult:
        """Persist a new image record, stamping ``uploaded_at`` from the store clock."""

        record = ImageRecord(
            id=record_data.id,
            original_url=record_data.original_url,
            cloudflare_url=record_data.cloudflare_url,
            status=record_data.status or ImageStatus.PENDING.value,
            size=record_data.size,
            width=record_data.width,
            height=record_data.height,
            content_type=record_data.content_type,
            variants=record_data.variants,
            error=record_data.error,
            uploaded_at=self._clock(),
        )
        try:
            with self._database.session_scope() as session:
                session.add(record)
                session.flush()
        except IntegrityError as exc:
            duplicate = "UNIQUE" in str(exc.orig).upper()
            logger.warning(
                "Image record not inserted: %s",
                exc.orig,
                extra={"image_id": record_data.id, "status": "duplicate" if duplicate else "rejected"},
            )
            if duplicate:
                return WriteResult(changes=0, error=f"Image {record_data.id} already recorded")
            return WriteResult(changes=0, error=f"Image {record_data.id} rejected: {exc.orig}")
        except SQLAlchemyError as exc:
            raise self._fail("inserting image", exc, image_id=record_data.id) from exc
        return WriteResult(changes=1)

    def update_image(self, image_id: str, fields: Mapping[str, Any]) -> WriteResult | None:
        """
        Update a subset of mutable fields.

        Returns:
            ``None`` when ``fields`` is empty, otherwise the number of rows matched

        Raises:
            ValueError: If ``fields`` names an immutable or unknown column
        """
        if not fields:
            return None

        invalid = set(fields) - MUTABLE_FIELDS
        if invalid:
            raise ValueError(f"Cannot update image fields: {sorted(invalid)}")

        statement = update(ImageRecord).where(ImageRecord.id == image_id).values(**dict(fields))
        try:
            with self._database.session_scope() as session:
                result = session.execute(statement)
                return WriteResult(changes=result.rowcount or 0)
        except SQLAlchemyError as exc:
            raise self._fail("updating image", exc, image_id=image_id) from exc

    def get_image(self, image_id: str) -> ImageRecord | None:
        try:
            with self._database.session_scope() as session:
                return session.get(ImageRecord, image_id)
        except SQLAlchemyError as exc:
            raise self._fail("getting image", exc, image_id=image_id) from exc

    def get_images(self, query: ImageQuery | None = None) -> list[ImageRecord]:
        """Return records matching ``query``; newest first by default."""

        query = query or ImageQuery()
        if query.order_by not in SORTABLE_FIELDS:
            raise ValueError(f"Cannot order images by '{query.order_by}'")

        column = getattr(ImageRecord, query.order_by)
        ordering = column.asc() if query.order.lower() == "asc" else column.desc()

        statement = select(ImageRecord)
        if query.status:
            statement = statement.where(ImageRecord.status == query.status)
        # Secondary key keeps ties stable.
        statement = statement.order_by(ordering, ImageRecord.id)
        if query.limit:
            statement = statement.limit(query.limit)

        try:
            with self._database.session_scope() as session:
                return list(session.scalars(statement))
        except SQLAlchemyError as exc:
            raise self._fail("getting images", exc) from exc

    def search_images(self, text: str, *, limit: int | None = None) -> list[ImageRecord]:
        """Case-insensitive substring search over ids, URLs and content types."""

        pattern = f"%{text.lower()}%"
        statement = (
            select(ImageRecord)
            .where(
                or_(
                    func.lower(ImageRecord.id).like(pattern),
                    func.lower(ImageRecord.original_url).like(pattern),
                    func.lower(ImageRecord.cloudflare_url).like(pattern),
                    func.lower(ImageRecord.content_type).like(pattern),
                )
            )
            .order_by(ImageRecord.uploaded_at.desc(), ImageRecord.id)
        )
        if limit:
            statement = statement.limit(limit)

        try:
            with self._database.session_scope() as session:
                return list(session.scalars(statement))
        except SQLAlchemyError as exc:
            raise self._fail("searching images", exc) from exc

    def count_by_status(self) -> dict[str, int]:
        statement = select(ImageRecord.status, func.count()).group_by(ImageRecord.status)
        try:
            with self._database.session_scope() as session:
                return {status: count for status, count in session.execute(statement)}
        except SQLAlchemyError as exc:
            raise self._fail("counting images", exc) from exc

    def total_size(self, *, exclude_status: str | None = ImageStatus.DELETED.value) -> int:
        statement = select(func.coalesce(func.sum(ImageRecord.size), 0))
        if exclude_status:
            statement = statement.where(ImageRecord.status != exclude_status)
        try:
            with self._database.session_scope() as session:
                return int(session.scalar(statement) or 0)
        except SQLAlchemyError as exc:
            raise self._fail("summing image sizes", exc) from exc

    def count_images(self) -> int:
        try:
            with self._database.session_scope() as session:
                return int(session.scalar(select(func.count()).select_from(ImageRecord)) or 0)
        except SQLAlchemyError as exc:
            raise self._fail("counting images", exc) from exc

    def delete_image_row(self, image_id: str) -> WriteResult:
        """Hard-delete the record row."""

        try:
            with self._database.session_scope() as session:
                result = session.execute(delete(ImageRecord).where(ImageRecord.id == image_id))
                return WriteResult(changes=result.rowcount or 0)
        except SQLAlchemyError as exc:
            raise self._fail("deleting image", exc, image_id=image_id) from exc

