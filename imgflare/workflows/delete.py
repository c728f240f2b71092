"""Delete workflow: remote delete first, then reconcile the local record."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from ..exceptions import ConfigurationError, StorageError
from ..models.image_record import ImageRecord, ImageStatus
from ..models.repository import RecordStore
from ..utils.config import NOT_CONFIGURED_MESSAGE, GlobalSettings, is_configured
from ..utils.logging import log_operation, setup_logger
from .upload import ClientFactory, default_client_factory

logger = setup_logger(__name__, context={"operation": "delete"})

Confirm = Callable[[ImageRecord], bool]


class DeleteStatus(str, Enum):
    NOT_FOUND = "not_found"
    CANCELLED = "cancelled"
    SOFT_DELETED = "soft_deleted"
    HARD_DELETED = "hard_deleted"


@dataclass(slots=True)
class DeleteOutcome:
    """What the delete workflow did.

    ``local_error`` is set when the remote image is gone but the local record
    could not be reconciled.
    """

    image_id: str
    status: DeleteStatus
    record: ImageRecord | None = None
    local_error: str | None = None

    @property
    def remote_deleted(self) -> bool:
        return self.status in (DeleteStatus.SOFT_DELETED, DeleteStatus.HARD_DELETED)


def _decline(_record: ImageRecord) -> bool:
    return False


class DeleteWorkflow:
    """Delete an image remotely and then soft- or hard-delete its local record."""

    def __init__(
        self,
        store: RecordStore,
        settings: GlobalSettings,
        *,
        client_factory: ClientFactory = default_client_factory,
    ):
        self.store = store
        self.settings = settings
        self._client_factory = client_factory

    async def delete(
        self,
        image_id: str,
        *,
        force: bool = False,
        keep_record: bool = False,
        confirm: Confirm | None = None,
        on_found: Callable[[ImageRecord], None] | None = None,
    ) -> DeleteOutcome:
        """
        Run the delete workflow for ``image_id``.

        Args:
            image_id: Remote image identifier
            force: Skip confirmation
            keep_record: Mark the record deleted instead of removing the row
            confirm: Interactive confirmation; absent means "no"
            on_found: Called with the record before confirmation (display hook)

        Raises:
            ConfigurationError: If credentials are missing
            RemoteAPIError: If the remote delete fails; the local record is untouched
        """
        if not is_configured(self.store):
            raise ConfigurationError(NOT_CONFIGURED_MESSAGE)

        record = self.store.get_image(image_id)
        if record is None:
            log_operation(logger, "delete", image_id, "not_found")
            return DeleteOutcome(image_id=image_id, status=DeleteStatus.NOT_FOUND)

        if on_found is not None:
            on_found(record)

        if not force and not (confirm or _decline)(record):
            log_operation(logger, "delete", image_id, "cancelled")
            return DeleteOutcome(image_id=image_id, status=DeleteStatus.CANCELLED, record=record)

        client = self._client_factory(self.store, self.settings)
        await client.delete_image(image_id)

        status = DeleteStatus.SOFT_DELETED if keep_record else DeleteStatus.HARD_DELETED
        try:
            if keep_record:
                result = self.store.update_image(image_id, {"status": ImageStatus.DELETED.value})
            else:
                result = self.store.delete_image_row(image_id)
        except StorageError as exc:
            log_operation(logger, "delete", image_id, "error", remote_deleted=True)
            return DeleteOutcome(
                image_id=image_id, status=status, record=record, local_error=str(exc)
            )

        if result is None or not result.ok:
            log_operation(logger, "delete", image_id, "error", remote_deleted=True)
            return DeleteOutcome(
                image_id=image_id,
                status=status,
                record=record,
                local_error="Local record was not updated",
            )

        log_operation(logger, "delete", image_id, "success", keep_record=keep_record)
        return DeleteOutcome(image_id=image_id, status=status, record=record)
