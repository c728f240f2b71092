"""Upload workflow: validate, upload, enrich, then persist exactly one record."""

from __future__ import annotations

import json
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from functools import partial
from pathlib import Path

from ..exceptions import ConfigurationError, StorageError, ValidationError
from ..models.image_record import ImageStatus
from ..models.repository import ImageRecordCreate, RecordStore
from ..remote.cloudflare import CloudflareImagesClient
from ..schemas.remote import RemoteImage
from ..utils.config import NOT_CONFIGURED_MESSAGE, GlobalSettings, is_configured
from ..utils.inspection import ImageMetadata, inspect_image_file, inspect_remote_image
from ..utils.logging import log_operation, setup_logger
from ..utils.validators import has_image_extension, is_valid_image_file_path, is_valid_url

logger = setup_logger(__name__, context={"operation": "upload"})

LOCAL_URL_SCHEME = "local://"

ClientFactory = Callable[[RecordStore, GlobalSettings], CloudflareImagesClient]
RemoteInspector = Callable[[str], Awaitable[ImageMetadata]]


def local_source_url(path: Path) -> str:
    """Return the ``local://`` pseudo-URL recorded for a file upload."""

    return f"{LOCAL_URL_SCHEME}{path}"


def default_client_factory(store: RecordStore, settings: GlobalSettings) -> CloudflareImagesClient:
    return CloudflareImagesClient.from_store(store, settings)


@dataclass(slots=True)
class UploadOutcome:
    """Result of an upload that the remote service accepted."""

    record: ImageRecordCreate
    persisted: bool
    persist_error: str | None = None


class UploadWorkflow:
    """Upload an image by URL or local path and record it locally.

    Nothing is written locally unless the remote upload succeeded. If the
    local insert then fails, the outcome says so instead of raising: the
    image exists remotely without a local record.
    """

    def __init__(
        self,
        store: RecordStore,
        settings: GlobalSettings,
        *,
        client_factory: ClientFactory = default_client_factory,
        remote_inspector: RemoteInspector | None = None,
    ):
        self.store = store
        self.settings = settings
        self._client_factory = client_factory
        if remote_inspector is None and settings.inspect_remote_sources:
            remote_inspector = partial(
                inspect_remote_image,
                timeout=settings.request_timeout,
                max_bytes=settings.inspect_max_bytes,
            )
        self._remote_inspector = remote_inspector

    def _client(self) -> CloudflareImagesClient:
        if not is_configured(self.store):
            raise ConfigurationError(NOT_CONFIGURED_MESSAGE)
        return self._client_factory(self.store, self.settings)

    @staticmethod
    def validate_url(url: str, *, force: bool = False) -> None:
        if not is_valid_url(url):
            raise ValidationError("Invalid URL format")
        if not force and not has_image_extension(url):
            raise ValidationError(
                "URL does not have a recognized image extension. "
                "If you are sure this is an image, use --force."
            )

    @staticmethod
    def validate_file(file_path: str | Path, *, force: bool = False) -> Path:
        absolute_path = Path(file_path).expanduser().resolve()
        if not absolute_path.is_file():
            raise ValidationError(f"File not found: {absolute_path}")
        if not force and not is_valid_image_file_path(str(absolute_path)):
            raise ValidationError(
                "File does not have a recognized image extension. "
                "If you are sure this is an image, use --force."
            )
        return absolute_path

    async def upload_url(self, url: str, *, force: bool = False) -> UploadOutcome:
        """Upload a remote image that Cloudflare fetches itself."""

        self.validate_url(url, force=force)
        client = self._client()

        remote_image = await client.upload_by_url(url)

        metadata = _metadata_from_remote(remote_image)
        if self._remote_inspector is not None:
            try:
                metadata = metadata.merge(await self._remote_inspector(url))
            except Exception as exc:
                logger.warning(
                    "Remote inspection failed: %s",
                    exc,
                    extra={"image_id": remote_image.id, "status": "warning"},
                )

        return self._persist(client, remote_image, original_url=url, metadata=metadata)

    async def upload_file(self, file_path: str | Path, *, force: bool = False) -> UploadOutcome:
        """Upload a local file as multipart content."""

        absolute_path = self.validate_file(file_path, force=force)
        client = self._client()

        metadata = inspect_image_file(absolute_path)
        remote_image = await client.upload_by_file(absolute_path)

        return self._persist(
            client,
            remote_image,
            original_url=local_source_url(absolute_path),
            metadata=metadata.merge(_metadata_from_remote(remote_image)),
        )

    def _persist(
        self,
        client: CloudflareImagesClient,
        remote_image: RemoteImage,
        *,
        original_url: str,
        metadata: ImageMetadata,
    ) -> UploadOutcome:
        record = ImageRecordCreate(
            id=remote_image.id,
            original_url=original_url,
            cloudflare_url=client.delivery_url(remote_image.id),
            status=ImageStatus.COMPLETE.value,
            size=metadata.size,
            width=metadata.width,
            height=metadata.height,
            content_type=metadata.content_type,
            variants=json.dumps(remote_image.variants) if remote_image.variants else None,
        )

        try:
            result = self.store.insert_image(record)
        except StorageError as exc:
            log_operation(logger, "upload", record.id, "error", persisted=False)
            return UploadOutcome(record=record, persisted=False, persist_error=str(exc))

        if not result.ok:
            log_operation(logger, "upload", record.id, "error", persisted=False)
            return UploadOutcome(record=record, persisted=False, persist_error=result.error)

        log_operation(logger, "upload", record.id, "success")
        return UploadOutcome(record=record, persisted=True)


def _metadata_from_remote(remote_image: RemoteImage) -> ImageMetadata:
    return ImageMetadata(
        size=remote_image.meta_int("size"),
        width=remote_image.meta_int("width"),
        height=remote_image.meta_int("height"),
        content_type=remote_image.meta_str("content_type"),
    )
