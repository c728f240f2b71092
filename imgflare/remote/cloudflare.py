"""Async client for the Cloudflare Images API using httpx."""

from __future__ import annotations

import mimetypes
from pathlib import Path
from typing import TYPE_CHECKING, Any

import httpx
from pydantic import ValidationError as PydanticValidationError

from ..exceptions import ConfigurationError, RemoteAPIError
from ..schemas.remote import ApiEnvelope, RemoteImage
from ..utils.config import (
    NOT_CONFIGURED_MESSAGE,
    CloudflareConfig,
    GlobalSettings,
    get_cloudflare_config,
    get_settings,
)
from ..utils.logging import setup_logger

if TYPE_CHECKING:  # pragma: no cover - type checking only
    from ..models.repository import RecordStore

DEFAULT_API_BASE = "https://api.cloudflare.com/client/v4"
DEFAULT_DELIVERY_BASE = "https://imagedelivery.net"


class CloudflareImagesClient:
    """Authenticated wrapper over the Cloudflare Images v1 endpoints.

    Holds credentials only; every call opens its own ``httpx.AsyncClient``.
    Failures surface as :class:`RemoteAPIError` and are never retried here.
    """

    logger = setup_logger(__name__, context={"operation": "remote"})

    def __init__(
        self,
        config: CloudflareConfig | None,
        *,
        base_url: str = DEFAULT_API_BASE,
        delivery_base_url: str = DEFAULT_DELIVERY_BASE,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        if config is None or not config.api_token or not config.account_id:
            raise ConfigurationError(NOT_CONFIGURED_MESSAGE)

        self.api_token = config.api_token
        self.account_id = config.account_id
        self.delivery_url_prefix = config.delivery_url
        self._base_url = base_url.rstrip("/")
        self._delivery_base_url = delivery_base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    @classmethod
    def from_store(
        cls,
        store: RecordStore,
        settings: GlobalSettings | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> CloudflareImagesClient:
        """Build a client from stored configuration (falling back to the environment)."""

        settings = settings or get_settings()
        config = get_cloudflare_config(store)
        if config is None:
            raise ConfigurationError(NOT_CONFIGURED_MESSAGE)
        return cls(
            config,
            base_url=settings.api_base_url,
            delivery_base_url=settings.delivery_base_url,
            timeout=settings.request_timeout,
            transport=transport,
        )

    @property
    def images_path(self) -> str:
        return f"/accounts/{self.account_id}/images/v1"

    def _client_kwargs(self) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "base_url": self._base_url,
            "timeout": self._timeout,
            "headers": {"Authorization": f"Bearer {self.api_token}"},
        }
        if self._transport is not None:
            kwargs["transport"] = self._transport
        return kwargs

    async def _request(self, method: str, path: str, **request_kwargs: Any) -> ApiEnvelope:
        """Send one request and return the parsed envelope, raising on any failure."""

        try:
            async with httpx.AsyncClient(**self._client_kwargs()) as client:
                response = await client.request(method, path, **request_kwargs)
        except httpx.TimeoutException as exc:
            raise RemoteAPIError(
                f"Cloudflare API request failed: timed out after {self._timeout} seconds"
            ) from exc
        except httpx.HTTPError as exc:
            raise RemoteAPIError(f"Cloudflare API request failed: {exc}") from exc

        envelope = self._parse_envelope(response)

        if not response.is_success:
            message = (envelope.first_error() if envelope else None) or (
                f"API error: {response.status_code}"
            )
            self.logger.warning(
                "%s %s returned %s: %s",
                method,
                path,
                response.status_code,
                message,
                extra={"status": "error"},
            )
            raise RemoteAPIError(
                f"Cloudflare API request failed: {message}",
                status_code=response.status_code,
            )

        if envelope is None:
            raise RemoteAPIError(
                "Cloudflare API request failed: response body is not valid JSON",
                status_code=response.status_code,
            )

        if not envelope.success:
            message = envelope.first_error() or "Unknown error"
            raise RemoteAPIError(
                f"Cloudflare API request failed: {message}",
                status_code=response.status_code,
            )

        return envelope

    @staticmethod
    def _parse_envelope(response: httpx.Response) -> ApiEnvelope | None:
        try:
            payload = response.json()
        except ValueError:
            return None
        if not isinstance(payload, dict):
            return None
        try:
            return ApiEnvelope.model_validate(payload)
        except PydanticValidationError:
            return None

    @staticmethod
    def _parse_image(envelope: ApiEnvelope) -> RemoteImage:
        try:
            return RemoteImage.model_validate(envelope.result)
        except PydanticValidationError as exc:
            raise RemoteAPIError(
                f"Cloudflare API returned an unexpected image payload: {exc}"
            ) from exc

    async def upload_by_url(self, source_url: str) -> RemoteImage:
        """Ask Cloudflare to fetch ``source_url`` itself; no bytes pass through here."""

        envelope = await self._request(
            "POST",
            self.images_path,
            files={"url": (None, source_url)},
        )
        image = self._parse_image(envelope)
        self.logger.info("Uploaded image by URL", extra={"image_id": image.id, "status": "success"})
        return image

    async def upload_by_file(self, path: str | Path) -> RemoteImage:
        """Stream a local file as multipart form content."""

        file_path = Path(path)
        content_type = mimetypes.guess_type(file_path.name)[0] or "application/octet-stream"
        try:
            with file_path.open("rb") as handle:
                envelope = await self._request(
                    "POST",
                    self.images_path,
                    files={"file": (file_path.name, handle, content_type)},
                )
        except OSError as exc:
            raise RemoteAPIError(f"Could not read {file_path} for upload: {exc}") from exc

        image = self._parse_image(envelope)
        self.logger.info("Uploaded local file", extra={"image_id": image.id, "status": "success"})
        return image

    async def get_image(self, image_id: str) -> RemoteImage:
        envelope = await self._request("GET", f"{self.images_path}/{image_id}")
        return self._parse_image(envelope)

    async def list_images(
        self,
        page: int | None = None,
        per_page: int | None = None,
    ) -> list[RemoteImage]:
        params: dict[str, int] = {}
        if page:
            params["page"] = page
        if per_page:
            params["per_page"] = per_page

        envelope = await self._request("GET", self.images_path, params=params)
        result = envelope.result if isinstance(envelope.result, dict) else {}
        images = result.get("images") or []
        try:
            return [RemoteImage.model_validate(item) for item in images]
        except PydanticValidationError as exc:
            raise RemoteAPIError(
                f"Cloudflare API returned an unexpected image list: {exc}"
            ) from exc

    async def delete_image(self, image_id: str) -> bool:
        await self._request("DELETE", f"{self.images_path}/{image_id}")
        self.logger.info("Deleted remote image", extra={"image_id": image_id, "status": "success"})
        return True

    def delivery_url(self, image_id: str, variant: str = "public") -> str:
        """Return the public delivery URL for ``image_id``/``variant``. No network."""

        if not self.delivery_url_prefix:
            return f"{self._delivery_base_url}/{self.account_id}/{image_id}/{variant}"

        prefix = self.delivery_url_prefix
        if prefix.endswith("/"):
            prefix = prefix[:-1]
        return f"{prefix}/{image_id}/{variant}"
