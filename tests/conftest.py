"""Pytest configuration - no path manipulation, rely on proper package installation."""

from __future__ import annotations

import asyncio
from collections.abc import Iterator
from datetime import datetime, timedelta, timezone
from itertools import count
from pathlib import Path

import pytest
from PIL import Image

from imgflare.exceptions import RemoteAPIError
from imgflare.models.base import Database
from imgflare.models.repository import ImageRecordCreate, RecordStore
from imgflare.schemas.remote import RemoteImage
from imgflare.utils.config import get_settings, save_credentials

API_TOKEN = "cf-test-token-" + "x" * 26
ACCOUNT_ID = "0123456789abcdef0123456789abcdef"

_ISOLATED_ENV = (
    "IMGFLARE_CLOUDFLARE_API_TOKEN",
    "IMGFLARE_CLOUDFLARE_ACCOUNT_ID",
    "IMGFLARE_DELIVERY_URL_PREFIX",
    "IMGFLARE_DATABASE_URL",
    "IMGFLARE_LOG_LEVEL",
    "IMGFLARE_API_BASE_URL",
)


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Iterator[None]:
    """Point settings at a throwaway data directory with no ambient credentials."""

    for name in _ISOLATED_ENV:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("IMGFLARE_DATA_DIR", str(tmp_path / "imgflare-data"))
    monkeypatch.setenv("IMGFLARE_INSPECT_REMOTE_SOURCES", "false")

    get_settings(reload=True)
    yield
    get_settings(reload=True)


class StepClock:
    """Deterministic clock: each call returns a strictly later timestamp."""

    def __init__(self, start: datetime | None = None, step: timedelta = timedelta(minutes=1)):
        self.start = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
        self.step = step
        self._ticks = count()

    def __call__(self) -> datetime:
        return self.start + self.step * next(self._ticks)


@pytest.fixture
def clock() -> StepClock:
    return StepClock()


@pytest.fixture
def database(tmp_path: Path) -> Iterator[Database]:
    db = Database(f"sqlite:///{tmp_path / 'records.sqlite'}")
    yield db
    db.dispose()


@pytest.fixture
def store(database: Database, clock: StepClock) -> RecordStore:
    """Empty, unconfigured record store."""

    return RecordStore(database, clock=clock)


@pytest.fixture
def api_token() -> str:
    return API_TOKEN


@pytest.fixture
def account_id() -> str:
    return ACCOUNT_ID


@pytest.fixture
def configured_store(store: RecordStore) -> RecordStore:
    """Record store holding valid Cloudflare credentials."""

    save_credentials(store, api_token=API_TOKEN, account_id=ACCOUNT_ID)
    return store


@pytest.fixture
def make_record():
    """Factory for :class:`ImageRecordCreate` values with sensible defaults."""

    def _make(image_id: str, **overrides) -> ImageRecordCreate:
        fields = {
            "original_url": f"https://example.com/{image_id}.jpg",
            "cloudflare_url": f"https://imagedelivery.net/{ACCOUNT_ID}/{image_id}/public",
            "status": "complete",
            "size": 2048,
            "content_type": "image/jpeg",
        }
        fields.update(overrides)
        return ImageRecordCreate(id=image_id, **fields)

    return _make


class FakeCloudflareClient:
    """In-memory stand-in for :class:`CloudflareImagesClient`."""

    def __init__(self, account_id: str = ACCOUNT_ID):
        self.account_id = account_id
        self.calls: list[tuple[str, str]] = []
        self.fixed_id: str | None = None
        self.fail_urls: set[str] = set()
        self.upload_error: Exception | None = None
        self.delete_error: Exception | None = None
        self.remote_variants: list[str] | None = None
        self.delay = 0.0
        self.in_flight = 0
        self.max_in_flight = 0
        self._ids = count(1)

    def _variants(self, image_id: str) -> list[str]:
        base = f"https://imagedelivery.net/{self.account_id}/{image_id}"
        return [f"{base}/public", f"{base}/thumbnail"]

    async def _uploaded(self, source: str) -> RemoteImage:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.upload_error is not None:
                raise self.upload_error
            if source in self.fail_urls:
                raise RemoteAPIError("Cloudflare API request failed: ERROR 9422", status_code=415)
        finally:
            self.in_flight -= 1

        image_id = self.fixed_id or f"img-{next(self._ids):03d}"
        return RemoteImage(id=image_id, variants=self._variants(image_id))

    async def upload_by_url(self, source_url: str) -> RemoteImage:
        self.calls.append(("upload_by_url", source_url))
        return await self._uploaded(source_url)

    async def upload_by_file(self, path) -> RemoteImage:
        self.calls.append(("upload_by_file", str(path)))
        return await self._uploaded(str(path))

    async def get_image(self, image_id: str) -> RemoteImage:
        self.calls.append(("get_image", image_id))
        variants = self.remote_variants if self.remote_variants is not None else self._variants(image_id)
        return RemoteImage(id=image_id, variants=variants)

    async def delete_image(self, image_id: str) -> bool:
        self.calls.append(("delete_image", image_id))
        if self.delete_error is not None:
            raise self.delete_error
        return True

    def delivery_url(self, image_id: str, variant: str = "public") -> str:
        return f"https://imagedelivery.net/{self.account_id}/{image_id}/{variant}"


class RecordingClientFactory:
    """Client factory that counts how often a client was requested."""

    def __init__(self, client: FakeCloudflareClient):
        self.client = client
        self.calls = 0

    def __call__(self, store, settings) -> FakeCloudflareClient:
        self.calls += 1
        return self.client


@pytest.fixture
def fake_client() -> FakeCloudflareClient:
    return FakeCloudflareClient()


@pytest.fixture
def client_factory(fake_client: FakeCloudflareClient) -> RecordingClientFactory:
    return RecordingClientFactory(fake_client)


@pytest.fixture
def png_file(tmp_path: Path) -> Path:
    """A real 12x8 PNG on disk."""

    path = tmp_path / "sample.png"
    Image.new("RGB", (12, 8), color=(200, 30, 30)).save(path, format="PNG")
    return path
