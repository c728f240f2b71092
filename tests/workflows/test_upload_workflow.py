"""Tests for the upload workflow."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from imgflare.exceptions import ConfigurationError, RemoteAPIError, StorageError, ValidationError
from imgflare.utils.config import get_settings
from imgflare.utils.inspection import ImageMetadata
from imgflare.workflows.upload import UploadWorkflow


def make_workflow(store, client_factory, **kwargs) -> UploadWorkflow:
    return UploadWorkflow(store, get_settings(), client_factory=client_factory, **kwargs)


@pytest.mark.asyncio
async def test_unconfigured_upload_never_builds_a_client(store, client_factory, fake_client):
    workflow = make_workflow(store, client_factory)

    with pytest.raises(ConfigurationError, match="imgflare setup"):
        await workflow.upload_url("https://example.com/cat.jpg")

    assert client_factory.calls == 0
    assert fake_client.calls == []
    assert store.count_images() == 0


@pytest.mark.asyncio
async def test_invalid_url_rejected_before_any_io(configured_store, client_factory):
    workflow = make_workflow(configured_store, client_factory)

    with pytest.raises(ValidationError, match="Invalid URL format"):
        await workflow.upload_url("not-a-url")

    assert client_factory.calls == 0


@pytest.mark.asyncio
async def test_extension_required_unless_forced(configured_store, client_factory, fake_client):
    workflow = make_workflow(configured_store, client_factory)

    with pytest.raises(ValidationError, match="--force"):
        await workflow.upload_url("https://example.com/render?id=1")

    outcome = await workflow.upload_url("https://example.com/render?id=1", force=True)
    assert outcome.persisted
    assert fake_client.calls == [("upload_by_url", "https://example.com/render?id=1")]


@pytest.mark.asyncio
async def test_successful_upload_persists_one_complete_record(
    configured_store, client_factory, fake_client
):
    workflow = make_workflow(configured_store, client_factory)

    outcome = await workflow.upload_url("https://example.com/cat.jpg")

    assert outcome.persisted
    assert outcome.persist_error is None

    record = configured_store.get_image(outcome.record.id)
    assert record.status == "complete"
    assert record.original_url == "https://example.com/cat.jpg"
    assert record.cloudflare_url == fake_client.delivery_url(record.id)
    assert json.loads(record.variants) == [
        fake_client.delivery_url(record.id),
        fake_client.delivery_url(record.id, "thumbnail"),
    ]
    assert configured_store.count_images() == 1


@pytest.mark.asyncio
async def test_remote_failure_writes_nothing(configured_store, client_factory, fake_client):
    fake_client.upload_error = RemoteAPIError("Cloudflare API request failed: boom", status_code=500)
    workflow = make_workflow(configured_store, client_factory)

    with pytest.raises(RemoteAPIError):
        await workflow.upload_url("https://example.com/cat.jpg")

    assert configured_store.count_images() == 0


@pytest.mark.asyncio
async def test_duplicate_remote_id_reported_not_raised(
    configured_store, client_factory, fake_client
):
    fake_client.fixed_id = "same-id"
    workflow = make_workflow(configured_store, client_factory)

    first = await workflow.upload_url("https://example.com/a.jpg")
    second = await workflow.upload_url("https://example.com/b.jpg")

    assert first.persisted
    assert not second.persisted
    assert "already recorded" in second.persist_error
    assert configured_store.get_image("same-id").original_url == "https://example.com/a.jpg"


@pytest.mark.asyncio
async def test_local_store_failure_reported_after_remote_success(
    configured_store, client_factory, monkeypatch
):
    def _broken_insert(_record):
        raise StorageError("Local store failed while inserting image: disk full")

    monkeypatch.setattr(configured_store, "insert_image", _broken_insert)
    workflow = make_workflow(configured_store, client_factory)

    outcome = await workflow.upload_url("https://example.com/cat.jpg")

    assert not outcome.persisted
    assert "disk full" in outcome.persist_error
    assert outcome.record.id.startswith("img-")


@pytest.mark.asyncio
async def test_inspector_metadata_recorded(configured_store, client_factory):
    async def inspector(url: str) -> ImageMetadata:
        return ImageMetadata(size=4096, width=800, height=600, content_type="image/jpeg")

    workflow = make_workflow(configured_store, client_factory, remote_inspector=inspector)

    outcome = await workflow.upload_url("https://example.com/cat.jpg")

    record = configured_store.get_image(outcome.record.id)
    assert (record.size, record.width, record.height) == (4096, 800, 600)
    assert record.content_type == "image/jpeg"


@pytest.mark.asyncio
async def test_inspector_failure_does_not_abort_upload(configured_store, client_factory):
    async def inspector(url: str) -> ImageMetadata:
        raise RuntimeError("inspection exploded")

    workflow = make_workflow(configured_store, client_factory, remote_inspector=inspector)

    outcome = await workflow.upload_url("https://example.com/cat.jpg")

    assert outcome.persisted
    assert configured_store.get_image(outcome.record.id).size is None


@pytest.mark.asyncio
async def test_local_file_upload(configured_store, client_factory, fake_client, png_file: Path):
    workflow = make_workflow(configured_store, client_factory)

    outcome = await workflow.upload_file(png_file)

    record = configured_store.get_image(outcome.record.id)
    assert record.original_url == f"local://{png_file.resolve()}"
    assert (record.width, record.height) == (12, 8)
    assert record.size == png_file.stat().st_size
    assert record.content_type == "image/png"
    assert fake_client.calls == [("upload_by_file", str(png_file.resolve()))]


@pytest.mark.asyncio
async def test_missing_local_file(configured_store, client_factory, tmp_path: Path):
    workflow = make_workflow(configured_store, client_factory)

    with pytest.raises(ValidationError, match="File not found"):
        await workflow.upload_file(tmp_path / "missing.png")

    assert client_factory.calls == 0


@pytest.mark.asyncio
async def test_local_file_needs_image_extension(configured_store, client_factory, tmp_path: Path):
    notes = tmp_path / "notes.txt"
    notes.write_text("hello")
    workflow = make_workflow(configured_store, client_factory)

    with pytest.raises(ValidationError, match="recognized image extension"):
        await workflow.upload_file(notes)
