"""Tests for the delete workflow."""

from __future__ import annotations

import pytest

from imgflare.exceptions import ConfigurationError, RemoteAPIError, StorageError
from imgflare.utils.config import get_settings
from imgflare.workflows.delete import DeleteStatus, DeleteWorkflow


@pytest.fixture
def workflow(configured_store, client_factory) -> DeleteWorkflow:
    return DeleteWorkflow(configured_store, get_settings(), client_factory=client_factory)


@pytest.fixture
def stored(configured_store, make_record) -> str:
    configured_store.insert_image(make_record("img-1"))
    return "img-1"


@pytest.mark.asyncio
async def test_unconfigured_delete_rejected(store, client_factory):
    workflow = DeleteWorkflow(store, get_settings(), client_factory=client_factory)

    with pytest.raises(ConfigurationError):
        await workflow.delete("img-1", force=True)

    assert client_factory.calls == 0


@pytest.mark.asyncio
async def test_missing_record_makes_no_remote_call(workflow, client_factory, fake_client):
    outcome = await workflow.delete("ghost", force=True)

    assert outcome.status is DeleteStatus.NOT_FOUND
    assert not outcome.remote_deleted
    assert client_factory.calls == 0
    assert fake_client.calls == []


@pytest.mark.asyncio
async def test_unconfirmed_delete_is_cancelled(workflow, stored, configured_store, fake_client):
    outcome = await workflow.delete(stored)

    assert outcome.status is DeleteStatus.CANCELLED
    assert fake_client.calls == []
    assert configured_store.get_image(stored) is not None


@pytest.mark.asyncio
async def test_declined_confirmation(workflow, stored, fake_client):
    seen = []

    outcome = await workflow.delete(
        stored,
        confirm=lambda record: seen.append(record.id) or False,
    )

    assert outcome.status is DeleteStatus.CANCELLED
    assert seen == [stored]
    assert fake_client.calls == []


@pytest.mark.asyncio
async def test_confirmed_hard_delete(workflow, stored, configured_store, fake_client):
    shown = []

    outcome = await workflow.delete(
        stored,
        confirm=lambda record: True,
        on_found=lambda record: shown.append(record.id),
    )

    assert outcome.status is DeleteStatus.HARD_DELETED
    assert outcome.remote_deleted
    assert outcome.local_error is None
    assert shown == [stored]
    assert fake_client.calls == [("delete_image", stored)]
    assert configured_store.get_image(stored) is None


@pytest.mark.asyncio
async def test_soft_delete_keeps_record(workflow, stored, configured_store):
    before = configured_store.get_image(stored).to_dict()

    outcome = await workflow.delete(stored, force=True, keep_record=True)

    assert outcome.status is DeleteStatus.SOFT_DELETED
    after = configured_store.get_image(stored).to_dict()
    assert after.pop("status") == "deleted"
    before.pop("status")
    assert after == before
    assert configured_store.count_images() == 1


@pytest.mark.asyncio
async def test_remote_failure_leaves_record_untouched(
    workflow, stored, configured_store, fake_client
):
    fake_client.delete_error = RemoteAPIError("Cloudflare API request failed: not found", status_code=404)
    before = configured_store.get_image(stored).to_dict()
    rows_before = configured_store.count_images()

    with pytest.raises(RemoteAPIError):
        await workflow.delete(stored, force=True)

    record = configured_store.get_image(stored)
    assert record is not None
    assert record.to_dict() == before
    assert configured_store.count_images() == rows_before


@pytest.mark.asyncio
async def test_local_failure_after_remote_delete(
    workflow, stored, configured_store, fake_client, monkeypatch
):
    def _broken_delete(_image_id):
        raise StorageError("Local store failed while deleting image: locked")

    monkeypatch.setattr(configured_store, "delete_image_row", _broken_delete)

    outcome = await workflow.delete(stored, force=True)

    assert outcome.remote_deleted
    assert "locked" in outcome.local_error
    assert fake_client.calls == [("delete_image", stored)]
