"""Document service writes, snapshots and subscriptions."""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from tools.document_service import (
    SERVER_TIMESTAMP,
    DocumentNotFoundError,
    DocumentServiceError,
    InMemoryDocumentService,
    SQLiteDocumentService,
)

CLOSET = "users/u1/closet"


def test_add_get_update_delete_cycle() -> None:
    documents = InMemoryDocumentService(clock=lambda: 12.5)

    async def scenario():
        doc_id = await documents.add(CLOSET, {"category": "Tops", "created_at": SERVER_TIMESTAMP})
        created = await documents.get(CLOSET, doc_id)
        await documents.update(CLOSET, doc_id, {"category": "Bottoms"})
        updated = await documents.get(CLOSET, doc_id)
        await documents.delete(CLOSET, doc_id)
        missing = await documents.get(CLOSET, doc_id)
        return doc_id, created, updated, missing

    doc_id, created, updated, missing = asyncio.run(scenario())

    assert created == {"id": doc_id, "category": "Tops", "created_at": 12.5}
    assert updated["category"] == "Bottoms"
    assert updated["created_at"] == 12.5
    assert missing is None


def test_update_and_delete_unknown_ids_raise_not_found() -> None:
    documents = InMemoryDocumentService()

    with pytest.raises(DocumentNotFoundError):
        asyncio.run(documents.update(CLOSET, "missing", {"category": "Tops"}))
    with pytest.raises(DocumentNotFoundError):
        asyncio.run(documents.delete(CLOSET, "missing"))


def test_set_replaces_unless_merge_requested() -> None:
    documents = InMemoryDocumentService()

    async def scenario():
        await documents.set("users/u1/profile", "settings", {"a": 1, "b": 2})
        await documents.set("users/u1/profile", "settings", {"b": 3}, merge=True)
        merged = await documents.get("users/u1/profile", "settings")
        await documents.set("users/u1/profile", "settings", {"c": 4})
        replaced = await documents.get("users/u1/profile", "settings")
        return merged, replaced

    merged, replaced = asyncio.run(scenario())

    assert merged == {"id": "settings", "a": 1, "b": 3}
    assert replaced == {"id": "settings", "c": 4}


def test_invalid_paths_are_rejected() -> None:
    documents = InMemoryDocumentService()
    with pytest.raises(ValueError):
        asyncio.run(documents.add("users//closet", {}))


def test_subscription_receives_initial_and_full_snapshots() -> None:
    documents = InMemoryDocumentService()
    documents.seed(CLOSET, [{"id": "a", "category": "Tops"}])

    async def scenario():
        subscription = documents.subscribe(CLOSET)
        initial = await subscription.__anext__()
        await documents.add(CLOSET, {"category": "Bottoms"})
        after_add = await subscription.__anext__()
        await documents.delete(CLOSET, "a")
        after_delete = await subscription.__anext__()
        subscription.close()
        return initial, after_add, after_delete

    initial, after_add, after_delete = asyncio.run(scenario())

    assert [doc["id"] for doc in initial] == ["a"]
    assert len(after_add) == 2
    assert [doc["category"] for doc in after_delete] == ["Bottoms"]


def test_subscription_orders_by_field_descending() -> None:
    documents = InMemoryDocumentService()
    documents.seed(
        "marketplace",
        [{"id": "old", "created_at": 1.0}, {"id": "new", "created_at": 3.0}, {"id": "mid", "created_at": 2.0}],
    )

    async def scenario():
        subscription = documents.subscribe("marketplace", order_by="created_at", descending=True)
        snapshot = await subscription.__anext__()
        subscription.close()
        return snapshot

    assert [doc["id"] for doc in asyncio.run(scenario())] == ["new", "mid", "old"]


def test_close_is_idempotent_and_releases_watch() -> None:
    documents = InMemoryDocumentService()

    async def scenario():
        subscription = documents.subscribe(CLOSET)
        assert documents.subscriber_count(CLOSET) == 1
        subscription.close()
        subscription.close()
        items = [snapshot async for snapshot in subscription]
        return subscription, items

    subscription, items = asyncio.run(scenario())

    assert subscription.closed
    assert items == []
    assert documents.subscriber_count() == 0


def test_failed_subscription_raises_through_iterator() -> None:
    documents = InMemoryDocumentService()

    async def scenario():
        subscription = documents.subscribe(CLOSET)
        await subscription.__anext__()
        documents.fail_subscriptions(CLOSET, DocumentServiceError("permission denied"))
        with pytest.raises(DocumentServiceError):
            await subscription.__anext__()
        return subscription

    subscription = asyncio.run(scenario())
    assert subscription.closed
    assert documents.subscriber_count(CLOSET) == 0


def test_sqlite_documents_survive_reopen(tmp_path: Path) -> None:
    db_path = tmp_path / "documents.db"
    first = SQLiteDocumentService(db_path, clock=lambda: 7.0)
    doc_id = asyncio.run(first.add(CLOSET, {"category": "Footwear", "created_at": SERVER_TIMESTAMP}))

    reopened = SQLiteDocumentService(db_path)
    listed = asyncio.run(reopened.list_documents(CLOSET))

    assert listed == [{"id": doc_id, "category": "Footwear", "created_at": 7.0}]
    with pytest.raises(DocumentNotFoundError):
        asyncio.run(reopened.delete(CLOSET, "missing"))
