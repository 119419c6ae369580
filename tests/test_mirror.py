"""Remote mirror subscription lifecycle and snapshot folding."""

from __future__ import annotations

import asyncio
import logging

from logic.mirror import CLOSET, MARKETPLACE, RECOMMENDATIONS, RemoteMirror
from models.closet_item import ClosetItem
from models.documents import MARKETPLACE_PATH, PROFILE_DOC_ID, closet_path, profile_path
from tools.document_service import DocumentServiceError, InMemoryDocumentService


def _closet_doc(item_id: str, category: str, owner: str = "u1") -> dict:
    return {"id": item_id, "owner_id": owner, "category": category, "image_url": f"https://img.test/{item_id}.png"}


def test_rebinding_same_user_keeps_one_subscription_per_collection() -> None:
    documents = InMemoryDocumentService()

    async def scenario():
        mirror = RemoteMirror(documents)
        mirror.bind_user("u1")
        mirror.bind_user("u1")
        mirror.watch_marketplace()
        mirror.watch_marketplace()
        await mirror.settle()
        counts = (documents.subscriber_count(closet_path("u1")), documents.subscriber_count())
        keys = sorted(mirror.active_subscriptions(), key=str)
        mirror.unsubscribe_all()
        return counts, keys

    (closet_count, total), keys = asyncio.run(scenario())

    assert closet_count == 1
    assert total == 5
    assert len(keys) == 5


def test_identity_change_releases_previous_user_watches() -> None:
    documents = InMemoryDocumentService()

    async def scenario():
        mirror = RemoteMirror(documents)
        mirror.watch_marketplace()
        mirror.bind_user("u1")
        await mirror.settle()
        mirror.bind_user("u2")
        await mirror.settle()
        after_switch = (documents.subscriber_count(closet_path("u1")), documents.subscriber_count(closet_path("u2")))
        mirror.bind_user(None)
        remaining = mirror.active_subscriptions()
        mirror.unsubscribe_all()
        return after_switch, remaining, documents.subscriber_count()

    after_switch, remaining, final_count = asyncio.run(scenario())

    assert after_switch == (0, 1)
    assert remaining == [(MARKETPLACE, None)]
    assert final_count == 0


def test_snapshots_fold_into_state_only_after_notification() -> None:
    documents = InMemoryDocumentService()
    documents.seed(closet_path("u1"), [_closet_doc("a", "Tops")])

    async def scenario():
        mirror = RemoteMirror(documents)
        mirror.bind_user("u1")
        await mirror.settle()
        initial = [item.id for item in mirror.state.closet_items]
        await documents.add(closet_path("u1"), {"owner_id": "u1", "category": "Bottoms", "image_url": "https://x/b"})
        before_settle = len(mirror.state.closet_items)
        await mirror.settle()
        after_settle = len(mirror.state.closet_items)
        mirror.unsubscribe_all()
        return initial, before_settle, after_settle

    initial, before_settle, after_settle = asyncio.run(scenario())

    assert initial == ["a"]
    assert before_settle == 1
    assert after_settle == 2


def test_invalid_documents_are_skipped_at_the_boundary() -> None:
    documents = InMemoryDocumentService()
    documents.seed(
        closet_path("u1"),
        [_closet_doc("a", "Tops"), _closet_doc("hat", "Hats"), {"id": "no-image", "category": "Tops"}],
    )

    async def scenario():
        mirror = RemoteMirror(documents)
        mirror.bind_user("u1")
        await mirror.settle()
        mirror.unsubscribe_all()
        return [item.id for item in mirror.state.closet_items]

    assert asyncio.run(scenario()) == ["a"]


def test_closet_documents_without_owner_take_the_path_owner() -> None:
    documents = InMemoryDocumentService()
    documents.seed(closet_path("u1"), [{"id": "a", "category": "Tops", "image_url": "https://img.test/a.png"}])

    async def scenario():
        mirror = RemoteMirror(documents)
        mirror.bind_user("u1")
        await mirror.settle()
        mirror.unsubscribe_all()
        return mirror.state.closet_items

    items = asyncio.run(scenario())
    assert items[0].owner_id == "u1"


def test_subscription_error_is_logged_and_state_retained(caplog) -> None:
    documents = InMemoryDocumentService()
    documents.seed(closet_path("u1"), [_closet_doc("a", "Tops")])

    async def scenario():
        mirror = RemoteMirror(documents)
        mirror.bind_user("u1")
        await mirror.settle()
        documents.fail_subscriptions(closet_path("u1"), DocumentServiceError("permission denied"))
        await mirror.settle()
        result = ([item.id for item in mirror.state.closet_items], mirror.active_subscriptions())
        mirror.unsubscribe_all()
        return result

    with caplog.at_level(logging.ERROR):
        items, active = asyncio.run(scenario())

    assert items == ["a"]
    assert (CLOSET, "u1") not in active
    assert (RECOMMENDATIONS, "u1") in active
    assert any(record.getMessage() == "mirror_subscription_failed" for record in caplog.records)


def test_listener_failure_does_not_end_the_watch() -> None:
    documents = InMemoryDocumentService()
    calls = []

    async def failing_listener(user_id, items):
        calls.append(len(items))
        raise RuntimeError("listener broke")

    async def scenario():
        mirror = RemoteMirror(documents)
        mirror.on_closet_change(failing_listener)
        mirror.bind_user("u1")
        await mirror.settle()
        await documents.add(closet_path("u1"), {"owner_id": "u1", "category": "Tops", "image_url": "https://x/a"})
        await mirror.settle()
        result = (len(mirror.state.closet_items), (CLOSET, "u1") in mirror.active_subscriptions())
        mirror.unsubscribe_all()
        return result

    item_count, still_active = asyncio.run(scenario())

    assert calls == [0, 1]
    assert item_count == 1
    assert still_active


def test_marketplace_is_newest_first() -> None:
    documents = InMemoryDocumentService()
    documents.seed(
        MARKETPLACE_PATH,
        [
            {
                "id": f"l{stamp}",
                "owner_id": "seller",
                "name": f"Listing {stamp}",
                "price": 100 * stamp,
                "category": "Tops",
                "availability": "buy",
                "gender": "Unisex",
                "image_url": f"https://img.test/l{stamp}.png",
                "created_at": float(stamp),
            }
            for stamp in (1, 3, 2)
        ],
    )

    async def scenario():
        mirror = RemoteMirror(documents)
        mirror.watch_marketplace()
        await mirror.settle()
        mirror.unsubscribe_all()
        return [listing.id for listing in mirror.state.listings]

    assert asyncio.run(scenario()) == ["l3", "l2", "l1"]


def test_profile_picture_is_mirrored() -> None:
    documents = InMemoryDocumentService()
    documents.seed(profile_path("u1"), [{"id": PROFILE_DOC_ID, "profile_picture": "https://img.test/me.png"}])

    async def scenario():
        mirror = RemoteMirror(documents)
        mirror.bind_user("u1")
        await mirror.settle()
        picture = mirror.state.profile_picture
        mirror.bind_user(None)
        return picture, mirror.state.profile_picture

    assert asyncio.run(scenario()) == ("https://img.test/me.png", None)


def test_unsubscribe_is_idempotent() -> None:
    documents = InMemoryDocumentService()

    async def scenario():
        mirror = RemoteMirror(documents)
        mirror.bind_user("u1")
        mirror.unsubscribe(CLOSET, "u1")
        mirror.unsubscribe(CLOSET, "u1")
        mirror.unsubscribe("unknown", None)
        await mirror.settle()
        count = documents.subscriber_count(closet_path("u1"))
        mirror.unsubscribe_all()
        return count

    assert asyncio.run(scenario()) == 0


def test_my_closet_filters_owner_and_category() -> None:
    mirror = RemoteMirror(None)
    mirror.apply_local_closet(
        [
            ClosetItem(id="local-1", owner_id="local", category="Tops", image_url="data:image/png;base64,AA=="),
            ClosetItem(id="local-2", owner_id="local", category="Footwear", image_url="data:image/png;base64,AA=="),
            ClosetItem(id="x", owner_id="someone", category="Tops", image_url="https://img.test/x.png"),
        ]
    )

    assert [item.id for item in mirror.my_closet("local")] == ["local-1", "local-2"]
    assert [item.id for item in mirror.my_closet("local", "All")] == ["local-1", "local-2"]
    assert [item.id for item in mirror.my_closet("local", "shoes")] == ["local-2"]
    assert mirror.my_closet(None) == []
    assert mirror.state.closet_origin == "local"
