"""End-to-end flows through StyleSphereApp with in-process collaborators."""

from __future__ import annotations

import asyncio
import random

from closet_app.app import StyleSphereApp
from closet_app.config import AppConfig
from models.documents import MARKETPLACE_PATH, RECOMMENDATION_DOC_ID, recommendations_path
from tools.blob_host import MockBlobHost
from tools.checkout import MockCheckoutProvider
from tools.document_service import InMemoryDocumentService
from tools.identity import LocalIdentityService
from tools.local_store import InMemoryKeyValueStore


def _image(name: str = "item.png") -> dict:
    return {"filename": name, "content_type": "image/png", "data": b"\x89PNG" + name.encode()}


class _CountingDocuments(InMemoryDocumentService):
    def __init__(self) -> None:
        super().__init__(clock=lambda: 1000.0)
        self.recommendation_writes = 0

    async def set(self, path, doc_id, fields, merge=False):
        if path.endswith("/recommendations"):
            self.recommendation_writes += 1
        await super().set(path, doc_id, fields, merge=merge)


def _remote_app(documents=None, checkout=None) -> StyleSphereApp:
    return StyleSphereApp(
        AppConfig(document_backend="memory", blob_backend="mock"),
        documents=documents or _CountingDocuments(),
        blobs=MockBlobHost(),
        identity=LocalIdentityService(),
        checkout=checkout,
        local_store=InMemoryKeyValueStore(),
        rng=random.Random(21),
    )


def _local_app() -> StyleSphereApp:
    return StyleSphereApp(AppConfig(), local_store=InMemoryKeyValueStore(), rng=random.Random(5))


def _seed_listing(documents, listing_id: str, owner: str, name: str, availability: str = "buy", stamp: float = 1.0):
    documents.seed(
        MARKETPLACE_PATH,
        [
            {
                "id": listing_id,
                "owner_id": owner,
                "name": name,
                "price": 750,
                "category": "Tops",
                "availability": availability,
                "gender": "Womens",
                "image_url": f"https://img.test/{listing_id}.png",
                "created_at": stamp,
            }
        ],
    )


def test_uploaded_item_appears_for_owner_after_notification() -> None:
    app = _remote_app()

    async def scenario():
        session = await app.start()
        response = await app.upload_closet_item("Tops", _image())
        before = app.my_closet()
        await app.mirror.settle()
        after = app.my_closet()
        elsewhere = app.mirror.my_closet("another-user")
        await app.shutdown()
        return session, response, before, after, elsewhere

    session, response, before, after, elsewhere = asyncio.run(scenario())

    assert session.user_id is not None
    assert response["status"] == "ok" and response["origin"] == "remote"
    assert before == []
    assert [item.id for item in after] == [response["item_id"]]
    assert after[0].owner_id == session.user_id
    assert elsewhere == []


def test_closet_changes_drive_recommendations_into_carousel() -> None:
    documents = _CountingDocuments()
    app = _remote_app(documents)

    async def scenario():
        await app.start()
        for category, name in (("Tops", "t1.png"), ("Tops", "t2.png"), ("Bottoms", "b.png"), ("Footwear", "f.png")):
            await app.upload_closet_item(category, _image(name))
        await app.mirror.settle()
        outfit = app.current_outfit()
        writes = documents.recommendation_writes
        stored = await documents.get(recommendations_path(app.session.user_id), RECOMMENDATION_DOC_ID)
        repeat = await app.engine.refresh(app.session.user_id, app.my_closet())
        indexes = [app.next_outfit()["index"], app.next_outfit()["index"], app.previous_outfit()["index"]]
        await app.shutdown()
        return outfit, writes, stored, repeat, indexes, documents.recommendation_writes

    outfit, writes, stored, repeat, indexes, final_writes = asyncio.run(scenario())

    assert all(outfit[category] is not None for category in ("Tops", "Bottoms", "Footwear"))
    assert writes == 1
    assert len(stored["combos"]) == 2
    assert repeat is None
    assert final_writes == writes
    assert indexes == [1, 0, 1]


def test_recategorised_item_refreshes_recommendations() -> None:
    documents = _CountingDocuments()
    app = _remote_app(documents)

    async def scenario():
        await app.start()
        ids = {}
        for category, name in (("Tops", "t1.png"), ("Tops", "t2.png"), ("Bottoms", "b.png"), ("Footwear", "f.png")):
            ids[name] = (await app.upload_closet_item(category, _image(name)))["item_id"]
        await app.mirror.settle()
        before = documents.recommendation_writes
        edited = await app.edit_closet_item(ids["t2.png"], "Bottoms")
        await app.mirror.settle()
        combos = app.mirror.state.recommendations.combos
        await app.shutdown()
        return ids, before, edited, combos, documents.recommendation_writes

    ids, before, edited, combos, after = asyncio.run(scenario())

    assert edited["status"] == "ok"
    assert after == before + 1
    assert all(combo.by_category()["Tops"].id == ids["t1.png"] for combo in combos)
    assert any(combo.by_category()["Bottoms"].id == ids["t2.png"] for combo in combos)


def test_empty_closet_shows_empty_outfit() -> None:
    app = _remote_app()

    async def scenario():
        await app.start()
        result = (app.current_outfit(), app.next_outfit())
        await app.shutdown()
        return result

    outfit, moved = asyncio.run(scenario())

    assert outfit == {"Tops": None, "Bottoms": None, "Footwear": None}
    assert moved["index"] == 0


def test_logout_releases_per_user_subscriptions() -> None:
    documents = _CountingDocuments()
    app = _remote_app(documents)

    async def scenario():
        await app.start()
        signed_in = documents.subscriber_count()
        await app.logout()
        signed_out = documents.subscriber_count()
        await app.identity.sign_in_anonymously()
        await app.mirror.settle()
        signed_back_in = documents.subscriber_count()
        await app.shutdown()
        return signed_in, signed_out, signed_back_in, documents.subscriber_count()

    assert asyncio.run(scenario()) == (5, 1, 5, 0)


def test_local_mode_uploads_stay_on_device() -> None:
    app = _local_app()

    async def scenario():
        await app.start()
        responses = [
            await app.upload_closet_item(category, _image(category)) for category in ("Tops", "Bottoms", "Footwear")
        ]
        closet = app.my_closet()
        shuffled = app.shuffle_outfits()
        listing = await app.upload_listing({"name": "Shirt", "price": 100, "category": "Tops"}, _image())
        saved = await app.save_outfit()
        await app.shutdown()
        return responses, closet, shuffled, listing, saved

    responses, closet, shuffled, listing, saved = asyncio.run(scenario())

    assert app.is_local_mode
    assert all(response["item_id"].startswith("local-") for response in responses)
    assert len(closet) == 3
    assert shuffled["status"] == "ok" and shuffled["count"] == 1
    assert app.current_outfit()["Footwear"] is not None
    assert listing == {
        "status": "error",
        "error": "ServiceUnavailableError",
        "message": "Please sign in to do that.",
    }
    assert saved["status"] == "error"
    assert app.view.last_toast.kind == "error"


def test_local_closet_is_loaded_at_start() -> None:
    store = InMemoryKeyValueStore()
    first = StyleSphereApp(AppConfig(), local_store=store)

    async def upload():
        await first.start()
        await first.upload_closet_item("Bottoms", _image())

    asyncio.run(upload())

    second = StyleSphereApp(AppConfig(), local_store=store)
    asyncio.run(second.start())

    assert [item.category for item in second.my_closet()] == ["Bottoms"]
    assert second.my_closet("Tops") == []


def test_shuffle_without_enough_items_reports_error() -> None:
    app = _local_app()
    asyncio.run(app.start())

    result = app.shuffle_outfits()

    assert result["status"] == "error"
    assert app.current_outfit() == {"Tops": None, "Bottoms": None, "Footwear": None}


def test_save_and_delete_outfit() -> None:
    app = _remote_app()

    async def scenario():
        await app.start()
        for category in ("Tops", "Bottoms", "Footwear"):
            await app.upload_closet_item(category, _image(category))
        await app.mirror.settle()
        saved = await app.save_outfit()
        await app.mirror.settle()
        library = app.saved_outfits
        deleted = await app.delete_saved_outfit(saved["outfit_id"])
        again = await app.delete_saved_outfit(saved["outfit_id"])
        await app.mirror.settle()
        remaining = app.saved_outfits
        await app.shutdown()
        return saved, library, deleted, again, remaining

    saved, library, deleted, again, remaining = asyncio.run(scenario())

    assert saved["status"] == "ok"
    assert [len(outfit.items) for outfit in library] == [3]
    assert deleted["status"] == "ok"
    assert again["error"] == "ItemNotFoundError"
    assert remaining == []


def test_save_outfit_accepts_the_displayed_outfit_and_rejects_bad_pieces() -> None:
    documents = _CountingDocuments()
    app = _remote_app(documents)

    async def scenario():
        await app.start()
        for category in ("Tops", "Bottoms", "Footwear"):
            await app.upload_closet_item(category, _image(category))
        await app.mirror.settle()
        shown = list(app.current_outfit().values())
        saved = await app.save_outfit(shown)
        hats = await app.save_outfit(shown[:2] + [{"id": "h1", "category": "Hats", "image_url": "https://img.test/h"}])
        stray = await app.save_outfit(shown + ["not-a-piece"])
        partial = await app.save_outfit(shown[:2])
        await app.mirror.settle()
        library = app.saved_outfits
        await app.shutdown()
        return shown, saved, hats, stray, partial, library

    shown, saved, hats, stray, partial, library = asyncio.run(scenario())

    assert saved["status"] == "ok"
    assert [piece.id for piece in library[0].items] == [piece["id"] for piece in shown]
    for rejected in (hats, stray, partial):
        assert rejected["status"] == "error"
        assert rejected["error"] == "InvalidInputError"
    assert len(library) == 1


def test_purchase_records_receipt_and_cancel_does_not() -> None:
    documents = _CountingDocuments()
    _seed_listing(documents, "saree", owner="seller", name="Silk saree", availability="rent")
    checkout = MockCheckoutProvider()
    app = _remote_app(documents, checkout=checkout)

    async def scenario():
        await app.start()
        paid = app.purchase("saree")
        checkout.outcome = "cancel"
        cancelled = app.purchase("saree")
        missing = app.purchase("unknown")
        await app.shutdown()
        return paid, cancelled, missing

    paid, cancelled, missing = asyncio.run(scenario())

    assert paid["status"] == "ok" and paid["amount"] == 750
    assert checkout.opened[0] == {"amount": 750, "currency": "INR", "description": "Rent: Silk saree"}
    assert cancelled["status"] == "cancelled"
    assert missing["error"] == "ItemNotFoundError"
    receipts = app.receipts.list_receipts()
    assert len(receipts) == 1
    assert receipts[0]["listing_id"] == "saree"
    assert receipts[0]["availability"] == "rent"


def test_listing_owned_by_someone_else_cannot_be_changed() -> None:
    documents = _CountingDocuments()
    _seed_listing(documents, "theirs", owner="owner-b", name="Boots")
    app = _remote_app(documents)

    async def scenario():
        await app.start()
        edit = await app.edit_listing("theirs", {"price": 1})
        delete = await app.delete_listing("theirs")
        stored = await documents.get(MARKETPLACE_PATH, "theirs")
        await app.shutdown()
        return edit, delete, stored

    edit, delete, stored = asyncio.run(scenario())

    assert edit["error"] == "AuthorizationError"
    assert delete["error"] == "AuthorizationError"
    assert stored["price"] == 750


def test_marketplace_listing_round_trip_and_browse() -> None:
    documents = _CountingDocuments()
    _seed_listing(documents, "old", owner="seller", name="Linen shirt", stamp=1.0)
    app = _remote_app(documents)

    async def scenario():
        await app.start()
        created = await app.upload_listing(
            {"name": "Leather boots", "price": 2500, "category": "Footwear", "availability": "buy", "gender": "Mens"},
            _image("boots.png"),
        )
        await app.mirror.settle()
        everything = [listing.id for listing in app.browse_marketplace()]
        boots = [listing.id for listing in app.browse_marketplace(search="BOOT")]
        mens_footwear = app.browse_marketplace(categories=["shoes"], genders=["mens"])
        await app.shutdown()
        return created, everything, boots, mens_footwear

    created, everything, boots, mens_footwear = asyncio.run(scenario())

    assert created["status"] == "ok"
    assert everything == [created["listing_id"], "old"]
    assert boots == [created["listing_id"]]
    assert [listing.name for listing in mens_footwear] == ["Leather boots"]


def test_profile_picture_update_is_mirrored() -> None:
    app = _remote_app()

    async def scenario():
        await app.start()
        response = await app.update_profile_picture(_image("me.png"))
        await app.mirror.settle()
        picture = app.profile_picture
        await app.shutdown()
        return response, picture

    response, picture = asyncio.run(scenario())

    assert response["status"] == "ok"
    assert picture == response["image_url"]
