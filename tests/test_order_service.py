"""Tests for order placement, reads and tracking."""

import asyncio
from datetime import datetime, timedelta

import pytest
from bson import ObjectId

from utils import order_service, store
from utils.errors import Conflict, Forbidden, InvalidOperation, NotFound, Unavailable, ValidationError
from utils.order_service import (
    add_tracking,
    compensate_reservation,
    format_profile_address,
    get_order,
    list_orders,
    list_orders_for_user,
    list_sales_for_seller,
    place_order,
    reserve_product,
)
from utils.product_service import update_product
from workers.reservation_sweep_worker import release_orphaned_reservations

pytestmark = pytest.mark.asyncio


class TestPlaceOrder:
    async def test_cash_on_delivery_order(self, db, users, product):
        order = await place_order(
            db, users["buyer"], product["_id"], "cod", shipping_address="1 Main St, Springfield"
        )

        assert order["price"] == 100.0
        assert order["shipping_fee"] == 5.0
        assert order["tax"] == 8.0
        assert order["total"] == 113.0
        assert order["status"] == "pending_payment"
        assert order["payment_status"] == "pending"
        assert order["payment_details"] == {"cod_address": "1 Main St, Springfield"}
        assert order["seller_id"] == users["seller"]["_id"]
        assert order["buyer_id"] == users["buyer"]["_id"]

        stored = await db.orders.find_one({"_id": order["_id"]})
        assert stored["total"] == 113.0

        reserved = await db.products.find_one({"_id": product["_id"]})
        assert reserved["is_available"] is False
        assert reserved["reservation"]["order_id"] == order["_id"]
        assert reserved["reservation"]["confirmed"] is True

    async def test_order_carries_product_and_seller_snapshot(self, db, users, product):
        order = await place_order(db, users["buyer"], str(product["_id"]), "credit_card")

        assert order["product_snapshot"]["title"] == "Vintage desk lamp"
        assert order["product_snapshot"]["price"] == 100.0
        assert order["product_snapshot"]["images"] == ["/uploads/lamp-1.jpg"]
        assert order["seller_snapshot"] == {
            "id": str(users["seller"]["_id"]),
            "name": "Sam Seller",
            "email": "sam.seller@example.com",
        }

    async def test_order_created_event_recorded(self, db, users, product):
        order = await place_order(db, users["buyer"], product["_id"], "credit_card")

        events = await db.order_timeline.find({"order_id": order["_id"]}).to_list(length=None)
        assert [e["event"] for e in events] == ["ORDER_CREATED"]
        assert events[0]["metadata"]["total"] == 113.0

    async def test_stored_price_survives_product_edit(self, db, users, product):
        order = await place_order(db, users["buyer"], product["_id"], "credit_card")

        await update_product(db, users["seller"], product["_id"], {"price": 250, "title": "Renamed"})

        stored = await db.orders.find_one({"_id": order["_id"]})
        assert stored["price"] == 100.0
        assert stored["total"] == 113.0
        assert stored["product_snapshot"]["title"] == "Vintage desk lamp"

    async def test_second_purchase_conflicts(self, db, users, product):
        await place_order(db, users["buyer"], product["_id"], "credit_card")

        with pytest.raises(Conflict) as exc:
            await place_order(db, users["other_buyer"], product["_id"], "credit_card")
        assert exc.value.details["reason"] == "product_unavailable"

    async def test_concurrent_buyers_only_one_wins(self, db, users, product, monkeypatch):
        original = order_service.reserve_product
        arrived = 0
        both_checked = asyncio.Event()

        async def gated(*args, **kwargs):
            nonlocal arrived
            arrived += 1
            if arrived == 2:
                both_checked.set()
            await both_checked.wait()
            return await original(*args, **kwargs)

        monkeypatch.setattr(order_service, "reserve_product", gated)

        results = await asyncio.gather(
            place_order(db, users["buyer"], product["_id"], "credit_card"),
            place_order(db, users["other_buyer"], product["_id"], "credit_card"),
            return_exceptions=True,
        )

        orders = [r for r in results if isinstance(r, dict)]
        conflicts = [r for r in results if isinstance(r, Conflict)]
        assert len(orders) == 1
        assert len(conflicts) == 1
        assert await db.orders.count_documents({"product_id": product["_id"]}) == 1

    async def test_unknown_product(self, db, users):
        with pytest.raises(NotFound):
            await place_order(db, users["buyer"], ObjectId(), "credit_card")

    async def test_malformed_product_id(self, db, users):
        with pytest.raises(ValidationError):
            await place_order(db, users["buyer"], "not-an-id", "credit_card")

    async def test_self_purchase_rejected(self, db, users, product):
        with pytest.raises(InvalidOperation) as exc:
            await place_order(db, users["seller"], product["_id"], "credit_card")
        assert exc.value.details["reason"] == "self_purchase"

        untouched = await db.products.find_one({"_id": product["_id"]})
        assert untouched["is_available"] is True

    async def test_inactive_product_rejected(self, db, users, make_product):
        hidden = await make_product(users["seller"], status="inactive")

        with pytest.raises(Conflict):
            await place_order(db, users["buyer"], hidden["_id"], "credit_card")

    async def test_unknown_payment_method(self, db, users, product):
        with pytest.raises(ValidationError):
            await place_order(db, users["buyer"], product["_id"], "bitcoin")

    async def test_payment_method_is_case_insensitive(self, db, users, product):
        order = await place_order(db, users["buyer"], product["_id"], "Credit_Card")
        assert order["payment_method"] == "credit_card"

    async def test_cod_requires_address(self, db, users, product):
        with pytest.raises(ValidationError):
            await place_order(db, users["buyer"], product["_id"], "cod", shipping_address="   ")

        untouched = await db.products.find_one({"_id": product["_id"]})
        assert untouched["is_available"] is True
        assert "reservation" not in untouched

    async def test_address_falls_back_to_profile(self, db, users, product):
        order = await place_order(db, users["buyer"], product["_id"], "credit_card")
        assert order["shipping_address"] == "9 Elm St, Springfield, IL, 62701, US"

    async def test_address_placeholder_without_profile(self, db, users, product):
        order = await place_order(db, users["other_buyer"], product["_id"], "bank_transfer")
        assert order["shipping_address"] == "Address not provided"

    async def test_card_number_is_not_stored(self, db, users, product):
        order = await place_order(
            db,
            users["buyer"],
            product["_id"],
            "credit_card",
            payment_details={"card_number": "4242 4242 4242 4242", "card_holder": "Bea Buyer", "cvv": "123"},
        )
        assert order["payment_details"] == {"card_last4": "4242", "card_holder": "Bea Buyer"}

    async def test_bank_transfer_gets_reference(self, db, users, product):
        order = await place_order(db, users["buyer"], product["_id"], "bank_transfer")
        assert order["payment_details"]["reference_id"].startswith("REF_")


class TestCompensation:
    async def test_failure_after_reservation_restores_product(self, db, users, product, monkeypatch):
        def boom(price):
            raise RuntimeError("boom")

        monkeypatch.setattr(order_service, "price_breakdown", boom)

        with pytest.raises(RuntimeError):
            await place_order(db, users["buyer"], product["_id"], "credit_card")

        restored = await db.products.find_one({"_id": product["_id"]})
        assert restored["is_available"] is True
        assert "reservation" not in restored
        assert await db.orders.count_documents({}) == 0

    async def test_store_outage_after_reservation_restores_product(self, db, users, product, monkeypatch):
        def outage(price):
            raise Unavailable("Store timed out during insert order")

        monkeypatch.setattr(order_service, "price_breakdown", outage)

        with pytest.raises(Unavailable):
            await place_order(db, users["buyer"], product["_id"], "credit_card")

        restored = await db.products.find_one({"_id": product["_id"]})
        assert restored["is_available"] is True

    async def test_cancellation_after_reservation_restores_product(self, db, users, product, monkeypatch):
        def cancelled(price):
            raise asyncio.CancelledError()

        monkeypatch.setattr(order_service, "price_breakdown", cancelled)

        with pytest.raises(asyncio.CancelledError):
            await place_order(db, users["buyer"], product["_id"], "credit_card")

        restored = await db.products.find_one({"_id": product["_id"]})
        assert restored["is_available"] is True

    async def test_compensation_skips_when_order_exists(self, db, users, product):
        order_id = ObjectId()
        await reserve_product(db, product["_id"], order_id=order_id, token="t-1", now=product["created_at"])
        await db.orders.insert_one({"_id": order_id, "product_id": product["_id"]})

        released = await compensate_reservation(db, product["_id"], order_id=order_id, token="t-1")

        assert released is False
        still_reserved = await db.products.find_one({"_id": product["_id"]})
        assert still_reserved["is_available"] is False

    async def test_compensation_ignores_foreign_token(self, db, users, product):
        await reserve_product(db, product["_id"], order_id=ObjectId(), token="winner", now=product["created_at"])

        released = await compensate_reservation(db, product["_id"], order_id=ObjectId(), token="loser")

        assert released is False
        still_reserved = await db.products.find_one({"_id": product["_id"]})
        assert still_reserved["reservation"]["token"] == "winner"


def _delay_order_inserts(db, monkeypatch, *, lands_after: float | None):
    """
    Make order inserts outlive the store timeout. With ``lands_after`` set the
    write still reaches the collection that many seconds later, like a server
    finishing a write whose client already gave up.
    """
    collection_class = type(db.orders)
    real_insert = collection_class.insert_one
    late_writes = []

    async def slow_insert(self, document, *args, **kwargs):
        if self.name != "orders":
            return await real_insert(self, document, *args, **kwargs)

        async def land():
            await asyncio.sleep(lands_after)
            return await real_insert(self, document, *args, **kwargs)

        if lands_after is not None:
            late_writes.append(asyncio.ensure_future(land()))
        await asyncio.sleep(1)

    monkeypatch.setattr(store, "STORE_TIMEOUT_SECONDS", 0.05)
    monkeypatch.setattr(collection_class, "insert_one", slow_insert)
    return late_writes


class TestInsertOutcomeUnknown:
    async def test_late_insert_keeps_product_reserved(self, db, users, product, monkeypatch):
        late_writes = _delay_order_inserts(db, monkeypatch, lands_after=0.2)

        with pytest.raises(Unavailable):
            await place_order(db, users["buyer"], product["_id"], "credit_card")

        held = await db.products.find_one({"_id": product["_id"]})
        assert held["is_available"] is False
        assert held["reservation"]["confirmed"] is False

        await asyncio.gather(*late_writes)
        monkeypatch.undo()

        with pytest.raises(Conflict):
            await place_order(db, users["other_buyer"], product["_id"], "credit_card")
        assert await db.orders.count_documents({"product_id": product["_id"]}) == 1

        result = await release_orphaned_reservations(db, now=datetime.utcnow() + timedelta(hours=1))
        assert result == {"released": 0, "confirmed": 1}

    async def test_lost_insert_is_released_by_sweep(self, db, users, product, monkeypatch):
        _delay_order_inserts(db, monkeypatch, lands_after=None)

        with pytest.raises(Unavailable):
            await place_order(db, users["buyer"], product["_id"], "credit_card")
        monkeypatch.undo()

        held = await db.products.find_one({"_id": product["_id"]})
        assert held["is_available"] is False

        result = await release_orphaned_reservations(db, now=datetime.utcnow() + timedelta(hours=1))
        assert result == {"released": 1, "confirmed": 0}

        order = await place_order(db, users["other_buyer"], product["_id"], "credit_card")
        assert order["buyer_id"] == users["other_buyer"]["_id"]

    async def test_cancelled_during_insert_keeps_product_reserved(self, db, users, product, monkeypatch):
        collection_class = type(db.orders)
        real_insert = collection_class.insert_one

        async def cancelled_insert(self, document, *args, **kwargs):
            if self.name == "orders":
                raise asyncio.CancelledError()
            return await real_insert(self, document, *args, **kwargs)

        monkeypatch.setattr(collection_class, "insert_one", cancelled_insert)

        with pytest.raises(asyncio.CancelledError):
            await place_order(db, users["buyer"], product["_id"], "credit_card")

        held = await db.products.find_one({"_id": product["_id"]})
        assert held["is_available"] is False
        assert "reservation" in held


class TestIdempotency:
    async def test_retry_returns_same_order(self, db, users, product):
        first = await place_order(db, users["buyer"], product["_id"], "credit_card", idempotency_key="k-1")
        second = await place_order(db, users["buyer"], product["_id"], "credit_card", idempotency_key="k-1")

        assert second["_id"] == first["_id"]
        assert await db.orders.count_documents({}) == 1

    async def test_failed_attempt_can_be_retried(self, db, users, product, monkeypatch):
        def boom(price):
            raise RuntimeError("boom")

        with monkeypatch.context() as m:
            m.setattr(order_service, "price_breakdown", boom)
            with pytest.raises(RuntimeError):
                await place_order(db, users["buyer"], product["_id"], "credit_card", idempotency_key="k-2")

        order = await place_order(db, users["buyer"], product["_id"], "credit_card", idempotency_key="k-2")
        assert order["status"] == "pending_payment"

    async def test_key_bookkeeping_outage_still_returns_order(self, db, users, product, monkeypatch):
        async def outage(**kwargs):
            raise Unavailable("Store timed out during idempotency complete")

        monkeypatch.setattr(order_service, "complete_idempotency_key", outage)

        order = await place_order(db, users["buyer"], product["_id"], "credit_card", idempotency_key="k-4")

        assert order["status"] == "pending_payment"
        assert await db.orders.count_documents({"_id": order["_id"]}) == 1
        held = await db.products.find_one({"_id": product["_id"]})
        assert held["reservation"]["confirmed"] is True

    async def test_business_error_clears_key(self, db, users, product):
        with pytest.raises(ValidationError):
            await place_order(db, users["buyer"], product["_id"], "cod", idempotency_key="k-3")

        assert await db.idempotency_keys.count_documents({"key": "k-3"}) == 0


class TestReads:
    async def test_buyer_and_seller_see_order(self, db, users, product):
        order = await place_order(db, users["buyer"], product["_id"], "credit_card")

        for actor in (users["buyer"], users["seller"], users["admin"]):
            detail = await get_order(db, actor, str(order["_id"]))
            assert detail["_id"] == order["_id"]

        detail = await get_order(db, users["buyer"], order["_id"])
        assert detail["seller_contact"]["email"] == "sam.seller@example.com"
        assert detail["buyer_contact"]["name"] == "Bea Buyer"
        assert [e["event"] for e in detail["timeline"]] == ["ORDER_CREATED"]

    async def test_stranger_cannot_see_order(self, db, users, product):
        order = await place_order(db, users["buyer"], product["_id"], "credit_card")

        with pytest.raises(Forbidden):
            await get_order(db, users["other_buyer"], order["_id"])

    async def test_missing_order(self, db, users):
        with pytest.raises(NotFound):
            await get_order(db, users["admin"], ObjectId())

    async def test_history_lists(self, db, users, make_product):
        first = await make_product(users["seller"])
        second = await make_product(users["seller"], price=20)
        await place_order(db, users["buyer"], first["_id"], "credit_card")
        await place_order(db, users["other_buyer"], second["_id"], "credit_card")

        assert len(await list_orders_for_user(db, users["buyer"]["_id"])) == 1
        assert len(await list_sales_for_seller(db, users["seller"]["_id"])) == 2

    async def test_admin_listing_paginates(self, db, users, make_product):
        for _ in range(3):
            item = await make_product(users["seller"])
            await place_order(db, users["buyer"], item["_id"], "credit_card")

        result = await list_orders(db, users["admin"], page=2, limit=2)

        assert result["total"] == 3
        assert result["pages"] == 2
        assert result["current_page"] == 2
        assert len(result["orders"]) == 1

    async def test_admin_listing_requires_admin(self, db, users):
        with pytest.raises(Forbidden):
            await list_orders(db, users["buyer"])


class TestTracking:
    async def test_tracking_requires_shipped(self, db, users, product):
        order = await place_order(db, users["buyer"], product["_id"], "credit_card")

        with pytest.raises(Conflict):
            await add_tracking(db, users["seller"], order["_id"], "UPS", "1Z999")

    async def test_seller_adds_tracking(self, db, users, product):
        order = await place_order(db, users["buyer"], product["_id"], "credit_card")
        await db.orders.update_one({"_id": order["_id"]}, {"$set": {"status": "shipped"}})

        updated = await add_tracking(db, users["seller"], order["_id"], " UPS ", "1Z999")

        assert updated["tracking"] == {"carrier": "UPS", "tracking_number": "1Z999", "tracking_url": None}

    async def test_buyer_cannot_add_tracking(self, db, users, product):
        order = await place_order(db, users["buyer"], product["_id"], "credit_card")

        with pytest.raises(Forbidden):
            await add_tracking(db, users["buyer"], order["_id"], "UPS", "1Z999")

    async def test_blank_tracking_fields(self, db, users, product):
        order = await place_order(db, users["buyer"], product["_id"], "credit_card")

        with pytest.raises(ValidationError):
            await add_tracking(db, users["admin"], order["_id"], "", "1Z999")


async def test_profile_address_formats():
    assert format_profile_address({"address": {"city": "Paris", "country": "FR"}}) == "Paris, FR"
    assert format_profile_address({"address": "  "}) is None
    assert format_profile_address({}) is None
