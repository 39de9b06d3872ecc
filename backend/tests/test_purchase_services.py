# Overview: Pytest coverage for session, store purchase and store services.

import pytest

from resale.services import item_service, purchase_session_service, store_purchase_service, store_service
from resale.services.money import InvalidAmount
from resale.services.purchase_session_service import (
    PurchaseSessionError,
    PurchaseSessionNotFoundError,
    PurchaseSessionStateError,
)
from resale.services.store_purchase_service import (
    StorePurchaseError,
    StorePurchaseNotFoundError,
    StorePurchaseStateError,
)


class TestPurchaseSessions:

    def test_create_requires_title(self, db_session):
        with pytest.raises(PurchaseSessionError):
            purchase_session_service.create_session(title="")

    def test_create_rejects_negative_cost(self, db_session):
        with pytest.raises(InvalidAmount):
            purchase_session_service.create_session(title="Trip", agency_fee=-1)

    def test_cost_edit_recomputes(self, db_session, read_allocated):
        session = purchase_session_service.create_session(title="Trip", transportation_cost=1000)
        sp1 = store_purchase_service.create_store_purchase(session_id=session.id, product_amount=3000)
        sp2 = store_purchase_service.create_store_purchase(session_id=session.id, product_amount=1000)
        ids1 = [i.id for i in item_service.add_items(sp1.id, [{"name": "A"}, {"name": "B"}, {"name": "C"}])]
        id2 = item_service.add_item(sp2.id, name="D").id

        purchase_session_service.update_session(session.id, {"transportation_cost": 2000})

        assert read_allocated(ids1 + [id2]) == [1500, 1500, 1500, 1500]

    def test_update_rejects_unknown_status(self, db_session):
        session = purchase_session_service.create_session(title="Trip")
        with pytest.raises(PurchaseSessionError):
            purchase_session_service.update_session(session.id, {"status": "archived"})

    def test_update_missing(self, db_session):
        with pytest.raises(PurchaseSessionNotFoundError):
            purchase_session_service.update_session(99999, {"title": "Nope"})

    def test_delete_blocked_by_store_purchases(self, db_session):
        session = purchase_session_service.create_session(title="Trip")
        store_purchase_service.create_store_purchase(session_id=session.id, product_amount=500)
        with pytest.raises(PurchaseSessionStateError):
            purchase_session_service.delete_session(session.id)

    def test_delete_empty_session(self, db_session):
        session = purchase_session_service.create_session(title="Trip")
        purchase_session_service.delete_session(session.id)
        with pytest.raises(PurchaseSessionNotFoundError):
            purchase_session_service.get_session(session.id)

    def test_list_sessions_filters_status(self, db_session):
        purchase_session_service.create_session(title="Open")
        done = purchase_session_service.create_session(title="Done")
        purchase_session_service.update_session(done.id, {"status": "completed"})

        sessions, total = purchase_session_service.list_sessions(status="completed")
        assert total == 1
        assert sessions[0].title == "Done"

    def test_summary(self, db_session):
        session = purchase_session_service.create_session(title="Trip", transportation_cost=1000)
        sp1 = store_purchase_service.create_store_purchase(
            session_id=session.id, product_amount=3000, item_count=3,
        )
        store_purchase_service.create_store_purchase(
            session_id=session.id, product_amount=1000, item_count=1,
        )
        item_service.add_items(sp1.id, [{"name": "A"}, {"name": "B"}])

        summary = purchase_session_service.get_session_summary(session.id)

        assert summary["common_cost"] == 1000
        assert summary["total_subtotal"] == 4000
        assert summary["total_cost"] == 5000
        assert summary["apportioned_total"] == 1000
        assert summary["apportionment_drift"] == 0
        assert summary["expected_item_count"] == 4
        assert summary["registered_item_count"] == 2
        assert [row["apportioned_common_cost"] for row in summary["store_purchases"]] == [750, 250]

    def test_summary_reports_drift(self, db_session):
        session = purchase_session_service.create_session(title="Trip", transportation_cost=100)
        for _ in range(3):
            store_purchase_service.create_store_purchase(session_id=session.id, product_amount=1000)

        summary = purchase_session_service.get_session_summary(session.id)

        assert summary["apportioned_total"] == 99
        assert summary["apportionment_drift"] == -1


class TestStorePurchases:

    def test_unknown_session(self, db_session):
        with pytest.raises(StorePurchaseNotFoundError):
            store_purchase_service.create_store_purchase(session_id=99999, product_amount=100)

    def test_invalid_mode(self, db_session):
        session = purchase_session_service.create_session(title="Trip")
        with pytest.raises(StorePurchaseError):
            store_purchase_service.create_store_purchase(session_id=session.id, price_input_mode="weighted")

    def test_unknown_store(self, db_session):
        session = purchase_session_service.create_session(title="Trip")
        with pytest.raises(StorePurchaseError):
            store_purchase_service.create_store_purchase(session_id=session.id, store_id=99999)

    def test_negative_amount(self, db_session):
        session = purchase_session_service.create_session(title="Trip")
        with pytest.raises(InvalidAmount):
            store_purchase_service.create_store_purchase(session_id=session.id, shipping_cost=-10)

    def test_new_sibling_moves_shares(self, db_session, read_allocated):
        session = purchase_session_service.create_session(title="Trip", transportation_cost=1000)
        sp1 = store_purchase_service.create_store_purchase(session_id=session.id, product_amount=3000)
        ids = [i.id for i in item_service.add_items(sp1.id, [{"name": "A"}, {"name": "B"}])]
        assert read_allocated(ids) == [2000, 2000]

        store_purchase_service.create_store_purchase(session_id=session.id, product_amount=1000)

        assert read_allocated(ids) == [1875, 1875]

    def test_amount_edit_recomputes(self, db_session, read_allocated):
        session = purchase_session_service.create_session(title="Trip")
        sp = store_purchase_service.create_store_purchase(session_id=session.id, product_amount=1000)
        ids = [i.id for i in item_service.add_items(sp.id, [{"name": "A"}, {"name": "B"}])]

        store_purchase_service.update_store_purchase(sp.id, {"shipping_cost": 500})

        assert read_allocated(ids) == [750, 750]

    def test_update_rejects_unknown_field(self, db_session):
        session = purchase_session_service.create_session(title="Trip")
        sp = store_purchase_service.create_store_purchase(session_id=session.id)
        with pytest.raises(StorePurchaseError):
            store_purchase_service.update_store_purchase(sp.id, {"session_id": 2})

    def test_delete_blocked_by_items(self, db_session):
        session = purchase_session_service.create_session(title="Trip")
        sp = store_purchase_service.create_store_purchase(session_id=session.id, product_amount=100)
        item_service.add_item(sp.id, name="A")
        with pytest.raises(StorePurchaseStateError):
            store_purchase_service.delete_store_purchase(sp.id)

    def test_delete_recomputes_siblings(self, db_session, read_allocated):
        session = purchase_session_service.create_session(title="Trip", transportation_cost=1000)
        sp1 = store_purchase_service.create_store_purchase(session_id=session.id, product_amount=3000)
        sp2 = store_purchase_service.create_store_purchase(session_id=session.id, product_amount=1000)
        ids = [i.id for i in item_service.add_items(sp1.id, [{"name": "A"}, {"name": "B"}])]
        assert read_allocated(ids) == [1875, 1875]

        store_purchase_service.delete_store_purchase(sp2.id)

        assert read_allocated(ids) == [2000, 2000]

    def test_summary_reports_remainder(self, db_session):
        session = purchase_session_service.create_session(title="Trip")
        sp = store_purchase_service.create_store_purchase(
            session_id=session.id, product_amount=4000, item_count=5,
        )
        item_service.add_items(sp.id, [{"name": "A"}, {"name": "B"}, {"name": "C"}])

        summary = store_purchase_service.get_store_purchase_summary(sp.id)

        assert summary["total_cost"] == 4000
        assert summary["allocated_cost_per_item"] == 1333
        assert summary["allocated_total"] == 3999
        assert summary["unallocated_remainder"] == 1
        assert summary["registered_item_count"] == 3
        assert summary["remaining_item_count"] == 2

    def test_summary_without_items(self, db_session):
        session = purchase_session_service.create_session(title="Trip", agency_fee=200)
        sp = store_purchase_service.create_store_purchase(
            session_id=session.id, product_amount=800, item_count=2,
        )

        summary = store_purchase_service.get_store_purchase_summary(sp.id)

        assert summary["total_cost"] == 1000
        assert summary["allocated_cost_per_item"] is None
        assert summary["unallocated_remainder"] == 1000


class TestStores:

    def test_create_and_list(self, db_session):
        store_service.create_store("Hard Off Kyoto", store_type="recycle", prefecture="Kyoto")
        store_service.create_store("Mercari", store_type="online")

        assert [s.name for s in store_service.list_stores()] == ["Hard Off Kyoto", "Mercari"]
        assert [s.name for s in store_service.list_stores(store_type="online")] == ["Mercari"]

    def test_invalid_type(self, db_session):
        with pytest.raises(store_service.StoreError):
            store_service.create_store("Somewhere", store_type="flea")

    def test_update_missing(self, db_session):
        with pytest.raises(store_service.StoreNotFoundError):
            store_service.update_store(99999, {"name": "Nope"})

    def test_store_purchase_links_store(self, db_session, store):
        session = purchase_session_service.create_session(title="Trip")
        sp = store_purchase_service.create_store_purchase(session_id=session.id, store_id=store.id)
        assert sp.store.name == "Second Street Shibuya"
