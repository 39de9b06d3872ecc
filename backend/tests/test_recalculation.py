# Overview: Pytest coverage for the allocation recompute trigger against the database.

"""
Recalculation trigger tests.

Rows are inserted directly through the factories (no recompute), then
recalculate_session_allocations() is called explicitly.
"""

import json

import pytest

from resale.extensions import db
from resale.models import Item, LedgerEvent, StorePurchase
from resale.services.allocation_service import (
    AllocationNotFoundError,
    backfill_missing_allocations,
    preview_session_allocation,
    recalculate_all_sessions,
    recalculate_session_allocations,
)
from resale.services.money import InvalidAmount


@pytest.fixture
def two_store_session(make_session, make_store_purchase, make_items):
    """Scenario A/B: 1000 yen common cost over stores of 3000 and 1000."""
    session = make_session(transportation_cost=1000, transfer_fee=0, agency_fee=0)
    sp1 = make_store_purchase(session, product_amount=3000, item_count=3, price_input_mode="batch")
    sp2 = make_store_purchase(session, product_amount=1000, item_count=1)
    items1 = make_items(sp1, 3)
    items2 = make_items(sp2, 1)
    return session, sp1, sp2, [i.id for i in items1], [i.id for i in items2]


class TestRecalculate:

    def test_allocated_cost_null_until_computed(self, two_store_session, read_allocated):
        _, _, _, ids1, ids2 = two_store_session
        assert read_allocated(ids1 + ids2) == [None, None, None, None]

    def test_persists_allocated_costs(self, two_store_session, read_allocated):
        session, sp1, sp2, ids1, ids2 = two_store_session

        result = recalculate_session_allocations(session.id)

        assert result.shares == {sp1.id: 750, sp2.id: 250}
        assert read_allocated(ids1) == [1250, 1250, 1250]
        assert read_allocated(ids2) == [1250]

    def test_idempotent(self, two_store_session, read_allocated, db_session):
        session, _, _, ids1, ids2 = two_store_session

        recalculate_session_allocations(session.id)
        first = read_allocated(ids1 + ids2)
        recalculate_session_allocations(session.id)
        second = read_allocated(ids1 + ids2)

        assert first == second
        events = db_session.query(LedgerEvent).filter_by(event_type="allocation.recalculated").all()
        assert len(events) == 1

    def test_full_overwrite_after_upstream_change(self, two_store_session, read_allocated, db_session):
        session, sp1, _, ids1, ids2 = two_store_session
        recalculate_session_allocations(session.id)

        session.transportation_cost = 2000
        db_session.commit()
        recalculate_session_allocations(session.id)

        # shares 1500 / 500 -> (3000 + 1500) / 3 and (1000 + 500) / 1
        assert read_allocated(ids1) == [1500, 1500, 1500]
        assert read_allocated(ids2) == [1500]

    def test_divides_by_registered_items(self, make_session, make_store_purchase, make_items, read_allocated):
        session = make_session()
        sp = make_store_purchase(session, product_amount=3000, item_count=5)
        ids = [i.id for i in make_items(sp, 2)]

        recalculate_session_allocations(session.id)

        assert read_allocated(ids) == [1500, 1500]

    def test_session_without_store_purchases(self, make_session):
        session = make_session(transportation_cost=1000)
        result = recalculate_session_allocations(session.id)
        assert result.shares == {}
        assert result.item_costs == {}

    def test_store_purchase_without_items(self, make_session, make_store_purchase):
        session = make_session(transportation_cost=1000)
        sp = make_store_purchase(session, product_amount=2000, item_count=4)
        result = recalculate_session_allocations(session.id)
        assert result.shares == {sp.id: 1000}
        assert result.item_costs == {}

    def test_other_sessions_untouched(self, two_store_session, make_session, make_store_purchase,
                                      make_items, read_allocated):
        session, _, _, ids1, _ = two_store_session
        other = make_session(title="Other", transportation_cost=500)
        other_sp = make_store_purchase(other, product_amount=500)
        other_ids = [i.id for i in make_items(other_sp, 1)]

        recalculate_session_allocations(session.id)

        assert read_allocated(other_ids) == [None]
        assert read_allocated(ids1) == [1250, 1250, 1250]

    def test_ledger_event_records_shares(self, two_store_session, db_session):
        session, sp1, sp2, _, _ = two_store_session
        recalculate_session_allocations(session.id)

        event = db_session.query(LedgerEvent).filter_by(event_type="allocation.recalculated").one()
        assert event.session_id == session.id
        payload = json.loads(event.payload)
        assert payload["shares"] == {str(sp1.id): 750, str(sp2.id): 250}
        assert payload["drift"] == 0


class TestRecalculateFailure:

    def test_unknown_session(self, db_session):
        with pytest.raises(AllocationNotFoundError):
            recalculate_session_allocations(99999)

    def test_invalid_amount_leaves_prior_values(self, two_store_session, read_allocated, db_session):
        session, sp1, _, ids1, ids2 = two_store_session
        recalculate_session_allocations(session.id)
        before = read_allocated(ids1 + ids2)

        # Bypass the services, which would reject this
        db_session.query(StorePurchase).filter_by(id=sp1.id).update({"shipping_cost": -100})
        db_session.query(Item).filter(Item.id.in_(ids2)).update({"purchase_cost": 99})
        db_session.commit()

        with pytest.raises(InvalidAmount):
            recalculate_session_allocations(session.id)

        assert read_allocated(ids1 + ids2) == before

    def test_failure_writes_no_ledger_event(self, two_store_session, db_session):
        session, sp1, _, _, _ = two_store_session
        db_session.query(StorePurchase).filter_by(id=sp1.id).update({"product_amount": -1})
        db_session.commit()

        with pytest.raises(InvalidAmount):
            recalculate_session_allocations(session.id)

        assert db_session.query(LedgerEvent).count() == 0


class TestBulkRecalculation:

    @pytest.fixture
    def broken_and_good_sessions(self, make_session, make_store_purchase, make_items):
        """A session holding a negative stored amount, created before a valid one."""
        broken = make_session(title="Broken import", transportation_cost=100)
        broken_sp = make_store_purchase(broken, product_amount=1000, shipping_cost=-1)
        broken_ids = [i.id for i in make_items(broken_sp, 1)]

        good = make_session(title="Good import")
        good_sp = make_store_purchase(good, product_amount=1000)
        good_ids = [i.id for i in make_items(good_sp, 2)]
        return broken.id, broken_ids, good.id, good_ids

    def test_recalculate_all_sessions(self, two_store_session, make_session, make_store_purchase,
                                      make_items, read_allocated):
        _, _, _, ids1, _ = two_store_session
        other = make_session(title="Other", agency_fee=300)
        other_sp = make_store_purchase(other, product_amount=900)
        other_ids = [i.id for i in make_items(other_sp, 3)]

        outcome = recalculate_all_sessions()

        assert len(outcome.allocations) == 2
        assert outcome.failures == {}
        assert read_allocated(ids1) == [1250, 1250, 1250]
        assert read_allocated(other_ids) == [400, 400, 400]

    def test_recalculate_all_continues_past_failed_session(self, broken_and_good_sessions, read_allocated):
        broken_id, broken_ids, good_id, good_ids = broken_and_good_sessions

        outcome = recalculate_all_sessions()

        assert [a.session_id for a in outcome.allocations] == [good_id]
        assert list(outcome.failures) == [broken_id]
        assert "shipping_cost" in outcome.failures[broken_id]
        assert read_allocated(good_ids) == [500, 500]
        assert read_allocated(broken_ids) == [None]

    def test_backfill_only_touches_sessions_with_missing_costs(
        self, two_store_session, make_session, make_store_purchase, make_items, read_allocated
    ):
        session, _, _, ids1, _ = two_store_session
        recalculate_session_allocations(session.id)

        other = make_session(title="Imported", transfer_fee=100)
        other_sp = make_store_purchase(other, product_amount=1900)
        other_ids = [i.id for i in make_items(other_sp, 2)]

        outcome = backfill_missing_allocations()

        assert [r.session_id for r in outcome.allocations] == [other.id]
        assert read_allocated(other_ids) == [1000, 1000]

    def test_backfill_continues_past_failed_session(self, broken_and_good_sessions, read_allocated, db_session):
        broken_id, broken_ids, good_id, good_ids = broken_and_good_sessions

        outcome = backfill_missing_allocations()

        assert [a.session_id for a in outcome.allocations] == [good_id]
        assert list(outcome.failures) == [broken_id]
        assert read_allocated(good_ids) == [500, 500]
        assert read_allocated(broken_ids) == [None]
        events = db_session.query(LedgerEvent).filter_by(event_type="allocation.recalculated").all()
        assert [e.session_id for e in events] == [good_id]

    def test_backfill_nothing_to_do(self, two_store_session):
        session = two_store_session[0]
        recalculate_session_allocations(session.id)
        outcome = backfill_missing_allocations()
        assert outcome.allocations == []
        assert outcome.failures == {}


def test_preview_does_not_write(two_store_session, read_allocated):
    session, _, _, ids1, _ = two_store_session
    result = preview_session_allocation(session.id)
    assert set(result.item_costs[i] for i in ids1) == {1250}
    assert read_allocated(ids1) == [None, None, None]
