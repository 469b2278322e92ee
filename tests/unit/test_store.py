"""
Unit Tests for BoardStore

Tests for: partitioning, moves with fallback search, patches, creation
de-duplication, search, and status age
"""
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from conftest import order_record
from orderboard.exceptions import BoardInvariantError
from orderboard.models import Column, Order, OrderItem, OrderPatch, OrderStatus, PaymentType
from orderboard.store import BoardStore, Urgency, matches_search, order_total, status_age


NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def store(seeded_records):
    store = BoardStore()
    store.replace_all([Order.from_dict(r) for r in seeded_records])
    return store


class TestPartition:
    """Test splitting orders into columns"""

    def test_replace_all_partitions_by_status(self, store):
        """Test orders land in the column for their status"""
        assert store.column_ids(Column.CREATED) == ["1", "2", "3"]
        assert store.column_ids(Column.DELIVERING) == ["4"]
        assert store.column_ids(Column.COMPLETED) == ["5"]
        assert [o.id for o in store.orders] == ["1", "2", "3", "4", "5"]
        store.check_invariants()

    def test_unknown_status_filed_under_created(self):
        """Test unknown statuses go to created and are counted"""
        store = BoardStore()
        store.replace_all([Order.from_dict(order_record(9, "Returned"))])

        assert store.column_ids(Column.CREATED) == ["9"]
        assert store.diagnostics.unknown_statuses == 1
        store.check_invariants()

    def test_duplicate_server_ids_keep_first(self):
        """Test a duplicated id from the server is listed once"""
        store = BoardStore()
        store.replace_all([
            Order.from_dict(order_record(1, "Created")),
            Order.from_dict(order_record(1, "Completed")),
        ])

        assert len(store) == 1
        assert store.locate("1") == Column.CREATED
        store.check_invariants()

    def test_counts(self, store):
        """Test per-column counts"""
        assert store.counts() == {Column.CREATED: 3, Column.DELIVERING: 1, Column.COMPLETED: 1}


class TestMove:
    """Test cross-column moves"""

    def test_move_sets_status_and_timestamp(self, store):
        """Test moved order gets the target status and a fresh timestamp"""
        moved = store.move("2", Column.CREATED, Column.DELIVERING, at=NOW)

        assert moved.status == OrderStatus.OUT_FOR_DELIVERY
        assert moved.status_updated_at == NOW
        assert store.column_ids(Column.CREATED) == ["1", "3"]
        assert store.column_ids(Column.DELIVERING) == ["4", "2"]
        assert store.get("2") is moved
        store.check_invariants()

    def test_move_falls_back_to_searching_all_columns(self, store):
        """Test an order missing from its expected column is still moved"""
        moved = store.move("4", Column.CREATED, Column.COMPLETED, at=NOW)

        assert moved is not None
        assert store.locate("4") == Column.COMPLETED
        assert store.diagnostics.missing_item_recoveries == 1
        store.check_invariants()

    def test_move_of_unknown_order_is_abandoned(self, store):
        """Test a move for an id that is nowhere leaves the board untouched"""
        before = store.columns()
        assert store.move("99", Column.CREATED, Column.COMPLETED) is None
        assert store.columns() == before
        assert store.diagnostics.abandoned_moves == 1


class TestReorder:
    """Test in-column visual reordering"""

    def test_reorder_within_column(self, store):
        """Test moving a card to another card's position"""
        assert store.reorder_within(Column.CREATED, "3", "1") is True
        assert store.column_ids(Column.CREATED) == ["3", "1", "2"]
        assert store.get("3").status == OrderStatus.CREATED
        store.check_invariants()

    def test_reorder_with_unknown_ids_is_noop(self, store):
        """Test reorder ignores ids not in the column"""
        assert store.reorder_within(Column.CREATED, "1", "4") is False
        assert store.column_ids(Column.CREATED) == ["1", "2", "3"]

    def test_restore_column_order(self, store):
        """Test restoring a captured order undoes a reorder"""
        captured = store.column_ids(Column.CREATED)
        store.reorder_within(Column.CREATED, "1", "3")
        store.restore_column_order(Column.CREATED, captured)
        assert store.column_ids(Column.CREATED) == captured


class TestPatchAndInsert:
    """Test field patches and creation notices"""

    def test_patch_updates_column_and_flat_list(self, store):
        """Test patch payload is identical in both representations"""
        updated = store.apply_patch("4", OrderPatch(driver_name="Niran", payment_type=PaymentType.DEBIT))

        assert store.column(Column.DELIVERING)[0] is updated
        assert store.get("4") is updated
        assert updated.driver_name == "Niran"
        store.check_invariants()

    def test_patch_unknown_order(self, store):
        """Test patching a missing order returns None"""
        assert store.apply_patch("99", OrderPatch(driver_name="x")) is None

    def test_insert_goes_to_top_of_its_column(self, store):
        """Test created orders are prepended"""
        assert store.insert(Order.from_dict(order_record(6, "Out for Delivery"))) is True
        assert store.column_ids(Column.DELIVERING) == ["6", "4"]
        assert store.orders[0].id == "6"
        store.check_invariants()

    def test_insert_duplicate_is_rejected(self, store):
        """Test de-duplication by id"""
        assert store.insert(Order.from_dict(order_record(1, "Completed"))) is False
        assert store.locate("1") == Column.CREATED


class TestInvariants:
    """Test invariant checking catches corruption"""

    def test_duplicate_across_columns_detected(self, store):
        """Test the same id in two columns is reported"""
        store._columns[Column.COMPLETED].append(store.get("1"))
        with pytest.raises(BoardInvariantError):
            store.check_invariants()

    def test_flat_list_mismatch_detected(self, store):
        """Test a flat-list payload mismatch is reported"""
        store._orders[0] = OrderPatch(driver_name="ghost").apply(store._orders[0])
        with pytest.raises(BoardInvariantError):
            store.check_invariants()


class TestSearch:
    """Test column search"""

    def test_search_by_name_and_id(self, store):
        """Test case-insensitive name and id match"""
        assert [o.id for o in store.search(Column.CREATED, "bravo")] == ["2"]
        assert [o.id for o in store.search(Column.CREATED, "3")] == ["3"]
        assert len(store.search(Column.CREATED, "   ")) == 3

    def test_visible_orders_use_column_term(self, store):
        """Test per-column search terms"""
        store.set_search_term(Column.CREATED, "ALPHA")
        assert [o.id for o in store.visible_orders(Column.CREATED)] == ["1"]
        assert [o.id for o in store.visible_orders(Column.DELIVERING)] == ["4"]

    def test_missing_customer_name(self):
        """Test orders without a name only match on id"""
        order = Order(id="12")
        assert matches_search(order, "12")
        assert not matches_search(order, "alpha")


class TestDataShaping:
    """Test totals and status age"""

    def test_order_total(self):
        """Test summing item totals, ignoring junk"""
        order = Order(id="1", items=(
            OrderItem("Cube", 2, 40, 80),
            OrderItem("Crushed", 1, 35, "35.5"),
            OrderItem("Block", 1, 0, None),
        ))
        assert order_total(order) == Decimal("115.5")

    def test_created_age_uses_created_at(self):
        """Test Created orders age from createdAt"""
        order = Order(id="1", created_at=NOW - timedelta(minutes=45),
                      status_updated_at=NOW - timedelta(minutes=5))
        age = status_age(order, NOW)
        assert age.minutes == 45
        assert age.urgency == Urgency.WARNING

    def test_delivering_age_uses_status_updated_at(self):
        """Test in-delivery orders age from statusUpdatedAt"""
        order = Order(id="1", status=OrderStatus.OUT_FOR_DELIVERY,
                      created_at=NOW - timedelta(hours=5),
                      status_updated_at=NOW - timedelta(minutes=200))
        assert status_age(order, NOW).urgency == Urgency.DANGER

    def test_completed_is_never_urgent(self):
        """Test completed orders have no threshold"""
        order = Order(id="1", status=OrderStatus.COMPLETED,
                      status_updated_at=NOW - timedelta(hours=10))
        assert status_age(order, NOW).urgency == Urgency.NORMAL

    def test_no_timestamp(self):
        """Test orders without timestamps have no age"""
        assert status_age(Order(id="1"), NOW) is None
