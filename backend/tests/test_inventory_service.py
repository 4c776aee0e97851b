# Overview: Pytest coverage for the stock ledger.

"""
Stock Ledger Tests

- quantity is 0 for unknown variants and never goes negative
- replenish / bulk_replenish only accept sizes the catalog declares
- reserve_and_decrement fails fast and writes nothing on shortage
- every mutation leaves a StockMovement behind
- manual corrections and removals are ADJUST movements with the exact delta
"""

import pytest
from shoeledger.errors import InsufficientStockError, InvalidAmountError, NotFoundError
from shoeledger.models import StockEntry, StockMovement
from shoeledger.services import inventory_service
from shoeledger.services.inventory_service import (
    MOVEMENT_ADJUST,
    MOVEMENT_COMPENSATE,
    MOVEMENT_REPLENISH,
    MOVEMENT_SALE,
)


class TestGetQuantity:
    def test_unknown_variant_is_zero(self, db_session, shoe_a):
        assert inventory_service.get_quantity(shoe_a.id, "41") == 0

    def test_unknown_shoe_is_zero(self, db_session):
        assert inventory_service.get_quantity(12345, "42") == 0

    def test_numeric_size_reads_the_same_variant(self, db_session, shoe_a):
        inventory_service.replenish(shoe_id=shoe_a.id, size=42.0, quantity=3)
        assert inventory_service.get_quantity(shoe_a.id, 42.0) == 3
        assert inventory_service.get_quantity(shoe_a.id, 42) == 3
        assert inventory_service.get_quantity(shoe_a.id, " 42 ") == 3
        assert inventory_service.get_stock_entry(shoe_id=shoe_a.id, size=42.0).quantity == 3

    def test_unusable_size_is_zero(self, db_session, stocked_shoe_a):
        assert inventory_service.get_quantity(stocked_shoe_a.id, None) == 0
        assert inventory_service.get_quantity(stocked_shoe_a.id, "") == 0


class TestReplenish:
    def test_first_replenish_creates_entry(self, db_session, shoe_a):
        entry = inventory_service.replenish(shoe_id=shoe_a.id, size="41", quantity=4)
        assert entry.quantity == 4
        assert db_session.query(StockEntry).count() == 1

    def test_replenish_accumulates(self, db_session, stocked_shoe_a):
        inventory_service.replenish(shoe_id=stocked_shoe_a.id, size=42, quantity=5)
        assert inventory_service.get_quantity(stocked_shoe_a.id, "42") == 15
        assert db_session.query(StockEntry).count() == 1

    def test_replenish_records_movement(self, db_session, stocked_shoe_a):
        movement = db_session.query(StockMovement).one()
        assert movement.kind == MOVEMENT_REPLENISH
        assert movement.quantity_delta == 10

    @pytest.mark.parametrize("quantity", [0, -3, True, 1.5, "4"])
    def test_replenish_rejects_bad_quantity(self, db_session, shoe_a, quantity):
        with pytest.raises(InvalidAmountError):
            inventory_service.replenish(shoe_id=shoe_a.id, size="42", quantity=quantity)

    def test_replenish_rejects_undeclared_size(self, db_session, shoe_a):
        with pytest.raises(NotFoundError):
            inventory_service.replenish(shoe_id=shoe_a.id, size="47", quantity=1)
        assert db_session.query(StockEntry).count() == 0

    def test_replenish_unknown_shoe(self, db_session):
        with pytest.raises(NotFoundError):
            inventory_service.replenish(shoe_id=999, size="42", quantity=1)


class TestBulkReplenish:
    def test_bulk_sums_repeated_sizes(self, db_session, shoe_a):
        inventory_service.bulk_replenish(
            shoe_id=shoe_a.id,
            entries=[{"size": "40", "quantity": 2}, {"size": "41", "quantity": 3}, {"size": "40", "quantity": 1}],
        )
        assert inventory_service.get_quantity(shoe_a.id, "40") == 3
        assert inventory_service.get_quantity(shoe_a.id, "41") == 3

    def test_bulk_is_all_or_nothing(self, db_session, shoe_a):
        with pytest.raises(NotFoundError):
            inventory_service.bulk_replenish(
                shoe_id=shoe_a.id,
                entries=[{"size": "40", "quantity": 2}, {"size": "48", "quantity": 3}],
            )
        assert inventory_service.get_quantity(shoe_a.id, "40") == 0
        assert db_session.query(StockMovement).count() == 0

    def test_bulk_rejects_empty(self, db_session, shoe_a):
        with pytest.raises(InvalidAmountError):
            inventory_service.bulk_replenish(shoe_id=shoe_a.id, entries=[])


class TestReserveAndDecrement:
    def test_decrement(self, db_session, stocked_shoe_a):
        entry = inventory_service.reserve_and_decrement(shoe_id=stocked_shoe_a.id, size="42", quantity=4)
        assert entry.quantity == 6
        assert db_session.query(StockMovement).filter_by(kind=MOVEMENT_SALE).count() == 1

    def test_decrement_to_zero(self, db_session, stocked_shoe_a):
        inventory_service.reserve_and_decrement(shoe_id=stocked_shoe_a.id, size="42", quantity=10)
        assert inventory_service.get_quantity(stocked_shoe_a.id, "42") == 0

    def test_shortage_reports_available_and_writes_nothing(self, db_session, stocked_shoe_a):
        with pytest.raises(InsufficientStockError) as excinfo:
            inventory_service.reserve_and_decrement(shoe_id=stocked_shoe_a.id, size="42", quantity=11)
        assert excinfo.value.available == 10
        assert excinfo.value.details["requested"] == 11
        assert inventory_service.get_quantity(stocked_shoe_a.id, "42") == 10
        assert db_session.query(StockMovement).filter_by(kind=MOVEMENT_SALE).count() == 0

    def test_decrement_without_entry(self, db_session, shoe_a):
        with pytest.raises(InsufficientStockError) as excinfo:
            inventory_service.reserve_and_decrement(shoe_id=shoe_a.id, size="40", quantity=1)
        assert excinfo.value.available == 0


class TestCompensate:
    def test_compensate_ignores_catalog(self, db_session, stocked_shoe_a):
        # A size dropped from the catalog still gets its stock back
        entry = inventory_service.compensate(shoe_id=stocked_shoe_a.id, size="39", quantity=2, sale_id=77)
        assert entry.quantity == 2
        movement = db_session.query(StockMovement).filter_by(kind=MOVEMENT_COMPENSATE).one()
        assert movement.sale_id == 77


class TestReads:
    def test_list_below_is_strict(self, db_session, shoe_a):
        inventory_service.bulk_replenish(
            shoe_id=shoe_a.id,
            entries=[{"size": "40", "quantity": 1}, {"size": "41", "quantity": 5}, {"size": "42", "quantity": 9}],
        )
        below = inventory_service.list_below(5)
        assert [(e.size, e.quantity) for e in below] == [("40", 1)]

    def test_list_below_zero_threshold(self, db_session, stocked_shoe_a):
        assert inventory_service.list_below(0) == []

    def test_list_below_rejects_negative_threshold(self, db_session):
        with pytest.raises(InvalidAmountError):
            inventory_service.list_below(-1)

    def test_list_movements_newest_first(self, db_session, stocked_shoe_a):
        inventory_service.reserve_and_decrement(shoe_id=stocked_shoe_a.id, size="42", quantity=1)
        kinds = [m.kind for m in inventory_service.list_movements(shoe_id=stocked_shoe_a.id, size="42")]
        assert kinds == [MOVEMENT_SALE, MOVEMENT_REPLENISH]

    def test_get_stock_entry_unknown(self, db_session, shoe_a):
        with pytest.raises(NotFoundError):
            inventory_service.get_stock_entry(shoe_id=shoe_a.id, size="40")


class TestManualAdjustments:
    def test_set_quantity_records_delta(self, db_session, stocked_shoe_a):
        entry = inventory_service.get_stock_entry(shoe_id=stocked_shoe_a.id, size="42")

        updated = inventory_service.set_quantity(entry.id, 7, note="Recount")
        assert updated.quantity == 7
        movement = db_session.query(StockMovement).filter_by(kind=MOVEMENT_ADJUST).one()
        assert movement.quantity_delta == -3
        assert movement.note == "Recount"

        inventory_service.set_quantity(entry.id, 12)
        deltas = [m.quantity_delta for m in db_session.query(StockMovement).filter_by(kind=MOVEMENT_ADJUST)]
        assert sorted(deltas) == [-3, 5]
        assert inventory_service.get_quantity(stocked_shoe_a.id, "42") == 12

    def test_set_same_quantity_writes_nothing(self, db_session, stocked_shoe_a):
        entry = inventory_service.get_stock_entry(shoe_id=stocked_shoe_a.id, size="42")
        inventory_service.set_quantity(entry.id, 10)
        assert db_session.query(StockMovement).filter_by(kind=MOVEMENT_ADJUST).count() == 0

    @pytest.mark.parametrize("quantity", [-1, True, 2.5, "3"])
    def test_set_quantity_rejects_bad_values(self, db_session, stocked_shoe_a, quantity):
        entry = inventory_service.get_stock_entry(shoe_id=stocked_shoe_a.id, size="42")
        with pytest.raises(InvalidAmountError):
            inventory_service.set_quantity(entry.id, quantity)
        assert inventory_service.get_quantity(stocked_shoe_a.id, "42") == 10

    def test_set_quantity_unknown_entry(self, db_session):
        with pytest.raises(NotFoundError):
            inventory_service.set_quantity(404, 1)

    def test_delete_entry(self, db_session, stocked_shoe_a):
        entry = inventory_service.get_stock_entry(shoe_id=stocked_shoe_a.id, size="42")

        snapshot = inventory_service.delete_stock_entry(entry.id)
        assert snapshot["quantity"] == 10
        assert db_session.query(StockEntry).count() == 0
        assert inventory_service.get_quantity(stocked_shoe_a.id, "42") == 0

        movement = db_session.query(StockMovement).filter_by(kind=MOVEMENT_ADJUST).one()
        assert movement.quantity_delta == -10
        assert movement.note == "Stock entry deleted"

        # The variant comes back on the next replenish
        inventory_service.replenish(shoe_id=stocked_shoe_a.id, size="42", quantity=2)
        assert inventory_service.get_quantity(stocked_shoe_a.id, "42") == 2

    def test_delete_empty_entry_has_no_movement(self, db_session, stocked_shoe_a):
        entry = inventory_service.get_stock_entry(shoe_id=stocked_shoe_a.id, size="42")
        inventory_service.set_quantity(entry.id, 0)
        inventory_service.delete_stock_entry(entry.id)
        assert db_session.query(StockMovement).filter_by(kind=MOVEMENT_ADJUST).count() == 1
