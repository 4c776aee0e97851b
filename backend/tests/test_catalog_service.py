# Overview: Pytest coverage for the shoe catalog and the sizes encoding boundary.

import json
from decimal import Decimal

import pytest
from shoeledger.errors import ConflictError, InvalidAmountError, NotFoundError
from shoeledger.models import LedgerEvent
from shoeledger.services import catalog_service, inventory_service
from shoeledger.validation import ValidationError


class TestSizesBoundary:
    """Sizes are stored as JSON text and only read through parse_sizes."""

    def test_parse_sizes_keeps_order_and_drops_duplicates(self):
        assert catalog_service.parse_sizes('["42", "40", "42", 41]') == ("42", "40", "41")

    def test_parse_sizes_empty_text(self):
        assert catalog_service.parse_sizes(None) == ()
        assert catalog_service.parse_sizes("   ") == ()

    def test_parse_sizes_rejects_malformed_json(self):
        with pytest.raises(ValidationError):
            catalog_service.parse_sizes("40,41,42")

    def test_parse_sizes_rejects_non_list(self):
        with pytest.raises(ValidationError):
            catalog_service.parse_sizes('{"size": "42"}')

    def test_parse_sizes_rejects_blank_label(self):
        with pytest.raises(ValidationError):
            catalog_service.parse_sizes('["41", " "]')

    def test_float_sizes_render_without_trailing_zero(self):
        assert catalog_service.normalize_sizes([42.5, 43.0]) == ("42.5", "43")

    def test_encode_sizes_round_trip(self):
        text = catalog_service.encode_sizes([40, "41"])
        assert json.loads(text) == ["40", "41"]


class TestCreateShoe:
    def test_create_shoe_normalizes_fields(self, db_session):
        shoe = catalog_service.create_shoe(
            name="  Air Max 90 ",
            brand="Nike",
            sku="nk-am90",
            sizes=[40, "41"],
            price="50000",
            cost_price="20.5",
        )
        assert shoe.sku == "NK-AM90"
        assert shoe.name == "Air Max 90"
        assert catalog_service.parse_sizes(shoe.sizes) == ("40", "41")
        assert shoe.price == Decimal("50000")
        assert shoe.cost_price == Decimal("20.50")

    def test_create_shoe_writes_ledger_event(self, db_session, shoe_a):
        event = db_session.query(LedgerEvent).filter_by(event_type="shoe.created").one()
        assert event.entity_id == shoe_a.id

    def test_duplicate_sku_rejected(self, db_session, shoe_a):
        with pytest.raises(ValidationError):
            catalog_service.create_shoe(
                name="Other", brand="Nike", sku="NK-AM90", sizes=["40"], price=1, cost_price=1,
            )

    def test_shoe_requires_a_size(self, db_session):
        with pytest.raises(ValidationError):
            catalog_service.create_shoe(name="X", brand="Y", sku="Z", sizes=[], price=1, cost_price=1)

    def test_negative_price_rejected(self, db_session):
        with pytest.raises(InvalidAmountError):
            catalog_service.create_shoe(name="X", brand="Y", sku="Z", sizes=["40"], price=-1, cost_price=1)

    def test_unknown_category_rejected(self, db_session):
        with pytest.raises(ValidationError):
            catalog_service.create_shoe(
                name="X", brand="Y", sku="Z", sizes=["40"], price=1, cost_price=1, category="pets",
            )


class TestLookup:
    def test_get_shoe_unknown(self, db_session):
        with pytest.raises(NotFoundError):
            catalog_service.get_shoe(9999)

    def test_require_size_accepts_numeric_input(self, db_session, shoe_a):
        assert catalog_service.require_size(shoe_a, 42) == "42"

    def test_require_size_rejects_undeclared(self, db_session, shoe_a):
        with pytest.raises(NotFoundError):
            catalog_service.require_size(shoe_a, "45")


class TestUpdateShoe:
    def test_update_changes_only_given_fields(self, db_session, shoe_a):
        shoe = catalog_service.update_shoe(shoe_a.id, price="55000", sizes=["41", "42", "43"])
        assert shoe.price == Decimal("55000")
        assert shoe.name == "Air Max 90"
        assert catalog_service.parse_sizes(shoe.sizes) == ("41", "42", "43")

    def test_invalid_update_leaves_shoe_untouched(self, db_session, shoe_a):
        with pytest.raises(InvalidAmountError):
            catalog_service.update_shoe(shoe_a.id, name="Renamed", cost_price="-5")
        db_session.expire_all()
        assert catalog_service.get_shoe(shoe_a.id).name == "Air Max 90"

    def test_sku_clash_on_update(self, db_session, shoe_a, shoe_b):
        with pytest.raises(ValidationError):
            catalog_service.update_shoe(shoe_b.id, sku="nk-am90")

    def test_list_shoes_reports_total(self, db_session, shoe_a, shoe_b):
        shoes, total = catalog_service.list_shoes(limit=1)
        assert total == 2
        assert len(shoes) == 1
        # Ordered by brand
        assert shoes[0].brand == "Adidas"


class TestDeleteShoe:
    def test_delete_unreferenced_shoe(self, db_session, shoe_a):
        snapshot = catalog_service.delete_shoe(shoe_a.id)
        assert snapshot["sku"] == "NK-AM90"
        with pytest.raises(NotFoundError):
            catalog_service.get_shoe(shoe_a.id)
        assert db_session.query(LedgerEvent).filter_by(event_type="shoe.deleted").count() == 1

    def test_stocked_shoe_is_kept(self, db_session, stocked_shoe_a):
        with pytest.raises(ConflictError) as excinfo:
            catalog_service.delete_shoe(stocked_shoe_a.id)
        assert excinfo.value.details["stock_entries"] == 1
        assert catalog_service.get_shoe(stocked_shoe_a.id).name == "Air Max 90"

    def test_history_keeps_shoe_after_stock_is_gone(self, db_session, stocked_shoe_a):
        entry = inventory_service.get_stock_entry(shoe_id=stocked_shoe_a.id, size="42")
        inventory_service.delete_stock_entry(entry.id)
        with pytest.raises(ConflictError) as excinfo:
            catalog_service.delete_shoe(stocked_shoe_a.id)
        assert "stock_entries" not in excinfo.value.details
        assert excinfo.value.details["stock_movements"] == 2

    def test_delete_unknown_shoe(self, db_session):
        with pytest.raises(NotFoundError):
            catalog_service.delete_shoe(404)
