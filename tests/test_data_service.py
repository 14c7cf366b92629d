"""Storage tests for branch_ledger.manifest.data_service against SQLite."""
from __future__ import annotations

import json
from datetime import datetime
from decimal import Decimal

import pytest
from sqlalchemy import text

from branch_ledger.manifest import (
    ConcurrencyError,
    CustomFee,
    Destination,
    DestinationKind,
    Direction,
    EntryStatus,
    Item,
    NotFoundError,
    VehicleLink,
)


def _stored_document(data_service, entry_id):
    with data_service.engine.connect() as conn:
        row = conn.execute(
            text("SELECT document, version FROM branch_entries WHERE entry_id = :entry_id"),
            {"entry_id": entry_id},
        ).fetchone()
    return json.loads(row[0]), row[1]


class TestRoundTrip:
    def test_entry_survives_storage(self, data_service, ledger, entry_factory) -> None:
        item = Item(0, "Boxes of tiles", 10, item_id="item-a", value=Decimal("100.50"),
                    currency="usd", unit_weight=2.5, sender_reference="REF-9")
        entry = entry_factory(item)
        entry.vehicle_link = VehicleLink(
            vehicle_id="truck-7",
            vehicle_name="Truck 7",
            additional_fee=Decimal("12.75"),
            additional_fee_payment_method="collect",
            custom_fees=[CustomFee("Customs", 300, "SYP", "collect")],
            linked_at=datetime(2025, 3, 14, 11, 0),
        )
        entry.status = EntryStatus.LINKED
        ledger.dispatch(entry, item, 4, Destination.customer("Ali", "Nicosia"), operator="clerk")
        data_service.insert_entry(entry)

        loaded = data_service.get_entry("entry-1")

        assert loaded.version == 1
        assert loaded.status is EntryStatus.LINKED
        loaded_item = loaded.items[0]
        assert loaded_item.value == Decimal("100.50")
        assert loaded_item.currency == "USD"
        assert loaded_item.dispatched_quantity == 4
        assert loaded_item.sender_reference == "REF-9"
        record = loaded_item.dispatch_history[0]
        assert record.destination.kind is DestinationKind.CUSTOMER
        assert record.recorded_by == "clerk"
        assert record.dispatched_at == datetime(2025, 3, 14, 9, 30)
        assert loaded.vehicle_link.custom_fees[0].amount == Decimal("300")
        assert loaded.vehicle_link.linked_at == datetime(2025, 3, 14, 11, 0)
        assert loaded.collectible_total() == entry.collectible_total()

    def test_document_keeps_manifest_field_names(self, data_service, incoming_entry) -> None:
        data_service.insert_entry(incoming_entry)
        document, version = _stored_document(data_service, "entry-1")

        assert version == 1
        assert document["bol_number"] == "BOL-2025-001"
        assert document["entry_type"] == "incoming"
        assert document["items"][1]["item_value"] == "20"
        assert document["items"][0]["item_status"] == "Received"

    def test_missing_entry(self, data_service) -> None:
        with pytest.raises(NotFoundError):
            data_service.get_entry("does-not-exist")


class TestOptimisticWrites:
    def test_each_save_bumps_version(self, data_service, incoming_entry) -> None:
        data_service.insert_entry(incoming_entry)
        incoming_entry.notes = "checked"
        data_service.save_entry(incoming_entry)
        data_service.save_entry(incoming_entry)

        assert incoming_entry.version == 3
        assert data_service.get_entry("entry-1").version == 3

    def test_stale_copy_is_rejected(self, data_service, incoming_entry) -> None:
        data_service.insert_entry(incoming_entry)
        first = data_service.get_entry("entry-1")
        second = data_service.get_entry("entry-1")

        first.items[0].dispatched_quantity = 4
        data_service.save_entry(first)

        second.items[0].dispatched_quantity = 7
        with pytest.raises(ConcurrencyError) as exc_info:
            data_service.save_entry(second)

        assert exc_info.value.entry_id == "entry-1"
        assert exc_info.value.expected_version == 1
        assert second.version == 1
        stored = data_service.get_entry("entry-1")
        assert stored.items[0].dispatched_quantity == 4
        assert stored.version == 2

    def test_save_after_delete(self, data_service, incoming_entry) -> None:
        data_service.insert_entry(incoming_entry)
        data_service.delete_entry("entry-1")

        with pytest.raises(NotFoundError):
            data_service.save_entry(incoming_entry)

    def test_duplicate_manifest_number(self, data_service, entry_factory) -> None:
        data_service.insert_entry(entry_factory(entry_id="a"))
        with pytest.raises(ConcurrencyError):
            data_service.insert_entry(entry_factory(entry_id="b"))
        assert len(data_service.list_entries()) == 1

    def test_save_entries_is_all_or_nothing(self, data_service, entry_factory) -> None:
        first = data_service.insert_entry(entry_factory(Item(0, "Tiles", 2), entry_id="a", number="BOL-2025-001"))
        second = data_service.insert_entry(entry_factory(Item(0, "Oil", 2), entry_id="b", number="BOL-2025-002"))
        data_service.save_entry(data_service.get_entry("b"))

        first.notes = "on trip"
        second.notes = "on trip"
        with pytest.raises(ConcurrencyError):
            data_service.save_entries([first, second])

        assert first.version == 1
        assert data_service.get_entry("a").notes == ""
        assert data_service.get_entry("a").version == 1

    def test_delete_missing_entry(self, data_service) -> None:
        with pytest.raises(NotFoundError):
            data_service.delete_entry("does-not-exist")


class TestQueries:
    def test_list_newest_first_and_by_direction(self, data_service, entry_factory) -> None:
        older = entry_factory(entry_id="a", number="BOL-2025-001")
        newer = entry_factory(entry_id="b", number="BOL-2025-002", direction=Direction.OUTGOING)
        newer.created_at = datetime(2025, 3, 15, 8, 0)
        data_service.insert_entry(older)
        data_service.insert_entry(newer)

        assert [e.entry_id for e in data_service.list_entries()] == ["b", "a"]
        assert [e.entry_id for e in data_service.list_entries(Direction.INCOMING)] == ["a"]
        assert [e.entry_id for e in data_service.list_entries(Direction.OUTGOING)] == ["b"]

    def test_latest_number_for_prefix(self, data_service, entry_factory) -> None:
        data_service.insert_entry(entry_factory(entry_id="a", number="BOL-2024-120"))
        data_service.insert_entry(entry_factory(entry_id="b", number="BOL-2025-002"))
        data_service.insert_entry(entry_factory(entry_id="c", number="BOL-2025-010"))

        assert data_service.find_latest_number("BOL-2025-") == "BOL-2025-010"
        assert data_service.find_latest_number("BOL-2026-") is None

    def test_latest_number_skips_malformed_rows(self, data_service, entry_factory) -> None:
        data_service.insert_entry(entry_factory(entry_id="a", number="BOL-2025-004"))
        data_service.insert_entry(entry_factory(entry_id="b", number="BOL-2025-001a"))
        data_service.insert_entry(entry_factory(entry_id="c", number="BOL-2025-x"))

        assert data_service.find_latest_number("BOL-2025-") == "BOL-2025-004"

    def test_nested_transaction_joins_outer(self, data_service, entry_factory) -> None:
        with pytest.raises(RuntimeError):
            with data_service.db_transaction():
                data_service.insert_entry(entry_factory(entry_id="a"))
                raise RuntimeError("abort")

        assert data_service.list_entries() == []
