"""Unit tests for branch_ledger.manifest.validators."""
from __future__ import annotations

import pytest

from branch_ledger.manifest import (
    CustomFee,
    Destination,
    Direction,
    EntryStatus,
    Item,
    ManifestValidator,
    ValidationError,
    ValidationResult,
    VehicleLink,
)


@pytest.fixture()
def validator() -> ManifestValidator:
    return ManifestValidator()


class TestValidationResult:
    def test_merge_carries_errors_and_warnings(self) -> None:
        first = ValidationResult()
        first.add_warning("check fees")
        second = ValidationResult()
        second.add_error("quantity missing")

        first.merge(second)

        assert not first.is_valid
        assert first.errors == ["quantity missing"]
        assert first.warnings == ["check fees"]

    def test_raise_lists_every_error(self) -> None:
        result = ValidationResult()
        result.add_error("a")
        result.add_error("b")

        with pytest.raises(ValidationError) as exc_info:
            result.raise_if_invalid()
        assert exc_info.value.errors == ["a", "b"]
        assert str(exc_info.value) == "a; b"

    def test_valid_result_does_not_raise(self) -> None:
        ValidationResult().raise_if_invalid()


class TestNewEntry:
    def test_valid_entry_without_items(self, validator) -> None:
        assert validator.validate_new_entry(Direction.INCOMING, "branch-1", []).is_valid

    def test_direction_given_as_string(self, validator) -> None:
        assert validator.validate_new_entry("outgoing", "branch-1", []).is_valid

    def test_unknown_direction_and_missing_branch(self, validator) -> None:
        result = validator.validate_new_entry("sideways", "", [])
        assert len(result.errors) == 2

    def test_item_errors_are_numbered(self, validator) -> None:
        result = validator.validate_new_entry(Direction.INCOMING, "branch-1", [
            {"description": "Tiles", "total_quantity": 3},
            {"description": "", "total_quantity": 0},
        ])
        assert result.errors == [
            "Item 2: Description is required",
            "Item 2: Total quantity must be a positive whole number",
        ]


class TestItemData:
    @pytest.mark.parametrize("quantity", [0, -2, 2.5, None, "4", True])
    def test_quantity_must_be_positive_int(self, validator, quantity) -> None:
        result = validator.validate_item_data({"description": "Tiles", "total_quantity": quantity})
        assert not result.is_valid

    def test_quantity_not_below_dispatched(self, validator) -> None:
        result = validator.validate_item_data({"description": "Tiles", "total_quantity": 3}, dispatched_quantity=4)
        assert "dispatched quantity (4)" in result.errors[0]

    def test_negative_weight_and_value(self, validator) -> None:
        result = validator.validate_item_data({
            "description": "Tiles", "total_quantity": 3, "unit_weight": -1, "value": "-10",
        })
        assert result.errors == ["Weight cannot be negative", "Value cannot be negative"]

    def test_non_numeric_value(self, validator) -> None:
        result = validator.validate_item_data({"description": "Tiles", "total_quantity": 3, "value": "lots"})
        assert result.errors == ["Value must be a number"]

    @pytest.mark.parametrize("value", [float("nan"), "NaN", "-Infinity"])
    def test_non_finite_value(self, validator, value) -> None:
        result = validator.validate_item_data({"description": "Tiles", "total_quantity": 3, "value": value})
        assert result.errors == ["Value must be a number"]

    def test_non_finite_fee_on_link(self, validator, entry_factory) -> None:
        link = VehicleLink(vehicle_id="truck-7", additional_fee=float("inf"),
                           additional_fee_payment_method="collect")
        result = validator.validate_vehicle_link(entry_factory(), link)
        assert result.errors == ["Additional fee must be a number"]


class TestItemEdits:
    def test_linked_entry_is_frozen(self, validator, entry_factory) -> None:
        entry = entry_factory(Item(0, "Tiles", 3))
        entry.status = EntryStatus.LINKED
        assert not validator.validate_item_edit(entry).is_valid

    def test_dispatched_item_cannot_be_removed(self, validator, ledger, entry_factory) -> None:
        item = Item(0, "Tiles", 3, item_id="a")
        entry = entry_factory(item)
        ledger.dispatch(entry, item, 1, Destination.branch("Kyrenia"))

        result = validator.validate_item_removal(entry, item)
        assert result.errors == ["Items with dispatch history cannot be removed"]

    def test_untouched_item_can_be_removed(self, validator, entry_factory) -> None:
        item = Item(0, "Tiles", 3)
        assert validator.validate_item_removal(entry_factory(item), item).is_valid


class TestVehicleLink:
    def test_valid_link_without_fees_warns(self, validator, entry_factory) -> None:
        result = validator.validate_vehicle_link(entry_factory(), VehicleLink(vehicle_id="truck-7"))
        assert result.is_valid
        assert result.warnings == ["No fees attached to the vehicle link"]

    def test_link_with_fees_has_no_warning(self, validator, entry_factory) -> None:
        link = VehicleLink(vehicle_id="truck-7", additional_fee=10, additional_fee_payment_method="collect")
        result = validator.validate_vehicle_link(entry_factory(), link)
        assert result.is_valid
        assert result.warnings == []

    def test_already_linked(self, validator, entry_factory) -> None:
        entry = entry_factory()
        entry.status = EntryStatus.LINKED
        result = validator.validate_vehicle_link(entry, VehicleLink(vehicle_id="truck-7"))
        assert result.errors == ["Entry is already linked to a vehicle"]

    @pytest.mark.parametrize("share", [-1, 100.5])
    def test_share_out_of_range(self, validator, entry_factory, share) -> None:
        link = VehicleLink(vehicle_id="truck-7", percentage_share=share)
        assert not validator.validate_vehicle_link(entry_factory(), link).is_valid

    def test_fee_problems_collected_together(self, validator, entry_factory) -> None:
        link = VehicleLink(
            vehicle_id="",
            additional_fee=-5,
            additional_fee_payment_method="cash",
            custom_fees=[CustomFee("", 3, "USD", "collect"), CustomFee("Customs", -1, "SYP", "later")],
        )
        result = validator.validate_vehicle_link(entry_factory(), link)
        assert len(result.errors) == 6
