"""
Validation rules for manifest and dispatch operations
Every rule collects all problems instead of stopping at the first one.
"""
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional

from .exceptions import ValidationError
from .models import Destination, DestinationKind, Direction, Item, ManifestEntry, VehicleLink
from .monetary import VALID_PAYMENT_METHODS, to_decimal

logger = logging.getLogger(__name__)


@dataclass
class ValidationResult:
    """Result of validation check"""
    is_valid: bool = True
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def add_error(self, message: str):
        self.errors.append(message)
        self.is_valid = False

    def add_warning(self, message: str):
        self.warnings.append(message)

    def merge(self, other: 'ValidationResult'):
        """Merge another validation result into this one"""
        if not other.is_valid:
            self.is_valid = False
        self.errors.extend(other.errors)
        self.warnings.extend(other.warnings)

    def raise_if_invalid(self):
        if not self.is_valid:
            raise ValidationError.from_errors(self.errors)


def _blank(value: Optional[str]) -> bool:
    return value is None or not str(value).strip()


def _non_negative(result: ValidationResult, value: Any, label: str):
    try:
        if to_decimal(value) < 0:
            result.add_error(f"{label} cannot be negative")
    except ValidationError:
        result.add_error(f"{label} must be a number")


class ManifestValidator:
    """Validator for manifest and dispatch operations"""

    VALID_DIRECTIONS = [d.value for d in Direction]
    MAX_PERCENTAGE_SHARE = 100

    # ==================== Dispatch Validation ====================

    def validate_dispatch(self, entry: ManifestEntry, item: Item, quantity: Any,
                          destination: Optional[Destination]) -> ValidationResult:
        """
        Validate a dispatch request against the item's current state

        Rules:
        1. Only incoming entries are dispatched
        2. quantity is an integer between 1 and the remaining quantity
        3. customer destinations need recipient name and region
        4. branch destinations need the target branch name
        """
        result = ValidationResult()

        if not entry.is_incoming:
            result.add_error("Only items of incoming entries can be dispatched")

        remaining = item.remaining_quantity
        if isinstance(quantity, bool) or not isinstance(quantity, int):
            result.add_error(f"Dispatch quantity must be a whole number, got {quantity!r}")
        elif quantity < 1 or quantity > remaining:
            if remaining <= 0:
                result.add_error("Item is fully dispatched; nothing remains to dispatch")
            else:
                result.add_error(f"Dispatch quantity must be between 1 and {remaining}, got {quantity}")

        result.merge(self.validate_destination(destination))
        return result

    def validate_destination(self, destination: Optional[Destination]) -> ValidationResult:
        result = ValidationResult()

        if destination is None:
            result.add_error("Destination is required")
            return result

        if destination.kind == DestinationKind.CUSTOMER:
            if _blank(destination.customer_name):
                result.add_error("Recipient name is required for customer dispatch")
            if _blank(destination.region):
                result.add_error("Destination region is required for customer dispatch")
        elif destination.kind == DestinationKind.BRANCH:
            if _blank(destination.branch_name):
                result.add_error("Target branch name is required for branch dispatch")
        elif destination.kind == DestinationKind.TRIP:
            if _blank(destination.cities):
                result.add_error("Destination cities are required for trip dispatch")

        return result

    # ==================== Entry & Item Validation ====================

    def validate_new_entry(self, direction: Any, origin_branch_id: Optional[str],
                           items: List[Dict]) -> ValidationResult:
        result = ValidationResult()

        direction_value = direction.value if isinstance(direction, Direction) else direction
        if direction_value not in self.VALID_DIRECTIONS:
            result.add_error(f"Invalid direction. Must be {' or '.join(self.VALID_DIRECTIONS)}")

        if _blank(origin_branch_id):
            result.add_error("Origin branch is required")

        for idx, item_data in enumerate(items or []):
            item_result = self.validate_item_data(item_data)
            for message in item_result.errors:
                result.add_error(f"Item {idx + 1}: {message}")

        return result

    def validate_item_data(self, item_data: Dict, dispatched_quantity: int = 0) -> ValidationResult:
        """Validate item fields supplied by the caller"""
        result = ValidationResult()

        if _blank(item_data.get('description')):
            result.add_error("Description is required")

        quantity = item_data.get('total_quantity')
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            result.add_error("Total quantity must be a positive whole number")
        elif quantity < dispatched_quantity:
            result.add_error(
                f"Total quantity cannot be lower than the dispatched quantity ({dispatched_quantity})"
            )

        _non_negative(result, item_data.get('unit_weight', 0), "Weight")
        _non_negative(result, item_data.get('value', 0), "Value")

        return result

    def validate_item_edit(self, entry: ManifestEntry) -> ValidationResult:
        result = ValidationResult()
        if entry.is_linked:
            result.add_error("Items cannot be changed once the entry is linked to a vehicle")
        return result

    def validate_item_removal(self, entry: ManifestEntry, item: Item) -> ValidationResult:
        result = self.validate_item_edit(entry)
        if item.has_dispatches:
            result.add_error("Items with dispatch history cannot be removed")
        return result

    # ==================== Vehicle Link Validation ====================

    def validate_vehicle_link(self, entry: ManifestEntry, link: VehicleLink) -> ValidationResult:
        result = ValidationResult()

        if entry.is_linked:
            result.add_error("Entry is already linked to a vehicle")

        if _blank(link.vehicle_id):
            result.add_error("Vehicle is required")

        share = link.percentage_share or 0
        if share < 0 or share > self.MAX_PERCENTAGE_SHARE:
            result.add_error(f"Percentage share must be between 0 and {self.MAX_PERCENTAGE_SHARE}")

        _non_negative(result, link.converted_value, "Converted value")
        _non_negative(result, link.vehicle_rental_fee, "Vehicle rental fee")
        _non_negative(result, link.additional_fee, "Additional fee")

        if link.additional_fee_payment_method not in VALID_PAYMENT_METHODS:
            result.add_error(f"Invalid payment method '{link.additional_fee_payment_method}'")

        for fee in link.custom_fees:
            if _blank(fee.name):
                result.add_error("Custom fee name is required")
            _non_negative(result, fee.amount, f"Custom fee '{fee.name}'")
            if fee.payment_method not in VALID_PAYMENT_METHODS:
                result.add_error(f"Invalid payment method '{fee.payment_method}' for fee '{fee.name}'")

        if result.is_valid and to_decimal(link.additional_fee) == Decimal('0') and not link.custom_fees:
            result.add_warning("No fees attached to the vehicle link")

        return result
