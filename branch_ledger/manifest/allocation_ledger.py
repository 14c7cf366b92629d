"""
Allocation Ledger - dispatch state and audit history of manifest items

Item state machine:
    Received --dispatch(partial)--> Partially Dispatched --dispatch(rest)--> Fully Dispatched

Fully Dispatched is terminal. Each successful dispatch is exactly one quantity
change plus one appended DispatchRecord; validation happens before anything
is touched, so a rejected call leaves the item as it was.
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional, Union

from .exceptions import NotFoundError
from .models import Destination, DestinationKind, DispatchRecord, Item, ManifestEntry
from .monetary import to_decimal
from .validators import ManifestValidator

logger = logging.getLogger(__name__)


class FollowUpKind(Enum):
    """Document the operator should create after a dispatch"""
    SHIPMENT = "shipment"
    OUTGOING_ENTRY = "outgoing_entry"
    TRIP = "trip"


@dataclass(frozen=True)
class ItemRef:
    """Reference to an item: stable id first, order index + description as fallback"""
    item_id: Optional[str] = None
    order_index: Optional[int] = None
    description: Optional[str] = None

    @classmethod
    def of(cls, item: Item) -> 'ItemRef':
        return cls(item.item_id, item.order_index, item.description)


@dataclass(frozen=True)
class PendingFollowUp:
    """Manual follow-up emitted by a dispatch; it does not create anything by itself"""
    kind: FollowUpKind
    entry_id: str
    manifest_number: str
    item_description: str
    quantity: int
    destination: Destination

    @property
    def message(self) -> str:
        text = f"Dispatched {self.quantity} of '{self.item_description}' successfully."
        if self.kind == FollowUpKind.SHIPMENT:
            text += (
                f" Please create a new shipment for customer {self.destination.customer_name}"
                f" to {self.destination.region} with the dispatched quantity."
            )
        elif self.kind == FollowUpKind.OUTGOING_ENTRY:
            text += (
                f" Please create a new outgoing entry for branch {self.destination.branch_name}"
                f" with the dispatched quantity."
            )
        else:
            text += f" Quantity is assigned to the trip to {self.destination.cities}."
        return text


@dataclass(frozen=True)
class DispatchResult:
    """Updated item plus the follow-up the operator still has to act on"""
    item: Item
    follow_up: PendingFollowUp

    @property
    def message(self) -> str:
        return self.follow_up.message


@dataclass(frozen=True)
class TripAllocation:
    """One item's quantity moved onto a trip by bulk dispatch"""
    entry_id: str
    manifest_number: str
    order_index: int
    item_description: str
    dispatched_amount: int
    item_value: str
    item_currency: str
    recipient_name: str
    recipient_phone: str
    destination_region: str


_FOLLOW_UP_BY_DESTINATION = {
    DestinationKind.CUSTOMER: FollowUpKind.SHIPMENT,
    DestinationKind.BRANCH: FollowUpKind.OUTGOING_ENTRY,
    DestinationKind.TRIP: FollowUpKind.TRIP,
}


class AllocationLedger:
    """Decides whether a dispatch is legal, applies it and keeps the audit trail"""

    def __init__(self, validator: Optional[ManifestValidator] = None,
                 clock: Optional[Callable[[], datetime]] = None):
        self.validator = validator or ManifestValidator()
        self.clock = clock or datetime.now

    # ==================== ITEM LOOKUP ====================
    def find_item(self, entry: ManifestEntry, item_ref: Union[ItemRef, Item]) -> Item:
        """
        Locate an item in the entry's current item list

        Matches the stable id first; when the id is absent or unknown, falls
        back to order index + description. Never guesses beyond that.

        Raises:
            NotFoundError: if neither lookup matches
        """
        if isinstance(item_ref, Item):
            item_ref = ItemRef.of(item_ref)

        if item_ref.item_id:
            for item in entry.items:
                if item.item_id == item_ref.item_id:
                    return item

        if item_ref.order_index is not None and item_ref.description is not None:
            for item in entry.items:
                if item.order_index == item_ref.order_index and item.description == item_ref.description:
                    return item

        raise NotFoundError(
            f"Item {item_ref.item_id or ''} (#{item_ref.order_index} '{item_ref.description}') "
            f"not found in entry {entry.manifest_number}"
        )

    # ==================== DISPATCH ====================
    def dispatch(self, entry: ManifestEntry, item_ref: Union[ItemRef, Item], quantity: int,
                 destination: Destination, operator: str = 'Unknown',
                 notes: str = '') -> DispatchResult:
        """
        Dispatch part of an item's remaining quantity

        Args:
            entry: Manifest entry holding the item (mutated in place on success)
            item_ref: Item or reference to locate it
            quantity: Quantity to dispatch, 1..remaining
            destination: Customer, branch or trip destination
            operator: Identity recorded on the audit entry
            notes: Free-text notes for the audit entry

        Returns:
            DispatchResult with the updated item and its PendingFollowUp

        Raises:
            NotFoundError: item not in the entry
            ValidationError: quantity out of bounds or destination incomplete
        """
        item = self.find_item(entry, item_ref)

        validation = self.validator.validate_dispatch(entry, item, quantity, destination)
        if not validation.is_valid:
            logger.warning(
                f"Dispatch rejected for {entry.manifest_number} item #{item.order_index}: "
                f"{'; '.join(validation.errors)}"
            )
        validation.raise_if_invalid()

        self._apply(item, quantity, destination, operator, notes)

        logger.info(
            f"Dispatched {quantity} of item #{item.order_index} in {entry.manifest_number} "
            f"to {destination.describe()}. "
            f"Dispatched: {item.dispatched_quantity}/{item.total_quantity}, status: {item.status.value}"
        )

        follow_up = PendingFollowUp(
            kind=_FOLLOW_UP_BY_DESTINATION[destination.kind],
            entry_id=entry.entry_id,
            manifest_number=entry.manifest_number,
            item_description=item.description,
            quantity=quantity,
            destination=destination,
        )
        return DispatchResult(item=item, follow_up=follow_up)

    def dispatch_remaining(self, entry: ManifestEntry, destination: Destination,
                           operator: str = 'Unknown', trip_id: Optional[str] = None,
                           notes: str = '') -> List[TripAllocation]:
        """
        Dispatch the whole remaining quantity of every item onto a trip

        Returns:
            One TripAllocation per item that still had quantity; empty when
            nothing remained
        """
        trip_id = trip_id or uuid.uuid4().hex

        pending_items = [item for item in entry.ordered_items() if item.remaining_quantity > 0]
        for item in pending_items:
            self.validator.validate_dispatch(entry, item, item.remaining_quantity, destination).raise_if_invalid()

        allocations = []
        for item in pending_items:
            amount = item.remaining_quantity
            record_notes = f"Bulk dispatch for trip to {destination.cities}. {notes}".strip()
            self._apply(item, amount, destination, operator, record_notes)
            item.assigned_trip_id = trip_id

            allocations.append(TripAllocation(
                entry_id=entry.entry_id,
                manifest_number=entry.manifest_number,
                order_index=item.order_index,
                item_description=item.description,
                dispatched_amount=amount,
                item_value=str(to_decimal(item.value)),
                item_currency=item.currency,
                recipient_name=item.recipient_name,
                recipient_phone=item.recipient_phone,
                destination_region=item.destination_region,
            ))

        if allocations:
            logger.info(
                f"Bulk dispatched {len(allocations)} items of {entry.manifest_number} "
                f"to trip {trip_id} ({destination.cities})"
            )
        return allocations

    def _apply(self, item: Item, quantity: int, destination: Destination,
               operator: str, notes: str):
        item.dispatched_quantity += quantity
        item.dispatch_history.append(DispatchRecord(
            amount=quantity,
            dispatched_at=self.clock(),
            destination=destination,
            notes=notes or '',
            recorded_by=operator or 'Unknown',
        ))
