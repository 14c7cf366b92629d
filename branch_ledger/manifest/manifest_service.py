"""
Manifest Service - business operations on branch manifest entries

Every mutating operation reads the entry with its version, computes the next
state in memory and writes it back with an optimistic version check. Errors
(ValidationError, NotFoundError, ConcurrencyError) reach the caller as raised;
the caller decides whether to reload and retry.
"""
import logging
import uuid
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from ..config import config
from .allocation_ledger import AllocationLedger, DispatchResult, ItemRef, TripAllocation
from .data_service import ManifestDataService
from .exceptions import ValidationError
from .models import (
    Destination,
    DestinationKind,
    Direction,
    EntryStatus,
    Item,
    ManifestEntry,
    VehicleLink,
)
from .monetary import normalize_currency, to_decimal
from .sequence import SequenceGenerator
from .validators import ManifestValidator

logger = logging.getLogger(__name__)

EDITABLE_ITEM_FIELDS = [
    'description', 'total_quantity', 'unit_weight', 'value', 'currency',
    'recipient_name', 'recipient_phone', 'destination_region', 'notes',
    'sender_reference',
]


class ManifestService:
    """Service for manifest entries, their items and dispatches"""

    def __init__(self, data_service: Optional[ManifestDataService] = None,
                 ledger: Optional[AllocationLedger] = None,
                 sequence: Optional[SequenceGenerator] = None,
                 validator: Optional[ManifestValidator] = None,
                 clock: Optional[Callable[[], datetime]] = None):
        self.data_service = data_service or ManifestDataService()
        self.clock = clock or datetime.now
        self.validator = validator or ManifestValidator()
        self.ledger = ledger or AllocationLedger(self.validator, self.clock)
        self.sequence = sequence or SequenceGenerator(self.data_service, self.clock)

    # ==================== CREATE ====================
    def create_entry(self, direction: Union[Direction, str], origin_branch_id: str,
                     origin_branch_name: str = '', items: Optional[List[Dict]] = None,
                     notes: str = '', created_by: str = 'Unknown') -> ManifestEntry:
        """
        Create a new pending entry and assign its manifest number

        Args:
            direction: 'incoming' or 'outgoing'
            origin_branch_id: Sending branch reference
            origin_branch_name: Display name of the sending branch
            items: Item field dicts (see EDITABLE_ITEM_FIELDS); may be empty
            notes: Free-text notes
            created_by: Operator identity

        Raises:
            ValidationError: invalid direction, branch or item data
            ConcurrencyError: the drawn number was taken by a concurrent creator
        """
        items = items or []
        self.validator.validate_new_entry(direction, origin_branch_id, items).raise_if_invalid()

        created_at = self.clock()
        entry = ManifestEntry(
            entry_id=uuid.uuid4().hex,
            direction=Direction(direction.value if isinstance(direction, Direction) else direction),
            origin_branch_id=origin_branch_id,
            origin_branch_name=origin_branch_name,
            manifest_number=self.sequence.next(created_at.year),
            notes=notes or '',
            status=EntryStatus.PENDING,
            items=[self._build_item(index, data) for index, data in enumerate(items)],
            created_at=created_at,
            created_by=created_by,
        )

        self.data_service.insert_entry(entry)
        logger.info(
            f"Created {entry.direction.value} entry {entry.manifest_number} "
            f"from {origin_branch_name or origin_branch_id} with {len(entry.items)} items"
        )
        return entry

    def get_entry(self, entry_id: str) -> ManifestEntry:
        return self.data_service.get_entry(entry_id)

    # ==================== ITEMS ====================
    def add_item(self, entry_id: str, item_data: Dict) -> Item:
        """Append an item to a pending entry"""
        entry = self.data_service.get_entry(entry_id)

        result = self.validator.validate_item_edit(entry)
        result.merge(self.validator.validate_item_data(item_data))
        result.raise_if_invalid()

        next_index = max((item.order_index for item in entry.items), default=-1) + 1
        item = self._build_item(next_index, item_data)
        entry.items.append(item)

        self.data_service.save_entry(entry)
        logger.info(f"Added item #{item.order_index} '{item.description}' to {entry.manifest_number}")
        return item

    def update_item(self, entry_id: str, item_ref: Union[ItemRef, Item], changes: Dict) -> Item:
        """Edit descriptive fields of an item on a pending entry"""
        entry = self.data_service.get_entry(entry_id)
        item = self.ledger.find_item(entry, item_ref)

        unknown = [key for key in changes if key not in EDITABLE_ITEM_FIELDS]
        result = self.validator.validate_item_edit(entry)
        for key in unknown:
            result.add_error(f"Field '{key}' cannot be edited")

        merged = {name: getattr(item, name) for name in EDITABLE_ITEM_FIELDS}
        merged.update({k: v for k, v in changes.items() if k in EDITABLE_ITEM_FIELDS})
        result.merge(self.validator.validate_item_data(merged, item.dispatched_quantity))
        result.raise_if_invalid()

        for name, value in merged.items():
            setattr(item, name, value)
        item.description = item.description.strip()
        item.unit_weight = float(item.unit_weight or 0)
        item.value = to_decimal(item.value)
        item.currency = normalize_currency(item.currency)

        self.data_service.save_entry(entry)
        logger.info(f"Updated item #{item.order_index} of {entry.manifest_number}: {sorted(changes)}")
        return item

    def remove_item(self, entry_id: str, item_ref: Union[ItemRef, Item]) -> ManifestEntry:
        """Remove an undispatched item and renumber the rest 0..n-1"""
        entry = self.data_service.get_entry(entry_id)
        item = self.ledger.find_item(entry, item_ref)

        self.validator.validate_item_removal(entry, item).raise_if_invalid()

        remaining = [other for other in entry.ordered_items() if other is not item]
        for index, other in enumerate(remaining):
            other.order_index = index
        entry.items = remaining

        self.data_service.save_entry(entry)
        logger.info(f"Removed item '{item.description}' from {entry.manifest_number}")
        return entry

    # ==================== VEHICLE LINK ====================
    def link_vehicle(self, entry_id: str, link: VehicleLink) -> ManifestEntry:
        """Attach vehicle and fee data; pending -> linked happens exactly once"""
        entry = self.data_service.get_entry(entry_id)

        result = self.validator.validate_vehicle_link(entry, link)
        result.raise_if_invalid()
        for warning in result.warnings:
            logger.warning(f"{entry.manifest_number}: {warning}")

        link.linked_at = self.clock()
        entry.vehicle_link = link
        entry.status = EntryStatus.LINKED

        self.data_service.save_entry(entry)
        logger.info(
            f"Linked {entry.manifest_number} to vehicle {link.vehicle_name or link.vehicle_id}. "
            f"Collectible: {entry.collectible_total()}"
        )
        return entry

    # ==================== DISPATCH ====================
    def dispatch_item(self, entry_id: str, item_ref: Union[ItemRef, Item], quantity: int,
                      destination: Destination, operator: str = 'Unknown',
                      notes: str = '') -> DispatchResult:
        """Dispatch part of one item and persist the entry"""
        entry = self.data_service.get_entry(entry_id)
        result = self.ledger.dispatch(entry, item_ref, quantity, destination, operator, notes)
        self.data_service.save_entry(entry)
        return result

    def bulk_dispatch(self, entry_ids: List[str], destination: Destination,
                      operator: str = 'Unknown', trip_id: Optional[str] = None,
                      notes: str = '') -> Tuple[str, List[TripAllocation]]:
        """
        Move every remaining quantity of the selected entries onto one trip

        All entries are written in one transaction.

        Returns:
            (trip_id, trip allocations)
        """
        if not config.is_feature_enabled('BULK_DISPATCH'):
            raise ValidationError("Bulk dispatch is disabled")
        if destination.kind != DestinationKind.TRIP:
            raise ValidationError("Bulk dispatch needs a trip destination")

        trip_id = trip_id or uuid.uuid4().hex
        entries = [self.data_service.get_entry(entry_id) for entry_id in entry_ids]

        allocations: List[TripAllocation] = []
        touched: List[ManifestEntry] = []
        for entry in entries:
            entry_allocations = self.ledger.dispatch_remaining(entry, destination, operator, trip_id, notes)
            if entry_allocations:
                allocations.extend(entry_allocations)
                touched.append(entry)

        if not allocations:
            raise ValidationError("No dispatchable items in the selected entries")

        self.data_service.save_entries(touched)
        logger.info(
            f"Trip {trip_id}: bulk dispatched {len(allocations)} items "
            f"from {len(touched)} entries to {destination.cities}"
        )
        return trip_id, allocations

    # ==================== DELETE ====================
    def delete_entry(self, entry_id: str):
        """Administrative hard delete"""
        self.data_service.delete_entry(entry_id)

    # ==================== LISTS ====================
    def list_entries(self, direction: Optional[Direction] = None) -> List[ManifestEntry]:
        return self.data_service.list_entries(direction)

    def pending_dispatch_entries(self, search: Optional[str] = None) -> List[ManifestEntry]:
        """Incoming entries with at least one item left to dispatch"""
        return [
            entry for entry in self.data_service.list_entries(Direction.INCOMING)
            if entry.has_remaining() and entry.matches_search(search)
        ]

    def fully_dispatched_entries(self, search: Optional[str] = None) -> List[ManifestEntry]:
        """Incoming entries whose items are all fully dispatched"""
        return [
            entry for entry in self.data_service.list_entries(Direction.INCOMING)
            if entry.is_fully_dispatched() and entry.matches_search(search)
        ]

    # ==================== HELPERS ====================
    def _build_item(self, order_index: int, data: Dict[str, Any]) -> Item:
        return Item(
            item_id=uuid.uuid4().hex,
            order_index=order_index,
            description=data['description'].strip(),
            total_quantity=data['total_quantity'],
            unit_weight=float(data.get('unit_weight') or 0),
            value=to_decimal(data.get('value')),
            currency=normalize_currency(data.get('currency')),
            recipient_name=data.get('recipient_name') or '',
            recipient_phone=data.get('recipient_phone') or '',
            destination_region=data.get('destination_region') or '',
            notes=data.get('notes') or '',
            sender_reference=data.get('sender_reference') or '',
        )
