"""
Manifest domain models
=======================
ManifestEntry (aggregate root) -> Items -> DispatchRecords, plus the optional
vehicle-link block with its fees.

Entries are persisted as one JSON document each; to_dict/from_dict define
that document shape.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from .monetary import (
    CollectibleTotal,
    MonetaryLine,
    PAYMENT_PREPAID,
    aggregate,
    fee_line,
    normalize_currency,
    to_decimal,
    value_line,
)

logger = logging.getLogger(__name__)


class Direction(Enum):
    """Manifest direction relative to the receiving branch"""
    INCOMING = "incoming"
    OUTGOING = "outgoing"


class EntryStatus(Enum):
    """Manifest lifecycle status"""
    PENDING = "pending"
    LINKED = "linked"


class ItemStatus(Enum):
    """Derived item status"""
    RECEIVED = "Received"
    PARTIALLY_DISPATCHED = "Partially Dispatched"
    FULLY_DISPATCHED = "Fully Dispatched"


class DestinationKind(Enum):
    """Where dispatched quantity is routed"""
    CUSTOMER = "customer"
    BRANCH = "branch"
    TRIP = "trip"


def derive_item_status(dispatched_quantity: int, total_quantity: int) -> ItemStatus:
    """Pure function of dispatched vs total quantity"""
    if dispatched_quantity <= 0:
        return ItemStatus.RECEIVED
    if dispatched_quantity >= total_quantity:
        return ItemStatus.FULLY_DISPATCHED
    return ItemStatus.PARTIALLY_DISPATCHED


def _parse_datetime(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


def _format_datetime(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


# ==================== DISPATCH ====================
@dataclass(frozen=True)
class Destination:
    """Target of a dispatch: a final customer, another branch, or a trip"""
    kind: DestinationKind
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    region: Optional[str] = None
    branch_name: Optional[str] = None
    cities: Optional[str] = None
    vehicle_name: Optional[str] = None

    @classmethod
    def customer(cls, name: str, region: str, phone: str = '') -> 'Destination':
        return cls(DestinationKind.CUSTOMER, customer_name=name, customer_phone=phone, region=region)

    @classmethod
    def branch(cls, branch_name: str) -> 'Destination':
        return cls(DestinationKind.BRANCH, branch_name=branch_name)

    @classmethod
    def trip(cls, cities: str, vehicle_name: str = '') -> 'Destination':
        return cls(DestinationKind.TRIP, cities=cities, vehicle_name=vehicle_name)

    def describe(self) -> str:
        if self.kind == DestinationKind.CUSTOMER:
            return f"customer {self.customer_name} ({self.region})"
        if self.kind == DestinationKind.BRANCH:
            return f"branch {self.branch_name}"
        return f"trip to {self.cities}"

    def to_dict(self) -> Dict[str, Any]:
        data = {'destination_type': self.kind.value}
        if self.kind == DestinationKind.CUSTOMER:
            data.update({
                'customer_name': self.customer_name,
                'customer_phone': self.customer_phone,
                'destination_region': self.region,
            })
        elif self.kind == DestinationKind.BRANCH:
            data['target_branch_name'] = self.branch_name
        else:
            data.update({
                'destination_cities': self.cities,
                'assigned_vehicle': self.vehicle_name,
            })
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Destination':
        return cls(
            kind=DestinationKind(data['destination_type']),
            customer_name=data.get('customer_name'),
            customer_phone=data.get('customer_phone'),
            region=data.get('destination_region'),
            branch_name=data.get('target_branch_name'),
            cities=data.get('destination_cities'),
            vehicle_name=data.get('assigned_vehicle'),
        )


@dataclass(frozen=True)
class DispatchRecord:
    """Immutable audit entry for one dispatch"""
    amount: int
    dispatched_at: datetime
    destination: Destination
    notes: str = ''
    recorded_by: str = 'Unknown'

    def to_dict(self) -> Dict[str, Any]:
        return {
            'dispatched_amount': self.amount,
            'dispatched_date': _format_datetime(self.dispatched_at),
            **self.destination.to_dict(),
            'notes': self.notes,
            'recorded_by': self.recorded_by,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DispatchRecord':
        return cls(
            amount=int(data['dispatched_amount']),
            dispatched_at=_parse_datetime(data.get('dispatched_date')),
            destination=Destination.from_dict(data),
            notes=data.get('notes') or '',
            recorded_by=data.get('recorded_by') or 'Unknown',
        )


# ==================== ITEM ====================
@dataclass
class Item:
    """One line of cargo within a manifest"""
    order_index: int
    description: str
    total_quantity: int
    item_id: Optional[str] = None
    dispatched_quantity: int = 0
    unit_weight: float = 0.0
    value: Any = 0
    currency: str = 'USD'
    recipient_name: str = ''
    recipient_phone: str = ''
    destination_region: str = ''
    notes: str = ''
    sender_reference: str = ''
    assigned_trip_id: Optional[str] = None
    dispatch_history: List[DispatchRecord] = field(default_factory=list)

    @property
    def remaining_quantity(self) -> int:
        return self.total_quantity - self.dispatched_quantity

    @property
    def status(self) -> ItemStatus:
        return derive_item_status(self.dispatched_quantity, self.total_quantity)

    @property
    def has_dispatches(self) -> bool:
        return self.dispatched_quantity > 0 or bool(self.dispatch_history)

    def history_total(self) -> int:
        return sum(record.amount for record in self.dispatch_history)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.item_id,
            'order_index': self.order_index,
            'item_description': self.description,
            'item_quantity': self.total_quantity,
            'dispatched_quantity': self.dispatched_quantity,
            'item_weight': self.unit_weight,
            'item_value': str(to_decimal(self.value)),
            'item_currency': normalize_currency(self.currency),
            'recipient_name': self.recipient_name,
            'recipient_phone': self.recipient_phone,
            'destination_region': self.destination_region,
            'item_notes': self.notes,
            'sender_reference': self.sender_reference,
            'assigned_trip_id': self.assigned_trip_id,
            'item_status': self.status.value,
            'dispatch_history': [record.to_dict() for record in self.dispatch_history],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Item':
        return cls(
            item_id=data.get('id'),
            order_index=int(data.get('order_index', 0)),
            description=data.get('item_description') or '',
            total_quantity=int(data.get('item_quantity', 0)),
            dispatched_quantity=int(data.get('dispatched_quantity') or 0),
            unit_weight=float(data.get('item_weight') or 0),
            value=to_decimal(data.get('item_value')),
            currency=normalize_currency(data.get('item_currency')),
            recipient_name=data.get('recipient_name') or '',
            recipient_phone=data.get('recipient_phone') or '',
            destination_region=data.get('destination_region') or '',
            notes=data.get('item_notes') or '',
            sender_reference=data.get('sender_reference') or '',
            assigned_trip_id=data.get('assigned_trip_id'),
            dispatch_history=[DispatchRecord.from_dict(r) for r in data.get('dispatch_history') or []],
        )


# ==================== VEHICLE LINK ====================
@dataclass(frozen=True)
class CustomFee:
    """Named extra fee attached when linking a manifest to a vehicle"""
    name: str
    amount: Any
    currency: str = 'USD'
    payment_method: str = PAYMENT_PREPAID

    def to_line(self) -> MonetaryLine:
        return fee_line(self.amount, self.currency, self.payment_method, label=self.name)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'amount': str(to_decimal(self.amount)),
            'currency': normalize_currency(self.currency),
            'payment_method': self.payment_method,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CustomFee':
        return cls(
            name=data.get('name') or '',
            amount=to_decimal(data.get('amount')),
            currency=normalize_currency(data.get('currency')),
            payment_method=data.get('payment_method') or PAYMENT_PREPAID,
        )


@dataclass
class VehicleLink:
    """Vehicle and fee data attached when a manifest is linked"""
    vehicle_id: str
    vehicle_name: str = ''
    sender_name: str = ''
    converted_value: Any = 0
    converted_value_currency: str = 'USD'
    percentage_share: float = 0.0
    vehicle_rental_fee: Any = 0
    additional_fee: Any = 0
    additional_fee_currency: str = 'USD'
    additional_fee_payment_method: str = PAYMENT_PREPAID
    custom_fees: List[CustomFee] = field(default_factory=list)
    notes: str = ''
    linked_at: Optional[datetime] = None

    def fee_lines(self) -> List[MonetaryLine]:
        """Additional fee first, then custom fees in entry order"""
        lines = [fee_line(self.additional_fee, self.additional_fee_currency,
                          self.additional_fee_payment_method, label='additional fee')]
        lines.extend(fee.to_line() for fee in self.custom_fees)
        return lines

    def to_dict(self) -> Dict[str, Any]:
        return {
            'vehicle_id': self.vehicle_id,
            'vehicle_name': self.vehicle_name,
            'sender_name': self.sender_name,
            'converted_value': str(to_decimal(self.converted_value)),
            'converted_value_currency': normalize_currency(self.converted_value_currency),
            'percentage_share': self.percentage_share,
            'vehicle_rental_fee': str(to_decimal(self.vehicle_rental_fee)),
            'additional_fee': str(to_decimal(self.additional_fee)),
            'additional_fee_currency': normalize_currency(self.additional_fee_currency),
            'additional_fee_payment_method': self.additional_fee_payment_method,
            'custom_fees': [fee.to_dict() for fee in self.custom_fees],
            'notes': self.notes,
            'linked_at': _format_datetime(self.linked_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'VehicleLink':
        return cls(
            vehicle_id=data['vehicle_id'],
            vehicle_name=data.get('vehicle_name') or '',
            sender_name=data.get('sender_name') or '',
            converted_value=to_decimal(data.get('converted_value')),
            converted_value_currency=normalize_currency(data.get('converted_value_currency')),
            percentage_share=float(data.get('percentage_share') or 0),
            vehicle_rental_fee=to_decimal(data.get('vehicle_rental_fee')),
            additional_fee=to_decimal(data.get('additional_fee')),
            additional_fee_currency=normalize_currency(data.get('additional_fee_currency')),
            additional_fee_payment_method=data.get('additional_fee_payment_method') or PAYMENT_PREPAID,
            custom_fees=[CustomFee.from_dict(f) for f in data.get('custom_fees') or []],
            notes=data.get('notes') or '',
            linked_at=_parse_datetime(data.get('linked_at')),
        )


# ==================== MANIFEST ENTRY ====================
@dataclass
class ManifestEntry:
    """One incoming or outgoing cargo manifest between branches"""
    entry_id: str
    direction: Direction
    origin_branch_id: str
    origin_branch_name: str
    manifest_number: str
    notes: str = ''
    status: EntryStatus = EntryStatus.PENDING
    items: List[Item] = field(default_factory=list)
    vehicle_link: Optional[VehicleLink] = None
    created_at: Optional[datetime] = None
    created_by: str = 'Unknown'
    version: int = 0

    @property
    def is_incoming(self) -> bool:
        return self.direction == Direction.INCOMING

    @property
    def is_linked(self) -> bool:
        return self.status == EntryStatus.LINKED

    def ordered_items(self) -> List[Item]:
        return sorted(self.items, key=lambda item: item.order_index)

    def total_remaining(self) -> int:
        return sum(item.remaining_quantity for item in self.items)

    def has_remaining(self) -> bool:
        return any(item.remaining_quantity > 0 for item in self.items)

    def is_fully_dispatched(self) -> bool:
        return bool(self.items) and all(item.remaining_quantity <= 0 for item in self.items)

    def goods_value_lines(self) -> List[MonetaryLine]:
        return [
            value_line(item.value, item.currency, label=item.description)
            for item in self.ordered_items()
        ]

    def collectible_lines(self) -> List[MonetaryLine]:
        """Goods values (always) followed by vehicle-link fees (collect only)"""
        lines = self.goods_value_lines()
        if self.vehicle_link:
            lines.extend(self.vehicle_link.fee_lines())
        return lines

    def goods_total(self) -> CollectibleTotal:
        return aggregate(self.goods_value_lines())

    def collectible_total(self) -> CollectibleTotal:
        return aggregate(self.collectible_lines())

    def matches_search(self, search_term: Optional[str]) -> bool:
        """Case-insensitive match on branch name, vehicle name or item description"""
        if not search_term:
            return True
        term = search_term.strip().lower()
        if term in (self.origin_branch_name or '').lower():
            return True
        if self.vehicle_link and term in (self.vehicle_link.vehicle_name or '').lower():
            return True
        return any(term in (item.description or '').lower() for item in self.items)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.entry_id,
            'entry_type': self.direction.value,
            'branch_id': self.origin_branch_id,
            'branch_name': self.origin_branch_name,
            'bol_number': self.manifest_number,
            'notes': self.notes,
            'status': self.status.value,
            'items': [item.to_dict() for item in self.ordered_items()],
            'vehicle_link': self.vehicle_link.to_dict() if self.vehicle_link else None,
            'created_at': _format_datetime(self.created_at),
            'created_by': self.created_by,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], version: int = 0) -> 'ManifestEntry':
        return cls(
            entry_id=data['id'],
            direction=Direction(data.get('entry_type', Direction.INCOMING.value)),
            origin_branch_id=data.get('branch_id') or '',
            origin_branch_name=data.get('branch_name') or '',
            manifest_number=data.get('bol_number') or '',
            notes=data.get('notes') or '',
            status=EntryStatus(data.get('status', EntryStatus.PENDING.value)),
            items=[Item.from_dict(i) for i in data.get('items') or []],
            vehicle_link=VehicleLink.from_dict(data['vehicle_link']) if data.get('vehicle_link') else None,
            created_at=_parse_datetime(data.get('created_at')),
            created_by=data.get('created_by') or 'Unknown',
            version=version,
        )
