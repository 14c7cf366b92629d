"""
Manifest Module
===============
Branch cargo manifests (bills of lading) and their items.

Components:
- models: ManifestEntry, Item, DispatchRecord, VehicleLink
- monetary: collectible totals per currency, never converted
- sequence: BOL-<year>-<seq> numbering
- allocation_ledger: item dispatch state machine and audit history
- validators: validation rules for entries, items, dispatches and links
- data_service: branch_entries document store with optimistic versioning
- manifest_service: business operations tying the above together
- reports: frames and summaries for printing and export
"""

from .exceptions import LedgerError, ValidationError, NotFoundError, ConcurrencyError
from .models import (
    Direction,
    EntryStatus,
    ItemStatus,
    DestinationKind,
    Destination,
    DispatchRecord,
    Item,
    CustomFee,
    VehicleLink,
    ManifestEntry,
    derive_item_status,
)
from .monetary import (
    MonetaryLine,
    CollectibleTotal,
    aggregate,
    combine,
    value_line,
    fee_line,
    format_amount,
    format_totals,
)
from .sequence import SequenceGenerator, parse_manifest_number, is_fallback_number
from .allocation_ledger import (
    AllocationLedger,
    ItemRef,
    FollowUpKind,
    PendingFollowUp,
    DispatchResult,
    TripAllocation,
)
from .validators import ManifestValidator, ValidationResult
from .data_service import ManifestDataService
from .manifest_service import ManifestService
from .reports import items_frame, dispatch_history_frame, entry_summary, entries_overview_frame

__all__ = [
    # Errors
    'LedgerError',
    'ValidationError',
    'NotFoundError',
    'ConcurrencyError',

    # Models
    'Direction',
    'EntryStatus',
    'ItemStatus',
    'DestinationKind',
    'Destination',
    'DispatchRecord',
    'Item',
    'CustomFee',
    'VehicleLink',
    'ManifestEntry',
    'derive_item_status',

    # Money
    'MonetaryLine',
    'CollectibleTotal',
    'aggregate',
    'combine',
    'value_line',
    'fee_line',
    'format_amount',
    'format_totals',

    # Numbering
    'SequenceGenerator',
    'parse_manifest_number',
    'is_fallback_number',

    # Ledger
    'AllocationLedger',
    'ItemRef',
    'FollowUpKind',
    'PendingFollowUp',
    'DispatchResult',
    'TripAllocation',

    # Services
    'ManifestValidator',
    'ValidationResult',
    'ManifestDataService',
    'ManifestService',

    # Reports
    'items_frame',
    'dispatch_history_frame',
    'entry_summary',
    'entries_overview_frame',
]
