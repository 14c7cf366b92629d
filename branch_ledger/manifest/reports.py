"""
Report data for manifest printing and spreadsheet export
Builds pandas frames and summary dicts; rendering happens elsewhere.
"""
import logging
from typing import Any, Dict, List

import pandas as pd

from .formatters import format_date, format_direction, format_fee, format_percentage
from .models import ManifestEntry
from .monetary import combine, format_amount

logger = logging.getLogger(__name__)

ITEM_COLUMNS = [
    'order_index', 'sender_reference', 'description', 'total_quantity',
    'dispatched_quantity', 'remaining_quantity', 'unit_weight', 'value',
    'currency', 'recipient_name', 'recipient_phone', 'destination_region',
    'notes', 'status',
]

HISTORY_COLUMNS = [
    'order_index', 'description', 'dispatched_amount', 'dispatched_at',
    'destination_type', 'destination', 'notes', 'recorded_by',
]

OVERVIEW_COLUMNS = [
    'manifest_number', 'direction', 'branch_name', 'vehicle_name', 'status',
    'item_count', 'remaining_quantity', 'collectible_total', 'created_at',
]


def items_frame(entry: ManifestEntry) -> pd.DataFrame:
    """One row per item in order-index order; sender reference only for incoming entries"""
    rows = [
        {
            'order_index': item.order_index,
            'sender_reference': item.sender_reference,
            'description': item.description,
            'total_quantity': item.total_quantity,
            'dispatched_quantity': item.dispatched_quantity,
            'remaining_quantity': item.remaining_quantity,
            'unit_weight': item.unit_weight,
            'value': float(item.value),
            'currency': item.currency,
            'recipient_name': item.recipient_name,
            'recipient_phone': item.recipient_phone,
            'destination_region': item.destination_region,
            'notes': item.notes,
            'status': item.status.value,
        }
        for item in entry.ordered_items()
    ]

    df = pd.DataFrame(rows, columns=ITEM_COLUMNS)
    if not entry.is_incoming:
        df = df.drop(columns=['sender_reference'])
    return df


def dispatch_history_frame(entry: ManifestEntry) -> pd.DataFrame:
    """One row per dispatch record across all items"""
    rows = []
    for item in entry.ordered_items():
        for record in item.dispatch_history:
            rows.append({
                'order_index': item.order_index,
                'description': item.description,
                'dispatched_amount': record.amount,
                'dispatched_at': record.dispatched_at,
                'destination_type': record.destination.kind.value,
                'destination': record.destination.describe(),
                'notes': record.notes,
                'recorded_by': record.recorded_by,
            })

    df = pd.DataFrame(rows, columns=HISTORY_COLUMNS)
    if not df.empty:
        df = df.sort_values(['dispatched_at', 'order_index'], kind='stable').reset_index(drop=True)
    return df


def entry_summary(entry: ManifestEntry) -> Dict[str, Any]:
    """Header values for the printed receipt and the export's main sheet"""
    link = entry.vehicle_link
    summary = {
        'manifest_number': entry.manifest_number,
        'direction': format_direction(entry.direction),
        'branch_name': entry.origin_branch_name,
        'status': entry.status.value,
        'created_at': format_date(entry.created_at),
        'notes': entry.notes or '-',
        'item_count': len(entry.items),
        'total_quantity': sum(item.total_quantity for item in entry.items),
        'remaining_quantity': entry.total_remaining(),
        'goods_total': entry.goods_total().format(),
        'collectible_total': entry.collectible_total().format(),
        'vehicle_name': '-',
        'percentage_share': '-',
        'vehicle_rental_fee': '-',
        'additional_fee': '-',
        'custom_fees': [],
    }

    if link:
        summary.update({
            'vehicle_name': link.vehicle_name or link.vehicle_id,
            'percentage_share': format_percentage(link.percentage_share),
            'vehicle_rental_fee': f"{format_amount(link.vehicle_rental_fee, 'USD')} USD",
            'additional_fee': format_fee(link.additional_fee, link.additional_fee_currency,
                                         link.additional_fee_payment_method),
            'custom_fees': [
                f"{fee.name}: {format_fee(fee.amount, fee.currency, fee.payment_method)}"
                for fee in link.custom_fees
            ],
        })

    return summary


def entries_overview_frame(entries: List[ManifestEntry]) -> pd.DataFrame:
    """One row per entry for list pages, plus the combined collectible total in attrs"""
    rows = [
        {
            'manifest_number': entry.manifest_number,
            'direction': entry.direction.value,
            'branch_name': entry.origin_branch_name,
            'vehicle_name': entry.vehicle_link.vehicle_name if entry.vehicle_link else '',
            'status': entry.status.value,
            'item_count': len(entry.items),
            'remaining_quantity': entry.total_remaining(),
            'collectible_total': entry.collectible_total().format(),
            'created_at': entry.created_at,
        }
        for entry in entries
    ]

    df = pd.DataFrame(rows, columns=OVERVIEW_COLUMNS)
    df.attrs['grand_total'] = combine([entry.collectible_total() for entry in entries]).format()
    logger.debug(f"Overview built for {len(entries)} entries")
    return df
