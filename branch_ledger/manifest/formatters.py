"""
Formatting utilities for manifest printing and export
"""
import pandas as pd
from datetime import datetime, date
from typing import Union
import logging

from .models import Direction
from .monetary import PAYMENT_COLLECT, format_amount

logger = logging.getLogger(__name__)


def format_date(value: Union[str, datetime, date, None],
                format_str: str = "%Y-%m-%d %H:%M") -> str:
    """Format date consistently, '-' when missing"""
    if value is None:
        return "-"
    if isinstance(value, str):
        if value.strip() == "":
            return "-"
        try:
            value = pd.to_datetime(value)
        except (ValueError, TypeError):
            logger.debug(f"Could not parse date {value!r}")
            return value
    return value.strftime(format_str)


def format_direction(direction: Direction) -> str:
    return 'Incoming' if direction == Direction.INCOMING else 'Outgoing'


def format_payment_method(method: str) -> str:
    return 'Collect' if method == PAYMENT_COLLECT else 'Prepaid'


def format_fee(amount, currency: str, payment_method: str) -> str:
    """'<amount> <currency> (<payment method>)'"""
    return f"{format_amount(amount, currency)} {currency} ({format_payment_method(payment_method)})"


def format_percentage(value: Union[int, float, None], decimals: int = 1) -> str:
    """Format percentage value"""
    try:
        if value is None or pd.isna(value):
            return "-"

        return f"{float(value):.{decimals}f}%"

    except (ValueError, TypeError):
        return "-"
