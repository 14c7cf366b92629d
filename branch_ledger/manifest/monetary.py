"""
Monetary aggregation for manifests - collectible totals per currency
Sums fee lines per currency without ever converting between currencies.

A line contributes only when it is included (unconditional values, or fees
whose payment method is 'collect') and its amount is positive. Currencies
keep the order in which they were first seen in the input.
"""
import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

from ..config import config
from .exceptions import ValidationError

logger = logging.getLogger(__name__)

DEFAULT_CURRENCY = config.get_app_setting('DEFAULT_CURRENCY', 'USD')

PAYMENT_PREPAID = 'prepaid'
PAYMENT_COLLECT = 'collect'
VALID_PAYMENT_METHODS = [PAYMENT_PREPAID, PAYMENT_COLLECT]

# Display precision per currency; anything not listed shows 2 places
CURRENCY_DISPLAY_PLACES = {
    'SYP': 0,
}

Amount = Union[None, int, float, str, Decimal]


# ==================== TYPE CONVERSION HELPERS ====================
def to_decimal(value: Amount) -> Decimal:
    """
    Convert an amount to Decimal

    Handles: Decimal, int, float, str, None (as zero).
    Floats go through str() to avoid binary precision artifacts.
    NaN and infinities are rejected.
    """
    if value is None:
        return Decimal('0')
    if isinstance(value, bool):
        raise ValidationError(f"Invalid amount: {value!r}")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float)):
        result = Decimal(str(value))
    elif isinstance(value, str):
        try:
            result = Decimal(value.strip() if value.strip() else '0')
        except InvalidOperation:
            raise ValidationError(f"Invalid amount: {value!r}")
    else:
        raise ValidationError(f"Invalid amount type: {type(value).__name__}")

    if not result.is_finite():
        raise ValidationError(f"Invalid amount: {value!r}")
    return result


def normalize_currency(currency: Optional[str]) -> str:
    """Upper-case a currency code, falling back to the default currency"""
    if not currency or not str(currency).strip():
        return DEFAULT_CURRENCY
    return str(currency).strip().upper()


# ==================== LINES ====================
@dataclass(frozen=True)
class MonetaryLine:
    """One amount in one currency, with its inclusion flag"""
    amount: Decimal
    currency: str
    include: bool = True
    label: str = ''


def value_line(amount: Amount, currency: Optional[str] = None, label: str = '') -> MonetaryLine:
    """Unconditional line, e.g. declared goods value"""
    return MonetaryLine(to_decimal(amount), normalize_currency(currency), True, label)


def fee_line(amount: Amount, currency: Optional[str] = None,
             payment_method: Optional[str] = PAYMENT_PREPAID, label: str = '') -> MonetaryLine:
    """Conditional fee line, collectible only when payment method is 'collect'"""
    include = (payment_method or PAYMENT_PREPAID) == PAYMENT_COLLECT
    return MonetaryLine(to_decimal(amount), normalize_currency(currency), include, label)


# ==================== TOTALS ====================
class CollectibleTotal:
    """
    Currency-keyed total as an ordered sequence of (currency, amount) pairs.

    Order is the first-encountered order of the aggregated lines. Compares
    equal to another CollectibleTotal with the same pairs in the same order,
    or to a plain mapping with the same currency amounts.
    """

    def __init__(self, pairs: Iterable[Tuple[str, Decimal]] = ()):
        self._pairs: Tuple[Tuple[str, Decimal], ...] = tuple(pairs)

    @property
    def pairs(self) -> Tuple[Tuple[str, Decimal], ...]:
        return self._pairs

    @property
    def currencies(self) -> List[str]:
        return [currency for currency, _ in self._pairs]

    def get(self, currency: str, default: Decimal = Decimal('0')) -> Decimal:
        currency = normalize_currency(currency)
        for code, amount in self._pairs:
            if code == currency:
                return amount
        return default

    def as_dict(self) -> Dict[str, Decimal]:
        return {currency: amount for currency, amount in self._pairs}

    def is_empty(self) -> bool:
        return not self._pairs

    def format(self) -> str:
        return format_totals(self)

    def __iter__(self) -> Iterator[Tuple[str, Decimal]]:
        return iter(self._pairs)

    def __len__(self) -> int:
        return len(self._pairs)

    def __eq__(self, other) -> bool:
        if isinstance(other, CollectibleTotal):
            return self._pairs == other._pairs
        if isinstance(other, Mapping):
            return self.as_dict() == {key: to_decimal(value) for key, value in other.items()}
        return NotImplemented

    def __str__(self) -> str:
        return self.format()

    def __repr__(self) -> str:
        inner = ', '.join(f"{currency}={amount}" for currency, amount in self._pairs)
        return f"CollectibleTotal({inner})"


def aggregate(lines: Iterable[MonetaryLine]) -> CollectibleTotal:
    """
    Sum included, positive lines per currency

    Args:
        lines: Ordered monetary lines

    Returns:
        CollectibleTotal with currencies in first-encountered order

    Raises:
        ValidationError: if any line carries a negative amount
    """
    running: List[List] = []
    position: Dict[str, int] = {}

    for line in lines:
        amount = to_decimal(line.amount)
        if amount < 0:
            raise ValidationError(
                f"Negative amount {amount} {line.currency}"
                + (f" ({line.label})" if line.label else "")
            )
        if not line.include or amount == 0:
            continue

        currency = normalize_currency(line.currency)
        if currency in position:
            running[position[currency]][1] += amount
        else:
            position[currency] = len(running)
            running.append([currency, amount])

    return CollectibleTotal((currency, amount) for currency, amount in running)


def combine(totals: Sequence[CollectibleTotal]) -> CollectibleTotal:
    """Merge several totals, keeping first-encountered currency order"""
    return aggregate(
        MonetaryLine(amount, currency)
        for total in totals
        for currency, amount in total
    )


# ==================== FORMATTING ====================
def format_amount(amount: Amount, currency: Optional[str] = None) -> str:
    """
    Format one amount at the currency's display precision

    A zero fraction is dropped: 120.00 USD -> '120', 1200.5 USD -> '1,200.50'
    """
    currency = normalize_currency(currency)
    places = CURRENCY_DISPLAY_PLACES.get(currency, 2)
    quantized = to_decimal(amount).quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)

    if quantized == quantized.to_integral_value():
        return f"{int(quantized):,}"
    return f"{quantized:,.{places}f}"


def format_totals(total: CollectibleTotal) -> str:
    """Render a total as '<amount> <currency>' segments joined by ' + '"""
    parts = [
        f"{format_amount(amount, currency)} {currency}"
        for currency, amount in total
        if amount != 0
    ]
    return ' + '.join(parts) or f"0 {DEFAULT_CURRENCY}"
