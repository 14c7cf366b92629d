"""
Manifest number generation - BOL-<year>-<seq>
"""
import logging
import re
import time
from datetime import datetime
from typing import Any, Callable, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError

from ..config import config

logger = logging.getLogger(__name__)


class SequenceGenerator:
    """
    Per-year sequence of manifest numbers

    The next number is derived from the highest number already stored for the
    year, so two concurrent callers can draw the same value; the store's
    unique constraint on manifest_number rejects the second insert.
    """

    def __init__(self, source: Any,
                 clock: Optional[Callable[[], datetime]] = None,
                 millis: Optional[Callable[[], int]] = None):
        self.source = source
        self.clock = clock or datetime.now
        self.millis = millis or (lambda: int(time.time() * 1000))
        self.prefix = config.get_app_setting('MANIFEST_NUMBER_PREFIX', 'BOL')
        self.pad_width = config.get_app_setting('SEQUENCE_PAD_WIDTH', 3)

    def next(self, year: Optional[int] = None) -> str:
        """
        Generate the next manifest number for a year

        Falls back to an out-of-band '<prefix>-<epoch-millis>' number when the
        existing numbers cannot be read, so entry creation is never blocked.
        """
        if year is None:
            year = self.clock().year

        year_prefix = f"{self.prefix}-{year}-"
        try:
            latest = self.source.find_latest_number(year_prefix)
        except SQLAlchemyError as e:
            fallback = f"{self.prefix}-{self.millis()}"
            logger.error(f"Error generating manifest number for {year}, using {fallback}: {e}")
            return fallback

        sequence = 1
        if latest:
            parsed = parse_manifest_number(latest, self.prefix)
            if parsed and parsed[0] == year:
                sequence = parsed[1] + 1
            else:
                logger.warning(f"Latest manifest number {latest!r} is not in {year_prefix}<seq> form")

        return f"{year_prefix}{sequence:0{self.pad_width}d}"


def parse_manifest_number(number: str, prefix: str = 'BOL') -> Optional[Tuple[int, int]]:
    """
    Split a sequenced manifest number into (year, sequence)

    Returns None for fallback '<prefix>-<epoch-millis>' numbers and anything
    else outside the yearly scheme.
    """
    match = re.fullmatch(rf"{re.escape(prefix)}-(\d{{4}})-(\d+)", number or '')
    if not match:
        return None
    return int(match.group(1)), int(match.group(2))


def is_fallback_number(number: str, prefix: str = 'BOL') -> bool:
    """True for out-of-band '<prefix>-<epoch-millis>' numbers"""
    return re.fullmatch(rf"{re.escape(prefix)}-\d+", number or '') is not None
