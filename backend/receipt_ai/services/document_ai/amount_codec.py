"""Money decoding for Document AI ``moneyValue`` pairs.

Amounts arrive as whole ``units`` (a numeric string) plus ``nanos``
(billionths). Results are always ``Decimal`` values with two fractional
digits; floats never enter the computation.
"""

from __future__ import annotations

import logging
import re
from decimal import Decimal

from .contracts import MoneyValue
from .errors import MalformedAmount

logger = logging.getLogger(__name__)

NANOS_PER_CENT = 10_000_000
MAX_NANOS = 999_999_999

# Upstream artifact: a sign emitted after the decimal point, e.g. "12.-50".
_SIGN_AFTER_POINT = re.compile(r"\.[-+]")
_NUMERIC_UNITS = re.compile(r"^[-+]?\d+(?:\.\d*)?$")


def _clean_units(units: str | int) -> str:
    return _SIGN_AFTER_POINT.sub(".", str(units).strip())


def decode(units: str | int, nanos: int | None = None) -> Decimal:
    """Collapse ``units`` + ``nanos`` into one signed two-decimal amount.

    >>> decode("100", 500000000)
    Decimal('100.50')
    >>> decode("12.-50")
    Decimal('12.50')
    """
    cleaned = _clean_units(units)
    if not _NUMERIC_UNITS.match(cleaned):
        raise MalformedAmount(f"Money units {units!r} are not numeric")
    if nanos is not None and abs(nanos) > MAX_NANOS:
        raise MalformedAmount(f"Money nanos {nanos!r} out of range")

    negative = cleaned.startswith("-")
    whole, _, unit_fraction = cleaned.lstrip("+-").partition(".")

    if nanos:
        fraction = f"{abs(nanos) // NANOS_PER_CENT:02d}"
        # google.type.Money carries the sign in nanos when units are zero.
        if nanos < 0 and int(whole) == 0:
            negative = True
    else:
        fraction = (unit_fraction + "00")[:2]

    value = Decimal(f"{int(whole)}.{fraction}")
    if negative and value:
        return -value
    return value


def decode_absolute(units: str | int, nanos: int | None = None) -> Decimal:
    """Unsigned magnitude, for call sites that decide discount semantics themselves."""
    return abs(decode(units, nanos))


def decode_money(money: MoneyValue | None) -> Decimal | None:
    """Decode a parsed ``moneyValue``; ``None`` when absent or malformed."""
    if money is None:
        return None
    try:
        return decode(money.units, money.nanos)
    except MalformedAmount as exc:
        logger.warning("Ignoring malformed money value: %s", exc)
        return None
