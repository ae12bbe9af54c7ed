"""Receipt date decoding.

The expense parser is configured for a US locale, so free-text dates are
read positionally as ``month/day/year``.
"""

from __future__ import annotations

import logging
from datetime import date

from .contracts import RawEntity
from .errors import InvalidDate

logger = logging.getLogger(__name__)


def parse_month_day_year(text: str) -> date:
    """Parse ``"1/15/2024"`` into ``date(2024, 1, 15)``; raises ``InvalidDate``."""
    parts = [part.strip() for part in (text or "").strip().split("/")]
    if len(parts) < 3:
        raise InvalidDate(f"Expected month/day/year, got {text!r}")
    if not all(part.isdecimal() for part in parts):
        raise InvalidDate(f"Non-numeric date component in {text!r}")

    month, day, year = (int(part) for part in parts[:3])
    try:
        return date(year, month, day)
    except (ValueError, OverflowError) as exc:
        raise InvalidDate(f"Date {text!r} is out of range: {exc}") from exc


def decode(entity: RawEntity) -> date | None:
    """Structured ``dateValue`` first, then ``mentionText``; ``None`` if neither decodes."""
    date_value = entity.date_value
    if date_value is not None and date_value.is_complete:
        try:
            return date(date_value.year, date_value.month, date_value.day)
        except (ValueError, OverflowError):
            logger.warning(
                "Structured receipt date out of range: %s-%s-%s",
                date_value.year,
                date_value.month,
                date_value.day,
            )

    if not entity.mention_text:
        return None
    try:
        return parse_month_day_year(entity.mention_text)
    except InvalidDate as exc:
        logger.info("Receipt date left empty: %s", exc)
        return None
