"""Line item drafts built from ``line_item`` entities, plus the tax aggregate."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from .amount_codec import decode_money
from .contracts import (
    LINE_ITEM_AMOUNT,
    LINE_ITEM_DESCRIPTION,
    LINE_ITEM_QUANTITY,
    RawEntity,
)

logger = logging.getLogger(__name__)

DEFAULT_QUANTITY = Decimal("1")
UNKNOWN_ITEM = "Unknown Item"
DISCOUNT_LABEL = "Discount"
TOTAL_TAX_LABEL = "Total Tax"
TOTAL_AMOUNT_LABEL = "Total Amount"

_CENT = Decimal("0.01")
# "2 x Widget", "3x Coffee", "1.5 × Cheese"
_QUANTITY_PREFIX = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*[xX×]\s*(\S.*)$")


@dataclass(frozen=True)
class LineItemDraft:
    description: str
    unit_price: Decimal
    quantity: Decimal = DEFAULT_QUANTITY
    is_discount: bool = False

    @property
    def line_total(self) -> Decimal:
        return (self.quantity * self.unit_price).quantize(_CENT, rounding=ROUND_HALF_UP)


def parse_quantity(text: str | None) -> Decimal:
    """Quantity from receipt text; anything unusable falls back to 1."""
    if text is None:
        return DEFAULT_QUANTITY
    cleaned = text.strip()
    if not cleaned:
        return DEFAULT_QUANTITY
    try:
        quantity = Decimal(cleaned)
    except InvalidOperation:
        logger.info("Unreadable line item quantity %r, using 1", text)
        return DEFAULT_QUANTITY
    if not quantity.is_finite() or quantity < 0:
        logger.info("Invalid line item quantity %r, using 1", text)
        return DEFAULT_QUANTITY
    return quantity


def split_quantity_prefix(description: str) -> tuple[Decimal, str] | None:
    """``"2 x Widget"`` -> ``(Decimal("2"), "Widget")``; ``None`` when there is no prefix."""
    match = _QUANTITY_PREFIX.match(description)
    if not match:
        return None
    return Decimal(match.group(1)), match.group(2).strip()


def build_line_item(entity: RawEntity, *, infer_quantity: bool = False) -> LineItemDraft | None:
    """Turn one ``line_item`` entity into a draft.

    Properties are read in order: ``line_item/quantity`` sets the quantity
    text, ``line_item/amount`` the price and ``line_item/description``
    overrides the entity's own mention text. Items without a decodable
    amount carry no accounting value and are dropped (``None``).

    A negative amount marks a discount: the price is forced negative and the
    description is prefixed with ``"Discount - "``.

    With ``infer_quantity`` set, a description such as ``"2 x Widget"``
    supplies the quantity when no quantity property is present.
    """
    description = entity.mention_text or ""
    quantity_text: str | None = None
    amount: Decimal | None = None

    for prop in entity.properties:
        if prop.type == LINE_ITEM_QUANTITY:
            quantity_text = prop.mention_text
        elif prop.type == LINE_ITEM_AMOUNT:
            decoded = decode_money(prop.money_value)
            if decoded is not None:
                amount = decoded
        elif prop.type == LINE_ITEM_DESCRIPTION:
            if prop.mention_text and prop.mention_text.strip():
                description = prop.mention_text

    if amount is None:
        logger.debug("Dropping line item without amount: %r", entity.mention_text)
        return None

    description = " ".join(description.split())
    quantity = parse_quantity(quantity_text)

    if infer_quantity and quantity_text is None and description:
        inferred = split_quantity_prefix(description)
        if inferred is not None:
            quantity, description = inferred

    is_discount = amount < 0
    if is_discount:
        amount = -abs(amount)
        description = f"{DISCOUNT_LABEL} - {description}" if description else DISCOUNT_LABEL

    if not description:
        description = UNKNOWN_ITEM

    return LineItemDraft(
        description=description,
        unit_price=amount,
        quantity=quantity,
        is_discount=is_discount,
    )


def aggregate_taxes(tax_amounts: Iterable[Decimal]) -> LineItemDraft | None:
    """Collapse every tax entity (state, local, ...) into one ``Total Tax`` draft."""
    amounts = list(tax_amounts)
    if not amounts:
        return None
    return LineItemDraft(
        description=TOTAL_TAX_LABEL,
        unit_price=sum(amounts, Decimal("0.00")),
        quantity=DEFAULT_QUANTITY,
    )
