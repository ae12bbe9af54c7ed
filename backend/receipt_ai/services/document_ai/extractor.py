"""Single-pass routing of Document AI entities into an extraction scratchpad."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any

from . import date_codec
from .amount_codec import decode_money
from .contracts import (
    LINE_ITEM,
    RECEIPT_DATE,
    SUPPLIER_NAME,
    TOTAL_AMOUNT,
    TOTAL_TAX_AMOUNT,
    MoneyValue,
    RawEntity,
)
from .errors import ReceiptExtractionError
from .line_items import LineItemDraft, build_line_item

logger = logging.getLogger(__name__)

MERCHANT_NAME = "merchant_name"
TRANSACTION_DATE = "transaction_date"
TOTAL = "total_amount"


@dataclass
class ExtractedScratch:
    extracted_data: dict[str, Any] = field(default_factory=dict)
    line_items: list[LineItemDraft] = field(default_factory=list)
    tax_amounts: list[Decimal] = field(default_factory=list)
    date_sources: list[str] = field(default_factory=list)
    currency: str | None = None

    @property
    def merchant_name(self) -> str | None:
        return self.extracted_data.get(MERCHANT_NAME)

    @property
    def transaction_date(self) -> date | None:
        return self.extracted_data.get(TRANSACTION_DATE)

    @property
    def total_amount(self) -> Decimal | None:
        return self.extracted_data.get(TOTAL)

    def note_currency(self, money: MoneyValue | None) -> None:
        if self.currency is None and money is not None and money.currency_code:
            self.currency = money.currency_code.strip().upper() or None


def _handle_receipt_date(scratch: ExtractedScratch, entity: RawEntity, _infer_quantity: bool) -> None:
    if entity.mention_text:
        scratch.date_sources.append(entity.mention_text)
    if TRANSACTION_DATE in scratch.extracted_data:
        return
    decoded = date_codec.decode(entity)
    if decoded is not None:
        scratch.extracted_data[TRANSACTION_DATE] = decoded


def _handle_total_amount(scratch: ExtractedScratch, entity: RawEntity, _infer_quantity: bool) -> None:
    if TOTAL in scratch.extracted_data:
        return
    amount = decode_money(entity.money_value)
    if amount is not None:
        scratch.extracted_data[TOTAL] = amount
        scratch.note_currency(entity.money_value)


def _handle_supplier_name(scratch: ExtractedScratch, entity: RawEntity, _infer_quantity: bool) -> None:
    if MERCHANT_NAME in scratch.extracted_data:
        return
    name = (entity.mention_text or "").strip() or (entity.normalized_text or "").strip()
    if name:
        scratch.extracted_data[MERCHANT_NAME] = " ".join(name.split())


def _handle_total_tax(scratch: ExtractedScratch, entity: RawEntity, _infer_quantity: bool) -> None:
    amount = decode_money(entity.money_value)
    if amount is not None:
        scratch.tax_amounts.append(amount)
        scratch.note_currency(entity.money_value)


def _handle_line_item(scratch: ExtractedScratch, entity: RawEntity, infer_quantity: bool) -> None:
    draft = build_line_item(entity, infer_quantity=infer_quantity)
    if draft is not None:
        scratch.line_items.append(draft)
        for prop in entity.properties:
            scratch.note_currency(prop.money_value)


_HANDLERS: dict[str, Callable[[ExtractedScratch, RawEntity, bool], None]] = {
    RECEIPT_DATE: _handle_receipt_date,
    TOTAL_AMOUNT: _handle_total_amount,
    SUPPLIER_NAME: _handle_supplier_name,
    TOTAL_TAX_AMOUNT: _handle_total_tax,
    LINE_ITEM: _handle_line_item,
}


def extract_entities(entities: Iterable[RawEntity], *, infer_quantity: bool = False) -> ExtractedScratch:
    """Route every entity by type into a fresh ``ExtractedScratch``.

    Untyped and unknown entities are skipped. A defect inside one entity
    only loses that entity's contribution.
    """
    scratch = ExtractedScratch()
    for entity in entities:
        if not entity.type:
            logger.debug("Skipping entity without type: %r", entity.mention_text)
            continue
        handler = _HANDLERS.get(entity.type)
        if handler is None:
            continue
        try:
            handler(scratch, entity, infer_quantity)
        except (ReceiptExtractionError, ArithmeticError, ValueError) as exc:
            logger.warning("Skipping %s entity %r: %s", entity.type, entity.mention_text, exc)
    return scratch
