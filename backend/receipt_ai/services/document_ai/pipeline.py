"""Document AI response -> expense payload.

``run_extraction`` is pure: no I/O, no shared state. Every call returns a
``ProcessingOutcome`` and never raises, so callers can persist the result
without their own exception plumbing.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Union

from receipt_ai.schemas.expense import ExpenseStatus

from .contracts import RawEntity, parse_entities
from .errors import (
    EmptyResponse,
    MalformedResponse,
    MissingDocument,
    MissingEntities,
    NoDataExtracted,
    ReceiptExtractionError,
)
from .extractor import extract_entities
from .line_items import DEFAULT_QUANTITY, TOTAL_AMOUNT_LABEL, LineItemDraft, aggregate_taxes

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExpensePayload:
    merchant_name: str | None
    transaction_date: date | None
    line_items: tuple[LineItemDraft, ...]
    status: ExpenseStatus = ExpenseStatus.PENDING
    total_amount: Decimal | None = None
    currency: str | None = None

    @property
    def line_items_total(self) -> Decimal:
        return sum((item.line_total for item in self.line_items), Decimal("0.00"))


@dataclass(frozen=True)
class Completed:
    payload: ExpensePayload

    @property
    def status(self) -> ExpenseStatus:
        return self.payload.status


@dataclass(frozen=True)
class Failed:
    reason: str
    code: str = ReceiptExtractionError.code

    @property
    def status(self) -> ExpenseStatus:
        return ExpenseStatus.FAILED


ProcessingOutcome = Union[Completed, Failed]


def load_entities(response_body: str | bytes | None) -> list[RawEntity]:
    """Parse the response envelope and return its validated entities."""
    if response_body is None or not response_body.strip():
        raise EmptyResponse()

    try:
        data = json.loads(response_body)
    except ValueError as exc:
        raise MalformedResponse(f"Document AI response is not valid JSON: {exc}") from exc

    if not isinstance(data, dict):
        raise MalformedResponse("Document AI response must be a JSON object")

    document = data.get("document")
    if document is None:
        raise MissingDocument()
    if not isinstance(document, dict):
        raise MalformedResponse("Document AI 'document' must be an object")

    entities = document.get("entities")
    if entities is None:
        raise MissingEntities()
    if not isinstance(entities, list):
        raise MalformedResponse("Document AI 'entities' must be a list")

    return parse_entities(entities)


def _assemble(entities: list[RawEntity], *, infer_quantity: bool) -> ExpensePayload:
    scratch = extract_entities(entities, infer_quantity=infer_quantity)

    line_items = list(scratch.line_items)
    tax_item = aggregate_taxes(scratch.tax_amounts)
    if tax_item is not None:
        line_items.append(tax_item)

    if not scratch.extracted_data and not line_items:
        raise NoDataExtracted()

    if not line_items:
        if scratch.total_amount is None:
            raise NoDataExtracted("Receipt has no line items and no total amount")
        line_items.append(
            LineItemDraft(
                description=TOTAL_AMOUNT_LABEL,
                unit_price=scratch.total_amount,
                quantity=DEFAULT_QUANTITY,
            )
        )

    return ExpensePayload(
        merchant_name=scratch.merchant_name,
        transaction_date=scratch.transaction_date,
        line_items=tuple(line_items),
        status=ExpenseStatus.PENDING,
        total_amount=scratch.total_amount,
        currency=scratch.currency,
    )


def run_extraction(response_body: str | bytes | None, *, infer_quantity: bool = False) -> ProcessingOutcome:
    """Turn one Document AI response body into ``Completed`` or ``Failed``."""
    try:
        entities = load_entities(response_body)
        payload = _assemble(entities, infer_quantity=infer_quantity)
    except ReceiptExtractionError as exc:
        logger.warning("Receipt extraction failed (%s): %s", exc.code, exc)
        return Failed(reason=str(exc), code=exc.code)
    except Exception as exc:
        logger.exception("Unexpected error while extracting receipt data")
        return Failed(reason=f"Unexpected extraction error: {exc}")

    logger.info(
        "Receipt extracted: merchant=%r date=%s line_items=%s",
        payload.merchant_name,
        payload.transaction_date,
        len(payload.line_items),
    )
    return Completed(payload)
