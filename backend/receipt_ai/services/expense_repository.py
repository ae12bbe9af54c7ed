"""Persistence of expenses and their line items."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from sqlalchemy import desc, func, select
from sqlalchemy.orm import Session

from receipt_ai.models.expense import Expense, ExpenseLineItem
from receipt_ai.schemas.expense import ExpenseStatus
from receipt_ai.services.document_ai.line_items import LineItemDraft
from receipt_ai.services.document_ai.pipeline import ExpensePayload

logger = logging.getLogger(__name__)

_CENT = Decimal("0.01")
_QUANTITY_STEP = Decimal("0.001")
MERCHANT_NAME_MAX_LENGTH = Expense.__table__.c.merchant_name.type.length


def _as_uuid(value) -> Optional[uuid.UUID]:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


def to_money(value) -> Decimal:
    return Decimal(str(value)).quantize(_CENT, rounding=ROUND_HALF_UP)


def to_quantity(value) -> Decimal:
    return Decimal(str(value)).quantize(_QUANTITY_STEP, rounding=ROUND_HALF_UP)


def line_total(item: ExpenseLineItem) -> Decimal:
    return (Decimal(item.quantity) * Decimal(item.unit_price)).quantize(_CENT, rounding=ROUND_HALF_UP)


def expense_total(expense: Expense) -> Decimal:
    return sum((line_total(item) for item in expense.line_items), Decimal("0.00"))


class ExpenseRepository:
    """Thin SQLAlchemy repository; callers own the transaction (commit/rollback)."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def create_draft(
        self,
        *,
        receipt_filename: Optional[str],
        receipt_mime_type: str,
        receipt_hash: str,
        submitted_by: Optional[str] = None,
    ) -> Expense:
        expense = Expense(
            status=ExpenseStatus.DRAFT.value,
            receipt_filename=receipt_filename,
            receipt_mime_type=receipt_mime_type,
            receipt_hash=receipt_hash,
            submitted_by=_as_uuid(submitted_by) if submitted_by else None,
        )
        self.db.add(expense)
        self.db.flush()
        return expense

    def get(self, expense_id) -> Optional[Expense]:
        key = _as_uuid(expense_id)
        if key is None:
            return None
        return self.db.get(Expense, key)

    def get_line_item(self, line_item_id) -> Optional[ExpenseLineItem]:
        key = _as_uuid(line_item_id)
        if key is None:
            return None
        return self.db.get(ExpenseLineItem, key)

    def list_by_status(self, status: ExpenseStatus, *, limit: int = 50) -> list[Expense]:
        stmt = (
            select(Expense)
            .where(Expense.status == status.value)
            .order_by(desc(Expense.created_at), desc(Expense.id))
            .limit(limit)
        )
        return list(self.db.execute(stmt).scalars().all())

    def replace_line_items(self, expense: Expense, drafts: Iterable[LineItemDraft]) -> list[ExpenseLineItem]:
        expense.line_items.clear()
        items = []
        for position, draft in enumerate(drafts):
            item = ExpenseLineItem(
                position=position,
                description=draft.description,
                quantity=to_quantity(draft.quantity),
                unit_price=to_money(draft.unit_price),
            )
            expense.line_items.append(item)
            items.append(item)
        self.db.flush()
        return items

    def save_extraction(self, expense: Expense, payload: ExpensePayload) -> None:
        merchant_name = payload.merchant_name
        if merchant_name and len(merchant_name) > MERCHANT_NAME_MAX_LENGTH:
            logger.warning(
                "Merchant name truncated to %s characters for expense %s",
                MERCHANT_NAME_MAX_LENGTH,
                expense.id,
            )
            merchant_name = merchant_name[:MERCHANT_NAME_MAX_LENGTH]
        expense.merchant_name = merchant_name
        expense.transaction_date = payload.transaction_date
        expense.currency = payload.currency
        expense.error_message = None
        self.replace_line_items(expense, payload.line_items)

    def save_failure(self, expense: Expense, reason: str) -> None:
        expense.error_message = reason[:2000]
        self.db.flush()

    def add_line_item(
        self,
        expense: Expense,
        *,
        description: str,
        quantity,
        unit_price,
    ) -> ExpenseLineItem:
        next_position = self.db.execute(
            select(func.coalesce(func.max(ExpenseLineItem.position), -1)).where(
                ExpenseLineItem.expense_id == expense.id
            )
        ).scalar_one() + 1
        item = ExpenseLineItem(
            position=next_position,
            description=description,
            quantity=to_quantity(quantity),
            unit_price=to_money(unit_price),
        )
        expense.line_items.append(item)
        self.db.flush()
        return item

    def update_line_item(
        self,
        item: ExpenseLineItem,
        *,
        description: Optional[str] = None,
        quantity=None,
        unit_price=None,
    ) -> dict[str, dict]:
        """Apply the given fields and return ``{field: {"old": ..., "new": ...}}``."""
        changes: dict[str, dict] = {}
        if description is not None and description != item.description:
            changes["description"] = {"old": item.description, "new": description}
            item.description = description
        if quantity is not None:
            new_quantity = to_quantity(quantity)
            if new_quantity != Decimal(item.quantity):
                changes["quantity"] = {"old": str(item.quantity), "new": str(new_quantity)}
                item.quantity = new_quantity
        if unit_price is not None:
            new_price = to_money(unit_price)
            if new_price != Decimal(item.unit_price):
                changes["unit_price"] = {"old": str(item.unit_price), "new": str(new_price)}
                item.unit_price = new_price
        self.db.flush()
        return changes

    def delete_line_item(self, item: ExpenseLineItem) -> None:
        expense = item.expense
        if expense is not None:
            expense.line_items.remove(item)
        else:
            self.db.delete(item)
        self.db.flush()
