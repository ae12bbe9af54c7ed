"""Expense review API: pending queue, line item edits, approve/reject."""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from receipt_ai.core.auth import REVIEW_ROLES, CurrentUser, require_roles
from receipt_ai.core.dependencies import get_db
from receipt_ai.models.expense import Expense, ExpenseLineItem
from receipt_ai.schemas.expense import (
    ApproveRequest,
    ExpenseDetailOut,
    ExpenseListResponse,
    ExpenseOut,
    ExpenseStatus,
    LineItemCreate,
    LineItemOut,
    LineItemUpdate,
    RejectRequest,
)
from receipt_ai.services.expense_repository import ExpenseRepository, expense_total, line_total
from receipt_ai.services.transition_service import apply_transition, create_audit_log

logger = logging.getLogger(__name__)

router = APIRouter()


def _client_ip(request: Request) -> Optional[str]:
    return request.client.host if request.client else None


def _user_agent(request: Request) -> Optional[str]:
    return request.headers.get("user-agent") if request else None


def _str_or_none(value) -> Optional[str]:
    return str(value) if value is not None else None


def _expense_out(expense: Expense) -> ExpenseOut:
    return ExpenseOut(
        id=str(expense.id),
        merchant_name=expense.merchant_name,
        transaction_date=expense.transaction_date,
        status=ExpenseStatus(expense.status),
        error_message=expense.error_message,
        currency=expense.currency,
        receipt_filename=expense.receipt_filename,
        submitted_by=_str_or_none(expense.submitted_by),
        reviewed_by=_str_or_none(expense.reviewed_by),
        review_note=expense.review_note,
        created_at=expense.created_at,
        updated_at=expense.updated_at,
        processed_at=expense.processed_at,
        reviewed_at=expense.reviewed_at,
    )


def _line_item_out(item: ExpenseLineItem) -> LineItemOut:
    return LineItemOut(
        id=str(item.id),
        position=item.position,
        description=item.description,
        quantity=float(item.quantity),
        unit_price=float(item.unit_price),
        line_total=float(line_total(item)),
    )


def _expense_detail_out(expense: Expense) -> ExpenseDetailOut:
    base = _expense_out(expense).model_dump()
    return ExpenseDetailOut(
        **base,
        line_items=[_line_item_out(item) for item in expense.line_items],
        total_amount=float(expense_total(expense)),
    )


def _get_expense_or_404(repo: ExpenseRepository, expense_id: str) -> Expense:
    expense = repo.get(expense_id)
    if not expense:
        raise HTTPException(404, "Expense not found")
    return expense


def _get_line_item_or_404(repo: ExpenseRepository, line_item_id: str) -> ExpenseLineItem:
    item = repo.get_line_item(line_item_id)
    if not item:
        raise HTTPException(404, "Line item not found")
    return item


def _ensure_editable(expense: Expense) -> None:
    if expense.status != ExpenseStatus.PENDING.value:
        raise HTTPException(409, f"Line items can only be changed while PENDING (status: {expense.status})")


def _line_item_snapshot(item: ExpenseLineItem) -> dict:
    return {
        "line_item_id": str(item.id),
        "description": item.description,
        "quantity": str(item.quantity),
        "unit_price": str(item.unit_price),
    }


@router.get("/expenses/pending", response_model=ExpenseListResponse)
async def list_pending_expenses(
    limit: int = 50,
    current_user: CurrentUser = Depends(require_roles(*REVIEW_ROLES)),
    db: Session = Depends(get_db),
):
    limit = max(1, min(limit, 200))
    expenses = ExpenseRepository(db).list_by_status(ExpenseStatus.PENDING, limit=limit)
    return ExpenseListResponse(items=[_expense_out(expense) for expense in expenses])


@router.get("/expenses/{expense_id}", response_model=ExpenseDetailOut)
async def get_expense(
    expense_id: str,
    current_user: CurrentUser = Depends(require_roles(*REVIEW_ROLES)),
    db: Session = Depends(get_db),
):
    expense = _get_expense_or_404(ExpenseRepository(db), expense_id)
    return _expense_detail_out(expense)


@router.post("/expenses/{expense_id}/line-items", response_model=LineItemOut, status_code=201)
async def create_line_item(
    expense_id: str,
    payload: LineItemCreate,
    request: Request,
    current_user: CurrentUser = Depends(require_roles(*REVIEW_ROLES)),
    db: Session = Depends(get_db),
):
    repo = ExpenseRepository(db)
    expense = _get_expense_or_404(repo, expense_id)
    _ensure_editable(expense)

    item = repo.add_line_item(
        expense,
        description=payload.description.strip() or "Unknown Item",
        quantity=payload.quantity,
        unit_price=payload.unit_price,
    )
    create_audit_log(
        db,
        entity_type="expense",
        entity_id=str(expense.id),
        action="LINE_ITEM_CREATED",
        old_value=None,
        new_value=_line_item_snapshot(item),
        actor_type=current_user.role,
        actor_id=current_user.id,
        ip_address=_client_ip(request),
        user_agent=_user_agent(request),
    )
    db.commit()
    db.refresh(item)
    return _line_item_out(item)


@router.patch("/expenses/line-items/{line_item_id}", response_model=LineItemOut)
async def update_line_item(
    line_item_id: str,
    payload: LineItemUpdate,
    request: Request,
    current_user: CurrentUser = Depends(require_roles(*REVIEW_ROLES)),
    db: Session = Depends(get_db),
):
    repo = ExpenseRepository(db)
    item = _get_line_item_or_404(repo, line_item_id)
    _ensure_editable(item.expense)

    description = payload.description.strip() if payload.description is not None else None
    changes = repo.update_line_item(
        item,
        description=description or None,
        quantity=payload.quantity,
        unit_price=payload.unit_price,
    )
    if changes:
        create_audit_log(
            db,
            entity_type="expense",
            entity_id=str(item.expense_id),
            action="LINE_ITEM_UPDATED",
            old_value={field: change["old"] for field, change in changes.items()},
            new_value={field: change["new"] for field, change in changes.items()},
            actor_type=current_user.role,
            actor_id=current_user.id,
            ip_address=_client_ip(request),
            user_agent=_user_agent(request),
            metadata={"line_item_id": str(item.id)},
        )
    db.commit()
    db.refresh(item)
    return _line_item_out(item)


@router.delete("/expenses/line-items/{line_item_id}", status_code=204)
async def delete_line_item(
    line_item_id: str,
    request: Request,
    current_user: CurrentUser = Depends(require_roles(*REVIEW_ROLES)),
    db: Session = Depends(get_db),
):
    repo = ExpenseRepository(db)
    item = _get_line_item_or_404(repo, line_item_id)
    expense = item.expense
    _ensure_editable(expense)

    snapshot = _line_item_snapshot(item)
    repo.delete_line_item(item)
    create_audit_log(
        db,
        entity_type="expense",
        entity_id=str(expense.id),
        action="LINE_ITEM_DELETED",
        old_value=snapshot,
        new_value=None,
        actor_type=current_user.role,
        actor_id=current_user.id,
        ip_address=_client_ip(request),
        user_agent=_user_agent(request),
    )
    db.commit()
    return None


@router.post("/expenses/{expense_id}/approve", response_model=ExpenseDetailOut)
async def approve_expense(
    expense_id: str,
    request: Request,
    payload: Optional[ApproveRequest] = None,
    current_user: CurrentUser = Depends(require_roles(*REVIEW_ROLES)),
    db: Session = Depends(get_db),
):
    expense = _get_expense_or_404(ExpenseRepository(db), expense_id)
    note = payload.note if payload else None

    changed = apply_transition(
        db,
        expense=expense,
        new_status=ExpenseStatus.APPROVED,
        actor_type=current_user.role,
        actor_id=current_user.id,
        ip_address=_client_ip(request),
        user_agent=_user_agent(request),
        metadata={"note": note} if note else None,
    )
    if not changed:
        raise HTTPException(400, "Expense is already APPROVED")
    expense.review_note = note
    db.commit()
    db.refresh(expense)
    return _expense_detail_out(expense)


@router.post("/expenses/{expense_id}/reject", response_model=ExpenseDetailOut)
async def reject_expense(
    expense_id: str,
    payload: RejectRequest,
    request: Request,
    current_user: CurrentUser = Depends(require_roles(*REVIEW_ROLES)),
    db: Session = Depends(get_db),
):
    expense = _get_expense_or_404(ExpenseRepository(db), expense_id)

    changed = apply_transition(
        db,
        expense=expense,
        new_status=ExpenseStatus.REJECTED,
        actor_type=current_user.role,
        actor_id=current_user.id,
        ip_address=_client_ip(request),
        user_agent=_user_agent(request),
        metadata={"reason": payload.reason},
    )
    if not changed:
        raise HTTPException(400, "Expense is already REJECTED")
    expense.review_note = payload.reason
    db.commit()
    db.refresh(expense)
    return _expense_detail_out(expense)
