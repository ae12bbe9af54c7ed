"""Receipt submission API."""

from __future__ import annotations

import logging

from fastapi import APIRouter, BackgroundTasks, Depends, File, HTTPException, UploadFile
from sqlalchemy.orm import Session

from receipt_ai.core.auth import CurrentUser, get_current_user
from receipt_ai.core.config import get_settings
from receipt_ai.core.dependencies import get_db, session_factory_for
from receipt_ai.models.expense import Expense
from receipt_ai.schemas.expense import ExpenseStatus, ReceiptSubmissionOut
from receipt_ai.services.document_ai import UnsupportedFileType
from receipt_ai.services.document_ai.clients import DocumentClientConfigError, get_document_client
from receipt_ai.services.expense_repository import ExpenseRepository
from receipt_ai.services.receipt_workflow import process_receipt, submit_receipt

logger = logging.getLogger(__name__)

router = APIRouter()


def _ensure_receipt_processing_enabled() -> None:
    if not get_settings().enable_receipt_processing:
        raise HTTPException(404, "Not found")


def _submission_out(expense: Expense) -> ReceiptSubmissionOut:
    return ReceiptSubmissionOut(
        id=str(expense.id),
        status=ExpenseStatus(expense.status),
        receipt_filename=expense.receipt_filename,
        receipt_mime_type=expense.receipt_mime_type,
        error_message=expense.error_message,
        created_at=expense.created_at,
        processed_at=expense.processed_at,
    )


@router.post("/receipts", response_model=ReceiptSubmissionOut, status_code=202)
async def upload_receipt(
    background_tasks: BackgroundTasks,
    file: UploadFile = File(...),
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    _ensure_receipt_processing_enabled()
    settings = get_settings()

    content = await file.read()
    if not content:
        raise HTTPException(400, "Empty file")
    if len(content) > settings.receipt_max_bytes:
        raise HTTPException(413, "File too large")

    try:
        client = get_document_client()
    except DocumentClientConfigError as exc:
        logger.error("Receipt upload rejected: %s", exc)
        raise HTTPException(503, "Receipt processing is not configured") from exc

    try:
        expense = submit_receipt(
            db,
            filename=file.filename,
            content=content,
            submitted_by=current_user.id,
        )
    except UnsupportedFileType as exc:
        raise HTTPException(400, str(exc)) from exc

    db.commit()
    db.refresh(expense)
    logger.info("Receipt %r submitted as expense %s by %s", file.filename, expense.id, current_user.id)

    background_tasks.add_task(
        process_receipt,
        session_factory_for(db),
        expense.id,
        content,
        client=client,
    )
    return _submission_out(expense)


@router.get("/receipts/{expense_id}", response_model=ReceiptSubmissionOut)
async def get_receipt_status(
    expense_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    _ensure_receipt_processing_enabled()
    expense = ExpenseRepository(db).get(expense_id)
    if not expense:
        raise HTTPException(404, "Receipt not found")
    if current_user.role == "SUBMITTER" and str(expense.submitted_by) != str(current_user.id):
        raise HTTPException(404, "Receipt not found")
    return _submission_out(expense)
