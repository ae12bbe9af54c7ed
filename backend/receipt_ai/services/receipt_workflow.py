"""Receipt submission and background processing.

``submit_receipt`` runs inside the request: it records the upload and moves
the expense to PROCESSING. ``process_receipt`` runs afterwards in a
background task with its own session: it calls the Document AI client, runs
the extraction pipeline and writes exactly one terminal status (PENDING or
FAILED).
"""

from __future__ import annotations

import hashlib
import logging
from collections.abc import Callable
from pathlib import PurePath
from typing import Optional

from sqlalchemy.orm import Session

from receipt_ai.core.config import get_settings
from receipt_ai.models.expense import Expense
from receipt_ai.schemas.expense import ExpenseStatus
from receipt_ai.services.document_ai import (
    Completed,
    Failed,
    ProcessingOutcome,
    UnsupportedFileType,
    run_extraction,
)
from receipt_ai.services.document_ai.clients import BaseDocumentClient
from receipt_ai.services.expense_repository import ExpenseRepository
from receipt_ai.services.transition_service import SYSTEM_ACTOR, apply_transition, create_audit_log

logger = logging.getLogger(__name__)

DOCUMENT_AI_UNAVAILABLE = "DOCUMENT_AI_UNAVAILABLE"

MIME_TYPES = {
    ".pdf": "application/pdf",
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
}


def resolve_mime_type(filename: Optional[str], allowed_extensions: list[str]) -> str:
    suffix = PurePath(filename or "").suffix.lower()
    if not suffix or suffix not in allowed_extensions or suffix not in MIME_TYPES:
        raise UnsupportedFileType(f"Unsupported receipt file type: {suffix or filename or 'unknown'}")
    return MIME_TYPES[suffix]


def submit_receipt(
    db: Session,
    *,
    filename: Optional[str],
    content: bytes,
    submitted_by: Optional[str] = None,
) -> Expense:
    """Create the expense for an uploaded receipt and mark it PROCESSING.

    The caller commits.
    """
    settings = get_settings()
    mime_type = resolve_mime_type(filename, settings.receipt_allowed_extensions)

    repo = ExpenseRepository(db)
    expense = repo.create_draft(
        receipt_filename=filename,
        receipt_mime_type=mime_type,
        receipt_hash=hashlib.sha256(content).hexdigest(),
        submitted_by=submitted_by,
    )
    create_audit_log(
        db,
        entity_type="expense",
        entity_id=str(expense.id),
        action="RECEIPT_SUBMITTED",
        old_value=None,
        new_value={"filename": filename, "mime_type": mime_type, "size": len(content)},
        actor_type=SYSTEM_ACTOR,
        actor_id=submitted_by,
    )
    apply_transition(
        db,
        expense=expense,
        new_status=ExpenseStatus.PROCESSING,
        actor_type=SYSTEM_ACTOR,
        actor_id=None,
    )
    return expense


async def _call_client(client: BaseDocumentClient, content: bytes, mime_type: str) -> Failed | str:
    settings = get_settings()
    try:
        result = await client.process(
            content,
            mime_type=mime_type,
            timeout_seconds=settings.document_ai_timeout_seconds,
        )
    except Exception as exc:
        logger.exception("Document AI call failed (client=%s)", client.name)
        return Failed(reason=f"Document AI request failed: {exc}", code=DOCUMENT_AI_UNAVAILABLE)
    logger.info(
        "Document AI responded (client=%s processor=%s latency_ms=%.1f)",
        result.client,
        result.processor,
        result.latency_ms,
    )
    return result.raw_text


def _persist_outcome(db: Session, expense: Expense, outcome: ProcessingOutcome) -> None:
    repo = ExpenseRepository(db)
    if isinstance(outcome, Completed):
        payload = outcome.payload
        repo.save_extraction(expense, payload)
        apply_transition(
            db,
            expense=expense,
            new_status=ExpenseStatus.PENDING,
            actor_type=SYSTEM_ACTOR,
            actor_id=None,
        )
        create_audit_log(
            db,
            entity_type="expense",
            entity_id=str(expense.id),
            action="RECEIPT_PROCESSED",
            old_value=None,
            new_value={
                "merchant_name": payload.merchant_name,
                "transaction_date": payload.transaction_date.isoformat() if payload.transaction_date else None,
                "line_items": len(payload.line_items),
                "total_amount": str(payload.total_amount) if payload.total_amount is not None else None,
            },
            actor_type=SYSTEM_ACTOR,
            actor_id=None,
        )
        return

    repo.save_failure(expense, outcome.reason)
    apply_transition(
        db,
        expense=expense,
        new_status=ExpenseStatus.FAILED,
        actor_type=SYSTEM_ACTOR,
        actor_id=None,
    )
    create_audit_log(
        db,
        entity_type="expense",
        entity_id=str(expense.id),
        action="RECEIPT_PROCESSING_FAILED",
        old_value=None,
        new_value={"error_message": outcome.reason},
        actor_type=SYSTEM_ACTOR,
        actor_id=None,
        metadata={"code": outcome.code},
    )
    if outcome.code == DOCUMENT_AI_UNAVAILABLE:
        create_audit_log(
            db,
            entity_type="expense",
            entity_id=str(expense.id),
            action=DOCUMENT_AI_UNAVAILABLE,
            old_value=None,
            new_value=None,
            actor_type=SYSTEM_ACTOR,
            actor_id=None,
            metadata={"reason": outcome.reason},
        )


def _mark_failed_after_error(session_factory: Callable[[], Session], expense_id, reason: str) -> None:
    db = session_factory()
    try:
        expense = ExpenseRepository(db).get(expense_id)
        if expense is None or expense.status != ExpenseStatus.PROCESSING.value:
            return
        _persist_outcome(db, expense, Failed(reason=reason))
        db.commit()
    except Exception:
        db.rollback()
        logger.exception("Could not mark expense %s as FAILED", expense_id)
    finally:
        db.close()


async def process_receipt(
    session_factory: Callable[[], Session],
    expense_id,
    content: bytes,
    *,
    client: BaseDocumentClient,
    infer_quantity: Optional[bool] = None,
) -> Optional[ProcessingOutcome]:
    """Extract one submitted receipt and persist the terminal status.

    Returns the outcome, or ``None`` when the expense is missing or no longer
    PROCESSING (nothing is written in that case).
    """
    if infer_quantity is None:
        infer_quantity = get_settings().receipt_infer_quantity

    db = session_factory()
    try:
        repo = ExpenseRepository(db)
        expense = repo.get(expense_id)
        if expense is None:
            logger.warning("Expense %s not found, skipping receipt processing", expense_id)
            return None
        if expense.status != ExpenseStatus.PROCESSING.value:
            logger.warning("Expense %s is %s, not PROCESSING; skipping", expense_id, expense.status)
            return None

        response = await _call_client(client, content, expense.receipt_mime_type or "application/pdf")
        if isinstance(response, Failed):
            outcome: ProcessingOutcome = response
        else:
            outcome = run_extraction(response, infer_quantity=infer_quantity)

        try:
            _persist_outcome(db, expense, outcome)
            db.commit()
        except Exception as exc:
            db.rollback()
            logger.exception("Failed to persist receipt outcome for expense %s", expense_id)
            db.close()
            _mark_failed_after_error(session_factory, expense_id, f"Could not save extraction result: {exc}")
            return Failed(reason=f"Could not save extraction result: {exc}")

        logger.info("Expense %s processed: %s", expense_id, outcome.status.value)
        return outcome
    finally:
        db.close()
