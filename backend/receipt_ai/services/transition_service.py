import logging
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from receipt_ai.core.config import get_settings
from receipt_ai.models.expense import AuditLog, Expense
from receipt_ai.schemas.expense import ExpenseStatus
from receipt_ai.utils.alerting import alert_tracker

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "SYSTEM"

ALLOWED_TRANSITIONS = {
    ExpenseStatus.DRAFT: [ExpenseStatus.PROCESSING],
    ExpenseStatus.PROCESSING: [ExpenseStatus.PENDING, ExpenseStatus.FAILED],
    ExpenseStatus.PENDING: [ExpenseStatus.APPROVED, ExpenseStatus.REJECTED],
    ExpenseStatus.FAILED: [],
    ExpenseStatus.APPROVED: [],
    ExpenseStatus.REJECTED: [],
}

PII_REDACTION_FALLBACK_FIELDS = {
    "phone",
    "email",
    "address",
    "card_number",
    "tax_id",
}


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _redact_pii(value: Any, redact_keys: set[str]) -> Any:
    if value is None:
        return None
    if isinstance(value, dict):
        redacted = {}
        for key, item in value.items():
            if isinstance(key, str) and key.lower() in redact_keys:
                redacted[key] = "[REDACTED]"
            else:
                redacted[key] = _redact_pii(item, redact_keys)
        return redacted
    if isinstance(value, list):
        return [_redact_pii(item, redact_keys) for item in value]
    return value


def create_audit_log(
    db: Session,
    *,
    entity_type: str,
    entity_id: str,
    action: str,
    old_value: Optional[dict[str, Any]],
    new_value: Optional[dict[str, Any]],
    actor_type: str,
    actor_id: Optional[str],
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
    metadata: Optional[dict[str, Any]] = None,
) -> None:
    settings = get_settings()
    if settings.pii_redaction_enabled:
        configured = {item.lower() for item in settings.pii_redaction_fields}
        redact_keys = configured or set(PII_REDACTION_FALLBACK_FIELDS)
        old_value = _redact_pii(old_value, redact_keys)
        new_value = _redact_pii(new_value, redact_keys)
        if metadata is not None:
            metadata = _redact_pii(metadata, redact_keys)

    log = AuditLog(
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        old_value=old_value,
        new_value=new_value,
        actor_type=actor_type,
        actor_id=actor_id,
        ip_address=ip_address,
        user_agent=user_agent,
        audit_meta=metadata,
    )
    db.add(log)
    try:
        alert_tracker.record(action, metadata)
    except Exception:
        logger.exception("Alert tracker failed for action=%s", action)


def _is_allowed_actor(current: ExpenseStatus, new: ExpenseStatus, actor_type: str) -> bool:
    if current in (ExpenseStatus.DRAFT, ExpenseStatus.PROCESSING):
        return actor_type == SYSTEM_ACTOR
    if current == ExpenseStatus.PENDING:
        return actor_type in {"REVIEWER", "ADMIN"}
    return False


def apply_transition(
    db: Session,
    *,
    expense: Expense,
    new_status: ExpenseStatus,
    actor_type: str,
    actor_id: Optional[str],
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
    metadata: Optional[dict[str, Any]] = None,
) -> bool:
    """Move *expense* to *new_status*, writing an audit entry.

    Returns False when the expense is already in *new_status*.
    """
    current = ExpenseStatus(expense.status)

    if new_status == current:
        return False

    if new_status not in ALLOWED_TRANSITIONS.get(current, []):
        raise HTTPException(400, f"Invalid transition: {current} -> {new_status}")

    if not _is_allowed_actor(current, new_status, actor_type):
        raise HTTPException(403, "Forbidden")

    now = _now()
    expense.status = new_status.value
    if new_status in (ExpenseStatus.PENDING, ExpenseStatus.FAILED):
        expense.processed_at = now
    if new_status in (ExpenseStatus.APPROVED, ExpenseStatus.REJECTED):
        expense.reviewed_at = now
        expense.reviewed_by = actor_id

    create_audit_log(
        db,
        entity_type="expense",
        entity_id=str(expense.id),
        action="STATUS_CHANGE",
        old_value={"status": current.value},
        new_value={"status": new_status.value},
        actor_type=actor_type,
        actor_id=actor_id,
        ip_address=ip_address,
        user_agent=user_agent,
        metadata=metadata,
    )
    logger.info("Expense %s: %s -> %s by %s", expense.id, current.value, new_status.value, actor_type)
    return True
