"""
Receipt workflow: submit -> PROCESSING -> (Document AI + extraction) -> PENDING | FAILED.

Runs against an in-memory SQLite database; the Document AI client is the
mock client or a stub raising transport errors.
"""

from __future__ import annotations

import hashlib
import uuid
from decimal import Decimal

import httpx
import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from receipt_ai.models.expense import AuditLog, Base, Expense
from receipt_ai.schemas.expense import ExpenseStatus
from receipt_ai.services.document_ai import Completed, ExpensePayload, Failed, LineItemDraft, UnsupportedFileType
from receipt_ai.services.document_ai.clients import BaseDocumentClient, MockDocumentClient
from receipt_ai.services.expense_repository import MERCHANT_NAME_MAX_LENGTH, ExpenseRepository
from receipt_ai.services.receipt_workflow import process_receipt, resolve_mime_type, submit_receipt


class _UnreachableClient(BaseDocumentClient):
    name = "unreachable"

    async def process(self, content, *, mime_type, timeout_seconds=30.0):
        raise httpx.ConnectError("connection refused")


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    factory = sessionmaker(bind=engine)
    yield factory
    Base.metadata.drop_all(engine)
    engine.dispose()


def _submit(session_factory, *, filename="receipt.jpg", content=b"jpeg-bytes", submitted_by=None) -> uuid.UUID:
    db = session_factory()
    try:
        expense = submit_receipt(db, filename=filename, content=content, submitted_by=submitted_by)
        db.commit()
        return expense.id
    finally:
        db.close()


def _load(session_factory, expense_id):
    db = session_factory()
    expense = db.get(Expense, expense_id)
    # Touch relationships while the session is open.
    items = list(expense.line_items)
    actions = [row.action for row in db.execute(select(AuditLog).order_by(AuditLog.timestamp)).scalars()]
    return db, expense, items, actions


def test_resolve_mime_type():
    allowed = [".pdf", ".png", ".jpg", ".jpeg"]
    assert resolve_mime_type("scan.PDF", allowed) == "application/pdf"
    assert resolve_mime_type("photo.jpeg", allowed) == "image/jpeg"
    with pytest.raises(UnsupportedFileType):
        resolve_mime_type("notes.txt", allowed)
    with pytest.raises(UnsupportedFileType):
        resolve_mime_type("no-extension", allowed)
    with pytest.raises(UnsupportedFileType):
        resolve_mime_type("photo.png", [".pdf"])


def test_submit_creates_processing_expense(session_factory):
    submitter = str(uuid.uuid4())
    expense_id = _submit(session_factory, content=b"abc", submitted_by=submitter)

    db, expense, items, actions = _load(session_factory, expense_id)
    try:
        assert expense.status == ExpenseStatus.PROCESSING.value
        assert expense.receipt_mime_type == "image/jpeg"
        assert expense.receipt_hash == hashlib.sha256(b"abc").hexdigest()
        assert str(expense.submitted_by) == submitter
        assert items == []
        assert "RECEIPT_SUBMITTED" in actions
        assert "STATUS_CHANGE" in actions
    finally:
        db.close()


@pytest.mark.asyncio
async def test_successful_processing_persists_pending_with_line_items(session_factory, receipt_response_text):
    expense_id = _submit(session_factory)

    outcome = await process_receipt(
        session_factory,
        expense_id,
        b"jpeg-bytes",
        client=MockDocumentClient(receipt_response_text),
    )

    assert isinstance(outcome, Completed)
    db, expense, items, actions = _load(session_factory, expense_id)
    try:
        assert expense.status == ExpenseStatus.PENDING.value
        assert expense.merchant_name == "Test Merchant"
        assert expense.transaction_date.isoformat() == "2024-01-15"
        assert expense.currency == "USD"
        assert expense.error_message is None
        assert expense.processed_at is not None
        assert [(i.position, i.description, Decimal(i.quantity), Decimal(i.unit_price)) for i in items] == [
            (0, "Test Item", Decimal("2.000"), Decimal("100.50")),
            (1, "Total Tax", Decimal("1.000"), Decimal("10.50")),
        ]
        assert "RECEIPT_PROCESSED" in actions
    finally:
        db.close()


@pytest.mark.asyncio
async def test_client_failure_persists_failed(session_factory):
    expense_id = _submit(session_factory)

    outcome = await process_receipt(session_factory, expense_id, b"jpeg-bytes", client=_UnreachableClient())

    assert isinstance(outcome, Failed)
    assert outcome.code == "DOCUMENT_AI_UNAVAILABLE"
    db, expense, items, actions = _load(session_factory, expense_id)
    try:
        assert expense.status == ExpenseStatus.FAILED.value
        assert "connection refused" in expense.error_message
        assert items == []
        assert "RECEIPT_PROCESSING_FAILED" in actions
        assert "DOCUMENT_AI_UNAVAILABLE" in actions
    finally:
        db.close()


@pytest.mark.asyncio
async def test_extraction_failure_persists_failed(session_factory):
    expense_id = _submit(session_factory, filename="scan.pdf")

    outcome = await process_receipt(
        session_factory,
        expense_id,
        b"%PDF",
        client=MockDocumentClient('{"document": {"text": "blurry"}}'),
    )

    assert isinstance(outcome, Failed)
    assert outcome.code == "MISSING_ENTITIES"
    db, expense, _items, _actions = _load(session_factory, expense_id)
    try:
        assert expense.status == ExpenseStatus.FAILED.value
        assert expense.error_message == "Document AI response has no entities"
    finally:
        db.close()


@pytest.mark.asyncio
async def test_persistence_error_still_marks_failed(session_factory, receipt_response_text, monkeypatch):
    expense_id = _submit(session_factory)

    def _broken_save(self, expense, payload):
        raise RuntimeError("disk full")

    monkeypatch.setattr(ExpenseRepository, "save_extraction", _broken_save)

    outcome = await process_receipt(
        session_factory,
        expense_id,
        b"jpeg-bytes",
        client=MockDocumentClient(receipt_response_text),
    )

    assert isinstance(outcome, Failed)
    db, expense, items, _actions = _load(session_factory, expense_id)
    try:
        assert expense.status == ExpenseStatus.FAILED.value
        assert "disk full" in expense.error_message
        assert items == []
    finally:
        db.close()


@pytest.mark.asyncio
async def test_processing_is_skipped_unless_processing(session_factory, receipt_response_text):
    expense_id = _submit(session_factory)
    client = MockDocumentClient(receipt_response_text)

    first = await process_receipt(session_factory, expense_id, b"jpeg-bytes", client=client)
    second = await process_receipt(session_factory, expense_id, b"jpeg-bytes", client=client)

    assert isinstance(first, Completed)
    assert second is None
    assert await process_receipt(session_factory, uuid.uuid4(), b"x", client=client) is None


@pytest.mark.asyncio
async def test_failure_alert_fires_at_threshold(session_factory, caplog):
    client = _UnreachableClient()
    with caplog.at_level("WARNING", logger="receipt_ai.utils.alerting"):
        for _ in range(5):
            expense_id = _submit(session_factory)
            await process_receipt(session_factory, expense_id, b"jpeg-bytes", client=client)

    assert any("ALERT audit_action=RECEIPT_PROCESSING_FAILED" in record.getMessage() for record in caplog.records)


@pytest.mark.asyncio
async def test_unavailable_alert_fires_after_three_client_failures(session_factory, caplog):
    client = _UnreachableClient()

    def _unavailable_alerts():
        return [
            record
            for record in caplog.records
            if "ALERT audit_action=DOCUMENT_AI_UNAVAILABLE" in record.getMessage()
        ]

    with caplog.at_level("WARNING", logger="receipt_ai.utils.alerting"):
        for _ in range(2):
            await process_receipt(session_factory, _submit(session_factory), b"jpeg-bytes", client=client)
        assert _unavailable_alerts() == []

        await process_receipt(session_factory, _submit(session_factory), b"jpeg-bytes", client=client)

    assert len(_unavailable_alerts()) == 1


@pytest.mark.asyncio
async def test_extraction_failure_is_not_counted_as_unavailable(session_factory):
    expense_id = _submit(session_factory, filename="scan.pdf")

    await process_receipt(session_factory, expense_id, b"%PDF", client=MockDocumentClient(""))

    db, _expense, _items, actions = _load(session_factory, expense_id)
    try:
        assert "RECEIPT_PROCESSING_FAILED" in actions
        assert "DOCUMENT_AI_UNAVAILABLE" not in actions
    finally:
        db.close()


def test_long_merchant_name_is_truncated_to_column_width(session_factory):
    expense_id = _submit(session_factory)
    payload = ExpensePayload(
        merchant_name="Supermarket " * 40,
        transaction_date=None,
        line_items=(LineItemDraft(description="Milk", unit_price=Decimal("1.20")),),
    )

    db = session_factory()
    try:
        repo = ExpenseRepository(db)
        expense = repo.get(expense_id)
        repo.save_extraction(expense, payload)
        db.commit()

        assert len(expense.merchant_name) == MERCHANT_NAME_MAX_LENGTH == 255
        assert expense.merchant_name.startswith("Supermarket Supermarket")
        assert [item.description for item in expense.line_items] == ["Milk"]
    finally:
        db.close()
