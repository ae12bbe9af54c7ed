import unittest
import uuid
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from receipt_ai.core.auth import CurrentUser, get_current_user
from receipt_ai.core.dependencies import get_db
from receipt_ai.main import app
from receipt_ai.models.expense import AuditLog, Base, Expense, ExpenseLineItem


class ExpenseReviewApiTests(unittest.TestCase):
    def setUp(self):
        self.engine = create_engine(
            "sqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        Base.metadata.create_all(self.engine)
        self.SessionLocal = sessionmaker(bind=self.engine)

        def override_get_db():
            db = self.SessionLocal()
            try:
                yield db
            finally:
                db.close()

        self.current_user = CurrentUser(id=str(uuid.uuid4()), role="REVIEWER")

        def override_get_current_user():
            return self.current_user

        app.dependency_overrides[get_db] = override_get_db
        app.dependency_overrides[get_current_user] = override_get_current_user
        self.client = TestClient(app)

    def tearDown(self):
        self.client.close()
        app.dependency_overrides.clear()
        Base.metadata.drop_all(self.engine)
        self.engine.dispose()

    def _create_expense(self, *, status="PENDING", merchant="Test Merchant", created_at=None) -> str:
        db = self.SessionLocal()
        now = created_at or datetime.now(timezone.utc)
        expense = Expense(
            merchant_name=merchant,
            transaction_date=date(2024, 1, 15),
            currency="USD",
            status=status,
            receipt_filename="receipt.jpg",
            receipt_mime_type="image/jpeg",
            created_at=now,
            updated_at=now,
        )
        expense.line_items = [
            ExpenseLineItem(position=0, description="Test Item", quantity=Decimal("2"), unit_price=Decimal("100.50")),
            ExpenseLineItem(position=1, description="Total Tax", quantity=Decimal("1"), unit_price=Decimal("10.50")),
        ]
        db.add(expense)
        db.commit()
        expense_id = str(expense.id)
        db.close()
        return expense_id

    def _line_item_ids(self, expense_id: str) -> list[str]:
        resp = self.client.get(f"/api/v1/expenses/{expense_id}")
        return [item["id"] for item in resp.json()["line_items"]]

    def _audit_actions(self) -> list[str]:
        db = self.SessionLocal()
        try:
            return [row.action for row in db.query(AuditLog).all()]
        finally:
            db.close()

    def test_pending_list_only_contains_pending_newest_first(self):
        older = self._create_expense(merchant="Older", created_at=datetime.now(timezone.utc) - timedelta(days=1))
        newer = self._create_expense(merchant="Newer")
        self._create_expense(status="APPROVED")
        self._create_expense(status="FAILED")

        resp = self.client.get("/api/v1/expenses/pending")
        self.assertEqual(resp.status_code, 200)
        ids = [item["id"] for item in resp.json()["items"]]
        self.assertEqual(ids, [newer, older])

    def test_submitter_cannot_review(self):
        expense_id = self._create_expense()
        self.current_user = CurrentUser(id=str(uuid.uuid4()), role="SUBMITTER")

        self.assertEqual(self.client.get("/api/v1/expenses/pending").status_code, 403)
        self.assertEqual(self.client.post(f"/api/v1/expenses/{expense_id}/approve").status_code, 403)

    def test_detail_has_line_totals_and_total(self):
        expense_id = self._create_expense()

        resp = self.client.get(f"/api/v1/expenses/{expense_id}")
        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertEqual(body["merchant_name"], "Test Merchant")
        self.assertEqual(body["transaction_date"], "2024-01-15")
        self.assertEqual(
            [(i["description"], i["quantity"], i["unit_price"], i["line_total"]) for i in body["line_items"]],
            [("Test Item", 2.0, 100.5, 201.0), ("Total Tax", 1.0, 10.5, 10.5)],
        )
        self.assertEqual(body["total_amount"], 211.5)

    def test_unknown_expense_returns_404(self):
        self.assertEqual(self.client.get(f"/api/v1/expenses/{uuid.uuid4()}").status_code, 404)
        self.assertEqual(self.client.get("/api/v1/expenses/garbage").status_code, 404)

    def test_add_line_item_appends_at_end(self):
        expense_id = self._create_expense()

        resp = self.client.post(
            f"/api/v1/expenses/{expense_id}/line-items",
            json={"description": "Tip", "quantity": 1, "unit_price": 5},
        )
        self.assertEqual(resp.status_code, 201, resp.text)
        self.assertEqual(resp.json()["position"], 2)
        self.assertEqual(resp.json()["line_total"], 5.0)

        detail = self.client.get(f"/api/v1/expenses/{expense_id}").json()
        self.assertEqual([i["description"] for i in detail["line_items"]], ["Test Item", "Total Tax", "Tip"])
        self.assertEqual(detail["total_amount"], 216.5)
        self.assertIn("LINE_ITEM_CREATED", self._audit_actions())

    def test_add_line_item_blank_description_becomes_unknown_item(self):
        expense_id = self._create_expense()
        resp = self.client.post(f"/api/v1/expenses/{expense_id}/line-items", json={"unit_price": 1.25})
        self.assertEqual(resp.status_code, 201)
        self.assertEqual(resp.json()["description"], "Unknown Item")

    def test_update_line_item(self):
        expense_id = self._create_expense()
        item_id = self._line_item_ids(expense_id)[0]

        resp = self.client.patch(f"/api/v1/expenses/line-items/{item_id}", json={"quantity": 3})
        self.assertEqual(resp.status_code, 200, resp.text)
        self.assertEqual(resp.json()["quantity"], 3.0)
        self.assertEqual(resp.json()["line_total"], 301.5)
        self.assertIn("LINE_ITEM_UPDATED", self._audit_actions())

    def test_update_line_item_requires_a_field(self):
        expense_id = self._create_expense()
        item_id = self._line_item_ids(expense_id)[0]

        resp = self.client.patch(f"/api/v1/expenses/line-items/{item_id}", json={})
        self.assertEqual(resp.status_code, 422)

    def test_negative_quantity_rejected(self):
        expense_id = self._create_expense()
        item_id = self._line_item_ids(expense_id)[0]

        resp = self.client.patch(f"/api/v1/expenses/line-items/{item_id}", json={"quantity": -1})
        self.assertEqual(resp.status_code, 422)

    def test_delete_line_item(self):
        expense_id = self._create_expense()
        tax_id = self._line_item_ids(expense_id)[1]

        resp = self.client.delete(f"/api/v1/expenses/line-items/{tax_id}")
        self.assertEqual(resp.status_code, 204)

        detail = self.client.get(f"/api/v1/expenses/{expense_id}").json()
        self.assertEqual([i["description"] for i in detail["line_items"]], ["Test Item"])
        self.assertEqual(detail["total_amount"], 201.0)
        self.assertIn("LINE_ITEM_DELETED", self._audit_actions())

    def test_edits_rejected_outside_pending(self):
        expense_id = self._create_expense(status="APPROVED")
        item_id = self._line_item_ids(expense_id)[0]

        self.assertEqual(
            self.client.patch(f"/api/v1/expenses/line-items/{item_id}", json={"description": "x"}).status_code,
            409,
        )
        self.assertEqual(self.client.delete(f"/api/v1/expenses/line-items/{item_id}").status_code, 409)
        self.assertEqual(
            self.client.post(f"/api/v1/expenses/{expense_id}/line-items", json={"unit_price": 1}).status_code,
            409,
        )

    def test_approve(self):
        expense_id = self._create_expense()

        resp = self.client.post(f"/api/v1/expenses/{expense_id}/approve", json={"note": "ok"})
        self.assertEqual(resp.status_code, 200, resp.text)
        body = resp.json()
        self.assertEqual(body["status"], "APPROVED")
        self.assertEqual(body["reviewed_by"], self.current_user.id)
        self.assertEqual(body["review_note"], "ok")
        self.assertIsNotNone(body["reviewed_at"])
        self.assertIn("STATUS_CHANGE", self._audit_actions())

        again = self.client.post(f"/api/v1/expenses/{expense_id}/approve")
        self.assertEqual(again.status_code, 400)

    def test_approve_without_body(self):
        expense_id = self._create_expense()
        resp = self.client.post(f"/api/v1/expenses/{expense_id}/approve")
        self.assertEqual(resp.status_code, 200, resp.text)
        self.assertIsNone(resp.json()["review_note"])

    def test_reject_requires_reason(self):
        expense_id = self._create_expense()

        self.assertEqual(self.client.post(f"/api/v1/expenses/{expense_id}/reject", json={}).status_code, 422)

        resp = self.client.post(f"/api/v1/expenses/{expense_id}/reject", json={"reason": "Personal purchase"})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["status"], "REJECTED")
        self.assertEqual(resp.json()["review_note"], "Personal purchase")

    def test_failed_expense_cannot_be_approved(self):
        expense_id = self._create_expense(status="FAILED")
        resp = self.client.post(f"/api/v1/expenses/{expense_id}/approve")
        self.assertEqual(resp.status_code, 400)

    def test_admin_can_review(self):
        self.current_user = CurrentUser(id=str(uuid.uuid4()), role="ADMIN")
        expense_id = self._create_expense()
        resp = self.client.post(f"/api/v1/expenses/{expense_id}/reject", json={"reason": "Duplicate"})
        self.assertEqual(resp.status_code, 200)


if __name__ == "__main__":
    unittest.main()
