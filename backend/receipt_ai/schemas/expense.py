from datetime import date, datetime
from enum import StrEnum
from typing import Optional

from pydantic import BaseModel, Field, model_validator


class ExpenseStatus(StrEnum):
    DRAFT = "DRAFT"
    PROCESSING = "PROCESSING"
    PENDING = "PENDING"
    FAILED = "FAILED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


# --- Receipt submission ---


class ReceiptSubmissionOut(BaseModel):
    id: str
    status: ExpenseStatus
    receipt_filename: Optional[str] = None
    receipt_mime_type: Optional[str] = None
    error_message: Optional[str] = None
    created_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None


# --- Expenses ---


class LineItemOut(BaseModel):
    id: str
    position: int
    description: str
    quantity: float
    unit_price: float
    line_total: float


class ExpenseOut(BaseModel):
    id: str
    merchant_name: Optional[str] = None
    transaction_date: Optional[date] = None
    status: ExpenseStatus
    error_message: Optional[str] = None
    currency: Optional[str] = None
    receipt_filename: Optional[str] = None
    submitted_by: Optional[str] = None
    reviewed_by: Optional[str] = None
    review_note: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None
    reviewed_at: Optional[datetime] = None


class ExpenseDetailOut(ExpenseOut):
    line_items: list[LineItemOut]
    total_amount: float


class ExpenseListResponse(BaseModel):
    items: list[ExpenseOut]


# --- Review ---


class LineItemCreate(BaseModel):
    description: str = Field(default="", max_length=512)
    quantity: float = Field(default=1, ge=0)
    unit_price: float


class LineItemUpdate(BaseModel):
    description: Optional[str] = Field(default=None, max_length=512)
    quantity: Optional[float] = Field(default=None, ge=0)
    unit_price: Optional[float] = None

    @model_validator(mode="after")
    def ensure_any_field(self):
        if self.description is None and self.quantity is None and self.unit_price is None:
            raise ValueError("At least one of description, quantity or unit_price is required")
        return self


class ApproveRequest(BaseModel):
    note: Optional[str] = Field(default=None, max_length=1000)


class RejectRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=1000)
