"""Receipt extraction from Document AI expense-parser responses."""

from .amount_codec import decode as decode_amount
from .amount_codec import decode_absolute
from .date_codec import decode as decode_date
from .errors import (
    EmptyResponse,
    InvalidDate,
    MalformedAmount,
    MalformedResponse,
    MissingDocument,
    MissingEntities,
    NoDataExtracted,
    ReceiptExtractionError,
    UnsupportedFileType,
)
from .line_items import LineItemDraft
from .pipeline import Completed, ExpensePayload, Failed, ProcessingOutcome, run_extraction

__all__ = [
    "Completed",
    "EmptyResponse",
    "ExpensePayload",
    "Failed",
    "InvalidDate",
    "LineItemDraft",
    "MalformedAmount",
    "MalformedResponse",
    "MissingDocument",
    "MissingEntities",
    "NoDataExtracted",
    "ProcessingOutcome",
    "ReceiptExtractionError",
    "UnsupportedFileType",
    "decode_absolute",
    "decode_amount",
    "decode_date",
    "run_extraction",
]
