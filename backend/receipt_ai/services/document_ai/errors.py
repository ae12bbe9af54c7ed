"""Error taxonomy for receipt extraction.

Pipeline-level errors are converted into a ``Failed`` outcome by
``run_extraction``; field-level errors (``MalformedAmount``, ``InvalidDate``)
are absorbed where they occur and only degrade the affected field.
"""

from __future__ import annotations


class ReceiptExtractionError(Exception):
    """Base class for every receipt extraction failure."""

    code = "EXTRACTION_FAILED"
    default_message = "Receipt extraction failed"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)


class EmptyResponse(ReceiptExtractionError):
    code = "EMPTY_RESPONSE"
    default_message = "Document AI returned an empty response"


class MalformedResponse(ReceiptExtractionError):
    code = "MALFORMED_RESPONSE"
    default_message = "Document AI response is not valid JSON"


class MissingDocument(ReceiptExtractionError):
    code = "MISSING_DOCUMENT"
    default_message = "Document AI response has no document"


class MissingEntities(ReceiptExtractionError):
    code = "MISSING_ENTITIES"
    default_message = "Document AI response has no entities"


class NoDataExtracted(ReceiptExtractionError):
    code = "NO_DATA_EXTRACTED"
    default_message = "No expense data could be extracted from the receipt"


class MalformedAmount(ReceiptExtractionError):
    code = "MALFORMED_AMOUNT"
    default_message = "Money value is not numeric"


class InvalidDate(ReceiptExtractionError):
    code = "INVALID_DATE"
    default_message = "Date is not in month/day/year form"


class UnsupportedFileType(ReceiptExtractionError):
    code = "UNSUPPORTED_FILE_TYPE"
    default_message = "Unsupported receipt file type"
