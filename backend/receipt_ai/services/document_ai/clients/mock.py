"""Mock client with a deterministic expense-parser response for tests and fallback."""

from __future__ import annotations

import json
import time

from .base import BaseDocumentClient, DocumentResult

MOCK_RESPONSE = {
    "document": {
        "mimeType": "image/jpeg",
        "entities": [
            {"type": "supplier_name", "mentionText": "Mock Merchant"},
            {
                "type": "receipt_date",
                "mentionText": "01/15/2024",
                "normalizedValue": {"dateValue": {"year": 2024, "month": 1, "day": 15}},
            },
            {
                "type": "line_item",
                "mentionText": "Mock Item",
                "properties": [
                    {"type": "line_item/description", "mentionText": "Mock Item"},
                    {"type": "line_item/quantity", "mentionText": "1"},
                    {
                        "type": "line_item/amount",
                        "normalizedValue": {"moneyValue": {"currencyCode": "USD", "units": "10"}},
                    },
                ],
            },
            {
                "type": "total_amount",
                "normalizedValue": {"moneyValue": {"currencyCode": "USD", "units": "10"}},
            },
        ],
    }
}


class MockDocumentClient(BaseDocumentClient):
    name = "mock"

    def __init__(self, response_text: str | None = None) -> None:
        self._response_text = response_text if response_text is not None else json.dumps(MOCK_RESPONSE)

    async def process(
        self,
        content: bytes,
        *,
        mime_type: str,
        timeout_seconds: float = 30.0,
    ) -> DocumentResult:
        t0 = time.monotonic()
        elapsed = (time.monotonic() - t0) * 1000
        return DocumentResult(
            raw_text=self._response_text,
            client=self.name,
            processor="mock-expense-v1",
            latency_ms=round(elapsed, 2),
        )
