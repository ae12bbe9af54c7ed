"""Google Document AI client (expense parser ``:process`` endpoint)."""

from __future__ import annotations

import base64
import logging
import time

import httpx

from .base import BaseDocumentClient, DocumentResult

logger = logging.getLogger(__name__)


class GoogleDocumentAIClient(BaseDocumentClient):
    name = "google"

    def __init__(
        self,
        *,
        project_id: str,
        location: str,
        processor_id: str,
        access_token: str,
        endpoint: str = "",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._project_id = project_id
        self._location = location
        self._processor_id = processor_id
        self._access_token = access_token
        self._endpoint = (endpoint or f"https://{location}-documentai.googleapis.com").rstrip("/")
        self._transport = transport

    @property
    def processor_name(self) -> str:
        return f"projects/{self._project_id}/locations/{self._location}/processors/{self._processor_id}"

    @property
    def process_url(self) -> str:
        return f"{self._endpoint}/v1/{self.processor_name}:process"

    async def process(
        self,
        content: bytes,
        *,
        mime_type: str,
        timeout_seconds: float = 30.0,
    ) -> DocumentResult:
        t0 = time.monotonic()
        body = {
            "rawDocument": {
                "content": base64.b64encode(content).decode("ascii"),
                "mimeType": mime_type,
            },
            "skipHumanReview": True,
        }

        async with httpx.AsyncClient(timeout=timeout_seconds, transport=self._transport) as client:
            resp = await client.post(
                self.process_url,
                headers={
                    "Authorization": f"Bearer {self._access_token}",
                    "Content-Type": "application/json; charset=utf-8",
                },
                json=body,
            )
            resp.raise_for_status()
            text = resp.text

        elapsed = (time.monotonic() - t0) * 1000
        logger.info(
            "Document AI processed %s bytes (%s) in %.0f ms",
            len(content),
            mime_type,
            elapsed,
        )
        return DocumentResult(
            raw_text=text,
            client=self.name,
            processor=self._processor_id,
            latency_ms=round(elapsed, 2),
        )
