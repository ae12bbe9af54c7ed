"""Abstract base for Document AI clients."""

from __future__ import annotations

import abc
from dataclasses import dataclass


@dataclass(frozen=True)
class DocumentResult:
    """Immutable result returned by every client: the untouched response body."""

    raw_text: str
    client: str
    processor: str = ""
    latency_ms: float = 0.0


class BaseDocumentClient(abc.ABC):
    """Contract that every document-understanding client must implement."""

    name: str = "base"

    @abc.abstractmethod
    async def process(
        self,
        content: bytes,
        *,
        mime_type: str,
        timeout_seconds: float = 30.0,
    ) -> DocumentResult:
        """Send one receipt file and return the raw ``DocumentResult``."""
