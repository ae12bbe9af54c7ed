"""Client factory: returns the configured Document AI client, falling back to the mock."""

from __future__ import annotations

import logging

from receipt_ai.core.config import get_settings

from .base import BaseDocumentClient, DocumentResult
from .mock import MockDocumentClient

logger = logging.getLogger(__name__)

__all__ = [
    "get_document_client",
    "BaseDocumentClient",
    "DocumentClientConfigError",
    "DocumentResult",
    "MockDocumentClient",
]


class DocumentClientConfigError(RuntimeError):
    """The configured client cannot be built and the mock is not allowed."""


def _fallback_to_mock(reason: str, *, production: bool) -> BaseDocumentClient:
    if production:
        raise DocumentClientConfigError(f"{reason}; refusing the mock client in production")
    logger.warning("%s – falling back to mock", reason)
    return MockDocumentClient()


def get_document_client(client_name: str | None = None) -> BaseDocumentClient:
    """Return a client instance for *client_name* (default: ``DOCUMENT_AI_CLIENT``).

    Unknown names and a google client without processor coordinates or an
    access token fall back to ``MockDocumentClient`` with a warning. In
    production the mock is never returned; ``DocumentClientConfigError`` is
    raised instead.
    """
    settings = get_settings()
    production = settings.is_production
    name = (client_name or settings.document_ai_client or "mock").lower().strip()

    if name == "mock":
        if production:
            raise DocumentClientConfigError("DOCUMENT_AI_CLIENT=mock is not allowed in production")
        return MockDocumentClient()

    if name == "google":
        missing = [
            env
            for env, value in (
                ("DOCUMENT_AI_PROJECT_ID", settings.document_ai_project_id),
                ("DOCUMENT_AI_PROCESSOR_ID", settings.document_ai_processor_id),
                ("DOCUMENT_AI_ACCESS_TOKEN", settings.document_ai_access_token),
            )
            if not value
        ]
        if missing:
            return _fallback_to_mock(f"{', '.join(missing)} not set", production=production)
        from .google import GoogleDocumentAIClient

        return GoogleDocumentAIClient(
            project_id=settings.document_ai_project_id,
            location=settings.document_ai_location,
            processor_id=settings.document_ai_processor_id,
            access_token=settings.document_ai_access_token,
            endpoint=settings.document_ai_endpoint,
        )

    return _fallback_to_mock(f"Unknown Document AI client {name!r}", production=production)
