from pathlib import Path

import pytest

from receipt_ai.core.config import get_settings
from receipt_ai.utils.alerting import alert_tracker

FIXTURES_DIR = Path(__file__).resolve().parent / "fixtures"


@pytest.fixture(autouse=True)
def _reset_settings_cache():
    # Some tests mutate env vars and clear the settings cache. Ensure we don't leak
    # a cached Settings instance (e.g. with a different JWT secret) across tests.
    get_settings.cache_clear()
    alert_tracker.reset()
    yield
    get_settings.cache_clear()
    alert_tracker.reset()


def load_fixture_text(name: str) -> str:
    return (FIXTURES_DIR / name).read_text(encoding="utf-8")


@pytest.fixture
def receipt_response_text() -> str:
    """Expense-parser response: Test Merchant, 2024-01-15, 2 x Test Item @ 100.50, tax 10.50."""
    return load_fixture_text("receipt_response.json")
