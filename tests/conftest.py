"""Pytest configuration and fixtures."""

import pytest
import sys
from pathlib import Path

# Add src to path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from voile.config import reset_settings
from voile.core.terms import Standard
from voile.storage.database import reset_db_manager


@pytest.fixture(autouse=True)
def clean_settings(monkeypatch):
    """Isolate every test from VOILE_* variables and cached singletons."""
    monkeypatch.delenv("VOILE_DOMAIN", raising=False)
    monkeypatch.delenv("VOILE_AUTHENTICATE_NOTES", raising=False)
    reset_settings()
    yield
    reset_settings()
    reset_db_manager()


@pytest.fixture
def temp_db(tmp_path):
    """Fixture providing a temporary database URL."""
    return f"sqlite:///{tmp_path / 'test.db'}"


@pytest.fixture(scope="session")
def test_data():
    """Fixture providing test data."""
    return {
        "amount": 1_000_000,
        "owner": bytes(32),
        "terms": Standard(),
        "blinding": b"\x01" * 32,
        "domain": b"voile_testnet",
    }
