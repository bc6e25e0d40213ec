"""Pytest configuration and fixtures."""

import itertools
import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

# Add project root to path
project_dir = Path(__file__).parent.parent
sys.path.insert(0, str(project_dir))

from ledgerly.routes import hosted  # noqa: E402
from ledgerly.services import advisor, database  # noqa: E402
from ledgerly.services.persistence import MemoryStore  # noqa: E402
from ledgerly.services.store import LedgerStore  # noqa: E402
from ledgerly.utils import config, s3  # noqa: E402

FIXED_NOW = datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path, monkeypatch):
    """Point SQLite at a temp file and drop cached clients between tests."""
    monkeypatch.setenv('LEDGERLY_DB_PATH', str(tmp_path / 'ledgerly.db'))
    monkeypatch.delenv('ANTHROPIC_API_KEY', raising=False)
    monkeypatch.delenv('DATA_BUCKET', raising=False)
    monkeypatch.delenv('LEDGERLY_KEY_PREFIX', raising=False)
    config.reset_config()
    advisor.reset_client()
    s3.reset_s3_client()
    hosted.reset_store()

    yield

    database.close_db()
    config.reset_config()
    advisor.reset_client()
    s3.reset_s3_client()
    hosted.reset_store()


@pytest.fixture
def clock():
    return lambda: FIXED_NOW


@pytest.fixture
def id_generator():
    return itertools.count(1).__next__


@pytest.fixture
def memory():
    return MemoryStore()


@pytest.fixture
def store(memory, clock, id_generator):
    """Empty ledger whose active month is 2024-03."""
    return LedgerStore(memory, clock=clock, id_generator=id_generator)


@pytest.fixture
def populated_store(store):
    """Ledger with sample data in 2024-03."""
    store.load_sample_data()
    return store


@pytest.fixture
def ai_key(monkeypatch):
    """Configure an API key so the advisor builds a client."""
    monkeypatch.setenv('ANTHROPIC_API_KEY', 'test-key')
    config.reset_config()
    return 'test-key'
