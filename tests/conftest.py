"""
Pytest configuration and shared fixtures.
"""

import pytest
import sys
import uuid
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import Mock

# Add src to path for imports
PROJ_ROOT = Path(__file__).resolve().parent.parent
SRC_DIR = PROJ_ROOT / "src"
for path in (SRC_DIR, PROJ_ROOT):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))

from mailimport.models import DATA_HEADERS, METADATA_HEADERS, ImportJob
from mailimport.sheets.client import SheetsTableStore
from mailimport.sheets.metadata import MetadataLedger
from mailimport.storage.local_state import InMemoryPropertyStore
from mailimport.storage.lock import LocalRunLock
from tests.mocks.sheets_mock import MockWorksheet

WORK_ADDRESS = "me@work.example.com"


@pytest.fixture
def work_address():
    return WORK_ADDRESS


@pytest.fixture
def feb_2024(work_address):
    """Import job for February 2024 (a leap-year month)."""
    return ImportJob(month=2, year=2024, work_address=work_address)


@pytest.fixture
def store():
    return InMemoryPropertyStore()


@pytest.fixture
def run_lock():
    """A process-local run-lock no other test shares."""
    return LocalRunLock(f"lock:test:{uuid.uuid4().hex}")


@pytest.fixture
def data_ws():
    return MockWorksheet("Sent Emails", [DATA_HEADERS])


@pytest.fixture
def metadata_ws():
    return MockWorksheet("Import Metadata", [METADATA_HEADERS])


@pytest.fixture
def data_table(data_ws):
    return SheetsTableStore(data_ws)


@pytest.fixture
def metadata(metadata_ws):
    return MetadataLedger(SheetsTableStore(metadata_ws))


@pytest.fixture
def notifier():
    return Mock()


@pytest.fixture
def fixed_clock():
    return lambda: datetime(2024, 3, 1, 9, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def no_sleep(monkeypatch):
    """Make retry backoff instant."""
    monkeypatch.setattr("mailimport.utils.retry.time.sleep", lambda _: None)
