"""
Pytest configuration and shared fixtures.
"""

from datetime import datetime, timedelta, timezone
from typing import List

import pytest

from jobvault.logger import get_logger, reset_logger

# Modules grab the global logger at import time; make sure it never writes to logs/.
get_logger(enable_file=False, enable_console=False)

from jobvault.backup import BackupService  # noqa: E402
from jobvault.models import ApplicationRecord  # noqa: E402
from jobvault.storage import MemoryStore  # noqa: E402


@pytest.fixture(autouse=True)
def quiet_logger(tmp_path):
    """Fresh global logger per test, writing into the test's tmp dir."""
    reset_logger()
    logger = get_logger(log_dir=tmp_path / "logs", enable_console=False)
    yield logger
    reset_logger()


@pytest.fixture
def acme_record() -> ApplicationRecord:
    """Valid application with every commonly used field populated."""
    return ApplicationRecord(
        id="app_1",
        company="Acme Corp",
        position="Software Engineer",
        location="San Francisco, CA",
        job_type="Full-time",
        status="Applied",
        applied_date="2024-03-01",
        notes="Referred by Jane",
        contact_email="recruiter@acme.com",
        job_url="https://boards.greenhouse.io/acme/jobs/12345",
        tags=["backend", "python"],
        requirements=["Python", "SQL"],
    )


@pytest.fixture
def sample_records() -> List[ApplicationRecord]:
    """Three valid, unrelated applications."""
    return [
        ApplicationRecord(
            id="app_1",
            company="Acme Corp",
            position="Software Engineer",
            location="Remote",
            status="Applied",
            applied_date="2024-03-01",
            tags=["backend"],
        ),
        ApplicationRecord(
            id="app_2",
            company="Globex",
            position="Data Analyst",
            location="New York, NY",
            status="Interviewing",
            applied_date="2024-02-15",
            interview_date="2024-03-05",
        ),
        ApplicationRecord(
            id="app_3",
            company="Initech",
            position="Product Manager",
            location="Austin, TX",
            status="Rejected",
            applied_date="2024-01-20",
            response_date="2024-02-01",
            notes="Too senior",
        ),
    ]


class FakeClock:
    """Deterministic clock: each call advances by ``step``."""

    def __init__(self, start: datetime = None, step: timedelta = timedelta(minutes=1)):
        self.now = start or datetime(2024, 3, 10, 12, 0, tzinfo=timezone.utc)
        self.step = step

    def __call__(self) -> datetime:
        current = self.now
        self.now = self.now + self.step
        return current


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def memory_store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def service(memory_store, clock) -> BackupService:
    """Backup service over an in-memory store with a deterministic clock."""
    return BackupService(memory_store, clock=clock)
