"""Shared test fixtures and configuration.

Sets up fake environment variables so rangetrack.config doesn't sys.exit(),
and provides temp-file databases and record builders.
"""

import os

# Patch env vars BEFORE any rangetrack imports
os.environ.setdefault("TELEGRAM_BOT_TOKEN", "fake-token-for-tests")
os.environ.setdefault("LLM_API_KEY", "fake-llm-key-for-tests")
os.environ.setdefault("LLM_PROVIDER", "openrouter")
os.environ.setdefault("ALLOWED_USER_IDS", "12345")
os.environ.setdefault("DATABASE_PATH", ":memory:")
os.environ.setdefault("TIMEZONE", "UTC")

from datetime import datetime

import pytest


def ms(year, month, day, hour=12, minute=0):
    """Epoch ms for a naive local datetime."""
    return int(datetime(year, month, day, hour, minute).timestamp() * 1000)


# A fixed "now" for deterministic metrics: noon, 15 June 2025 (local time)
NOW_MS = ms(2025, 6, 15, 12)


@pytest.fixture
def now_ms():
    return NOW_MS


@pytest.fixture
def tmp_db_path(tmp_path):
    """Return a temporary SQLite DB path."""
    return str(tmp_path / "test_rangetrack.db")


@pytest.fixture
def user_db(tmp_db_path):
    from rangetrack.data.db import UserDB
    return UserDB(db_path=tmp_db_path)


@pytest.fixture
def resource_db(tmp_db_path):
    from rangetrack.data.db import ResourceDB
    return ResourceDB(db_path=tmp_db_path)


@pytest.fixture
def task_db(tmp_db_path):
    from rangetrack.data.db import TaskDB
    return TaskDB(db_path=tmp_db_path)


@pytest.fixture
def award_db(tmp_db_path):
    from rangetrack.data.db import AwardDB
    return AwardDB(db_path=tmp_db_path)


@pytest.fixture
def team_db(tmp_db_path):
    from rangetrack.data.db import TeamDB
    return TeamDB(db_path=tmp_db_path)


@pytest.fixture
def storage(tmp_db_path):
    from rangetrack.data.storage import LocalStorage
    return LocalStorage(db_path=tmp_db_path)


@pytest.fixture
def service(user_db, resource_db, task_db, award_db, team_db):
    """A FarmService over one temp database, with user 12345 registered."""
    from rangetrack.core.farm_service import FarmService

    svc = FarmService(user_db, resource_db, task_db, award_db, team_db)
    svc.register(12345, "Hank")
    return svc
