import os
from datetime import datetime, timezone
from zoneinfo import ZoneInfo

import pytest
from fastapi.testclient import TestClient

# Memory backend and fixed zones for every test; set before the app is imported
os.environ["PERSISTENCE_BACKEND"] = "memory"
os.environ["TASK_TIME_ZONE"] = "UTC"
os.environ["APP_TIME_ZONE"] = "Australia/Brisbane"

from tracker_api.main import app  # noqa: E402
from tracker_api.repositories import get_repository  # noqa: E402

DAY = 24 * 60 * 60 * 1000


def ms(year, month, day, hour=0, minute=0, second=0, tz="UTC"):
    """Epoch milliseconds of a civil time in the given zone."""
    zone = timezone.utc if tz == "UTC" else ZoneInfo(tz)
    return int(datetime(year, month, day, hour, minute, second, tzinfo=zone).timestamp()) * 1000


@pytest.fixture
def client():
    # Fresh in-memory store per test
    get_repository.cache_clear()
    with TestClient(app) as c:
        yield c
    get_repository.cache_clear()
