import pytest
from datetime import datetime
from unittest.mock import MagicMock
from fastapi.testclient import TestClient

from backend.api.database import MemoryStore
from backend.api.main import app, get_store, get_notifier, get_now
from backend.api.schemas import Medicine, Profile, Schedule

NOW = datetime(2024, 1, 15, 12, 0)

@pytest.fixture
def now():
    return NOW

@pytest.fixture
def store():
    return MemoryStore()

@pytest.fixture
def notifier():
    return MagicMock()

@pytest.fixture
def profile():
    return Profile(id="profile-1", name="Alex", wake_time="07:00", sleep_time="22:00")

@pytest.fixture
def make_medicine():
    """Factory for medicines with sensible defaults"""
    def _make(**overrides):
        fields = {
            "id": "medicine-1",
            "profile_id": "profile-1",
            "name": "Amoxicillin",
            "dose": "500 mg",
            "course_days": 1,
            "instructions": "after_food",
            "frequency_type": "times_a_day",
            "frequency_value": 3,
            "start_date": datetime(2024, 1, 15, 9, 30),
        }
        fields.update(overrides)
        return Medicine(**fields)
    return _make

@pytest.fixture
def make_schedule():
    """Factory for stored schedules"""
    counter = {"n": 0}

    def _make(scheduled_time, status="pending", **overrides):
        counter["n"] += 1
        fields = {
            "id": f"schedule-{counter['n']}",
            "medicine_id": "medicine-1",
            "profile_id": "profile-1",
            "scheduled_time": scheduled_time,
            "status": status,
            "actual_taken_time": scheduled_time if status == "taken" else None,
        }
        fields.update(overrides)
        return Schedule(**fields)
    return _make

@pytest.fixture
def client(store, notifier):
    """API client wired to an in-memory store and a fixed clock"""
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_now] = lambda: NOW
    yield TestClient(app)
    app.dependency_overrides.clear()
