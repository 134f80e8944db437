"""
Pytest configuration and fixtures for castboard tests.

Provides shared fixtures for:
- A temporary SQLite database per test
- A recording fake calendar client and the mirror built on it
- Actor / slot factories
- FastAPI TestClient with the mirror dependency overridden
"""

import pytest
from fastapi.testclient import TestClient

from castboard import queries
from castboard.calendar_mirror import CalendarMirror, CalendarTargets
from castboard.config import Config
from castboard.db import get_runner, init_db
from castboard.exceptions import ExternalServiceError
from castboard.models import RoleType
from castboard.schedule import ensure_and_get_month_performances


MALE_CALENDAR = "male-lead@group.calendar.google.com"
FEMALE_CALENDAR = "female-lead@group.calendar.google.com"
ALL_CALENDAR = "all-actors@group.calendar.google.com"

RESERVATION_KEY = "test-reservation-key"
CRON_SECRET = "test-cron-secret"


# ============================================================================
# Calendar Fakes
# ============================================================================

class FakeCalendarClient:
    """Stands in for GoogleCalendarClient and records every call.

    Operations named in ``fail_on`` and calendars listed in
    ``fail_calendars`` raise ExternalServiceError like a provider outage.
    """

    def __init__(self):
        self.calls = []
        self.fail_on = set()
        self.fail_calendars = set()
        self._events = 0
        self._calendars = 0

    def _record(self, op, calendar_id=None, **kwargs):
        self.calls.append((op, {"calendar_id": calendar_id, **kwargs}))
        if op in self.fail_on or calendar_id in self.fail_calendars:
            raise ExternalServiceError("google-calendar", f"{op} failed", status=500)

    def ops(self, op):
        return [kwargs for name, kwargs in self.calls if name == op]

    def reset(self):
        self.calls.clear()

    def insert_event(self, calendar_id, body, send_updates="none"):
        self._record("insert_event", calendar_id, body=body, send_updates=send_updates)
        self._events += 1
        return f"evt{self._events}"

    def patch_event(self, calendar_id, event_id, body):
        self._record("patch_event", calendar_id, event_id=event_id, body=body)

    def delete_event(self, calendar_id, event_id, send_updates="none"):
        self._record("delete_event", calendar_id, event_id=event_id, send_updates=send_updates)

    def insert_calendar(self, summary, time_zone):
        self._record("insert_calendar", None, summary=summary, time_zone=time_zone)
        self._calendars += 1
        return f"actor{self._calendars}@group.calendar.google.com"

    def share_calendar(self, calendar_id, email, role="reader"):
        self._record("share_calendar", calendar_id, email=email, role=role)

    def close(self):
        pass


@pytest.fixture
def calendar_client():
    return FakeCalendarClient()


@pytest.fixture
def calendar_targets():
    return CalendarTargets(
        male_lead=MALE_CALENDAR,
        female_lead=FEMALE_CALENDAR,
        all_actors=ALL_CALENDAR,
        time_zone="Asia/Seoul",
        show_minutes=120,
    )


@pytest.fixture
def mirror(calendar_client, calendar_targets):
    return CalendarMirror(calendar_client, calendar_targets)


@pytest.fixture
def disabled_mirror(calendar_targets):
    """Mirror with no service account configured."""
    return CalendarMirror(None, calendar_targets)


# ============================================================================
# Database Fixtures
# ============================================================================

@pytest.fixture(autouse=True)
def test_db_path(tmp_path, monkeypatch):
    """Point the app at a fresh SQLite file for every test."""
    db_path = tmp_path / "castboard.db"
    monkeypatch.setattr(Config, "DB_PATH", str(db_path))
    init_db()
    return db_path


@pytest.fixture
def runner(test_db_path):
    runner = get_runner()
    try:
        yield runner
    finally:
        runner.connection.close()


@pytest.fixture
def march_slots(runner):
    """All generated slots of March 2026, keyed by (date, start_time)."""
    performances = ensure_and_get_month_performances(runner, 2026, 3)
    return {(p.date, p.start_time): p.id for p in performances}


# ============================================================================
# Sample Data Factories
# ============================================================================

@pytest.fixture
def make_actor(runner):
    """Factory creating an actor, optionally with a linked ACTOR user."""
    counter = {"n": 0}

    def _create(name, role_type=RoleType.MALE_LEAD, calendar_id=None, email=None, pin="0000"):
        actor_id = queries.create_actor(runner, name, role_type.value, calendar_id)
        counter["n"] += 1
        queries.create_user(
            runner,
            username=f"actor{counter['n']}",
            display_name=name,
            role="ACTOR",
            pin=pin,
            email=email,
            actor_id=actor_id,
        )
        return actor_id

    return _create


@pytest.fixture
def admin_user(runner):
    return queries.create_user(runner, username="admin", display_name="관리자", role="ADMIN", pin="1234")


# ============================================================================
# API Fixtures
# ============================================================================

@pytest.fixture
def client(test_db_path, mirror, monkeypatch):
    """TestClient with the calendar mirror swapped for the recording fake."""
    from castboard.app import app, get_mirror

    monkeypatch.setattr(Config, "RESERVATION_API_KEY", RESERVATION_KEY)
    monkeypatch.setattr(Config, "CRON_SECRET", CRON_SECRET)
    app.dependency_overrides[get_mirror] = lambda: mirror

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


def login(client, username, pin):
    return client.post(
        "/login",
        data={"username": username, "pin": pin},
        follow_redirects=False,
    )


@pytest.fixture
def admin_client(client, admin_user):
    response = login(client, "admin", "1234")
    assert response.status_code == 303
    return client
