"""Tests for the Google Calendar client and the two-calendar mirror."""

import json

import httpx
import pytest

from castboard.calendar_client import GoogleCalendarClient, load_service_account
from castboard.calendar_mirror import CalendarMirror, CalendarTargets
from castboard.exceptions import ExternalServiceError
from castboard.models import CastingRow, RoleType

from conftest import ALL_CALENDAR, MALE_CALENDAR


class StubCredentials:
    valid = True
    token = "t"


def make_client(handler):
    http = httpx.Client(transport=httpx.MockTransport(handler))
    return GoogleCalendarClient(StubCredentials(), http=http, base_url="https://calendar.test/v3")


def make_casting(**overrides):
    fields = dict(
        id=1,
        performance_date_id=10,
        actor_id=3,
        role_type=RoleType.MALE_LEAD,
        actor_name="박남배",
        date="2026-03-10",
        start_time="19:45",
    )
    fields.update(overrides)
    return CastingRow(**fields)


class TestGoogleCalendarClient:
    def test_insert_event_posts_body_and_returns_id(self):
        seen = {}

        def handler(request):
            seen["method"] = request.method
            seen["path"] = request.url.path
            seen["send_updates"] = request.url.params["sendUpdates"]
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"id": "abc123"})

        client = make_client(handler)

        event_id = client.insert_event("team@group.calendar.google.com", {"summary": "x"}, send_updates="all")

        assert event_id == "abc123"
        assert seen["method"] == "POST"
        assert seen["path"] == "/v3/calendars/team@group.calendar.google.com/events"
        assert seen["send_updates"] == "all"
        assert seen["auth"] == "Bearer t"
        assert seen["body"] == {"summary": "x"}

    def test_delete_of_missing_event_is_tolerated(self):
        client = make_client(lambda request: httpx.Response(410, json={"error": "gone"}))

        client.delete_event(MALE_CALENDAR, "evt1")

    def test_provider_error_raises(self):
        client = make_client(lambda request: httpx.Response(500, text="backend error"))

        with pytest.raises(ExternalServiceError) as exc_info:
            client.patch_event(MALE_CALENDAR, "evt1", {"description": ""})

        assert exc_info.value.status == 500

    def test_transport_error_raises(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        client = make_client(handler)

        with pytest.raises(ExternalServiceError):
            client.insert_calendar("공연 스케줄 - 박남배", "Asia/Seoul")

    def test_share_calendar_sends_acl_rule(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"id": "user:park@example.com"})

        make_client(handler).share_calendar("actor1@group.calendar.google.com", "park@example.com")

        assert seen["path"] == "/v3/calendars/actor1@group.calendar.google.com/acl"
        assert seen["body"] == {"role": "reader", "scope": {"type": "user", "value": "park@example.com"}}

    @pytest.mark.parametrize("email, key", [(None, "key"), ("svc@example.iam.gserviceaccount.com", None), ("", "")])
    def test_missing_service_account_disables_client(self, email, key):
        assert load_service_account(email, key) is None


class TestCalendarMirror:
    def test_publish_goes_to_role_calendar_and_all_actors(self, mirror, calendar_client):
        ids = mirror.publish_casting(make_casting(), description="상대역: 이여배")

        assert ids.synced is True
        assert (ids.calendar_event_id, ids.all_calendar_event_id) == ("evt1", "evt2")
        personal, shared = calendar_client.ops("insert_event")
        assert personal["calendar_id"] == MALE_CALENDAR
        assert personal["body"]["summary"] == "박남배"
        assert personal["body"]["end"]["dateTime"] == "2026-03-10T21:45:00"
        assert personal["body"]["description"] == "상대역: 이여배"
        assert personal["send_updates"] == "none"
        assert shared["calendar_id"] == ALL_CALENDAR
        assert shared["body"]["summary"] == "남1 박남배"

    def test_personal_calendar_and_attendee(self, mirror, calendar_client):
        casting = make_casting(actor_calendar_id="park@group.calendar.google.com", label="마티네")

        mirror.publish_casting(casting, attendee_email="park@example.com")

        personal = calendar_client.ops("insert_event")[0]
        assert personal["calendar_id"] == "park@group.calendar.google.com"
        assert personal["body"]["summary"] == "박남배 (마티네)"
        assert personal["body"]["attendees"] == [{"email": "park@example.com"}]
        assert personal["send_updates"] == "all"
        assert "description" not in personal["body"]

    def test_all_actors_failure_leaves_unsynced(self, mirror, calendar_client):
        calendar_client.fail_calendars.add(ALL_CALENDAR)

        ids = mirror.publish_casting(make_casting())

        assert ids.calendar_event_id == "evt1"
        assert ids.all_calendar_event_id is None
        assert ids.synced is False

    def test_missing_role_calendar(self, calendar_client):
        mirror = CalendarMirror(calendar_client, CalendarTargets(all_actors=ALL_CALENDAR))

        ids = mirror.publish_casting(make_casting())

        assert ids.synced is False
        assert calendar_client.calls == []

    def test_remove_uses_notify_flag(self, mirror, calendar_client):
        casting = make_casting(calendar_event_id="evt7", all_calendar_event_id="evt8")

        assert mirror.remove_casting(casting, notify=False) is True

        personal, shared = calendar_client.ops("delete_event")
        assert personal == {"calendar_id": MALE_CALENDAR, "event_id": "evt7", "send_updates": "none"}
        assert shared["calendar_id"] == ALL_CALENDAR

    def test_update_description_without_events_is_noop(self, mirror, calendar_client):
        assert mirror.update_description(make_casting(), "상대역: 이여배") is False
        assert calendar_client.calls == []

    def test_disabled_mirror(self, disabled_mirror):
        ids = disabled_mirror.publish_casting(make_casting())

        assert ids.synced is False
        assert ids.calendar_event_id is None
        assert disabled_mirror.remove_casting(make_casting(calendar_event_id="evt1")) is False
        assert disabled_mirror.remove_casting(make_casting()) is True
        assert disabled_mirror.create_actor_calendar("박남배") is None
        assert disabled_mirror.publish_unavailable("박남배", None, "2026-03-10").synced is False
