"""Tests for the casting assignment service."""

import pytest

from castboard import queries
from castboard.casting import assign, assign_batch, notify_castings
from castboard.exceptions import NotFoundError, ValidationError
from castboard.models import CastingChange, ReservationMemo, RoleType

from conftest import ALL_CALENDAR, FEMALE_CALENDAR, MALE_CALENDAR


TODAY = "2026-03-01"


@pytest.fixture
def slot(march_slots):
    return march_slots[("2026-03-10", "15:15")]


class TestAssign:
    """Single casting assignment."""

    def test_creates_casting_and_both_events(self, runner, mirror, calendar_client, slot, make_actor):
        actor_id = make_actor("박남배")

        result = assign(runner, mirror, slot, actor_id, RoleType.MALE_LEAD, today=TODAY)

        assert result.action == "assigned"
        assert result.synced is True
        assert result.casting.calendar_event_id == "evt1"
        assert result.casting.all_calendar_event_id == "evt2"

        personal, aggregate = calendar_client.ops("insert_event")
        assert personal["calendar_id"] == MALE_CALENDAR
        assert personal["body"]["summary"] == "박남배"
        assert personal["body"]["start"] == {"dateTime": "2026-03-10T15:15:00", "timeZone": "Asia/Seoul"}
        assert personal["body"]["end"] == {"dateTime": "2026-03-10T17:15:00", "timeZone": "Asia/Seoul"}
        assert personal["body"]["colorId"] == "9"
        assert personal["send_updates"] == "none"
        assert aggregate["calendar_id"] == ALL_CALENDAR
        assert aggregate["body"]["summary"] == "남1 박남배"

    def test_personal_calendar_and_invitation(self, runner, mirror, calendar_client, slot, make_actor):
        actor_id = make_actor(
            "이여배",
            RoleType.FEMALE_LEAD,
            calendar_id="lee@group.calendar.google.com",
            email="lee@example.com",
        )

        assign(runner, mirror, slot, actor_id, RoleType.FEMALE_LEAD, today=TODAY)

        personal, aggregate = calendar_client.ops("insert_event")
        assert personal["calendar_id"] == "lee@group.calendar.google.com"
        assert personal["body"]["attendees"] == [{"email": "lee@example.com"}]
        assert personal["body"]["colorId"] == "6"
        assert personal["send_updates"] == "all"
        assert "attendees" not in aggregate["body"]
        assert aggregate["send_updates"] == "none"

    def test_role_mismatch_never_writes(self, runner, mirror, calendar_client, slot, make_actor):
        actor_id = make_actor("이여배", RoleType.FEMALE_LEAD)

        with pytest.raises(ValidationError):
            assign(runner, mirror, slot, actor_id, RoleType.MALE_LEAD, today=TODAY)

        assert queries.get_casting(runner, slot, RoleType.MALE_LEAD) is None
        assert calendar_client.calls == []

    def test_missing_actor_is_not_found(self, runner, mirror, slot):
        with pytest.raises(NotFoundError) as exc_info:
            assign(runner, mirror, slot, 999, RoleType.MALE_LEAD, today=TODAY)

        assert exc_info.value.status_code == 404
        assert isinstance(exc_info.value, ValidationError)

    def test_missing_slot_is_not_found(self, runner, mirror, make_actor):
        actor_id = make_actor("박남배")

        with pytest.raises(NotFoundError):
            assign(runner, mirror, 99999, actor_id, RoleType.MALE_LEAD, today=TODAY)

    def test_unavailable_actor_is_rejected(self, runner, mirror, slot, make_actor):
        actor_id = make_actor("박남배")
        queries.create_unavailable(runner, actor_id, slot)

        with pytest.raises(ValidationError):
            assign(runner, mirror, slot, actor_id, RoleType.MALE_LEAD, today=TODAY)

        assert queries.get_casting(runner, slot, RoleType.MALE_LEAD) is None

    def test_second_actor_replaces_first(self, runner, mirror, calendar_client, slot, make_actor):
        first = make_actor("박남배")
        second = make_actor("최남배")
        assign(runner, mirror, slot, first, RoleType.MALE_LEAD, today=TODAY)

        result = assign(runner, mirror, slot, second, RoleType.MALE_LEAD, today=TODAY)

        casting = queries.get_casting(runner, slot, RoleType.MALE_LEAD)
        assert casting.actor_id == second
        assert casting.id == result.casting.id
        assert queries.get_actor_casting(runner, first, slot) is None

        deletes = calendar_client.ops("delete_event")
        assert [(d["calendar_id"], d["event_id"]) for d in deletes] == [
            (MALE_CALENDAR, "evt1"),
            (ALL_CALENDAR, "evt2"),
        ]
        assert deletes[0]["send_updates"] == "all"
        assert deletes[1]["send_updates"] == "none"
        assert casting.calendar_event_id == "evt3"

    def test_same_synced_actor_is_unchanged(self, runner, mirror, calendar_client, slot, make_actor):
        actor_id = make_actor("박남배")
        assign(runner, mirror, slot, actor_id, RoleType.MALE_LEAD, today=TODAY)
        calendar_client.reset()

        result = assign(runner, mirror, slot, actor_id, RoleType.MALE_LEAD, today=TODAY)

        assert result.action == "unchanged"
        assert calendar_client.calls == []

    def test_unassign_deletes_casting_and_events(self, runner, mirror, calendar_client, slot, make_actor):
        actor_id = make_actor("박남배")
        assign(runner, mirror, slot, actor_id, RoleType.MALE_LEAD, today=TODAY)

        result = assign(runner, mirror, slot, None, RoleType.MALE_LEAD, today=TODAY)

        assert result.action == "removed"
        assert queries.get_casting(runner, slot, RoleType.MALE_LEAD) is None
        assert len(calendar_client.ops("delete_event")) == 2

    def test_unassign_empty_slot_is_noop(self, runner, mirror, calendar_client, slot):
        result = assign(runner, mirror, slot, None, RoleType.FEMALE_LEAD, today=TODAY)

        assert result.action == "removed"
        assert calendar_client.calls == []

    def test_female_lead_refreshes_male_description(self, runner, mirror, calendar_client, slot, make_actor):
        male = make_actor("박남배")
        female = make_actor("이여배", RoleType.FEMALE_LEAD)
        assign(runner, mirror, slot, male, RoleType.MALE_LEAD, today=TODAY)

        assign(runner, mirror, slot, female, RoleType.FEMALE_LEAD, today=TODAY)

        patches = calendar_client.ops("patch_event")
        assert [(p["calendar_id"], p["event_id"]) for p in patches] == [
            (MALE_CALENDAR, "evt1"),
            (ALL_CALENDAR, "evt2"),
        ]
        assert patches[0]["body"] == {"description": "상대역: 이여배"}

    def test_male_lead_does_not_touch_female_event(self, runner, mirror, calendar_client, slot, make_actor):
        male = make_actor("박남배")
        female = make_actor("이여배", RoleType.FEMALE_LEAD)
        assign(runner, mirror, slot, female, RoleType.FEMALE_LEAD, today=TODAY)
        calendar_client.reset()

        assign(runner, mirror, slot, male, RoleType.MALE_LEAD, today=TODAY)

        assert calendar_client.ops("patch_event") == []
        personal = calendar_client.ops("insert_event")[0]
        assert personal["calendar_id"] == MALE_CALENDAR
        assert personal["body"]["description"] == "상대역: 이여배"

    def test_calendar_failure_leaves_casting_unsynced(self, runner, mirror, calendar_client, slot, make_actor):
        actor_id = make_actor("박남배")
        calendar_client.fail_on.add("insert_event")

        result = assign(runner, mirror, slot, actor_id, RoleType.MALE_LEAD, today=TODAY)

        casting = queries.get_casting(runner, slot, RoleType.MALE_LEAD)
        assert result.synced is False
        assert casting is not None
        assert casting.synced is False
        assert casting.calendar_event_id is None

    def test_aggregate_failure_leaves_casting_unsynced(self, runner, mirror, calendar_client, slot, make_actor):
        actor_id = make_actor("박남배")
        calendar_client.fail_calendars.add(ALL_CALENDAR)

        assign(runner, mirror, slot, actor_id, RoleType.MALE_LEAD, today=TODAY)

        casting = queries.get_casting(runner, slot, RoleType.MALE_LEAD)
        assert casting.synced is False
        assert casting.calendar_event_id == "evt1"
        assert casting.all_calendar_event_id is None

    def test_disabled_calendar_still_assigns(self, runner, disabled_mirror, slot, make_actor):
        actor_id = make_actor("박남배")

        result = assign(runner, disabled_mirror, slot, actor_id, RoleType.MALE_LEAD, today=TODAY)

        assert result.action == "assigned"
        assert result.synced is False
        assert queries.get_casting(runner, slot, RoleType.MALE_LEAD).actor_id == actor_id


class TestAssignBatch:
    """Batch assignment with per-change results."""

    def test_reports_each_change(self, runner, mirror, march_slots, make_actor):
        male = make_actor("박남배")
        female = make_actor("이여배", RoleType.FEMALE_LEAD)
        first = march_slots[("2026-03-10", "10:45")]
        second = march_slots[("2026-03-10", "13:00")]
        changes = [
            CastingChange(performance_date_id=first, actor_id=male, role_type=RoleType.MALE_LEAD),
            CastingChange(performance_date_id=second, actor_id=female, role_type=RoleType.MALE_LEAD),
            CastingChange(performance_date_id=99999, actor_id=male, role_type=RoleType.MALE_LEAD),
        ]

        result = assign_batch(runner, mirror, changes, today=TODAY)

        assert result.success_count == 1
        assert result.fail_count == 2
        assert [r.key for r in result.results] == [
            f"{first}_MALE_LEAD",
            f"{second}_MALE_LEAD",
            "99999_MALE_LEAD",
        ]
        assert result.results[0].synced is True
        assert "not found" in result.results[2].error
        assert queries.get_casting(runner, first, RoleType.MALE_LEAD).actor_id == male
        assert queries.get_casting(runner, second, RoleType.MALE_LEAD) is None

    def test_calendar_failure_does_not_fail_change(self, runner, mirror, calendar_client, march_slots, make_actor):
        male = make_actor("박남배")
        slot_id = march_slots[("2026-03-11", "19:45")]
        calendar_client.fail_on.add("insert_event")

        result = assign_batch(
            runner,
            mirror,
            [CastingChange(performance_date_id=slot_id, actor_id=male, role_type=RoleType.MALE_LEAD)],
            today=TODAY,
        )

        assert result.success_count == 1
        assert result.results[0].synced is False
        assert queries.get_casting(runner, slot_id, RoleType.MALE_LEAD) is not None

    def test_unassign_and_memo_in_one_batch(self, runner, mirror, calendar_client, march_slots, make_actor):
        male = make_actor("박남배")
        female = make_actor("이여배", RoleType.FEMALE_LEAD)
        slot_id = march_slots[("2026-03-12", "17:30")]
        assign(runner, mirror, slot_id, male, RoleType.MALE_LEAD, today=TODAY)
        assign(runner, mirror, slot_id, female, RoleType.FEMALE_LEAD, today=TODAY)
        calendar_client.reset()

        result = assign_batch(
            runner,
            mirror,
            [CastingChange(performance_date_id=slot_id, actor_id=None, role_type=RoleType.FEMALE_LEAD)],
            memos=[ReservationMemo(performance_date_id=slot_id, reservation_name="홍길동", reservation_contact="010-1111-2222")],
            today="2026-03-12",
        )

        assert result.fail_count == 0
        assert queries.get_casting(runner, slot_id, RoleType.FEMALE_LEAD) is None
        status = queries.get_reservation_status(runner, slot_id)
        assert status.reservation_name == "홍길동"

        patches = calendar_client.ops("patch_event")
        assert patches[0]["body"]["description"] == "예약자: 홍길동\n연락처: 010-1111-2222"
        assert len(calendar_client.ops("delete_event")) == 2


class TestNotify:
    """Re-sending casting invitations."""

    def test_recreates_event_with_invitation(self, runner, mirror, calendar_client, march_slots, make_actor):
        actor_id = make_actor("박남배", email="park@example.com")
        slot_id = march_slots[("2026-03-10", "15:15")]
        created = assign(runner, mirror, slot_id, actor_id, RoleType.MALE_LEAD, today=TODAY)
        calendar_client.reset()

        result = notify_castings(runner, mirror, [created.casting.id], today=TODAY)

        assert result.sent == 1
        assert result.failed == 0
        deletes = calendar_client.ops("delete_event")
        assert deletes[0]["send_updates"] == "none"
        personal = calendar_client.ops("insert_event")[0]
        assert personal["body"]["attendees"] == [{"email": "park@example.com"}]

    def test_actor_without_email_counts_as_failed(self, runner, mirror, march_slots, make_actor):
        actor_id = make_actor("이여배", RoleType.FEMALE_LEAD)
        slot_id = march_slots[("2026-03-10", "15:15")]
        created = assign(runner, mirror, slot_id, actor_id, RoleType.FEMALE_LEAD, today=TODAY)

        result = notify_castings(runner, mirror, [created.casting.id], today=TODAY)

        assert result.sent == 0
        assert result.failed == 1

    def test_failed_delete_skips_recreation(self, runner, mirror, calendar_client, march_slots, make_actor):
        actor_id = make_actor("박남배", email="park@example.com")
        slot_id = march_slots[("2026-03-11", "15:15")]
        created = assign(runner, mirror, slot_id, actor_id, RoleType.MALE_LEAD, today=TODAY)
        calendar_client.fail_on.add("delete_event")
        calendar_client.reset()

        result = notify_castings(runner, mirror, [created.casting.id], today=TODAY)

        assert (result.sent, result.failed) == (0, 1)
        assert calendar_client.ops("insert_event") == []
        casting = queries.get_casting_by_id(runner, created.casting.id)
        assert (casting.calendar_event_id, casting.all_calendar_event_id) == ("evt1", "evt2")

    def test_unknown_castings_are_not_found(self, runner, mirror):
        with pytest.raises(NotFoundError):
            notify_castings(runner, mirror, [12345])


def test_female_calendar_used_for_female_lead_without_personal_calendar(
    runner, mirror, calendar_client, march_slots, make_actor
):
    actor_id = make_actor("이여배", RoleType.FEMALE_LEAD)

    assign(runner, mirror, march_slots[("2026-03-20", "10:45")], actor_id, RoleType.FEMALE_LEAD, today=TODAY)

    assert calendar_client.ops("insert_event")[0]["calendar_id"] == FEMALE_CALENDAR
