from __future__ import annotations

import calendar
import logging
import sqlite3
from datetime import date, datetime, timedelta, timezone
from typing import Optional

from castboard import queries
from castboard.models import CastingCell, PerformanceOut, RoleType, ScheduleOut, SlotOut, casting_key


logger = logging.getLogger(__name__)

SHOW_TIMES = ("10:45", "13:00", "15:15", "17:30", "19:45")

SHOW_TIME_LABELS = {
    "10:45": "1회 10:45",
    "13:00": "2회 13:00",
    "15:15": "3회 15:15",
    "17:30": "4회 17:30",
    "19:45": "5회 19:45",
}

KST = timezone(timedelta(hours=9))


def kst_today() -> str:
    """Calendar date in Korea (UTC+9) as YYYY-MM-DD."""
    return datetime.now(timezone.utc).astimezone(KST).date().isoformat()


def month_bounds(year: int, month: int) -> tuple[str, str]:
    start = date(year, month, 1)
    if month == 12:
        end = date(year + 1, 1, 1)
    else:
        end = date(year, month + 1, 1)
    return start.isoformat(), end.isoformat()


def expected_slots(year: int, month: int) -> list[tuple[str, str]]:
    days = calendar.monthrange(year, month)[1]
    return [
        (date(year, month, day).isoformat(), show_time)
        for day in range(1, days + 1)
        for show_time in SHOW_TIMES
    ]


def ensure_and_get_month_performances(runner, year: int, month: int) -> list[PerformanceOut]:
    start, end = month_bounds(year, month)
    existing = queries.list_performances_between(runner, start, end)
    slots = expected_slots(year, month)
    if len(existing) >= len(slots):
        return existing

    have = {(p.date, p.start_time) for p in existing}
    missing = [slot for slot in slots if slot not in have]
    try:
        with runner.transaction():
            # Re-check inside the transaction; another request may have filled the gap.
            have = {(p.date, p.start_time) for p in queries.list_performances_between(runner, start, end)}
            for slot_date, show_time in missing:
                if (slot_date, show_time) not in have:
                    queries.create_performance(runner, slot_date, show_time)
    except sqlite3.IntegrityError:
        logger.info(f"Concurrent slot generation for {year}-{month:02d}; re-reading")

    created = queries.list_performances_between(runner, start, end)
    logger.debug(f"Generated {len(created) - len(existing)} slots for {year}-{month:02d}")
    return created


def group_by_date(performances: list[PerformanceOut]) -> dict[str, list[PerformanceOut]]:
    grouped: dict[str, list[PerformanceOut]] = {}
    for performance in performances:
        grouped.setdefault(performance.date, []).append(performance)
    return grouped


def add_minutes(start_time: str, minutes: int) -> str:
    hour, minute = (int(part) for part in start_time.split(":"))
    total = (hour * 60 + minute + minutes) % (24 * 60)
    return f"{total // 60:02d}:{total % 60:02d}"


# Event descriptions


def build_casting_description(
    partner_name: Optional[str] = None,
    reservation_name: Optional[str] = None,
    reservation_contact: Optional[str] = None,
) -> Optional[str]:
    parts = []
    if partner_name:
        parts.append(f"상대역: {partner_name}")
    if reservation_name or reservation_contact:
        lines = []
        if reservation_name:
            lines.append(f"예약자: {reservation_name}")
        if reservation_contact:
            lines.append(f"연락처: {reservation_contact}")
        parts.append("\n".join(lines))
    if not parts:
        return None
    return "\n\n".join(parts)


def describe_male_lead(
    runner,
    performance_date_id: int,
    slot_date: str,
    today: Optional[str] = None,
    include_reservation: Optional[bool] = None,
) -> Optional[str]:
    """Description for the male-lead event of a slot.

    The partner (female lead) name is always included. The reservation memo
    is only shown on the day of the performance unless include_reservation
    forces it either way.
    """
    partner = queries.get_casting(runner, performance_date_id, RoleType.FEMALE_LEAD)
    if include_reservation is None:
        include_reservation = slot_date == (today or kst_today())

    reservation_name = reservation_contact = None
    if include_reservation:
        status = queries.get_reservation_status(runner, performance_date_id)
        if status is not None:
            reservation_name = status.reservation_name
            reservation_contact = status.reservation_contact

    return build_casting_description(
        partner_name=partner.actor_name if partner else None,
        reservation_name=reservation_name,
        reservation_contact=reservation_contact,
    )


def build_month_schedule(runner, year: int, month: int, include_admin: bool = False) -> ScheduleOut:
    """Everything the casting grid needs for one month."""
    performances = ensure_and_get_month_performances(runner, year, month)
    start, end = month_bounds(year, month)

    slots = {
        slot_date: [SlotOut(id=p.id, start_time=p.start_time, end_time=p.end_time, label=p.label) for p in day]
        for slot_date, day in group_by_date(performances).items()
    }
    castings = {
        casting_key(c.performance_date_id, c.role_type): CastingCell(
            actor_id=c.actor_id,
            actor_name=c.actor_name,
            synced=c.synced,
        )
        for c in queries.list_castings_between(runner, start, end)
    }
    unavailable: dict[int, list[int]] = {}
    for row in queries.list_unavailable_between(runner, start, end):
        unavailable.setdefault(row.actor_id, []).append(row.performance_date_id)

    schedule = ScheduleOut(
        performances=slots,
        castings=castings,
        unavailable=unavailable,
        actors=queries.list_actors(runner),
    )
    if include_admin:
        schedule.overridden_actors = queries.list_overridden_actor_ids(runner, year, month)
        schedule.reservations = {
            status.performance_date_id: status
            for status in queries.list_reservation_statuses_between(runner, start, end)
        }
    return schedule
