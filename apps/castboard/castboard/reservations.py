"""
Reservation ingestion

Booking data arrives from the ticketing-site crawler with Korean 12-hour
time labels. Each booking is matched to a performance slot, stored as the
slot's reservation memo and pushed into the male-lead event description.
Memos are purged once the performance date has passed.
"""
from __future__ import annotations

import logging
import re
from datetime import date
from typing import Optional

import httpx

from castboard import queries
from castboard.calendar_mirror import CalendarMirror
from castboard.casting import refresh_male_lead_description
from castboard.exceptions import ExternalServiceError, NotFoundError, ParseError, ServiceError, ValidationError
from castboard.models import (
    Booking,
    BookingResult,
    CleanupResult,
    MonthRef,
    PerformanceOut,
    RecordBookingsResult,
    RoleType,
    SyncReservationsResult,
)
from castboard.schedule import describe_male_lead, ensure_and_get_month_performances, kst_today, month_bounds


logger = logging.getLogger(__name__)

KOREAN_TIME_RE = re.compile(r"^(오전|오후)\s*(\d{1,2}):(\d{2})$")
CRAWLER_SERVICE = "reservation-crawler"


def parse_korean_time(label: str) -> Optional[str]:
    """Convert "오후 3:15" style labels to "15:15"; None when malformed."""
    match = KOREAN_TIME_RE.match((label or "").strip())
    if not match:
        return None
    period, hour_text, minute = match.groups()
    hour = int(hour_text)
    if hour > 12 or int(minute) > 59:
        return None
    if period == "오후" and hour < 12:
        hour += 12
    if period == "오전" and hour == 12:
        hour = 0
    return f"{hour:02d}:{minute}"


def resolve_booking_contact(booking: Booking) -> tuple[str, str]:
    """Name and phone to show for a booking.

    A separate visitor, when the booker flagged one and supplied details,
    is who actually shows up, so their identity wins.
    """
    if booking.has_visitor and (booking.visitor_name or booking.visitor_phone):
        return (
            booking.visitor_name or booking.customer_name,
            booking.visitor_phone or booking.phone_number,
        )
    return booking.customer_name, booking.phone_number


def _slot_for_booking(slots: dict[tuple[str, str], PerformanceOut], slot_date: str, booking: Booking) -> PerformanceOut:
    show_time = parse_korean_time(booking.booking_time)
    if show_time is None:
        raise ParseError(f"Cannot parse booking time: {booking.booking_time}", field="booking_time")
    performance = slots.get((slot_date, show_time))
    if performance is None:
        raise NotFoundError("PerformanceDate", f"{slot_date} {show_time}")
    return performance


def _month_slots(runner, year: int, month: int) -> dict[tuple[str, str], PerformanceOut]:
    performances = ensure_and_get_month_performances(runner, year, month)
    return {(p.date, p.start_time): p for p in performances}


def record_bookings(
    runner,
    mirror: CalendarMirror,
    slot_date: str,
    bookings: list[Booking],
    today: Optional[str] = None,
) -> RecordBookingsResult:
    day = date.fromisoformat(slot_date)
    slots = _month_slots(runner, day.year, day.month)

    results: list[BookingResult] = []
    memos: dict[int, tuple[str, str]] = {}
    for booking in bookings:
        try:
            performance = _slot_for_booking(slots, slot_date, booking)
        except ValidationError as e:
            logger.info(f"Skipping booking {booking.booking_time!r} on {slot_date}: {e.message}")
            results.append(BookingResult(booking_time=booking.booking_time, success=False, error=e.message))
            continue
        memos[performance.id] = resolve_booking_contact(booking)
        results.append(BookingResult(booking_time=booking.booking_time, success=True))

    with runner.transaction():
        for performance_date_id, (name, contact) in memos.items():
            queries.upsert_reservation_status(
                runner,
                performance_date_id,
                has_reservation=True,
                reservation_name=name,
                reservation_contact=contact,
            )

    for performance_date_id in memos:
        refresh_male_lead_description(runner, mirror, performance_date_id, today, include_reservation=True)

    success_count = sum(1 for r in results if r.success)
    return RecordBookingsResult(
        date=slot_date,
        success_count=success_count,
        fail_count=len(results) - success_count,
        results=results,
    )


def sync_reservations(
    runner,
    mirror: CalendarMirror,
    months: list[MonthRef],
    reservations: dict[str, list[str]],
    booking_details: Optional[dict[str, list[Booking]]] = None,
    today: Optional[str] = None,
) -> SyncReservationsResult:
    """Reconcile reservation flags for whole months against the crawler's view.

    Slots listed in ``reservations`` are flagged reserved; every other slot in
    the months is flagged free and loses its memo.
    """
    slots: dict[tuple[str, str], PerformanceOut] = {}
    existing = {}
    for ref in months:
        slots.update(_month_slots(runner, ref.year, ref.month))
        start, end = month_bounds(ref.year, ref.month)
        for status in queries.list_reservation_statuses_between(runner, start, end):
            existing[status.performance_date_id] = status

    reserved_keys = {(slot_date, show_time) for slot_date, times in reservations.items() for show_time in times}

    failures: list[BookingResult] = []
    details: dict[int, tuple[str, str]] = {}
    for slot_date, bookings in (booking_details or {}).items():
        for booking in bookings:
            try:
                performance = _slot_for_booking(slots, slot_date, booking)
            except ValidationError as e:
                failures.append(BookingResult(booking_time=booking.booking_time, success=False, error=e.message))
                continue
            details[performance.id] = resolve_booking_contact(booking)

    reserved = 0
    cleared: list[int] = []
    with runner.transaction():
        for key, performance in slots.items():
            has_reservation = key in reserved_keys or performance.id in details
            if has_reservation:
                reserved += 1
            if performance.id in details:
                name, contact = details[performance.id]
                queries.upsert_reservation_status(
                    runner,
                    performance.id,
                    has_reservation=True,
                    reservation_name=name,
                    reservation_contact=contact,
                )
                continue
            status = existing.get(performance.id)
            if not has_reservation and status is not None and (status.reservation_name or status.reservation_contact):
                queries.upsert_reservation_status(
                    runner,
                    performance.id,
                    has_reservation=False,
                    reservation_name=None,
                    reservation_contact=None,
                )
                cleared.append(performance.id)
                continue
            queries.upsert_reservation_status(runner, performance.id, has_reservation=has_reservation)

    calendar_updated = 0
    for performance_date_id in details:
        if refresh_male_lead_description(runner, mirror, performance_date_id, today, include_reservation=True):
            calendar_updated += 1
    for performance_date_id in cleared:
        if refresh_male_lead_description(runner, mirror, performance_date_id, today, include_reservation=False):
            calendar_updated += 1

    return SyncReservationsResult(
        total=len(slots),
        reserved=reserved,
        cleared=len(cleared),
        calendar_updated=calendar_updated,
        failures=failures,
    )


def cleanup_past_memos(runner, mirror: CalendarMirror, today: Optional[str] = None) -> CleanupResult:
    """Drop reservation memos of performances before today (KST)."""
    today = today or kst_today()
    stale = [
        s
        for s in queries.list_reservation_statuses_before(runner, today)
        if s.reservation_name is not None or s.reservation_contact is not None
    ]
    if not stale:
        return CleanupResult(total=0, cleaned=0, calendar_updated=0)

    with runner.transaction():
        for status in stale:
            queries.upsert_reservation_status(
                runner,
                status.performance_date_id,
                reservation_name=None,
                reservation_contact=None,
            )

    calendar_updated = failed = 0
    for status in stale:
        male = queries.get_casting(runner, status.performance_date_id, RoleType.MALE_LEAD)
        if male is None or not male.has_events:
            continue
        if refresh_male_lead_description(runner, mirror, status.performance_date_id, today, include_reservation=False):
            calendar_updated += 1
        else:
            failed += 1

    logger.info(f"Cleaned {len(stale)} past reservation memos")
    return CleanupResult(total=len(stale), cleaned=len(stale), calendar_updated=calendar_updated, failed=failed)


def cleanup_future_descriptions(runner, mirror: CalendarMirror, today: Optional[str] = None) -> CleanupResult:
    """Rewrite future male-lead descriptions to the partner-only form."""
    today = today or kst_today()
    future = [c for c in queries.list_male_lead_castings_after(runner, today) if c.has_events]

    cleaned = failed = 0
    for casting in future:
        description = describe_male_lead(
            runner,
            casting.performance_date_id,
            casting.date,
            include_reservation=False,
        )
        if mirror.update_description(casting, description):
            cleaned += 1
        else:
            failed += 1

    return CleanupResult(total=len(future), cleaned=cleaned, calendar_updated=cleaned, failed=failed)


def trigger_crawler_sync(
    webhook_url: Optional[str],
    timeout: float = 60.0,
    http: Optional[httpx.Client] = None,
) -> dict:
    """Ask the crawler to run now; returns whatever JSON it answers with."""
    if not webhook_url:
        raise ServiceError("CRAWLER_WEBHOOK_URL not configured")

    client = http or httpx.Client(timeout=timeout)
    try:
        response = client.post(webhook_url, json={"trigger": "manual"}, timeout=timeout)
    except httpx.HTTPError as e:
        raise ExternalServiceError(CRAWLER_SERVICE, f"webhook call failed: {e}") from e
    finally:
        if http is None:
            client.close()

    if response.status_code >= 400:
        raise ExternalServiceError(
            CRAWLER_SERVICE,
            f"webhook returned {response.status_code}: {response.text[:200]}",
            status=response.status_code,
        )
    try:
        return response.json()
    except ValueError:
        return {}
