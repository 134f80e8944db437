from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlstratum import (
    SELECT,
    INSERT,
    UPDATE,
    DELETE,
    Table,
    col,
)
from sqlstratum.hydrate.pydantic import using_pydantic

from castboard.models import (
    ActorOut,
    CastingRow,
    PerformanceOut,
    ReservationStatusOut,
    RoleType,
    UnavailableRow,
    UserRole,
)


actors = Table(
    "actors",
    col("id", int),
    col("name", str),
    col("role_type", str),
    col("calendar_id", str),
    col("created_at", str),
)

users = Table(
    "users",
    col("id", int),
    col("username", str),
    col("display_name", str),
    col("role", str),
    col("pin", str),
    col("email", str),
    col("actor_id", int),
)

performance_dates = Table(
    "performance_dates",
    col("id", int),
    col("date", str),
    col("start_time", str),
    col("end_time", str),
    col("label", str),
)

castings = Table(
    "castings",
    col("id", int),
    col("performance_date_id", int),
    col("actor_id", int),
    col("role_type", str),
    col("synced", int),
    col("event_calendar_id", str),
    col("calendar_event_id", str),
    col("all_calendar_event_id", str),
    col("updated_at", str),
)

unavailable_dates = Table(
    "unavailable_dates",
    col("id", int),
    col("actor_id", int),
    col("performance_date_id", int),
    col("synced", int),
    col("calendar_event_id", str),
    col("all_calendar_event_id", str),
    col("created_at", str),
)

reservation_statuses = Table(
    "reservation_statuses",
    col("id", int),
    col("performance_date_id", int),
    col("has_reservation", int),
    col("reservation_name", str),
    col("reservation_contact", str),
    col("checked_at", str),
)

actor_month_overrides = Table(
    "actor_month_overrides",
    col("id", int),
    col("actor_id", int),
    col("year", int),
    col("month", int),
)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def _slot_order(row):
    return (row.date, row.start_time)


# Users


def get_user_login(runner, username: str, pin: str):
    q = (
        SELECT(
            users.c.id.AS("id"),
            users.c.username.AS("username"),
            users.c.display_name.AS("display_name"),
            users.c.role.AS("role"),
            users.c.actor_id.AS("actor_id"),
        )
        .FROM(users)
        .WHERE(users.c.username == username, users.c.pin == pin)
    )
    return runner.fetch_one(q)


def get_user_by_id(runner, user_id: int):
    q = (
        SELECT(
            users.c.id.AS("id"),
            users.c.username.AS("username"),
            users.c.display_name.AS("display_name"),
            users.c.role.AS("role"),
            users.c.email.AS("email"),
            users.c.actor_id.AS("actor_id"),
        )
        .FROM(users)
        .WHERE(users.c.id == user_id)
        .LIMIT(1)
    )
    return runner.fetch_one(q)


def get_user_by_actor(runner, actor_id: int):
    q = (
        SELECT(
            users.c.id.AS("id"),
            users.c.email.AS("email"),
        )
        .FROM(users)
        .WHERE(users.c.actor_id == actor_id)
        .LIMIT(1)
    )
    return runner.fetch_one(q)


def get_user_by_email(runner, email: str):
    q = SELECT(users.c.id.AS("id")).FROM(users).WHERE(users.c.email == email).LIMIT(1)
    return runner.fetch_one(q)


def create_user(
    runner,
    username: str,
    display_name: str,
    role: str,
    pin: str,
    email: Optional[str] = None,
    actor_id: Optional[int] = None,
) -> int:
    result = runner.execute(
        INSERT(users).VALUES(
            username=username,
            display_name=display_name,
            role=role,
            pin=pin,
            email=email,
            actor_id=actor_id,
        )
    )
    return int(result.lastrowid)


def update_user_email(runner, user_id: int, email: Optional[str]) -> None:
    runner.execute(UPDATE(users).SET(email=email).WHERE(users.c.id == user_id))


def unlink_actor_users(runner, actor_id: int) -> None:
    runner.execute(UPDATE(users).SET(actor_id=None).WHERE(users.c.actor_id == actor_id))


def link_user_to_actor(runner, user_id: int, actor_id: int) -> None:
    runner.execute(
        UPDATE(users)
        .SET(actor_id=actor_id, role=UserRole.ACTOR.value)
        .WHERE(users.c.id == user_id)
    )


# Actors


def _actor_select():
    return (
        SELECT(
            actors.c.id.AS("id"),
            actors.c.name.AS("name"),
            actors.c.role_type.AS("role_type"),
            actors.c.calendar_id.AS("calendar_id"),
            users.c.id.AS("user_id"),
            users.c.email.AS("user_email"),
        )
        .FROM(actors)
        .LEFT_JOIN(users, ON=users.c.actor_id == actors.c.id)
    )


def list_actors(runner):
    q = using_pydantic(_actor_select().ORDER_BY(actors.c.name.ASC())).hydrate(ActorOut)
    rows = runner.fetch_all(q)
    return sorted(rows, key=lambda a: (a.role_type.value, a.name))


def get_actor(runner, actor_id: int):
    q = using_pydantic(_actor_select().WHERE(actors.c.id == actor_id).LIMIT(1)).hydrate(ActorOut)
    return runner.fetch_one(q)


def create_actor(runner, name: str, role_type: str, calendar_id: Optional[str]) -> int:
    result = runner.execute(
        INSERT(actors).VALUES(
            name=name,
            role_type=role_type,
            calendar_id=calendar_id,
            created_at=_now(),
        )
    )
    return int(result.lastrowid)


def update_actor(runner, actor_id: int, data: dict) -> None:
    if not data:
        return
    runner.execute(UPDATE(actors).SET(**data).WHERE(actors.c.id == actor_id))


def set_actor_calendar(runner, actor_id: int, calendar_id: str) -> None:
    runner.execute(UPDATE(actors).SET(calendar_id=calendar_id).WHERE(actors.c.id == actor_id))


def delete_actor(runner, actor_id: int) -> None:
    runner.execute(DELETE(actors).WHERE(actors.c.id == actor_id))


# Performance dates


def _performance_select():
    return (
        SELECT(
            performance_dates.c.id.AS("id"),
            performance_dates.c.date.AS("date"),
            performance_dates.c.start_time.AS("start_time"),
            performance_dates.c.end_time.AS("end_time"),
            performance_dates.c.label.AS("label"),
        ).FROM(performance_dates)
    )


def list_performances_between(runner, start: str, end: str):
    q = using_pydantic(
        _performance_select()
        .WHERE(performance_dates.c.date >= start, performance_dates.c.date < end)
        .ORDER_BY(performance_dates.c.date.ASC())
    ).hydrate(PerformanceOut)
    return sorted(runner.fetch_all(q), key=_slot_order)


def get_performance(runner, performance_date_id: int):
    q = using_pydantic(
        _performance_select()
        .WHERE(performance_dates.c.id == performance_date_id)
        .LIMIT(1)
    ).hydrate(PerformanceOut)
    return runner.fetch_one(q)


def get_performance_by_slot(runner, date: str, start_time: str):
    q = using_pydantic(
        _performance_select()
        .WHERE(performance_dates.c.date == date, performance_dates.c.start_time == start_time)
        .LIMIT(1)
    ).hydrate(PerformanceOut)
    return runner.fetch_one(q)


def create_performance(
    runner,
    date: str,
    start_time: str,
    end_time: Optional[str] = None,
    label: Optional[str] = None,
) -> int:
    result = runner.execute(
        INSERT(performance_dates).VALUES(
            date=date,
            start_time=start_time,
            end_time=end_time,
            label=label,
        )
    )
    return int(result.lastrowid)


# Castings


def _casting_select():
    return (
        SELECT(
            castings.c.id.AS("id"),
            castings.c.performance_date_id.AS("performance_date_id"),
            castings.c.actor_id.AS("actor_id"),
            castings.c.role_type.AS("role_type"),
            castings.c.synced.AS("synced"),
            castings.c.event_calendar_id.AS("event_calendar_id"),
            castings.c.calendar_event_id.AS("calendar_event_id"),
            castings.c.all_calendar_event_id.AS("all_calendar_event_id"),
            actors.c.name.AS("actor_name"),
            actors.c.calendar_id.AS("actor_calendar_id"),
            performance_dates.c.date.AS("date"),
            performance_dates.c.start_time.AS("start_time"),
            performance_dates.c.end_time.AS("end_time"),
            performance_dates.c.label.AS("label"),
        )
        .FROM(castings)
        .JOIN(actors, ON=actors.c.id == castings.c.actor_id)
        .JOIN(performance_dates, ON=performance_dates.c.id == castings.c.performance_date_id)
    )


def get_casting(runner, performance_date_id: int, role_type: RoleType):
    q = using_pydantic(
        _casting_select()
        .WHERE(
            castings.c.performance_date_id == performance_date_id,
            castings.c.role_type == role_type.value,
        )
        .LIMIT(1)
    ).hydrate(CastingRow)
    return runner.fetch_one(q)


def get_casting_by_id(runner, casting_id: int):
    q = using_pydantic(_casting_select().WHERE(castings.c.id == casting_id).LIMIT(1)).hydrate(CastingRow)
    return runner.fetch_one(q)


def get_actor_casting(runner, actor_id: int, performance_date_id: int):
    q = using_pydantic(
        _casting_select()
        .WHERE(
            castings.c.actor_id == actor_id,
            castings.c.performance_date_id == performance_date_id,
        )
        .LIMIT(1)
    ).hydrate(CastingRow)
    return runner.fetch_one(q)


def list_castings_between(runner, start: str, end: str):
    q = using_pydantic(
        _casting_select()
        .WHERE(performance_dates.c.date >= start, performance_dates.c.date < end)
        .ORDER_BY(performance_dates.c.date.ASC())
    ).hydrate(CastingRow)
    return sorted(runner.fetch_all(q), key=_slot_order)


def list_actor_castings(runner, actor_id: int):
    q = using_pydantic(
        _casting_select()
        .WHERE(castings.c.actor_id == actor_id)
        .ORDER_BY(performance_dates.c.date.ASC())
    ).hydrate(CastingRow)
    return sorted(runner.fetch_all(q), key=_slot_order)


def list_unsynced_castings(runner):
    q = using_pydantic(
        _casting_select()
        .WHERE(castings.c.synced == 0)
        .ORDER_BY(performance_dates.c.date.ASC())
    ).hydrate(CastingRow)
    return sorted(runner.fetch_all(q), key=_slot_order)


def list_male_lead_castings_after(runner, after_date: str):
    q = using_pydantic(
        _casting_select()
        .WHERE(
            castings.c.role_type == RoleType.MALE_LEAD.value,
            performance_dates.c.date > after_date,
        )
        .ORDER_BY(performance_dates.c.date.ASC())
    ).hydrate(CastingRow)
    return sorted(runner.fetch_all(q), key=_slot_order)


def create_casting(runner, performance_date_id: int, actor_id: int, role_type: RoleType) -> int:
    result = runner.execute(
        INSERT(castings).VALUES(
            performance_date_id=performance_date_id,
            actor_id=actor_id,
            role_type=role_type.value,
            synced=0,
            calendar_event_id=None,
            all_calendar_event_id=None,
            updated_at=_now(),
        )
    )
    return int(result.lastrowid)


def reassign_casting(runner, casting_id: int, actor_id: int) -> None:
    runner.execute(
        UPDATE(castings)
        .SET(
            actor_id=actor_id,
            synced=0,
            event_calendar_id=None,
            calendar_event_id=None,
            all_calendar_event_id=None,
            updated_at=_now(),
        )
        .WHERE(castings.c.id == casting_id)
    )


def mark_casting_synced(
    runner,
    casting_id: int,
    calendar_event_id: Optional[str],
    all_calendar_event_id: Optional[str],
    synced: bool = True,
    event_calendar_id: Optional[str] = None,
) -> None:
    runner.execute(
        UPDATE(castings)
        .SET(
            synced=1 if synced else 0,
            event_calendar_id=event_calendar_id,
            calendar_event_id=calendar_event_id,
            all_calendar_event_id=all_calendar_event_id,
            updated_at=_now(),
        )
        .WHERE(castings.c.id == casting_id)
    )


def delete_casting(runner, casting_id: int) -> None:
    runner.execute(DELETE(castings).WHERE(castings.c.id == casting_id))


# Unavailable dates


def _unavailable_select():
    return (
        SELECT(
            unavailable_dates.c.id.AS("id"),
            unavailable_dates.c.actor_id.AS("actor_id"),
            unavailable_dates.c.performance_date_id.AS("performance_date_id"),
            unavailable_dates.c.synced.AS("synced"),
            unavailable_dates.c.calendar_event_id.AS("calendar_event_id"),
            unavailable_dates.c.all_calendar_event_id.AS("all_calendar_event_id"),
            performance_dates.c.date.AS("date"),
            performance_dates.c.start_time.AS("start_time"),
        )
        .FROM(unavailable_dates)
        .JOIN(performance_dates, ON=performance_dates.c.id == unavailable_dates.c.performance_date_id)
    )


def list_actor_unavailable(runner, actor_id: int):
    q = using_pydantic(
        _unavailable_select()
        .WHERE(unavailable_dates.c.actor_id == actor_id)
        .ORDER_BY(performance_dates.c.date.ASC())
    ).hydrate(UnavailableRow)
    return sorted(runner.fetch_all(q), key=_slot_order)


def list_all_unavailable(runner):
    q = using_pydantic(_unavailable_select().ORDER_BY(performance_dates.c.date.ASC())).hydrate(UnavailableRow)
    return sorted(runner.fetch_all(q), key=_slot_order)


def list_unavailable_between(runner, start: str, end: str):
    q = using_pydantic(
        _unavailable_select()
        .WHERE(performance_dates.c.date >= start, performance_dates.c.date < end)
    ).hydrate(UnavailableRow)
    return sorted(runner.fetch_all(q), key=_slot_order)


def list_unsynced_unavailable(runner):
    q = using_pydantic(
        _unavailable_select()
        .WHERE(unavailable_dates.c.synced == 0)
        .ORDER_BY(performance_dates.c.date.ASC())
    ).hydrate(UnavailableRow)
    return sorted(runner.fetch_all(q), key=_slot_order)


def get_unavailable(runner, actor_id: int, performance_date_id: int):
    q = using_pydantic(
        _unavailable_select()
        .WHERE(
            unavailable_dates.c.actor_id == actor_id,
            unavailable_dates.c.performance_date_id == performance_date_id,
        )
        .LIMIT(1)
    ).hydrate(UnavailableRow)
    return runner.fetch_one(q)


def create_unavailable(runner, actor_id: int, performance_date_id: int) -> int:
    result = runner.execute(
        INSERT(unavailable_dates).VALUES(
            actor_id=actor_id,
            performance_date_id=performance_date_id,
            synced=0,
            calendar_event_id=None,
            all_calendar_event_id=None,
            created_at=_now(),
        )
    )
    return int(result.lastrowid)


def delete_unavailable(runner, unavailable_id: int) -> None:
    runner.execute(DELETE(unavailable_dates).WHERE(unavailable_dates.c.id == unavailable_id))


def mark_unavailable_synced(
    runner,
    unavailable_id: int,
    calendar_event_id: Optional[str],
    all_calendar_event_id: Optional[str],
    synced: bool = True,
) -> None:
    runner.execute(
        UPDATE(unavailable_dates)
        .SET(
            synced=1 if synced else 0,
            calendar_event_id=calendar_event_id,
            all_calendar_event_id=all_calendar_event_id,
        )
        .WHERE(unavailable_dates.c.id == unavailable_id)
    )


# Reservation statuses


def _reservation_select():
    return (
        SELECT(
            reservation_statuses.c.performance_date_id.AS("performance_date_id"),
            reservation_statuses.c.has_reservation.AS("has_reservation"),
            reservation_statuses.c.reservation_name.AS("reservation_name"),
            reservation_statuses.c.reservation_contact.AS("reservation_contact"),
            reservation_statuses.c.checked_at.AS("checked_at"),
        )
        .FROM(reservation_statuses)
        .JOIN(performance_dates, ON=performance_dates.c.id == reservation_statuses.c.performance_date_id)
    )


def get_reservation_status(runner, performance_date_id: int):
    q = using_pydantic(
        _reservation_select()
        .WHERE(reservation_statuses.c.performance_date_id == performance_date_id)
        .LIMIT(1)
    ).hydrate(ReservationStatusOut)
    return runner.fetch_one(q)


def list_reservation_statuses_between(runner, start: str, end: str):
    q = using_pydantic(
        _reservation_select()
        .WHERE(performance_dates.c.date >= start, performance_dates.c.date < end)
    ).hydrate(ReservationStatusOut)
    return runner.fetch_all(q)


def list_reservation_statuses_before(runner, before_date: str):
    q = using_pydantic(
        _reservation_select()
        .WHERE(performance_dates.c.date < before_date)
        .ORDER_BY(performance_dates.c.date.ASC())
    ).hydrate(ReservationStatusOut)
    return runner.fetch_all(q)


def upsert_reservation_status(runner, performance_date_id: int, **fields) -> None:
    """Create or update the slot's status; only the given fields change."""
    existing = runner.fetch_one(
        SELECT(reservation_statuses.c.id.AS("id"))
        .FROM(reservation_statuses)
        .WHERE(reservation_statuses.c.performance_date_id == performance_date_id)
        .LIMIT(1)
    )
    if "has_reservation" in fields:
        fields["has_reservation"] = 1 if fields["has_reservation"] else 0
    if existing is None:
        runner.execute(
            INSERT(reservation_statuses).VALUES(
                performance_date_id=performance_date_id,
                has_reservation=fields.get("has_reservation", 0),
                reservation_name=fields.get("reservation_name"),
                reservation_contact=fields.get("reservation_contact"),
                checked_at=_now(),
            )
        )
        return
    runner.execute(
        UPDATE(reservation_statuses)
        .SET(checked_at=_now(), **fields)
        .WHERE(reservation_statuses.c.id == existing["id"])
    )


# Month overrides


def get_override(runner, actor_id: int, year: int, month: int):
    q = (
        SELECT(actor_month_overrides.c.id.AS("id"))
        .FROM(actor_month_overrides)
        .WHERE(
            actor_month_overrides.c.actor_id == actor_id,
            actor_month_overrides.c.year == year,
            actor_month_overrides.c.month == month,
        )
        .LIMIT(1)
    )
    return runner.fetch_one(q)


def create_override(runner, actor_id: int, year: int, month: int) -> int:
    result = runner.execute(
        INSERT(actor_month_overrides).VALUES(actor_id=actor_id, year=year, month=month)
    )
    return int(result.lastrowid)


def delete_override(runner, override_id: int) -> None:
    runner.execute(DELETE(actor_month_overrides).WHERE(actor_month_overrides.c.id == override_id))


def list_overridden_actor_ids(runner, year: int, month: int) -> list[int]:
    q = (
        SELECT(actor_month_overrides.c.actor_id.AS("actor_id"))
        .FROM(actor_month_overrides)
        .WHERE(actor_month_overrides.c.year == year, actor_month_overrides.c.month == month)
        .ORDER_BY(actor_month_overrides.c.actor_id.ASC())
    )
    return [int(row["actor_id"]) for row in runner.fetch_all(q)]
