from __future__ import annotations

import logging
from typing import Optional

from castboard import queries
from castboard.calendar_mirror import CalendarMirror
from castboard.casting import refresh_male_lead_description
from castboard.exceptions import NotFoundError
from castboard.models import RoleType, UnavailableResult, UnavailableRow


logger = logging.getLogger(__name__)


def _by_date(rows: list[UnavailableRow]) -> dict[str, list[UnavailableRow]]:
    grouped: dict[str, list[UnavailableRow]] = {}
    for row in rows:
        grouped.setdefault(row.date, []).append(row)
    return grouped


def set_unavailable(
    runner,
    mirror: CalendarMirror,
    actor_id: int,
    performance_date_ids: list[int],
    today: Optional[str] = None,
) -> UnavailableResult:
    """Replace an actor's unavailable slots with the given set.

    Castings the actor holds on newly unavailable slots are removed in the
    same transaction. Calendar events follow afterwards: one all-day event
    per date, kept until the last slot of that date is released.
    """
    actor = queries.get_actor(runner, actor_id)
    if actor is None:
        raise NotFoundError("Actor", actor_id)

    wanted = list(dict.fromkeys(performance_date_ids))
    for performance_date_id in wanted:
        if queries.get_performance(runner, performance_date_id) is None:
            raise NotFoundError("PerformanceDate", performance_date_id)

    current = queries.list_actor_unavailable(runner, actor_id)
    current_ids = {row.performance_date_id for row in current}
    to_add = [pid for pid in wanted if pid not in current_ids]
    to_remove = [row for row in current if row.performance_date_id not in set(wanted)]

    conflicting = []
    for performance_date_id in to_add:
        casting = queries.get_actor_casting(runner, actor_id, performance_date_id)
        if casting is not None:
            conflicting.append(casting)

    with runner.transaction():
        for casting in conflicting:
            queries.delete_casting(runner, casting.id)
        for row in to_remove:
            queries.delete_unavailable(runner, row.id)
        for performance_date_id in to_add:
            queries.create_unavailable(runner, actor_id, performance_date_id)

    if conflicting:
        logger.info(f"Removed {len(conflicting)} castings of actor {actor_id} on unavailable slots")
    for casting in conflicting:
        mirror.remove_casting(casting)
        if casting.role_type == RoleType.FEMALE_LEAD:
            refresh_male_lead_description(runner, mirror, casting.performance_date_id, today)

    remaining = _by_date(queries.list_actor_unavailable(runner, actor_id))

    for slot_date, removed in _by_date(to_remove).items():
        if slot_date in remaining:
            continue
        event_pairs = {
            (row.calendar_event_id, row.all_calendar_event_id)
            for row in removed
            if row.calendar_event_id or row.all_calendar_event_id
        }
        for event_id, all_event_id in event_pairs:
            mirror.remove_unavailable(actor.calendar_id, event_id, all_event_id)

    added = set(to_add)
    added_dates = sorted({row.date for rows in remaining.values() for row in rows if row.performance_date_id in added})
    for slot_date in added_dates:
        rows = remaining[slot_date]
        published = next(
            (r for r in rows if r.synced and (r.calendar_event_id or r.all_calendar_event_id)),
            None,
        )
        if published is not None:
            event_id, all_event_id, synced = published.calendar_event_id, published.all_calendar_event_id, True
        else:
            ids = mirror.publish_unavailable(actor.name, actor.calendar_id, slot_date)
            event_id, all_event_id, synced = ids.calendar_event_id, ids.all_calendar_event_id, ids.synced
        for row in rows:
            if row is published:
                continue
            queries.mark_unavailable_synced(runner, row.id, event_id, all_event_id, synced=synced)

    return UnavailableResult(
        actor_id=actor_id,
        performance_date_ids=wanted,
        added=len(to_add),
        removed=len(to_remove),
        removed_castings=[c.id for c in conflicting],
    )


def toggle_override(runner, actor_id: int, year: int, month: int) -> bool:
    """Flip the month override; returns True when the actor is now hidden."""
    if queries.get_actor(runner, actor_id) is None:
        raise NotFoundError("Actor", actor_id)
    existing = queries.get_override(runner, actor_id, year, month)
    with runner.transaction():
        if existing is not None:
            queries.delete_override(runner, existing["id"])
            return False
        queries.create_override(runner, actor_id, year, month)
    return True
