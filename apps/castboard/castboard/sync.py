from __future__ import annotations

import logging
from typing import Optional

from castboard import queries
from castboard.calendar_mirror import CalendarMirror
from castboard.casting import publish_casting
from castboard.models import CalendarProvisionResult, CalendarSyncResult, SyncCounter


logger = logging.getLogger(__name__)


def _sync_unavailable(runner, mirror: CalendarMirror) -> SyncCounter:
    counter = SyncCounter()
    groups: dict[tuple[int, str], list] = {}
    for row in queries.list_unsynced_unavailable(runner):
        groups.setdefault((row.actor_id, row.date), []).append(row)

    for (actor_id, slot_date), rows in groups.items():
        actor = queries.get_actor(runner, actor_id)
        if actor is None:
            continue
        same_day = [r for r in queries.list_actor_unavailable(runner, actor_id) if r.date == slot_date]
        published = next(
            (r for r in same_day if r.synced and (r.calendar_event_id or r.all_calendar_event_id)),
            None,
        )
        if published is not None:
            for row in rows:
                queries.mark_unavailable_synced(
                    runner, row.id, published.calendar_event_id, published.all_calendar_event_id
                )
            counter.synced += len(rows)
            continue

        stale = {
            (r.calendar_event_id, r.all_calendar_event_id)
            for r in rows
            if r.calendar_event_id or r.all_calendar_event_id
        }
        for event_id, all_event_id in stale:
            mirror.remove_unavailable(actor.calendar_id, event_id, all_event_id)

        ids = mirror.publish_unavailable(actor.name, actor.calendar_id, slot_date)
        for row in same_day:
            queries.mark_unavailable_synced(
                runner, row.id, ids.calendar_event_id, ids.all_calendar_event_id, synced=ids.synced
            )
        if ids.synced:
            counter.synced += len(rows)
        else:
            counter.failed += len(rows)
    return counter


def _sync_castings(runner, mirror: CalendarMirror, today: Optional[str]) -> SyncCounter:
    counter = SyncCounter()
    for casting in queries.list_unsynced_castings(runner):
        if casting.has_events and not mirror.remove_casting(casting, notify=True):
            # Old ids stay on the row so the next pass retries the delete.
            counter.failed += 1
            continue
        if publish_casting(runner, mirror, casting, today):
            counter.synced += 1
        else:
            counter.failed += 1
    return counter


def sync_calendar(runner, mirror: CalendarMirror, today: Optional[str] = None) -> CalendarSyncResult:
    """Recreate calendar events for every row still flagged unsynced."""
    result = CalendarSyncResult(
        unavailable=_sync_unavailable(runner, mirror),
        casting=_sync_castings(runner, mirror, today),
    )
    logger.info(
        f"Calendar sync: unavailable {result.unavailable.synced}/{result.unavailable.failed}, "
        f"casting {result.casting.synced}/{result.casting.failed} (synced/failed)"
    )
    return result


def provision_actor_calendars(runner, mirror: CalendarMirror) -> CalendarProvisionResult:
    """Give every actor a personal calendar shared with their account email.

    Actors that already have a calendar only get the share retried.
    """
    result = CalendarProvisionResult(created=0, shared=0, skipped=0)
    for actor in queries.list_actors(runner):
        if actor.calendar_id:
            if actor.user_email and mirror.share_calendar(actor.calendar_id, actor.user_email):
                result.shared += 1
            result.skipped += 1
            continue

        calendar_id = mirror.create_actor_calendar(actor.name)
        if not calendar_id:
            result.errors.append(f"{actor.name}: calendar creation failed")
            continue
        queries.set_actor_calendar(runner, actor.id, calendar_id)
        result.created += 1

        if actor.user_email:
            if mirror.share_calendar(calendar_id, actor.user_email):
                result.shared += 1
            else:
                result.errors.append(f"{actor.name}: sharing with {actor.user_email} failed")
    return result
