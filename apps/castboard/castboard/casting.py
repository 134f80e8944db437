from __future__ import annotations

import logging
from typing import Iterable, Optional

from castboard import queries
from castboard.calendar_mirror import CalendarMirror
from castboard.exceptions import NotFoundError, ValidationError
from castboard.models import (
    AssignResult,
    BatchResult,
    CastingChange,
    CastingRow,
    ChangeResult,
    NotifyResult,
    ReservationMemo,
    RoleType,
)
from castboard.schedule import describe_male_lead


logger = logging.getLogger(__name__)


def publish_casting(
    runner,
    mirror: CalendarMirror,
    casting: CastingRow,
    today: Optional[str] = None,
) -> bool:
    """Create calendar events for a casting and record the outcome on the row."""
    description = None
    if casting.role_type == RoleType.MALE_LEAD:
        description = describe_male_lead(runner, casting.performance_date_id, casting.date, today)
    user = queries.get_user_by_actor(runner, casting.actor_id)
    attendee_email = user["email"] if user else None

    ids = mirror.publish_casting(casting, description, attendee_email=attendee_email)
    queries.mark_casting_synced(
        runner,
        casting.id,
        ids.calendar_event_id,
        ids.all_calendar_event_id,
        synced=ids.synced,
        event_calendar_id=ids.calendar_id,
    )
    if not ids.synced:
        logger.info(f"Casting {casting.id} left unsynced")
    return ids.synced


def refresh_male_lead_description(
    runner,
    mirror: CalendarMirror,
    performance_date_id: int,
    today: Optional[str] = None,
    include_reservation: Optional[bool] = None,
) -> bool:
    male = queries.get_casting(runner, performance_date_id, RoleType.MALE_LEAD)
    if male is None or not male.has_events:
        return False
    description = describe_male_lead(
        runner,
        performance_date_id,
        male.date,
        today=today,
        include_reservation=include_reservation,
    )
    return mirror.update_description(male, description)


def _check_assignable(actor, performance, unavailable, actor_id: int, performance_date_id: int, role_type: RoleType):
    if actor is None:
        raise NotFoundError("Actor", actor_id)
    if performance is None:
        raise NotFoundError("PerformanceDate", performance_date_id)
    if actor.role_type != role_type:
        raise ValidationError(
            f"Actor {actor.name} plays {actor.role_type.value}, not {role_type.value}",
            field="roleType",
        )
    if unavailable:
        raise ValidationError(
            f"Actor {actor.name} is unavailable for this performance",
            field="actorId",
        )


def unassign(
    runner,
    mirror: CalendarMirror,
    performance_date_id: int,
    role_type: RoleType,
    today: Optional[str] = None,
) -> AssignResult:
    existing = queries.get_casting(runner, performance_date_id, role_type)
    if existing is None:
        return AssignResult(action="removed", synced=True)

    with runner.transaction():
        queries.delete_casting(runner, existing.id)

    synced = mirror.remove_casting(existing)
    if role_type == RoleType.FEMALE_LEAD:
        refresh_male_lead_description(runner, mirror, performance_date_id, today)
    return AssignResult(action="removed", synced=synced)


def assign(
    runner,
    mirror: CalendarMirror,
    performance_date_id: int,
    actor_id: Optional[int],
    role_type: RoleType,
    today: Optional[str] = None,
) -> AssignResult:
    if not actor_id:
        return unassign(runner, mirror, performance_date_id, role_type, today)

    actor = queries.get_actor(runner, actor_id)
    performance = queries.get_performance(runner, performance_date_id)
    unavailable = queries.get_unavailable(runner, actor_id, performance_date_id)
    _check_assignable(actor, performance, unavailable, actor_id, performance_date_id, role_type)

    previous = queries.get_casting(runner, performance_date_id, role_type)
    if previous is not None and previous.actor_id == actor_id and previous.synced:
        return AssignResult(action="unchanged", casting=previous, synced=True)

    with runner.transaction():
        if previous is None:
            casting_id = queries.create_casting(runner, performance_date_id, actor_id, role_type)
        else:
            queries.reassign_casting(runner, previous.id, actor_id)
            casting_id = previous.id

    if previous is not None and previous.has_events:
        mirror.remove_casting(previous)

    casting = queries.get_casting_by_id(runner, casting_id)
    synced = publish_casting(runner, mirror, casting, today)
    if role_type == RoleType.FEMALE_LEAD:
        refresh_male_lead_description(runner, mirror, performance_date_id, today)

    return AssignResult(action="assigned", casting=queries.get_casting_by_id(runner, casting_id), synced=synced)


def _batch_error(change: CastingChange, actors: dict, performances: dict, unavailable: set) -> Optional[str]:
    if change.performance_date_id not in performances:
        return f"PerformanceDate {change.performance_date_id} not found"
    if change.actor_id is None:
        return None
    actor = actors.get(change.actor_id)
    if actor is None:
        return f"Actor {change.actor_id} not found"
    if actor.role_type != change.role_type:
        return f"Actor {actor.name} plays {actor.role_type.value}, not {change.role_type.value}"
    if (change.actor_id, change.performance_date_id) in unavailable:
        return f"Actor {actor.name} is unavailable for this performance"
    return None


def assign_batch(
    runner,
    mirror: CalendarMirror,
    changes: list[CastingChange],
    memos: Iterable[ReservationMemo] = (),
    today: Optional[str] = None,
) -> BatchResult:
    """Apply many casting changes in one transaction.

    Invalid changes are reported and skipped. Calendar propagation runs after
    the commit and never turns a committed change into a failure.
    """
    memos = list(memos)
    actor_ids = {c.actor_id for c in changes if c.actor_id}
    performance_ids = {c.performance_date_id for c in changes} | {m.performance_date_id for m in memos}

    actors = {}
    for actor_id in actor_ids:
        actor = queries.get_actor(runner, actor_id)
        if actor is not None:
            actors[actor_id] = actor
    performances = {}
    for performance_date_id in performance_ids:
        performance = queries.get_performance(runner, performance_date_id)
        if performance is not None:
            performances[performance_date_id] = performance
    unavailable = set()
    for change in changes:
        if change.actor_id and queries.get_unavailable(runner, change.actor_id, change.performance_date_id):
            unavailable.add((change.actor_id, change.performance_date_id))

    results: list[ChangeResult] = []
    valid: list[tuple[CastingChange, ChangeResult]] = []
    for change in changes:
        error = _batch_error(change, actors, performances, unavailable)
        result = ChangeResult(key=change.key, success=error is None, error=error)
        results.append(result)
        if error is None:
            valid.append((change, result))

    stale: list[CastingRow] = []
    to_publish: dict[str, int] = {}
    female_slots: set[int] = set()
    memo_slots: set[int] = set()

    with runner.transaction():
        for change, _ in valid:
            previous = queries.get_casting(runner, change.performance_date_id, change.role_type)
            if change.actor_id is None:
                to_publish.pop(change.key, None)
                if previous is not None:
                    queries.delete_casting(runner, previous.id)
                    if previous.has_events:
                        stale.append(previous)
            elif previous is None:
                to_publish[change.key] = queries.create_casting(
                    runner, change.performance_date_id, change.actor_id, change.role_type
                )
            elif previous.actor_id != change.actor_id or not previous.synced:
                queries.reassign_casting(runner, previous.id, change.actor_id)
                if previous.has_events:
                    stale.append(previous)
                to_publish[change.key] = previous.id
            if change.role_type == RoleType.FEMALE_LEAD:
                female_slots.add(change.performance_date_id)

        for memo in memos:
            key = f"{memo.performance_date_id}_MEMO"
            if memo.performance_date_id not in performances:
                results.append(ChangeResult(key=key, success=False, error="PerformanceDate not found"))
                continue
            queries.upsert_reservation_status(
                runner,
                memo.performance_date_id,
                reservation_name=memo.reservation_name,
                reservation_contact=memo.reservation_contact,
            )
            memo_slots.add(memo.performance_date_id)
            results.append(ChangeResult(key=key, success=True))

    for casting in stale:
        mirror.remove_casting(casting)

    synced_by_key: dict[str, bool] = {}
    republished_males: set[int] = set()
    for key, casting_id in to_publish.items():
        casting = queries.get_casting_by_id(runner, casting_id)
        if casting is None:
            continue
        synced_by_key[key] = publish_casting(runner, mirror, casting, today)
        if casting.role_type == RoleType.MALE_LEAD:
            republished_males.add(casting.performance_date_id)

    for performance_date_id in sorted((female_slots | memo_slots) - republished_males):
        refresh_male_lead_description(runner, mirror, performance_date_id, today)

    for change, result in valid:
        if change.key in synced_by_key:
            result.synced = synced_by_key[change.key]

    success_count = sum(1 for r in results if r.success)
    return BatchResult(
        success_count=success_count,
        fail_count=len(results) - success_count,
        results=results,
    )


def notify_castings(
    runner,
    mirror: CalendarMirror,
    casting_ids: list[int],
    today: Optional[str] = None,
) -> NotifyResult:
    """Re-send invitations by recreating the events of the given castings."""
    found = [c for c in (queries.get_casting_by_id(runner, cid) for cid in casting_ids) if c is not None]
    if not found:
        raise NotFoundError("Casting", ", ".join(str(cid) for cid in casting_ids))

    sent = failed = 0
    for casting in found:
        user = queries.get_user_by_actor(runner, casting.actor_id)
        if not user or not user["email"]:
            failed += 1
            continue
        if not mirror.remove_casting(casting, notify=False):
            failed += 1
            continue
        if publish_casting(runner, mirror, casting, today):
            sent += 1
        else:
            failed += 1
    return NotifyResult(sent=sent, failed=failed)
