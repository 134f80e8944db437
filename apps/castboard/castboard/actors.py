from __future__ import annotations

import logging
from typing import Optional

from castboard import queries
from castboard.calendar_mirror import CalendarMirror
from castboard.casting import refresh_male_lead_description
from castboard.exceptions import NotFoundError, ValidationError
from castboard.models import ActorCreate, ActorOut, ActorUpdate, RoleType


logger = logging.getLogger(__name__)


def _require_actor(runner, actor_id: int) -> ActorOut:
    actor = queries.get_actor(runner, actor_id)
    if actor is None:
        raise NotFoundError("Actor", actor_id)
    return actor


def create_actor(runner, data: ActorCreate) -> ActorOut:
    with runner.transaction():
        actor_id = queries.create_actor(runner, data.name.strip(), data.role_type.value, data.calendar_id)
    return queries.get_actor(runner, actor_id)


def update_actor(runner, actor_id: int, data: ActorUpdate) -> ActorOut:
    """Apply a partial update; only fields present in the request change."""
    actor = _require_actor(runner, actor_id)
    sent = data.model_fields_set

    changes = {}
    if data.name:
        changes["name"] = data.name.strip()
    if data.role_type is not None and data.role_type != actor.role_type:
        if queries.list_actor_castings(runner, actor_id):
            raise ValidationError(
                f"Actor {actor.name} still has castings; unassign them before changing the role",
                field="roleType",
            )
        changes["role_type"] = data.role_type.value
    if "calendar_id" in sent:
        changes["calendar_id"] = data.calendar_id

    user = None
    if "user_email" in sent:
        user = queries.get_user_by_actor(runner, actor_id)
        if user is not None and data.user_email:
            other = queries.get_user_by_email(runner, data.user_email)
            if other is not None and other["id"] != user["id"]:
                raise ValidationError("Email is already in use", field="userEmail")

    with runner.transaction():
        queries.update_actor(runner, actor_id, changes)
        if user is not None:
            queries.update_user_email(runner, user["id"], data.user_email)

    return queries.get_actor(runner, actor_id)


def delete_actor(runner, mirror: CalendarMirror, actor_id: int, today: Optional[str] = None) -> None:
    """Delete an actor; castings, unavailability and overrides cascade.

    Calendar events of the removed rows are deleted afterwards.
    """
    actor = _require_actor(runner, actor_id)
    castings = queries.list_actor_castings(runner, actor_id)
    unavailable = queries.list_actor_unavailable(runner, actor_id)

    with runner.transaction():
        queries.delete_actor(runner, actor_id)

    for casting in castings:
        mirror.remove_casting(casting)
        if casting.role_type == RoleType.FEMALE_LEAD:
            refresh_male_lead_description(runner, mirror, casting.performance_date_id, today)

    event_pairs = {
        (row.calendar_event_id, row.all_calendar_event_id)
        for row in unavailable
        if row.calendar_event_id or row.all_calendar_event_id
    }
    for event_id, all_event_id in event_pairs:
        mirror.remove_unavailable(actor.calendar_id, event_id, all_event_id)

    logger.info(f"Deleted actor {actor_id} with {len(castings)} castings and {len(unavailable)} unavailable slots")


def link_user(runner, actor_id: int, user_id: int) -> None:
    """Attach a user account to the actor, detaching whoever held it before."""
    _require_actor(runner, actor_id)
    if queries.get_user_by_id(runner, user_id) is None:
        raise NotFoundError("User", user_id)
    with runner.transaction():
        queries.unlink_actor_users(runner, actor_id)
        queries.link_user_to_actor(runner, user_id, actor_id)
