"""
Calendar mirror

Pushes casting and unavailability state to two calendars: the actor's
personal calendar (or the role calendar when the actor has none) and the
all-actors calendar. Provider failures are logged and reported back as a
falsy result so callers can leave the row unsynced.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Optional

from castboard.calendar_client import GoogleCalendarClient, load_service_account
from castboard.exceptions import ExternalServiceError
from castboard.models import ROLE_TYPE_LABEL, CastingRow, RoleType
from castboard.schedule import add_minutes

logger = logging.getLogger(__name__)

ROLE_COLORS = {
    RoleType.MALE_LEAD: "9",
    RoleType.FEMALE_LEAD: "6",
}
UNAVAILABLE_COLOR = "11"


@dataclass
class CalendarTargets:
    male_lead: Optional[str] = None
    female_lead: Optional[str] = None
    all_actors: Optional[str] = None
    time_zone: str = "Asia/Seoul"
    show_minutes: int = 120

    @classmethod
    def from_config(cls, config) -> "CalendarTargets":
        return cls(
            male_lead=config.CALENDAR_MALE_LEAD,
            female_lead=config.CALENDAR_FEMALE_LEAD,
            all_actors=config.CALENDAR_ALL_ACTORS,
            time_zone=config.CALENDAR_TIMEZONE,
            show_minutes=config.SHOW_MINUTES,
        )


@dataclass
class EventIds:
    calendar_id: Optional[str] = None
    calendar_event_id: Optional[str] = None
    all_calendar_event_id: Optional[str] = None
    synced: bool = False


class CalendarMirror:
    def __init__(self, client: Optional[GoogleCalendarClient], targets: CalendarTargets):
        self.client = client
        self.targets = targets

    @classmethod
    def from_config(cls, config) -> "CalendarMirror":
        credentials = load_service_account(
            config.GOOGLE_SERVICE_ACCOUNT_EMAIL,
            config.GOOGLE_SERVICE_ACCOUNT_PRIVATE_KEY,
        )
        client = GoogleCalendarClient(credentials) if credentials is not None else None
        if client is None:
            logger.info("Google service account not configured; calendar sync disabled")
        return cls(client, CalendarTargets.from_config(config))

    def close(self) -> None:
        if self.client is not None:
            self.client.close()

    @property
    def enabled(self) -> bool:
        return self.client is not None

    def role_calendar(self, role_type: RoleType) -> Optional[str]:
        if role_type == RoleType.MALE_LEAD:
            return self.targets.male_lead
        return self.targets.female_lead

    def casting_calendar(self, casting: CastingRow) -> Optional[str]:
        return casting.actor_calendar_id or self.role_calendar(casting.role_type)

    def event_calendar(self, casting: CastingRow) -> Optional[str]:
        """Calendar holding the personal event, which may predate a calendar change."""
        return casting.event_calendar_id or self.casting_calendar(casting)

    # Event bodies

    def _casting_body(self, casting: CastingRow, description: Optional[str]) -> dict:
        summary = casting.actor_name
        if casting.label:
            summary += f" ({casting.label})"
        end_time = casting.end_time or add_minutes(casting.start_time, self.targets.show_minutes)
        body = {
            "summary": summary,
            "start": {"dateTime": f"{casting.date}T{casting.start_time}:00", "timeZone": self.targets.time_zone},
            "end": {"dateTime": f"{casting.date}T{end_time}:00", "timeZone": self.targets.time_zone},
            "colorId": ROLE_COLORS[casting.role_type],
        }
        if description:
            body["description"] = description
        return body

    def _unavailable_body(self, actor_name: str, slot_date: str) -> dict:
        next_day = (date.fromisoformat(slot_date) + timedelta(days=1)).isoformat()
        return {
            "summary": f"[불가] {actor_name}",
            "start": {"date": slot_date},
            "end": {"date": next_day},
            "colorId": UNAVAILABLE_COLOR,
        }

    # Casting events

    def publish_casting(
        self,
        casting: CastingRow,
        description: Optional[str] = None,
        attendee_email: Optional[str] = None,
    ) -> EventIds:
        """Create the personal event and its all-actors copy."""
        result = EventIds()
        if not self.enabled:
            logger.info(f"Skipping calendar publish for casting {casting.id}: calendar disabled")
            return result

        calendar_id = self.casting_calendar(casting)
        if not calendar_id:
            logger.error(f"No calendar configured for {casting.role_type.value}")
            return result

        body = self._casting_body(casting, description)
        send_updates = "none"
        if attendee_email:
            body["attendees"] = [{"email": attendee_email}]
            send_updates = "all"
        try:
            result.calendar_event_id = self.client.insert_event(calendar_id, body, send_updates=send_updates)
        except ExternalServiceError as e:
            logger.error(f"Failed to create casting event for casting {casting.id}: {e}")
            return result
        result.calendar_id = calendar_id

        mirrored = True
        if self.targets.all_actors:
            all_body = self._casting_body(casting, description)
            all_body["summary"] = f"{ROLE_TYPE_LABEL[casting.role_type]} {all_body['summary']}"
            try:
                result.all_calendar_event_id = self.client.insert_event(self.targets.all_actors, all_body)
            except ExternalServiceError as e:
                logger.error(f"Failed to mirror casting {casting.id} to all-actors calendar: {e}")
                mirrored = False

        result.synced = mirrored
        return result

    def remove_casting(
        self,
        casting: CastingRow,
        notify: bool = True,
        calendar_event_id: Optional[str] = None,
        all_calendar_event_id: Optional[str] = None,
    ) -> bool:
        """Delete both copies of a casting event.

        Event ids default to the ones stored on the casting row.
        """
        event_id = calendar_event_id or casting.calendar_event_id
        all_event_id = all_calendar_event_id or casting.all_calendar_event_id
        if not event_id and not all_event_id:
            return True
        if not self.enabled:
            logger.info(f"Skipping calendar delete for casting {casting.id}: calendar disabled")
            return False

        ok = True
        calendar_id = self.event_calendar(casting)
        if event_id and calendar_id:
            try:
                self.client.delete_event(calendar_id, event_id, send_updates="all" if notify else "none")
            except ExternalServiceError as e:
                logger.error(f"Failed to delete casting event {event_id}: {e}")
                ok = False
        if all_event_id and self.targets.all_actors:
            try:
                self.client.delete_event(self.targets.all_actors, all_event_id)
            except ExternalServiceError as e:
                logger.error(f"Failed to delete all-actors event {all_event_id}: {e}")
                ok = False
        return ok

    def update_description(self, casting: CastingRow, description: Optional[str]) -> bool:
        """Patch the description on both copies; time and summary stay."""
        if not casting.has_events:
            return False
        if not self.enabled:
            return False

        body = {"description": description or ""}
        ok = True
        calendar_id = self.event_calendar(casting)
        if casting.calendar_event_id and calendar_id:
            try:
                self.client.patch_event(calendar_id, casting.calendar_event_id, body)
            except ExternalServiceError as e:
                logger.error(f"Failed to update description of {casting.calendar_event_id}: {e}")
                ok = False
        if casting.all_calendar_event_id and self.targets.all_actors:
            try:
                self.client.patch_event(self.targets.all_actors, casting.all_calendar_event_id, body)
            except ExternalServiceError as e:
                logger.error(f"Failed to update all-actors description {casting.all_calendar_event_id}: {e}")
                ok = False
        return ok

    # Unavailable events

    def publish_unavailable(self, actor_name: str, actor_calendar_id: Optional[str], slot_date: str) -> EventIds:
        result = EventIds()
        if not self.enabled:
            return result

        body = self._unavailable_body(actor_name, slot_date)
        ok = True
        if actor_calendar_id:
            try:
                result.calendar_event_id = self.client.insert_event(actor_calendar_id, body)
            except ExternalServiceError as e:
                logger.error(f"Failed to create unavailable event for {actor_name} on {slot_date}: {e}")
                ok = False
        if self.targets.all_actors:
            try:
                result.all_calendar_event_id = self.client.insert_event(self.targets.all_actors, body)
            except ExternalServiceError as e:
                logger.error(f"Failed to mirror unavailable {actor_name} on {slot_date}: {e}")
                ok = False
        result.synced = ok and bool(result.calendar_event_id or result.all_calendar_event_id)
        return result

    def remove_unavailable(
        self,
        actor_calendar_id: Optional[str],
        calendar_event_id: Optional[str],
        all_calendar_event_id: Optional[str],
    ) -> bool:
        if not calendar_event_id and not all_calendar_event_id:
            return True
        if not self.enabled:
            return False

        ok = True
        if calendar_event_id and actor_calendar_id:
            try:
                self.client.delete_event(actor_calendar_id, calendar_event_id)
            except ExternalServiceError as e:
                logger.error(f"Failed to delete unavailable event {calendar_event_id}: {e}")
                ok = False
        if all_calendar_event_id and self.targets.all_actors:
            try:
                self.client.delete_event(self.targets.all_actors, all_calendar_event_id)
            except ExternalServiceError as e:
                logger.error(f"Failed to delete all-actors unavailable event {all_calendar_event_id}: {e}")
                ok = False
        return ok

    # Actor calendars

    def create_actor_calendar(self, actor_name: str) -> Optional[str]:
        if not self.enabled:
            return None
        try:
            return self.client.insert_calendar(f"공연 스케줄 - {actor_name}", self.targets.time_zone)
        except ExternalServiceError as e:
            logger.error(f"Failed to create calendar for {actor_name}: {e}")
            return None

    def share_calendar(self, calendar_id: str, email: str) -> bool:
        if not self.enabled:
            return False
        try:
            self.client.share_calendar(calendar_id, email)
            return True
        except ExternalServiceError as e:
            logger.error(f"Failed to share calendar {calendar_id} with {email}: {e}")
            return False
