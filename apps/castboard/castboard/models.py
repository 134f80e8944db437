from __future__ import annotations

import re
from datetime import date as date_type
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel


class RoleType(str, Enum):
    MALE_LEAD = "MALE_LEAD"
    FEMALE_LEAD = "FEMALE_LEAD"


class UserRole(str, Enum):
    ADMIN = "ADMIN"
    ACTOR = "ACTOR"


ROLE_TYPE_LABEL = {
    RoleType.MALE_LEAD: "남1",
    RoleType.FEMALE_LEAD: "여1",
}


class CamelModel(BaseModel):
    """JSON boundary model: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def casting_key(performance_date_id: int, role_type) -> str:
    role = role_type.value if isinstance(role_type, RoleType) else role_type
    return f"{performance_date_id}_{role}"


def _blank_to_none(value):
    if value is None or (isinstance(value, str) and value.strip() == ""):
        return None
    return value


# Rows hydrated from queries


class ActorOut(CamelModel):
    id: int
    name: str
    role_type: RoleType
    calendar_id: Optional[str] = None
    user_id: Optional[int] = None
    user_email: Optional[str] = None


class PerformanceOut(CamelModel):
    id: int
    date: str
    start_time: str
    end_time: Optional[str] = None
    label: Optional[str] = None


class CastingRow(CamelModel):
    id: int
    performance_date_id: int
    actor_id: int
    role_type: RoleType
    synced: bool = False
    event_calendar_id: Optional[str] = None
    calendar_event_id: Optional[str] = None
    all_calendar_event_id: Optional[str] = None
    actor_name: str
    actor_calendar_id: Optional[str] = None
    date: str
    start_time: str
    end_time: Optional[str] = None
    label: Optional[str] = None

    @property
    def has_events(self) -> bool:
        return bool(self.calendar_event_id or self.all_calendar_event_id)


class UnavailableRow(CamelModel):
    id: int
    actor_id: int
    performance_date_id: int
    synced: bool = False
    calendar_event_id: Optional[str] = None
    all_calendar_event_id: Optional[str] = None
    date: str
    start_time: str


class ReservationStatusOut(CamelModel):
    performance_date_id: int
    has_reservation: bool = False
    reservation_name: Optional[str] = None
    reservation_contact: Optional[str] = None
    checked_at: Optional[str] = None


# Requests


class CastingChange(CamelModel):
    performance_date_id: int
    actor_id: Optional[int] = None
    role_type: RoleType

    @field_validator("actor_id", mode="before")
    @classmethod
    def _empty_actor_is_unassign(cls, value):
        return _blank_to_none(value)

    @property
    def key(self) -> str:
        return casting_key(self.performance_date_id, self.role_type)


class ReservationMemo(CamelModel):
    performance_date_id: int
    reservation_name: Optional[str] = None
    reservation_contact: Optional[str] = None

    @field_validator("reservation_name", "reservation_contact", mode="before")
    @classmethod
    def _strip_blank(cls, value):
        return _blank_to_none(value)


class CastingBatchRequest(CamelModel):
    changes: List[CastingChange] = Field(min_length=1)
    memos: List[ReservationMemo] = Field(default_factory=list)


class UnavailableRequest(CamelModel):
    actor_id: int
    performance_date_ids: List[int]


class ActorCreate(CamelModel):
    name: str = Field(min_length=1, max_length=100)
    role_type: RoleType
    calendar_id: Optional[str] = None

    @field_validator("calendar_id", mode="before")
    @classmethod
    def _blank_calendar(cls, value):
        return _blank_to_none(value)


class ActorUpdate(CamelModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    role_type: Optional[RoleType] = None
    calendar_id: Optional[str] = None
    user_email: Optional[EmailStr] = None

    @field_validator("calendar_id", "user_email", mode="before")
    @classmethod
    def _blank_fields(cls, value):
        return _blank_to_none(value)


class ActorLink(CamelModel):
    user_id: int


class OverrideToggle(CamelModel):
    actor_id: int
    year: int = Field(ge=2000, le=2100)
    month: int = Field(ge=1, le=12)


class NotifyRequest(CamelModel):
    casting_ids: List[int] = Field(min_length=1)


# Crawler payloads keep the crawler's snake_case keys


class Booking(BaseModel):
    customer_name: str = ""
    phone_number: str = ""
    booking_time: str
    has_visitor: bool = False
    visitor_name: Optional[str] = None
    visitor_phone: Optional[str] = None


class BookingBatch(BaseModel):
    date: str
    bookings: List[Booking]

    @field_validator("date")
    @classmethod
    def _validate_date(cls, value: str):
        if not re.match(r"^\d{4}-\d{2}-\d{2}$", value):
            raise ValueError("date must be YYYY-MM-DD")
        date_type.fromisoformat(value)
        return value


class MonthRef(BaseModel):
    year: int = Field(ge=2000, le=2100)
    month: int = Field(ge=1, le=12)


class ReservationSyncRequest(BaseModel):
    months: List[MonthRef] = Field(min_length=1)
    reservations: Dict[str, List[str]]
    booking_details: Dict[str, List[Booking]] = Field(default_factory=dict)


# Responses


class SlotOut(CamelModel):
    id: int
    start_time: str
    end_time: Optional[str] = None
    label: Optional[str] = None


class CastingCell(CamelModel):
    actor_id: int
    actor_name: str
    synced: bool = False


class ScheduleOut(CamelModel):
    performances: Dict[str, List[SlotOut]]
    castings: Dict[str, CastingCell]
    unavailable: Dict[int, List[int]]
    actors: List[ActorOut]
    overridden_actors: Optional[List[int]] = None
    reservations: Optional[Dict[int, ReservationStatusOut]] = None


class AssignResult(CamelModel):
    action: str
    casting: Optional[CastingRow] = None
    synced: bool = False


class ChangeResult(CamelModel):
    key: str
    success: bool
    error: Optional[str] = None
    synced: Optional[bool] = None


class BatchResult(CamelModel):
    success_count: int
    fail_count: int
    results: List[ChangeResult]


class UnavailableResult(CamelModel):
    actor_id: int
    performance_date_ids: List[int]
    added: int
    removed: int
    removed_castings: List[int]


class BookingResult(BaseModel):
    booking_time: str
    success: bool
    error: Optional[str] = None


class RecordBookingsResult(BaseModel):
    date: str
    success_count: int
    fail_count: int
    results: List[BookingResult]


class SyncReservationsResult(BaseModel):
    total: int
    reserved: int
    cleared: int
    calendar_updated: int
    failures: List[BookingResult] = Field(default_factory=list)


class CleanupResult(BaseModel):
    total: int
    cleaned: int
    calendar_updated: int
    failed: int = 0


class SyncCounter(BaseModel):
    synced: int = 0
    failed: int = 0


class CalendarSyncResult(BaseModel):
    unavailable: SyncCounter
    casting: SyncCounter


class CalendarProvisionResult(BaseModel):
    created: int
    shared: int
    skipped: int
    errors: List[str] = Field(default_factory=list)


class NotifyResult(BaseModel):
    sent: int
    failed: int
