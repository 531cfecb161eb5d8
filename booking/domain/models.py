"""Domain models for the event booking and resource scheduling core."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import StrEnum

from pydantic import BaseModel, Field, field_validator, model_validator


class ResourceType(StrEnum):
    EXCLUSIVE = "EXCLUSIVE"
    SHAREABLE = "SHAREABLE"
    CONSUMABLE = "CONSUMABLE"


class PeakStatus(StrEnum):
    EXCEEDED = "EXCEEDED"
    AT_CAPACITY = "AT_CAPACITY"
    OK = "OK"


class UtilizationStatus(StrEnum):
    UNUSED = "UNUSED"
    UNDERUTILIZED = "UNDERUTILIZED"
    ACTIVE = "ACTIVE"


class ParentChildViolationType(StrEnum):
    CHILD_STARTS_BEFORE_PARENT = "CHILD_STARTS_BEFORE_PARENT"
    CHILD_ENDS_AFTER_PARENT = "CHILD_ENDS_AFTER_PARENT"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


def as_utc(dt: datetime | None) -> datetime | None:
    """Naive datetimes are taken to be UTC; aware ones are converted to UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


# ---------------------------------------------------------------------------
# Core domain models
# ---------------------------------------------------------------------------


class Organization(BaseModel):
    id: str = Field(default_factory=_new_id)
    name: str
    description: str | None = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class User(BaseModel):
    id: str = Field(default_factory=_new_id)
    email: str
    name: str
    organization_id: str
    # Opaque; produced by whatever auth layer sits in front of the core.
    credential_hash: str | None = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class Resource(BaseModel):
    id: str = Field(default_factory=_new_id)
    name: str
    description: str | None = None
    type: ResourceType
    organization_id: str | None = None
    is_global: bool = False
    max_concurrent_usage: int | None = None
    available_quantity: int | None = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class Event(BaseModel):
    id: str = Field(default_factory=_new_id)
    name: str
    description: str | None = None
    start_time: datetime
    end_time: datetime
    capacity: int = Field(ge=1)
    organization_id: str
    parent_event_id: str | None = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @field_validator("start_time", "end_time", mode="after")
    @classmethod
    def normalize_times(cls, value: datetime | None) -> datetime | None:
        return as_utc(value)

    @model_validator(mode="after")
    def _end_after_start(self) -> Event:
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self

    @property
    def duration_hours(self) -> float:
        return (self.end_time - self.start_time).total_seconds() / 3600


class Registration(BaseModel):
    id: str = Field(default_factory=_new_id)
    event_id: str
    user_id: str | None = None
    external_email: str | None = None
    registered_at: datetime = Field(default_factory=_utcnow)
    checkin_time: datetime | None = None

    @model_validator(mode="after")
    def _exactly_one_attendee(self) -> Registration:
        if (self.user_id is None) == (self.external_email is None):
            raise ValueError("exactly one of user_id or external_email must be set")
        return self

    @property
    def is_external(self) -> bool:
        return self.external_email is not None


class Allocation(BaseModel):
    id: str = Field(default_factory=_new_id)
    event_id: str
    resource_id: str
    quantity_used: int | None = None
    allocated_at: datetime = Field(default_factory=_utcnow)


# ---------------------------------------------------------------------------
# Request DTOs
# ---------------------------------------------------------------------------


class OrganizationCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: str | None = None


class OrganizationUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None


class UserCreate(BaseModel):
    email: str = Field(min_length=3, max_length=255)
    name: str = Field(min_length=1, max_length=255)
    organization_id: str
    credential_hash: str | None = None


class UserUpdate(BaseModel):
    email: str | None = Field(default=None, min_length=3, max_length=255)
    name: str | None = Field(default=None, min_length=1, max_length=255)
    credential_hash: str | None = None


class ResourceCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: str | None = None
    type: ResourceType
    organization_id: str | None = None
    is_global: bool = False
    max_concurrent_usage: int | None = None
    available_quantity: int | None = None


class ResourceUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    max_concurrent_usage: int | None = None
    available_quantity: int | None = None


class EventCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: str | None = None
    start_time: datetime
    end_time: datetime
    capacity: int = Field(ge=1)
    organization_id: str
    parent_event_id: str | None = None

    @field_validator("start_time", "end_time", mode="after")
    @classmethod
    def normalize_times(cls, value: datetime | None) -> datetime | None:
        return as_utc(value)


class EventUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None
    capacity: int | None = Field(default=None, ge=1)
    parent_event_id: str | None = None

    @field_validator("start_time", "end_time", mode="after")
    @classmethod
    def normalize_times(cls, value: datetime | None) -> datetime | None:
        return as_utc(value)


class UserRegistrationCreate(BaseModel):
    event_id: str
    user_id: str


class ExternalRegistrationCreate(BaseModel):
    event_id: str
    external_email: str = Field(min_length=3, max_length=255)


class AllocationCreate(BaseModel):
    event_id: str
    resource_id: str
    quantity_used: int | None = None


# ---------------------------------------------------------------------------
# Report rows
# ---------------------------------------------------------------------------


class DoubleBookedUserRow(BaseModel):
    user_id: str
    user_name: str
    user_email: str
    event1_id: str
    event1_name: str
    event1_start: datetime
    event1_end: datetime
    event2_id: str
    event2_name: str
    event2_start: datetime
    event2_end: datetime


class ExclusiveConflictRow(BaseModel):
    resource_id: str
    resource_name: str
    event1_id: str
    event1_name: str
    event1_start: datetime
    event1_end: datetime
    event2_id: str
    event2_name: str
    event2_start: datetime
    event2_end: datetime


class ShareableViolationRow(BaseModel):
    resource_id: str
    resource_name: str
    max_concurrent_usage: int
    event_id: str
    event_name: str
    start_time: datetime
    end_time: datetime
    concurrent_count: int


class ConsumableViolationRow(BaseModel):
    resource_id: str
    resource_name: str
    available_quantity: int
    total_allocated: int
    over_allocation: int


class ResourceViolationsReport(BaseModel):
    shareable_violations: list[ShareableViolationRow] = Field(default_factory=list)
    exclusive_violations: list[ExclusiveConflictRow] = Field(default_factory=list)
    consumable_violations: list[ConsumableViolationRow] = Field(default_factory=list)


class PeakUsageRow(BaseModel):
    resource_id: str
    resource_name: str
    max_concurrent_usage: int | None
    peak_concurrent_usage: int
    status: PeakStatus


class ParentChildViolationRow(BaseModel):
    parent_id: str
    parent_name: str
    parent_start: datetime
    parent_end: datetime
    child_id: str
    child_name: str
    child_start: datetime
    child_end: datetime
    hierarchy_depth: int
    violation_type: ParentChildViolationType


class ExternalAttendeeRow(BaseModel):
    event_id: str
    event_name: str
    start_time: datetime
    end_time: datetime
    capacity: int
    organization_id: str
    organization_name: str
    external_attendee_count: int
    registered_user_count: int
    total_registrations: int


class UtilizationRow(BaseModel):
    resource_id: str
    resource_name: str
    resource_type: ResourceType
    organization_id: str | None
    organization_name: str | None
    is_global: bool
    total_hours_used: float
    total_allocations: int
    capacity: int | None
    utilization_status: UtilizationStatus


class UtilizationSnapshot(BaseModel):
    refreshed_at: datetime | None = None
    stale: bool = True
    rows: list[UtilizationRow] = Field(default_factory=list)
