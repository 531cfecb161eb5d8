"""Conflict rules for registrations, allocations and event nesting.

Every check is a pure function over entities the caller has already loaded.
A check returns ``None`` to allow, or a ``Violation`` naming why the candidate
is rejected. ``enforce`` turns a violation into the matching exception.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from booking.domain.errors import ErrorKind, error_for_kind
from booking.domain.models import Event, Registration, Resource, ResourceType


class Violation(BaseModel):
    kind: ErrorKind
    code: str
    message: str
    details: dict[str, Any] = Field(default_factory=dict)


def enforce(violation: Violation | None) -> None:
    """Raise the error matching *violation*; do nothing when it is ``None``."""
    if violation is None:
        return
    raise error_for_kind(violation.kind)(
        violation.message, code=violation.code, details=violation.details
    )


# ---------------------------------------------------------------------------
# Time overlap
# ---------------------------------------------------------------------------


def overlaps(
    a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime
) -> bool:
    """Half-open overlap of ``[a_start, a_end)`` and ``[b_start, b_end)``.

    Exact boundary touches (a_end == b_start) are NOT considered overlaps.
    """
    return a_start < b_end and a_end > b_start


def events_overlap(a: Event, b: Event) -> bool:
    return overlaps(a.start_time, a.end_time, b.start_time, b.end_time)


def find_conflicts(
    new_start: datetime,
    new_end: datetime,
    existing_events: Iterable[Event],
) -> list[Event]:
    """Return existing events that overlap with the given time range."""
    return [
        event
        for event in existing_events
        if overlaps(new_start, new_end, event.start_time, event.end_time)
    ]


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


def check_event_window(start_time: datetime, end_time: datetime) -> Violation | None:
    if end_time <= start_time:
        return Violation(
            kind=ErrorKind.INVALID_REQUEST,
            code="INVALID_TIME_RANGE",
            message="End time must be after start time",
            details={"start_time": start_time.isoformat(), "end_time": end_time.isoformat()},
        )
    return None


def check_parent_containment(
    parent: Event, child_start: datetime, child_end: datetime
) -> Violation | None:
    """The child window must sit inside the parent's, boundaries inclusive."""
    if child_start < parent.start_time or child_end > parent.end_time:
        return Violation(
            kind=ErrorKind.INVALID_REQUEST,
            code="PARENT_CONTAINMENT",
            message="Child event must be fully contained within parent event time",
            details={
                "parent_event_id": parent.id,
                "parent_start": parent.start_time.isoformat(),
                "parent_end": parent.end_time.isoformat(),
            },
        )
    return None


def check_parent_cycle(event_id: str, ancestors_of_parent: list[Event]) -> Violation | None:
    """Reject a parent whose own ancestry already contains the event."""
    if any(a.id == event_id for a in ancestors_of_parent):
        return Violation(
            kind=ErrorKind.INVALID_REQUEST,
            code="PARENT_CYCLE",
            message="Event cannot be nested under one of its own descendants",
            details={"event_id": event_id},
        )
    return None


# ---------------------------------------------------------------------------
# Registrations
# ---------------------------------------------------------------------------


def check_capacity(event: Event, registration_count: int) -> Violation | None:
    if registration_count >= event.capacity:
        return Violation(
            kind=ErrorKind.CONFLICT,
            code="CAPACITY_EXCEEDED",
            message="Event is at full capacity",
            details={
                "event_id": event.id,
                "capacity": event.capacity,
                "registration_count": registration_count,
            },
        )
    return None


def check_double_booking(event: Event, user_events: Iterable[Event]) -> Violation | None:
    """Reject when any other event the user attends overlaps *event*."""
    others = [e for e in user_events if e.id != event.id]
    clashes = find_conflicts(event.start_time, event.end_time, others)
    if clashes:
        clash = clashes[0]
        return Violation(
            kind=ErrorKind.CONFLICT,
            code="DOUBLE_BOOKING",
            message=f'User is already registered for overlapping event "{clash.name}"',
            details={
                "event_id": event.id,
                "conflicting_event_ids": [c.id for c in clashes],
            },
        )
    return None


def check_duplicate_registration(existing: Registration | None) -> Violation | None:
    if existing is None:
        return None
    who = "User" if existing.user_id is not None else "Email"
    return Violation(
        kind=ErrorKind.CONFLICT,
        code="DUPLICATE_REGISTRATION",
        message=f"{who} already registered for this event",
        details={"event_id": existing.event_id, "registration_id": existing.id},
    )


def check_not_checked_in(registration: Registration) -> Violation | None:
    if registration.checkin_time is not None:
        return Violation(
            kind=ErrorKind.INVALID_REQUEST,
            code="ALREADY_CHECKED_IN",
            message="Already checked in",
            details={
                "registration_id": registration.id,
                "checkin_time": registration.checkin_time.isoformat(),
            },
        )
    return None


# ---------------------------------------------------------------------------
# Resources and allocations
# ---------------------------------------------------------------------------


def check_resource_definition(
    type: ResourceType,
    is_global: bool,
    organization_id: str | None,
    max_concurrent_usage: int | None,
    available_quantity: int | None,
) -> Violation | None:
    """Shape rules a resource must satisfy before it is stored."""

    def invalid(message: str) -> Violation:
        return Violation(
            kind=ErrorKind.INVALID_REQUEST,
            code="INVALID_RESOURCE_DEFINITION",
            message=message,
            details={"type": str(type)},
        )

    if type == ResourceType.SHAREABLE and (
        max_concurrent_usage is None or max_concurrent_usage < 1
    ):
        return invalid("Shareable resources must have maxConcurrentUsage of at least 1")
    if type == ResourceType.CONSUMABLE and (
        available_quantity is None or available_quantity < 0
    ):
        return invalid("Consumable resources must have a non-negative availableQuantity")
    if is_global and organization_id is not None:
        return invalid("Global resources cannot belong to an organization")
    if not is_global and organization_id is None:
        return invalid("Non-global resources must belong to an organization")
    return None


def check_resource_scope(event: Event, resource: Resource) -> Violation | None:
    if resource.is_global or resource.organization_id == event.organization_id:
        return None
    return Violation(
        kind=ErrorKind.INVALID_REQUEST,
        code="RESOURCE_OUT_OF_SCOPE",
        message="Resource does not belong to the event organization",
        details={
            "event_id": event.id,
            "resource_id": resource.id,
            "event_organization_id": event.organization_id,
            "resource_organization_id": resource.organization_id,
        },
    )


def check_duplicate_allocation(event: Event, resource: Resource, exists: bool) -> Violation | None:
    if not exists:
        return None
    return Violation(
        kind=ErrorKind.CONFLICT,
        code="DUPLICATE_ALLOCATION",
        message="Resource already allocated to this event",
        details={"event_id": event.id, "resource_id": resource.id},
    )


def check_exclusive(
    event: Event, resource: Resource, allocated_events: Iterable[Event]
) -> Violation | None:
    clashes = find_conflicts(event.start_time, event.end_time, allocated_events)
    if clashes:
        clash = clashes[0]
        return Violation(
            kind=ErrorKind.CONFLICT,
            code="EXCLUSIVE_CONFLICT",
            message=(
                f'Exclusive resource "{resource.name}" is already allocated to '
                f'"{clash.name}" during this time'
            ),
            details={
                "resource_id": resource.id,
                "conflicting_event_id": clash.id,
            },
        )
    return None


def check_shareable(
    event: Event, resource: Resource, allocated_events: Iterable[Event]
) -> Violation | None:
    """Reject when the overlapping allocations plus this one exceed the max."""
    concurrent = find_conflicts(event.start_time, event.end_time, allocated_events)
    limit = resource.max_concurrent_usage or 0
    if len(concurrent) + 1 > limit:
        return Violation(
            kind=ErrorKind.CONFLICT,
            code="SHAREABLE_CAPACITY_EXCEEDED",
            message=(
                f'Shareable resource "{resource.name}" has reached max concurrent '
                f"usage ({limit})"
            ),
            details={
                "resource_id": resource.id,
                "max_concurrent_usage": limit,
                "concurrent_event_ids": [e.id for e in concurrent],
            },
        )
    return None


def check_consumable(
    resource: Resource, quantity_used: int | None, total_used: int
) -> Violation | None:
    if quantity_used is None or quantity_used <= 0:
        return Violation(
            kind=ErrorKind.INVALID_REQUEST,
            code="QUANTITY_REQUIRED",
            message="Quantity must be specified for consumable resources",
            details={"resource_id": resource.id},
        )
    available = resource.available_quantity or 0
    if total_used + quantity_used > available:
        return Violation(
            kind=ErrorKind.CONFLICT,
            code="CONSUMABLE_QUANTITY_EXCEEDED",
            message=(
                f'Insufficient quantity for "{resource.name}". '
                f"Available: {available - total_used}, Requested: {quantity_used}"
            ),
            details={
                "resource_id": resource.id,
                "available_quantity": available,
                "total_used": total_used,
                "requested": quantity_used,
            },
        )
    return None


def check_resource_allocation(
    event: Event,
    resource: Resource,
    allocated_events: Iterable[Event],
    total_used: int,
    quantity_used: int | None,
) -> Violation | None:
    """Dispatch to the type-specific rule for *resource*."""
    if resource.type == ResourceType.EXCLUSIVE:
        return check_exclusive(event, resource, allocated_events)
    if resource.type == ResourceType.SHAREABLE:
        return check_shareable(event, resource, allocated_events)
    return check_consumable(resource, quantity_used, total_used)
