"""In-memory repositories backing the booking core.

Each repository is a dict keyed by id. ``Store`` groups them, answers the
cross-table queries the services need, and owns the lock that makes a
service's read-validate-write sequence atomic.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime

from booking.domain.errors import ConflictError
from booking.domain.models import (
    Allocation,
    Event,
    Organization,
    Registration,
    Resource,
    UtilizationRow,
    UtilizationSnapshot,
    User,
)


class OrganizationRepository:
    """Dict-backed store for Organization instances, keyed by id."""

    def __init__(self) -> None:
        self._store: dict[str, Organization] = {}

    def add(self, organization: Organization) -> None:
        self._store[organization.id] = organization

    def get(self, organization_id: str) -> Organization | None:
        return self._store.get(organization_id)

    def list_all(self) -> list[Organization]:
        return list(self._store.values())

    def delete(self, organization_id: str) -> None:
        self._store.pop(organization_id, None)


class UserRepository:
    """Dict-backed store for User instances; email is unique across tenants."""

    def __init__(self) -> None:
        self._store: dict[str, User] = {}

    def add(self, user: User) -> None:
        existing = self.get_by_email(user.email)
        if existing is not None and existing.id != user.id:
            raise ConflictError(
                "Email already exists",
                code="DUPLICATE_EMAIL",
                details={"email": user.email, "user_id": existing.id},
            )
        self._store[user.id] = user

    def get(self, user_id: str) -> User | None:
        return self._store.get(user_id)

    def get_by_email(self, email: str) -> User | None:
        for user in self._store.values():
            if user.email == email:
                return user
        return None

    def list_all(self) -> list[User]:
        return list(self._store.values())

    def list_for_organization(self, organization_id: str) -> list[User]:
        return [u for u in self._store.values() if u.organization_id == organization_id]

    def delete(self, user_id: str) -> None:
        self._store.pop(user_id, None)


class ResourceRepository:
    """Dict-backed store for Resource instances, keyed by id."""

    def __init__(self) -> None:
        self._store: dict[str, Resource] = {}

    def add(self, resource: Resource) -> None:
        self._store[resource.id] = resource

    def get(self, resource_id: str) -> Resource | None:
        return self._store.get(resource_id)

    def list_all(self) -> list[Resource]:
        return list(self._store.values())

    def list_for_organization(self, organization_id: str) -> list[Resource]:
        """Resources owned by the organization (global ones excluded)."""
        return [r for r in self._store.values() if r.organization_id == organization_id]

    def list_visible_to(self, organization_id: str) -> list[Resource]:
        """Resources the organization may allocate: its own plus global ones."""
        return [
            r
            for r in self._store.values()
            if r.is_global or r.organization_id == organization_id
        ]

    def delete(self, resource_id: str) -> None:
        self._store.pop(resource_id, None)


class EventRepository:
    """Dict-backed store for Event instances, keyed by id."""

    def __init__(self) -> None:
        self._store: dict[str, Event] = {}

    def add(self, event: Event) -> None:
        self._store[event.id] = event

    def get(self, event_id: str) -> Event | None:
        return self._store.get(event_id)

    def list_all(self) -> list[Event]:
        return list(self._store.values())

    def list_for_organization(self, organization_id: str) -> list[Event]:
        return [e for e in self._store.values() if e.organization_id == organization_id]

    def list_in_window(
        self,
        organization_id: str | None = None,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ) -> list[Event]:
        """Events starting at or after *start_date* and ending by *end_date*."""
        events = [
            e
            for e in self._store.values()
            if (organization_id is None or e.organization_id == organization_id)
            and (start_date is None or e.start_time >= start_date)
            and (end_date is None or e.end_time <= end_date)
        ]
        return sorted(events, key=lambda e: e.start_time)

    def list_children(self, parent_id: str) -> list[Event]:
        return sorted(
            (e for e in self._store.values() if e.parent_event_id == parent_id),
            key=lambda e: e.start_time,
        )

    def list_with_parent(self) -> list[Event]:
        return [e for e in self._store.values() if e.parent_event_id is not None]

    def delete(self, event_id: str) -> None:
        self._store.pop(event_id, None)


class RegistrationRepository:
    """Dict-backed store for Registration instances.

    Unique per (event, user) and per (event, external email).
    """

    def __init__(self) -> None:
        self._store: dict[str, Registration] = {}

    def add(self, registration: Registration) -> None:
        if registration.user_id is not None:
            existing = self.find_for_user(registration.event_id, registration.user_id)
        else:
            existing = self.find_for_email(
                registration.event_id, registration.external_email
            )
        if existing is not None and existing.id != registration.id:
            raise ConflictError(
                "Attendee already registered for this event",
                code="DUPLICATE_REGISTRATION",
                details={"event_id": registration.event_id, "registration_id": existing.id},
            )
        self._store[registration.id] = registration

    def get(self, registration_id: str) -> Registration | None:
        return self._store.get(registration_id)

    def list_all(self) -> list[Registration]:
        return list(self._store.values())

    def list_for_event(self, event_id: str) -> list[Registration]:
        return sorted(
            (r for r in self._store.values() if r.event_id == event_id),
            key=lambda r: r.registered_at,
        )

    def list_for_user(self, user_id: str) -> list[Registration]:
        return [r for r in self._store.values() if r.user_id == user_id]

    def count_for_event(self, event_id: str) -> int:
        return sum(1 for r in self._store.values() if r.event_id == event_id)

    def find_for_user(self, event_id: str, user_id: str) -> Registration | None:
        for r in self._store.values():
            if r.event_id == event_id and r.user_id == user_id:
                return r
        return None

    def find_for_email(self, event_id: str, email: str | None) -> Registration | None:
        for r in self._store.values():
            if r.event_id == event_id and r.external_email == email:
                return r
        return None

    def delete(self, registration_id: str) -> None:
        self._store.pop(registration_id, None)

    def delete_for_event(self, event_id: str) -> int:
        doomed = [rid for rid, r in self._store.items() if r.event_id == event_id]
        for rid in doomed:
            del self._store[rid]
        return len(doomed)

    def delete_for_user(self, user_id: str) -> int:
        doomed = [rid for rid, r in self._store.items() if r.user_id == user_id]
        for rid in doomed:
            del self._store[rid]
        return len(doomed)


class AllocationRepository:
    """Dict-backed store for Allocation instances; unique per (event, resource)."""

    def __init__(self) -> None:
        self._store: dict[str, Allocation] = {}

    def add(self, allocation: Allocation) -> None:
        existing = self.find(allocation.event_id, allocation.resource_id)
        if existing is not None and existing.id != allocation.id:
            raise ConflictError(
                "Resource already allocated to this event",
                code="DUPLICATE_ALLOCATION",
                details={
                    "event_id": allocation.event_id,
                    "resource_id": allocation.resource_id,
                    "allocation_id": existing.id,
                },
            )
        self._store[allocation.id] = allocation

    def get(self, allocation_id: str) -> Allocation | None:
        return self._store.get(allocation_id)

    def find(self, event_id: str, resource_id: str) -> Allocation | None:
        for a in self._store.values():
            if a.event_id == event_id and a.resource_id == resource_id:
                return a
        return None

    def list_all(self) -> list[Allocation]:
        return list(self._store.values())

    def list_for_event(self, event_id: str) -> list[Allocation]:
        return sorted(
            (a for a in self._store.values() if a.event_id == event_id),
            key=lambda a: a.allocated_at,
        )

    def list_for_resource(self, resource_id: str) -> list[Allocation]:
        return sorted(
            (a for a in self._store.values() if a.resource_id == resource_id),
            key=lambda a: a.allocated_at,
        )

    def total_quantity_used(self, resource_id: str) -> int:
        return sum(
            a.quantity_used or 0
            for a in self._store.values()
            if a.resource_id == resource_id
        )

    def delete(self, allocation_id: str) -> None:
        self._store.pop(allocation_id, None)


class UtilizationSnapshotRepository:
    """Holds the last computed utilization rows until the next refresh."""

    def __init__(self) -> None:
        self._snapshot = UtilizationSnapshot()

    def get(self) -> UtilizationSnapshot:
        return self._snapshot

    def replace(self, rows: list[UtilizationRow], refreshed_at: datetime) -> None:
        self._snapshot = UtilizationSnapshot(
            refreshed_at=refreshed_at, stale=False, rows=rows
        )

    def mark_stale(self) -> None:
        self._snapshot = self._snapshot.model_copy(update={"stale": True})

    def clear(self) -> None:
        self._snapshot = UtilizationSnapshot()


class Store:
    """All repositories plus the cross-table queries the services rely on."""

    def __init__(self) -> None:
        self.organizations = OrganizationRepository()
        self.users = UserRepository()
        self.resources = ResourceRepository()
        self.events = EventRepository()
        self.registrations = RegistrationRepository()
        self.allocations = AllocationRepository()
        self.utilization = UtilizationSnapshotRepository()
        self._lock = threading.RLock()

    @contextmanager
    def atomic(self) -> Iterator[Store]:
        """Serialize a check-then-act sequence against other writers."""
        with self._lock:
            yield self

    def clear(self) -> None:
        with self._lock:
            self.organizations._store.clear()
            self.users._store.clear()
            self.resources._store.clear()
            self.events._store.clear()
            self.registrations._store.clear()
            self.allocations._store.clear()
            self.utilization.clear()

    def events_for_user(
        self,
        user_id: str,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[Event]:
        """Events the user is registered for, optionally limited to a window."""
        events = []
        for registration in self.registrations.list_for_user(user_id):
            event = self.events.get(registration.event_id)
            if event is None:
                continue
            if start is not None and end is not None:
                if not (event.start_time < end and event.end_time > start):
                    continue
            events.append(event)
        return events

    def allocations_with_events(self, resource_id: str) -> list[tuple[Allocation, Event]]:
        pairs = []
        for allocation in self.allocations.list_for_resource(resource_id):
            event = self.events.get(allocation.event_id)
            if event is not None:
                pairs.append((allocation, event))
        return pairs

    def overlapping_allocations(
        self, resource_id: str, start: datetime, end: datetime
    ) -> list[tuple[Allocation, Event]]:
        """Allocations of the resource whose events intersect ``[start, end)``."""
        return [
            (allocation, event)
            for allocation, event in self.allocations_with_events(resource_id)
            if event.start_time < end and event.end_time > start
        ]

    def ancestor_chain(self, event_id: str) -> list[Event]:
        """Ancestors of the event, nearest parent first and root last.

        Stops at a missing parent or at the first repeated id.
        """
        chain: list[Event] = []
        seen = {event_id}
        current = self.events.get(event_id)
        while current is not None and current.parent_event_id is not None:
            if current.parent_event_id in seen:
                break
            parent = self.events.get(current.parent_event_id)
            if parent is None:
                break
            chain.append(parent)
            seen.add(parent.id)
            current = parent
        return chain

    def descendant_chains(self) -> Iterator[tuple[Event, list[Event]]]:
        """Every event that has a parent, paired with its ancestor chain."""
        for event in self.events.list_with_parent():
            chain = self.ancestor_chain(event.id)
            if chain:
                yield event, chain
