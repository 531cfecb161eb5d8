"""Shared fixtures: a fresh store, bus and service set per test."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from booking.domain.bus import EventBus
from booking.domain.handlers import HandlerRegistry
from booking.domain.models import (
    Allocation,
    Event,
    EventCreate,
    Organization,
    OrganizationCreate,
    Registration,
    Resource,
    ResourceCreate,
    ResourceType,
    UserCreate,
)
from booking.repos.memory import Store
from booking.services.allocations import AllocationService
from booking.services.directory import OrganizationService, ResourceService, UserService
from booking.services.events import EventService
from booking.services.registrations import RegistrationService
from booking.services.reports import ReportingEngine

_DAY = datetime(2026, 6, 1, tzinfo=timezone.utc)


def at(hour: int, minute: int = 0, day: int = 0) -> datetime:
    """A UTC timestamp on the fixed test day (plus *day* days)."""
    return _DAY + timedelta(days=day, hours=hour, minutes=minute)


class Env:
    def __init__(self) -> None:
        self.store = Store()
        self.bus = EventBus()
        self.registry = HandlerRegistry(bus=self.bus, store=self.store)
        self.organizations = OrganizationService(self.store, self.bus)
        self.users = UserService(self.store, self.bus)
        self.resources = ResourceService(self.store, self.bus)
        self.events = EventService(self.store, self.bus)
        self.registrations = RegistrationService(self.store)
        self.allocations = AllocationService(self.store, self.bus)
        self.reports = ReportingEngine(self.store)
        self.org = self.organizations.create(OrganizationCreate(name="Acme"))
        self._user_seq = 0

    # Created through the services (all checks apply)

    def make_org(self, name: str) -> Organization:
        return self.organizations.create(OrganizationCreate(name=name))

    def make_user(self, name: str = "Alice", org: Organization | None = None):
        self._user_seq += 1
        return self.users.create(
            UserCreate(
                email=f"{name.lower()}{self._user_seq}@example.com",
                name=name,
                organization_id=(org or self.org).id,
            )
        )

    def make_event(
        self,
        name: str,
        start: datetime,
        end: datetime,
        capacity: int = 10,
        parent: Event | None = None,
        org: Organization | None = None,
    ) -> Event:
        return self.events.create(
            EventCreate(
                name=name,
                start_time=start,
                end_time=end,
                capacity=capacity,
                organization_id=(org or self.org).id,
                parent_event_id=parent.id if parent else None,
            )
        )

    def make_resource(
        self,
        name: str,
        type: ResourceType,
        max_concurrent_usage: int | None = None,
        available_quantity: int | None = None,
        org: Organization | None = None,
        is_global: bool = False,
    ) -> Resource:
        return self.resources.create(
            ResourceCreate(
                name=name,
                type=type,
                organization_id=None if is_global else (org or self.org).id,
                is_global=is_global,
                max_concurrent_usage=max_concurrent_usage,
                available_quantity=available_quantity,
            )
        )

    # Written straight into the store, bypassing every rule (seed data)

    def seed_event(
        self,
        name: str,
        start: datetime,
        end: datetime,
        parent: Event | None = None,
        capacity: int = 10,
        org: Organization | None = None,
    ) -> Event:
        event = Event(
            name=name,
            start_time=start,
            end_time=end,
            capacity=capacity,
            organization_id=(org or self.org).id,
            parent_event_id=parent.id if parent else None,
        )
        self.store.events.add(event)
        return event

    def seed_allocation(
        self, event: Event, resource: Resource, quantity_used: int | None = None
    ) -> Allocation:
        allocation = Allocation(
            event_id=event.id, resource_id=resource.id, quantity_used=quantity_used
        )
        self.store.allocations.add(allocation)
        return allocation

    def seed_registration(
        self, event: Event, user_id: str | None = None, email: str | None = None
    ) -> Registration:
        registration = Registration(event_id=event.id, user_id=user_id, external_email=email)
        self.store.registrations.add(registration)
        return registration


@pytest.fixture()
def env() -> Env:
    """Fresh store + bus + services for each test, with one organization."""
    return Env()
