"""Allocation of exclusive, shareable and consumable resources to events."""

from __future__ import annotations

import logging

from booking.domain.bus import EventBus
from booking.domain.errors import BookingError, NotFoundError
from booking.domain.events import AllocationChanged
from booking.domain.models import Allocation, Event, Resource, ResourceType
from booking.repos.memory import Store
from booking.services.conflicts import (
    check_duplicate_allocation,
    check_resource_allocation,
    check_resource_scope,
    enforce,
)

logger = logging.getLogger(__name__)


class AllocationService:
    def __init__(self, store: Store, bus: EventBus) -> None:
        self.store = store
        self.bus = bus

    def create(
        self, event_id: str, resource_id: str, quantity_used: int | None = None
    ) -> Allocation:
        """Allocate *resource_id* to *event_id* after scope and type checks.

        Only rows that could compete are loaded: overlapping allocations for
        time-bound resources, the running total for consumables.
        """
        with self.store.atomic():
            event = self._get_event(event_id)
            resource = self._get_resource(resource_id)
            try:
                enforce(check_resource_scope(event, resource))
                enforce(
                    check_duplicate_allocation(
                        event,
                        resource,
                        self.store.allocations.find(event_id, resource_id) is not None,
                    )
                )
                competing: list[Event] = []
                total_used = 0
                if resource.type == ResourceType.CONSUMABLE:
                    total_used = self.store.allocations.total_quantity_used(resource_id)
                else:
                    competing = [
                        e
                        for _, e in self.store.overlapping_allocations(
                            resource_id, event.start_time, event.end_time
                        )
                    ]
                enforce(
                    check_resource_allocation(
                        event, resource, competing, total_used, quantity_used
                    )
                )
            except BookingError as exc:
                logger.warning(
                    "Rejected allocation of resource %s to event %s: %s",
                    resource_id,
                    event_id,
                    exc.code,
                )
                raise
            allocation = Allocation(
                event_id=event_id,
                resource_id=resource_id,
                quantity_used=(
                    quantity_used if resource.type == ResourceType.CONSUMABLE else None
                ),
            )
            self.store.allocations.add(allocation)
        logger.info(
            "Allocated %s resource %s to event %s", resource.type, resource_id, event_id
        )
        self.bus.publish(AllocationChanged(resource_id=resource_id, allocation_id=allocation.id))
        return allocation

    def remove(self, allocation_id: str) -> None:
        with self.store.atomic():
            allocation = self.get(allocation_id)
            self.store.allocations.delete(allocation_id)
        logger.info("Removed allocation %s", allocation_id)
        self.bus.publish(
            AllocationChanged(resource_id=allocation.resource_id, allocation_id=allocation_id)
        )

    def get(self, allocation_id: str) -> Allocation:
        allocation = self.store.allocations.get(allocation_id)
        if allocation is None:
            raise NotFoundError.for_entity("Allocation", allocation_id)
        return allocation

    def list_by_event(self, event_id: str) -> list[Allocation]:
        self._get_event(event_id)
        return self.store.allocations.list_for_event(event_id)

    def list_by_resource(self, resource_id: str) -> list[Allocation]:
        self._get_resource(resource_id)
        return self.store.allocations.list_for_resource(resource_id)

    def _get_event(self, event_id: str) -> Event:
        event = self.store.events.get(event_id)
        if event is None:
            raise NotFoundError.for_entity("Event", event_id)
        return event

    def _get_resource(self, resource_id: str) -> Resource:
        resource = self.store.resources.get(resource_id)
        if resource is None:
            raise NotFoundError.for_entity("Resource", resource_id)
        return resource
