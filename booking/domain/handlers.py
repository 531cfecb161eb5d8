"""Domain event handlers, wired up at application startup."""

from __future__ import annotations

import logging

from booking.domain.bus import EventBus
from booking.domain.events import (
    AllocationChanged,
    EventDeleted,
    OrganizationDeleted,
    ResourceDeleted,
    UserDeleted,
)
from booking.repos.memory import Store

logger = logging.getLogger(__name__)


class HandlerRegistry:
    """Wires the deletion cascades and snapshot invalidation to the bus."""

    def __init__(self, bus: EventBus, store: Store) -> None:
        self.bus = bus
        self.store = store
        self._register()

    def _register(self) -> None:
        self.bus.subscribe(OrganizationDeleted, self.on_organization_deleted)
        self.bus.subscribe(UserDeleted, self.on_user_deleted)
        self.bus.subscribe(EventDeleted, self.on_event_deleted)
        self.bus.subscribe(ResourceDeleted, self.on_resource_deleted)
        self.bus.subscribe(AllocationChanged, self.on_allocation_changed)

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def on_organization_deleted(self, event: OrganizationDeleted) -> None:
        org_id = event.organization_id

        for user in self.store.users.list_for_organization(org_id):
            self.store.users.delete(user.id)
            self.bus.publish(UserDeleted(user_id=user.id))

        # Children of an already-deleted event are gone by the time we reach them.
        for stored in self.store.events.list_for_organization(org_id):
            if self.store.events.get(stored.id) is None:
                continue
            self.store.events.delete(stored.id)
            self.bus.publish(EventDeleted(event_id=stored.id))

        for resource in self.store.resources.list_for_organization(org_id):
            self.store.resources.delete(resource.id)
            self.bus.publish(ResourceDeleted(resource_id=resource.id))

        logger.info("Cascaded delete of organization %s", org_id)

    def on_user_deleted(self, event: UserDeleted) -> None:
        removed = self.store.registrations.delete_for_user(event.user_id)
        if removed:
            logger.info("Removed %d registration(s) of user %s", removed, event.user_id)

    def on_event_deleted(self, event: EventDeleted) -> None:
        self.store.registrations.delete_for_event(event.event_id)

        for allocation in self.store.allocations.list_for_event(event.event_id):
            self.store.allocations.delete(allocation.id)
            self.bus.publish(
                AllocationChanged(
                    resource_id=allocation.resource_id, allocation_id=allocation.id
                )
            )

        for child in self.store.events.list_children(event.event_id):
            self.store.events.delete(child.id)
            self.bus.publish(EventDeleted(event_id=child.id))

    def on_resource_deleted(self, event: ResourceDeleted) -> None:
        for allocation in self.store.allocations.list_for_resource(event.resource_id):
            self.store.allocations.delete(allocation.id)
        self.bus.publish(AllocationChanged(resource_id=event.resource_id))

    def on_allocation_changed(self, event: AllocationChanged) -> None:
        self.store.utilization.mark_stale()
