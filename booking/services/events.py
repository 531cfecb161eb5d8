"""Event creation, update and hierarchy queries."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from booking.domain.bus import EventBus
from booking.domain.errors import NotFoundError
from booking.domain.events import EventDeleted
from booking.domain.models import Event, EventCreate, EventUpdate, as_utc
from booking.repos.memory import Store
from booking.services.conflicts import (
    check_event_window,
    check_parent_containment,
    check_parent_cycle,
    enforce,
)

logger = logging.getLogger(__name__)


class EventService:
    def __init__(self, store: Store, bus: EventBus) -> None:
        self.store = store
        self.bus = bus

    def create(self, payload: EventCreate) -> Event:
        with self.store.atomic():
            if self.store.organizations.get(payload.organization_id) is None:
                raise NotFoundError.for_entity("Organization", payload.organization_id)
            enforce(check_event_window(payload.start_time, payload.end_time))
            if payload.parent_event_id is not None:
                parent = self.get(payload.parent_event_id, entity="Parent event")
                enforce(check_parent_containment(parent, payload.start_time, payload.end_time))
            event = Event(**payload.model_dump())
            self.store.events.add(event)
        logger.info("Created event %s (%s)", event.id, event.name)
        return event

    def update(self, event_id: str, payload: EventUpdate) -> Event:
        """Apply *payload* over the stored event and re-run the time rules."""
        with self.store.atomic():
            event = self.get(event_id)
            changes = payload.model_dump(exclude_unset=True)
            start_time = changes.get("start_time") or event.start_time
            end_time = changes.get("end_time") or event.end_time
            enforce(check_event_window(start_time, end_time))

            parent_event_id = changes.get("parent_event_id", event.parent_event_id)
            if parent_event_id is not None:
                parent = self.get(parent_event_id, entity="Parent event")
                chain = [parent, *self.store.ancestor_chain(parent.id)]
                enforce(check_parent_cycle(event.id, chain))
                enforce(check_parent_containment(parent, start_time, end_time))

            changes = {k: v for k, v in changes.items() if v is not None}
            changes.update(
                start_time=start_time,
                end_time=end_time,
                parent_event_id=parent_event_id,
                updated_at=datetime.now(timezone.utc),
            )
            updated = event.model_copy(update=changes)
            self.store.events.add(updated)
        logger.info("Updated event %s", event_id)
        return updated

    def get(self, event_id: str, entity: str = "Event") -> Event:
        event = self.store.events.get(event_id)
        if event is None:
            raise NotFoundError.for_entity(entity, event_id)
        return event

    def list(
        self,
        organization_id: str | None = None,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ) -> list[Event]:
        return self.store.events.list_in_window(
            organization_id, as_utc(start_date), as_utc(end_date)
        )

    def list_children(self, event_id: str) -> list[Event]:
        self.get(event_id)
        return self.store.events.list_children(event_id)

    def remove(self, event_id: str) -> None:
        """Delete the event; children, registrations and allocations cascade."""
        with self.store.atomic():
            self.get(event_id)
            self.store.events.delete(event_id)
            self.bus.publish(EventDeleted(event_id=event_id))
        logger.info("Deleted event %s", event_id)
