"""Registration of members and external guests, check-in and cancellation."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from booking.domain.errors import BookingError, NotFoundError
from booking.domain.models import Event, Registration
from booking.repos.memory import Store
from booking.services.conflicts import (
    check_capacity,
    check_double_booking,
    check_duplicate_registration,
    check_not_checked_in,
    enforce,
)

logger = logging.getLogger(__name__)


class RegistrationService:
    def __init__(self, store: Store) -> None:
        self.store = store

    def register_user(self, event_id: str, user_id: str) -> Registration:
        """Register a member, enforcing capacity, double-booking and uniqueness."""
        with self.store.atomic():
            event = self._get_event(event_id)
            if self.store.users.get(user_id) is None:
                raise NotFoundError.for_entity("User", user_id)
            try:
                enforce(
                    check_capacity(event, self.store.registrations.count_for_event(event_id))
                )
                enforce(
                    check_double_booking(
                        event,
                        self.store.events_for_user(user_id, event.start_time, event.end_time),
                    )
                )
                enforce(
                    check_duplicate_registration(
                        self.store.registrations.find_for_user(event_id, user_id)
                    )
                )
            except BookingError as exc:
                logger.warning(
                    "Rejected registration of user %s for event %s: %s",
                    user_id,
                    event_id,
                    exc.code,
                )
                raise
            registration = Registration(event_id=event_id, user_id=user_id)
            self.store.registrations.add(registration)
        logger.info("Registered user %s for event %s", user_id, event_id)
        return registration

    def register_external(self, event_id: str, email: str) -> Registration:
        """Register a guest by email. Guests are not checked for double-booking."""
        with self.store.atomic():
            event = self._get_event(event_id)
            try:
                enforce(
                    check_capacity(event, self.store.registrations.count_for_event(event_id))
                )
                enforce(
                    check_duplicate_registration(
                        self.store.registrations.find_for_email(event_id, email)
                    )
                )
            except BookingError as exc:
                logger.warning(
                    "Rejected external registration %s for event %s: %s",
                    email,
                    event_id,
                    exc.code,
                )
                raise
            registration = Registration(event_id=event_id, external_email=email)
            self.store.registrations.add(registration)
        logger.info("Registered external attendee %s for event %s", email, event_id)
        return registration

    def checkin(self, registration_id: str, now: datetime | None = None) -> Registration:
        with self.store.atomic():
            registration = self.get(registration_id)
            enforce(check_not_checked_in(registration))
            registration.checkin_time = now or datetime.now(timezone.utc)
            self.store.registrations.add(registration)
        logger.info("Checked in registration %s", registration_id)
        return registration

    def cancel(self, registration_id: str) -> None:
        with self.store.atomic():
            self.get(registration_id)
            self.store.registrations.delete(registration_id)
        logger.info("Cancelled registration %s", registration_id)

    def get(self, registration_id: str) -> Registration:
        registration = self.store.registrations.get(registration_id)
        if registration is None:
            raise NotFoundError.for_entity("Registration", registration_id)
        return registration

    def list_by_event(self, event_id: str) -> list[Registration]:
        """Registrations for the event, oldest first."""
        self._get_event(event_id)
        return self.store.registrations.list_for_event(event_id)

    def _get_event(self, event_id: str) -> Event:
        event = self.store.events.get(event_id)
        if event is None:
            raise NotFoundError.for_entity("Event", event_id)
        return event
