"""Retrospective whole-dataset reports over stored rows.

Nothing here writes entity rows; the reports exist because creation-time
checks never repair data that was already inconsistent. Scans read the store
without taking its lock and may observe concurrent writes part-way.

Organization scoping: rows built around events keep an event pair when
either event belongs to the organization; rows built around a resource keep
resources the organization owns plus global ones.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import datetime, timezone
from itertools import combinations

from booking.domain.models import (
    ConsumableViolationRow,
    DoubleBookedUserRow,
    Event,
    ExclusiveConflictRow,
    ExternalAttendeeRow,
    ParentChildViolationRow,
    ParentChildViolationType,
    PeakStatus,
    PeakUsageRow,
    Resource,
    ResourceType,
    ResourceViolationsReport,
    ShareableViolationRow,
    UtilizationRow,
    UtilizationSnapshot,
    UtilizationStatus,
)
from booking.repos.memory import Store
from booking.services.conflicts import events_overlap

logger = logging.getLogger(__name__)

DEFAULT_EXTERNAL_THRESHOLD = 5
DEFAULT_UNDERUTILIZED_THRESHOLD = 3


def _ordered_pair(a: Event, b: Event) -> tuple[Event, Event]:
    return (a, b) if a.id < b.id else (b, a)


def peak_concurrency(windows: list[tuple[datetime, datetime]]) -> int:
    """Maximum number of windows open at once.

    Sweeps +1 at each start and -1 at each end; at equal timestamps starts are
    applied before ends, so back-to-back windows count as concurrent here.
    """
    timeline = [(start, 1) for start, _ in windows] + [(end, -1) for _, end in windows]
    timeline.sort(key=lambda point: (point[0], -point[1]))
    running = peak = 0
    for _, delta in timeline:
        running += delta
        peak = max(peak, running)
    return peak


class ReportingEngine:
    def __init__(
        self,
        store: Store,
        underutilized_threshold: int = DEFAULT_UNDERUTILIZED_THRESHOLD,
    ) -> None:
        self.store = store
        self.underutilized_threshold = underutilized_threshold

    # ------------------------------------------------------------------
    # Scope helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _pair_in_scope(a: Event, b: Event, organization_id: str | None) -> bool:
        return organization_id is None or organization_id in (
            a.organization_id,
            b.organization_id,
        )

    def _resources(
        self, organization_id: str | None, type: ResourceType | None = None
    ) -> list[Resource]:
        if organization_id is None:
            resources = self.store.resources.list_all()
        else:
            resources = self.store.resources.list_visible_to(organization_id)
        if type is not None:
            resources = [r for r in resources if r.type == type]
        return resources

    # ------------------------------------------------------------------
    # Reports
    # ------------------------------------------------------------------

    def double_booked_users(
        self, organization_id: str | None = None
    ) -> list[DoubleBookedUserRow]:
        """One row per (user, e1, e2) where the user attends two overlapping events."""
        events_by_user: dict[str, list[Event]] = defaultdict(list)
        for registration in self.store.registrations.list_all():
            if registration.user_id is None:
                continue
            event = self.store.events.get(registration.event_id)
            if event is not None:
                events_by_user[registration.user_id].append(event)

        rows = []
        for user_id, events in events_by_user.items():
            user = self.store.users.get(user_id)
            if user is None:
                continue
            for a, b in combinations(events, 2):
                if a.id == b.id or not events_overlap(a, b):
                    continue
                if not self._pair_in_scope(a, b, organization_id):
                    continue
                e1, e2 = _ordered_pair(a, b)
                rows.append(
                    DoubleBookedUserRow(
                        user_id=user.id,
                        user_name=user.name,
                        user_email=user.email,
                        event1_id=e1.id,
                        event1_name=e1.name,
                        event1_start=e1.start_time,
                        event1_end=e1.end_time,
                        event2_id=e2.id,
                        event2_name=e2.name,
                        event2_start=e2.start_time,
                        event2_end=e2.end_time,
                    )
                )
        rows.sort(key=lambda r: (r.user_name, r.event1_start))
        return rows

    def exclusive_conflicts(
        self, organization_id: str | None = None
    ) -> list[ExclusiveConflictRow]:
        rows = []
        for resource in self.store.resources.list_all():
            if resource.type != ResourceType.EXCLUSIVE:
                continue
            events = [e for _, e in self.store.allocations_with_events(resource.id)]
            for a, b in combinations(events, 2):
                if a.id == b.id or not events_overlap(a, b):
                    continue
                if not self._pair_in_scope(a, b, organization_id):
                    continue
                e1, e2 = _ordered_pair(a, b)
                rows.append(
                    ExclusiveConflictRow(
                        resource_id=resource.id,
                        resource_name=resource.name,
                        event1_id=e1.id,
                        event1_name=e1.name,
                        event1_start=e1.start_time,
                        event1_end=e1.end_time,
                        event2_id=e2.id,
                        event2_name=e2.name,
                        event2_start=e2.start_time,
                        event2_end=e2.end_time,
                    )
                )
        rows.sort(key=lambda r: (r.resource_name, r.event1_start))
        return rows

    def shareable_violations(
        self, organization_id: str | None = None
    ) -> list[ShareableViolationRow]:
        """Allocated events whose count of *other* overlapping events is >= max.

        This threshold differs from the allocation-time rule (existing + 1 > max).
        Both count pairwise overlaps rather than instantaneous concurrency.
        """
        rows = []
        for resource in self.store.resources.list_all():
            if resource.type != ResourceType.SHAREABLE or resource.max_concurrent_usage is None:
                continue
            events = [e for _, e in self.store.allocations_with_events(resource.id)]
            for event in events:
                if organization_id is not None and event.organization_id != organization_id:
                    continue
                concurrent = sum(
                    1 for other in events if other.id != event.id and events_overlap(event, other)
                )
                if concurrent < resource.max_concurrent_usage:
                    continue
                rows.append(
                    ShareableViolationRow(
                        resource_id=resource.id,
                        resource_name=resource.name,
                        max_concurrent_usage=resource.max_concurrent_usage,
                        event_id=event.id,
                        event_name=event.name,
                        start_time=event.start_time,
                        end_time=event.end_time,
                        concurrent_count=concurrent,
                    )
                )
        rows.sort(key=lambda r: (r.resource_name, r.start_time))
        return rows

    def consumable_violations(
        self, organization_id: str | None = None
    ) -> list[ConsumableViolationRow]:
        rows = []
        for resource in self._resources(organization_id, ResourceType.CONSUMABLE):
            allocations = self.store.allocations.list_for_resource(resource.id)
            if not allocations:
                continue
            total = sum(a.quantity_used or 0 for a in allocations)
            available = resource.available_quantity or 0
            if total <= available:
                continue
            rows.append(
                ConsumableViolationRow(
                    resource_id=resource.id,
                    resource_name=resource.name,
                    available_quantity=available,
                    total_allocated=total,
                    over_allocation=total - available,
                )
            )
        rows.sort(key=lambda r: r.over_allocation, reverse=True)
        return rows

    def resource_violations(
        self, organization_id: str | None = None
    ) -> ResourceViolationsReport:
        return ResourceViolationsReport(
            shareable_violations=self.shareable_violations(organization_id),
            exclusive_violations=self.exclusive_conflicts(organization_id),
            consumable_violations=self.consumable_violations(organization_id),
        )

    def peak_concurrent_usage(self, organization_id: str | None = None) -> list[PeakUsageRow]:
        rows = []
        for resource in self._resources(organization_id, ResourceType.SHAREABLE):
            windows = [
                (e.start_time, e.end_time)
                for _, e in self.store.allocations_with_events(resource.id)
            ]
            peak = peak_concurrency(windows)
            limit = resource.max_concurrent_usage
            if limit is not None and peak > limit:
                status = PeakStatus.EXCEEDED
            elif limit is not None and peak == limit:
                status = PeakStatus.AT_CAPACITY
            else:
                status = PeakStatus.OK
            rows.append(
                PeakUsageRow(
                    resource_id=resource.id,
                    resource_name=resource.name,
                    max_concurrent_usage=limit,
                    peak_concurrent_usage=peak,
                    status=status,
                )
            )
        rows.sort(key=lambda r: r.peak_concurrent_usage, reverse=True)
        return rows

    def parent_child_violations(
        self, organization_id: str | None = None
    ) -> list[ParentChildViolationRow]:
        """Descendants that fall outside the window of their ROOT ancestor.

        Intermediate parents are not compared against; a grandchild that
        escapes its parent but stays inside the root is not reported.
        """
        rows = []
        for child, chain in self.store.descendant_chains():
            if organization_id is not None and child.organization_id != organization_id:
                continue
            root = chain[-1]
            if child.start_time < root.start_time:
                violation = ParentChildViolationType.CHILD_STARTS_BEFORE_PARENT
            elif child.end_time > root.end_time:
                violation = ParentChildViolationType.CHILD_ENDS_AFTER_PARENT
            else:
                continue
            rows.append(
                ParentChildViolationRow(
                    parent_id=root.id,
                    parent_name=root.name,
                    parent_start=root.start_time,
                    parent_end=root.end_time,
                    child_id=child.id,
                    child_name=child.name,
                    child_start=child.start_time,
                    child_end=child.end_time,
                    hierarchy_depth=len(chain),
                    violation_type=violation,
                )
            )
        rows.sort(key=lambda r: (r.parent_name, r.child_name))
        return rows

    def external_attendees(
        self,
        threshold: int = DEFAULT_EXTERNAL_THRESHOLD,
        organization_id: str | None = None,
    ) -> list[ExternalAttendeeRow]:
        rows = []
        for event in self.store.events.list_all():
            if organization_id is not None and event.organization_id != organization_id:
                continue
            organization = self.store.organizations.get(event.organization_id)
            if organization is None:
                continue
            registrations = self.store.registrations.list_for_event(event.id)
            external = sum(1 for r in registrations if r.is_external)
            if external <= threshold:
                continue
            rows.append(
                ExternalAttendeeRow(
                    event_id=event.id,
                    event_name=event.name,
                    start_time=event.start_time,
                    end_time=event.end_time,
                    capacity=event.capacity,
                    organization_id=organization.id,
                    organization_name=organization.name,
                    external_attendee_count=external,
                    registered_user_count=len(registrations) - external,
                    total_registrations=len(registrations),
                )
            )
        rows.sort(key=lambda r: r.external_attendee_count, reverse=True)
        return rows

    def resource_utilization(self, organization_id: str | None = None) -> list[UtilizationRow]:
        rows = []
        for resource in self._resources(organization_id):
            pairs = self.store.allocations_with_events(resource.id)
            count = len(self.store.allocations.list_for_resource(resource.id))
            if count == 0:
                status = UtilizationStatus.UNUSED
            elif count < self.underutilized_threshold:
                status = UtilizationStatus.UNDERUTILIZED
            else:
                status = UtilizationStatus.ACTIVE

            if resource.type == ResourceType.SHAREABLE:
                capacity = resource.max_concurrent_usage
            elif resource.type == ResourceType.CONSUMABLE:
                capacity = resource.available_quantity
            else:
                capacity = 1

            organization = (
                self.store.organizations.get(resource.organization_id)
                if resource.organization_id
                else None
            )
            rows.append(
                UtilizationRow(
                    resource_id=resource.id,
                    resource_name=resource.name,
                    resource_type=resource.type,
                    organization_id=resource.organization_id,
                    organization_name=organization.name if organization else None,
                    is_global=resource.is_global,
                    total_hours_used=sum(e.duration_hours for _, e in pairs),
                    total_allocations=count,
                    capacity=capacity,
                    utilization_status=status,
                )
            )
        rows.sort(key=lambda r: r.total_hours_used, reverse=True)
        return rows

    # ------------------------------------------------------------------
    # Utilization snapshot
    # ------------------------------------------------------------------

    def refresh_utilization_snapshot(self) -> UtilizationSnapshot:
        rows = self.resource_utilization()
        self.store.utilization.replace(rows, datetime.now(timezone.utc))
        logger.info("Refreshed utilization snapshot (%d resources)", len(rows))
        return self.store.utilization.get()

    def get_utilization_snapshot(self) -> UtilizationSnapshot:
        return self.store.utilization.get()
