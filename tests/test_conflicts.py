"""Tests for the conflict rules engine."""

from datetime import datetime, timezone

import pytest

from booking.domain.errors import ConflictError, ErrorKind, InvalidRequestError
from booking.domain.models import Event, Registration, Resource, ResourceType
from booking.services.conflicts import (
    check_capacity,
    check_consumable,
    check_double_booking,
    check_event_window,
    check_exclusive,
    check_not_checked_in,
    check_parent_containment,
    check_resource_allocation,
    check_resource_definition,
    check_resource_scope,
    check_shareable,
    enforce,
    find_conflicts,
    overlaps,
)


def _t(hour: int, minute: int = 0) -> datetime:
    return datetime(2025, 1, 1, hour, minute, tzinfo=timezone.utc)


def _make_event(start: datetime, end: datetime, name: str = "Existing", org: str = "org-1") -> Event:
    return Event(name=name, start_time=start, end_time=end, capacity=10, organization_id=org)


def _resource(type: ResourceType, **kwargs) -> Resource:
    return Resource(name="Thing", type=type, organization_id="org-1", **kwargs)


# ---------------------------------------------------------------------------
# Overlap predicate
# ---------------------------------------------------------------------------


def test_no_overlap():
    """Events that don't overlap should not be returned as conflicts."""
    existing = [_make_event(_t(8), _t(9))]
    assert find_conflicts(_t(10), _t(11), existing) == []


def test_partial_overlap():
    """An event that partially overlaps should be returned as a conflict."""
    existing = [_make_event(_t(9), _t(10, 30))]
    conflicts = find_conflicts(_t(10), _t(11), existing)
    assert len(conflicts) == 1
    assert conflicts[0].start_time == _t(9)


def test_exact_boundary_no_conflict():
    """When existing.end_time == new_start, there is no conflict (boundary touch)."""
    existing = [_make_event(_t(9), _t(10))]
    assert find_conflicts(_t(10), _t(11), existing) == []


@pytest.mark.parametrize(
    "a, b",
    [
        ((9, 10), (9, 10)),
        ((9, 12), (10, 11)),
        ((9, 10), (10, 11)),
        ((9, 10), (11, 12)),
        ((9, 11), (10, 12)),
    ],
)
def test_overlap_is_symmetric(a, b):
    a_start, a_end = _t(a[0]), _t(a[1])
    b_start, b_end = _t(b[0]), _t(b[1])
    assert overlaps(a_start, a_end, b_start, b_end) == overlaps(b_start, b_end, a_start, a_end)


def test_interval_overlaps_itself():
    assert overlaps(_t(9), _t(10), _t(9), _t(10)) is True


def test_containment_counts_as_overlap():
    assert overlaps(_t(9), _t(17), _t(12), _t(13)) is True


# ---------------------------------------------------------------------------
# Event rules
# ---------------------------------------------------------------------------


def test_event_window_rejects_zero_length():
    violation = check_event_window(_t(9), _t(9))
    assert violation is not None
    assert violation.kind == ErrorKind.INVALID_REQUEST


def test_parent_containment_boundaries_inclusive():
    parent = _make_event(_t(9), _t(17))
    assert check_parent_containment(parent, _t(9), _t(17)) is None


@pytest.mark.parametrize("start, end", [((8, 0), (10, 0)), ((15, 0), (18, 0))])
def test_parent_containment_rejects_escape(start, end):
    parent = _make_event(_t(9), _t(17))
    violation = check_parent_containment(parent, _t(*start), _t(*end))
    assert violation.code == "PARENT_CONTAINMENT"
    assert violation.details["parent_event_id"] == parent.id


# ---------------------------------------------------------------------------
# Registration rules
# ---------------------------------------------------------------------------


def test_capacity_allows_one_below_limit():
    event = _make_event(_t(9), _t(10))
    assert check_capacity(event, 9) is None
    assert check_capacity(event, 10).kind == ErrorKind.CONFLICT


def test_double_booking_ignores_the_event_itself():
    event = _make_event(_t(9), _t(10))
    assert check_double_booking(event, [event]) is None


def test_double_booking_names_competing_events():
    event = _make_event(_t(9), _t(10))
    other = _make_event(_t(9, 30), _t(11), name="Other")
    violation = check_double_booking(event, [other])
    assert violation.code == "DOUBLE_BOOKING"
    assert violation.details["conflicting_event_ids"] == [other.id]


def test_not_checked_in():
    registration = Registration(event_id="e", user_id="u")
    assert check_not_checked_in(registration) is None
    registration.checkin_time = _t(9)
    assert check_not_checked_in(registration).code == "ALREADY_CHECKED_IN"


# ---------------------------------------------------------------------------
# Resource rules
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "kwargs",
    [
        dict(type=ResourceType.SHAREABLE, is_global=False, organization_id="o",
             max_concurrent_usage=None, available_quantity=None),
        dict(type=ResourceType.SHAREABLE, is_global=False, organization_id="o",
             max_concurrent_usage=0, available_quantity=None),
        dict(type=ResourceType.CONSUMABLE, is_global=False, organization_id="o",
             max_concurrent_usage=None, available_quantity=None),
        dict(type=ResourceType.EXCLUSIVE, is_global=True, organization_id="o",
             max_concurrent_usage=None, available_quantity=None),
        dict(type=ResourceType.EXCLUSIVE, is_global=False, organization_id=None,
             max_concurrent_usage=None, available_quantity=None),
    ],
)
def test_resource_definition_rejects(kwargs):
    assert check_resource_definition(**kwargs).code == "INVALID_RESOURCE_DEFINITION"


def test_resource_definition_accepts_global_consumable():
    assert (
        check_resource_definition(ResourceType.CONSUMABLE, True, None, None, 0) is None
    )


def test_resource_scope():
    event = _make_event(_t(9), _t(10), org="org-1")
    own = Resource(name="Room", type=ResourceType.EXCLUSIVE, organization_id="org-1")
    foreign = Resource(name="Room", type=ResourceType.EXCLUSIVE, organization_id="org-2")
    shared = Resource(name="Room", type=ResourceType.EXCLUSIVE, is_global=True)
    assert check_resource_scope(event, own) is None
    assert check_resource_scope(event, shared) is None
    assert check_resource_scope(event, foreign).code == "RESOURCE_OUT_OF_SCOPE"


def test_exclusive_rejects_overlap_and_names_event():
    event = _make_event(_t(9), _t(10))
    other = _make_event(_t(9, 30), _t(10, 30), name="Board meeting")
    violation = check_exclusive(event, _resource(ResourceType.EXCLUSIVE), [other])
    assert violation.details["conflicting_event_id"] == other.id
    assert "Board meeting" in violation.message


def test_exclusive_allows_back_to_back():
    event = _make_event(_t(10), _t(11))
    other = _make_event(_t(9), _t(10))
    assert check_exclusive(event, _resource(ResourceType.EXCLUSIVE), [other]) is None


def test_shareable_allows_up_to_max():
    resource = _resource(ResourceType.SHAREABLE, max_concurrent_usage=3)
    event = _make_event(_t(9), _t(10))
    existing = [_make_event(_t(9), _t(10)) for _ in range(2)]
    assert check_shareable(event, resource, existing) is None
    existing.append(_make_event(_t(9), _t(10)))
    assert check_shareable(event, resource, existing).code == "SHAREABLE_CAPACITY_EXCEEDED"


def test_consumable_requires_positive_quantity():
    resource = _resource(ResourceType.CONSUMABLE, available_quantity=10)
    assert check_consumable(resource, None, 0).kind == ErrorKind.INVALID_REQUEST
    assert check_consumable(resource, 0, 0).kind == ErrorKind.INVALID_REQUEST


def test_consumable_exact_total_allowed():
    resource = _resource(ResourceType.CONSUMABLE, available_quantity=10)
    assert check_consumable(resource, 4, 6) is None
    violation = check_consumable(resource, 5, 6)
    assert violation.code == "CONSUMABLE_QUANTITY_EXCEEDED"
    assert violation.details["total_used"] == 6


def test_allocation_dispatch_uses_resource_type():
    event = _make_event(_t(9), _t(10))
    other = _make_event(_t(9), _t(10))
    exclusive = _resource(ResourceType.EXCLUSIVE)
    consumable = _resource(ResourceType.CONSUMABLE, available_quantity=5)
    assert check_resource_allocation(event, exclusive, [other], 0, None).code == "EXCLUSIVE_CONFLICT"
    # Time overlap is irrelevant for consumables.
    assert check_resource_allocation(event, consumable, [other], 0, 5) is None


# ---------------------------------------------------------------------------
# enforce
# ---------------------------------------------------------------------------


def test_enforce_passes_on_none():
    enforce(None)


def test_enforce_raises_matching_error():
    event = _make_event(_t(9), _t(10))
    with pytest.raises(ConflictError) as exc_info:
        enforce(check_capacity(event, 10))
    assert exc_info.value.code == "CAPACITY_EXCEEDED"
    with pytest.raises(InvalidRequestError):
        enforce(check_event_window(_t(10), _t(9)))
