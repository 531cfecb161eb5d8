"""Domain events emitted when stored rows change."""

from __future__ import annotations

from pydantic import BaseModel


class OrganizationDeleted(BaseModel):
    """Fired after an organization row is removed; its tenant data follows."""

    organization_id: str


class UserDeleted(BaseModel):
    """Fired after a user row is removed."""

    user_id: str


class EventDeleted(BaseModel):
    """Fired after an event row is removed; child events cascade from here."""

    event_id: str


class ResourceDeleted(BaseModel):
    """Fired after a resource row is removed."""

    resource_id: str


class AllocationChanged(BaseModel):
    """Fired whenever a resource's allocations are added or removed."""

    resource_id: str
    allocation_id: str | None = None
