"""Organizations, users and resources: the tenant directory."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from booking.domain.bus import EventBus
from booking.domain.errors import ConflictError, NotFoundError
from booking.domain.events import OrganizationDeleted, ResourceDeleted, UserDeleted
from booking.domain.models import (
    Organization,
    OrganizationCreate,
    OrganizationUpdate,
    Resource,
    ResourceCreate,
    ResourceUpdate,
    User,
    UserCreate,
    UserUpdate,
)
from booking.repos.memory import Store
from booking.services.conflicts import check_resource_definition, enforce

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OrganizationService:
    def __init__(self, store: Store, bus: EventBus) -> None:
        self.store = store
        self.bus = bus

    def create(self, payload: OrganizationCreate) -> Organization:
        organization = Organization(**payload.model_dump())
        self.store.organizations.add(organization)
        logger.info("Created organization %s (%s)", organization.id, organization.name)
        return organization

    def get(self, organization_id: str) -> Organization:
        organization = self.store.organizations.get(organization_id)
        if organization is None:
            raise NotFoundError.for_entity("Organization", organization_id)
        return organization

    def list(self) -> list[Organization]:
        return sorted(
            self.store.organizations.list_all(), key=lambda o: o.created_at, reverse=True
        )

    def update(self, organization_id: str, payload: OrganizationUpdate) -> Organization:
        with self.store.atomic():
            organization = self.get(organization_id)
            changes = payload.model_dump(exclude_unset=True, exclude_none=True)
            updated = organization.model_copy(update={**changes, "updated_at": _utcnow()})
            self.store.organizations.add(updated)
        return updated

    def remove(self, organization_id: str) -> None:
        """Delete the tenant; its users, events and own resources go with it."""
        with self.store.atomic():
            self.get(organization_id)
            self.store.organizations.delete(organization_id)
            self.bus.publish(OrganizationDeleted(organization_id=organization_id))
        logger.info("Deleted organization %s", organization_id)


class UserService:
    def __init__(self, store: Store, bus: EventBus) -> None:
        self.store = store
        self.bus = bus

    def create(self, payload: UserCreate) -> User:
        with self.store.atomic():
            if self.store.organizations.get(payload.organization_id) is None:
                raise NotFoundError.for_entity("Organization", payload.organization_id)
            self._ensure_email_free(payload.email)
            user = User(**payload.model_dump())
            self.store.users.add(user)
        logger.info("Created user %s in organization %s", user.id, user.organization_id)
        return user

    def get(self, user_id: str) -> User:
        user = self.store.users.get(user_id)
        if user is None:
            raise NotFoundError.for_entity("User", user_id)
        return user

    def list(self, organization_id: str | None = None) -> list[User]:
        if organization_id is not None:
            users = self.store.users.list_for_organization(organization_id)
        else:
            users = self.store.users.list_all()
        return sorted(users, key=lambda u: u.created_at, reverse=True)

    def update(self, user_id: str, payload: UserUpdate) -> User:
        with self.store.atomic():
            user = self.get(user_id)
            changes = payload.model_dump(exclude_unset=True, exclude_none=True)
            if "email" in changes and changes["email"] != user.email:
                self._ensure_email_free(changes["email"])
            updated = user.model_copy(update={**changes, "updated_at": _utcnow()})
            self.store.users.add(updated)
        return updated

    def remove(self, user_id: str) -> None:
        with self.store.atomic():
            self.get(user_id)
            self.store.users.delete(user_id)
            self.bus.publish(UserDeleted(user_id=user_id))
        logger.info("Deleted user %s", user_id)

    def _ensure_email_free(self, email: str) -> None:
        existing = self.store.users.get_by_email(email)
        if existing is not None:
            raise ConflictError(
                "Email already exists",
                code="DUPLICATE_EMAIL",
                details={"email": email, "user_id": existing.id},
            )


class ResourceService:
    def __init__(self, store: Store, bus: EventBus) -> None:
        self.store = store
        self.bus = bus

    def create(self, payload: ResourceCreate) -> Resource:
        enforce(
            check_resource_definition(
                payload.type,
                payload.is_global,
                payload.organization_id,
                payload.max_concurrent_usage,
                payload.available_quantity,
            )
        )
        with self.store.atomic():
            if (
                payload.organization_id is not None
                and self.store.organizations.get(payload.organization_id) is None
            ):
                raise NotFoundError.for_entity("Organization", payload.organization_id)
            resource = Resource(**payload.model_dump())
            self.store.resources.add(resource)
        logger.info("Created %s resource %s (%s)", resource.type, resource.id, resource.name)
        return resource

    def get(self, resource_id: str) -> Resource:
        resource = self.store.resources.get(resource_id)
        if resource is None:
            raise NotFoundError.for_entity("Resource", resource_id)
        return resource

    def list(self, organization_id: str | None = None) -> list[Resource]:
        """All resources, or those an organization can see (own plus global)."""
        if organization_id is not None:
            resources = self.store.resources.list_visible_to(organization_id)
        else:
            resources = self.store.resources.list_all()
        return sorted(resources, key=lambda r: r.created_at, reverse=True)

    def update(self, resource_id: str, payload: ResourceUpdate) -> Resource:
        with self.store.atomic():
            resource = self.get(resource_id)
            changes = payload.model_dump(exclude_unset=True, exclude_none=True)
            updated = resource.model_copy(update={**changes, "updated_at": _utcnow()})
            enforce(
                check_resource_definition(
                    updated.type,
                    updated.is_global,
                    updated.organization_id,
                    updated.max_concurrent_usage,
                    updated.available_quantity,
                )
            )
            self.store.resources.add(updated)
        return updated

    def remove(self, resource_id: str) -> None:
        with self.store.atomic():
            self.get(resource_id)
            self.store.resources.delete(resource_id)
            self.bus.publish(ResourceDeleted(resource_id=resource_id))
        logger.info("Deleted resource %s", resource_id)
