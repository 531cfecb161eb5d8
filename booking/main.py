"""FastAPI application: entry point for the booking service."""

from __future__ import annotations

import logging
from datetime import datetime

from fastapi import APIRouter, FastAPI, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from booking.core.config import settings
from booking.domain.bus import EventBus
from booking.domain.errors import BookingError, ErrorKind
from booking.domain.handlers import HandlerRegistry
from booking.domain.models import (
    Allocation,
    AllocationCreate,
    ConsumableViolationRow,
    DoubleBookedUserRow,
    Event,
    EventCreate,
    EventUpdate,
    ExclusiveConflictRow,
    ExternalAttendeeRow,
    ExternalRegistrationCreate,
    Organization,
    OrganizationCreate,
    OrganizationUpdate,
    ParentChildViolationRow,
    PeakUsageRow,
    Registration,
    Resource,
    ResourceCreate,
    ResourceUpdate,
    ResourceViolationsReport,
    ShareableViolationRow,
    User,
    UserCreate,
    UserRegistrationCreate,
    UserUpdate,
    UtilizationRow,
    UtilizationSnapshot,
)
from booking.repos.memory import Store
from booking.services.allocations import AllocationService
from booking.services.directory import OrganizationService, ResourceService, UserService
from booking.services.events import EventService
from booking.services.registrations import RegistrationService
from booking.services.reports import ReportingEngine

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

_STATUS_BY_KIND = {
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.INVALID_REQUEST: status.HTTP_400_BAD_REQUEST,
    ErrorKind.INTERNAL: status.HTTP_500_INTERNAL_SERVER_ERROR,
}

# ── Singletons (created at import time for simplicity) ────────────────
store = Store()
event_bus = EventBus()
handler_registry = HandlerRegistry(bus=event_bus, store=store)

organization_service = OrganizationService(store, event_bus)
user_service = UserService(store, event_bus)
resource_service = ResourceService(store, event_bus)
event_service = EventService(store, event_bus)
registration_service = RegistrationService(store)
allocation_service = AllocationService(store, event_bus)
reporting_engine = ReportingEngine(
    store, underutilized_threshold=settings.UNDERUTILIZED_ALLOCATION_THRESHOLD
)

app = FastAPI(title=settings.PROJECT_NAME)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.BACKEND_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(BookingError)
async def booking_error_handler(request: Request, exc: BookingError) -> JSONResponse:
    if exc.kind == ErrorKind.INTERNAL:
        logger.error("Internal error on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=_STATUS_BY_KIND[exc.kind], content=exc.to_dict())


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"kind": str(ErrorKind.INTERNAL), "detail": "Internal server error"},
    )


router = APIRouter()


@router.get("/health")
def health() -> dict:
    return {"status": "ok"}


# ── Organizations ─────────────────────────────────────────────────────


@router.post("/organizations", response_model=Organization, status_code=201)
def create_organization(payload: OrganizationCreate) -> Organization:
    return organization_service.create(payload)


@router.get("/organizations", response_model=list[Organization])
def list_organizations() -> list[Organization]:
    return organization_service.list()


@router.get("/organizations/{organization_id}", response_model=Organization)
def get_organization(organization_id: str) -> Organization:
    return organization_service.get(organization_id)


@router.patch("/organizations/{organization_id}", response_model=Organization)
def update_organization(organization_id: str, payload: OrganizationUpdate) -> Organization:
    return organization_service.update(organization_id, payload)


@router.delete("/organizations/{organization_id}", status_code=204)
def delete_organization(organization_id: str) -> None:
    organization_service.remove(organization_id)


# ── Users ─────────────────────────────────────────────────────────────


@router.post("/users", response_model=User, status_code=201)
def create_user(payload: UserCreate) -> User:
    return user_service.create(payload)


@router.get("/users", response_model=list[User])
def list_users(organization_id: str | None = None) -> list[User]:
    return user_service.list(organization_id)


@router.get("/users/{user_id}", response_model=User)
def get_user(user_id: str) -> User:
    return user_service.get(user_id)


@router.patch("/users/{user_id}", response_model=User)
def update_user(user_id: str, payload: UserUpdate) -> User:
    return user_service.update(user_id, payload)


@router.delete("/users/{user_id}", status_code=204)
def delete_user(user_id: str) -> None:
    user_service.remove(user_id)


# ── Resources ─────────────────────────────────────────────────────────


@router.post("/resources", response_model=Resource, status_code=201)
def create_resource(payload: ResourceCreate) -> Resource:
    return resource_service.create(payload)


@router.get("/resources", response_model=list[Resource])
def list_resources(organization_id: str | None = None) -> list[Resource]:
    """All resources, or an organization's own plus global ones."""
    return resource_service.list(organization_id)


@router.get("/resources/{resource_id}", response_model=Resource)
def get_resource(resource_id: str) -> Resource:
    return resource_service.get(resource_id)


@router.patch("/resources/{resource_id}", response_model=Resource)
def update_resource(resource_id: str, payload: ResourceUpdate) -> Resource:
    return resource_service.update(resource_id, payload)


@router.delete("/resources/{resource_id}", status_code=204)
def delete_resource(resource_id: str) -> None:
    resource_service.remove(resource_id)


# ── Events ────────────────────────────────────────────────────────────


@router.post("/events", response_model=Event, status_code=201)
def create_event(payload: EventCreate) -> Event:
    return event_service.create(payload)


@router.get("/events", response_model=list[Event])
def list_events(
    organization_id: str | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
) -> list[Event]:
    return event_service.list(organization_id, start_date, end_date)


@router.get("/events/{event_id}", response_model=Event)
def get_event(event_id: str) -> Event:
    return event_service.get(event_id)


@router.get("/events/{event_id}/children", response_model=list[Event])
def list_event_children(event_id: str) -> list[Event]:
    return event_service.list_children(event_id)


@router.patch("/events/{event_id}", response_model=Event)
def update_event(event_id: str, payload: EventUpdate) -> Event:
    return event_service.update(event_id, payload)


@router.delete("/events/{event_id}", status_code=204)
def delete_event(event_id: str) -> None:
    event_service.remove(event_id)


# ── Registrations ─────────────────────────────────────────────────────


@router.post("/registrations/user", response_model=Registration, status_code=201)
def register_user(payload: UserRegistrationCreate) -> Registration:
    return registration_service.register_user(payload.event_id, payload.user_id)


@router.post("/registrations/external", response_model=Registration, status_code=201)
def register_external(payload: ExternalRegistrationCreate) -> Registration:
    return registration_service.register_external(payload.event_id, payload.external_email)


@router.post("/registrations/{registration_id}/checkin", response_model=Registration)
def checkin(registration_id: str) -> Registration:
    return registration_service.checkin(registration_id)


@router.get("/registrations", response_model=list[Registration])
def list_registrations(event_id: str) -> list[Registration]:
    return registration_service.list_by_event(event_id)


@router.get("/registrations/{registration_id}", response_model=Registration)
def get_registration(registration_id: str) -> Registration:
    return registration_service.get(registration_id)


@router.delete("/registrations/{registration_id}", status_code=204)
def cancel_registration(registration_id: str) -> None:
    registration_service.cancel(registration_id)


# ── Allocations ───────────────────────────────────────────────────────


@router.post("/allocations", response_model=Allocation, status_code=201)
def create_allocation(payload: AllocationCreate) -> Allocation:
    return allocation_service.create(
        payload.event_id, payload.resource_id, payload.quantity_used
    )


@router.get("/allocations", response_model=list[Allocation])
def list_allocations(event_id: str) -> list[Allocation]:
    return allocation_service.list_by_event(event_id)


@router.get("/allocations/resource/{resource_id}", response_model=list[Allocation])
def list_resource_allocations(resource_id: str) -> list[Allocation]:
    return allocation_service.list_by_resource(resource_id)


@router.get("/allocations/{allocation_id}", response_model=Allocation)
def get_allocation(allocation_id: str) -> Allocation:
    return allocation_service.get(allocation_id)


@router.delete("/allocations/{allocation_id}", status_code=204)
def delete_allocation(allocation_id: str) -> None:
    allocation_service.remove(allocation_id)


# ── Reports ───────────────────────────────────────────────────────────


@router.get("/reports/double-booked-users", response_model=list[DoubleBookedUserRow])
def report_double_booked_users(organization_id: str | None = None) -> list[DoubleBookedUserRow]:
    return reporting_engine.double_booked_users(organization_id)


@router.get("/reports/resource-violations", response_model=ResourceViolationsReport)
def report_resource_violations(organization_id: str | None = None) -> ResourceViolationsReport:
    return reporting_engine.resource_violations(organization_id)


@router.get(
    "/reports/resource-violations/shareable", response_model=list[ShareableViolationRow]
)
def report_shareable_violations(
    organization_id: str | None = None,
) -> list[ShareableViolationRow]:
    return reporting_engine.shareable_violations(organization_id)


@router.get(
    "/reports/resource-violations/exclusive", response_model=list[ExclusiveConflictRow]
)
def report_exclusive_violations(
    organization_id: str | None = None,
) -> list[ExclusiveConflictRow]:
    return reporting_engine.exclusive_conflicts(organization_id)


@router.get(
    "/reports/resource-violations/consumable", response_model=list[ConsumableViolationRow]
)
def report_consumable_violations(
    organization_id: str | None = None,
) -> list[ConsumableViolationRow]:
    return reporting_engine.consumable_violations(organization_id)


@router.get("/reports/resource-utilization", response_model=list[UtilizationRow])
def report_resource_utilization(organization_id: str | None = None) -> list[UtilizationRow]:
    return reporting_engine.resource_utilization(organization_id)


@router.get("/reports/peak-concurrent-usage", response_model=list[PeakUsageRow])
def report_peak_concurrent_usage(organization_id: str | None = None) -> list[PeakUsageRow]:
    return reporting_engine.peak_concurrent_usage(organization_id)


@router.get("/reports/parent-child-violations", response_model=list[ParentChildViolationRow])
def report_parent_child_violations(
    organization_id: str | None = None,
) -> list[ParentChildViolationRow]:
    return reporting_engine.parent_child_violations(organization_id)


@router.get("/reports/external-attendees", response_model=list[ExternalAttendeeRow])
def report_external_attendees(
    threshold: int = Query(default=settings.EXTERNAL_ATTENDEE_THRESHOLD, ge=0),
    organization_id: str | None = None,
) -> list[ExternalAttendeeRow]:
    return reporting_engine.external_attendees(threshold, organization_id)


@router.post("/reports/refresh-utilization-view", response_model=UtilizationSnapshot)
def refresh_utilization_view() -> UtilizationSnapshot:
    return reporting_engine.refresh_utilization_snapshot()


@router.get("/reports/utilization-view", response_model=UtilizationSnapshot)
def get_utilization_view() -> UtilizationSnapshot:
    return reporting_engine.get_utilization_snapshot()


app.include_router(router, prefix=settings.API_PREFIX)
