# backend/app/services/slot_generator.py
"""
Slot Generator Service for BookBetter

Loads a tenant's calendar inputs, resolves which staff resources a request
targets, and produces candidate slot streams. It never consults bookings;
the ConflictChecker flags slots against those.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta
import heapq
import logging
from typing import Iterator, List, Optional, Sequence

from pytz.tzinfo import BaseTzInfo
from sqlalchemy.orm import Session

from ..core.exceptions import NotFoundException
from ..core.timezone_utils import (
    ensure_utc,
    get_tenant_timezone,
    local_day_bounds_utc,
    tenant_today,
    utc_now,
)
from ..domain.calendar import (
    ExceptionBlock,
    TenantCalendar,
    TimeInterval,
    WorkingHoursTemplate,
    scope_for,
)
from ..domain.slots import AvailabilitySlot, SlotStream
from ..models.service import Service
from ..models.tenant import Tenant, tenant_resource_key
from ..repositories import RepositoryFactory, TenantRepository
from .base import BaseService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StaffResource:
    """One bookable resource: a staff member, or the tenant itself when solo."""

    resource_key: str
    staff_id: Optional[str] = None


def resolve_resources(
    tenant_repository: TenantRepository, tenant_id: str, staff_id: Optional[str]
) -> List[StaffResource]:
    """
    Resources a request targets, in staff-account order.

    Raises:
        NotFoundException: staff_id is not an active staff member of the tenant
    """
    staff_ids = [account.user_id for account in tenant_repository.list_active_staff(tenant_id)]

    if staff_id is not None:
        if staff_id not in staff_ids:
            raise NotFoundException(
                f"Staff member {staff_id} not found for tenant", code="STAFF_NOT_FOUND"
            )
        return [StaffResource(resource_key=staff_id, staff_id=staff_id)]

    if not staff_ids:
        # Solo business: the tenant itself is the only resource
        return [StaffResource(resource_key=tenant_resource_key(tenant_id))]

    return [StaffResource(resource_key=uid, staff_id=uid) for uid in staff_ids]


@dataclass
class CalendarContext:
    """Everything needed to reason about one tenant/service/staff request."""

    tenant: Tenant
    service: Service
    timezone: BaseTzInfo
    calendar: TenantCalendar
    resources: List[StaffResource]
    requested_staff_id: Optional[str]
    today: date
    range_start_utc: datetime
    range_end_utc: datetime

    @property
    def duration_minutes(self) -> int:
        return int(self.service.duration_minutes)

    @property
    def buffer_minutes(self) -> int:
        return int(self.service.buffer_minutes or 0)

    @property
    def last_bookable_date(self) -> date:
        return self.today + timedelta(days=int(self.service.advance_booking_days or 0))


class SlotGenerator(BaseService):
    """Builds calendars and candidate slot streams for tenants."""

    def __init__(self, db: Session):
        super().__init__(db)
        self.tenant_repository = RepositoryFactory.create_tenant_repository(db)
        self.service_repository = RepositoryFactory.create_service_repository(db)
        self.availability_repository = RepositoryFactory.create_availability_repository(db)

    def load_context(
        self,
        tenant_id: str,
        service_id: str,
        staff_id: Optional[str],
        from_date: date,
        to_date: date,
        now: Optional[datetime] = None,
    ) -> CalendarContext:
        """
        Resolve tenant, service and staff and load the calendar for a local date range.

        Raises:
            NotFoundException: tenant, service or staff member does not resolve
        """
        tenant = self.tenant_repository.get_active(tenant_id)
        if not tenant:
            raise NotFoundException(f"Tenant {tenant_id} not found", code="TENANT_NOT_FOUND")

        service = self.service_repository.get_active_for_tenant(tenant_id, service_id)
        if not service:
            raise NotFoundException(f"Service {service_id} not found", code="SERVICE_NOT_FOUND")

        tz = get_tenant_timezone(tenant.timezone)
        resources = resolve_resources(self.tenant_repository, tenant.id, staff_id)

        range_start, _ = local_day_bounds_utc(min(from_date, to_date), tz)
        _, range_end = local_day_bounds_utc(max(from_date, to_date), tz)
        calendar = self.build_calendar(tenant_id, tz, range_start, range_end)

        return CalendarContext(
            tenant=tenant,
            service=service,
            timezone=tz,
            calendar=calendar,
            resources=resources,
            requested_staff_id=staff_id,
            today=tenant_today(tz, now or utc_now()),
            range_start_utc=range_start,
            range_end_utc=range_end,
        )

    def build_calendar(
        self, tenant_id: str, tz: BaseTzInfo, range_start: datetime, range_end: datetime
    ) -> TenantCalendar:
        templates = []
        for rule in self.availability_repository.get_active_rules(tenant_id):
            try:
                templates.append(
                    WorkingHoursTemplate(
                        day_of_week=rule.day_of_week,
                        start_minute=rule.start_minute,
                        end_minute=rule.end_minute,
                        scope=scope_for(rule.staff_id),
                    )
                )
            except ValueError as exc:
                # A malformed row must not take the whole calendar down
                self.logger.warning("Skipping invalid working hours rule %s: %s", rule.id, exc)

        exceptions = [
            ExceptionBlock(
                start=ensure_utc(row.start_utc),
                end=ensure_utc(row.end_utc),
                scope=scope_for(row.staff_id),
                reason=row.reason,
            )
            for row in self.availability_repository.get_exceptions_in_range(
                tenant_id, range_start, range_end
            )
        ]
        return TenantCalendar(tz, templates, exceptions)

    def working_intervals(
        self, context: CalendarContext, resource: StaffResource, local_date: date
    ) -> List[TimeInterval]:
        return context.calendar.effective_working_intervals(local_date, resource.staff_id)

    def slot_stream(
        self,
        context: CalendarContext,
        resource: StaffResource,
        from_date: date,
        to_date: date,
    ) -> SlotStream:
        """Restartable candidate stream for one resource, capped at the booking horizon."""
        return SlotStream(
            context.calendar,
            context.duration_minutes,
            from_date,
            to_date,
            staff_id=resource.staff_id,
            last_bookable_date=context.last_bookable_date,
        )

    @BaseService.measure_operation("generate_slots")
    def generate_slots(
        self,
        tenant_id: str,
        service_id: str,
        staff_id: Optional[str],
        from_date: date,
        to_date: date,
    ) -> Iterator[AvailabilitySlot]:
        """
        Lazily merged candidate slots for every resource the request targets.

        Every slot is flagged available; bookings are not consulted.
        """
        context = self.load_context(tenant_id, service_id, staff_id, from_date, to_date)
        streams: Sequence[SlotStream] = [
            self.slot_stream(context, resource, from_date, to_date)
            for resource in context.resources
        ]
        return heapq.merge(*streams, key=lambda s: (s.start_utc, s.end_utc))
