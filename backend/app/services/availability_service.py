# backend/app/services/availability_service.py
"""
Availability Service for BookBetter

Answers "which slots can a client book?" by composing the SlotGenerator with
the ConflictChecker against one snapshot read of bookings and exceptions.
Read-only and lock-free: a slot reported available may still be taken by a
concurrent reservation, which then fails with SlotTaken.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
import logging
from typing import Callable, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.exceptions import ValidationException
from ..core.timezone_utils import utc_now
from ..domain.slots import AvailabilitySlot
from ..monitoring.prometheus_metrics import prometheus_metrics
from .base import BaseService
from .conflict_checker import ConflictChecker
from .slot_generator import CalendarContext, SlotGenerator

logger = logging.getLogger(__name__)


@dataclass
class AvailabilityQuery:
    tenant_id: str
    service_id: str
    from_date: date
    to_date: date
    staff_id: Optional[str] = None


@dataclass
class AvailabilityResult:
    tenant_id: str
    service_id: str
    staff_id: Optional[str]
    timezone: str
    slots: List[AvailabilitySlot] = field(default_factory=list)


class AvailabilityService(BaseService):
    """Computes bookable slots for a tenant, service and optional staff member."""

    def __init__(
        self,
        db: Session,
        slot_generator: Optional[SlotGenerator] = None,
        conflict_checker: Optional[ConflictChecker] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        super().__init__(db)
        self.slot_generator = slot_generator or SlotGenerator(db)
        self.conflict_checker = conflict_checker or ConflictChecker(db)
        self._clock = clock

    @BaseService.measure_operation("get_availability")
    def get_availability(self, query: AvailabilityQuery) -> AvailabilityResult:
        """
        Ordered slots for local dates in [from_date, to_date].

        Slots starting at or before now are omitted. For an unassigned query,
        slots with identical bounds across staff are merged and are available
        when any staff member is free.

        Raises:
            ValidationException: Inverted or oversized date range
            NotFoundException: Tenant, service or staff does not resolve
        """
        self._validate_range(query.from_date, query.to_date)

        now = self._clock()
        context = self.slot_generator.load_context(
            query.tenant_id,
            query.service_id,
            query.staff_id,
            query.from_date,
            query.to_date,
            now=now,
        )

        slots = self._collect_slots(context, query, now)
        prometheus_metrics.observe_availability_slots(len(slots))

        return AvailabilityResult(
            tenant_id=query.tenant_id,
            service_id=query.service_id,
            staff_id=query.staff_id,
            timezone=context.timezone.zone,
            slots=slots,
        )

    def _validate_range(self, from_date: date, to_date: date) -> None:
        if from_date > to_date:
            raise ValidationException(
                "from must be on or before to",
                code="INVALID_DATE_RANGE",
                details={"from": from_date.isoformat(), "to": to_date.isoformat()},
            )
        span_days = (to_date - from_date).days + 1
        if span_days > settings.availability_max_range_days:
            raise ValidationException(
                f"Date range may span at most {settings.availability_max_range_days} days",
                code="RANGE_TOO_LARGE",
            )

    def _collect_slots(
        self, context: CalendarContext, query: AvailabilityQuery, now: datetime
    ) -> List[AvailabilitySlot]:
        booked = self.conflict_checker.booked_intervals(
            [resource.resource_key for resource in context.resources],
            context.range_start_utc,
            context.range_end_utc + timedelta(minutes=context.buffer_minutes),
        )

        per_resource: List[List[AvailabilitySlot]] = []
        for resource in context.resources:
            stream = self.slot_generator.slot_stream(
                context, resource, query.from_date, query.to_date
            )
            flagged = self.conflict_checker.filter_available(
                stream, booked.get(resource.resource_key, []), context.buffer_minutes
            )
            per_resource.append([slot for slot in flagged if slot.start_utc > now])

        if len(per_resource) == 1:
            return sorted(per_resource[0], key=lambda s: (s.start_utc, s.end_utc))
        return self._merge_unassigned(per_resource)

    @staticmethod
    def _merge_unassigned(per_resource: List[List[AvailabilitySlot]]) -> List[AvailabilitySlot]:
        """
        Merge identical bounds across staff; the first free staff member (in
        assignment order) is reported on the merged slot.
        """
        merged: Dict[Tuple[datetime, datetime], AvailabilitySlot] = {}
        for slots in per_resource:
            for slot in slots:
                current = merged.get(slot.bounds)
                if current is None:
                    merged[slot.bounds] = slot if slot.available else slot.with_staff(None)
                elif not current.available and slot.available:
                    merged[slot.bounds] = slot
        return [merged[bounds] for bounds in sorted(merged)]
