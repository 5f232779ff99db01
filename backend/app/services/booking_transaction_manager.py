# backend/app/services/booking_transaction_manager.py
"""
Booking Transaction Manager for BookBetter

Owns every write to the bookings table. A reservation is a single
read-check-write unit executed under a per-resource lock:

1. Redis mutex per staff resource (optional, fail-open) sheds contention
   between processes before they reach the database.
2. pg_advisory_xact_lock on PostgreSQL, or the BEGIN IMMEDIATE write lock on
   SQLite, serializes writers of the same resource for the transaction.
3. The bookings_no_overlap_per_resource exclusion constraint rejects any
   overlap that slips past the first two on PostgreSQL.

Transient store failures are retried with backoff; genuine conflicts surface
as SlotTakenException and are never retried or redirected to another time.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta
import logging
import time
from typing import Callable, List, NoReturn, Optional

from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.orm import Session

from ..core.booking_lock import reservation_lock
from ..core.config import settings
from ..core.exceptions import (
    BusinessRuleException,
    ForbiddenException,
    InvalidBookingTransitionException,
    NotFoundException,
    SlotTakenException,
    TransientReservationException,
    ValidationException,
)
from ..core.timezone_utils import ensure_utc, local_date_for, local_day_bounds_utc, utc_now
from ..database import is_transient_db_error, retry_delay, with_db_retry
from ..domain.booking_state import REQUIRES_ELAPSED_END, can_transition
from ..events import (
    BookingCancelled,
    BookingCompleted,
    BookingConfirmed,
    BookingCreated,
    EventPublisher,
)
from ..models.booking import BOOKING_NO_OVERLAP_CONSTRAINT, Booking, BookingStatus, PaymentStatus
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories import RepositoryFactory
from .base import BaseService
from .conflict_checker import ConflictChecker
from .slot_generator import CalendarContext, SlotGenerator, StaffResource

logger = logging.getLogger(__name__)

# SQLSTATEs of integrity errors that are data problems, not slot conflicts
_NON_CONFLICT_INTEGRITY_CODES = frozenset({"23502", "23503", "23514"})
_NON_CONFLICT_INTEGRITY_SNIPPETS = ("foreign key", "check constraint", "not null")


@dataclass
class ReservationRequest:
    """A client's request to reserve one slot."""

    tenant_id: str
    service_id: str
    client_id: str
    start_utc: datetime
    staff_id: Optional[str] = None
    client_name: Optional[str] = None
    client_email: Optional[str] = None
    client_phone: Optional[str] = None
    client_notes: Optional[str] = None


class _ResourceBusy(Exception):
    """Every free candidate resource was held by another process's Redis mutex."""


class BookingTransactionManager(BaseService):
    """
    Atomic reservation and lifecycle transitions for bookings.

    Bookings are never cached here; every check re-reads the store inside the
    transaction that performs the write.
    """

    def __init__(
        self,
        db: Session,
        conflict_checker: Optional[ConflictChecker] = None,
        slot_generator: Optional[SlotGenerator] = None,
        clock: Callable[[], datetime] = utc_now,
        sleep: Callable[[float], None] = time.sleep,
    ):
        super().__init__(db)
        self.repository = RepositoryFactory.create_booking_repository(db)
        self.user_repository = RepositoryFactory.create_user_repository(db)
        self.conflict_checker = conflict_checker or ConflictChecker(db)
        self.slot_generator = slot_generator or SlotGenerator(db)
        self.event_publisher = EventPublisher(
            RepositoryFactory.create_background_job_repository(db)
        )
        self._clock = clock
        self._sleep = sleep

    # ------------------------------------------------------------------
    # Reservation
    # ------------------------------------------------------------------

    @BaseService.measure_operation("reserve")
    def reserve(self, request: ReservationRequest) -> Booking:
        """
        Atomically reserve the requested slot.

        Returns:
            The created booking in status pending

        Raises:
            ValidationException: Malformed or out-of-policy request
            NotFoundException: Tenant, service, staff or client does not resolve
            BusinessRuleException: Tenant booking quota exhausted
            SlotTakenException: The slot overlaps an active booking
            TransientReservationException: Store contention outlasted the retries
        """
        if request.start_utc.tzinfo is None:
            self._record_outcome("validation")
            raise ValidationException(
                "start_utc must include a UTC offset", code="NAIVE_TIMESTAMP"
            )
        if ensure_utc(request.start_utc) <= self._clock():
            self._record_outcome("validation")
            raise ValidationException("Cannot book a time in the past", code="START_IN_PAST")

        self.log_operation(
            "reserve",
            tenant_id=request.tenant_id,
            service_id=request.service_id,
            staff_id=request.staff_id,
            start_utc=request.start_utc.isoformat(),
        )

        max_attempts = settings.booking_max_retries
        for attempt in range(1, max_attempts + 1):
            try:
                booking = self._reserve_attempt(request)
            except IntegrityError as exc:
                self._raise_for_integrity_error(exc, request)
            except DBAPIError as exc:
                if not is_transient_db_error(exc):
                    raise
                reason = "store_contention"
                self.logger.warning(
                    "Transient store failure during reservation",
                    extra={"attempt": attempt, "error": str(exc)},
                )
            except _ResourceBusy:
                reason = "redis_lock"
            except SlotTakenException:
                self._record_outcome("slot_taken")
                raise
            except (ValidationException, BusinessRuleException):
                self._record_outcome("validation")
                raise
            except NotFoundException:
                self._record_outcome("not_found")
                raise
            else:
                self._record_outcome("success")
                return booking

            if attempt < max_attempts:
                prometheus_metrics.record_reservation_retry(reason)
                self._sleep(retry_delay(attempt, settings.booking_retry_base_delay))

        self._record_outcome("transient")
        raise TransientReservationException(attempts=max_attempts)

    def _reserve_attempt(self, request: ReservationRequest) -> Booking:
        """One transaction: resolve, validate, lock, check, insert, publish, commit."""
        try:
            now = self._clock()
            start = ensure_utc(request.start_utc)
            utc_day = start.date()
            context = self.slot_generator.load_context(
                request.tenant_id,
                request.service_id,
                request.staff_id,
                utc_day - timedelta(days=1),
                utc_day + timedelta(days=1),
                now=now,
            )
            end = start + timedelta(minutes=context.duration_minutes)

            candidates = self._validate_reservation(context, request, start, end, now)
            booking = self._claim_first_free(context, request, candidates, start, end)
        except Exception:
            self.db.rollback()
            raise

        self.logger.info(
            "Booking reserved",
            extra={
                "booking_id": booking.id,
                "resource_key": booking.resource_key,
                "start_utc": start.isoformat(),
            },
        )
        return booking

    def _validate_reservation(
        self,
        context: CalendarContext,
        request: ReservationRequest,
        start: datetime,
        end: datetime,
        now: datetime,
    ) -> List[StaffResource]:
        """Policy checks; returns the resources whose working hours contain the slot."""
        local_date = local_date_for(start, context.timezone)
        if local_date > context.last_bookable_date:
            raise ValidationException(
                f"Bookings open at most {context.service.advance_booking_days} days ahead",
                code="BEYOND_BOOKING_WINDOW",
                details={"last_bookable_date": context.last_bookable_date.isoformat()},
            )

        if not self.user_repository.get_by_id(request.client_id, load_relationships=False):
            raise NotFoundException(f"Client {request.client_id} not found", code="CLIENT_NOT_FOUND")

        quota = int(context.tenant.bookings_quota or 0)
        if quota > 0 and self.repository.count_active_future(context.tenant.id, now) >= quota:
            raise BusinessRuleException(
                "This business has reached its booking limit", code="BOOKING_QUOTA_EXCEEDED"
            )

        candidates = [
            resource
            for resource in context.resources
            if any(
                interval.contains(start, end)
                for interval in self.slot_generator.working_intervals(context, resource, local_date)
            )
        ]
        if not candidates:
            raise ValidationException(
                "Requested time is outside working hours", code="OUTSIDE_WORKING_HOURS"
            )
        return self._order_candidates(context, candidates, local_date)

    def _order_candidates(
        self, context: CalendarContext, candidates: List[StaffResource], local_date: date
    ) -> List[StaffResource]:
        if len(candidates) < 2 or settings.staff_assignment_policy != "least_booked":
            return candidates
        day_start, day_end = local_day_bounds_utc(local_date, context.timezone)
        counts = self.repository.count_active_by_resource(
            [c.resource_key for c in candidates], day_start, day_end
        )
        # sorted() is stable, so ties keep staff-account order
        return sorted(candidates, key=lambda c: counts.get(c.resource_key, 0))

    def _claim_first_free(
        self,
        context: CalendarContext,
        request: ReservationRequest,
        candidates: List[StaffResource],
        start: datetime,
        end: datetime,
    ) -> Booking:
        busy = False
        for resource in candidates:
            with reservation_lock(resource.resource_key) as acquired:
                if not acquired:
                    busy = True
                    continue
                self.repository.lock_resource(resource.resource_key)
                if self.conflict_checker.conflicts_for_resource(
                    resource.resource_key, start, end, context.buffer_minutes
                ):
                    continue
                booking = self._insert_booking(context, request, resource, start, end)
                # Commit while the Redis mutex is still held
                self.db.commit()
                return booking

        if busy:
            raise _ResourceBusy()
        raise SlotTakenException(
            details={
                "start_utc": start.isoformat(),
                "staff_id": request.staff_id,
            }
        )

    def _insert_booking(
        self,
        context: CalendarContext,
        request: ReservationRequest,
        resource: StaffResource,
        start: datetime,
        end: datetime,
    ) -> Booking:
        booking = self.repository.insert(
            tenant_id=context.tenant.id,
            service_id=context.service.id,
            client_id=request.client_id,
            staff_id=resource.staff_id,
            resource_key=resource.resource_key,
            start_utc=start,
            end_utc=end,
            buffer_minutes=context.buffer_minutes,
            status=BookingStatus.PENDING.value,
            payment_status=PaymentStatus.UNPAID.value,
            client_name=request.client_name,
            client_email=request.client_email,
            client_phone=request.client_phone,
            client_notes=request.client_notes,
        )
        self.event_publisher.publish(
            BookingCreated(
                booking_id=booking.id,
                tenant_id=booking.tenant_id,
                client_id=booking.client_id,
                staff_id=booking.staff_id,
                start_utc=start,
                end_utc=end,
                created_at=self._clock(),
            )
        )
        return booking

    def _raise_for_integrity_error(
        self, exc: IntegrityError, request: ReservationRequest
    ) -> NoReturn:
        orig = getattr(exc, "orig", None)
        pgcode = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
        message = str(orig or exc).lower()

        if BOOKING_NO_OVERLAP_CONSTRAINT in message or pgcode == "23P01":
            self._record_outcome("slot_taken")
            raise SlotTakenException(details={"start_utc": request.start_utc.isoformat()}) from exc

        if pgcode in _NON_CONFLICT_INTEGRITY_CODES or any(
            snippet in message for snippet in _NON_CONFLICT_INTEGRITY_SNIPPETS
        ):
            self._record_outcome("validation")
            raise ValidationException(
                "Booking data violates a store constraint", code="INVALID_BOOKING_DATA"
            ) from exc

        self._record_outcome("slot_taken")
        raise SlotTakenException(details={"start_utc": request.start_utc.isoformat()}) from exc

    @staticmethod
    def _record_outcome(outcome: str) -> None:
        prometheus_metrics.record_reservation_outcome(outcome)

    # ------------------------------------------------------------------
    # Lifecycle transitions
    # ------------------------------------------------------------------

    def get_booking(self, booking_id: str) -> Booking:
        booking = self.repository.get_booking_with_details(booking_id)
        if not booking:
            raise NotFoundException(f"Booking {booking_id} not found", code="BOOKING_NOT_FOUND")
        return booking

    def _load_for_transition(self, booking_id: str, target: BookingStatus) -> Booking:
        booking = self.repository.get_for_update(booking_id)
        if not booking:
            raise NotFoundException(f"Booking {booking_id} not found", code="BOOKING_NOT_FOUND")
        if not can_transition(booking.status, target.value):
            raise InvalidBookingTransitionException(booking.id, booking.status, target.value)
        if target in REQUIRES_ELAPSED_END and not booking.has_ended(self._clock()):
            raise ValidationException(
                f"Booking cannot be marked {target.value} before it ends",
                code="BOOKING_NOT_ENDED",
            )
        return booking

    def _run_transition(self, op_name: str, func: Callable[[], Booking]) -> Booking:
        """Run one transition transaction, retrying it on transient store errors."""
        try:
            return with_db_retry(
                op_name,
                func,
                max_attempts=settings.booking_max_retries,
                base_delay=settings.booking_retry_base_delay,
                sleep=self._sleep,
            )
        except DBAPIError as exc:
            if not is_transient_db_error(exc):
                raise
            raise TransientReservationException(attempts=settings.booking_max_retries) from exc

    @BaseService.measure_operation("mark_confirmed")
    def mark_confirmed(self, booking_id: str) -> Booking:
        """pending -> confirmed, recording the captured payment kind."""

        def confirm() -> Booking:
            with self.transaction():
                booking = self._load_for_transition(booking_id, BookingStatus.CONFIRMED)
                service = booking.service
                now = self._clock()
                booking.status = BookingStatus.CONFIRMED.value
                booking.confirmed_at = now
                booking.payment_status = (
                    PaymentStatus.DEPOSIT.value
                    if service is not None and service.takes_deposit
                    else PaymentStatus.PAID.value
                )
                self.repository.flush()
                self.event_publisher.publish(
                    BookingConfirmed(
                        booking_id=booking.id,
                        payment_status=booking.payment_status,
                        confirmed_at=now,
                    )
                )
            return booking

        booking = self._run_transition("mark_confirmed", confirm)
        self.log_operation("mark_confirmed", booking_id=booking_id)
        return booking

    @BaseService.measure_operation("mark_cancelled")
    def mark_cancelled(
        self,
        booking_id: str,
        reason: Optional[str] = None,
        cancelled_by: Optional[str] = None,
    ) -> Booking:
        """pending/confirmed -> cancelled; frees the slot immediately."""

        def cancel() -> Booking:
            with self.transaction():
                booking = self._load_for_transition(booking_id, BookingStatus.CANCELLED)
                now = self._clock()
                booking.status = BookingStatus.CANCELLED.value
                booking.cancelled_at = now
                booking.cancellation_reason = reason
                self.repository.flush()
                self.event_publisher.publish(
                    BookingCancelled(
                        booking_id=booking.id,
                        cancelled_by=cancelled_by,
                        cancelled_at=now,
                        reason=reason,
                    )
                )
            return booking

        booking = self._run_transition("mark_cancelled", cancel)
        self.log_operation("mark_cancelled", booking_id=booking_id, cancelled_by=cancelled_by)
        return booking

    @BaseService.measure_operation("mark_completed")
    def mark_completed(self, booking_id: str) -> Booking:
        return self._finish(booking_id, BookingStatus.COMPLETED)

    @BaseService.measure_operation("mark_no_show")
    def mark_no_show(self, booking_id: str) -> Booking:
        return self._finish(booking_id, BookingStatus.NO_SHOW)

    def _finish(self, booking_id: str, target: BookingStatus) -> Booking:
        def finish() -> Booking:
            with self.transaction():
                booking = self._load_for_transition(booking_id, target)
                now = self._clock()
                booking.status = target.value
                booking.completed_at = now
                self.repository.flush()
                self.event_publisher.publish(
                    BookingCompleted(booking_id=booking.id, outcome=target.value, completed_at=now)
                )
            return booking

        booking = self._run_transition(f"mark_{target.value}", finish)
        self.log_operation(f"mark_{target.value}", booking_id=booking_id)
        return booking

    @staticmethod
    def ensure_can_cancel(booking: Booking, user_id: str, role: str) -> None:
        """Staff and pros may cancel any booking; clients only their own."""
        if role in ("pro", "staff"):
            return
        if booking.client_id != user_id:
            raise ForbiddenException("You can only cancel your own bookings")
