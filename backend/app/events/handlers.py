"""Event handlers - process domain events from the job queue."""
import json
import logging
from typing import Any, Callable, Dict, Optional

from sqlalchemy.orm import Session

from app.models.booking import Booking
from app.models.notification import NotificationPurpose
from app.repositories.booking_repository import BookingRepository
from app.services.notification_service import NotificationService

logger = logging.getLogger(__name__)


def _decode(payload: Any) -> Dict[str, Any]:
    if isinstance(payload, str):
        return json.loads(payload)
    return dict(payload or {})


def _load_booking(db: Session, booking_id: str) -> Optional[Booking]:
    """Load booking with relationships for notification rendering."""
    repo = BookingRepository(db)
    return repo.get_booking_with_details(booking_id)


def _notify(db: Session, payload: Any, purpose: NotificationPurpose) -> None:
    data = _decode(payload)
    booking = _load_booking(db, data["booking_id"])
    if not booking:
        logger.warning("Booking %s not found for %s notice", data["booking_id"], purpose.value)
        return
    NotificationService(db).record_booking_notification(booking, purpose)
    logger.info("Queued %s notification for %s", purpose.value, booking.id)


def handle_booking_created(payload: Any, db: Session) -> None:
    """Reservation received; the client gets a confirmation of the request."""
    _notify(db, payload, NotificationPurpose.CONFIRMATION)


def handle_booking_confirmed(payload: Any, db: Session) -> None:
    _notify(db, payload, NotificationPurpose.CONFIRMATION)


def handle_booking_cancelled(payload: Any, db: Session) -> None:
    _notify(db, payload, NotificationPurpose.CANCELLATION)


def handle_booking_completed(payload: Any, db: Session) -> None:
    data = _decode(payload)
    if data.get("outcome") != "completed":
        return
    _notify(db, data, NotificationPurpose.COMPLETION)


# Registry of event type -> handler function
EVENT_HANDLERS: Dict[str, Callable[[Any, Session], None]] = {
    "event:BookingCreated": handle_booking_created,
    "event:BookingConfirmed": handle_booking_confirmed,
    "event:BookingCancelled": handle_booking_cancelled,
    "event:BookingCompleted": handle_booking_completed,
}


def process_event(job_type: str, payload: Any, db: Session) -> bool:
    """
    Process an event job.

    Returns True if handled, False if not an event job.
    """
    if not job_type.startswith("event:"):
        return False

    handler = EVENT_HANDLERS.get(job_type)
    if not handler:
        logger.warning("No handler for event type: %s", job_type)
        return True  # Consumed but unhandled

    handler(payload, db)
    return True
