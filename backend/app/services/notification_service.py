# backend/app/services/notification_service.py
"""
Notification Service for BookBetter

Records outbound notification requests for booking state changes. Delivery
(email/SMS providers) is owned by an external collaborator that reads the
notifications table; this service never talks to a provider and never runs
inside the booking transaction.
"""

import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from ..models.booking import Booking
from ..models.notification import Notification, NotificationPurpose
from ..repositories import RepositoryFactory
from .base import BaseService

logger = logging.getLogger(__name__)


class NotificationService(BaseService):
    def __init__(self, db: Session):
        super().__init__(db)
        self.repository = RepositoryFactory.create_notification_repository(db)
        self.user_repository = RepositoryFactory.create_user_repository(db)

    def _client_email(self, booking: Booking) -> Optional[str]:
        if booking.client_email:
            return booking.client_email
        client = self.user_repository.get_by_id(booking.client_id, load_relationships=False)
        return client.email if client else None

    @BaseService.measure_operation("record_booking_notification")
    def record_booking_notification(
        self, booking: Booking, purpose: NotificationPurpose
    ) -> List[Notification]:
        """
        Queue one notification per available channel for the booking's client.

        The caller (event worker) owns the transaction.
        """
        created: List[Notification] = []

        email = self._client_email(booking)
        if email:
            created.append(
                self.repository.create(
                    user_id=booking.client_id,
                    booking_id=booking.id,
                    type="email",
                    purpose=purpose.value,
                    recipient=email,
                    status="queued",
                )
            )
        if booking.client_phone:
            created.append(
                self.repository.create(
                    user_id=booking.client_id,
                    booking_id=booking.id,
                    type="sms",
                    purpose=purpose.value,
                    recipient=booking.client_phone,
                    status="queued",
                )
            )

        if not created:
            self.logger.warning(
                "No contact channel for booking %s; %s notice skipped", booking.id, purpose.value
            )
        return created
