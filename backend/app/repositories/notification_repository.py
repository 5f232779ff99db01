# backend/app/repositories/notification_repository.py
"""Notification request log."""

from typing import List

from sqlalchemy.orm import Session

from ..models.notification import Notification
from .base_repository import BaseRepository


class NotificationRepository(BaseRepository[Notification]):
    def __init__(self, db: Session):
        super().__init__(db, Notification)

    def list_for_booking(self, booking_id: str) -> List[Notification]:
        query = (
            self.db.query(Notification)
            .filter(Notification.booking_id == booking_id)
            .order_by(Notification.created_at.asc(), Notification.id.asc())
        )
        return self._execute_query(query)
