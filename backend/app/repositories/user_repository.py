# backend/app/repositories/user_repository.py
"""
User Repository for BookBetter

Users come from the upstream auth provider; the booking core only needs
lookups by id.
"""

import logging
from sqlalchemy.orm import Session

from ..models.user import User
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class UserRepository(BaseRepository[User]):
    """Repository for User data access."""

    def __init__(self, db: Session):
        super().__init__(db, User)
        self.logger = logging.getLogger(__name__)
