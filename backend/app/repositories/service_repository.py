# backend/app/repositories/service_repository.py
"""Service (offering) lookups."""

from typing import Optional

from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.service import Service
from .base_repository import BaseRepository


class ServiceRepository(BaseRepository[Service]):
    def __init__(self, db: Session):
        super().__init__(db, Service)

    def get_active_for_tenant(self, tenant_id: str, service_id: str) -> Optional[Service]:
        """Return the service only if it belongs to the tenant and is active."""
        try:
            return (
                self.db.query(Service)
                .filter(
                    Service.id == service_id,
                    Service.tenant_id == tenant_id,
                    Service.active.is_(True),
                )
                .first()
            )
        except OperationalError:
            raise
        except SQLAlchemyError as e:
            self.logger.error(f"Error loading service {service_id}: {str(e)}")
            raise RepositoryException(f"Failed to load service: {str(e)}")
