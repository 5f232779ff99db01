# backend/app/repositories/tenant_repository.py
"""Tenant and staff-account lookups."""

import logging
from typing import List, Optional

from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.tenant import StaffAccount, Tenant
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class TenantRepository(BaseRepository[Tenant]):
    def __init__(self, db: Session):
        super().__init__(db, Tenant)

    def get_active(self, tenant_id: str) -> Optional[Tenant]:
        try:
            return (
                self.db.query(Tenant)
                .filter(Tenant.id == tenant_id, Tenant.active.is_(True))
                .first()
            )
        except OperationalError:
            raise
        except SQLAlchemyError as e:
            self.logger.error(f"Error loading tenant {tenant_id}: {str(e)}")
            raise RepositoryException(f"Failed to load tenant: {str(e)}")

    def list_active_staff(self, tenant_id: str) -> List[StaffAccount]:
        """Active staff accounts in assignment order (oldest account first)."""
        query = (
            self.db.query(StaffAccount)
            .filter(StaffAccount.tenant_id == tenant_id, StaffAccount.active.is_(True))
            .order_by(StaffAccount.created_at.asc(), StaffAccount.id.asc())
        )
        return self._execute_query(query)
