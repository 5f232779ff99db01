# backend/app/api/dependencies/services.py
"""
Service layer dependencies for dependency injection.

Each request gets fresh service instances bound to its own session; services
hold no cross-request state.
"""

from fastapi import Depends
from sqlalchemy.orm import Session

from ...services.availability_service import AvailabilityService
from ...services.booking_transaction_manager import BookingTransactionManager
from ...services.conflict_checker import ConflictChecker
from ...services.slot_generator import SlotGenerator
from .database import get_db


def get_slot_generator(db: Session = Depends(get_db)) -> SlotGenerator:
    return SlotGenerator(db)


def get_conflict_checker(db: Session = Depends(get_db)) -> ConflictChecker:
    return ConflictChecker(db)


def get_availability_service(
    db: Session = Depends(get_db),
    slot_generator: SlotGenerator = Depends(get_slot_generator),
    conflict_checker: ConflictChecker = Depends(get_conflict_checker),
) -> AvailabilityService:
    """Get availability service instance for dependency injection."""
    return AvailabilityService(db, slot_generator=slot_generator, conflict_checker=conflict_checker)


def get_booking_manager(
    db: Session = Depends(get_db),
    slot_generator: SlotGenerator = Depends(get_slot_generator),
    conflict_checker: ConflictChecker = Depends(get_conflict_checker),
) -> BookingTransactionManager:
    """Get booking transaction manager instance for dependency injection."""
    return BookingTransactionManager(
        db, conflict_checker=conflict_checker, slot_generator=slot_generator
    )
