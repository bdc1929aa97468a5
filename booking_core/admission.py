"""Booking admission: validation, conflict check, pricing and atomic commit."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .conflicts import ConflictIndex
from .database import SessionLocal, transaction
from .directory import Directory
from .errors import (
    BookingNotFound,
    IntervalConflict,
    InvalidInterval,
    PastStart,
    PersistenceFailure,
    ResourceNotFound,
    ResourceUnavailable,
)
from .events import EventEmitter, build_booking_confirmed_event
from .locks import ResourceLockRegistry
from .models import Reservation, ReservationStatus
from .pricing import compute_total_price
from .schemas import ReservationRecord, ResourceRecord
from .store import ReservationStore

logger = logging.getLogger(__name__)


def to_utc_naive(value: datetime) -> datetime:
    """Normalize to naive UTC. Naive input is taken to be UTC already."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class BookingAdmissionEngine:
    """Creates reservations without ever double-booking an item.

    The conflict re-check, insert and commit for one item run while holding
    that item's lock from ``locks`` and, inside the transaction, the database
    write lock (SQLite) or a row lock on the item (other backends).
    Directory lookups happen before the critical section and event emission
    after it.
    """

    def __init__(
        self,
        directory: Directory,
        emitter: EventEmitter,
        session_factory: Callable[[], Session] = SessionLocal,
        locks: Optional[ResourceLockRegistry] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ) -> None:
        self.directory = directory
        self.emitter = emitter
        self._session_factory = session_factory
        self._locks = locks or ResourceLockRegistry()
        self._clock = clock

    def create_booking(
        self,
        requester_id: int,
        resource_id: int,
        start: datetime,
        end: datetime,
        notes: Optional[str] = None,
    ) -> ReservationRecord:
        start, end = to_utc_naive(start), to_utc_naive(end)
        logger.info(
            "Creating booking for user %s: item %s from %s to %s", requester_id, resource_id, start, end
        )
        self._validate_interval(start, end)

        requester = self.directory.resolve_requester(requester_id)
        resource = self.directory.resolve_resource(resource_id)
        if not resource.is_available:
            logger.info("Rejected booking for item %s: item is not available", resource.id)
            raise ResourceUnavailable(f"Item {resource.id} is not available")

        reservation = self._commit(requester.id, resource, start, end, notes)
        logger.info("Booking created successfully with ID: %s", reservation.id)
        self._emit(reservation, resource)
        return reservation

    def get_booking(self, reservation_id: str) -> ReservationRecord:
        with self._session_factory() as session:
            record = ReservationStore(session).find_by_id(reservation_id)
        if record is None:
            raise BookingNotFound(f"Booking {reservation_id} not found")
        return record

    def list_for_resource(self, resource_id: int) -> List[ReservationRecord]:
        with self._session_factory() as session:
            return ReservationStore(session).find_by_resource(resource_id)

    def list_for_requester(self, requester_id: int) -> List[ReservationRecord]:
        with self._session_factory() as session:
            return ReservationStore(session).find_by_requester(requester_id)

    def list_by_status(self, status: ReservationStatus) -> List[ReservationRecord]:
        with self._session_factory() as session:
            return ReservationStore(session).find_by_status(status)

    def search(
        self,
        requester_id: Optional[int] = None,
        resource_id: Optional[int] = None,
        status: Optional[ReservationStatus] = None,
    ) -> List[ReservationRecord]:
        with self._session_factory() as session:
            return ReservationStore(session).search(requester_id, resource_id, status)

    def find_conflicts(self, resource_id: int, start: datetime, end: datetime) -> List[ReservationRecord]:
        start, end = to_utc_naive(start), to_utc_naive(end)
        if start > end:
            raise InvalidInterval()
        with self._session_factory() as session:
            return ConflictIndex(ReservationStore(session)).list_conflicts(resource_id, start, end)

    def is_available(self, resource_id: int, start: datetime, end: datetime) -> bool:
        start, end = to_utc_naive(start), to_utc_naive(end)
        self._validate_interval(start, end, allow_past=True)
        resource = self.directory.resolve_resource(resource_id)
        if not resource.is_available:
            return False
        with self._session_factory() as session:
            return not ConflictIndex(ReservationStore(session)).has_conflict(resource_id, start, end)

    def _validate_interval(self, start: datetime, end: datetime, allow_past: bool = False) -> None:
        if start >= end:
            raise InvalidInterval(f"Start {start.isoformat()} must be before end {end.isoformat()}")
        if not allow_past and start < self._clock():
            raise PastStart(f"Start {start.isoformat()} is in the past")

    def _commit(
        self,
        requester_id: int,
        resource: ResourceRecord,
        start: datetime,
        end: datetime,
        notes: Optional[str],
    ) -> ReservationRecord:
        with self._locks.hold(resource.id):
            try:
                with transaction(self._session_factory, write_lock=True) as session:
                    store = ReservationStore(session)
                    if not store.lock_resource(resource.id):
                        raise ResourceNotFound(f"Item {resource.id} not found")
                    if ConflictIndex(store).has_conflict(resource.id, start, end):
                        logger.info("Rejected booking for item %s: interval conflict", resource.id)
                        raise IntervalConflict()
                    record = store.insert(
                        Reservation(
                            user_id=requester_id,
                            item_id=resource.id,
                            start_time=start,
                            end_time=end,
                            total_price=compute_total_price(resource.price_per_day, start, end),
                            status=ReservationStatus.CONFIRMED,
                            notes=notes,
                        )
                    )
            except SQLAlchemyError as exc:
                logger.error("Error committing booking for item %s", resource.id, exc_info=True)
                raise PersistenceFailure() from exc
        return record

    def _emit(self, reservation: ReservationRecord, resource: ResourceRecord) -> None:
        event = build_booking_confirmed_event(reservation, resource, committed_at=self._clock())
        try:
            self.emitter.publish(event)
        except Exception:
            # Emission failures never reach the caller.
            logger.warning(
                "Failed to publish booking confirmed event for %s", reservation.id, exc_info=True
            )
