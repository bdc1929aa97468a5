"""Persistence boundary for reservations."""
from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .conflicts import overlap_filter
from .errors import PersistenceFailure
from .models import Item, Reservation, ReservationStatus
from .schemas import ReservationRecord


def _records(rows: List[Reservation]) -> List[ReservationRecord]:
    return [ReservationRecord.model_validate(row) for row in rows]


class ReservationStore:
    """CRUD and timeline queries over the ``reservations`` table.

    Bound to one session; committing is the caller's unit of work.
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    def insert(self, reservation: Reservation) -> ReservationRecord:
        try:
            self.session.add(reservation)
            self.session.flush()
        except SQLAlchemyError as exc:
            raise PersistenceFailure("Failed to insert reservation") from exc
        return ReservationRecord.model_validate(reservation)

    def find_by_id(self, reservation_id: str) -> Optional[ReservationRecord]:
        row = self.session.get(Reservation, reservation_id)
        return ReservationRecord.model_validate(row) if row is not None else None

    def find_by_resource(self, resource_id: int) -> List[ReservationRecord]:
        rows = (
            self.session.query(Reservation)
            .filter(Reservation.item_id == resource_id)
            .order_by(Reservation.start_time)
            .all()
        )
        return _records(rows)

    def find_by_requester(self, requester_id: int) -> List[ReservationRecord]:
        rows = (
            self.session.query(Reservation)
            .filter(Reservation.user_id == requester_id)
            .order_by(Reservation.start_time.desc())
            .all()
        )
        return _records(rows)

    def find_by_status(self, status: ReservationStatus) -> List[ReservationRecord]:
        rows = (
            self.session.query(Reservation)
            .filter(Reservation.status == status)
            .order_by(Reservation.start_time)
            .all()
        )
        return _records(rows)

    def search(
        self,
        requester_id: Optional[int] = None,
        resource_id: Optional[int] = None,
        status: Optional[ReservationStatus] = None,
    ) -> List[ReservationRecord]:
        query = self.session.query(Reservation)
        if requester_id is not None:
            query = query.filter(Reservation.user_id == requester_id)
        if resource_id is not None:
            query = query.filter(Reservation.item_id == resource_id)
        if status is not None:
            query = query.filter(Reservation.status == status)
        return _records(query.order_by(Reservation.start_time.desc()).all())

    def find_overlapping(self, resource_id: int, start: datetime, end: datetime) -> List[ReservationRecord]:
        rows = (
            self.session.query(Reservation)
            .filter(overlap_filter(resource_id, start, end))
            .order_by(Reservation.start_time)
            .all()
        )
        return _records(rows)

    def exists_overlapping(self, resource_id: int, start: datetime, end: datetime) -> bool:
        query = self.session.query(Reservation.id).filter(overlap_filter(resource_id, start, end))
        return bool(self.session.query(query.exists()).scalar())

    def lock_resource(self, resource_id: int) -> bool:
        """Take a row lock on the item for the rest of the transaction.

        Emits ``SELECT ... FOR UPDATE`` on backends that support it; SQLite
        compiles the query without the clause.
        """
        row = (
            self.session.query(Item.id)
            .filter(Item.id == resource_id)
            .with_for_update()
            .first()
        )
        return row is not None

    def update_status(self, reservation_id: str, status: ReservationStatus) -> Optional[ReservationRecord]:
        row = self.session.get(Reservation, reservation_id)
        if row is None:
            return None
        row.status = status
        try:
            self.session.flush()
        except SQLAlchemyError as exc:
            raise PersistenceFailure("Failed to update reservation") from exc
        return ReservationRecord.model_validate(row)
