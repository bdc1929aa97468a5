"""Interval conflict detection for item timelines.

Intervals are closed at both ends: ``[a, b]`` and ``[c, d]`` overlap iff
``a <= d and c <= b``. Touching endpoints therefore conflict. Only
reservations in a blocking (non-terminal) status occupy the timeline.
"""
from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, List, Union

from sqlalchemy import and_
from sqlalchemy.sql.elements import ColumnElement

from .models import TERMINAL_STATUSES, Reservation, ReservationStatus
from .schemas import ReservationRecord

if TYPE_CHECKING:
    from .store import ReservationStore

BLOCKING_STATUSES = frozenset(status for status in ReservationStatus if status not in TERMINAL_STATUSES)


def intervals_overlap(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    return a_start <= b_end and b_start <= a_end


def overlap_filter(
    resource_id: Union[int, ColumnElement[int]], start: datetime, end: datetime
) -> ColumnElement[bool]:
    """SQL criteria selecting blocking reservations of ``resource_id`` that meet ``[start, end]``.

    ``resource_id`` may be a column (e.g. ``Item.id``) for correlated
    subqueries. The ``(item_id, start_time, end_time)`` index serves this
    predicate.
    """
    return and_(
        Reservation.item_id == resource_id,
        Reservation.status.in_(sorted(BLOCKING_STATUSES, key=lambda s: s.value)),
        Reservation.start_time <= end,
        Reservation.end_time >= start,
    )


class ConflictIndex:
    """Answers overlap questions against the durable store."""

    def __init__(self, store: "ReservationStore") -> None:
        self._store = store

    def has_conflict(self, resource_id: int, start: datetime, end: datetime) -> bool:
        return self._store.exists_overlapping(resource_id, start, end)

    def list_conflicts(self, resource_id: int, start: datetime, end: datetime) -> List[ReservationRecord]:
        return self._store.find_overlapping(resource_id, start, end)
