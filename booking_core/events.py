"""Booking event emitters."""
from __future__ import annotations

import logging
from datetime import datetime
from threading import Lock
from typing import List, Optional, Protocol

import pika
from pika.exceptions import AMQPError

from .config import Settings, get_settings
from .errors import EmissionFailure
from .schemas import BookingConfirmedEvent, ReservationRecord, ResourceRecord

logger = logging.getLogger(__name__)

BOOKING_CONFIRMED = "booking_confirmed"


class EventEmitter(Protocol):
    def publish(self, event: BookingConfirmedEvent) -> None: ...


def build_booking_confirmed_event(
    reservation: ReservationRecord,
    resource: ResourceRecord,
    committed_at: Optional[datetime] = None,
) -> BookingConfirmedEvent:
    return BookingConfirmedEvent(
        reservation_id=reservation.id,
        requester_id=reservation.user_id,
        resource_name=resource.name,
        start_time=reservation.start_time,
        end_time=reservation.end_time,
        total_price=reservation.total_price,
        status=reservation.status.value,
        committed_at=committed_at or reservation.created_at,
    )


class RabbitMQEmitter:
    """Publishes each event as a persistent JSON message on a durable queue."""

    def __init__(self, host: str, queue: str, port: int = 5672) -> None:
        self.host = host
        self.port = port
        self.queue = queue

    def publish(self, event: BookingConfirmedEvent) -> None:
        body = event.model_dump_json()
        try:
            connection = pika.BlockingConnection(pika.ConnectionParameters(host=self.host, port=self.port))
            try:
                channel = connection.channel()
                channel.queue_declare(queue=self.queue, durable=True)
                channel.basic_publish(
                    exchange="",
                    routing_key=self.queue,
                    body=body,
                    properties=pika.BasicProperties(
                        delivery_mode=2,
                        content_type="application/json",
                        message_id=event.reservation_id,
                        type=BOOKING_CONFIRMED,
                    ),
                )
            finally:
                connection.close()
        except AMQPError as exc:
            raise EmissionFailure(f"Could not publish {BOOKING_CONFIRMED} for {event.reservation_id}") from exc
        logger.info("Published %s for reservation %s", BOOKING_CONFIRMED, event.reservation_id)


class LoggingEmitter:
    def publish(self, event: BookingConfirmedEvent) -> None:
        logger.info("Event publishing disabled; %s: %s", BOOKING_CONFIRMED, event.model_dump_json())


class InMemoryEmitter:
    """Keeps published events in a list. Used by tests and local runs."""

    def __init__(self) -> None:
        self._lock = Lock()
        self.events: List[BookingConfirmedEvent] = []

    def publish(self, event: BookingConfirmedEvent) -> None:
        with self._lock:
            self.events.append(event)


def get_emitter(settings: Optional[Settings] = None) -> EventEmitter:
    settings = settings or get_settings()
    if not settings.event_publishing_enabled:
        return LoggingEmitter()
    return RabbitMQEmitter(
        host=settings.rabbitmq_host,
        port=settings.rabbitmq_port,
        queue=settings.booking_events_queue,
    )
