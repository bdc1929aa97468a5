"""Unit tests for booking event emitters."""
import json
from datetime import datetime
from decimal import Decimal
from unittest.mock import patch

import pytest
from pika.exceptions import AMQPConnectionError

from booking_core.config import Settings
from booking_core.errors import EmissionFailure
from booking_core.events import (
    InMemoryEmitter,
    LoggingEmitter,
    RabbitMQEmitter,
    build_booking_confirmed_event,
    get_emitter,
)
from booking_core.models import ReservationStatus
from booking_core.schemas import ReservationRecord, ResourceRecord

START = datetime(2024, 12, 1, 10, 0)
END = datetime(2024, 12, 3, 10, 0)


@pytest.fixture()
def event():
    reservation = ReservationRecord(
        id="5a0c8a3e-4c1b-4a8e-9f57-2d2d0b1f8f10",
        user_id=3,
        item_id=9,
        start_time=START,
        end_time=END,
        total_price=Decimal("150.00"),
        status=ReservationStatus.CONFIRMED,
        created_at=datetime(2024, 11, 1, 9, 0),
        updated_at=datetime(2024, 11, 1, 9, 0),
    )
    resource = ResourceRecord(id=9, name="Kayak", price_per_day=Decimal("50.00"), is_available=True)
    return build_booking_confirmed_event(reservation, resource)


class TestBuildEvent:
    def test_payload_fields(self, event):
        assert event.reservation_id == "5a0c8a3e-4c1b-4a8e-9f57-2d2d0b1f8f10"
        assert event.requester_id == 3
        assert event.resource_name == "Kayak"
        assert event.total_price == Decimal("150.00")
        assert event.status == "CONFIRMED"
        assert event.committed_at == datetime(2024, 11, 1, 9, 0)


class TestRabbitMQEmitter:
    @patch("booking_core.events.pika.BlockingConnection")
    def test_publishes_persistent_json(self, mock_connection, event):
        channel = mock_connection.return_value.channel.return_value

        RabbitMQEmitter(host="broker", queue="booking_confirmed").publish(event)

        channel.queue_declare.assert_called_once_with(queue="booking_confirmed", durable=True)
        kwargs = channel.basic_publish.call_args.kwargs
        assert kwargs["routing_key"] == "booking_confirmed"
        assert kwargs["properties"].delivery_mode == 2
        assert kwargs["properties"].message_id == event.reservation_id
        body = json.loads(kwargs["body"])
        assert body["reservation_id"] == event.reservation_id
        assert body["resource_name"] == "Kayak"
        mock_connection.return_value.close.assert_called_once()

    @patch("booking_core.events.pika.BlockingConnection", side_effect=AMQPConnectionError("refused"))
    def test_connection_error_becomes_emission_failure(self, _, event):
        with pytest.raises(EmissionFailure):
            RabbitMQEmitter(host="broker", queue="q").publish(event)

    @patch("booking_core.events.pika.BlockingConnection")
    def test_connection_closed_when_publish_fails(self, mock_connection, event):
        channel = mock_connection.return_value.channel.return_value
        channel.basic_publish.side_effect = AMQPConnectionError("lost")

        with pytest.raises(EmissionFailure):
            RabbitMQEmitter(host="broker", queue="q").publish(event)
        mock_connection.return_value.close.assert_called_once()


class TestOtherEmitters:
    def test_in_memory_records_events(self, event):
        emitter = InMemoryEmitter()
        emitter.publish(event)
        assert emitter.events == [event]

    def test_logging_emitter_logs(self, event, caplog):
        with caplog.at_level("INFO", logger="booking_core.events"):
            LoggingEmitter().publish(event)
        assert event.reservation_id in caplog.text


class TestGetEmitter:
    def test_disabled_publishing_uses_logging_emitter(self):
        assert isinstance(get_emitter(Settings(event_publishing_enabled=False)), LoggingEmitter)

    def test_enabled_publishing_uses_rabbitmq(self):
        emitter = get_emitter(Settings(event_publishing_enabled=True, rabbitmq_host="mq", booking_events_queue="bk"))
        assert isinstance(emitter, RabbitMQEmitter)
        assert emitter.host == "mq"
        assert emitter.queue == "bk"
