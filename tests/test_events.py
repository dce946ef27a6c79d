from unittest.mock import MagicMock

import pytest
from kombu import Connection, Exchange, Queue

from videos.events import COMPLETED, FAILED, VideoEventPublisher

EXCHANGE = Exchange("test_video_events_topic", type="topic", durable=True)


@pytest.fixture
def connection():
    conn = Connection("memory://")
    yield conn
    conn.release()


def bound_queue(connection, name, routing_key):
    queue = Queue(name, EXCHANGE, routing_key=routing_key)(connection.default_channel)
    queue.declare()
    return queue


def test_completed_event_is_routed_by_topic(connection):
    completed = bound_queue(connection, "test-completed-events", "video.processing.completed")
    failed = bound_queue(connection, "test-failed-events", "video.processing.failed")
    payload = {"videoId": "v1", "status": "READY", "outputs": {"720p": "processed/v1/v1_720p.mp4"}, "metadata": {}}

    publisher = VideoEventPublisher(connection=connection, exchange=EXCHANGE)
    assert publisher.publish(COMPLETED, payload) is True

    message = completed.get(no_ack=True, accept=["json"])
    assert message is not None
    assert message.payload == payload
    assert failed.get(no_ack=True, accept=["json"]) is None


def test_failed_event_is_routed_by_topic(connection):
    failed = bound_queue(connection, "test-failed-events-2", "video.processing.*")
    payload = {"videoId": "v2", "status": "ERROR", "error": {"message": "boom"}, "originalS3Key": "uploads/v2.mp4"}

    assert VideoEventPublisher(connection=connection, exchange=EXCHANGE).publish(FAILED, payload) is True

    assert failed.get(no_ack=True, accept=["json"]).payload == payload


def test_transport_error_returns_false():
    connection = MagicMock()
    connection.Producer.side_effect = ConnectionError("connection reset by peer")

    publisher = VideoEventPublisher(connection=connection, exchange=EXCHANGE)

    assert publisher.publish(COMPLETED, {"videoId": "v3"}) is False


def test_unknown_event_kind_raises():
    publisher = VideoEventPublisher(connection=MagicMock(), exchange=EXCHANGE)

    with pytest.raises(ValueError):
        publisher.publish("started", {"videoId": "v4"})
