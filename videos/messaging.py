"""Broker connection handle and the exchange/queue topology the worker relies on."""
import logging
import threading

from django.conf import settings
from kombu import Connection, Exchange, Queue

logger = logging.getLogger(__name__)

_connection = None
_connection_lock = threading.Lock()


def get_connection() -> Connection:
    """Process-wide broker connection, created lazily on first use."""
    global _connection
    with _connection_lock:
        if _connection is None:
            _connection = Connection(settings.BROKER_URL, heartbeat=settings.BROKER_HEARTBEAT)
            logger.info("Broker connection created for %s", _connection.as_uri())
        return _connection


def close_connection():
    global _connection
    with _connection_lock:
        if _connection is None:
            return
        try:
            _connection.release()
            logger.info("Broker connection closed.")
        except Exception:
            logger.exception("Error closing broker connection")
        finally:
            _connection = None


def events_exchange() -> Exchange:
    return Exchange(settings.VIDEO_EVENTS_EXCHANGE, type="topic", durable=True)


def dead_letter_exchange() -> Exchange:
    return Exchange(settings.VIDEO_PROCESSING_DLX, type="direct", durable=True)


def processing_queue() -> Queue:
    """Main work queue; rejected messages are routed to the dead-letter exchange."""
    routing_key = settings.VIDEO_UPLOAD_COMPLETED_ROUTING_KEY
    return Queue(
        settings.VIDEO_PROCESSING_QUEUE,
        exchange=events_exchange(),
        routing_key=routing_key,
        durable=True,
        queue_arguments={
            "x-dead-letter-exchange": settings.VIDEO_PROCESSING_DLX,
            "x-dead-letter-routing-key": routing_key,
        },
    )


def dead_letter_queue() -> Queue:
    return Queue(
        settings.VIDEO_PROCESSING_DLQ,
        exchange=dead_letter_exchange(),
        routing_key=settings.VIDEO_UPLOAD_COMPLETED_ROUTING_KEY,
        durable=True,
    )
