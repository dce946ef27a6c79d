import json
import logging

from django.conf import settings

from .messaging import events_exchange, get_connection

logger = logging.getLogger(__name__)

COMPLETED = "completed"
FAILED = "failed"


class VideoEventPublisher:
    """
    Publishes processing outcomes to the video events topic exchange.
    Publishing is best-effort: failures are logged and reported as ``False``,
    never raised, because the ledger is the source of truth.
    """

    def __init__(self, connection=None, exchange=None):
        self._connection = connection
        self.exchange = exchange or events_exchange()
        self.routing_keys = {
            COMPLETED: settings.VIDEO_PROCESSING_COMPLETED_ROUTING_KEY,
            FAILED: settings.VIDEO_PROCESSING_FAILED_ROUTING_KEY,
        }

    @property
    def connection(self):
        return self._connection or get_connection()

    def publish(self, kind: str, payload: dict) -> bool:
        try:
            routing_key = self.routing_keys[kind]
        except KeyError:
            raise ValueError(f"Unknown event kind {kind!r}; expected one of {sorted(self.routing_keys)}")

        try:
            producer = self.connection.Producer(serializer="json")
            producer.publish(
                payload,
                exchange=self.exchange,
                routing_key=routing_key,
                declare=[self.exchange],
                delivery_mode="persistent",
                retry=True,
                retry_policy={"max_retries": 3, "interval_start": 0, "interval_step": 1},
            )
        except Exception:
            logger.exception("Failed to publish event [%s] for video=%s", routing_key, payload.get("videoId"))
            return False

        preview = json.dumps(payload, default=str)
        logger.info("Published event to '%s' [%s]: %s", self.exchange.name, routing_key,
                    preview[:200] + ("..." if len(preview) > 200 else ""))
        return True
