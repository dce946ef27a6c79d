import json
import logging

from django.db import close_old_connections
from kombu.mixins import ConsumerMixin

from .messaging import dead_letter_queue, processing_queue
from .serializers import JobDescriptorSerializer

logger = logging.getLogger(__name__)


class VideoProcessingConsumer(ConsumerMixin):
    """
    Feeds upload-completed messages to the orchestrator one at a time and
    turns its verdict into ack (True) or reject-without-requeue (False).
    Rejected messages reach the dead-letter queue through the main queue's
    x-dead-letter-exchange argument.
    """

    prefetch_count = 1

    def __init__(self, connection, orchestrator, queue=None, dlq=None):
        self.connection = connection
        self.orchestrator = orchestrator
        self.queue = queue or processing_queue()
        self.dlq = dlq or dead_letter_queue()

    def get_consumers(self, Consumer, channel):
        # Declare the dead-letter side first so rejects always have a landing zone
        self.dlq(channel).declare()
        logger.info("Dead-letter queue '%s' bound to '%s' with key '%s'",
                    self.dlq.name, self.dlq.exchange.name, self.dlq.routing_key)
        return [
            Consumer(
                queues=[self.queue],
                on_message=self.on_message,
                prefetch_count=self.prefetch_count,
            )
        ]

    def on_consume_ready(self, connection, channel, consumers, **kwargs):
        logger.info("Waiting for messages on queue '%s' (prefetch=%d)", self.queue.name, self.prefetch_count)

    def on_connection_error(self, exc, interval):
        logger.warning("Broker connection error: %s. Retrying in %ss...", exc, interval)

    def on_message(self, message):
        close_old_connections()
        delivery_tag = message.delivery_info.get("delivery_tag")
        logger.info("Received message [%s] routing key: %s",
                    delivery_tag, message.delivery_info.get("routing_key"))

        try:
            payload = json.loads(message.body)
        except (TypeError, ValueError) as e:
            logger.error("Rejecting message [%s]: body is not valid JSON (%s). Content: %r",
                         delivery_tag, e, message.body)
            message.reject(requeue=False)
            return

        serializer = JobDescriptorSerializer(data=payload)
        if not serializer.is_valid():
            logger.error("Rejecting message [%s]: invalid payload structure %s. Content: %r",
                         delivery_tag, serializer.errors, payload)
            message.reject(requeue=False)
            return

        job = serializer.to_descriptor()
        logger.info("Processing video=%s", job.video_id)
        try:
            success = self.orchestrator.run(job)
        except Exception:
            logger.exception("Orchestrator raised for video=%s [%s]", job.video_id, delivery_tag)
            success = False
        finally:
            close_old_connections()

        if success:
            logger.info("Acknowledged message [%s] for video=%s", delivery_tag, job.video_id)
            message.ack()
        else:
            logger.warning("Handler failed for video=%s. Rejecting [%s] without requeue.",
                           job.video_id, delivery_tag)
            message.reject(requeue=False)
