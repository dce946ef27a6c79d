import logging
import signal

from django.core.management.base import BaseCommand
from django.db import connections

from videos.consumer import VideoProcessingConsumer
from videos.messaging import close_connection, get_connection
from videos.orchestrator import build_orchestrator
from videos.s3 import reset_s3_client

logger = logging.getLogger("videos.worker")


class Command(BaseCommand):
    help = "Consume upload-completed events and process one video at a time."

    def handle(self, *args, **options):
        logger.info("--- Video Processing Service Starting ---")
        orchestrator = build_orchestrator()
        consumer = VideoProcessingConsumer(get_connection(), orchestrator)

        def request_stop(signum, frame):
            logger.info("Received %s; finishing the current job and stopping.", signal.Signals(signum).name)
            consumer.should_stop = True

        signal.signal(signal.SIGTERM, request_stop)
        signal.signal(signal.SIGINT, request_stop)

        try:
            consumer.run()
        finally:
            logger.info("--- Video Processing Service Shutting Down ---")
            close_connection()
            reset_s3_client()
            connections.close_all()
            logger.info("Shutdown complete.")
