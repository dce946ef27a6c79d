import json
from functools import partial

import pytest
from django.conf import settings
from kombu import Connection, Consumer, Producer

from videos.consumer import VideoProcessingConsumer
from videos.jobs import JobDescriptor
from videos.messaging import dead_letter_exchange

pytestmark = pytest.mark.django_db

VALID_BODY = {
    "videoId": "0b6f7a36-1111-4a55-8c8e-5e0b0f7c2d11",
    "s3Key": "uploads/0b6f7a36/clip.mp4",
    "originalFilename": "clip.mp4",
    "mimeType": "video/mp4",
}


class FakeMessage:
    def __init__(self, body):
        self.body = body if isinstance(body, bytes) else json.dumps(body).encode()
        self.delivery_info = {"delivery_tag": 7, "routing_key": "video.upload.completed"}
        self.acked = False
        self.rejected = False
        self.requeue = None

    def ack(self):
        self.acked = True

    def reject(self, requeue=False):
        self.rejected = True
        self.requeue = requeue


class RecordingOrchestrator:
    def __init__(self, verdict=True, error=None):
        self.verdict = verdict
        self.error = error
        self.jobs = []

    def run(self, job):
        self.jobs.append(job)
        if self.error:
            raise self.error
        return self.verdict


def make_consumer(orchestrator):
    return VideoProcessingConsumer(connection=None, orchestrator=orchestrator)


def test_true_verdict_acks():
    orchestrator = RecordingOrchestrator(verdict=True)
    message = FakeMessage(VALID_BODY)

    make_consumer(orchestrator).on_message(message)

    assert message.acked and not message.rejected
    assert orchestrator.jobs == [
        JobDescriptor(
            video_id=VALID_BODY["videoId"],
            source_key=VALID_BODY["s3Key"],
            original_name="clip.mp4",
            mime_type="video/mp4",
        )
    ]


def test_false_verdict_rejects_without_requeue():
    message = FakeMessage(VALID_BODY)

    make_consumer(RecordingOrchestrator(verdict=False)).on_message(message)

    assert message.rejected and message.requeue is False
    assert not message.acked


def test_orchestrator_exception_is_treated_as_false():
    message = FakeMessage(VALID_BODY)

    make_consumer(RecordingOrchestrator(error=RuntimeError("unexpected"))).on_message(message)

    assert message.rejected and message.requeue is False
    assert not message.acked


@pytest.mark.parametrize("body", [
    b"not json at all",
    b"\xff\xfe",
    json.dumps(["a", "list"]).encode(),
    json.dumps({"s3Key": "uploads/x.mp4"}).encode(),
    json.dumps({"videoId": "abc"}).encode(),
    json.dumps({"videoId": "", "s3Key": "uploads/x.mp4"}).encode(),
    json.dumps({"videoId": 123, "s3Key": "uploads/x.mp4"}).encode(),
    b"null",
])
def test_invalid_payload_is_rejected_without_calling_orchestrator(body):
    orchestrator = RecordingOrchestrator()
    message = FakeMessage(body)

    make_consumer(orchestrator).on_message(message)

    assert orchestrator.jobs == []
    assert message.rejected and message.requeue is False
    assert not message.acked


def test_main_queue_dead_letters_to_dlx_on_upload_key():
    queue = make_consumer(RecordingOrchestrator()).queue

    assert queue.name == settings.VIDEO_PROCESSING_QUEUE
    assert queue.exchange.name == settings.VIDEO_EVENTS_EXCHANGE
    assert queue.exchange.type == "topic"
    assert queue.routing_key == settings.VIDEO_UPLOAD_COMPLETED_ROUTING_KEY
    assert queue.durable
    assert queue.queue_arguments == {
        "x-dead-letter-exchange": settings.VIDEO_PROCESSING_DLX,
        "x-dead-letter-routing-key": settings.VIDEO_UPLOAD_COMPLETED_ROUTING_KEY,
    }


def test_get_consumers_declares_dead_letter_queue_and_prefetch_one():
    connection = Connection("memory://")
    channel = connection.channel()
    consumer = VideoProcessingConsumer(connection, RecordingOrchestrator())

    consumers = consumer.get_consumers(partial(Consumer, channel), channel)

    assert len(consumers) == 1
    assert consumers[0].prefetch_count == 1
    assert [q.name for q in consumers[0].queues] == [settings.VIDEO_PROCESSING_QUEUE]

    # the DLQ exists and is bound to the DLX on the upload-completed key
    Producer(channel).publish(
        {"videoId": "dead"},
        exchange=dead_letter_exchange(),
        routing_key=settings.VIDEO_UPLOAD_COMPLETED_ROUTING_KEY,
        serializer="json",
    )
    dead = consumer.dlq(channel).get(no_ack=True, accept=["json"])
    assert dead is not None
    assert dead.payload == {"videoId": "dead"}
    connection.release()
