import threading
from pathlib import Path

import pytest

from videos.exceptions import LedgerError, StorageError, TranscodeError
from videos.ffmpeg import THUMBNAIL_VARIANT, DerivedFile, parse_resolutions
from videos.jobs import JobDescriptor
from videos.orchestrator import JobOrchestrator

BUCKET = "test-bucket"
VIDEO_ID = "3f1c9a52-7d1e-4b5e-9a44-0c2f5a6b7d80"
SOURCE_KEY = f"uploads/{VIDEO_ID}/holiday clip.mov"


class FakeLedger:
    """In-memory ledger that records every write it receives."""

    def __init__(self, statuses=None, fail_writes=()):
        self.statuses = dict(statuses or {})
        self.fail_writes = set(fail_writes)
        self.writes = []

    def get_status(self, video_id):
        return self.statuses.get(video_id)

    def mark_processing(self, video_id):
        if "PROCESSING" in self.fail_writes:
            raise LedgerError("connection refused")
        self.writes.append((video_id, "PROCESSING", {}))
        if self.statuses.get(video_id) in ("PENDING_UPLOAD", "UPLOADED"):
            self.statuses[video_id] = "PROCESSING"
            return 1
        return 0

    def set_status(self, video_id, status, **fields):
        status = str(status)
        if status in self.fail_writes:
            raise LedgerError(f"deadlock writing {status}")
        self.writes.append((video_id, status, fields))
        if self.statuses.get(video_id) != "PROCESSING":
            return 0
        self.statuses[video_id] = status
        return 1

    @property
    def statuses_written(self):
        return [status for _, status, _ in self.writes]


class FakeStorage:

    def __init__(self, fail_fetch=False, fail_store_variants=()):
        self.fail_fetch = fail_fetch
        self.fail_store_variants = set(fail_store_variants)
        self.fetches = []
        self.stores = []
        self._lock = threading.Lock()

    def fetch(self, bucket, key, destination):
        self.fetches.append((bucket, key, Path(destination)))
        if self.fail_fetch:
            raise StorageError(f"Download failed for {key}: NoSuchKey")
        Path(destination).write_bytes(b"original video bytes")

    def store(self, bucket, key, source, content_type):
        with self._lock:
            self.stores.append((bucket, key, Path(source), content_type))
        for variant in self.fail_store_variants:
            if key.rsplit(".", 1)[0].endswith(f"_{variant}"):
                raise StorageError(f"Upload failed for {source} to {key}: SlowDown")
        return '"0123456789abcdef"'

    @property
    def stored_keys(self):
        return {key for _, key, _, _ in self.stores}


class FakeEngine:

    def __init__(self, fail_variants=(), probe_error=None, delays=None):
        self.fail_variants = set(fail_variants)
        self.probe_error = probe_error
        self.delays = delays or {}
        self.calls = []
        self.finished = []
        self._lock = threading.Lock()

    def probe(self, source):
        if self.probe_error:
            raise self.probe_error
        return {"durationSeconds": 42, "width": 1920, "height": 1080, "formatName": "mov", "bitRate": 4000000}

    def _derive(self, variant, output_dir, job_id, destination_key, ext, content_type):
        with self._lock:
            self.calls.append((variant, destination_key))
        if variant in self.delays:
            threading.Event().wait(self.delays[variant])
        if variant in self.fail_variants:
            raise TranscodeError(f"FFmpeg transcoding ({variant}) failed: Invalid data found when processing input")
        output_path = Path(output_dir) / f"{job_id}_{variant}.{ext}"
        output_path.write_bytes(b"derived")
        with self._lock:
            self.finished.append(variant)
        return DerivedFile(variant, output_path, destination_key, content_type)

    def derive_variant(self, source, output_dir, resolution, job_id, destination_key):
        assert Path(source).exists()
        return self._derive(resolution.label, output_dir, job_id, destination_key, "mp4", "video/mp4")

    def derive_thumbnail(self, source, output_dir, job_id, destination_key):
        assert Path(source).exists()
        return self._derive(THUMBNAIL_VARIANT, output_dir, job_id, destination_key, "jpg", "image/jpeg")


class FakePublisher:

    def __init__(self, accepted=True, error=None):
        self.accepted = accepted
        self.error = error
        self.events = []

    def publish(self, kind, payload):
        self.events.append((kind, payload))
        if self.error:
            raise self.error
        return self.accepted


@pytest.fixture
def job():
    return JobDescriptor(
        video_id=VIDEO_ID,
        source_key=SOURCE_KEY,
        original_name="../holiday clip (final).mov",
        mime_type="video/quicktime",
    )


@pytest.fixture
def ledger():
    return FakeLedger({VIDEO_ID: "UPLOADED"})


@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture
def engine():
    return FakeEngine()


@pytest.fixture
def publisher():
    return FakePublisher()


@pytest.fixture
def temp_root(tmp_path):
    return tmp_path / "work"


@pytest.fixture
def make_orchestrator(ledger, storage, engine, publisher, temp_root):
    def _make(resolutions=("1080p", "720p", "480p"), **overrides):
        collaborators = {
            "ledger": ledger,
            "storage": storage,
            "engine": engine,
            "publisher": publisher,
        }
        collaborators.update(overrides)
        return JobOrchestrator(
            **collaborators,
            bucket=BUCKET,
            resolutions=parse_resolutions(resolutions),
            temp_root=temp_root,
            processed_prefix="processed/",
        )
    return _make
