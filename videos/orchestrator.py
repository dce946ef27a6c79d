"""
Drives one upload-completed job through the processing pipeline:

    status gate -> PROCESSING -> download -> derive (fan-out) -> upload (fan-out)
    -> READY/ERROR -> result event

``JobOrchestrator.run`` never raises. It returns True when the message should
be acknowledged and False when it should be dead-lettered.
"""
import logging
import shutil
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from functools import partial
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from django.conf import settings
from django.utils import timezone

from .events import COMPLETED, FAILED, VideoEventPublisher
from .exceptions import LedgerError
from .ffmpeg import THUMBNAIL_VARIANT, FFmpegEngine, parse_resolutions
from .jobs import JobDescriptor, JobRun
from .ledger import VideoLedger
from .models import HANDLED_STATUSES, Video
from .s3 import S3Storage
from .utils import destination_key, safe_filename

logger = logging.getLogger(__name__)


@dataclass
class GroupResult:
    succeeded: Dict[str, Any] = field(default_factory=dict)
    failed: Dict[str, BaseException] = field(default_factory=dict)

    @property
    def first_error(self) -> Optional[BaseException]:
        """Error of the earliest-submitted failed task, not the first one to fail in time."""
        return next(iter(self.failed.values()), None)


def run_group(tasks: Dict[str, Callable[[], Any]], max_workers: int | None = None) -> GroupResult:
    """
    Start every task, wait for all of them to settle, and split the outcomes.
    A failing task does not cancel its siblings. Both mappings keep the
    order in which the tasks were given.
    """
    result = GroupResult()
    if not tasks:
        return result

    with ThreadPoolExecutor(max_workers=max_workers or len(tasks), thread_name_prefix="job-task") as pool:
        futures = {label: pool.submit(fn) for label, fn in tasks.items()}
        wait(futures.values())

    for label, future in futures.items():
        exc = future.exception()
        if exc is None:
            result.succeeded[label] = future.result()
        else:
            result.failed[label] = exc
    return result


class JobOrchestrator:

    def __init__(self, ledger, storage, engine, publisher, *, bucket, resolutions, temp_root,
                 processed_prefix=None):
        self.ledger = ledger
        self.storage = storage
        self.engine = engine
        self.publisher = publisher
        self.bucket = bucket
        self.resolutions = list(resolutions)
        self.temp_root = Path(temp_root)
        self.processed_prefix = processed_prefix

    def run(self, job: JobDescriptor) -> bool:
        video_id = job.video_id
        logger.info("Received job for video=%s (source=%s, name=%s)", video_id, job.source_key, job.original_name)

        try:
            status = self.ledger.get_status(video_id)
        except Exception as e:
            logger.exception("Could not read video record for video=%s", video_id)
            self._publish_failure(job, f"Could not read video record: {e}")
            return False

        if status is None:
            logger.error("Video record %s not found in DB. Cannot process; dead-lettering.", video_id)
            self._publish_failure(job, "Video record not found in database")
            return False

        if status in HANDLED_STATUSES:
            logger.warning("Video %s already %s. Skipping duplicate delivery.", video_id, status)
            return True

        try:
            claimed = self.ledger.mark_processing(video_id)
        except Exception as e:
            logger.exception("Early failure: could not set video=%s to PROCESSING", video_id)
            self._publish_failure(job, f"Early failure: could not mark video as PROCESSING: {e}")
            return False

        if not claimed:
            logger.warning("Video %s was claimed by another delivery or left %s. Skipping.", video_id, status)
            return True

        workdir = self.temp_root / safe_filename(video_id)
        try:
            return self._process(job, workdir)
        finally:
            self._cleanup(workdir)

    def _process(self, job: JobDescriptor, workdir: Path) -> bool:
        run = JobRun(job)
        try:
            workdir.mkdir(parents=True, exist_ok=True)
            source = workdir / f"original_{safe_filename(job.original_name)}"
            self.storage.fetch(self.bucket, job.source_key, source)

            run.metadata = self._probe(job, source)
            self._derive(run, source, workdir)
            self._upload(run)
        except Exception as e:
            run.fail(e)
            logger.error("ERROR during video processing for video=%s: %s", job.video_id, e, exc_info=True)
            return self._finalize_failure(run)
        return self._finalize_success(run)

    def _probe(self, job: JobDescriptor, source: Path):
        try:
            metadata = self.engine.probe(source)
        except Exception as e:
            logger.warning("Failed to extract metadata for video=%s, continuing without it: %s", job.video_id, e)
            return None
        logger.info("Metadata for video=%s: %s", job.video_id, metadata)
        return metadata

    def _derive(self, run: JobRun, source: Path, workdir: Path):
        video_id = run.job.video_id
        tasks = {}
        for resolution in self.resolutions:
            key = destination_key(video_id, resolution.label, "mp4", self.processed_prefix)
            tasks[resolution.label] = partial(
                self.engine.derive_variant, source, workdir, resolution, video_id, key
            )
        thumb_key = destination_key(video_id, THUMBNAIL_VARIANT, "jpg", self.processed_prefix)
        tasks[THUMBNAIL_VARIANT] = partial(self.engine.derive_thumbnail, source, workdir, video_id, thumb_key)

        logger.info("Starting %d derivation tasks for video=%s", len(tasks), video_id)
        group = run_group(tasks)
        run.derived.update(group.succeeded)
        if group.failed:
            logger.error("Derivation failed for video=%s: failed=%s succeeded=%s",
                         video_id, list(group.failed), list(group.succeeded))
            raise group.first_error
        logger.info("All derivation tasks completed for video=%s", video_id)

    def _upload(self, run: JobRun):
        tasks = {
            variant: partial(self.storage.store, self.bucket, derived.destination_key,
                             derived.output_path, derived.content_type)
            for variant, derived in run.derived.items()
        }
        logger.info("Starting %d uploads for video=%s", len(tasks), run.job.video_id)
        group = run_group(tasks)
        for variant in group.succeeded:
            run.outputs[variant] = run.derived[variant].destination_key
        if group.failed:
            logger.error("Upload failed for video=%s: failed=%s uploaded=%s",
                         run.job.video_id, list(group.failed), list(run.outputs))
            raise group.first_error
        logger.info("Uploads completed for video=%s", run.job.video_id)

    def _finalize_success(self, run: JobRun) -> bool:
        video_id = run.job.video_id
        run.status = Video.Status.READY
        try:
            rows = self.ledger.set_status(
                video_id,
                Video.Status.READY,
                outputs=dict(run.outputs),
                metadata=run.metadata,
                error="",
                processed_at=timezone.now(),
            )
            if not rows:
                raise LedgerError(f"no PROCESSING record matched video {video_id}")
        except Exception as e:
            # The expensive work is done; acknowledging avoids redoing it.
            logger.critical(
                "Video %s was processed and uploaded but the READY status write failed: %s. "
                "Manual reconciliation required (outputs=%s).",
                video_id, e, run.outputs,
            )
            return True

        logger.info("Video processing successful for video=%s", video_id)
        self._publish(COMPLETED, {
            "videoId": video_id,
            "status": Video.Status.READY.value,
            "outputs": dict(run.outputs),
            "metadata": run.metadata or {},
        })
        return True

    def _finalize_failure(self, run: JobRun) -> bool:
        video_id = run.job.video_id
        run.status = Video.Status.ERROR
        message = str(run.error) or type(run.error).__name__
        try:
            rows = self.ledger.set_status(
                video_id,
                Video.Status.ERROR,
                outputs=dict(run.outputs),
                metadata=run.metadata,
                error=message[:4000],
            )
            if not rows:
                logger.error("ERROR status write for video=%s matched no PROCESSING record", video_id)
        except Exception:
            logger.exception("Failed to record ERROR status for video=%s", video_id)

        self._publish_failure(run.job, message)
        return False

    def _publish_failure(self, job: JobDescriptor, message: str):
        self._publish(FAILED, {
            "videoId": job.video_id,
            "status": Video.Status.ERROR.value,
            "error": {"message": message or "Unknown processing error"},
            "originalS3Key": job.source_key,
        })

    def _publish(self, kind: str, payload: dict):
        try:
            accepted = self.publisher.publish(kind, payload)
        except Exception:
            logger.warning("Publishing %s event for video=%s raised", kind, payload["videoId"], exc_info=True)
            return
        if not accepted:
            logger.warning("Publishing %s event for video=%s was not accepted", kind, payload["videoId"])

    def _cleanup(self, workdir: Path):
        logger.info("Cleaning up temporary directory: %s", workdir)
        try:
            shutil.rmtree(workdir)
        except FileNotFoundError:
            pass
        except OSError:
            logger.exception("Error cleaning up temp directory %s", workdir)


def build_orchestrator() -> JobOrchestrator:
    """Wire the orchestrator to the real collaborators configured in settings."""
    return JobOrchestrator(
        ledger=VideoLedger(),
        storage=S3Storage(),
        engine=FFmpegEngine(),
        publisher=VideoEventPublisher(),
        bucket=settings.S3_BUCKET,
        resolutions=parse_resolutions(settings.PROCESSING_RESOLUTIONS),
        temp_root=settings.VIDEO_WORKER_TEMP_DIR,
        processed_prefix=settings.S3_PROCESSED_PREFIX,
    )
