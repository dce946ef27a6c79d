"""ffmpeg/ffprobe wrappers that derive the published variants of a source video."""
import json
import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured
from PIL import Image

from .exceptions import TranscodeError
from .utils import safe_filename

logger = logging.getLogger(__name__)

THUMBNAIL_VARIANT = "thumbnail"


@dataclass(frozen=True)
class Resolution:
    label: str
    height: int
    video_bitrate: str


RESOLUTIONS = {
    r.label: r
    for r in (
        Resolution("1080p", 1080, "2500k"),
        Resolution("720p", 720, "1500k"),
        Resolution("480p", 480, "800k"),
        Resolution("360p", 360, "800k"),
    )
}


@dataclass(frozen=True)
class DerivedFile:
    variant: str
    output_path: Path
    destination_key: str
    content_type: str


ProgressObserver = Callable[[str, str], None]


def parse_resolutions(labels) -> list[Resolution]:
    """Validate configured labels, drop duplicates and order highest first."""
    unknown = [label for label in labels if label not in RESOLUTIONS]
    if unknown:
        raise ImproperlyConfigured(
            f"Unsupported resolutions: {unknown}. Allowed: {sorted(RESOLUTIONS)}"
        )
    unique = {RESOLUTIONS[label] for label in labels}
    return sorted(unique, key=lambda r: r.height, reverse=True)


def parse_size(value: str) -> tuple[int, int]:
    """'320x180' -> (320, 180)"""
    try:
        width, height = (int(part) for part in value.lower().split("x"))
    except ValueError:
        raise ImproperlyConfigured(f"Invalid size {value!r}, expected WIDTHxHEIGHT")
    if width <= 0 or height <= 0:
        raise ImproperlyConfigured(f"Invalid size {value!r}, dimensions must be > 0")
    return width, height


def _stderr_tail(stderr, limit: int = 1000) -> str:
    if not stderr:
        return ""
    if isinstance(stderr, bytes):
        stderr = stderr.decode("utf-8", errors="ignore")
    return stderr.strip()[-limit:]


class FFmpegEngine:
    """
    Runs ffmpeg as a subprocess per derivation. Every invocation is bounded by
    ``timeout`` seconds; on expiry the process is killed and TranscodeError is
    raised, so a hung encode cannot hold the worker's only job slot forever.
    """

    def __init__(
        self,
        ffmpeg: str | None = None,
        ffprobe: str | None = None,
        timeout: int | None = None,
        thumbnail_timestamp: str | None = None,
        thumbnail_size: str | None = None,
        on_progress: Optional[ProgressObserver] = None,
    ):
        self.ffmpeg = ffmpeg or settings.FFMPEG_BINARY
        self.ffprobe = ffprobe or settings.FFPROBE_BINARY
        self.timeout = timeout or settings.FFMPEG_TIMEOUT_SECONDS
        self.thumbnail_timestamp = thumbnail_timestamp or settings.THUMBNAIL_TIMESTAMP
        self.thumbnail_size = parse_size(thumbnail_size or settings.THUMBNAIL_SIZE)
        self.on_progress = on_progress

    def _notify(self, variant: str, event: str):
        if self.on_progress is not None:
            self.on_progress(variant, event)

    def _run(self, cmd: list[str], what: str) -> subprocess.CompletedProcess:
        logger.debug("Spawning: %s", " ".join(cmd))
        try:
            return subprocess.run(
                cmd, check=True, stdout=subprocess.PIPE, stderr=subprocess.PIPE, timeout=self.timeout
            )
        except subprocess.CalledProcessError as e:
            raise TranscodeError(f"{what} failed: {_stderr_tail(e.stderr) or e}") from e
        except subprocess.TimeoutExpired as e:
            raise TranscodeError(f"{what} timed out after {self.timeout}s") from e
        except OSError as e:
            raise TranscodeError(f"{what} could not start: {e}") from e

    def probe(self, source) -> dict:
        """Summarise the source container and first video stream via ffprobe."""
        cmd = [
            self.ffprobe,
            "-v", "error",
            "-print_format", "json",
            "-show_format",
            "-show_streams",
            str(source),
        ]
        proc = self._run(cmd, f"ffprobe for {Path(source).name}")
        try:
            data = json.loads(proc.stdout or b"{}")
        except ValueError as e:
            raise TranscodeError(f"ffprobe returned invalid JSON: {e}") from e

        fmt = data.get("format") or {}
        video = next((s for s in data.get("streams") or [] if s.get("codec_type") == "video"), {})
        duration = fmt.get("duration")
        bit_rate = fmt.get("bit_rate")
        return {
            "durationSeconds": round(float(duration)) if duration is not None else None,
            "width": video.get("width"),
            "height": video.get("height"),
            "formatName": fmt.get("format_name"),
            "bitRate": int(bit_rate) if bit_rate is not None else None,
        }

    def derive_variant(self, source, output_dir, resolution: Resolution, job_id: str,
                       destination_key: str) -> DerivedFile:
        """Transcode to H.264/AAC MP4 at ``resolution``."""
        output_path = Path(output_dir) / f"{safe_filename(job_id)}_{resolution.label}.mp4"
        cmd = [
            self.ffmpeg,
            "-y",
            "-i", str(source),
            "-vf", f"scale=-2:{resolution.height}",
            "-c:v", "libx264",
            "-preset", "medium",
            "-crf", "23",
            "-b:v", resolution.video_bitrate,
            "-c:a", "aac",
            "-b:a", "128k",
            "-movflags", "+faststart",
            str(output_path),
        ]
        logger.info("Transcoding video=%s to %s", job_id, resolution.label)
        self._notify(resolution.label, "start")
        self._run(cmd, f"FFmpeg transcoding ({resolution.label})")
        self._notify(resolution.label, "end")
        logger.info("Transcode finished video=%s %s -> %s", job_id, resolution.label, output_path)
        return DerivedFile(resolution.label, output_path, destination_key, "video/mp4")

    def derive_thumbnail(self, source, output_dir, job_id: str, destination_key: str) -> DerivedFile:
        """Grab one frame with ffmpeg and bound it to the thumbnail size with Pillow."""
        output_dir = Path(output_dir)
        stem = safe_filename(job_id)
        frame_path = output_dir / f"{stem}_frame.png"
        output_path = output_dir / f"{stem}_{THUMBNAIL_VARIANT}.jpg"
        cmd = [
            self.ffmpeg,
            "-y",
            "-ss", self.thumbnail_timestamp,
            "-i", str(source),
            "-frames:v", "1",
            str(frame_path),
        ]
        logger.info("Generating thumbnail for video=%s at %s", job_id, self.thumbnail_timestamp)
        self._notify(THUMBNAIL_VARIANT, "start")
        self._run(cmd, "FFmpeg thumbnail generation")

        try:
            with Image.open(frame_path) as frame:
                img = frame.convert("RGB")
            img.thumbnail(self.thumbnail_size)
            img.save(output_path, format="JPEG", quality=90)
        except OSError as e:
            # ffmpeg exits 0 without writing a frame when the seek is past the end
            raise TranscodeError(f"Thumbnail extraction produced no usable frame: {e}") from e
        finally:
            frame_path.unlink(missing_ok=True)

        self._notify(THUMBNAIL_VARIANT, "end")
        return DerivedFile(THUMBNAIL_VARIANT, output_path, destination_key, "image/jpeg")
