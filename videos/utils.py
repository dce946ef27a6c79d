import re
from pathlib import PurePosixPath

from django.conf import settings

_UNSAFE_FILENAME_CHARS = re.compile(r"[^a-zA-Z0-9._-]")


def safe_filename(name: str) -> str:
    """Replace anything outside [a-zA-Z0-9._-] so an uploaded name can't escape the workspace."""
    cleaned = _UNSAFE_FILENAME_CHARS.sub("_", name or "")
    if cleaned.strip("._") == "":
        return "source"
    return cleaned


def destination_key(video_id: str, variant: str, ext: str, prefix: str | None = None) -> str:
    """processed/<id>/<id>_<variant>.<ext>"""
    if prefix is None:
        prefix = settings.S3_PROCESSED_PREFIX
    return f"{prefix}{video_id}/{video_id}_{variant}.{ext}"


def basename(key: str) -> str:
    return PurePosixPath(key).name
