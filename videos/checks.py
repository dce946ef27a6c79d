import shutil

from django.conf import settings
from django.core.checks import Error, Warning, register
from django.core.exceptions import ImproperlyConfigured

from .ffmpeg import parse_resolutions, parse_size


@register()
def check_processing_settings(app_configs, **kwargs):
    errors = []
    if not settings.PROCESSING_RESOLUTIONS:
        errors.append(Warning(
            "PROCESSING_RESOLUTIONS is empty; only thumbnails will be produced.",
            hint="Set PROCESSING_RESOLUTIONS, e.g. 1080p,720p,480p.",
            id="videos.W002",
        ))
    try:
        parse_resolutions(settings.PROCESSING_RESOLUTIONS)
    except ImproperlyConfigured as e:
        errors.append(Error(str(e), id="videos.E002"))
    try:
        parse_size(settings.THUMBNAIL_SIZE)
    except ImproperlyConfigured as e:
        errors.append(Error(str(e), id="videos.E003"))
    return errors


@register()
def check_ffmpeg_binaries(app_configs, **kwargs):
    warnings = []
    for name in ("FFMPEG_BINARY", "FFPROBE_BINARY"):
        binary = getattr(settings, name)
        if shutil.which(binary) is None:
            warnings.append(Warning(
                f"{name} '{binary}' was not found on PATH.",
                hint="Install ffmpeg or point the setting at the binary.",
                id="videos.W001",
            ))
    return warnings
