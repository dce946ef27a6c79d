"""Durable per-video status record, backed by the ``videos`` table.

The worker never creates rows: the upload service owns their creation and
this module only moves an existing row forward through
``PENDING_UPLOAD/UPLOADED -> PROCESSING -> READY | ERROR``.
"""
import logging

from django.utils import timezone

from .models import CLAIMABLE_STATUSES, Video

logger = logging.getLogger(__name__)


class VideoLedger:

    def get_status(self, video_id: str) -> str | None:
        """Return the stored status, or ``None`` when no record exists."""
        return (
            Video.objects.filter(pk=video_id)
            .values_list("status", flat=True)
            .first()
        )

    def mark_processing(self, video_id: str) -> int:
        """
        Conditionally move the record to PROCESSING.

        The update only matches while the status is still claimable, so two
        deliveries racing past the status read cannot both claim the video.
        Returns the number of rows updated (0 or 1).
        """
        rows = Video.objects.filter(pk=video_id, status__in=CLAIMABLE_STATUSES).update(
            status=Video.Status.PROCESSING,
            error="",
            updated_at=timezone.now(),
        )
        logger.debug("mark_processing video=%s rows=%d", video_id, rows)
        return rows

    def set_status(self, video_id: str, status: str, **fields) -> int:
        """
        Terminal write from PROCESSING to ``status`` with extra column values
        (``outputs``, ``metadata``, ``error``, ``processed_at``).
        Returns the number of rows updated; 0 means the record is missing or
        is no longer PROCESSING.
        """
        fields["updated_at"] = timezone.now()
        rows = Video.objects.filter(pk=video_id, status=Video.Status.PROCESSING).update(
            status=status, **fields
        )
        logger.debug("set_status video=%s status=%s rows=%d", video_id, status, rows)
        return rows
