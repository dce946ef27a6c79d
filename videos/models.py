from django.db import models


class Video(models.Model):
    class Status(models.TextChoices):
        PENDING_UPLOAD = "PENDING_UPLOAD"
        UPLOADED = "UPLOADED"
        UPLOAD_FAILED = "UPLOAD_FAILED"
        PROCESSING = "PROCESSING"
        READY = "READY"
        ERROR = "ERROR"

    # Rows are created by the upload service; the worker only moves them forward
    id = models.CharField(primary_key=True, max_length=36)
    original_filename = models.CharField(max_length=255)
    object_storage_key = models.CharField(max_length=1024, blank=True, default="")
    mime_type = models.CharField(max_length=100, blank=True, default="")
    size_bytes = models.PositiveBigIntegerField(null=True, blank=True)
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.PENDING_UPLOAD)
    outputs = models.JSONField(default=dict, blank=True)    # {variant: s3_key}
    metadata = models.JSONField(null=True, blank=True)      # ffprobe summary
    error = models.TextField(blank=True, default="")

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    processed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "videos"
        indexes = [models.Index(fields=["status"], name="videos_status_idx")]

    def __str__(self):
        return f"{self.id} ({self.status})"


# Statuses a delivery may claim for processing
CLAIMABLE_STATUSES = (Video.Status.PENDING_UPLOAD, Video.Status.UPLOADED)
# Statuses that mean another delivery already handled (or is handling) the video
HANDLED_STATUSES = (Video.Status.PROCESSING, Video.Status.READY, Video.Status.ERROR)
