from rest_framework import serializers

from .jobs import JobDescriptor
from .models import Video
from .utils import basename


class StrictCharField(serializers.CharField):
    """CharField that refuses numbers and other non-string JSON values instead of coercing them."""

    def to_internal_value(self, data):
        if not isinstance(data, str):
            self.fail("invalid")
        return super().to_internal_value(data)


class JobDescriptorSerializer(serializers.Serializer):
    """
    Validates an upload-completed message body:
    {"videoId", "s3Key", "originalFilename", "mimeType"}.
    Only the id and the source key are required to run the pipeline.
    """
    videoId = StrictCharField(max_length=36)
    s3Key = StrictCharField(max_length=1024)
    originalFilename = serializers.CharField(required=False, allow_blank=True, max_length=255)
    mimeType = serializers.CharField(required=False, allow_blank=True, max_length=100)

    def to_descriptor(self) -> JobDescriptor:
        data = self.validated_data
        return JobDescriptor(
            video_id=data["videoId"],
            source_key=data["s3Key"],
            original_name=data.get("originalFilename") or basename(data["s3Key"]),
            mime_type=data.get("mimeType") or "",
        )


class VideoSerializer(serializers.ModelSerializer):
    class Meta:
        model = Video
        fields = [
            "id",
            "status",
            "original_filename",
            "mime_type",
            "metadata",
            "error",
            "created_at",
            "updated_at",
            "processed_at",
        ]
