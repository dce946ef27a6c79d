from rest_framework import views
from rest_framework.permissions import AllowAny
from rest_framework.response import Response

from .models import Video
from .s3 import create_presigned_get
from .serializers import VideoSerializer


class VideoStatusView(views.APIView):
    """
    Read-only view of the processing ledger for one video, with time-limited
    download URLs for every published variant.
    """
    permission_classes = [AllowAny]
    authentication_classes = []

    def get(self, request, video_id):
        try:
            video = Video.objects.get(pk=video_id)
        except Video.DoesNotExist:
            return Response({"detail": "Not found"}, status=404)

        data = VideoSerializer(video).data
        data["outputs"] = [
            {
                "variant": variant,
                "s3_key": key,
                "url": create_presigned_get(key),  # time-limited download URL
            }
            for variant, key in (video.outputs or {}).items()
        ]
        return Response(data)
