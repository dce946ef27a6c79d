from django.urls import path
from .views import VideoStatusView

urlpatterns = [
    path("videos/<str:video_id>/", VideoStatusView.as_view(), name="video_status"),
]
