from django.urls import path
from .views import ConfirmUploadView, MediaDetailView, MediaListView, MediaStatsView, PresignUploadView

urlpatterns = [
    path("", MediaListView.as_view(), name="media_list"),
    path("presigned-upload-url", PresignUploadView.as_view(), name="media_presign"),
    path("confirm-upload", ConfirmUploadView.as_view(), name="media_confirm"),
    path("stats", MediaStatsView.as_view(), name="media_stats"),
    path("<uuid:media_id>", MediaDetailView.as_view(), name="media_detail"),
]
