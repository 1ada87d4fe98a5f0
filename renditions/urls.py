from django.urls import path
from .views import RenditionDetailView, TranscodeJobView, VideoRenditionListView

urlpatterns = [
    path("projects/<str:project_id>/renditions/jobs/", TranscodeJobView.as_view(), name="rendition_jobs"),
    path("projects/<str:project_id>/renditions/<str:rendition_id>/", RenditionDetailView.as_view(), name="rendition_detail"),
    path("projects/<str:project_id>/videos/<str:video_id>/renditions/", VideoRenditionListView.as_view(), name="video_renditions"),
]
