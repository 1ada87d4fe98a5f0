from rest_framework import status, views
from rest_framework.permissions import AllowAny
from rest_framework.response import Response

from .documents import ADMIN, PROFILES, RENDITIONS, VIDEOS, DjangoDocumentStore
from .serializers import RenditionSerializer, TranscodeRequestSerializer
from .tasks import transcode_rendition


class RenditionDetailView(views.APIView):
    """Poll one rendition status record."""
    permission_classes = [AllowAny]
    authentication_classes = []

    def get(self, request, project_id, rendition_id):
        store = DjangoDocumentStore(project_id)
        rendition = store.get(RENDITIONS, rendition_id, context=ADMIN)
        if rendition is None:
            return Response({"detail": "Not found"}, status=404)
        return Response(RenditionSerializer(rendition).data)


class VideoRenditionListView(views.APIView):
    permission_classes = [AllowAny]
    authentication_classes = []

    def get(self, request, project_id, video_id):
        store = DjangoDocumentStore(project_id)
        if store.get(VIDEOS, video_id, context=ADMIN) is None:
            return Response({"detail": "Video not found"}, status=404)
        renditions = store.find(RENDITIONS, {"video_id": video_id}, context=ADMIN)
        return Response(RenditionSerializer(renditions, many=True).data)


class TranscodeJobView(views.APIView):
    """
    Enqueues a transcode of one video with one profile. The rendition record
    appears once the worker has validated the source; poll the video's
    renditions to follow it.
    """
    permission_classes = [AllowAny]
    authentication_classes = []

    def post(self, request, project_id):
        ser = TranscodeRequestSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        video_id = ser.validated_data["video_id"]
        profile_id = ser.validated_data["profile_id"]

        store = DjangoDocumentStore(project_id)
        if store.get(VIDEOS, video_id, context=ADMIN) is None:
            return Response({"detail": "Video not found"}, status=404)
        if store.get(PROFILES, profile_id, context=ADMIN) is None:
            return Response({"detail": "Profile not found"}, status=404)

        result = transcode_rendition.delay({
            "project": {"$id": project_id},
            "videoId": video_id,
            "profileId": profile_id,
        })
        return Response({"task_id": result.id}, status=status.HTTP_202_ACCEPTED)
