import re

from rest_framework import serializers

from .status import ERROR, ENDED, READY, STARTED, UPLOADING

STATUSES = [STARTED, ENDED, UPLOADING, READY, ERROR]

# Ids end up as workspace path segments and storage keys
SAFE_ID = r"^[A-Za-z0-9][A-Za-z0-9._-]{0,254}\Z"


def _id_field():
    return serializers.RegexField(SAFE_ID, error_messages={"invalid": "Not a valid document id."})


class TranscodeJobSerializer(serializers.Serializer):
    """
    Queue message: ``{project, videoId, profileId}``.
    ``project`` is the tenant descriptor; only its id is used.
    """
    project = serializers.DictField()
    videoId = _id_field()
    profileId = _id_field()

    def validate_project(self, value):
        project_id = value.get("$id") or value.get("id")
        if not project_id:
            raise serializers.ValidationError("Project descriptor must carry an '$id' or 'id'.")
        if not re.match(SAFE_ID, str(project_id)):
            raise serializers.ValidationError("Not a valid document id.")
        return value

    def to_internal_value(self, data):
        values = super().to_internal_value(data)
        project = values["project"]
        return {
            "project": project,
            "project_id": str(project.get("$id") or project.get("id")),
            "video_id": values["videoId"],
            "profile_id": values["profileId"],
        }


class TranscodeRequestSerializer(serializers.Serializer):
    video_id = _id_field()
    profile_id = _id_field()


class RenditionSerializer(serializers.Serializer):
    id = serializers.CharField()
    video_id = serializers.CharField()
    profile_id = serializers.CharField()
    name = serializers.CharField()
    stream = serializers.CharField(required=False, allow_blank=True)
    status = serializers.ChoiceField(choices=STATUSES)
    progress = serializers.IntegerField(required=False, default=0)
    started_at = serializers.IntegerField(required=False, allow_null=True)
    ended_at = serializers.IntegerField(required=False, allow_null=True)
    path = serializers.CharField(required=False, allow_blank=True, allow_null=True)

    duration = serializers.FloatField(required=False)
    width = serializers.IntegerField(required=False)
    height = serializers.IntegerField(required=False)
    video_codec = serializers.CharField(required=False)
    video_framerate = serializers.CharField(required=False)
    video_bitrate = serializers.IntegerField(required=False)
    audio_codec = serializers.CharField(required=False)
    audio_samplerate = serializers.IntegerField(required=False)
    audio_bitrate = serializers.IntegerField(required=False)
    metadata = serializers.JSONField(required=False)
