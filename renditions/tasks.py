import logging
import threading

from celery import shared_task
from django.conf import settings

from .pipeline import TranscodingJob
from .serializers import TranscodeJobSerializer

logger = logging.getLogger(__name__)


@shared_task(bind=True, name="renditions.transcode_rendition")
def transcode_rendition(self, payload: dict):
    """
    Queue entry point. ``payload`` is the job message
    ``{project, videoId, profileId}``.
    """
    ser = TranscodeJobSerializer(data=payload)
    ser.is_valid(raise_exception=True)
    params = ser.validated_data

    # Cooperative deadline: the engine stops ffmpeg once this fires.
    cancel = threading.Event()
    timer = threading.Timer(settings.TRANSCODING_JOB_DEADLINE, cancel.set)
    timer.daemon = True

    job = TranscodingJob.from_settings(
        params["project_id"], params["video_id"], params["profile_id"], cancel=cancel
    )
    logger.info(
        f"Task {self.request.id}: transcoding video {params['video_id']} "
        f"with profile {params['profile_id']} (project {params['project_id']})"
    )

    timer.start()
    try:
        job.init()
        outcome = job.run()
    finally:
        timer.cancel()
        job.shutdown()

    if not outcome.ok:
        logger.error(
            f"Task {self.request.id}: rendition {outcome.name} ({outcome.rendition_id}) "
            f"ended in {outcome.status} [{outcome.error_code}]"
        )
    return outcome.as_dict()
