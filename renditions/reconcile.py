import logging

from .documents import ADMIN, RENDITIONS

logger = logging.getLogger(__name__)


def reconcile_prior_renditions(store, video_device, video_id: str, profile_id: str, *, context=ADMIN) -> list:
    """
    Delete every existing rendition of (video, profile) along with its
    published artifacts, so the next record is the only live one.
    """
    prior = store.find(RENDITIONS, {"video_id": video_id, "profile_id": profile_id}, context=context)
    for rendition in prior:
        store.delete(RENDITIONS, rendition["id"], context=context)
        if rendition.get("path"):
            video_device.delete_path(rendition["path"])
        logger.info(
            f"Removed prior rendition {rendition.get('name')} ({rendition['id']}, "
            f"status={rendition.get('status')}) of video {video_id}"
        )
    return prior
