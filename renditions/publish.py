import logging
from pathlib import Path

from .errors import PublishError
from .utils import guess_content_type

logger = logging.getLogger(__name__)


def publishable(path: Path) -> bool:
    # export descriptors (*.json) are already captured in the record's metadata
    return path.is_file() and ".json" not in path.name


class ArtifactPublisher:
    def __init__(self, video_device, status):
        self.video_device = video_device
        self.status = status

    def publish(self, out_dir, video_id: str, name: str) -> str:
        """Upload every output file under ``{video path}/{rendition name}``."""
        rendition_path = f"{self.video_device.get_path(video_id)}/{name}"
        uploaded = 0

        for p in sorted(Path(out_dir).iterdir()):
            if not publishable(p):
                continue

            self.video_device.write(f"{rendition_path}/{p.name}", p.read_bytes(), guess_content_type(p.name))
            if uploaded == 0:
                self.status.mark_uploading(rendition_path)
            uploaded += 1

        if uploaded == 0:
            raise PublishError(f"No artifacts to publish in {out_dir}")

        self.status.mark_ready()
        logger.info(f"Published {uploaded} file(s) of rendition {name} to {rendition_path}")
        return rendition_path
