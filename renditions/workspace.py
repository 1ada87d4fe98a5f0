import logging
import shutil
from pathlib import Path

from .errors import WorkspaceError

logger = logging.getLogger(__name__)


class Workspace:
    """
    Job-scoped scratch tree: ``{root}/{project}/{video}/{profile}/{in,out}``.

    The running job owns it exclusively; ``release()`` tears it down on
    a best-effort basis when the worker shuts the job down.
    """

    def __init__(self, root, project_id: str, video_id: str, profile_id: str, *, keep: bool = False):
        self.base = Path(root) / project_id / video_id / profile_id
        # release() runs rmtree on base: it must be exactly root/project/video/profile
        try:
            parts = self.base.resolve().relative_to(Path(root).resolve()).parts
        except ValueError:
            parts = ()
        if parts != (project_id, video_id, profile_id):
            raise WorkspaceError(
                f"Workspace for {project_id!r}/{video_id!r}/{profile_id!r} escapes {root}"
            )
        self.in_dir = self.base / "in"
        self.out_dir = self.base / "out"
        # Engine output naming: out/{video_id}.m3u8, out/{video_id}.mpd, ...
        self.output_prefix = self.out_dir / video_id
        self.keep = keep

    def create(self) -> "Workspace":
        self.in_dir.mkdir(parents=True, exist_ok=True)
        self.out_dir.mkdir(parents=True, exist_ok=True)
        return self

    def release(self) -> bool:
        """Remove the scratch tree. Never raises; returns whether it is gone."""
        if self.keep:
            logger.info(f"Keeping workspace {self.base} (would run: rm -rf {self.base})")
            return False
        try:
            shutil.rmtree(self.base)
        except FileNotFoundError:
            return True
        except OSError as e:
            logger.warning(f"Could not release workspace {self.base}: {e}")
            return False
        logger.debug(f"Released workspace {self.base}")
        return True
