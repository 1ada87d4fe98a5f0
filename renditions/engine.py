"""
ffmpeg / ffprobe backed probe and encode capability.

The pipeline only sees ``probe``, ``is_valid`` and ``encode``; tests swap in
a fake with the same methods.
"""

import json
import logging
import subprocess
import tempfile
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional

from .errors import EncodeCancelled, EncodeError, ProbeError

logger = logging.getLogger(__name__)

HLS = "hls"
DASH = "dash"

STDERR_TAIL = 4000


@dataclass(frozen=True)
class Representation:
    video_kbps: int
    audio_kbps: int
    width: int
    height: int


@dataclass(frozen=True)
class Packaging:
    mode: str                       # HLS or DASH
    output_prefix: Path             # out/{video_id}
    segment_duration: int
    additional_params: tuple = ()
    base_url: Optional[str] = None  # HLS only, prefixed to segment references


@dataclass
class EncodeOutput:
    manifest: Path                  # master playlist or .mpd
    probe_path: Path                # what to hand to ffprobe for output metadata
    files: list = field(default_factory=list)


ProgressSink = Callable[[int], None]


def _parse_duration(value) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


class FFmpegEngine:
    def __init__(self, ffmpeg: str = "ffmpeg", ffprobe: str = "ffprobe"):
        self.ffmpeg = ffmpeg
        self.ffprobe = ffprobe

    # -------------------------------------------------
    # Probing
    # -------------------------------------------------
    def probe_json(self, path) -> dict:
        cmd = [
            self.ffprobe,
            "-v", "error",
            "-print_format", "json",
            "-show_format",
            "-show_streams",
            str(path),
        ]
        try:
            result = subprocess.run(cmd, check=True, stdout=subprocess.PIPE, stderr=subprocess.PIPE)
        except (OSError, subprocess.CalledProcessError) as e:
            stderr = getattr(e, "stderr", None)
            detail = stderr.decode("utf-8", errors="ignore").strip() if stderr else str(e)
            raise ProbeError(f"ffprobe failed for {path}: {detail[:STDERR_TAIL]}") from e
        try:
            return json.loads(result.stdout or b"{}")
        except ValueError as e:
            raise ProbeError(f"ffprobe returned invalid JSON for {path}") from e

    def probe(self, path) -> list:
        """Stream list as reported by ffprobe."""
        return self.probe_json(path).get("streams") or []

    def is_valid(self, path) -> bool:
        try:
            return bool(self.probe(path))
        except ProbeError:
            return False

    def duration(self, path) -> float:
        data = self.probe_json(path)
        duration = _parse_duration((data.get("format") or {}).get("duration"))
        if duration <= 0:
            for stream in data.get("streams") or []:
                duration = max(duration, _parse_duration(stream.get("duration")))
        return duration

    # -------------------------------------------------
    # Encoding
    # -------------------------------------------------
    def build_command(self, source, representation: Representation, packaging: Packaging) -> list:
        seg = packaging.segment_duration
        cmd = [
            self.ffmpeg,
            "-y",
            "-hide_banner",
            "-nostats",
            "-progress", "pipe:1",
            "-i", str(source),
            "-c:v", "libx264",
            "-preset", "veryfast",
            "-b:v", f"{representation.video_kbps}k",
            "-force_key_frames", f"expr:gte(t,n_forced*{seg})",
            "-c:a", "aac",
            "-b:a", f"{representation.audio_kbps}k",
            *packaging.additional_params,
        ]

        prefix = packaging.output_prefix
        if packaging.mode == DASH:
            stem = prefix.name
            cmd += [
                "-f", "dash",
                "-seg_duration", str(seg),
                "-use_template", "1",
                "-use_timeline", "1",
                "-init_seg_name", f"{stem}_init_$RepresentationID$.m4s",
                "-media_seg_name", f"{stem}_chunk_$RepresentationID$_$Number%05d$.m4s",
                f"{prefix}.mpd",
            ]
            return cmd

        variant = self.variant_playlist(packaging, representation)
        cmd += [
            "-f", "hls",
            "-hls_time", str(seg),
            "-hls_list_size", "0",
            "-hls_playlist_type", "vod",
            "-hls_segment_filename", f"{prefix}_{representation.height}p_%04d.ts",
        ]
        if packaging.base_url:
            cmd += ["-hls_base_url", packaging.base_url]
        cmd.append(str(variant))
        return cmd

    @staticmethod
    def variant_playlist(packaging: Packaging, representation: Representation) -> Path:
        prefix = packaging.output_prefix
        return prefix.with_name(f"{prefix.name}_{representation.height}p.m3u8")

    def encode(
        self,
        source,
        representation: Representation,
        packaging: Packaging,
        progress: Optional[ProgressSink] = None,
        cancel=None,
    ) -> EncodeOutput:
        """
        Run ffmpeg to completion, reporting integer percentages to ``progress``.

        ``cancel`` is an optional ``threading.Event``; once set, ffmpeg is
        killed and ``EncodeCancelled`` raised.
        """
        duration = self.duration(source)
        cmd = self.build_command(source, representation, packaging)
        logger.info(f"Encoding {source} ({packaging.mode}, {representation.width}x{representation.height})")
        logger.debug("ffmpeg command: %s", " ".join(cmd))

        with tempfile.TemporaryFile() as errfile:
            try:
                proc = subprocess.Popen(cmd, stdout=subprocess.PIPE, stderr=errfile, text=True)
            except OSError as e:
                raise EncodeError(f"Could not start ffmpeg: {e}") from e

            done = threading.Event()
            watchdog = None
            if cancel is not None:
                watchdog = threading.Thread(target=self._watch_cancel, args=(proc, cancel, done), daemon=True)
                watchdog.start()
            try:
                cancelled = self._follow_progress(proc, duration, progress, cancel)
            except BaseException:
                proc.kill()
                proc.wait()
                raise
            finally:
                done.set()
                if watchdog is not None:
                    watchdog.join()
            proc.wait()
            # killed by the watchdog while ffmpeg was silent
            cancelled = cancelled or (cancel is not None and cancel.is_set() and proc.returncode != 0)

            if cancelled:
                raise EncodeCancelled(f"Encoding of {source} was cancelled")
            if proc.returncode != 0:
                errfile.seek(0)
                tail = errfile.read().decode("utf-8", errors="ignore")[-STDERR_TAIL:]
                raise EncodeError(f"ffmpeg exited with status {proc.returncode}: {tail.strip()}")

        return self._describe_output(representation, packaging)

    @staticmethod
    def _watch_cancel(proc, cancel, done, interval: float = 0.5) -> None:
        """Kill ffmpeg once ``cancel`` is set, even if it stopped writing progress."""
        while not done.is_set():
            if cancel.wait(interval):
                if not done.is_set():
                    logger.warning(f"Cancelling ffmpeg (pid {proc.pid})")
                    proc.kill()
                return

    def _follow_progress(self, proc, duration: float, progress, cancel) -> bool:
        """Consume ``-progress`` key=value lines. Returns True if cancelled."""
        last = -1
        for line in proc.stdout:
            if cancel is not None and cancel.is_set():
                proc.kill()
                return True
            key, _, value = line.strip().partition("=")
            if key in ("out_time_us", "out_time_ms") and duration > 0:
                # both keys are microseconds
                try:
                    seconds = int(value) / 1_000_000
                except ValueError:
                    continue
                pct = max(0, min(100, int(seconds / duration * 100)))
            elif key == "progress" and value == "end":
                pct = 100
            else:
                continue
            if pct > last:
                last = pct
                if progress is not None:
                    progress(pct)
        return False

    def _describe_output(self, representation: Representation, packaging: Packaging) -> EncodeOutput:
        prefix = packaging.output_prefix
        if packaging.mode == DASH:
            manifest = prefix.with_name(f"{prefix.name}.mpd")
            probe_path = manifest
        else:
            manifest = prefix.with_name(f"{prefix.name}.m3u8")
            probe_path = self.variant_playlist(packaging, representation)
            self._write_master_playlist(manifest, probe_path, representation)

        files = sorted(p for p in prefix.parent.iterdir() if p.is_file() and p.name.startswith(prefix.name) and p.suffix != ".json")
        output = EncodeOutput(manifest=manifest, probe_path=probe_path, files=files)

        # Export descriptor next to the media; not a streaming artifact.
        descriptor = prefix.with_name(f"{prefix.name}.json")
        descriptor.write_text(json.dumps({
            "packaging": packaging.mode,
            "segment_duration": packaging.segment_duration,
            "representation": {
                "video_kbps": representation.video_kbps,
                "audio_kbps": representation.audio_kbps,
                "width": representation.width,
                "height": representation.height,
            },
            "manifest": manifest.name,
            "files": [p.name for p in files],
        }, indent=2))
        return output

    @staticmethod
    def _write_master_playlist(master: Path, variant: Path, representation: Representation) -> None:
        bandwidth = (representation.video_kbps + representation.audio_kbps) * 1000
        master.write_text(
            "#EXTM3U\n"
            "#EXT-X-VERSION:3\n"
            f"#EXT-X-STREAM-INF:BANDWIDTH={bandwidth},"
            f"RESOLUTION={representation.width}x{representation.height}\n"
            f"{variant.name}\n"
        )
