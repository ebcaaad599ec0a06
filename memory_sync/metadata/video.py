"""
Video facts from ffprobe, thumbnails from ffmpeg.

Both tools run as subprocesses behind a semaphore shared by every
concurrent extraction, so the subprocess fan-out stays bounded no matter
how many items the batch runs in parallel.
"""
import json
import logging
import platform
import subprocess
import tempfile
import threading
from pathlib import Path
from typing import Any, Dict, Optional

from .. import config
from ..exceptions import ExtractError


def install_guidance() -> str:
    """How to get ffmpeg/ffprobe onto PATH for the current OS."""
    system = platform.system()
    if system == "Darwin":
        return "Install with Homebrew: brew install ffmpeg"
    if system == "Windows":
        return ("Download a build from https://www.gyan.dev/ffmpeg/builds/, extract it, "
                "and add its bin directory to PATH (or set FFMPEG_PATH / FFPROBE_PATH)")
    return ("Install with your package manager: sudo apt install ffmpeg (Debian/Ubuntu) "
            "or sudo yum install ffmpeg (RHEL/CentOS)")


def parse_frame_rate(value: Optional[str]) -> Optional[float]:
    """'30000/1001' -> 29.97; a zero denominator yields None."""
    if not value:
        return None
    try:
        if "/" in value:
            num, den = value.split("/", 1)
            if float(den) == 0:
                return None
            return float(num) / float(den)
        return float(value)
    except ValueError:
        return None


def _to_int(value: Any) -> Optional[int]:
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def _to_float(value: Any) -> Optional[float]:
    try:
        return float(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def _kbps(bit_rate: Any) -> Optional[int]:
    bps = _to_int(bit_rate)
    return bps // 1000 if bps is not None else None


def parse_probe_output(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Maps ffprobe's -show_format -show_streams JSON onto Video fields.
    The first video and first audio stream win; either may be missing.
    """
    streams = data.get("streams") or []
    video = next((s for s in streams if s.get("codec_type") == "video"), None) or {}
    audio = next((s for s in streams if s.get("codec_type") == "audio"), None) or {}
    fmt = data.get("format") or {}

    return {
        "duration_seconds": _to_float(fmt.get("duration")),
        "width": _to_int(video.get("width")),
        "height": _to_int(video.get("height")),
        "frame_rate": parse_frame_rate(video.get("r_frame_rate")),
        "video_codec": video.get("codec_name"),
        "video_bitrate_kbps": _kbps(video.get("bit_rate")),
        "audio_codec": audio.get("codec_name"),
        "audio_bitrate_kbps": _kbps(audio.get("bit_rate")),
        "audio_channels": _to_int(audio.get("channels")),
        "audio_sample_rate": _to_int(audio.get("sample_rate")),
        "creation_time": (fmt.get("tags") or {}).get("creation_time"),
    }


class VideoProbe:
    def __init__(self,
                 tool_semaphore: threading.Semaphore,
                 ffprobe_path: str = "ffprobe",
                 ffmpeg_path: str = "ffmpeg"):
        self.tool_semaphore = tool_semaphore
        self.ffprobe_path = ffprobe_path
        self.ffmpeg_path = ffmpeg_path

    def probe(self, path: Path) -> Dict[str, Any]:
        """Runs ffprobe and returns parsed stream facts. Raises ExtractError."""
        # -v quiet keeps stderr clean; JSON goes to stdout
        cmd = [
            self.ffprobe_path, "-v", "quiet", "-print_format", "json",
            "-show_format", "-show_streams", str(path),
        ]
        try:
            with self.tool_semaphore:
                proc = subprocess.run(cmd, capture_output=True, text=True,
                                      timeout=config.FFPROBE_TIMEOUT_SEC)
        except FileNotFoundError:
            logging.error(f"ffprobe not found ({self.ffprobe_path}). {install_guidance()}")
            raise ExtractError("ffprobe is not installed", path)
        except subprocess.TimeoutExpired:
            raise ExtractError(f"ffprobe timed out after {config.FFPROBE_TIMEOUT_SEC}s", path)

        if proc.returncode != 0:
            raise ExtractError(f"ffprobe exited with code {proc.returncode}", path)

        try:
            data = json.loads(proc.stdout)
        except ValueError as e:
            raise ExtractError(f"ffprobe returned invalid JSON: {e}", path)

        return parse_probe_output(data)

    def thumbnail(self, path: Path) -> Optional[bytes]:
        """
        Grabs one JPEG frame at the 1-second mark.
        Failure is not fatal: returns None and logs how to install ffmpeg.
        """
        with tempfile.TemporaryDirectory(prefix="memory_sync_thumb_") as tmp:
            out = Path(tmp) / "thumbnail.jpg"
            cmd = [
                self.ffmpeg_path, "-ss", config.THUMBNAIL_SEEK, "-i", str(path),
                "-vframes", "1", "-q:v", "2", "-y", str(out),
            ]
            try:
                with self.tool_semaphore:
                    proc = subprocess.run(cmd, capture_output=True,
                                          timeout=config.FFMPEG_TIMEOUT_SEC)
            except (OSError, subprocess.TimeoutExpired) as e:
                logging.warning(f"Thumbnail generation failed for {path.name}: {e}. {install_guidance()}")
                return None

            if proc.returncode != 0 or not out.exists() or out.stat().st_size == 0:
                logging.warning(
                    f"Thumbnail generation failed for {path.name} (exit code {proc.returncode}). "
                    f"{install_guidance()}"
                )
                return None

            return out.read_bytes()
