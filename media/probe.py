"""
ffprobe parsing for source videos.
"""
import json
import subprocess
from dataclasses import dataclass

from .exceptions import ProbeFailed


@dataclass(frozen=True)
class VideoInfo:
    width: int
    height: int
    duration: float
    bitrate: int
    codec: str
    size: int = 0


def _to_float(value, default=0.0):
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def parse_probe_output(raw: str) -> VideoInfo:
    try:
        metadata = json.loads(raw or "{}")
    except json.JSONDecodeError as e:
        raise ProbeFailed(f"Unreadable ffprobe output: {e}") from e

    streams = metadata.get("streams") or []
    video = next((s for s in streams if s.get("codec_type") == "video"), None)
    if video is None:
        raise ProbeFailed("No video stream found")

    fmt = metadata.get("format") or {}
    width = int(video.get("width") or 0)
    height = int(video.get("height") or 0)
    if width <= 0 or height <= 0:
        raise ProbeFailed("Video stream has no dimensions")

    # container duration first, stream duration as fallback
    duration = _to_float(fmt.get("duration")) or _to_float(video.get("duration"))
    if duration <= 0:
        raise ProbeFailed("Video has no duration")

    return VideoInfo(
        width=width,
        height=height,
        duration=duration,
        bitrate=int(_to_float(fmt.get("bit_rate"))),
        codec=video.get("codec_name") or "",
        size=int(_to_float(fmt.get("size"))),
    )


def probe_video(path, ffprobe="ffprobe", timeout=60) -> VideoInfo:
    """
    Read dimensions, duration, bitrate and codec of a video file.

    Raises:
        ProbeFailed: ffprobe is missing, errors out, or finds no video stream.
    """
    cmd = [
        ffprobe,
        "-v", "quiet",
        "-print_format", "json",
        "-show_format",
        "-show_streams",
        str(path),
    ]
    try:
        result = subprocess.run(cmd, capture_output=True, text=True, check=True, timeout=timeout)
    except subprocess.CalledProcessError as e:
        raise ProbeFailed(f"ffprobe failed: {(e.stderr or '').strip()[:500] or e}") from e
    except (OSError, subprocess.TimeoutExpired) as e:
        raise ProbeFailed(f"ffprobe failed: {e}") from e
    return parse_probe_output(result.stdout)
