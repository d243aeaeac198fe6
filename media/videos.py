import logging
import posixpath
import subprocess
import tempfile
from functools import partial
from pathlib import Path

from .derivatives import DerivativeEngine, DerivativeSet, RenditionResult, UploadTracker, run_all_or_nothing
from .exceptions import TranscodeFailed
from .models import MediaRecord, Rendition
from .probe import VideoInfo, probe_video
from .utils import even_down, fit_inside, primary_index, thumbnail_positions, version_key

logger = logging.getLogger(__name__)


def transcode_size(width: int, height: int, max_width: int, max_height: int) -> tuple[int, int]:
    """Output size: capped to the box only when the source exceeds it, even for H.264."""
    w, h = fit_inside(width, height, max_width, max_height)
    return even_down(w), even_down(h)


def frame_size(width: int, height: int, target_width: int) -> tuple[int, int]:
    """Thumbnail frame: fixed width, proportional height rounded to an even number."""
    h = max(2, int(round(target_width * height / width / 2.0)) * 2)
    return target_width, h


def _double_rate(rate: str) -> str:
    """'5000k' -> '10000k' (rate-control buffer size)."""
    num, unit = rate[:-1], rate[-1]
    if not unit.isalpha():
        num, unit = rate, ""
    return f"{int(num) * 2}{unit}"


def build_transcode_cmd(config, source: Path, output: Path, info: VideoInfo) -> list[str]:
    bitrates = config.bitrates
    cmd = [
        config.ffmpeg,
        "-y",
        "-v", "error",
        "-i", str(source),
        "-c:v", "libx264",
        "-preset", config.preset,
        "-profile:v", config.profile,
        "-crf", str(config.crf),
        "-maxrate", bitrates["video_bitrate"],
        "-bufsize", _double_rate(bitrates["video_bitrate"]),
        "-pix_fmt", "yuv420p",
    ]
    out_w, out_h = transcode_size(info.width, info.height, config.max_width, config.max_height)
    if (out_w, out_h) != (info.width, info.height):
        cmd += ["-vf", f"scale={out_w}:{out_h}"]
    cmd += [
        "-c:a", "aac",
        "-b:a", bitrates["audio_bitrate"],
        "-movflags", "+faststart",
        str(output),
    ]
    return cmd


def build_frame_cmd(config, source: Path, output: Path, position: float, size: tuple[int, int]) -> list[str]:
    return [
        config.ffmpeg,
        "-y",
        "-v", "error",
        "-ss", f"{position:.3f}",
        "-i", str(source),
        "-frames:v", "1",
        "-vf", f"scale={size[0]}:{size[1]}",
        "-q:v", "2",
        str(output),
    ]


def run_ffmpeg(cmd: list[str], output: Path, timeout: int) -> Path:
    try:
        subprocess.run(cmd, check=True, stdout=subprocess.PIPE, stderr=subprocess.PIPE, timeout=timeout)
    except subprocess.CalledProcessError as e:
        err = e.stderr.decode("utf-8", errors="ignore") if e.stderr else str(e)
        raise TranscodeFailed(f"ffmpeg failed for {output.name}: {err.strip()[-2000:]}") from e
    except (OSError, subprocess.TimeoutExpired) as e:
        raise TranscodeFailed(f"ffmpeg failed for {output.name}: {e}") from e
    if not output.exists() or output.stat().st_size == 0:
        raise TranscodeFailed(f"ffmpeg produced no output for {output.name}")
    return output


class VideoDerivativeEngine(DerivativeEngine):
    """
    One normalized H.264/AAC MP4 plus `thumbnail_count` evenly spaced frames.
    The middle frame is the primary thumbnail.

    The source is downloaded into a temporary directory that is removed on
    every exit path.
    """

    kind = MediaRecord.Kind.VIDEO

    def render(self, record: MediaRecord, uploads: UploadTracker) -> DerivativeSet:
        config = self.config
        ext = posixpath.splitext(record.original_key)[1] or ".mp4"

        with tempfile.TemporaryDirectory(prefix="media-video-") as tmp:
            workdir = Path(tmp)
            source = self.storage.download(record.original_key, workdir / f"source{ext}")
            info = probe_video(source, config.ffprobe)
            logger.info(
                "Rendering video %s (%sx%s, %.1fs, %s)", record.id, info.width, info.height, info.duration, info.codec
            )

            positions = thumbnail_positions(info.duration, config.thumbnail_count)
            thumb_size = frame_size(info.width, info.height, config.thumbnail_size)
            out_size = transcode_size(info.width, info.height, config.max_width, config.max_height)

            transcoded = workdir / "transcoded.mp4"
            branches = {
                "transcoded": partial(
                    run_ffmpeg, build_transcode_cmd(config, source, transcoded, info), transcoded, config.timeout
                ),
            }
            for i, pos in enumerate(positions):
                frame = workdir / f"thumbnail_{i}.jpg"
                branches[f"thumbnail_{i}"] = partial(
                    run_ffmpeg, build_frame_cmd(config, source, frame, pos, thumb_size), frame, config.timeout
                )
            outputs = run_all_or_nothing(branches, config.max_workers)

            primary = primary_index(len(positions))
            upload_branches = {
                "transcoded": partial(self._upload_transcoded, record, uploads, outputs["transcoded"], out_size, info),
            }
            for i, pos in enumerate(positions):
                name = f"thumbnail_{i}"
                upload_branches[name] = partial(
                    self._upload_frame, record, uploads, outputs[name], i, pos, thumb_size, i == primary
                )
            results = run_all_or_nothing(upload_branches, config.max_workers)

        renditions = [results["transcoded"]] + [results[f"thumbnail_{i}"] for i in range(len(positions))]
        return DerivativeSet(
            renditions=renditions,
            record_fields={
                "original_width": info.width,
                "original_height": info.height,
                "duration_seconds": info.duration,
                "bitrate": info.bitrate,
                "codec": info.codec,
            },
        )

    def _upload_path(self, uploads, key, path: Path, content_type, metadata) -> str:
        result = self.storage.put_file(key, path, content_type, metadata)
        uploads.add(key)
        return result.get("url") or self.storage.object_url(key)

    def _upload_transcoded(self, record, uploads, path: Path, size, info: VideoInfo) -> RenditionResult:
        key = version_key(record.original_key, "transcoded", "mp4")
        url = self._upload_path(uploads, key, path, "video/mp4", {
            "userId": record.owner_id,
            "originalFilename": record.original_filename,
            "width": size[0],
            "height": size[1],
            "duration": info.duration,
            "bitrate": info.bitrate,
        })
        return RenditionResult(
            name="transcoded",
            purpose=Rendition.Purpose.TRANSCODED,
            storage_key=key,
            url=url,
            content_type="video/mp4",
            width=size[0],
            height=size[1],
            byte_size=path.stat().st_size,
        )

    def _upload_frame(self, record, uploads, path: Path, index, position, size, is_primary) -> RenditionResult:
        key = version_key(record.original_key, f"thumbnail_{index}", "jpg")
        url = self._upload_path(uploads, key, path, "image/jpeg", {
            "userId": record.owner_id,
            "originalFilename": record.original_filename,
            "type": "thumbnail",
            "position": f"{position:.3f}",
        })
        return RenditionResult(
            name=f"thumbnail_{index}",
            purpose=Rendition.Purpose.THUMBNAIL,
            storage_key=key,
            url=url,
            content_type="image/jpeg",
            width=size[0],
            height=size[1],
            byte_size=path.stat().st_size,
            position_seconds=position,
            ordinal=index,
            is_primary=is_primary,
        )
