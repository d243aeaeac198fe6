"""
Configuration objects for the derivative engines.

Engines receive one of these in their constructor instead of reading
Django settings themselves, so tests can build engines with any thresholds.
"""
from dataclasses import dataclass, field

from django.conf import settings


# Target video bitrate ceiling and audio bitrate per quality preset
VIDEO_QUALITY_PRESETS = {
    "low": {"video_bitrate": "1000k", "audio_bitrate": "96k"},
    "medium": {"video_bitrate": "2500k", "audio_bitrate": "128k"},
    "high": {"video_bitrate": "5000k", "audio_bitrate": "192k"},
}


@dataclass(frozen=True)
class ImageDerivativeConfig:
    quality: int = 90
    thumbnail_size: int = 300
    small_size: int = 800
    medium_size: int = 1200
    large_size: int = 2000
    original_max: int = 4000
    max_workers: int = 5

    @classmethod
    def from_settings(cls):
        return cls(
            quality=settings.IMAGE_QUALITY,
            thumbnail_size=settings.THUMBNAIL_SIZE,
            small_size=settings.SMALL_SIZE,
            medium_size=settings.MEDIUM_SIZE,
            large_size=settings.LARGE_SIZE,
            original_max=settings.ORIGINAL_MAX_SIZE,
            max_workers=settings.MEDIA_MAX_WORKERS,
        )

    @property
    def fit_sizes(self) -> dict:
        return {"small": self.small_size, "medium": self.medium_size, "large": self.large_size}


@dataclass(frozen=True)
class VideoDerivativeConfig:
    quality: str = "high"
    thumbnail_count: int = 3
    thumbnail_size: int = 300
    max_width: int = 1920
    max_height: int = 1080
    crf: int = 22
    preset: str = "medium"
    profile: str = "high"
    ffmpeg: str = "ffmpeg"
    ffprobe: str = "ffprobe"
    timeout: int = 30 * 60
    max_workers: int = 5
    presets: dict = field(default_factory=lambda: dict(VIDEO_QUALITY_PRESETS))

    def __post_init__(self):
        if self.quality not in self.presets:
            raise ValueError(f"Unknown video quality preset {self.quality!r}. Allowed: {sorted(self.presets)}")
        if self.thumbnail_count < 1:
            raise ValueError("thumbnail_count must be at least 1")

    @classmethod
    def from_settings(cls):
        return cls(
            quality=settings.VIDEO_QUALITY,
            thumbnail_count=settings.VIDEO_THUMBNAIL_COUNT,
            thumbnail_size=settings.THUMBNAIL_SIZE,
            max_width=settings.VIDEO_MAX_WIDTH,
            max_height=settings.VIDEO_MAX_HEIGHT,
            ffmpeg=settings.FFMPEG_BINARY,
            ffprobe=settings.FFPROBE_BINARY,
            timeout=settings.FFMPEG_TIMEOUT,
            max_workers=settings.MEDIA_MAX_WORKERS,
        )

    @property
    def bitrates(self) -> dict:
        return self.presets[self.quality]
