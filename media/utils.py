import posixpath

IMAGE_EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
    "image/webp": "webp",
    "image/heic": "heic",
    "image/heif": "heif",
}

VIDEO_EXTENSIONS = {
    "video/mp4": "mp4",
    "video/quicktime": "mov",
    "video/x-msvideo": "avi",
    "video/x-matroska": "mkv",
    "video/webm": "webm",
    "video/ogg": "ogv",
}

KIND_PREFIXES = {"image": "images/", "video": "videos/"}


def normalize_content_type(content_type: str | None) -> str:
    """Lower-case and drop parameters: 'Image/JPEG; charset=x' -> 'image/jpeg'."""
    if not content_type:
        return ""
    return content_type.split(";", 1)[0].strip().lower()


def guess_kind(content_type: str | None) -> str | None:
    """Return 'image' | 'video' for a supported content type, else None."""
    ct = normalize_content_type(content_type)
    if ct in IMAGE_EXTENSIONS:
        return "image"
    if ct in VIDEO_EXTENSIONS:
        return "video"
    return None


def extension_for(content_type: str | None) -> str:
    ct = normalize_content_type(content_type)
    return IMAGE_EXTENSIONS.get(ct) or VIDEO_EXTENSIONS.get(ct) or "bin"


def key_stem(key: str) -> str:
    """'images/u/2024/01/02/abc.jpg' -> 'images/u/2024/01/02/abc'"""
    stem, _ = posixpath.splitext(key)
    return stem


def version_key(original_key: str, version: str, ext: str) -> str:
    """Key for a derived object: the original's key with a version suffix."""
    return f"{key_stem(original_key)}_{version}.{ext}"


def fit_inside(width: int, height: int, max_width: int, max_height: int) -> tuple[int, int]:
    """
    Scale (width, height) down to fit the box, keeping aspect ratio.
    Never upscales.
    """
    if width <= max_width and height <= max_height:
        return width, height
    ratio = min(max_width / width, max_height / height)
    return max(1, round(width * ratio)), max(1, round(height * ratio))


def cap_long_edge(width: int, height: int, limit: int) -> tuple[int, int]:
    """Scale so the longer edge is at most `limit`."""
    return fit_inside(width, height, limit, limit)


def even_down(value: int) -> int:
    """Round down to an even number (H.264 4:2:0 needs even dimensions), minimum 2."""
    return max(2, value - (value % 2))


def thumbnail_positions(duration: float, count: int) -> list[float]:
    """
    Evenly spaced timestamps that avoid the first and last frame:
    duration / (count + 1) * i for i in 1..count.
    """
    if count <= 0 or duration <= 0:
        return []
    step = duration / (count + 1)
    return [step * i for i in range(1, count + 1)]


def primary_index(count: int) -> int:
    """Middle element of an extracted thumbnail set."""
    return count // 2
