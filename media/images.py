import logging
from functools import partial
from io import BytesIO

from PIL import Image, ImageOps, UnidentifiedImageError
from pillow_heif import register_heif_opener

from .derivatives import DerivativeEngine, DerivativeSet, RenditionResult, UploadTracker, run_all_or_nothing
from .exceptions import ProcessingError
from .models import MediaRecord, Rendition
from .utils import cap_long_edge, fit_inside, version_key

logger = logging.getLogger(__name__)

# HEIC/HEIF uploads decode through Pillow like any other format
register_heif_opener()

IMAGE_VERSIONS = ("original", "thumbnail", "small", "medium", "large")

# Pillow format -> (save format, extension, content type) for the capped original.
# Anything not listed is re-encoded as JPEG.
ORIGINAL_FORMATS = {
    "JPEG": ("JPEG", "jpg", "image/jpeg"),
    "PNG": ("PNG", "png", "image/png"),
    "WEBP": ("WEBP", "webp", "image/webp"),
}
JPEG = ORIGINAL_FORMATS["JPEG"]
PNG_MODES = {"1", "L", "LA", "I", "P", "RGB", "RGBA"}
RESAMPLE = Image.Resampling.LANCZOS


def decode_image(data: bytes) -> Image.Image:
    try:
        img = Image.open(BytesIO(data))
        img.load()
    except (UnidentifiedImageError, OSError, Image.DecompressionBombError) as e:
        raise ProcessingError(f"Could not decode image: {e}") from e
    return img


def has_alpha(image: Image.Image) -> bool:
    return image.mode in ("RGBA", "LA", "PA") or (image.mode == "P" and "transparency" in image.info)


def flatten(image: Image.Image) -> Image.Image:
    """RGB copy of the image, transparent areas on white."""
    if has_alpha(image):
        rgba = image.convert("RGBA")
        bg = Image.new("RGB", rgba.size, (255, 255, 255))
        bg.paste(rgba, mask=rgba.getchannel("A"))
        return bg
    if image.mode != "RGB":
        return image.convert("RGB")
    return image


def cap_original(image: Image.Image, limit: int) -> Image.Image:
    size = cap_long_edge(image.width, image.height, limit)
    if size == image.size:
        return image
    return image.resize(size, RESAMPLE)


def cover_crop(image: Image.Image, size: int) -> Image.Image:
    return ImageOps.fit(image, (size, size), RESAMPLE)


def fit_within(image: Image.Image, size: int) -> Image.Image:
    target = fit_inside(image.width, image.height, size, size)
    if target == image.size:
        return image
    return image.resize(target, RESAMPLE)


def encode_jpeg(image: Image.Image, quality: int) -> bytes:
    buf = BytesIO()
    flatten(image).save(buf, format="JPEG", quality=quality, optimize=True)
    return buf.getvalue()


def encode_original(image: Image.Image, source_format: str | None, quality: int) -> tuple[bytes, str, str]:
    """Encode in the source's format family. Returns (data, extension, content_type)."""
    save_format, ext, content_type = ORIGINAL_FORMATS.get(source_format or "", JPEG)
    if save_format == "JPEG":
        return encode_jpeg(image, quality), ext, content_type

    buf = BytesIO()
    if save_format == "PNG":
        img = image if image.mode in PNG_MODES else image.convert("RGBA" if has_alpha(image) else "RGB")
        img.save(buf, format="PNG", optimize=True)
    else:
        img = image.convert("RGBA" if has_alpha(image) else "RGB")
        img.save(buf, format="WEBP", quality=quality)
    return buf.getvalue(), ext, content_type


class ImageDerivativeEngine(DerivativeEngine):
    """
    Produces the fixed five-rendition set for an image:

    - original: source capped to `original_max` on the long edge, source format
    - thumbnail: square cover-crop
    - small / medium / large: fit-inside, never upscaled

    Every rendition is derived from the decoded source, not from each other.
    """

    kind = MediaRecord.Kind.IMAGE

    def render(self, record: MediaRecord, uploads: UploadTracker) -> DerivativeSet:
        source = decode_image(self.storage.get(record.original_key))
        source_format = source.format
        logger.info(
            "Rendering image %s (%sx%s %s)", record.id, source.width, source.height, source_format
        )

        branches = {
            "original": partial(self._original, record, source, source_format, uploads),
            "thumbnail": partial(
                self._derived, record, source, uploads, "thumbnail",
                lambda img: cover_crop(img, self.config.thumbnail_size),
            ),
        }
        for name, size in self.config.fit_sizes.items():
            branches[name] = partial(
                self._derived, record, source, uploads, name,
                partial(fit_within, size=size),
            )

        results = run_all_or_nothing(branches, self.config.max_workers)
        return DerivativeSet(
            renditions=[results[name] for name in IMAGE_VERSIONS],
            record_fields={"original_width": source.width, "original_height": source.height},
        )

    def _metadata(self, record, version, image):
        return {
            "userId": record.owner_id,
            "originalFilename": record.original_filename,
            "width": image.width,
            "height": image.height,
            "type": version,
        }

    def _original(self, record, source, source_format, uploads) -> RenditionResult:
        capped = cap_original(source, self.config.original_max)
        data, ext, content_type = encode_original(capped, source_format, self.config.quality)
        key = version_key(record.original_key, "original", ext)
        url = self.upload(uploads, key, data, content_type, self._metadata(record, "original", capped))
        return RenditionResult(
            name="original",
            purpose=Rendition.Purpose.ORIGINAL,
            storage_key=key,
            url=url,
            content_type=content_type,
            width=capped.width,
            height=capped.height,
            byte_size=len(data),
        )

    def _derived(self, record, source, uploads, version, transform) -> RenditionResult:
        image = transform(source)
        data = encode_jpeg(image, self.config.quality)
        key = version_key(record.original_key, version, "jpg")
        url = self.upload(uploads, key, data, "image/jpeg", self._metadata(record, version, image))
        return RenditionResult(
            name=version,
            purpose=version,
            storage_key=key,
            url=url,
            content_type="image/jpeg",
            width=image.width,
            height=image.height,
            byte_size=len(data),
        )
