"""JPEG re-encoding and image inspection with Pillow.

Every image that leaves the pipeline is a JPEG: :func:`compress_image`
decodes any format Pillow understands, optionally shrinks it to fit inside a
bounding box, and writes an optimised progressive JPEG at the requested
quality.

Resizing follows "fit inside, never enlarge" semantics: the aspect ratio is
preserved, both dimensions end up within the given bounds, and an image that
already fits is left at its original size. A missing bound means "no limit
on that axis".

The savings figure is ``round((1 - compressed / original) * 100)``. It is not
clamped: a negative value means re-encoding made the file larger, which
callers may want to notice.

These functions are blocking; async callers run them in a worker thread.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from pathlib import Path

from PIL import Image, ImageOps, UnidentifiedImageError

from imagegen.core.errors import CompressionError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_QUALITY = 85

# Background used when flattening transparent images for JPEG output.
_FLATTEN_BACKGROUND = (255, 255, 255)


@dataclass(frozen=True)
class CompressionResult:
    """Outcome of one compression.

    Attributes:
        path: Absolute path of the written JPEG.
        original_size: Size of the source file in bytes.
        compressed_size: Size of the written JPEG in bytes.
        percent_saved: Rounded percentage saved (negative if the file grew).
        width: Output width in pixels.
        height: Output height in pixels.
    """

    path: Path
    original_size: int
    compressed_size: int
    percent_saved: int
    width: int
    height: int


@dataclass(frozen=True)
class ImageInfo:
    """Basic metadata about an image file."""

    path: Path
    width: int
    height: int
    format: str
    size: int


def percent_saved(original_size: int, compressed_size: int) -> int:
    """Return the rounded percentage saved, rounding halves upwards."""
    if original_size <= 0:
        return 0
    return math.floor((1 - compressed_size / original_size) * 100 + 0.5)


def fit_inside(
    width: int, height: int, max_width: int | None, max_height: int | None
) -> tuple[int, int]:
    """Compute the "fit inside, never enlarge" size for an image.

    Args:
        width: Source width.
        height: Source height.
        max_width: Width bound, or ``None`` for no bound.
        max_height: Height bound, or ``None`` for no bound.

    Returns:
        ``(width, height)`` no larger than the source and within the bounds.
    """
    scale = 1.0
    if max_width:
        scale = min(scale, max_width / width)
    if max_height:
        scale = min(scale, max_height / height)
    if scale >= 1.0:
        return width, height
    return max(1, round(width * scale)), max(1, round(height * scale))


def _validate_options(quality: int, max_width: int | None, max_height: int | None) -> None:
    if not 1 <= quality <= 100:
        raise ValidationError(f"Compression quality must be between 1 and 100, got {quality}")
    for label, bound in (("max_width", max_width), ("max_height", max_height)):
        if bound is not None and bound < 1:
            raise ValidationError(f"{label} must be a positive number of pixels, got {bound}")


def _to_rgb(image: Image.Image) -> Image.Image:
    """Drop alpha by compositing onto a white background."""
    if image.mode in ("RGBA", "LA") or (image.mode == "P" and "transparency" in image.info):
        rgba = image.convert("RGBA")
        background = Image.new("RGB", rgba.size, _FLATTEN_BACKGROUND)
        background.paste(rgba, mask=rgba.getchannel("A"))
        return background
    if image.mode != "RGB":
        return image.convert("RGB")
    return image


def compress_image(
    input_path: Path | str,
    output_path: Path | str,
    quality: int = DEFAULT_QUALITY,
    max_width: int | None = None,
    max_height: int | None = None,
) -> CompressionResult:
    """Re-encode an image as JPEG, optionally shrinking it.

    Args:
        input_path: Source image in any Pillow-readable format.
        output_path: Destination JPEG file; may equal ``input_path``.
        quality: JPEG quality, 1-100.
        max_width: Optional width bound in pixels.
        max_height: Optional height bound in pixels.

    Returns:
        :class:`CompressionResult` with sizes measured on disk.

    Raises:
        NotFoundError: ``input_path`` does not exist.
        ValidationError: Quality or bounds are out of range.
        CompressionError: Pillow cannot decode or encode the image.
    """
    source = Path(input_path).expanduser().resolve()
    target = Path(output_path).expanduser().resolve()
    _validate_options(quality, max_width, max_height)

    if not source.is_file():
        raise NotFoundError(f"Input image not found: {source}")

    original_size = source.stat().st_size

    try:
        with Image.open(source) as opened:
            image = ImageOps.exif_transpose(opened)
            image.load()

        new_size = fit_inside(image.width, image.height, max_width, max_height)
        if new_size != image.size:
            logger.debug(f"Resizing {source.name} from {image.size} to {new_size}")
            image = image.resize(new_size, Image.Resampling.LANCZOS)

        image = _to_rgb(image)
        target.parent.mkdir(parents=True, exist_ok=True)
        image.save(target, format="JPEG", quality=quality, optimize=True, progressive=True)
    except (UnidentifiedImageError, OSError) as e:
        raise CompressionError(f"Failed to compress {source}: {e}") from e

    compressed_size = target.stat().st_size
    saved = percent_saved(original_size, compressed_size)
    logger.info(
        f"Compressed {source.name} -> {target.name}: "
        f"{original_size} -> {compressed_size} bytes ({saved}% saved)"
    )

    return CompressionResult(
        path=target,
        original_size=original_size,
        compressed_size=compressed_size,
        percent_saved=saved,
        width=image.width,
        height=image.height,
    )


def get_image_info(image_path: Path | str) -> ImageInfo:
    """Read dimensions, format, and file size of an image.

    Raises:
        NotFoundError: ``image_path`` does not exist.
        CompressionError: The file is not a readable image.
    """
    path = Path(image_path).expanduser().resolve()
    if not path.is_file():
        raise NotFoundError(f"Image not found: {path}")

    try:
        with Image.open(path) as image:
            width, height = image.size
            fmt = (image.format or "unknown").lower()
    except (UnidentifiedImageError, OSError) as e:
        raise CompressionError(f"Cannot read image {path}: {e}") from e

    return ImageInfo(path=path, width=width, height=height, format=fmt, size=path.stat().st_size)
