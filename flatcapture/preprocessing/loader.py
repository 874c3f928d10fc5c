"""Image loading module with support for HEIC, DNG, JPEG, and PNG formats.

Pixels are returned in stored order; the EXIF orientation is reported in the
metadata and applied later by the correction pipeline.
"""

import logging
from pathlib import Path
from typing import Tuple

import numpy as np
from PIL import Image, ExifTags

from flatcapture.geometry.orientation import Orientation
from flatcapture.preprocessing.raster import RasterImage

logger = logging.getLogger(__name__)

HEIC_EXTENSIONS = (".heic", ".heif")
RAW_EXTENSIONS = (".dng", ".cr2", ".nef", ".arw")
STANDARD_EXTENSIONS = (".jpg", ".jpeg", ".png", ".tiff", ".tif")
SUPPORTED_EXTENSIONS = HEIC_EXTENSIONS + RAW_EXTENSIONS + STANDARD_EXTENSIONS


class ImageMetadata:
    """Metadata extracted from loaded image."""

    def __init__(
        self,
        original_size: Tuple[int, int],
        format: str,
        orientation: Orientation = Orientation.UP
    ) -> None:
        self.original_size = original_size  # (width, height)
        self.format = format
        self.orientation = orientation


def _read_exif_orientation(img: Image.Image) -> Orientation:
    """Read the EXIF orientation tag without applying it."""
    try:
        exif = img.getexif()
        tag = exif.get(ExifTags.Base.Orientation)
    except (AttributeError, KeyError, ValueError) as e:
        logger.debug(f"Could not read EXIF orientation: {e}")
        return Orientation.UP

    orientation = Orientation.resolve(tag)
    logger.debug(f"EXIF orientation: {tag} -> {orientation.name}")
    return orientation


def _to_raster(img: Image.Image) -> RasterImage:
    """Convert a PIL image to an 8-bit RGB raster."""
    if img.mode != "RGB":
        img = img.convert("RGB")
    return RasterImage(np.array(img, dtype=np.uint8), color_space="RGB")


def load_heic(path: str) -> Tuple[RasterImage, ImageMetadata]:
    """Load HEIC/HEIF image using pillow-heif.

    Args:
        path: Path to HEIC file

    Returns:
        Tuple of (RGB raster, metadata)
    """
    try:
        from pillow_heif import register_heif_opener
        register_heif_opener()
    except ImportError as e:
        raise ImportError(
            "pillow-heif is required for HEIC support. "
            "Install with: pip install pillow-heif"
        ) from e

    with Image.open(path) as img:
        orientation = _read_exif_orientation(img)
        raster = _to_raster(img)

    metadata = ImageMetadata(
        original_size=(raster.width, raster.height),
        format="HEIC",
        orientation=orientation,
    )

    logger.info(f"Loaded HEIC: {path} ({raster.width}x{raster.height}, {orientation.name})")

    return raster, metadata


def load_dng(path: str) -> Tuple[RasterImage, ImageMetadata]:
    """Load DNG/RAW image using rawpy.

    rawpy applies the sensor flip while demosaicing, so the result is upright.

    Args:
        path: Path to DNG file

    Returns:
        Tuple of (RGB raster, metadata)
    """
    try:
        import rawpy
    except ImportError as e:
        raise ImportError(
            "rawpy is required for DNG/RAW support. "
            "Install with: pip install rawpy"
        ) from e

    with rawpy.imread(path) as raw:
        original_size = (raw.sizes.width, raw.sizes.height)

        rgb = raw.postprocess(
            use_camera_wb=True,
            output_color=rawpy.ColorSpace.sRGB,
            output_bps=8,
            no_auto_bright=False,
        )

    raster = RasterImage(np.ascontiguousarray(rgb, dtype=np.uint8), color_space="RGB")

    metadata = ImageMetadata(
        original_size=original_size,
        format="DNG",
    )

    logger.info(f"Loaded DNG: {path} ({raster.width}x{raster.height})")

    return raster, metadata


def load_standard(path: str) -> Tuple[RasterImage, ImageMetadata]:
    """Load JPEG, PNG, or TIFF using PIL.

    Args:
        path: Path to image file

    Returns:
        Tuple of (RGB raster, metadata)
    """
    with Image.open(path) as img:
        original_size = img.size
        orientation = _read_exif_orientation(img)
        raster = _to_raster(img)

    format_name = Path(path).suffix.lower().lstrip('.').upper()

    metadata = ImageMetadata(
        original_size=original_size,
        format=format_name,
        orientation=orientation,
    )

    logger.info(f"Loaded {format_name}: {path} ({raster.width}x{raster.height}, {orientation.name})")

    return raster, metadata


def load_image(path: str) -> Tuple[RasterImage, ImageMetadata]:
    """Load image from any supported format.

    Supports HEIC, DNG, JPEG, PNG, TIFF.

    Args:
        path: Path to image file

    Returns:
        Tuple of (RGB raster in stored pixel order, metadata with orientation)

    Raises:
        ValueError: If file format is not supported
        FileNotFoundError: If file does not exist
    """
    path_obj = Path(path)

    if not path_obj.exists():
        raise FileNotFoundError(f"Image file not found: {path}")

    ext = path_obj.suffix.lower()

    if ext in HEIC_EXTENSIONS:
        return load_heic(path)
    elif ext in RAW_EXTENSIONS:
        return load_dng(path)
    elif ext in STANDARD_EXTENSIONS:
        return load_standard(path)
    else:
        raise ValueError(f"Unsupported image format: {ext}")
