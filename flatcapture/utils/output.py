"""Saving corrected images and rendering debug overlays."""

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Union

import cv2
import numpy as np

from flatcapture.geometry.primitives import Quadrilateral
from flatcapture.preprocessing.raster import RasterImage

logger = logging.getLogger(__name__)

DEFAULT_JPEG_QUALITY = 92


class SaveError(Enum):
    """Why a save did not complete."""

    UNAUTHORIZED = "unauthorized"
    ENCODING_FAILED = "encoding_failed"
    UNKNOWN = "unknown"

    @property
    def message(self) -> str:
        if self is SaveError.UNAUTHORIZED:
            return "FlatCapture needs permission to write to the output location."
        if self is SaveError.ENCODING_FAILED:
            return "Unable to prepare the image for saving."
        return "Something went wrong while saving your photo."


@dataclass(frozen=True)
class SaveResult:
    """Outcome of a save request."""

    path: Path
    error: Optional[SaveError] = None
    detail: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.error is None


def _to_bgr(pixels: np.ndarray) -> np.ndarray:
    """Convert RGB/RGBA/gray pixels to the BGR layout OpenCV writes."""
    if pixels.ndim == 2:
        return cv2.cvtColor(pixels, cv2.COLOR_GRAY2BGR)
    if pixels.shape[2] == 1:
        return cv2.cvtColor(pixels[:, :, 0], cv2.COLOR_GRAY2BGR)
    if pixels.shape[2] == 3:
        return cv2.cvtColor(pixels, cv2.COLOR_RGB2BGR)
    if pixels.shape[2] == 4:
        return cv2.cvtColor(pixels, cv2.COLOR_RGBA2BGR)
    raise ValueError(f"Unsupported number of channels: {pixels.shape[2]}")


def save_image(
    image: RasterImage,
    output_path: Union[str, Path],
    quality: int = DEFAULT_JPEG_QUALITY,
) -> SaveResult:
    """Encode and write an image. Failures are reported in the result, not raised.

    PNG is written for a ``.png`` suffix; everything else is saved as JPEG.

    Args:
        image: Image to save.
        output_path: Destination file.
        quality: JPEG quality (0-100).

    Returns:
        SaveResult describing success or the failure category.
    """
    output_path = Path(output_path)

    if output_path.suffix.lower() == ".png":
        ext, params = ".png", []
    else:
        if output_path.suffix.lower() not in (".jpg", ".jpeg"):
            output_path = output_path.with_suffix(".jpg")
        ext, params = ".jpg", [cv2.IMWRITE_JPEG_QUALITY, quality]

    try:
        ok, encoded = cv2.imencode(ext, _to_bgr(image.pixels), params)
    except (cv2.error, ValueError) as e:
        logger.warning(f"Encoding failed for {output_path}: {e}")
        return SaveResult(output_path, SaveError.ENCODING_FAILED, str(e))

    if not ok:
        logger.warning(f"Encoding failed for {output_path}")
        return SaveResult(output_path, SaveError.ENCODING_FAILED)

    try:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_bytes(encoded.tobytes())
    except PermissionError as e:
        logger.warning(f"Not allowed to write {output_path}: {e}")
        return SaveResult(output_path, SaveError.UNAUTHORIZED, str(e))
    except OSError as e:
        logger.warning(f"Failed to write {output_path}: {e}")
        return SaveResult(output_path, SaveError.UNKNOWN, str(e))

    logger.debug(f"Saved image: {output_path} ({image.width}x{image.height})")
    return SaveResult(output_path)


def draw_quadrilateral(
    image: RasterImage,
    quad: Quadrilateral,
    label: Optional[str] = None,
    line_thickness: int = 3,
) -> RasterImage:
    """Draw a y-up pixel quad on an image for debugging.

    Args:
        image: Image to draw on (left untouched).
        quad: Corners in y-up pixel coordinates of ``image``.
        label: Optional text drawn in the top-left corner.
        line_thickness: Thickness of the outline.

    Returns:
        New RGB image with the overlay.
    """
    canvas = cv2.cvtColor(_to_bgr(image.pixels), cv2.COLOR_BGR2RGB)

    corners = quad.as_array()
    corners[:, 1] = image.height - corners[:, 1]
    corners = np.round(corners).astype(np.int32)

    for i in range(4):
        pt1 = tuple(int(v) for v in corners[i])
        pt2 = tuple(int(v) for v in corners[(i + 1) % 4])
        cv2.line(canvas, pt1, pt2, (0, 255, 0), line_thickness)

    for corner in corners:
        cv2.circle(canvas, tuple(int(v) for v in corner), 10, (255, 0, 0), -1)

    if label:
        cv2.putText(canvas, label, (20, 40), cv2.FONT_HERSHEY_SIMPLEX, 1.0, (0, 255, 0), 2)

    return RasterImage(canvas, color_space="RGB")
