"""Perspective correction via homographic transform.

Takes four corner points and warps the image to a fronto-parallel rectangle.
Quads arrive in y-up pixel coordinates and are flipped to raster rows here.
"""

import logging
from typing import Optional, Tuple

import cv2
import numpy as np

from flatcapture.errors import DegenerateGeometry, RenderFailure
from flatcapture.geometry.primitives import Quadrilateral, Rect, Size
from flatcapture.preprocessing.raster import RasterImage

logger = logging.getLogger(__name__)


def _to_raster_corners(quad: Quadrilateral, image_height: int) -> np.ndarray:
    """Quad corners as a (4, 2) float32 array [TL, TR, BR, BL] with row-down y.

    Coordinates stay on the pixel-edge grid (0..W, 0..H).
    """
    corners = quad.as_array()
    corners[:, 1] = image_height - corners[:, 1]
    return corners


def _edges_to_centres(corners: np.ndarray, image_width: int, image_height: int) -> np.ndarray:
    """Rescale pixel-edge coordinates onto the pixel-centre grid (0..W-1, 0..H-1).

    Matches the destination rectangle, which is laid out on pixel centres.
    """
    centres = corners.copy()
    centres[:, 0] *= (image_width - 1) / image_width
    centres[:, 1] *= (image_height - 1) / image_height
    return centres


def _compute_output_dimensions(corners: np.ndarray) -> Tuple[int, int]:
    """Compute output rectangle dimensions from corner points.

    Uses the maximum of opposite edge lengths to determine width and height,
    preserving the document's natural aspect ratio.

    Args:
        corners: Ordered corner points (4, 2) as [TL, TR, BR, BL].

    Returns:
        (width, height) in pixels.
    """
    tl, tr, br, bl = corners

    width_top = np.linalg.norm(tr - tl)
    width_bottom = np.linalg.norm(br - bl)
    width = int(round(max(width_top, width_bottom)))

    height_left = np.linalg.norm(bl - tl)
    height_right = np.linalg.norm(br - tr)
    height = int(round(max(height_left, height_right)))

    return width, height


def crop_region(image: RasterImage, rect: Rect) -> RasterImage:
    """Crop a y-up rectangle out of an image, snapping edges to whole pixels."""
    x0 = max(0, int(round(rect.x)))
    x1 = min(image.width, int(round(rect.x + rect.width)))
    b0 = max(0, int(round(rect.y)))
    b1 = min(image.height, int(round(rect.y + rect.height)))

    if x1 <= x0 or b1 <= b0:
        raise RenderFailure(f"Crop {rect} lies outside {image.width}x{image.height}")

    rows = slice(image.height - b1, image.height - b0)
    cropped = np.ascontiguousarray(image.pixels[rows, x0:x1])

    return RasterImage(cropped, color_space=image.color_space)


def warp_perspective(
    image: RasterImage,
    quad: Quadrilateral,
    destination_size: Optional[Size] = None,
) -> RasterImage:
    """Apply homographic transform to correct perspective distortion.

    Warps the region defined by ``quad`` to a proper rectangle. The same image
    and quad always produce byte-identical output.

    Args:
        image: Source image.
        quad: Corners in y-up pixel coordinates of ``image``.
        destination_size: Output size. If None, the natural extent of the
            transformed quad is used.

    Returns:
        Perspective-corrected image.

    Raises:
        DegenerateGeometry: If three corners of the quad are collinear or coincide.
        RenderFailure: If the transform cannot be built or applied.
    """
    if quad.is_degenerate():
        raise DegenerateGeometry(f"Cannot warp degenerate quadrilateral {quad}")

    corners = _to_raster_corners(quad, image.height)
    src = _edges_to_centres(corners, image.width, image.height)

    if destination_size is None:
        width, height = _compute_output_dimensions(corners)
    else:
        width = int(round(destination_size.width))
        height = int(round(destination_size.height))

    # Corners map to pixel centres, so a 1px side collapses the destination rectangle
    if width < 2 or height < 2:
        raise RenderFailure(f"Invalid output dimensions {width}x{height}")

    dst = np.array([
        [0, 0],
        [width - 1, 0],
        [width - 1, height - 1],
        [0, height - 1],
    ], dtype=np.float32)

    try:
        matrix = cv2.getPerspectiveTransform(src, dst)
        if not np.all(np.isfinite(matrix)):
            raise RenderFailure("Perspective transform is not finite")

        warped = cv2.warpPerspective(
            image.pixels,
            matrix,
            (width, height),
            flags=cv2.INTER_CUBIC,
            borderMode=cv2.BORDER_REPLICATE,
        )
    except cv2.error as e:
        raise RenderFailure(f"Perspective warp failed: {e}") from e

    # cv2 drops the channel axis of single-channel (H, W, 1) input
    if image.pixels.ndim == 3 and warped.ndim == 2:
        warped = warped[:, :, np.newaxis]

    logger.info(
        f"Perspective corrected: {image.width}x{image.height} -> {width}x{height}"
    )

    return RasterImage(warped, color_space=image.color_space)
