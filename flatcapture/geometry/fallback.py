"""Synthetic quadrilateral used when no document boundary is detected.

The quad is the inset capture frame with one edge pulled inwards, simulating a
receding edge. Warping it onto a rectangle gives a mild flattening even without
real geometric information.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from flatcapture.geometry.orientation import Orientation
from flatcapture.geometry.primitives import Point, Quadrilateral, Rect, Size, inset

logger = logging.getLogger(__name__)

# Fraction of each side trimmed from the capture edges before synthesis
FALLBACK_CROP_INSET = 0.05

# Perturbation offsets, as fractions of the cropped width/height
FALLBACK_EDGE_INSET = 0.04
FALLBACK_EDGE_SHIFT = 0.02

_UP = (Orientation.UP, Orientation.UP_MIRRORED)
_DOWN = (Orientation.DOWN, Orientation.DOWN_MIRRORED)
_LEFT = (Orientation.LEFT, Orientation.LEFT_MIRRORED)
_RIGHT = (Orientation.RIGHT, Orientation.RIGHT_MIRRORED)


@dataclass(frozen=True)
class FallbackPlan:
    """Where to crop and which quad to warp, relative to the crop."""

    crop: Rect            # In source image coordinates (y-up)
    quad: Quadrilateral   # Relative to the crop origin

    @property
    def output_size(self) -> Size:
        return self.crop.size


def fallback_control_points(size: Size, orientation: Orientation) -> Quadrilateral:
    """Build the perturbed corner points for a cropped region.

    Args:
        size: Size of the cropped region.
        orientation: Capture orientation; picks which edge is perturbed.

    Returns:
        Quadrilateral in crop-relative, y-up pixel coordinates.
    """
    width, height = size.width, size.height
    horizontal_inset = width * FALLBACK_EDGE_INSET
    vertical_inset = height * FALLBACK_EDGE_INSET
    vertical_shift = height * FALLBACK_EDGE_SHIFT
    horizontal_shift = width * FALLBACK_EDGE_SHIFT

    tl_x, tl_y = 0.0, height
    tr_x, tr_y = width, height
    bl_x, bl_y = 0.0, 0.0
    br_x, br_y = width, 0.0

    orientation = Orientation.resolve(orientation)

    if orientation in _DOWN:
        bl_x += horizontal_inset
        br_x -= horizontal_inset
        bl_y += vertical_shift
        br_y += vertical_shift
    elif orientation in _LEFT:
        tl_x += horizontal_shift
        bl_x += horizontal_shift
        tl_y -= vertical_inset
        bl_y += vertical_inset
    elif orientation in _RIGHT:
        tr_x -= horizontal_shift
        br_x -= horizontal_shift
        tr_y -= vertical_inset
        br_y += vertical_inset
    else:
        # UP, UP_MIRRORED and anything unrecognized
        tl_x += horizontal_inset
        tr_x -= horizontal_inset
        tl_y -= vertical_shift
        tr_y -= vertical_shift

    return Quadrilateral(
        top_left=Point(tl_x, tl_y),
        top_right=Point(tr_x, tr_y),
        bottom_left=Point(bl_x, bl_y),
        bottom_right=Point(br_x, br_y),
    )


def synthesize_fallback(extent: Size, orientation: Orientation) -> Optional[FallbackPlan]:
    """Plan a fallback correction for an image of the given extent.

    Returns:
        FallbackPlan, or None when the image is too small to crop.
    """
    if extent.width <= 0 or extent.height <= 0:
        return None

    frame = Rect(0.0, 0.0, extent.width, extent.height)
    crop = inset(
        frame,
        extent.width * FALLBACK_CROP_INSET,
        extent.height * FALLBACK_CROP_INSET,
    )
    if crop is None:
        logger.debug(f"No fallback possible for {extent.width}x{extent.height}")
        return None

    quad = fallback_control_points(crop.translated_to_origin().size, orientation)

    logger.debug(
        f"Fallback quad for {Orientation.resolve(orientation).name}: crop={crop}, quad={quad}"
    )

    return FallbackPlan(crop=crop, quad=quad)
