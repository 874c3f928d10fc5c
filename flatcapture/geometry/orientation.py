"""Capture orientation handling.

Orientation values follow the EXIF orientation tag (1-8). Pixels stay in
sensor order until ``apply_orientation`` bakes the orientation in.
"""

import logging
from enum import Enum
from typing import Union

import cv2
import numpy as np

from flatcapture.preprocessing.raster import RasterImage

logger = logging.getLogger(__name__)


class Orientation(Enum):
    """The eight capture orientations, valued by EXIF tag."""

    UP = 1
    UP_MIRRORED = 2
    DOWN = 3
    DOWN_MIRRORED = 4
    LEFT_MIRRORED = 5
    RIGHT = 6
    RIGHT_MIRRORED = 7
    LEFT = 8

    @classmethod
    def resolve(cls, value: Union["Orientation", int, str, None]) -> "Orientation":
        """Map any raw orientation value to an Orientation.

        Accepts an Orientation, an EXIF tag, or a name such as ``"left"`` or
        ``"up-mirrored"``. Anything unrecognized resolves to UP.
        """
        if isinstance(value, cls):
            return value

        if isinstance(value, str):
            key = value.strip().upper().replace("-", "_").replace(" ", "_")
            if key in cls.__members__:
                return cls[key]
        elif isinstance(value, int) and not isinstance(value, bool):
            try:
                return cls(value)
            except ValueError:
                pass

        logger.debug(f"Unknown orientation {value!r}, treating as UP")
        return cls.UP


def apply_orientation(image: RasterImage, orientation: Orientation) -> RasterImage:
    """Rotate/flip pixels so the image displays upright.

    Args:
        image: Image in sensor order.
        orientation: Orientation the image was captured with.

    Returns:
        A new RasterImage with the orientation applied, or ``image`` itself for UP.
    """
    orientation = Orientation.resolve(orientation)
    if orientation is Orientation.UP:
        return image

    pixels = image.pixels

    if orientation is Orientation.UP_MIRRORED:
        out = cv2.flip(pixels, 1)
    elif orientation is Orientation.DOWN:
        out = cv2.rotate(pixels, cv2.ROTATE_180)
    elif orientation is Orientation.DOWN_MIRRORED:
        out = cv2.flip(pixels, 0)
    elif orientation is Orientation.LEFT_MIRRORED:
        out = cv2.flip(cv2.rotate(pixels, cv2.ROTATE_90_CLOCKWISE), 1)
    elif orientation is Orientation.RIGHT:
        out = cv2.rotate(pixels, cv2.ROTATE_90_CLOCKWISE)
    elif orientation is Orientation.RIGHT_MIRRORED:
        out = cv2.flip(cv2.rotate(pixels, cv2.ROTATE_90_COUNTERCLOCKWISE), 1)
    else:
        out = cv2.rotate(pixels, cv2.ROTATE_90_COUNTERCLOCKWISE)

    # cv2 drops the channel axis of single-channel (H, W, 1) input
    if pixels.ndim == 3 and out.ndim == 2:
        out = out[:, :, np.newaxis]

    logger.debug(
        f"Applied orientation {orientation.name}: "
        f"{image.width}x{image.height} -> {out.shape[1]}x{out.shape[0]}"
    )

    return RasterImage(np.ascontiguousarray(out), color_space=image.color_space)
