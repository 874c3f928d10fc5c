"""Read-only raster image container passed through the pipeline."""

from dataclasses import dataclass

import numpy as np


@dataclass(frozen=True, eq=False)
class RasterImage:
    """Immutable pixel buffer.

    Pixels are uint8 with shape (H, W) or (H, W, C), stored row-major with row 0
    at the top of the picture. The buffer is held through a read-only view so
    pipeline stages cannot mutate the caller's data.
    """

    pixels: np.ndarray
    color_space: str = "RGB"

    def __post_init__(self) -> None:
        if not isinstance(self.pixels, np.ndarray):
            raise TypeError(
                f"RasterImage needs a numpy array, got {type(self.pixels).__name__}"
            )
        if self.pixels.ndim not in (2, 3):
            raise ValueError(f"Expected a 2D or 3D pixel array, got shape {self.pixels.shape}")
        if self.pixels.shape[0] == 0 or self.pixels.shape[1] == 0:
            raise ValueError(f"Image has no pixels: shape {self.pixels.shape}")
        if self.pixels.dtype != np.uint8:
            raise ValueError(f"Expected uint8 pixels, got {self.pixels.dtype}")

        view = self.pixels.view()
        view.flags.writeable = False
        object.__setattr__(self, "pixels", view)

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def channels(self) -> int:
        return 1 if self.pixels.ndim == 2 else int(self.pixels.shape[2])

    def tobytes(self) -> bytes:
        return self.pixels.tobytes()
