"""Tests for geometry primitives and orientation handling."""

import numpy as np
import pytest

from flatcapture.geometry.orientation import Orientation, apply_orientation
from flatcapture.geometry.primitives import Point, Quadrilateral, Rect, Size, inset, scale
from flatcapture.preprocessing.raster import RasterImage


_AXIS_SWAPPING = {
    Orientation.LEFT,
    Orientation.LEFT_MIRRORED,
    Orientation.RIGHT,
    Orientation.RIGHT_MIRRORED,
}


def _quad(tl, tr, bl, br) -> Quadrilateral:
    return Quadrilateral(Point(*tl), Point(*tr), Point(*bl), Point(*br))


def _numbered_image(width: int = 3, height: int = 2) -> RasterImage:
    """Single-channel image whose pixel values encode their position."""
    pixels = np.arange(width * height, dtype=np.uint8).reshape(height, width)
    return RasterImage(pixels, color_space="GRAY")


class TestScale:
    """Normalized-to-pixel scaling."""

    def test_scales_each_axis(self) -> None:
        assert scale(Point(0.5, 0.25), Size(200, 400)) == Point(100.0, 100.0)

    def test_keeps_subpixel_precision(self) -> None:
        result = scale(Point(0.333, 0.5), Size(10, 3))
        assert result.x == pytest.approx(3.33)
        assert result.y == pytest.approx(1.5)


class TestInset:
    """Rectangle inset."""

    def test_symmetric_shrink(self) -> None:
        assert inset(Rect(0, 0, 100, 50), 5, 2.5) == Rect(5, 2.5, 90, 45)

    def test_rejects_empty_width(self) -> None:
        assert inset(Rect(0, 0, 10, 50), 5, 1) is None

    def test_rejects_negative_height(self) -> None:
        assert inset(Rect(0, 0, 100, 4), 1, 3) is None

    def test_translated_to_origin(self) -> None:
        assert Rect(5, 7, 10, 20).translated_to_origin() == Rect(0, 0, 10, 20)


class TestQuadrilateral:
    """Area and degeneracy checks."""

    def test_rectangle_area(self) -> None:
        quad = _quad((0, 10), (20, 10), (0, 0), (20, 0))
        assert quad.area() == pytest.approx(200.0)

    def test_as_array_ring_order(self) -> None:
        quad = _quad((0, 10), (20, 10), (0, 0), (20, 0))
        np.testing.assert_array_equal(
            quad.as_array(), [[0, 10], [20, 10], [20, 0], [0, 0]]
        )

    def test_rectangle_not_degenerate(self) -> None:
        assert not _quad((0, 10), (20, 10), (0, 0), (20, 0)).is_degenerate()

    def test_identical_points_degenerate(self) -> None:
        assert _quad((5, 5), (5, 5), (5, 5), (5, 5)).is_degenerate()

    def test_three_collinear_points_degenerate(self) -> None:
        # Top-right lies on the segment from top-left to bottom-right
        assert _quad((0, 10), (5, 5), (0, 0), (10, 0)).is_degenerate()

    def test_two_coincident_corners_degenerate(self) -> None:
        assert _quad((0, 10), (10, 10), (0, 0), (0, 0)).is_degenerate()

    def test_self_intersecting_not_degenerate(self) -> None:
        quad = _quad((0, 100), (100, 100), (100, 0), (0, 0))
        assert quad.area() == pytest.approx(0.0)
        assert not quad.is_degenerate()

    def test_bounding_rect(self) -> None:
        quad = _quad((0.1, 0.9), (0.9, 0.8), (0.2, 0.1), (0.8, 0.2))
        box = quad.bounding_rect()
        assert box.x == pytest.approx(0.1)
        assert box.width == pytest.approx(0.8)
        assert box.height == pytest.approx(0.8)

    def test_scaled(self) -> None:
        quad = _quad((0.1, 0.9), (0.9, 0.9), (0.1, 0.1), (0.9, 0.1)).scaled(Size(1000, 500))
        assert quad.top_left.x == pytest.approx(100)
        assert quad.top_left.y == pytest.approx(450)
        assert quad.bottom_right.x == pytest.approx(900)
        assert quad.bottom_right.y == pytest.approx(50)


class TestOrientationResolve:
    """Raw orientation values always resolve to a member."""

    @pytest.mark.parametrize("value, expected", [
        (1, Orientation.UP),
        (8, Orientation.LEFT),
        ("left", Orientation.LEFT),
        ("up-mirrored", Orientation.UP_MIRRORED),
        (Orientation.RIGHT, Orientation.RIGHT),
    ])
    def test_known_values(self, value, expected) -> None:
        assert Orientation.resolve(value) is expected

    @pytest.mark.parametrize("value", [0, 9, 42, "sideways", None, True])
    def test_unknown_values_become_up(self, value) -> None:
        assert Orientation.resolve(value) is Orientation.UP


class TestApplyOrientation:
    """Baking orientation into pixels."""

    def test_up_is_identity(self) -> None:
        image = _numbered_image()
        assert apply_orientation(image, Orientation.UP) is image

    def test_down_rotates_180(self) -> None:
        image = _numbered_image()
        result = apply_orientation(image, Orientation.DOWN)
        np.testing.assert_array_equal(result.pixels, np.rot90(image.pixels, 2))

    def test_up_mirrored_flips_horizontally(self) -> None:
        image = _numbered_image()
        result = apply_orientation(image, Orientation.UP_MIRRORED)
        np.testing.assert_array_equal(result.pixels, image.pixels[:, ::-1])

    def test_right_rotates_clockwise(self) -> None:
        image = _numbered_image()
        result = apply_orientation(image, Orientation.RIGHT)
        np.testing.assert_array_equal(result.pixels, np.rot90(image.pixels, -1))

    def test_left_rotates_counterclockwise(self) -> None:
        image = _numbered_image()
        result = apply_orientation(image, Orientation.LEFT)
        np.testing.assert_array_equal(result.pixels, np.rot90(image.pixels, 1))

    @pytest.mark.parametrize("orientation", list(Orientation))
    def test_extent_follows_axis_swap(self, orientation) -> None:
        image = RasterImage(np.zeros((20, 30, 3), dtype=np.uint8))
        result = apply_orientation(image, orientation)
        expected = (30, 20) if orientation in _AXIS_SWAPPING else (20, 30)
        assert (result.height, result.width) == expected
        assert result.channels == 3


class TestRasterImage:
    """Raster container validation."""

    def test_is_read_only(self) -> None:
        image = RasterImage(np.zeros((4, 4, 3), dtype=np.uint8))
        with pytest.raises(ValueError):
            image.pixels[0, 0, 0] = 1

    def test_caller_array_stays_writable(self) -> None:
        pixels = np.zeros((4, 4, 3), dtype=np.uint8)
        RasterImage(pixels)
        pixels[0, 0, 0] = 1
        assert pixels[0, 0, 0] == 1

    def test_rejects_non_array(self) -> None:
        with pytest.raises(TypeError):
            RasterImage([[0, 1], [2, 3]])

    def test_rejects_empty(self) -> None:
        with pytest.raises(ValueError):
            RasterImage(np.zeros((0, 10, 3), dtype=np.uint8))

    def test_rejects_float_pixels(self) -> None:
        with pytest.raises(ValueError):
            RasterImage(np.zeros((4, 4, 3), dtype=np.float32))
