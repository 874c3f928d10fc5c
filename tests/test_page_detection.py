"""Tests for the built-in contour quadrilateral detector."""

import numpy as np
import pytest

from flatcapture.errors import DetectorUnavailable
from flatcapture.page_detection.detector import (
    ContourQuadDetector,
    DetectionCandidate,
    DetectorConfig,
    _order_corners,
    detect_document,
)
from flatcapture.preprocessing.raster import RasterImage


def _create_synthetic_page_image(
    width: int = 800,
    height: int = 600,
    page_margin: int = 80,
    bg_value: int = 25,
    page_value: int = 230,
) -> RasterImage:
    """Create a synthetic image with a lighter rectangle (page) on a dark background."""
    pixels = np.full((height, width, 3), bg_value, dtype=np.uint8)
    pixels[page_margin:height - page_margin, page_margin:width - page_margin] = page_value
    return RasterImage(pixels)


def _create_two_page_image() -> RasterImage:
    """Two separate light rectangles on a dark background."""
    pixels = np.full((600, 800, 3), 25, dtype=np.uint8)
    pixels[100:500, 50:350] = 230
    pixels[150:450, 450:750] = 230
    return RasterImage(pixels)


class TestOrderCorners:
    """Corner ordering utility."""

    def test_already_ordered(self) -> None:
        pts = np.array([[10, 10], [90, 10], [90, 90], [10, 90]], dtype=np.float32)
        ordered = _order_corners(pts)
        np.testing.assert_array_almost_equal(ordered[0], [10, 10])  # TL
        np.testing.assert_array_almost_equal(ordered[1], [90, 10])  # TR
        np.testing.assert_array_almost_equal(ordered[2], [90, 90])  # BR
        np.testing.assert_array_almost_equal(ordered[3], [10, 90])  # BL

    def test_shuffled_corners(self) -> None:
        pts = np.array([[90, 90], [10, 10], [10, 90], [90, 10]], dtype=np.float32)
        ordered = _order_corners(pts)
        np.testing.assert_array_almost_equal(ordered[0], [10, 10])
        np.testing.assert_array_almost_equal(ordered[1], [90, 10])
        np.testing.assert_array_almost_equal(ordered[2], [90, 90])
        np.testing.assert_array_almost_equal(ordered[3], [10, 90])


class TestContourQuadDetector:
    """Detection on synthetic images."""

    def test_clear_page_boundary(self) -> None:
        """A high-contrast rectangle on a dark background should be detected."""
        image = _create_synthetic_page_image()
        candidates = ContourQuadDetector().detect(image, DetectorConfig())

        assert len(candidates) == 1
        candidate = candidates[0]
        assert isinstance(candidate, DetectionCandidate)
        assert 0.3 <= candidate.confidence <= 1.0

    def test_normalized_y_up_corners(self) -> None:
        image = _create_synthetic_page_image(width=800, height=600, page_margin=80)
        quad = ContourQuadDetector().detect(image, DetectorConfig())[0].quad

        assert quad.top_left.x == pytest.approx(0.1, abs=0.02)
        assert quad.top_left.y == pytest.approx(1 - 80 / 600, abs=0.02)
        assert quad.bottom_right.x == pytest.approx(0.9, abs=0.02)
        assert quad.bottom_right.y == pytest.approx(80 / 600, abs=0.02)
        assert quad.top_left.y > quad.bottom_left.y

    def test_bounding_box_area_is_normalized(self) -> None:
        image = _create_synthetic_page_image(width=800, height=600, page_margin=80)
        candidate = ContourQuadDetector().detect(image, DetectorConfig())[0]
        expected = (640 / 800) * (440 / 600)
        assert candidate.bounding_box_area == pytest.approx(expected, abs=0.03)

    def test_blank_image_has_no_candidates(self) -> None:
        image = RasterImage(np.full((300, 400, 3), 128, dtype=np.uint8))
        assert ContourQuadDetector().detect(image, DetectorConfig()) == []

    def test_max_observations_limits_results(self) -> None:
        image = _create_two_page_image()
        detector = ContourQuadDetector()

        many = detector.detect(image, DetectorConfig(max_observations=8))
        single = detector.detect(image, DetectorConfig(max_observations=1))

        assert len(many) >= 2
        assert len(single) == 1

    def test_sorted_by_confidence(self) -> None:
        candidates = ContourQuadDetector().detect(
            _create_two_page_image(), DetectorConfig(max_observations=8)
        )
        confidences = [c.confidence for c in candidates]
        assert confidences == sorted(confidences, reverse=True)

    def test_minimum_confidence_filters(self) -> None:
        image = _create_synthetic_page_image(page_margin=250)
        assert ContourQuadDetector().detect(image, DetectorConfig(minimum_confidence=0.99)) == []

    def test_aspect_ratio_filters(self) -> None:
        image = _create_synthetic_page_image(width=800, height=600, page_margin=80)
        config = DetectorConfig(minimum_aspect_ratio=0.9, maximum_aspect_ratio=1.0)
        assert ContourQuadDetector().detect(image, config) == []

    def test_minimum_size_filters(self) -> None:
        image = _create_synthetic_page_image(width=800, height=600, page_margin=80)
        config = DetectorConfig(minimum_size=0.9)
        assert ContourQuadDetector().detect(image, config) == []

    def test_grayscale_input(self) -> None:
        rgb = _create_synthetic_page_image()
        gray = RasterImage(np.ascontiguousarray(rgb.pixels[:, :, 0]), color_space="GRAY")
        assert len(ContourQuadDetector().detect(gray, DetectorConfig())) == 1

    def test_backend_error_becomes_detector_unavailable(self) -> None:
        # OpenCV rejects even Gaussian kernel sizes
        detector = ContourQuadDetector(blur_kernel=4)
        with pytest.raises(DetectorUnavailable):
            detector.detect(_create_synthetic_page_image(), DetectorConfig())


def test_detect_document_defaults() -> None:
    candidates = detect_document(_create_synthetic_page_image())
    assert len(candidates) == 1
