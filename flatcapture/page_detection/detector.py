"""Document boundary detection.

The correction pipeline depends only on the ``QuadrilateralDetector`` protocol:
anything that turns a raster image into a list of ``DetectionCandidate`` values
can be injected. ``ContourQuadDetector`` is the built-in OpenCV implementation:

- Canny edges + dilation -> external contours -> 4-point polygon approximation
- A second pass with weaker Canny thresholds for low-contrast captures
- An adaptive-threshold pass for documents on busy backgrounds

Candidates are returned in normalized coordinates with a bottom-left origin,
so callers can scale them to whatever extent they warp at.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Protocol

import cv2
import numpy as np

from flatcapture.errors import DetectorUnavailable
from flatcapture.geometry.primitives import Point, Quadrilateral
from flatcapture.preprocessing.raster import RasterImage

logger = logging.getLogger(__name__)

# Contours above this share of the frame are the capture border, not a document
_MAX_AREA_RATIO = 0.95

# Contours below this share of the frame are never considered
_MIN_AREA_RATIO = 0.01

# Two quads whose corners all lie within this fraction of the image diagonal
# are treated as the same document found by different passes
_DUPLICATE_TOLERANCE = 0.02


@dataclass(frozen=True)
class DetectorConfig:
    """Filter thresholds handed to the detector."""

    max_observations: int = 1
    minimum_confidence: float = 0.3
    minimum_aspect_ratio: float = 0.3
    maximum_aspect_ratio: float = 1.0
    minimum_size: float = 0.1


@dataclass(frozen=True)
class DetectionCandidate:
    """A detected quadrilateral in normalized, y-up coordinates."""

    quad: Quadrilateral
    confidence: float
    bounding_box_area: float

    @classmethod
    def from_quad(cls, quad: Quadrilateral, confidence: float) -> "DetectionCandidate":
        """Build a candidate, deriving the bounding-box area from the corners."""
        box = quad.bounding_rect()
        return cls(quad=quad, confidence=confidence, bounding_box_area=box.width * box.height)


class QuadrilateralDetector(Protocol):
    """Anything that finds document quadrilaterals in an image."""

    def detect(self, image: RasterImage, config: DetectorConfig) -> List[DetectionCandidate]:
        """Detect candidate quadrilaterals.

        Args:
            image: Upright image to search.
            config: Thresholds limiting which candidates are returned.

        Returns:
            Zero or more candidates, at most ``config.max_observations``.

        Raises:
            DetectorUnavailable: If the detection backend fails.
        """
        ...


def _order_corners(pts: np.ndarray) -> np.ndarray:
    """Order four raster points as: top-left, top-right, bottom-right, bottom-left."""
    s = pts.sum(axis=1)
    d = np.diff(pts, axis=1).flatten()

    ordered = np.zeros((4, 2), dtype=np.float32)
    ordered[0] = pts[np.argmin(s)]
    ordered[1] = pts[np.argmin(d)]
    ordered[2] = pts[np.argmax(s)]
    ordered[3] = pts[np.argmax(d)]

    return ordered


def _to_grayscale(image: RasterImage) -> np.ndarray:
    pixels = image.pixels
    if pixels.ndim == 2:
        return pixels
    if pixels.shape[2] == 1:
        return pixels[:, :, 0]
    if pixels.shape[2] == 4:
        return cv2.cvtColor(pixels, cv2.COLOR_RGBA2GRAY)
    return cv2.cvtColor(pixels, cv2.COLOR_RGB2GRAY)


def _normalized_quad(corners: np.ndarray, width: int, height: int) -> Quadrilateral:
    """Convert ordered raster corners [TL, TR, BR, BL] to a normalized y-up quad."""
    def to_point(pt: np.ndarray) -> Point:
        return Point(float(pt[0]) / width, 1.0 - float(pt[1]) / height)

    tl, tr, br, bl = corners
    return Quadrilateral(
        top_left=to_point(tl),
        top_right=to_point(tr),
        bottom_left=to_point(bl),
        bottom_right=to_point(br),
    )


class ContourQuadDetector:
    """OpenCV contour-based rectangle detector."""

    def __init__(
        self,
        blur_kernel: int = 5,
        canny_low: int = 50,
        canny_high: int = 150,
    ) -> None:
        self.blur_kernel = blur_kernel
        self.canny_low = canny_low
        self.canny_high = canny_high

    def detect(self, image: RasterImage, config: DetectorConfig) -> List[DetectionCandidate]:
        try:
            quads = self._find_quads(image)
        except cv2.error as e:
            raise DetectorUnavailable(f"OpenCV detection failed: {e}") from e

        width, height = image.width, image.height
        image_area = float(width * height)
        shorter_side = float(min(width, height))

        candidates: List[DetectionCandidate] = []
        for corners in quads:
            confidence = self._score(corners, image_area)

            x, y, box_w, box_h = cv2.boundingRect(corners.astype(np.int32))
            aspect = min(box_w, box_h) / max(box_w, box_h, 1)
            size = min(box_w, box_h) / shorter_side

            if confidence < config.minimum_confidence:
                logger.debug(f"Rejecting quad: confidence={confidence:.3f}")
                continue
            if not config.minimum_aspect_ratio <= aspect <= config.maximum_aspect_ratio:
                logger.debug(f"Rejecting quad: aspect_ratio={aspect:.3f}")
                continue
            if size < config.minimum_size:
                logger.debug(f"Rejecting quad: size={size:.3f}")
                continue

            quad = _normalized_quad(corners, width, height)
            candidates.append(DetectionCandidate.from_quad(quad, confidence))

        candidates.sort(key=lambda c: c.confidence, reverse=True)
        candidates = candidates[:config.max_observations]

        logger.info(
            f"Detected {len(candidates)} quadrilateral(s) in {width}x{height} "
            f"({len(quads)} before filtering)"
        )

        return candidates

    def _find_quads(self, image: RasterImage) -> List[np.ndarray]:
        gray = _to_grayscale(image)
        blurred = cv2.GaussianBlur(gray, (self.blur_kernel, self.blur_kernel), 0)
        kernel3 = cv2.getStructuringElement(cv2.MORPH_RECT, (3, 3))

        edges = cv2.Canny(blurred, self.canny_low, self.canny_high)
        edges_weak = cv2.Canny(blurred, self.canny_low // 2, self.canny_high // 2)
        adaptive = cv2.adaptiveThreshold(
            blurred, 255,
            cv2.ADAPTIVE_THRESH_GAUSSIAN_C, cv2.THRESH_BINARY_INV,
            21, 5,
        )

        binary_maps = [
            cv2.dilate(edges, kernel3, iterations=1),
            cv2.dilate(edges_weak, kernel3, iterations=2),
            cv2.morphologyEx(adaptive, cv2.MORPH_CLOSE, kernel3, iterations=3),
        ]

        image_area = float(gray.shape[0] * gray.shape[1])
        diagonal = float(np.hypot(gray.shape[0], gray.shape[1]))

        found: List[np.ndarray] = []
        for binary in binary_maps:
            for corners in self._quads_in(binary, image_area):
                if not self._is_duplicate(corners, found, diagonal):
                    found.append(corners)

        return found

    @staticmethod
    def _quads_in(binary: np.ndarray, image_area: float) -> List[np.ndarray]:
        contours, _ = cv2.findContours(binary, cv2.RETR_LIST, cv2.CHAIN_APPROX_SIMPLE)

        quads: List[np.ndarray] = []
        for contour in sorted(contours, key=cv2.contourArea, reverse=True):
            area_ratio = cv2.contourArea(contour) / image_area

            if area_ratio < _MIN_AREA_RATIO:
                break  # Sorted descending; everything below is also too small

            if area_ratio > _MAX_AREA_RATIO:
                continue

            peri = cv2.arcLength(contour, True)
            approx = cv2.approxPolyDP(contour, 0.02 * peri, True)

            if len(approx) == 4 and cv2.isContourConvex(approx):
                quads.append(_order_corners(approx.reshape(4, 2).astype(np.float32)))

        return quads

    @staticmethod
    def _is_duplicate(corners: np.ndarray, found: List[np.ndarray], diagonal: float) -> bool:
        limit = diagonal * _DUPLICATE_TOLERANCE
        for other in found:
            if np.all(np.linalg.norm(corners - other, axis=1) <= limit):
                return True
        return False

    @staticmethod
    def _score(corners: np.ndarray, image_area: float) -> float:
        """Confidence from how much of the frame the quad covers and how rectangular it is."""
        quad_area = cv2.contourArea(corners)
        area_ratio = quad_area / image_area

        _, (rect_w, rect_h), _ = cv2.minAreaRect(corners)
        rectangularity = quad_area / max(rect_w * rect_h, 1.0)

        return float(min(1.0, area_ratio * rectangularity * 2.0))


def detect_document(
    image: RasterImage,
    config: Optional[DetectorConfig] = None,
    detector: Optional[QuadrilateralDetector] = None,
) -> List[DetectionCandidate]:
    """Run a detector with default settings; convenience for scripts and the CLI."""
    detector = detector or ContourQuadDetector()
    return detector.detect(image, config or DetectorConfig())
