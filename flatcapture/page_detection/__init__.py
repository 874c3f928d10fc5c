"""Document detection, candidate selection and perspective correction."""

from flatcapture.page_detection.detector import (
    ContourQuadDetector,
    DetectionCandidate,
    DetectorConfig,
    QuadrilateralDetector,
    detect_document,
)
from flatcapture.page_detection.selector import SelectionPolicy, select_candidate
from flatcapture.page_detection.perspective import crop_region, warp_perspective

__all__ = [
    "ContourQuadDetector",
    "DetectionCandidate",
    "DetectorConfig",
    "QuadrilateralDetector",
    "detect_document",
    "SelectionPolicy",
    "select_candidate",
    "crop_region",
    "warp_perspective",
]
