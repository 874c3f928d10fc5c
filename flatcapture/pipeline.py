"""Correction orchestrator for FlatCapture.

Runs one still image through detect -> select -> warp, or, when nothing usable
is detected, through the fallback synthesizer. Recoverable failures never
escape; they become a passthrough outcome carrying the original image.
"""

import asyncio
import logging
import os
import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import List, Mapping, Optional, Tuple

import cv2

from flatcapture.errors import DetectorUnavailable, RenderFailure
from flatcapture.geometry.fallback import synthesize_fallback
from flatcapture.geometry.orientation import Orientation, apply_orientation
from flatcapture.geometry.primitives import Size
from flatcapture.page_detection.detector import (
    ContourQuadDetector,
    DetectionCandidate,
    DetectorConfig,
    QuadrilateralDetector,
)
from flatcapture.page_detection.perspective import crop_region, warp_perspective
from flatcapture.page_detection.selector import SelectionPolicy, select_candidate
from flatcapture.preprocessing.raster import RasterImage

logger = logging.getLogger(__name__)

_ENV_PREFIX = "FLATCAPTURE_"


@dataclass(frozen=True)
class CorrectionConfig:
    """All tunable parameters in one place."""

    # Detector thresholds
    max_observations: int = 1
    minimum_confidence: float = 0.3
    minimum_aspect_ratio: float = 0.3
    maximum_aspect_ratio: float = 1.0
    minimum_size: float = 0.1

    # Decision policy
    fallback_enabled: bool = True
    selection_policy: SelectionPolicy = SelectionPolicy.STRICT

    @classmethod
    def best_by_area(cls, **overrides) -> "CorrectionConfig":
        """Preset that asks for up to 8 candidates and keeps the largest."""
        base = cls(max_observations=8, selection_policy=SelectionPolicy.BEST_BY_AREA)
        return replace(base, **overrides)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "CorrectionConfig":
        """Read overrides from ``FLATCAPTURE_*`` environment variables.

        Unset variables keep their defaults. Invalid values raise ValueError.
        """
        env = os.environ if environ is None else environ
        values: dict = {}

        def _get(name: str) -> Optional[str]:
            raw = env.get(_ENV_PREFIX + name.upper(), "")
            return raw.strip() or None

        policy = _get("selection_policy")
        if policy is not None:
            values["selection_policy"] = SelectionPolicy(policy.lower().replace("_", "-"))
            if values["selection_policy"] is SelectionPolicy.BEST_BY_AREA:
                values["max_observations"] = 8

        raw = _get("max_observations")
        if raw is not None:
            values["max_observations"] = int(raw)

        for name in (
            "minimum_confidence",
            "minimum_aspect_ratio",
            "maximum_aspect_ratio",
            "minimum_size",
        ):
            raw = _get(name)
            if raw is not None:
                values[name] = float(raw)

        raw = _get("fallback_enabled")
        if raw is not None:
            values["fallback_enabled"] = raw.lower() in ("1", "true", "yes", "on")

        config = cls(**values)
        config.validate()
        logger.debug(f"Loaded correction config from environment: {config}")
        return config

    def validate(self) -> None:
        """Raise ValueError for out-of-range settings."""
        if self.max_observations < 1:
            raise ValueError(f"max_observations must be >= 1, got {self.max_observations}")
        if not 0.0 <= self.minimum_confidence <= 1.0:
            raise ValueError(f"minimum_confidence must be in [0, 1], got {self.minimum_confidence}")
        if not 0.0 < self.minimum_aspect_ratio <= 1.0:
            raise ValueError(
                f"minimum_aspect_ratio must be in (0, 1], got {self.minimum_aspect_ratio}"
            )
        if not self.minimum_aspect_ratio <= self.maximum_aspect_ratio <= 1.0:
            raise ValueError(
                f"maximum_aspect_ratio must be in [{self.minimum_aspect_ratio}, 1], "
                f"got {self.maximum_aspect_ratio}"
            )
        if not 0.0 < self.minimum_size <= 1.0:
            raise ValueError(f"minimum_size must be in (0, 1], got {self.minimum_size}")

    def detector_config(self) -> DetectorConfig:
        """Thresholds for the detector. STRICT always asks for a single observation."""
        max_observations = 1 if self.selection_policy is SelectionPolicy.STRICT else self.max_observations
        return DetectorConfig(
            max_observations=max_observations,
            minimum_confidence=self.minimum_confidence,
            minimum_aspect_ratio=self.minimum_aspect_ratio,
            maximum_aspect_ratio=self.maximum_aspect_ratio,
            minimum_size=self.minimum_size,
        )


class CorrectionState(Enum):
    """States of a single correction run."""

    IDLE = "idle"
    DETECTING = "detecting"
    DETECTION_FAILED = "detection_failed"
    SELECTING = "selecting"
    NO_CANDIDATE = "no_candidate"
    FALLBACK_SYNTHESIS = "fallback_synthesis"
    WARPING = "warping"
    RENDER_FAILED = "render_failed"
    DONE = "done"


@dataclass(frozen=True)
class CorrectionOutcome:
    """Everything downstream needs to know about one correction run."""

    output_image: RasterImage
    did_apply_correction: bool
    used_fallback: bool
    confidence: Optional[float] = None
    elapsed_time_ms: Optional[float] = None
    states: Tuple[CorrectionState, ...] = field(default_factory=tuple)
    failure: Optional[str] = None


def describe_outcome(outcome: CorrectionOutcome) -> str:
    """User-facing status line for an outcome."""
    if not outcome.did_apply_correction:
        return "No correction applied"
    if outcome.used_fallback:
        return "Approximate correction applied"
    return "Perspective corrected"


class _Run:
    """State trace for a single correction call."""

    def __init__(self) -> None:
        self.states: List[CorrectionState] = [CorrectionState.IDLE]

    def enter(self, state: CorrectionState) -> None:
        logger.debug(f"{self.states[-1].value} -> {state.value}")
        self.states.append(state)


class PerspectiveCorrector:
    """Main correction pipeline for a single captured image."""

    def __init__(
        self,
        detector: Optional[QuadrilateralDetector] = None,
        config: Optional[CorrectionConfig] = None,
    ) -> None:
        """Initialize the corrector.

        Args:
            detector: Quadrilateral detector. If None, uses ContourQuadDetector.
            config: Correction configuration. If None, uses defaults.
        """
        self.detector = detector or ContourQuadDetector()
        self.config = config or CorrectionConfig()
        self.config.validate()

    def correct(self, image: RasterImage, orientation: Orientation = Orientation.UP) -> CorrectionOutcome:
        """Correct the perspective of one image.

        Args:
            image: Captured image in sensor order.
            orientation: Capture orientation; unknown values are treated as UP.

        Returns:
            CorrectionOutcome. Detector and render failures produce a
            passthrough outcome with the original image.

        Raises:
            TypeError: If ``image`` is not a RasterImage.
        """
        if not isinstance(image, RasterImage):
            raise TypeError(f"Expected RasterImage, got {type(image).__name__}")

        start_time = time.time()
        run = _Run()
        orientation = Orientation.resolve(orientation)

        def finish(
            output: RasterImage,
            applied: bool,
            fallback: bool,
            confidence: Optional[float] = None,
            failure: Optional[str] = None,
        ) -> CorrectionOutcome:
            run.enter(CorrectionState.DONE)
            elapsed_ms = (time.time() - start_time) * 1000.0
            logger.info(
                f"Correction done in {elapsed_ms:.1f}ms: applied={applied}, "
                f"fallback={fallback}, output={output.width}x{output.height}"
            )
            return CorrectionOutcome(
                output_image=output,
                did_apply_correction=applied,
                used_fallback=fallback,
                confidence=confidence,
                elapsed_time_ms=elapsed_ms,
                states=tuple(run.states),
                failure=failure,
            )

        oriented = apply_orientation(image, orientation)

        # Step 1: Detect
        run.enter(CorrectionState.DETECTING)
        try:
            candidates = self.detector.detect(oriented, self.config.detector_config())
        except (DetectorUnavailable, RuntimeError, OSError, cv2.error) as e:
            logger.warning(f"Detection failed, passing through: {e}")
            run.enter(CorrectionState.DETECTION_FAILED)
            return finish(image, False, False, failure=f"detection failed: {e}")

        # Step 2: Select
        selected: Optional[DetectionCandidate] = None
        if candidates:
            run.enter(CorrectionState.SELECTING)
            selected = select_candidate(candidates, self.config.selection_policy)

        if selected is not None:
            # Step 3a: Warp the detected quadrilateral
            run.enter(CorrectionState.WARPING)
            extent = Size(oriented.width, oriented.height)
            try:
                corrected = warp_perspective(oriented, selected.quad.scaled(extent))
            except RenderFailure as e:
                # A confident detection is not masked by a heuristic guess
                logger.warning(f"Render failed for detected quad, passing through: {e}")
                run.enter(CorrectionState.RENDER_FAILED)
                return finish(image, False, False, failure=f"render failed: {e}")

            logger.info(f"Corrected using detected quad (confidence={selected.confidence:.3f})")
            return finish(corrected, True, False, confidence=selected.confidence)

        # Step 3b: Nothing usable detected
        run.enter(CorrectionState.NO_CANDIDATE)
        if not self.config.fallback_enabled:
            logger.info("No quadrilateral detected and fallback disabled, passing through")
            return finish(image, False, False, failure="no candidate")

        run.enter(CorrectionState.FALLBACK_SYNTHESIS)
        plan = synthesize_fallback(Size(oriented.width, oriented.height), orientation)
        if plan is None:
            logger.info("Image too small for fallback correction, passing through")
            return finish(image, False, False, failure="no correction possible")

        run.enter(CorrectionState.WARPING)
        try:
            cropped = crop_region(oriented, plan.crop)
            corrected = warp_perspective(cropped, plan.quad, plan.output_size)
        except RenderFailure as e:
            logger.warning(f"Fallback render failed, passing through: {e}")
            run.enter(CorrectionState.RENDER_FAILED)
            return finish(image, False, False, failure=f"render failed: {e}")

        logger.info(f"Corrected using fallback quad ({orientation.name})")
        return finish(corrected, True, True)

    async def correct_async(
        self,
        image: RasterImage,
        orientation: Orientation = Orientation.UP,
    ) -> CorrectionOutcome:
        """Run ``correct`` on a worker thread and await the outcome."""
        return await asyncio.to_thread(self.correct, image, orientation)


def correct(
    image: RasterImage,
    orientation: Orientation = Orientation.UP,
    config: Optional[CorrectionConfig] = None,
    detector: Optional[QuadrilateralDetector] = None,
) -> CorrectionOutcome:
    """Correct one image with a fresh corrector."""
    return PerspectiveCorrector(detector=detector, config=config).correct(image, orientation)


async def correct_async(
    image: RasterImage,
    orientation: Orientation = Orientation.UP,
    config: Optional[CorrectionConfig] = None,
    detector: Optional[QuadrilateralDetector] = None,
) -> CorrectionOutcome:
    """Async variant of ``correct``; the pipeline runs off the event loop."""
    corrector = PerspectiveCorrector(detector=detector, config=config)
    return await corrector.correct_async(image, orientation)
