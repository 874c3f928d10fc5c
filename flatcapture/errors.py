"""Failure types raised inside the correction pipeline.

None of these escape ``PerspectiveCorrector.correct``; the orchestrator turns
them into a passthrough outcome.
"""


class CorrectionError(Exception):
    """Base class for recoverable pipeline failures."""


class DetectorUnavailable(CorrectionError, RuntimeError):
    """The quadrilateral detector backend could not run on this image."""


class RenderFailure(CorrectionError):
    """The perspective transform could not be built or rendered."""


class DegenerateGeometry(RenderFailure):
    """Quadrilateral has zero area or three or more collinear corners."""
