"""Geometry primitives, capture orientation and fallback quad synthesis."""

from flatcapture.geometry.primitives import Point, Size, Rect, Quadrilateral, scale, inset
from flatcapture.geometry.orientation import Orientation, apply_orientation
from flatcapture.geometry.fallback import FallbackPlan, fallback_control_points, synthesize_fallback

__all__ = [
    'Point',
    'Size',
    'Rect',
    'Quadrilateral',
    'scale',
    'inset',
    'Orientation',
    'apply_orientation',
    'FallbackPlan',
    'fallback_control_points',
    'synthesize_fallback',
]
