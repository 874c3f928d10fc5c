"""Pick the detection candidate to warp."""

import logging
from enum import Enum
from typing import Optional, Sequence

from flatcapture.page_detection.detector import DetectionCandidate

logger = logging.getLogger(__name__)


class SelectionPolicy(Enum):
    """How to choose among detector candidates."""

    STRICT = "strict"              # Single top candidate, accepted as-is
    BEST_BY_AREA = "best-by-area"  # Largest bounding box wins


def select_candidate(
    candidates: Sequence[DetectionCandidate],
    policy: SelectionPolicy = SelectionPolicy.STRICT,
) -> Optional[DetectionCandidate]:
    """Select at most one candidate.

    BEST_BY_AREA prefers the largest detected region over the most confident
    one. Equal areas keep the first-encountered candidate.

    Args:
        candidates: Candidates in detector order.
        policy: Selection policy.

    Returns:
        The selected candidate, or None when there is nothing to select.
    """
    if not candidates:
        return None

    if policy is SelectionPolicy.STRICT:
        selected = candidates[0]
    else:
        selected = candidates[0]
        for candidate in candidates[1:]:
            if candidate.bounding_box_area > selected.bounding_box_area:
                selected = candidate

    logger.debug(
        f"Selected candidate ({policy.value}) of {len(candidates)}: "
        f"confidence={selected.confidence:.3f}, area={selected.bounding_box_area:.3f}"
    )

    return selected
