"""Nearest-descriptor matching of observed faces against the class roster."""
from typing import List, Optional, Sequence

import numpy as np

from attendance_station.core.config import settings
from attendance_station.core.logging import get_logger
from attendance_station.domain.entities.face import (
    DetectionObservation,
    RosterMember,
    is_valid_descriptor,
)
from attendance_station.domain.value_objects.recognition import MatchResult, NearestMatch

logger = get_logger(__name__)


def euclidean_distance(a: np.ndarray, b: np.ndarray) -> float:
    """Euclidean distance between two descriptors."""
    return float(np.linalg.norm(np.asarray(a, dtype=np.float64) - np.asarray(b, dtype=np.float64)))


def find_best_match(
    observed: np.ndarray,
    roster: Sequence[RosterMember],
    threshold: float = 0.4,
) -> Optional[NearestMatch]:
    """Find the roster member owning the enrolled descriptor closest to ``observed``.

    Every valid descriptor of every member is compared. The member holding the
    global minimum is returned only when that minimum is strictly below
    ``threshold``. On ties the first member encountered wins.

    Args:
        observed: Observed descriptor; callers validate its length first
        roster: Class roster with enrolled descriptors
        threshold: Exclusive upper bound on the accepted distance

    Returns:
        NearestMatch, or None when the roster is empty or nothing is close enough
    """
    query = np.asarray(observed, dtype=np.float64)
    best_member: Optional[RosterMember] = None
    best_distance = float("inf")

    for member in roster:
        candidates = [d for d in member.descriptors if is_valid_descriptor(d)]
        if not candidates:
            continue

        distances = np.linalg.norm(np.vstack(candidates) - query, axis=1)
        member_best = float(distances.min())
        if member_best < best_distance:
            best_distance = member_best
            best_member = member

    if best_member is None or not best_distance < threshold:
        return None

    return NearestMatch(member=best_member, distance=best_distance)


class DistanceMatcher:
    """Matches the observations of a detection cycle against a roster.

    Example:
        ```python
        matcher = DistanceMatcher(threshold=0.4)
        results = matcher.match_observations(batch.observations, roster)
        ```
    """

    def __init__(self, threshold: Optional[float] = None) -> None:
        """Initialize the matcher.

        Args:
            threshold: Maximum distance (exclusive), defaults to settings
        """
        self.threshold = settings.RECOGNITION_THRESHOLD if threshold is None else threshold

    def match(self, observed: np.ndarray, roster: Sequence[RosterMember]) -> Optional[NearestMatch]:
        return find_best_match(observed, roster, self.threshold)

    def match_observations(
        self,
        observations: Sequence[DetectionObservation],
        roster: Sequence[RosterMember],
    ) -> List[MatchResult]:
        """Match each observation carrying a valid descriptor.

        Observations without a valid descriptor or with an invalid box are
        skipped. Unknown faces are omitted from the result.
        """
        results: List[MatchResult] = []
        for observation in observations:
            if not observation.box.is_valid():
                logger.warning(
                    "Dropping observation with invalid box",
                    index=observation.index,
                    box=observation.box.model_dump()
                )
                continue
            if not observation.has_valid_descriptor:
                logger.warning("Dropping observation without a valid descriptor", index=observation.index)
                continue

            nearest = self.match(observation.descriptor, roster)
            if nearest is None:
                continue

            results.append(
                MatchResult(
                    detection_index=observation.index,
                    student_id=nearest.member.id,
                    name=nearest.member.full_name,
                    confidence=nearest.confidence,
                    distance=nearest.distance,
                )
            )
        return results
