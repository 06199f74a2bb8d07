"""Face recognition value objects."""
from enum import Enum
from typing import List, Optional

import numpy as np
from pydantic import BaseModel, ConfigDict, Field

from attendance_station.domain.entities.face import DetectionObservation, RosterMember


def confidence_from_distance(distance: float) -> float:
    """Confidence of a match, ``1 - distance`` clamped to [0, 1]."""
    return max(0.0, min(1.0, 1.0 - distance))


class NearestMatch(BaseModel):
    """Closest enrolled descriptor found for an observed descriptor."""
    member: RosterMember = Field(..., description="Roster member owning the closest descriptor")
    distance: float = Field(..., description="Euclidean distance to the closest descriptor")

    @property
    def confidence(self) -> float:
        return confidence_from_distance(self.distance)


class MatchResult(BaseModel):
    """Recognition result for one detection of a cycle."""
    detection_index: int = Field(..., description="Index of the detection within its frame")
    student_id: Optional[str] = Field(None, description="Matched roster member, None when unknown")
    name: Optional[str] = Field(None, description="Display name of the matched member")
    confidence: float = Field(0.0, ge=0.0, le=1.0, description="1 - distance, clamped")
    distance: Optional[float] = Field(None, description="Distance to the closest descriptor")

    @property
    def is_match(self) -> bool:
        return self.student_id is not None


class DetectionMode(str, Enum):
    """Operating modes of the detection loop."""
    LANDMARK = "landmark"
    AUTO = "auto"
    CAPTURE = "capture"


class DetectionBatch(BaseModel):
    """Everything one detection cycle produced."""
    mode: DetectionMode
    observations: List[DetectionObservation] = Field(default_factory=list)
    frame: Optional[np.ndarray] = Field(None, description="Frame the observations were taken from")
    generation: int = Field(0, description="Loop generation that produced the batch")

    model_config = ConfigDict(arbitrary_types_allowed=True)


class RecognitionOutcome(BaseModel):
    """What the coordinator did with one auto-mode batch."""
    results: List[MatchResult] = Field(default_factory=list)
    submitted: List[str] = Field(default_factory=list, description="Student ids submitted this cycle")
    skipped_cooldown: List[str] = Field(default_factory=list)
    failed: List[str] = Field(default_factory=list)
    dropped: int = Field(0, description="Observations dropped by validation")


class CaptureStatus(str, Enum):
    NO_FACE = "no_face"
    NO_MATCH = "no_match"
    LOW_CONFIDENCE = "low_confidence"
    SUBMITTED = "submitted"
    FAILED = "failed"
    REJECTED = "rejected"  # Precondition not met, nothing attempted


class CaptureOutcome(BaseModel):
    """Result of a manual single-shot capture."""
    status: CaptureStatus
    message: str
    match: Optional[MatchResult] = None
