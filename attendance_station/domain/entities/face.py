"""Core face domain entities."""
import math
from typing import Any, Dict, List, Optional, Tuple, Union

import numpy as np
from pydantic import BaseModel, ConfigDict, Field, field_validator

DESCRIPTOR_LENGTH = 128

Landmarks = Dict[str, List[Tuple[float, float]]]


def is_valid_descriptor(value: Any) -> bool:
    """Check that a value is a usable face descriptor.

    A descriptor is exactly ``DESCRIPTOR_LENGTH`` finite numbers. Anything else is
    never matched.
    """
    if value is None:
        return False
    try:
        array = np.asarray(value, dtype=np.float64)
    except (TypeError, ValueError):
        return False
    return array.shape == (DESCRIPTOR_LENGTH,) and bool(np.all(np.isfinite(array)))


def extract_descriptors(raw: Any) -> List[np.ndarray]:
    """Collect every valid descriptor from arbitrarily nested enrollment data.

    Enrollment data arrives as a list of descriptors, a list of lists of
    descriptors, or objects wrapping them. Any list of exactly
    ``DESCRIPTOR_LENGTH`` numbers counts as one descriptor; other lists and
    mappings are searched recursively.

    Args:
        raw: Enrollment payload (lists, tuples, dicts, numpy arrays)

    Returns:
        List of float64 arrays, each of length ``DESCRIPTOR_LENGTH``
    """
    descriptors: List[np.ndarray] = []

    def visit(node: Any) -> None:
        if node is None:
            return
        if isinstance(node, np.ndarray):
            node = node.tolist()
        if isinstance(node, (list, tuple)):
            if (
                len(node) == DESCRIPTOR_LENGTH
                and all(isinstance(n, (int, float)) and not isinstance(n, bool) for n in node)
            ):
                if is_valid_descriptor(node):
                    descriptors.append(np.asarray(node, dtype=np.float64))
                return
            for child in node:
                visit(child)
        elif isinstance(node, dict):
            for child in node.values():
                visit(child)

    visit(raw)
    return descriptors


class BoundingBox(BaseModel):
    """Face bounding box in frame pixel coordinates."""
    x: float = Field(..., description="Left coordinate of the bounding box")
    y: float = Field(..., description="Top coordinate of the bounding box")
    width: float = Field(..., description="Width of the bounding box")
    height: float = Field(..., description="Height of the bounding box")

    def is_valid(self) -> bool:
        """All coordinates finite and a strictly positive size."""
        coords = (self.x, self.y, self.width, self.height)
        if not all(isinstance(c, (int, float)) and math.isfinite(c) for c in coords):
            return False
        return self.width > 0 and self.height > 0


class DetectionObservation(BaseModel):
    """One face found in one frame. Discarded once the cycle is processed."""
    index: int = Field(..., description="Position of the face within the frame's detections")
    box: BoundingBox = Field(..., description="Bounding box coordinates")
    landmarks: Optional[Landmarks] = Field(None, description="Facial landmark points by feature")
    descriptor: Optional[np.ndarray] = Field(None, description="Observed face descriptor")

    model_config = ConfigDict(arbitrary_types_allowed=True)

    @field_validator('descriptor', mode='before')
    @classmethod
    def validate_descriptor(cls, v: Optional[Union[np.ndarray, list]]) -> Optional[np.ndarray]:
        """Convert descriptor to a numpy array if needed."""
        if v is None:
            return None
        if isinstance(v, (list, tuple)):
            return np.asarray(v, dtype=np.float64)
        return v

    @property
    def has_valid_descriptor(self) -> bool:
        return is_valid_descriptor(self.descriptor)


class RosterMember(BaseModel):
    """A student of the class, with the descriptors enrolled for them."""
    id: str = Field(..., description="Student user identifier")
    full_name: str = Field("", description="Display name")
    student_code: Optional[str] = Field(None, description="School-issued student number")
    avatar_url: Optional[str] = Field(None, description="Profile picture URL")
    descriptors: List[np.ndarray] = Field(default_factory=list, description="Enrolled face descriptors")

    model_config = ConfigDict(arbitrary_types_allowed=True)

    @field_validator('descriptors', mode='before')
    @classmethod
    def validate_descriptors(cls, v: Any) -> List[np.ndarray]:
        """Keep only well-formed descriptors."""
        return extract_descriptors(v)

    @property
    def has_face_data(self) -> bool:
        return len(self.descriptors) > 0
