"""Wire schemas of the attendance REST backend."""
from typing import Any, Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator

from attendance_station.domain.entities.attendance import StudentRef, as_ref
from attendance_station.domain.entities.face import RosterMember

T = TypeVar("T")


class ApiEnvelope(BaseModel, Generic[T]):
    """Every response is wrapped as ``{success, data, message}``."""
    success: bool
    data: Optional[T] = None
    message: Optional[str] = None


class TeachingClassRecord(BaseModel):
    """``GET /classes/teaching/{id}``, only the fields the station reads."""
    id: str = Field(..., alias="_id")
    class_name: Optional[str] = None
    students: List[StudentRef] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @field_validator("students", mode="before")
    @classmethod
    def validate_students(cls, v: Any) -> Any:
        """Unpopulated class lists carry bare student ids."""
        if isinstance(v, list):
            return [as_ref(item) for item in v]
        return v


class FaceFeatureRecord(BaseModel):
    """One student of ``GET /face-recognition/class-features/{id}``."""
    id: str = Field(..., alias="_id")
    full_name: Optional[str] = None
    student_id: Optional[str] = Field(None, description="School-issued student number")
    avatar_url: Optional[str] = None
    face_descriptors: Any = Field(None, alias="faceDescriptors")
    face_features: Any = Field(None, alias="faceFeatures")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    def to_member(self) -> RosterMember:
        raw = self.face_descriptors if self.face_descriptors is not None else self.face_features
        return RosterMember(
            id=self.id,
            full_name=self.full_name or "",
            student_code=self.student_id,
            avatar_url=self.avatar_url,
            descriptors=raw,
        )
