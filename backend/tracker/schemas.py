"""Pydantic request/response schemas used by the API.

Responses use camelCase field names, which is what the web front end
reads; the Python side keeps snake_case attributes.
"""

from enum import Enum
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import List


class LogInIn(BaseModel):
    """Payload for the log in endpoint."""
    username: str
    password: str


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class StudentOut(CamelModel):
    id: int
    username: str
    full_name: str
    in_group_even: bool


class UnitOut(CamelModel):
    id: int
    name: str
    exercise_count: int
    deadline_group_even: str
    deadline_group_odd: str


class ExerciseOut(CamelModel):
    """State of one exercise of a unit as seen by every student."""
    reserved_by: List[StudentOut] = Field(default_factory=list)
    presented_by: List[StudentOut] = Field(default_factory=list)
    blocked: bool = False
    teacher_corrected_for_group_even: bool = False
    teacher_corrected_for_group_odd: bool = False
    correction_images: List[str] = Field(default_factory=list)


class ExerciseStudentStateIn(str, Enum):
    """Body of the exercise state endpoint (a bare JSON string)."""
    none = "none"
    reserved = "reserved"
    presented = "presented"


class CorrectionOut(BaseModel):
    """Response of a stored correction picture."""
    digest: str
