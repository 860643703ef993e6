"""SQLModel data models.

This module defines the application's database tables using SQLModel.
Each class maps to a table; composite keys mirror the coordinates used
by the HTTP API (`unit_id`, exercise index).
"""

from typing import Optional
from sqlmodel import SQLModel, Field
from sqlalchemy import UniqueConstraint
from datetime import datetime, timezone

STATE_RESERVED = 0
STATE_PRESENTED = 1


class Student(SQLModel, table=True):
    """A student allowed to log in.

    Students are split into two groups (even/odd) which have their own
    deadlines and are corrected separately by the teacher.
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    username: str = Field(index=True, nullable=False, unique=True)
    full_name: str
    in_group_even: bool = False


class Unit(SQLModel, table=True):
    """A unit of the course with a fixed number of exercises."""
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    exercise_count: int = 0
    deadline_group_even: str = ""
    deadline_group_odd: str = ""


class Exercise(SQLModel, table=True):
    """Teacher marks for one exercise of a unit.

    A row only exists once a mark was set; a missing row means the
    exercise is neither blocked nor corrected.
    """
    unit_id: int = Field(foreign_key='unit.id', primary_key=True)
    index_: int = Field(primary_key=True)
    blocked: bool = False
    teacher_corrected_for_group_even: bool = False
    teacher_corrected_for_group_odd: bool = False


class ExerciseStudentState(SQLModel, table=True):
    """Whether a student reserved (0) or presented (1) an exercise."""
    student_id: int = Field(foreign_key='student.id', primary_key=True)
    unit_id: int = Field(foreign_key='unit.id', primary_key=True)
    exercise: int = Field(primary_key=True)
    state: int = STATE_RESERVED


class ExerciseCorrection(SQLModel, table=True):
    """Reference from an exercise to a stored correction picture.

    `picture_digest` names the blob in the corrections directory. The
    same digest may be referenced by several exercises, but only once
    per exercise.
    """
    __table_args__ = (
        UniqueConstraint('unit_id', 'unit_exercise', 'picture_digest', name='uq_correction_per_exercise'),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    unit_id: int = Field(foreign_key='unit.id', index=True)
    unit_exercise: int
    created_by: int = Field(foreign_key='student.id')
    picture_digest: str = Field(index=True)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
