"""Repository classes encapsulating database operations.

Each repository is small and focused on a single table. Repositories
return SQLModel objects and commit where they write, so every call is a
short unit of work on the request's session.
"""

from typing import List, Optional
from sqlmodel import Session, select
from . import models


class StudentRepository:
    """Lookups for `Student` rows."""
    def __init__(self, session: Session):
        self.session = session

    def create(self, student: models.Student) -> models.Student:
        """Persist a new student and return the managed instance."""
        self.session.add(student)
        self.session.commit()
        self.session.refresh(student)
        return student

    def get_by_username(self, username: str) -> Optional[models.Student]:
        """Return a `Student` by username or `None` if not found."""
        stmt = select(models.Student).where(models.Student.username == username)
        return self.session.exec(stmt).first()

    def get(self, student_id: int) -> Optional[models.Student]:
        return self.session.get(models.Student, student_id)


class UnitRepository:
    """Queries over `Unit` rows."""
    def __init__(self, session: Session):
        self.session = session

    def create(self, unit: models.Unit) -> models.Unit:
        self.session.add(unit)
        self.session.commit()
        self.session.refresh(unit)
        return unit

    def list_all(self) -> List[models.Unit]:
        return self.session.exec(select(models.Unit).order_by(models.Unit.id)).all()

    def exercise_count(self, unit_id: int) -> Optional[int]:
        """Return the number of exercises in a unit, `None` for unknown units."""
        stmt = select(models.Unit.exercise_count).where(models.Unit.id == unit_id)
        return self.session.exec(stmt).first()


class ExerciseRepository:
    """Upserts of the teacher marks stored in `Exercise`."""
    def __init__(self, session: Session):
        self.session = session

    def list_for_unit(self, unit_id: int) -> List[models.Exercise]:
        stmt = select(models.Exercise).where(models.Exercise.unit_id == unit_id)
        return self.session.exec(stmt).all()

    def set_flag(self, unit_id: int, index: int, field: str, value: bool) -> models.Exercise:
        """Set one boolean mark, creating the row on first use."""
        row = self.session.get(models.Exercise, (unit_id, index))
        if row is None:
            row = models.Exercise(unit_id=unit_id, index_=index)
        setattr(row, field, value)
        self.session.add(row)
        self.session.commit()
        return row


class ExerciseStateRepository:
    """Per-student reserved/presented state."""
    def __init__(self, session: Session):
        self.session = session

    def list_for_unit(self, unit_id: int):
        """Return `(state_row, student)` pairs for every state in the unit."""
        stmt = (
            select(models.ExerciseStudentState, models.Student)
            .join(models.Student, models.Student.id == models.ExerciseStudentState.student_id)
            .where(models.ExerciseStudentState.unit_id == unit_id)
            .order_by(models.ExerciseStudentState.exercise, models.Student.id)
        )
        return self.session.exec(stmt).all()

    def set_state(self, student_id: int, unit_id: int, exercise: int, state: int) -> models.ExerciseStudentState:
        row = self.session.get(models.ExerciseStudentState, (student_id, unit_id, exercise))
        if row is None:
            row = models.ExerciseStudentState(student_id=student_id, unit_id=unit_id, exercise=exercise)
        row.state = state
        self.session.add(row)
        self.session.commit()
        return row

    def clear_state(self, student_id: int, unit_id: int, exercise: int) -> None:
        row = self.session.get(models.ExerciseStudentState, (student_id, unit_id, exercise))
        if row is not None:
            self.session.delete(row)
            self.session.commit()


class CorrectionRepository:
    """Read side of `ExerciseCorrection`; writes go through the store."""
    def __init__(self, session: Session):
        self.session = session

    def list_for_unit(self, unit_id: int) -> List[models.ExerciseCorrection]:
        stmt = (
            select(models.ExerciseCorrection)
            .where(models.ExerciseCorrection.unit_id == unit_id)
            .order_by(models.ExerciseCorrection.id)
        )
        return self.session.exec(stmt).all()
