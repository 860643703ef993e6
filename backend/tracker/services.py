"""Business logic services used by HTTP controllers.

This module holds small service classes that coordinate repositories
and the correction store. Services validate their inputs, raise the
domain errors below and leave the HTTP mapping to `main.py`.
"""

import logging
from typing import List, Optional
from sqlmodel import Session

from . import models, repositories
from .schemas import ExerciseOut, ExerciseStudentStateIn, StudentOut, UnitOut
from .storage import CorrectionStore, StoredCorrection
from .tokens import check_password, issue_token

logger = logging.getLogger("tracker.services")


class NotFound(LookupError):
    """A unit or exercise coordinate does not exist."""


class UnitNotFound(NotFound):
    pass


class ExerciseNotFound(NotFound):
    pass


class BadRequest(ValueError):
    """The request body could not be used."""


class MalformedBody(BadRequest):
    pass


class BodyTooLarge(BadRequest):
    pass


class UnknownStudent(LookupError):
    """A valid token names a student that no longer exists."""


def _student_out(student: models.Student) -> StudentOut:
    return StudentOut(
        id=student.id,
        username=student.username,
        full_name=student.full_name,
        in_group_even=student.in_group_even,
    )


def check_coordinates(session: Session, unit_id: int, exercise_index: int) -> None:
    """Raise `UnitNotFound`/`ExerciseNotFound` unless the exercise exists."""
    count = repositories.UnitRepository(session).exercise_count(unit_id)
    if count is None:
        raise UnitNotFound(f"unit {unit_id} does not exist")
    if exercise_index < 0 or exercise_index >= count:
        raise ExerciseNotFound(f"exercise {exercise_index} does not exist in unit {unit_id}")


class AuthService:
    """Log in with the shared class password."""
    def __init__(self, session: Session, password: str, secret: bytes):
        self.session = session
        self.password = password
        self.secret = secret
        self.student_repo = repositories.StudentRepository(session)

    def log_in(self, username: str, password: str) -> Optional[str]:
        """Return a bearer token for `username`, or `None` on bad credentials.

        Every student shares the same password; the username only selects
        whose token is issued.
        """
        student = self.student_repo.get_by_username(username)
        if student is None:
            return None
        if not check_password(password, self.password):
            return None
        return issue_token(student.id, self.secret)


class ExerciseService:
    """Units, exercise boards and the marks students and teachers set."""
    def __init__(self, session: Session):
        self.session = session
        self.student_repo = repositories.StudentRepository(session)
        self.unit_repo = repositories.UnitRepository(session)
        self.exercise_repo = repositories.ExerciseRepository(session)
        self.state_repo = repositories.ExerciseStateRepository(session)
        self.correction_repo = repositories.CorrectionRepository(session)

    def _student(self, student_id: int) -> models.Student:
        student = self.student_repo.get(student_id)
        if student is None:
            raise UnknownStudent(f"student {student_id} does not exist")
        return student

    def me(self, student_id: int) -> StudentOut:
        return _student_out(self._student(student_id))

    def list_units(self) -> List[UnitOut]:
        return [
            UnitOut(
                id=u.id,
                name=u.name,
                exercise_count=u.exercise_count,
                deadline_group_even=u.deadline_group_even,
                deadline_group_odd=u.deadline_group_odd,
            )
            for u in self.unit_repo.list_all()
        ]

    def unit_exercises(self, unit_id: int) -> List[ExerciseOut]:
        """Build the board of a unit: one entry per exercise index.

        Rows pointing past `exercise_count` (left over after a unit was
        shortened) are skipped.
        """
        count = self.unit_repo.exercise_count(unit_id)
        if count is None:
            raise UnitNotFound(f"unit {unit_id} does not exist")
        board = [ExerciseOut() for _ in range(count)]

        def slot(index: int) -> Optional[ExerciseOut]:
            if 0 <= index < count:
                return board[index]
            logger.warning("unit %s has data for out of range exercise %s", unit_id, index)
            return None

        for state, student in self.state_repo.list_for_unit(unit_id):
            entry = slot(state.exercise)
            if entry is None:
                continue
            if state.state == models.STATE_PRESENTED:
                entry.presented_by.append(_student_out(student))
            else:
                entry.reserved_by.append(_student_out(student))

        for mark in self.exercise_repo.list_for_unit(unit_id):
            entry = slot(mark.index_)
            if entry is None:
                continue
            entry.blocked = mark.blocked
            entry.teacher_corrected_for_group_even = mark.teacher_corrected_for_group_even
            entry.teacher_corrected_for_group_odd = mark.teacher_corrected_for_group_odd

        for correction in self.correction_repo.list_for_unit(unit_id):
            entry = slot(correction.unit_exercise)
            if entry is not None:
                entry.correction_images.append(correction.picture_digest)
        return board

    def change_state(self, student_id: int, unit_id: int, exercise_index: int, new_state: ExerciseStudentStateIn) -> None:
        """Reserve, present or release an exercise for the student.

        Releasing (`none`) never fails, even for unknown coordinates.
        """
        if new_state == ExerciseStudentStateIn.none:
            self.state_repo.clear_state(student_id, unit_id, exercise_index)
            return
        check_coordinates(self.session, unit_id, exercise_index)
        state = models.STATE_PRESENTED if new_state == ExerciseStudentStateIn.presented else models.STATE_RESERVED
        self.state_repo.set_state(student_id, unit_id, exercise_index, state)

    def mark_blocked(self, unit_id: int, exercise_index: int, blocked: bool) -> None:
        check_coordinates(self.session, unit_id, exercise_index)
        self.exercise_repo.set_flag(unit_id, exercise_index, 'blocked', blocked)

    def mark_corrected(self, student_id: int, unit_id: int, exercise_index: int, corrected: bool) -> None:
        """Record that the teacher corrected the exercise for the caller's group."""
        student = self._student(student_id)
        check_coordinates(self.session, unit_id, exercise_index)
        field = 'teacher_corrected_for_group_even' if student.in_group_even else 'teacher_corrected_for_group_odd'
        self.exercise_repo.set_flag(unit_id, exercise_index, field, corrected)


class CorrectionService:
    """Relational side of correction pictures.

    The image work happens in the controller between `check_coordinates`
    and `store_picture`, outside of any database transaction.
    """
    def __init__(self, session: Session, store: CorrectionStore):
        self.session = session
        self.store = store

    def check_coordinates(self, unit_id: int, exercise_index: int) -> None:
        """Validate the coordinate, then hand the connection back to the pool.

        The body read and the normalization that follow may take seconds;
        no connection is held meanwhile.
        """
        try:
            check_coordinates(self.session, unit_id, exercise_index)
        finally:
            self.session.rollback()

    def store_picture(self, unit_id: int, exercise_index: int, student_id: int, png: bytes) -> StoredCorrection:
        """Reference the normalized picture from the exercise."""
        stored = self.store.put_if_absent(self.session, unit_id, exercise_index, student_id, png)
        logger.info(
            "correction %s stored for unit %s exercise %s by student %s (new blob: %s)",
            stored.digest, unit_id, exercise_index, student_id, stored.created,
        )
        return stored

    def delete(self, unit_id: int, exercise_index: int, digest: str) -> int:
        removed = self.store.delete_reference(self.session, unit_id, exercise_index, digest)
        if removed:
            logger.info("correction %s removed from unit %s exercise %s", digest, unit_id, exercise_index)
        return removed
