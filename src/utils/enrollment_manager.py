"""Enrollment tracking for learners."""

import logging
from typing import List

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.exceptions import ConflictError, ForbiddenError
from models.course import CourseModel
from models.enrollment import EnrollmentModel
from schemas.user import Identity
from utils.course_manager import CourseNotFoundError, now_iso, role_of

logger = logging.getLogger(__name__)


class AlreadyEnrolledError(ConflictError):
    """Exception raised when a learner enrolls in the same course twice."""

    def __init__(self, course_id: str):
        self.course_id = course_id
        super().__init__("Already enrolled in this course")


class EnrollmentManager:
    """Manages learner enrollments using SQLAlchemy."""

    def __init__(self, db: Session):
        self.db = db

    def enroll(self, identity: Identity, course_id: str) -> EnrollmentModel:
        """Enroll the calling learner in a course.

        Raises:
            ForbiddenError: If the caller is not a learner.
            CourseNotFoundError: If the course does not exist.
            AlreadyEnrolledError: If the learner is already enrolled.
        """
        if role_of(identity) != "learner":
            raise ForbiddenError("Only learners can enroll in courses")

        course = (
            self.db.query(CourseModel).filter(CourseModel.course_id == course_id).first()
        )
        if course is None:
            raise CourseNotFoundError(course_id)

        if self.is_enrolled(identity.user_id, course_id):
            raise AlreadyEnrolledError(course_id)

        enrollment = EnrollmentModel(
            user_id=identity.user_id, course_id=course_id, enrolled_at=now_iso()
        )
        try:
            self.db.add(enrollment)
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise AlreadyEnrolledError(course_id) from e
        self.db.refresh(enrollment)
        logger.info("User %s enrolled in course %s", identity.user_id, course_id)
        return enrollment

    def is_enrolled(self, user_id: str, course_id: str) -> bool:
        return (
            self.db.query(EnrollmentModel.id)
            .filter(
                EnrollmentModel.user_id == user_id,
                EnrollmentModel.course_id == course_id,
            )
            .first()
            is not None
        )

    def list_enrollments(self, user_id: str) -> List[EnrollmentModel]:
        return (
            self.db.query(EnrollmentModel)
            .filter(EnrollmentModel.user_id == user_id)
            .order_by(EnrollmentModel.id)
            .all()
        )

    def list_enrolled_courses(self, user_id: str) -> List[dict]:
        """Return the enrolled courses in enrollment order.

        Each entry carries the course id, title, description, category and
        trainer id. Enrollments whose course no longer exists are skipped.
        """
        enrollments = self.list_enrollments(user_id)
        course_ids = [e.course_id for e in enrollments]
        if not course_ids:
            return []
        courses = {
            c.course_id: c
            for c in self.db.query(CourseModel).filter(CourseModel.course_id.in_(course_ids))
        }
        result = []
        for course_id in course_ids:
            course = courses.get(course_id)
            if course is None:
                continue
            result.append(
                {
                    "id": course.course_id,
                    "title": course.title,
                    "description": course.description,
                    "category": course.category,
                    "trainer": course.trainer_id,
                }
            )
        return result
