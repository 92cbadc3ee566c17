"""Database models package.

Importing this package registers every model with ``Base.metadata``.
"""

from .base import Base
from .user import UserModel
from .course import CourseModel
from .chapter import ChapterModel
from .lesson import LessonModel
from .enrollment import EnrollmentModel

__all__ = [
    "Base",
    "UserModel",
    "CourseModel",
    "ChapterModel",
    "LessonModel",
    "EnrollmentModel",
]
