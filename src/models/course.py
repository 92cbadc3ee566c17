"""Course database model.

A course row carries its own ordered chapter/lesson id lists; the chapter and
lesson rows point back at it. Both sides are maintained by ``CourseManager``.
"""

from sqlalchemy import Boolean, Column, Float, JSON, String, Text
from .base import Base


class CourseModel(Base):
    """Course database model."""

    __tablename__ = "courses"

    course_id = Column(String, primary_key=True, index=True)
    trainer_id = Column(String, index=True, nullable=False)

    title = Column(String, nullable=False)
    description = Column(Text, nullable=False)
    category = Column(String, nullable=False, index=True)
    price = Column(Float, nullable=False, default=0)
    duration = Column(String, nullable=True)
    course_level = Column(String, nullable=False, default="Beginner")
    prerequisites = Column(JSON, nullable=False, default=list)
    certification_available = Column(Boolean, nullable=False, default=False)

    language = Column(String, nullable=False, default="English")
    board = Column(String, nullable=True)
    class_level = Column(String, nullable=True)
    subject = Column(String, nullable=True)
    target_audience = Column(String, nullable=True)

    thumbnail = Column(String, nullable=True)
    syllabus = Column(JSON, nullable=False, default=list)  # [{"title", "description"}]

    # Course-level documents
    syllabus_pdf = Column(String, nullable=True)
    notes_pdf = Column(String, nullable=True)
    previous_papers_pdf = Column(String, nullable=True)
    course_notes = Column(JSON, nullable=False, default=list)  # [{"id", "title", "url"}]
    previous_papers = Column(JSON, nullable=False, default=list)  # [{"id", "title", "url"}]

    chapter_ids = Column(JSON, nullable=False, default=list)
    lesson_ids = Column(JSON, nullable=False, default=list)

    # Approval workflow: 'pending', 'approved' or 'rejected'
    status = Column(String, nullable=False, default="pending", index=True)
    approved_by = Column(String, nullable=True)
    approval_date = Column(String, nullable=True)  # ISO format string
    rejection_reason = Column(String, nullable=True)

    created_at = Column(String, nullable=False)  # ISO format string
    updated_at = Column(String, nullable=False)  # ISO format string
