from sqlalchemy import Boolean, Column, Integer, String, Text
from .base import Base


class LessonModel(Base):
    __tablename__ = "lessons"

    lesson_id = Column(String, primary_key=True, index=True)
    chapter_id = Column(String, index=True, nullable=False)
    course_id = Column(String, index=True, nullable=False)  # Keep for easy querying
    title = Column(String, nullable=False)
    description = Column(Text, nullable=False, default="")
    video_url = Column(String, nullable=True)
    video_type = Column(String, nullable=False, default="upload")  # 'upload' or 'external'
    notes_url = Column(String, nullable=True)
    duration = Column(String, nullable=False, default="")
    order = Column(Integer, nullable=False, default=0)
    is_free_preview = Column(Boolean, nullable=False, default=False)
    unlocked = Column(Boolean, nullable=False, default=False)
    subtitles = Column(String, nullable=True)
    created_at = Column(String, nullable=False)
    updated_at = Column(String, nullable=False)
