from sqlalchemy import Column, Integer, JSON, String, Text
from .base import Base


class ChapterModel(Base):
    __tablename__ = "chapters"

    chapter_id = Column(String, primary_key=True, index=True)
    course_id = Column(String, index=True, nullable=False)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=False, default="")
    order = Column(Integer, nullable=False, default=0)
    lesson_ids = Column(JSON, nullable=False, default=list)
    created_at = Column(String, nullable=False)
    updated_at = Column(String, nullable=False)
