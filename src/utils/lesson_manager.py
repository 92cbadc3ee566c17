"""Single-lesson operations on an existing course aggregate.

Every mutation keeps the chapter's and the course's lesson id lists in step
with the lesson rows. Replaced or orphaned media is deleted after commit.
"""

import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from core.exceptions import ForbiddenError, ValidationError
from models.chapter import ChapterModel
from models.course import CourseModel
from models.lesson import LessonModel
from schemas.course import VIDEO_TYPE_UPLOAD, LessonInput
from schemas.user import Identity
from utils.course_manager import (
    ChapterNotFoundError,
    CourseManager,
    PendingDeletion,
    can_modify,
    can_view,
    lesson_media,
    new_id,
    now_iso,
)
from utils.media_store import RESOURCE_RAW, RESOURCE_VIDEO
from utils.uploads import UploadedFiles

logger = logging.getLogger(__name__)


class LessonManager:
    """Creates, updates and deletes individual lessons of a course."""

    def __init__(self, db: Session, course_manager: CourseManager):
        self.db = db
        self.courses = course_manager

    def list_lessons(self, identity: Optional[Identity], course_id: str) -> List[LessonModel]:
        course = self.courses.get_course_model(course_id)
        if not can_view(identity, course):
            raise ForbiddenError("This course is not available")
        return self.courses.list_lessons(course_id)

    def owned_course(self, identity: Identity, course_id: str) -> CourseModel:
        course = self.courses.get_course_model(course_id)
        if not can_modify(identity, course):
            raise ForbiddenError("Unauthorized to modify lessons of this course")
        return course

    def owned_lesson(self, identity: Identity, lesson_id: str) -> LessonModel:
        lesson = self.courses.get_lesson_model(lesson_id)
        self.owned_course(identity, lesson.course_id)
        return lesson

    def create_lesson(
        self,
        identity: Identity,
        course_id: str,
        chapter_id: Optional[str],
        lesson_in: LessonInput,
        uploads: UploadedFiles,
    ) -> LessonModel:
        """Append a lesson to a chapter of the course.

        Raises:
            CourseNotFoundError: If the course does not exist.
            ForbiddenError: If the caller may not modify the course.
            ValidationError: If the chapter id or title is missing.
            ChapterNotFoundError: If the chapter is not part of the course.
        """
        try:
            course = self.owned_course(identity, course_id)
            if not chapter_id:
                raise ValidationError("chapterId is required")
            if not lesson_in.title:
                raise ValidationError("Lesson title is required")
            chapter = self._chapter(chapter_id, course_id)
        except Exception:
            self.courses.media_store.discard(uploads.all())
            raise

        video_url = None
        if lesson_in.video_type == VIDEO_TYPE_UPLOAD:
            video_url = uploads.first_url("video")
        else:
            video_url = lesson_in.video_url
        notes_url = uploads.first_url("notes") or lesson_in.notes_url

        now = now_iso()
        lesson = LessonModel(
            lesson_id=new_id(),
            chapter_id=chapter.chapter_id,
            course_id=course_id,
            title=lesson_in.title,
            description=lesson_in.description or "",
            video_url=video_url,
            video_type=lesson_in.video_type,
            notes_url=notes_url,
            duration=lesson_in.duration or "",
            order=(
                lesson_in.order if lesson_in.order is not None else len(chapter.lesson_ids or [])
            ),
            is_free_preview=bool(lesson_in.is_free_preview),
            unlocked=bool(lesson_in.unlocked),
            subtitles=lesson_in.subtitles,
            created_at=now,
            updated_at=now,
        )
        self.db.add(lesson)
        chapter.lesson_ids = list(chapter.lesson_ids or []) + [lesson.lesson_id]
        course.lesson_ids = list(course.lesson_ids or []) + [lesson.lesson_id]
        course.updated_at = now
        self.db.commit()
        self.db.refresh(lesson)
        logger.info("Created lesson %s in course %s", lesson.lesson_id, course_id)
        return lesson

    def update_lesson(
        self,
        identity: Identity,
        lesson_id: str,
        lesson_in: LessonInput,
        uploads: UploadedFiles,
    ) -> LessonModel:
        """Update a lesson; replaced media is deleted after commit."""
        pending: List[PendingDeletion] = []
        try:
            lesson = self.owned_lesson(identity, lesson_id)
            supplied = lesson_in.model_fields_set

            if "video_type" in supplied:
                lesson.video_type = lesson_in.video_type
            uploaded_video = uploads.first_url("video")
            new_video_url = lesson.video_url
            if lesson.video_type == VIDEO_TYPE_UPLOAD:
                if uploaded_video:
                    new_video_url = uploaded_video
            elif lesson_in.video_url:
                new_video_url = lesson_in.video_url
            if lesson.video_url and lesson.video_url != new_video_url:
                pending.append((lesson.video_url, RESOURCE_VIDEO))
            lesson.video_url = new_video_url

            new_notes_url = uploads.first_url("notes") or lesson_in.notes_url
            if new_notes_url and new_notes_url != lesson.notes_url:
                if lesson.notes_url:
                    pending.append((lesson.notes_url, RESOURCE_RAW))
                lesson.notes_url = new_notes_url

            for attr in ("title", "description", "duration", "order", "subtitles"):
                value = getattr(lesson_in, attr)
                if value is not None:
                    setattr(lesson, attr, value)
            if lesson_in.is_free_preview is not None:
                lesson.is_free_preview = lesson_in.is_free_preview
            if lesson_in.unlocked is not None:
                lesson.unlocked = lesson_in.unlocked
            lesson.updated_at = now_iso()
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info("Updated lesson %s", lesson_id)
        self.courses.delete_media(pending)
        self.db.refresh(lesson)
        return lesson

    def delete_lesson(self, identity: Identity, lesson_id: str) -> None:
        """Delete a lesson and unlink it from its chapter and course."""
        lesson = self.courses.get_lesson_model(lesson_id)
        course = self.owned_course(identity, lesson.course_id)

        pending = lesson_media(lesson)

        chapter = (
            self.db.query(ChapterModel)
            .filter(ChapterModel.chapter_id == lesson.chapter_id)
            .first()
        )
        if chapter is not None:
            chapter.lesson_ids = [i for i in (chapter.lesson_ids or []) if i != lesson_id]
        course.lesson_ids = [i for i in (course.lesson_ids or []) if i != lesson_id]
        course.updated_at = now_iso()
        self.db.delete(lesson)
        self.db.commit()
        logger.info("Deleted lesson %s from course %s", lesson_id, course.course_id)
        self.courses.delete_media(pending)

    def _chapter(self, chapter_id: str, course_id: str) -> ChapterModel:
        chapter = (
            self.db.query(ChapterModel)
            .filter(ChapterModel.chapter_id == chapter_id, ChapterModel.course_id == course_id)
            .first()
        )
        if chapter is None:
            raise ChapterNotFoundError(chapter_id)
        return chapter
