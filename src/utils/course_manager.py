"""Course aggregate management.

A course aggregate is a course row together with its ordered chapters and
each chapter's ordered lessons. ``CourseManager`` creates, updates and
deletes the aggregate as a unit, runs the approval workflow and reconciles
uploaded media against the references already stored.

Media replaced during an update is never deleted inline: old references are
queued while the transaction runs and removed from the media store only
after the commit succeeded. A rolled back update deletes nothing.
"""

import logging
import secrets
from datetime import datetime
from typing import Dict, List, Optional, Tuple

import pytz
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from core.exceptions import ForbiddenError, NotFoundError, ValidationError
from models.chapter import ChapterModel
from models.course import CourseModel
from models.lesson import LessonModel
from models.user import UserModel
from schemas.course import (
    VIDEO_TYPE_UPLOAD,
    ChapterInput,
    CourseForm,
    LessonInput,
    MediaMapping,
    SyllabusItem,
)
from schemas.user import Identity
from utils.media_store import (
    RESOURCE_IMAGE,
    RESOURCE_RAW,
    RESOURCE_VIDEO,
    MediaStore,
    StoredFile,
)
from utils.uploads import UploadedFiles

logger = logging.getLogger(__name__)

STATUS_PENDING = "pending"
STATUS_APPROVED = "approved"
STATUS_REJECTED = "rejected"

COURSE_LEVELS = ("Beginner", "Intermediate", "Advanced")

# (form field, column) pairs for single course-level PDFs
COURSE_DOCUMENT_FIELDS = (
    ("courseSyllabusPdf", "syllabus_pdf"),
    ("courseNotesPdf", "notes_pdf"),
    ("coursePreviousPapersPdf", "previous_papers_pdf"),
)

# Queued media deletion: (url, resource type hint)
PendingDeletion = Tuple[str, str]


class CourseNotFoundError(NotFoundError):
    """Exception raised when a course is not found."""

    def __init__(self, course_id: str):
        self.course_id = course_id
        super().__init__("Course not found")


class ChapterNotFoundError(NotFoundError):
    """Exception raised when a chapter is not found in a course."""

    def __init__(self, chapter_id: str):
        self.chapter_id = chapter_id
        super().__init__(f"Chapter '{chapter_id}' not found")


class LessonNotFoundError(NotFoundError):
    """Exception raised when a lesson is not found."""

    def __init__(self, lesson_id: str):
        self.lesson_id = lesson_id
        super().__init__(f"Lesson '{lesson_id}' not found")


def new_id() -> str:
    return secrets.token_hex(8)


def now_iso() -> str:
    return datetime.now(pytz.utc).isoformat()


def role_of(identity: Optional[Identity]) -> str:
    return (identity.role if identity else "").lower()


def can_modify(identity: Optional[Identity], course: CourseModel) -> bool:
    """Admins may modify any course; trainers only their own."""
    role = role_of(identity)
    if role == "admin":
        return True
    return role == "trainer" and course.trainer_id == identity.user_id


def can_view(identity: Optional[Identity], course: CourseModel) -> bool:
    if course.status == STATUS_APPROVED:
        return True
    if identity is None:
        return False
    return role_of(identity) == "admin" or course.trainer_id == identity.user_id


def lesson_media(lesson: LessonModel) -> List[PendingDeletion]:
    """Media owned by a lesson; external video links are not ours to delete."""
    pending = []
    if lesson.video_url and lesson.video_type == VIDEO_TYPE_UPLOAD:
        pending.append((lesson.video_url, RESOURCE_VIDEO))
    if lesson.notes_url:
        pending.append((lesson.notes_url, RESOURCE_RAW))
    return pending


class MediaAssignment:
    """Hands uploaded files of one field to lesson positions.

    With an explicit mapping list, the n-th file belongs to the position named
    by the n-th mapping. Without one, files are consumed in request order.
    Files no lesson took are reported by ``unused()``.
    """

    def __init__(self, files: List[StoredFile], mappings: List[MediaMapping]):
        self._files = files
        self._sequential = not mappings
        self._next = 0
        self._taken: List[StoredFile] = []
        self._by_position: Dict[Tuple[int, int], StoredFile] = {}
        for index, mapping in enumerate(mappings):
            if index < len(files):
                key = (mapping.chapter_index, mapping.lesson_index)
                self._by_position[key] = files[index]

    def take(self, chapter_index: int, lesson_index: int) -> Optional[StoredFile]:
        stored = None
        if not self._sequential:
            stored = self._by_position.pop((chapter_index, lesson_index), None)
        elif self._next < len(self._files):
            stored = self._files[self._next]
            self._next += 1
        if stored is not None:
            self._taken.append(stored)
        return stored

    def unused(self) -> List[StoredFile]:
        return [f for f in self._files if not any(f is t for t in self._taken)]


def _parse_price(raw: str) -> float:
    try:
        price = float(raw)
    except (TypeError, ValueError):
        raise ValidationError("Price must be a number")
    if price < 0:
        raise ValidationError("Price cannot be negative")
    return price


def _parse_level(raw: str) -> str:
    for level in COURSE_LEVELS:
        if raw.strip().lower() == level.lower():
            return level
    raise ValidationError(
        f"Invalid course level: {raw}. Must be one of {', '.join(COURSE_LEVELS)}."
    )


def _validate_syllabus(items: List[SyllabusItem]) -> List[dict]:
    syllabus = []
    for item in items:
        if not item.title or not item.description:
            raise ValidationError(
                "Invalid syllabus format: Each syllabus item must have a title and description."
            )
        syllabus.append({"title": item.title, "description": item.description})
    return syllabus


def _titled_entries(
    files: List[StoredFile], meta: list, fallback: str, start: int
) -> List[dict]:
    """Build ``{id, title, url}`` entries for titled course notes or papers."""
    entries = []
    for index, stored in enumerate(files):
        item = meta[index] if index < len(meta) else None
        if isinstance(item, dict):
            title = item.get("title")
        else:
            title = item
        entries.append(
            {
                "id": secrets.token_hex(6),
                "title": str(title) if title else f"{fallback} {start + index + 1}",
                "url": stored.url,
            }
        )
    return entries


class CourseManager:
    """Manages course aggregates, the approval workflow and course media."""

    def __init__(self, db: Session, media_store: MediaStore):
        self.db = db
        self.media_store = media_store

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create_course(
        self, identity: Identity, form: CourseForm, uploads: UploadedFiles
    ) -> CourseModel:
        """Create a pending course with its chapters and lessons.

        On authorization or validation failure every file uploaded for this
        request is discarded before the error propagates. Once the course
        row is committed it stays, even if a chapter or lesson fails later.

        Args:
            identity: Caller identity; must belong to a trainer.
            form: Normalised course request.
            uploads: Files uploaded with the request.

        Returns:
            The created course.

        Raises:
            ForbiddenError: If the caller is not a trainer.
            ValidationError: If required fields or syllabus entries are missing.
        """
        try:
            trainer = (
                self.db.query(UserModel)
                .filter(UserModel.user_id == identity.user_id)
                .first()
            )
            if trainer is None or trainer.role != "trainer":
                raise ForbiddenError("Only trainers can create courses")

            thumbnail = uploads.first_url("thumbnail")
            required = {
                "title": form.title,
                "description": form.description,
                "category": form.category,
                "price": form.price,
                "duration": form.duration,
                "courseLevel": form.course_level,
                "thumbnail": thumbnail,
            }
            missing = [name for name, value in required.items() if not value]
            if missing:
                raise ValidationError(f"Missing required fields: {', '.join(missing)}")

            price = _parse_price(form.price)
            level = _parse_level(form.course_level)
            syllabus = _validate_syllabus(form.syllabus or [])
        except (ForbiddenError, ValidationError):
            self.media_store.discard(uploads.all())
            raise

        now = now_iso()
        course = CourseModel(
            course_id=new_id(),
            trainer_id=trainer.user_id,
            title=form.title,
            description=form.description,
            category=form.category,
            price=price,
            duration=form.duration,
            course_level=level,
            prerequisites=form.prerequisites or [],
            certification_available=bool(form.certification_available),
            language=form.language or "English",
            board=form.board,
            class_level=form.class_level,
            subject=form.subject,
            target_audience=form.target_audience,
            thumbnail=thumbnail,
            syllabus=syllabus,
            syllabus_pdf=uploads.first_url("courseSyllabusPdf"),
            notes_pdf=uploads.first_url("courseNotesPdf"),
            previous_papers_pdf=uploads.first_url("coursePreviousPapersPdf"),
            course_notes=_titled_entries(
                uploads.get("courseNotes"), form.course_notes_meta, "Note", 0
            ),
            previous_papers=_titled_entries(
                uploads.get("previousPapers"), form.previous_papers_meta, "Paper", 0
            ),
            chapter_ids=[],
            lesson_ids=[],
            status=STATUS_PENDING,
            created_at=now,
            updated_at=now,
        )
        self.db.add(course)
        self.db.commit()
        logger.info("Created course %s by trainer %s", course.course_id, trainer.user_id)

        leftovers = self._create_chapters(course, form, uploads)
        if leftovers:
            logger.info(
                "Discarding %d lesson upload(s) no lesson of course %s took",
                len(leftovers),
                course.course_id,
            )
            self.media_store.discard(leftovers)
        self.db.refresh(course)
        return course

    def _create_chapters(
        self, course: CourseModel, form: CourseForm, uploads: UploadedFiles
    ) -> List[StoredFile]:
        """Persist chapters and lessons one chapter per commit.

        Returns the lesson uploads no lesson took.
        """
        videos = MediaAssignment(uploads.get("lessonVideos"), form.lesson_video_mappings)
        notes = MediaAssignment(uploads.get("lessonNotes"), form.lesson_note_mappings)
        try:
            for chapter_index, chapter_in in enumerate(form.chapters or []):
                chapter = self._new_chapter(course.course_id, chapter_in, chapter_index)
                self.db.add(chapter)
                lesson_ids = []
                for lesson_index, lesson_in in enumerate(chapter_in.lessons):
                    lesson = self._new_lesson(
                        course.course_id,
                        chapter.chapter_id,
                        lesson_in,
                        chapter_index,
                        lesson_index,
                        videos,
                        notes,
                        order=lesson_index,
                    )
                    self.db.add(lesson)
                    lesson_ids.append(lesson.lesson_id)
                chapter.lesson_ids = lesson_ids
                course.chapter_ids = list(course.chapter_ids or []) + [chapter.chapter_id]
                course.lesson_ids = list(course.lesson_ids or []) + lesson_ids
                self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(
                "Failed to create chapters/lessons during course creation of %s: %s",
                course.course_id,
                e,
            )
        return videos.unused() + notes.unused()

    def _new_chapter(
        self, course_id: str, chapter_in: ChapterInput, index: int, order: Optional[int] = None
    ) -> ChapterModel:
        now = now_iso()
        return ChapterModel(
            chapter_id=new_id(),
            course_id=course_id,
            title=chapter_in.title or f"Chapter {index + 1}",
            description=chapter_in.description or "",
            order=index if order is None else order,
            lesson_ids=[],
            created_at=now,
            updated_at=now,
        )

    def _new_lesson(
        self,
        course_id: str,
        chapter_id: str,
        lesson_in: LessonInput,
        chapter_index: int,
        lesson_index: int,
        videos: MediaAssignment,
        notes: MediaAssignment,
        order: int,
    ) -> LessonModel:
        video_url = None
        if lesson_in.video_type == VIDEO_TYPE_UPLOAD:
            stored = videos.take(chapter_index, lesson_index)
            video_url = stored.url if stored else None
        elif lesson_in.video_url:
            video_url = lesson_in.video_url

        notes_url = None
        stored_notes = notes.take(chapter_index, lesson_index) if lesson_in.has_notes else None
        if stored_notes:
            notes_url = stored_notes.url
        elif lesson_in.notes_url:
            notes_url = lesson_in.notes_url

        now = now_iso()
        return LessonModel(
            lesson_id=new_id(),
            chapter_id=chapter_id,
            course_id=course_id,
            title=lesson_in.title or f"Lesson {lesson_index + 1}",
            description=lesson_in.description or "",
            video_url=video_url,
            video_type=lesson_in.video_type,
            notes_url=notes_url,
            duration=lesson_in.duration or "",
            order=order,
            is_free_preview=bool(lesson_in.is_free_preview),
            unlocked=bool(lesson_in.unlocked),
            subtitles=lesson_in.subtitles,
            created_at=now,
            updated_at=now,
        )

    # ------------------------------------------------------------------
    # Approval workflow
    # ------------------------------------------------------------------

    def approve_or_reject(
        self,
        identity: Identity,
        course_id: str,
        status: Optional[str],
        rejection_reason: Optional[str] = None,
    ) -> CourseModel:
        """Record an admin's approval decision.

        Raises:
            ForbiddenError: If the caller is not an admin.
            ValidationError: If the status is invalid or a rejection has no reason.
            CourseNotFoundError: If the course does not exist.
        """
        if role_of(identity) != "admin":
            raise ForbiddenError("Only admins can approve or reject courses")
        if status not in (STATUS_APPROVED, STATUS_REJECTED):
            raise ValidationError("Invalid status value")

        course = self.get_course_model(course_id)
        if status == STATUS_REJECTED and not (rejection_reason or "").strip():
            raise ValidationError("Rejection reason is required")

        course.status = status
        course.approved_by = identity.user_id
        course.approval_date = now_iso()
        course.rejection_reason = rejection_reason if status == STATUS_REJECTED else None
        course.updated_at = now_iso()
        self.db.commit()
        self.db.refresh(course)
        logger.info("Course %s %s by admin %s", course_id, status, identity.user_id)
        return course

    # ------------------------------------------------------------------
    # Update
    # ------------------------------------------------------------------

    def update_course(
        self,
        identity: Identity,
        course_id: str,
        form: CourseForm,
        uploads: UploadedFiles,
    ) -> CourseModel:
        """Update a course aggregate in a single transaction.

        Only supplied values overwrite stored ones. Replaced media is queued
        and deleted after the commit; if anything fails before the commit the
        transaction is rolled back and no media is deleted.

        Raises:
            CourseNotFoundError: If the course does not exist.
            ForbiddenError: If the caller is neither an admin nor the owner.
            ValidationError: On invalid field values.
            ChapterNotFoundError: If a chapter id does not belong to the course.
            LessonNotFoundError: If a lesson id does not belong to the course.
        """
        pending: List[PendingDeletion] = []
        try:
            course = self.get_modifiable_course(identity, course_id)

            self._apply_field_updates(course, form, uploads, pending)
            self._apply_document_updates(course, form, uploads, pending)
            if form.syllabus is not None:
                course.syllabus = _validate_syllabus(form.syllabus)
            if form.chapters is not None:
                self._sync_chapters(course, form, uploads, pending)
            else:
                # Lesson files sent without chapters have nowhere to go
                pending.extend(
                    (f.url, f.resource_type)
                    for f in uploads.get("lessonVideos") + uploads.get("lessonNotes")
                )

            course.updated_at = now_iso()
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            "Updated course %s (%d media deletions queued)", course_id, len(pending)
        )
        self.delete_media(pending)
        self.db.refresh(course)
        return course

    def _apply_field_updates(
        self,
        course: CourseModel,
        form: CourseForm,
        uploads: UploadedFiles,
        pending: List[PendingDeletion],
    ) -> None:
        for attr in (
            "title",
            "description",
            "category",
            "duration",
            "language",
            "board",
            "class_level",
            "subject",
            "target_audience",
        ):
            value = getattr(form, attr)
            if value:
                setattr(course, attr, value)
        if form.price is not None:
            course.price = _parse_price(form.price)
        if form.course_level:
            course.course_level = _parse_level(form.course_level)
        if form.certification_available is not None:
            course.certification_available = form.certification_available
        if form.prerequisites is not None:
            course.prerequisites = form.prerequisites

        uploaded_thumbnail = uploads.first_url("thumbnail")
        if uploaded_thumbnail:
            if course.thumbnail and course.thumbnail != uploaded_thumbnail:
                pending.append((course.thumbnail, RESOURCE_IMAGE))
            course.thumbnail = uploaded_thumbnail
        elif form.thumbnail:
            course.thumbnail = form.thumbnail

    def _apply_document_updates(
        self,
        course: CourseModel,
        form: CourseForm,
        uploads: UploadedFiles,
        pending: List[PendingDeletion],
    ) -> None:
        for field_name, attr in COURSE_DOCUMENT_FIELDS:
            uploaded = uploads.first_url(field_name)
            if not uploaded:
                continue
            existing = getattr(course, attr)
            if existing and existing != uploaded:
                pending.append((existing, RESOURCE_RAW))
            setattr(course, attr, uploaded)

        course.course_notes = self._merge_titled(
            course.course_notes,
            form.removed_course_note_ids,
            uploads.get("courseNotes"),
            form.course_notes_meta,
            "Note",
            pending,
        )
        course.previous_papers = self._merge_titled(
            course.previous_papers,
            form.removed_previous_paper_ids,
            uploads.get("previousPapers"),
            form.previous_papers_meta,
            "Paper",
            pending,
        )

    @staticmethod
    def _merge_titled(
        existing: Optional[List[dict]],
        removed_ids: List[str],
        files: List[StoredFile],
        meta: list,
        fallback: str,
        pending: List[PendingDeletion],
    ) -> List[dict]:
        removed = set(removed_ids)
        kept = []
        for entry in existing or []:
            if entry.get("id") in removed:
                if entry.get("url"):
                    pending.append((entry["url"], RESOURCE_RAW))
                continue
            kept.append(entry)
        return kept + _titled_entries(files, meta, fallback, len(kept))

    def _sync_chapters(
        self,
        course: CourseModel,
        form: CourseForm,
        uploads: UploadedFiles,
        pending: List[PendingDeletion],
    ) -> None:
        videos = MediaAssignment(uploads.get("lessonVideos"), form.lesson_video_mappings)
        notes = MediaAssignment(uploads.get("lessonNotes"), form.lesson_note_mappings)
        chapter_ids = []
        lesson_ids = []
        for chapter_index, chapter_in in enumerate(form.chapters):
            order = chapter_in.order if chapter_in.order is not None else chapter_index
            if chapter_in.id:
                chapter = self._get_chapter_model(chapter_in.id, course.course_id)
                if chapter_in.title is not None:
                    chapter.title = chapter_in.title
                if chapter_in.description is not None:
                    chapter.description = chapter_in.description
                chapter.order = order
                chapter.updated_at = now_iso()
            else:
                chapter = self._new_chapter(course.course_id, chapter_in, chapter_index, order)
                self.db.add(chapter)

            if chapter_in.lessons:
                chapter_lesson_ids = []
                for lesson_index, lesson_in in enumerate(chapter_in.lessons):
                    lesson_order = (
                        lesson_in.order if lesson_in.order is not None else lesson_index
                    )
                    if lesson_in.id:
                        lesson = self._update_lesson_from_input(
                            course.course_id,
                            chapter.chapter_id,
                            lesson_in,
                            chapter_index,
                            lesson_index,
                            videos,
                            notes,
                            lesson_order,
                            pending,
                        )
                    else:
                        lesson = self._new_lesson(
                            course.course_id,
                            chapter.chapter_id,
                            lesson_in,
                            chapter_index,
                            lesson_index,
                            videos,
                            notes,
                            order=lesson_order,
                        )
                        self.db.add(lesson)
                    chapter_lesson_ids.append(lesson.lesson_id)
                chapter.lesson_ids = chapter_lesson_ids

            chapter_ids.append(chapter.chapter_id)
            lesson_ids.extend(chapter.lesson_ids or [])

        # Chapters and lessons left out of the payload are dropped
        kept_lessons = set(lesson_ids)
        for lesson in (
            self.db.query(LessonModel).filter(LessonModel.course_id == course.course_id).all()
        ):
            if lesson.lesson_id not in kept_lessons:
                pending.extend(lesson_media(lesson))
                self.db.delete(lesson)
        kept_chapters = set(chapter_ids)
        for chapter in (
            self.db.query(ChapterModel).filter(ChapterModel.course_id == course.course_id).all()
        ):
            if chapter.chapter_id not in kept_chapters:
                self.db.delete(chapter)

        course.chapter_ids = chapter_ids
        course.lesson_ids = lesson_ids
        pending.extend(
            (f.url, f.resource_type) for f in videos.unused() + notes.unused()
        )

    def _update_lesson_from_input(
        self,
        course_id: str,
        chapter_id: str,
        lesson_in: LessonInput,
        chapter_index: int,
        lesson_index: int,
        videos: MediaAssignment,
        notes: MediaAssignment,
        order: int,
        pending: List[PendingDeletion],
    ) -> LessonModel:
        lesson = self.get_lesson_model(lesson_in.id, course_id)
        supplied = lesson_in.model_fields_set
        video_type = lesson_in.video_type if "video_type" in supplied else lesson.video_type

        # Keep the stored references unless something replaces them
        new_video_url = lesson.video_url
        if video_type == VIDEO_TYPE_UPLOAD:
            stored = videos.take(chapter_index, lesson_index)
            if stored:
                new_video_url = stored.url
        elif lesson_in.video_url:
            new_video_url = lesson_in.video_url

        new_notes_url = lesson.notes_url
        stored_notes = notes.take(chapter_index, lesson_index) if lesson_in.has_notes else None
        if stored_notes:
            new_notes_url = stored_notes.url
        elif lesson_in.notes_url:
            new_notes_url = lesson_in.notes_url

        if lesson.video_url and new_video_url and lesson.video_url != new_video_url:
            pending.append((lesson.video_url, RESOURCE_VIDEO))
        if lesson.notes_url and new_notes_url and lesson.notes_url != new_notes_url:
            pending.append((lesson.notes_url, RESOURCE_RAW))

        if lesson_in.title is not None:
            lesson.title = lesson_in.title
        if lesson_in.description is not None:
            lesson.description = lesson_in.description
        if lesson_in.duration is not None:
            lesson.duration = lesson_in.duration
        if lesson_in.is_free_preview is not None:
            lesson.is_free_preview = lesson_in.is_free_preview
        if lesson_in.unlocked is not None:
            lesson.unlocked = lesson_in.unlocked
        if lesson_in.subtitles is not None:
            lesson.subtitles = lesson_in.subtitles
        lesson.video_type = video_type
        lesson.video_url = new_video_url
        lesson.notes_url = new_notes_url
        lesson.order = order
        lesson.chapter_id = chapter_id
        lesson.course_id = course_id
        lesson.updated_at = now_iso()
        return lesson

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------

    def delete_course(self, identity: Identity, course_id: str) -> None:
        """Delete a course with its chapters and lessons.

        The course's media is deleted best effort once the rows are gone.

        Raises:
            CourseNotFoundError: If the course does not exist.
            ForbiddenError: If the caller is neither an admin nor the owner.
        """
        course = self.get_modifiable_course(identity, course_id)

        # Chapters and media go with the course (course-delete decision in DESIGN.md)
        lessons = self.db.query(LessonModel).filter(LessonModel.course_id == course_id).all()
        pending = self._course_media(course, lessons)
        try:
            self.db.query(LessonModel).filter(LessonModel.course_id == course_id).delete()
            self.db.query(ChapterModel).filter(ChapterModel.course_id == course_id).delete()
            self.db.delete(course)
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise
        logger.info("Deleted course %s (%d lessons)", course_id, len(lessons))
        self.delete_media(pending)

    @staticmethod
    def _course_media(course: CourseModel, lessons: List[LessonModel]) -> List[PendingDeletion]:
        pending: List[PendingDeletion] = []
        if course.thumbnail:
            pending.append((course.thumbnail, RESOURCE_IMAGE))
        for _, attr in COURSE_DOCUMENT_FIELDS:
            if getattr(course, attr):
                pending.append((getattr(course, attr), RESOURCE_RAW))
        for entry in list(course.course_notes or []) + list(course.previous_papers or []):
            if entry.get("url"):
                pending.append((entry["url"], RESOURCE_RAW))
        for lesson in lessons:
            pending.extend(lesson_media(lesson))
        return pending

    def delete_media(self, pending: List[PendingDeletion]) -> None:
        """Run queued media deletions; failures are logged, never raised."""
        for url, resource_type in pending:
            try:
                self.media_store.delete(url, resource_type)
            except Exception as e:
                logger.warning("Failed to delete replaced media %s: %s", url, e)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_course_model(self, course_id: str) -> CourseModel:
        course = (
            self.db.query(CourseModel).filter(CourseModel.course_id == course_id).first()
        )
        if course is None:
            raise CourseNotFoundError(course_id)
        return course

    def get_modifiable_course(self, identity: Identity, course_id: str) -> CourseModel:
        """Return the course if the caller is an admin or its owning trainer.

        Raises:
            CourseNotFoundError: If the course does not exist.
            ForbiddenError: If the caller may not modify the course.
        """
        course = self.get_course_model(course_id)
        if not can_modify(identity, course):
            raise ForbiddenError("Unauthorized to modify this course")
        return course

    def _get_chapter_model(self, chapter_id: str, course_id: str) -> ChapterModel:
        chapter = (
            self.db.query(ChapterModel)
            .filter(ChapterModel.chapter_id == chapter_id, ChapterModel.course_id == course_id)
            .first()
        )
        if chapter is None:
            raise ChapterNotFoundError(chapter_id)
        return chapter

    def get_lesson_model(self, lesson_id: str, course_id: Optional[str] = None) -> LessonModel:
        query = self.db.query(LessonModel).filter(LessonModel.lesson_id == lesson_id)
        if course_id is not None:
            query = query.filter(LessonModel.course_id == course_id)
        lesson = query.first()
        if lesson is None:
            raise LessonNotFoundError(lesson_id)
        return lesson

    def get_course(self, course_id: str, identity: Optional[Identity]) -> CourseModel:
        """Get a course visible to the caller.

        Raises:
            CourseNotFoundError: If the course does not exist.
            ForbiddenError: If the course is not approved and the caller is
                neither an admin nor its trainer.
        """
        course = self.get_course_model(course_id)
        if not can_view(identity, course):
            raise ForbiddenError("This course is not available")
        return course

    def list_approved(self) -> List[CourseModel]:
        return (
            self.db.query(CourseModel)
            .filter(CourseModel.status == STATUS_APPROVED)
            .order_by(CourseModel.created_at.desc())
            .all()
        )

    def list_pending(self, identity: Identity) -> List[CourseModel]:
        if role_of(identity) != "admin":
            raise ForbiddenError("Only admins can view pending courses")
        return (
            self.db.query(CourseModel)
            .filter(CourseModel.status == STATUS_PENDING)
            .order_by(CourseModel.created_at.desc())
            .all()
        )

    def list_for_trainer(self, identity: Identity) -> List[CourseModel]:
        if role_of(identity) != "trainer":
            raise ForbiddenError("Only trainers can access their courses")
        return (
            self.db.query(CourseModel)
            .filter(
                CourseModel.trainer_id == identity.user_id,
                CourseModel.status == STATUS_APPROVED,
            )
            .order_by(CourseModel.created_at.desc())
            .all()
        )

    def list_chapters(self, course_id: str) -> List[ChapterModel]:
        return (
            self.db.query(ChapterModel)
            .filter(ChapterModel.course_id == course_id)
            .order_by(ChapterModel.order, ChapterModel.created_at)
            .all()
        )

    def list_lessons(self, course_id: str) -> List[LessonModel]:
        return (
            self.db.query(LessonModel)
            .filter(LessonModel.course_id == course_id)
            .order_by(LessonModel.order, LessonModel.created_at)
            .all()
        )

    def get_trainers(self, trainer_ids: List[str]) -> Dict[str, UserModel]:
        if not trainer_ids:
            return {}
        users = (
            self.db.query(UserModel)
            .filter(UserModel.user_id.in_(set(trainer_ids)))
            .all()
        )
        return {user.user_id: user for user in users}
