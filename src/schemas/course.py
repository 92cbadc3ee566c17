"""Course aggregate request schemas.

Multipart course requests carry nested structures as JSON strings; the
models below describe them once they have been parsed at the request
boundary (see ``utils.uploads``).
"""

import logging
from typing import Any, List, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from core.exceptions import ValidationError
from utils.uploads import MultipartPayload, parse_json_list

logger = logging.getLogger(__name__)

VIDEO_TYPE_UPLOAD = "upload"
VIDEO_TYPE_EXTERNAL = "external"

_TRUE_STRINGS = ("true", "1", "yes", "on")

_LESSON_FORM_FIELDS = (
    "title",
    "description",
    "videoType",
    "videoUrl",
    "hasNotes",
    "notesUrl",
    "duration",
    "order",
    "isFreePreview",
    "unlocked",
    "subtitles",
)


def coerce_bool(value) -> bool:
    """Interpret form-style booleans (``"true"``, ``"1"``, ``True``...)."""
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in _TRUE_STRINGS


def _normalize_video_type(value) -> str:
    text = str(value or VIDEO_TYPE_UPLOAD).strip().lower()
    if text in ("external", "youtube", "link", "external-link"):
        return VIDEO_TYPE_EXTERNAL
    return VIDEO_TYPE_UPLOAD


class SyllabusItem(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None


class LessonInput(BaseModel):
    """A lesson as sent inside the ``chapters`` form field."""

    id: Optional[str] = Field(default=None, alias="_id")
    title: Optional[str] = None
    description: Optional[str] = None
    video_type: str = Field(default=VIDEO_TYPE_UPLOAD, alias="videoType")
    video_url: Optional[str] = Field(default=None, alias="videoUrl")
    has_notes: bool = Field(default=False, alias="hasNotes")
    notes_url: Optional[str] = Field(default=None, alias="notesUrl")
    duration: Optional[str] = None
    order: Optional[int] = None
    is_free_preview: Optional[bool] = Field(default=None, alias="isFreePreview")
    unlocked: Optional[bool] = None
    subtitles: Optional[str] = None

    model_config = {"populate_by_name": True, "extra": "ignore"}

    @field_validator("video_type", mode="before")
    @classmethod
    def _video_type(cls, value):
        return _normalize_video_type(value)

    @field_validator("has_notes", mode="before")
    @classmethod
    def _has_notes(cls, value):
        return coerce_bool(value)

    @field_validator("is_free_preview", "unlocked", mode="before")
    @classmethod
    def _optional_flag(cls, value):
        if value is None:
            return None
        return coerce_bool(value)

    @field_validator("duration", mode="before")
    @classmethod
    def _duration(cls, value):
        return None if value is None else str(value)

    @classmethod
    def from_payload(cls, payload: MultipartPayload) -> "LessonInput":
        """Build a lesson from the text fields of a single-lesson form.

        Blank fields count as not supplied.

        Raises:
            ValidationError: If a field has an invalid value.
        """
        values = {
            name: value
            for name, value in payload.fields.items()
            if name in _LESSON_FORM_FIELDS and str(value).strip() != ""
        }
        try:
            return cls.model_validate(values)
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid lesson fields: {e}") from e


class ChapterInput(BaseModel):
    """A chapter as sent inside the ``chapters`` form field."""

    id: Optional[str] = Field(default=None, alias="_id")
    title: Optional[str] = None
    description: Optional[str] = None
    order: Optional[int] = None
    lessons: List[LessonInput] = Field(default_factory=list)

    model_config = {"populate_by_name": True, "extra": "ignore"}


class MediaMapping(BaseModel):
    """Pins the n-th uploaded file of a field to one lesson position."""

    chapter_index: int = Field(alias="chapterIndex")
    lesson_index: int = Field(alias="lessonIndex")

    model_config = {"populate_by_name": True}


class ApprovalRequest(BaseModel):
    status: Optional[str] = None
    rejection_reason: Optional[str] = Field(default=None, alias="rejectionReason")

    model_config = {"populate_by_name": True}


def _parse_list_of_strings(raw) -> Optional[List[str]]:
    if raw is None:
        return None
    if isinstance(raw, list):
        return [str(item).strip() for item in raw if str(item).strip()]
    text = str(raw).strip()
    if text.startswith("["):
        parsed = parse_json_list(text, "prerequisites")
        return [str(item).strip() for item in parsed if str(item).strip()]
    return [part.strip() for part in text.split(",") if part.strip()]


def _parse_mappings(raw, field_name: str) -> List[MediaMapping]:
    mappings = []
    for item in parse_json_list(raw, field_name):
        if not isinstance(item, dict):
            continue
        try:
            mappings.append(MediaMapping.model_validate(item))
        except PydanticValidationError:
            logger.warning("Ignoring malformed entry in %s: %r", field_name, item)
    return mappings


class CourseForm(BaseModel):
    """A course create/update request after boundary normalisation.

    ``None`` means "not supplied"; update only touches supplied values.
    """

    title: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    price: Optional[str] = None
    duration: Optional[str] = None
    course_level: Optional[str] = None
    certification_available: Optional[bool] = None
    language: Optional[str] = None
    board: Optional[str] = None
    class_level: Optional[str] = None
    subject: Optional[str] = None
    target_audience: Optional[str] = None
    thumbnail: Optional[str] = None
    prerequisites: Optional[List[str]] = None
    syllabus: Optional[List[SyllabusItem]] = None
    chapters: Optional[List[ChapterInput]] = None
    course_notes_meta: List[Any] = Field(default_factory=list)
    previous_papers_meta: List[Any] = Field(default_factory=list)
    lesson_video_mappings: List[MediaMapping] = Field(default_factory=list)
    lesson_note_mappings: List[MediaMapping] = Field(default_factory=list)
    removed_course_note_ids: List[str] = Field(default_factory=list)
    removed_previous_paper_ids: List[str] = Field(default_factory=list)

    @classmethod
    def from_payload(cls, payload: MultipartPayload) -> "CourseForm":
        """Build a course form from a multipart payload.

        Raises:
            ValidationError: If the syllabus or chapters field has an invalid
                shape.
        """
        syllabus = None
        if payload.has("syllabus"):
            try:
                syllabus = [
                    SyllabusItem.model_validate(item) if isinstance(item, dict) else SyllabusItem()
                    for item in payload.json_list("syllabus")
                ]
            except PydanticValidationError as e:
                raise ValidationError(f"Invalid syllabus format: {e}") from e

        chapters = None
        if payload.has("chapters"):
            try:
                chapters = [
                    ChapterInput.model_validate(item)
                    for item in payload.json_list("chapters")
                    if isinstance(item, dict)
                ]
            except PydanticValidationError as e:
                raise ValidationError(f"Invalid chapters format: {e}") from e
            # An empty or unparseable list never wipes existing chapters
            chapters = chapters or None

        certification = payload.fields.get("certificationAvailable")
        return cls(
            title=payload.text("title"),
            description=payload.text("description"),
            category=payload.text("category"),
            price=payload.text("price"),
            duration=payload.text("duration"),
            course_level=payload.text("courseLevel") or payload.text("level"),
            certification_available=None if certification is None else coerce_bool(certification),
            language=payload.text("language"),
            board=payload.text("board"),
            class_level=payload.text("classLevel"),
            subject=payload.text("subject"),
            target_audience=payload.text("targetAudience"),
            thumbnail=payload.text("thumbnail"),
            prerequisites=_parse_list_of_strings(payload.fields.get("prerequisites")),
            syllabus=syllabus,
            chapters=chapters,
            course_notes_meta=payload.json_list("courseNotesMeta"),
            previous_papers_meta=payload.json_list("previousPapersMeta"),
            lesson_video_mappings=_parse_mappings(
                payload.fields.get("lessonVideoMappings"), "lessonVideoMappings"
            ),
            lesson_note_mappings=_parse_mappings(
                payload.fields.get("lessonNoteMappings"), "lessonNoteMappings"
            ),
            removed_course_note_ids=[
                str(i) for i in payload.json_list("removedCourseNoteIds")
            ],
            removed_previous_paper_ids=[
                str(i) for i in payload.json_list("removedPreviousPaperIds")
            ],
        )
