"""Dependency injection module for FastAPI.

This module provides dependency injection functions for FastAPI routes:
request-scoped managers, the process-wide media store and the multipart
upload stage shared by the course, lesson and user endpoints.
"""

from typing import Annotated, Any, Callable, Optional

from fastapi import Depends, Request
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from config import Settings, get_settings
from core.database import get_db
from core.exceptions import ValidationError
from utils import course_manager
from utils import enrollment_manager
from utils import lesson_manager
from utils import user_manager
from utils.media_store import MediaStore
from utils.uploads import MultipartPayload, collect_text_fields, store_form_uploads
from utils.watermark import PdfWatermarker

# Singleton for MediaStore (holds the boto3 client)
_media_store_instance: MediaStore = None

SettingsDep = Annotated[Settings, Depends(get_settings)]


def get_media_store(settings: SettingsDep) -> MediaStore:
    """Get MediaStore singleton instance.

    Args:
        settings: Application settings.

    Returns:
        MediaStore instance (singleton).
    """
    global _media_store_instance
    if _media_store_instance is None:
        _media_store_instance = MediaStore(settings)
    return _media_store_instance


MediaStoreDep = Annotated[MediaStore, Depends(get_media_store)]


def get_watermarker(settings: SettingsDep, media_store: MediaStoreDep) -> PdfWatermarker:
    return PdfWatermarker(settings, media_store)


def get_user_manager(
    settings: SettingsDep, db: Session = Depends(get_db)
) -> user_manager.UserManager:
    """Get UserManager instance with request-scoped DB session.

    Args:
        settings: Application settings (bcrypt cost factor).
        db: Database session.

    Returns:
        UserManager instance.
    """
    return user_manager.UserManager(db, bcrypt_rounds=settings.bcrypt_rounds)


def get_course_manager(
    media_store: MediaStoreDep, db: Session = Depends(get_db)
) -> course_manager.CourseManager:
    """Get CourseManager instance with request-scoped DB session."""
    return course_manager.CourseManager(db, media_store)


def get_lesson_manager(
    courses: course_manager.CourseManager = Depends(get_course_manager),
    db: Session = Depends(get_db),
) -> lesson_manager.LessonManager:
    """Get LessonManager instance sharing the course manager's session."""
    return lesson_manager.LessonManager(db, courses)


def get_enrollment_manager(
    db: Session = Depends(get_db),
) -> enrollment_manager.EnrollmentManager:
    """Get EnrollmentManager instance with request-scoped DB session."""
    return enrollment_manager.EnrollmentManager(db)


def upload_stage(
    context: str,
    abort_on_failure: bool = True,
    parser: Optional[Callable[[MultipartPayload], Any]] = None,
) -> Callable:
    """Build the multipart upload stage for an upload context.

    The returned dependency reads the request form, stores every file in the
    media store and watermarks the PDFs among them before the route runs.
    JSON bodies are accepted as text fields without files. When a ``parser``
    is given it builds ``payload.form`` from the text fields before any file
    is uploaded, so malformed input is rejected with nothing stored.

    Args:
        context: Upload context (course, lesson or user) that picks folders.
        abort_on_failure: False for update flows, which skip files the
            media store rejects instead of failing the request.
        parser: Optional request model factory taking the text-only payload.

    Returns:
        An async FastAPI dependency yielding a ``MultipartPayload``.
    """

    async def dependency(
        request: Request,
        settings: SettingsDep,
        media_store: MediaStoreDep,
        watermarker: PdfWatermarker = Depends(get_watermarker),
    ) -> MultipartPayload:
        content_type = request.headers.get("content-type", "")
        if content_type.startswith("application/json"):
            try:
                body = await request.json()
            except ValueError as e:
                raise ValidationError("Malformed JSON body") from e
            payload = MultipartPayload(fields=body if isinstance(body, dict) else {})
            if parser is not None:
                payload.form = parser(payload)
            return payload

        form = await request.form()
        payload = MultipartPayload(fields=collect_text_fields(form))
        if parser is not None:
            payload.form = parser(payload)
        payload.files = await store_form_uploads(
            form, media_store, context, settings.max_upload_size, abort_on_failure
        )
        # Fail closed: a watermark failure aborts the request
        await run_in_threadpool(watermarker.apply, payload.files.all())
        return payload

    return dependency


# Type aliases for dependency injection
UserManagerDep = Annotated[
    user_manager.UserManager, Depends(get_user_manager)
]
CourseManagerDep = Annotated[
    course_manager.CourseManager, Depends(get_course_manager)
]
LessonManagerDep = Annotated[
    lesson_manager.LessonManager, Depends(get_lesson_manager)
]
EnrollmentManagerDep = Annotated[
    enrollment_manager.EnrollmentManager, Depends(get_enrollment_manager)
]
