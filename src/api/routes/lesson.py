"""Lesson routes.

Single-lesson endpoints that work on an existing course. The lesson's
``video`` and ``notes`` uploads go through the same upload stage as courses,
after the caller has been checked against the owning course.
"""

from fastapi import APIRouter, Depends, status

from api.routes.auth import require_roles
from core.dependencies import LessonManagerDep, upload_stage
from models.course import CourseModel
from models.lesson import LessonModel
from schemas.course import LessonInput
from schemas.user import Identity
from utils.converters import lesson_to_dict
from utils.media_store import CONTEXT_LESSON
from utils.uploads import MultipartPayload

router = APIRouter(prefix="/api/lessons", tags=["Lessons"])

lesson_uploads = upload_stage(CONTEXT_LESSON, parser=LessonInput.from_payload)
lesson_update_uploads = upload_stage(
    CONTEXT_LESSON, abort_on_failure=False, parser=LessonInput.from_payload
)

lesson_author = require_roles("trainer")


def lesson_course(
    course_id: str,
    identity: Identity = Depends(lesson_author),
    lesson_manager: LessonManagerDep = None,
) -> CourseModel:
    return lesson_manager.owned_course(identity, course_id)


def editable_lesson(
    lesson_id: str,
    identity: Identity = Depends(lesson_author),
    lesson_manager: LessonManagerDep = None,
) -> LessonModel:
    return lesson_manager.owned_lesson(identity, lesson_id)


@router.get("/{course_id}", summary="List lessons of a course")
def list_lessons(
    course_id: str,
    identity: Identity = Depends(require_roles("trainer", "learner", "admin")),
    lesson_manager: LessonManagerDep = None,
) -> dict:
    lessons = lesson_manager.list_lessons(identity, course_id)
    return {
        "success": True,
        "message": "Lessons fetched successfully",
        "lessons": [lesson_to_dict(lesson) for lesson in lessons],
    }


@router.post(
    "/create/{course_id}", status_code=status.HTTP_201_CREATED, summary="Create lesson"
)
def create_lesson(
    course_id: str,
    identity: Identity = Depends(lesson_author),
    _course: CourseModel = Depends(lesson_course),
    payload: MultipartPayload = Depends(lesson_uploads),
    lesson_manager: LessonManagerDep = None,
) -> dict:
    """Append a lesson to one of the course's chapters.

    Args:
        course_id: Course owning the chapter.
        identity: Identity of the owning trainer.
        payload: Form fields (``chapterId`` and lesson fields) and uploads.
        lesson_manager: Injected LessonManager instance.

    Returns:
        Dictionary with success message and the created lesson.
    """
    lesson = lesson_manager.create_lesson(
        identity,
        course_id,
        payload.text("chapterId"),
        payload.form,
        payload.files,
    )
    return {
        "success": True,
        "message": "Lesson created successfully",
        "lesson": lesson_to_dict(lesson),
    }


@router.put("/update/{lesson_id}", summary="Update lesson")
def update_lesson(
    lesson_id: str,
    identity: Identity = Depends(lesson_author),
    _lesson: LessonModel = Depends(editable_lesson),
    payload: MultipartPayload = Depends(lesson_update_uploads),
    lesson_manager: LessonManagerDep = None,
) -> dict:
    lesson = lesson_manager.update_lesson(identity, lesson_id, payload.form, payload.files)
    return {
        "success": True,
        "message": "Lesson updated successfully",
        "lesson": lesson_to_dict(lesson),
    }


@router.delete("/delete/{lesson_id}", summary="Delete lesson")
def delete_lesson(
    lesson_id: str,
    identity: Identity = Depends(lesson_author),
    lesson_manager: LessonManagerDep = None,
) -> dict:
    lesson_manager.delete_lesson(identity, lesson_id)
    return {"success": True, "message": "Lesson deleted successfully"}
