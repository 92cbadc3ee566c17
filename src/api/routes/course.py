"""Course routes.

This module handles HTTP endpoints for course authoring, the approval
workflow, course reads and enrollment.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, status

from api.routes.auth import get_current_identity, get_optional_identity, require_roles
from core.dependencies import CourseManagerDep, EnrollmentManagerDep, upload_stage
from models.course import CourseModel
from schemas.course import ApprovalRequest, CourseForm
from schemas.user import Identity
from utils.converters import course_to_dict
from utils.course_manager import CourseManager
from utils.media_store import CONTEXT_COURSE
from utils.uploads import MultipartPayload

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/courses", tags=["Courses"])

course_uploads = upload_stage(CONTEXT_COURSE, parser=CourseForm.from_payload)
course_update_uploads = upload_stage(
    CONTEXT_COURSE, abort_on_failure=False, parser=CourseForm.from_payload
)

course_editor = require_roles("trainer", "admin")


def modifiable_course(
    course_id: str,
    identity: Identity = Depends(course_editor),
    course_manager: CourseManagerDep = None,
) -> CourseModel:
    """Admit the owning trainer or an admin before anything is uploaded."""
    return course_manager.get_modifiable_course(identity, course_id)


def _render_list(course_manager: CourseManager, courses: list) -> list:
    trainers = course_manager.get_trainers([c.trainer_id for c in courses])
    return [course_to_dict(c, trainers.get(c.trainer_id)) for c in courses]


def _render_full(course_manager: CourseManager, course) -> dict:
    trainers = course_manager.get_trainers([course.trainer_id])
    return course_to_dict(
        course,
        trainers.get(course.trainer_id),
        chapters=course_manager.list_chapters(course.course_id),
        lessons=course_manager.list_lessons(course.course_id),
    )


@router.post("", status_code=status.HTTP_201_CREATED, summary="Create course")
def create_course(
    identity: Identity = Depends(require_roles("trainer")),
    payload: MultipartPayload = Depends(course_uploads),
    course_manager: CourseManagerDep = None,
) -> dict:
    """Create a course with its chapters and lessons.

    The course starts in ``pending`` status until an admin reviews it.

    Args:
        identity: Identity of the calling trainer.
        payload: Multipart form fields and the stored uploads.
        course_manager: Injected CourseManager instance.

    Returns:
        Dictionary with success message and the created course.
    """
    course = course_manager.create_course(identity, payload.form, payload.files)
    return {
        "success": True,
        "message": "Course created successfully and pending approval",
        "course": _render_full(course_manager, course),
    }


@router.get("", summary="List approved courses")
def list_courses(course_manager: CourseManagerDep = None) -> dict:
    courses = course_manager.list_approved()
    return {
        "success": True,
        "message": "Courses fetched successfully",
        "courses": _render_list(course_manager, courses),
    }


@router.get("/pending", summary="List pending courses")
def list_pending_courses(
    identity: Identity = Depends(require_roles("admin")),
    course_manager: CourseManagerDep = None,
) -> dict:
    courses = course_manager.list_pending(identity)
    return {
        "success": True,
        "message": "Pending courses fetched successfully",
        "courses": _render_list(course_manager, courses),
    }


@router.get("/mine", summary="List the caller's approved courses")
def list_my_courses(
    identity: Identity = Depends(require_roles("trainer")),
    course_manager: CourseManagerDep = None,
) -> dict:
    courses = course_manager.list_for_trainer(identity)
    return {
        "success": True,
        "message": "Trainer courses fetched successfully",
        "courses": _render_list(course_manager, courses),
    }


@router.get("/{course_id}", summary="Get course")
def get_course(
    course_id: str,
    identity: Optional[Identity] = Depends(get_optional_identity),
    course_manager: CourseManagerDep = None,
) -> dict:
    """Get one course with its chapters and lessons.

    Pending and rejected courses are only visible to admins and the owning
    trainer.
    """
    course = course_manager.get_course(course_id, identity)
    return {
        "success": True,
        "message": "Course fetched successfully",
        "course": _render_full(course_manager, course),
    }


@router.put("/{course_id}", summary="Update course")
def update_course(
    course_id: str,
    identity: Identity = Depends(course_editor),
    _course: CourseModel = Depends(modifiable_course),
    payload: MultipartPayload = Depends(course_update_uploads),
    course_manager: CourseManagerDep = None,
) -> dict:
    """Update a course aggregate.

    Args:
        course_id: Course to update.
        identity: Identity of the owning trainer or an admin.
        payload: Multipart form fields and the stored uploads. A file the
            media store rejects is skipped; the rest of the update applies.
        course_manager: Injected CourseManager instance.

    Returns:
        Dictionary with success message and the updated course.
    """
    course = course_manager.update_course(identity, course_id, payload.form, payload.files)
    return {
        "success": True,
        "message": "Course updated successfully",
        "course": _render_full(course_manager, course),
    }


@router.delete("/{course_id}", summary="Delete course")
def delete_course(
    course_id: str,
    identity: Identity = Depends(course_editor),
    course_manager: CourseManagerDep = None,
) -> dict:
    course_manager.delete_course(identity, course_id)
    return {"success": True, "message": "Course deleted successfully"}


@router.patch("/{course_id}/approval", summary="Approve or reject course")
def approve_or_reject_course(
    course_id: str,
    req: ApprovalRequest,
    identity: Identity = Depends(require_roles("admin")),
    course_manager: CourseManagerDep = None,
) -> dict:
    course = course_manager.approve_or_reject(
        identity, course_id, req.status, req.rejection_reason
    )
    return {
        "success": True,
        "message": f"Course {course.status} successfully",
        "course": _render_list(course_manager, [course])[0],
    }


@router.post("/{course_id}/enroll", summary="Enroll in course")
def enroll_in_course(
    course_id: str,
    identity: Identity = Depends(get_current_identity),
    enrollment_manager: EnrollmentManagerDep = None,
) -> dict:
    enrollment_manager.enroll(identity, course_id)
    return {
        "success": True,
        "message": "Enrolled successfully",
        "courseId": course_id,
    }
