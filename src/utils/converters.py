"""Conversions between database models, pydantic schemas and response dicts."""

from typing import Dict, List, Optional

from models.chapter import ChapterModel
from models.course import CourseModel
from models.lesson import LessonModel
from models.user import UserModel
from schemas.user import User


def user_to_model(user: User) -> UserModel:
    return UserModel(
        user_id=user.user_id,
        email=user.email,
        username=user.username,
        full_name=user.full_name,
        phone_number=user.phone_number,
        profile_picture=user.profile_picture,
        password_hash=user.password_hash,
        role=user.role,
        is_banned=user.is_banned,
        tokens=list(user.tokens),
        create_at=user.create_at,
        update_at=user.update_at,
    )


def model_to_user(model: UserModel) -> User:
    return User(
        user_id=model.user_id,
        email=model.email,
        username=model.username,
        full_name=model.full_name or "",
        phone_number=model.phone_number or "",
        profile_picture=model.profile_picture,
        password_hash=model.password_hash,
        role=model.role,
        is_banned=bool(model.is_banned),
        tokens=list(model.tokens or []),
        create_at=model.create_at,
        update_at=model.update_at,
    )


def lesson_to_dict(lesson: LessonModel) -> dict:
    return {
        "id": lesson.lesson_id,
        "chapter": lesson.chapter_id,
        "course": lesson.course_id,
        "title": lesson.title,
        "description": lesson.description,
        "videoUrl": lesson.video_url,
        "videoType": lesson.video_type,
        "notesUrl": lesson.notes_url,
        "duration": lesson.duration,
        "order": lesson.order,
        "isFreePreview": bool(lesson.is_free_preview),
        "unlocked": bool(lesson.unlocked),
        "subtitles": lesson.subtitles,
        "createdAt": lesson.created_at,
        "updatedAt": lesson.updated_at,
    }


def chapter_to_dict(chapter: ChapterModel, lessons: Optional[List[LessonModel]] = None) -> dict:
    data = {
        "id": chapter.chapter_id,
        "course": chapter.course_id,
        "title": chapter.title,
        "description": chapter.description,
        "order": chapter.order,
        "lessonIds": list(chapter.lesson_ids or []),
    }
    if lessons is not None:
        data["lessons"] = [lesson_to_dict(lesson) for lesson in lessons]
    return data


def trainer_to_dict(trainer: Optional[UserModel], trainer_id: str) -> dict:
    if trainer is None:
        return {"id": trainer_id}
    return {
        "id": trainer.user_id,
        "name": trainer.full_name or trainer.username,
        "email": trainer.email,
    }


def course_to_dict(
    course: CourseModel,
    trainer: Optional[UserModel] = None,
    chapters: Optional[List[ChapterModel]] = None,
    lessons: Optional[List[LessonModel]] = None,
) -> dict:
    """Render a course, optionally with its trainer and nested chapters.

    When ``chapters`` and ``lessons`` are given, each chapter carries its own
    lessons sorted by order.
    """
    data = {
        "id": course.course_id,
        "trainer": trainer_to_dict(trainer, course.trainer_id),
        "title": course.title,
        "description": course.description,
        "category": course.category,
        "price": course.price,
        "duration": course.duration,
        "courseLevel": course.course_level,
        "prerequisites": list(course.prerequisites or []),
        "certificationAvailable": bool(course.certification_available),
        "language": course.language,
        "board": course.board,
        "classLevel": course.class_level,
        "subject": course.subject,
        "targetAudience": course.target_audience,
        "thumbnail": course.thumbnail,
        "syllabus": list(course.syllabus or []),
        "courseSyllabusPdf": course.syllabus_pdf,
        "courseNotesPdf": course.notes_pdf,
        "coursePreviousPapersPdf": course.previous_papers_pdf,
        "courseNotes": list(course.course_notes or []),
        "previousPapers": list(course.previous_papers or []),
        "chapterIds": list(course.chapter_ids or []),
        "lessonIds": list(course.lesson_ids or []),
        "status": course.status,
        "approvedBy": course.approved_by,
        "approvalDate": course.approval_date,
        "rejectionReason": course.rejection_reason,
        "createdAt": course.created_at,
        "updatedAt": course.updated_at,
    }
    if chapters is not None:
        by_chapter: Dict[str, List[LessonModel]] = {}
        for lesson in lessons or []:
            by_chapter.setdefault(lesson.chapter_id, []).append(lesson)
        data["chapters"] = [
            chapter_to_dict(chapter, by_chapter.get(chapter.chapter_id, []))
            for chapter in chapters
        ]
    return data
