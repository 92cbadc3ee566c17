from __future__ import annotations

import json

from conftest import course_fields, image_file, video_file
from core.database import SessionLocal
from models.chapter import ChapterModel
from models.course import CourseModel
from models.lesson import LessonModel


def _chapters(*chapters) -> str:
    return json.dumps(list(chapters))


def _upload_lesson(title: str) -> dict:
    return {"title": title, "videoType": "upload", "duration": "10:00"}


def test_create_course_starts_pending(client, make_user, create_course):
    trainer = make_user("trainer")

    response = create_course(trainer)

    assert response.status_code == 201, response.text
    course = response.json()["course"]
    assert course["status"] == "pending"
    assert course["trainer"]["id"] == trainer.id
    assert course["price"] == 499
    assert course["prerequisites"] == ["Arithmetic", "Fractions"]
    assert course["syllabus"] == [{"title": "Week 1", "description": "Variables"}]
    assert course["thumbnail"].startswith("https://cdn.test/media/image/course_images/img-")


def test_only_trainers_can_create_courses(client, make_user, create_course, s3_client):
    learner = make_user("learner")

    response = create_course(learner)

    assert response.status_code == 403
    assert s3_client.put_keys == []


def test_missing_required_field_discards_uploads(client, make_user, create_course, s3_client):
    trainer = make_user("trainer")
    fields = course_fields()
    del fields["category"]

    response = create_course(trainer, fields=fields, files=[image_file(), video_file("a.mp4")])

    assert response.status_code == 400
    assert "category" in response.json()["message"]
    assert len(s3_client.put_keys) == 2
    assert sorted(s3_client.deleted) == sorted(s3_client.put_keys)


def test_missing_thumbnail_is_rejected(client, make_user, create_course):
    trainer = make_user("trainer")

    response = create_course(trainer, files=[])

    assert response.status_code == 400
    assert "thumbnail" in response.json()["message"]


def test_syllabus_entries_need_title_and_description(client, make_user, create_course, s3_client):
    trainer = make_user("trainer")
    fields = course_fields(syllabus='[{"title": "Week 1"}]')

    response = create_course(trainer, fields=fields)

    assert response.status_code == 400
    assert s3_client.objects == {}


def test_free_course_price_zero_is_accepted(client, make_user, create_course):
    trainer = make_user("trainer")

    response = create_course(trainer, fields=course_fields(price="0"))

    assert response.status_code == 201
    assert response.json()["course"]["price"] == 0


def test_uploaded_videos_are_assigned_in_request_order(
    client, make_user, create_course, media_store
):
    trainer = make_user("trainer")
    fields = course_fields(
        chapters=_chapters(
            {"title": "Intro", "lessons": [_upload_lesson("Welcome")]},
            {"title": "Deep dive", "lessons": [_upload_lesson("Details")]},
        )
    )

    response = create_course(
        trainer,
        fields=fields,
        files=[image_file(), video_file("first.mp4"), video_file("second.mp4")],
    )

    assert response.status_code == 201, response.text
    chapters = response.json()["course"]["chapters"]
    assert [c["order"] for c in chapters] == [0, 1]
    first_url = chapters[0]["lessons"][0]["videoUrl"]
    second_url = chapters[1]["lessons"][0]["videoUrl"]
    assert media_store._client.objects[media_store.key_for(first_url)] == b"video bytes first.mp4"
    assert media_store._client.objects[media_store.key_for(second_url)] == b"video bytes second.mp4"


def test_explicit_video_mappings_take_precedence(client, make_user, create_course, media_store):
    trainer = make_user("trainer")
    fields = course_fields(
        chapters=_chapters(
            {"title": "One", "lessons": [_upload_lesson("A"), _upload_lesson("B")]},
        ),
        lessonVideoMappings=json.dumps([{"chapterIndex": 0, "lessonIndex": 1}]),
    )

    response = create_course(
        trainer, fields=fields, files=[image_file(), video_file("only.mp4")]
    )

    lessons = response.json()["course"]["chapters"][0]["lessons"]
    assert lessons[0]["videoUrl"] is None
    assert media_store._client.objects[media_store.key_for(lessons[1]["videoUrl"])] == (
        b"video bytes only.mp4"
    )


def test_external_video_link_and_youtube_alias(client, make_user, create_course):
    trainer = make_user("trainer")
    fields = course_fields(
        chapters=_chapters(
            {
                "title": "Links",
                "lessons": [
                    {"title": "Ext", "videoType": "external", "videoUrl": "https://videos.example/1"},
                    {"title": "Yt", "videoType": "youtube", "videoUrl": "https://youtu.be/xyz"},
                ],
            }
        )
    )

    response = create_course(trainer, fields=fields)

    lessons = response.json()["course"]["chapters"][0]["lessons"]
    assert [l["videoType"] for l in lessons] == ["external", "external"]
    assert [l["videoUrl"] for l in lessons] == ["https://videos.example/1", "https://youtu.be/xyz"]


def test_unparseable_chapters_become_empty(client, make_user, create_course):
    trainer = make_user("trainer")

    response = create_course(trainer, fields=course_fields(chapters="{not json"))

    assert response.status_code == 201
    assert response.json()["course"]["chapters"] == []


def test_course_keeps_chapter_and_lesson_lists_in_sync(client, make_user, create_course):
    trainer = make_user("trainer")
    fields = course_fields(
        chapters=_chapters(
            {"title": "One", "lessons": [_upload_lesson("A"), _upload_lesson("B")]},
            {"title": "Two", "lessons": [_upload_lesson("C")]},
        )
    )
    course_id = create_course(trainer, fields=fields).json()["course"]["id"]

    with SessionLocal() as db:
        course = db.query(CourseModel).filter(CourseModel.course_id == course_id).one()
        chapters = db.query(ChapterModel).filter(ChapterModel.course_id == course_id).all()
        lessons = db.query(LessonModel).filter(LessonModel.course_id == course_id).all()

        assert set(course.chapter_ids) == {c.chapter_id for c in chapters}
        assert set(course.lesson_ids) == {l.lesson_id for l in lessons}
        for chapter in chapters:
            owned = {l.lesson_id for l in lessons if l.chapter_id == chapter.chapter_id}
            assert set(chapter.lesson_ids) == owned


def test_reject_requires_reason(client, make_user, create_course):
    trainer = make_user("trainer")
    admin = make_user("admin")
    course_id = create_course(trainer).json()["course"]["id"]

    missing = client.patch(
        f"/api/courses/{course_id}/approval", json={"status": "rejected"}, headers=admin.headers
    )
    assert missing.status_code == 400

    rejected = client.patch(
        f"/api/courses/{course_id}/approval",
        json={"status": "rejected", "rejectionReason": "Needs more content"},
        headers=admin.headers,
    )
    assert rejected.status_code == 200
    course = rejected.json()["course"]
    assert course["status"] == "rejected"
    assert course["rejectionReason"] == "Needs more content"
    assert course["approvedBy"] == admin.id


def test_approve_clears_rejection_reason(client, make_user, create_course):
    trainer = make_user("trainer")
    admin = make_user("admin")
    course_id = create_course(trainer).json()["course"]["id"]
    client.patch(
        f"/api/courses/{course_id}/approval",
        json={"status": "rejected", "rejectionReason": "Too short"},
        headers=admin.headers,
    )

    approved = client.patch(
        f"/api/courses/{course_id}/approval",
        json={"status": "approved", "rejectionReason": "ignored"},
        headers=admin.headers,
    )

    course = approved.json()["course"]
    assert course["status"] == "approved"
    assert course["rejectionReason"] is None
    assert course["approvalDate"]


def test_approval_rejects_unknown_status_and_non_admins(client, make_user, create_course):
    trainer = make_user("trainer")
    admin = make_user("admin")
    course_id = create_course(trainer).json()["course"]["id"]

    bogus = client.patch(
        f"/api/courses/{course_id}/approval", json={"status": "archived"}, headers=admin.headers
    )
    by_trainer = client.patch(
        f"/api/courses/{course_id}/approval", json={"status": "approved"}, headers=trainer.headers
    )
    missing = client.patch(
        "/api/courses/nope/approval", json={"status": "approved"}, headers=admin.headers
    )

    assert bogus.status_code == 400
    assert by_trainer.status_code == 403
    assert missing.status_code == 404


def test_pending_course_visibility(client, make_user, create_course):
    trainer = make_user("trainer")
    other_trainer = make_user("trainer")
    admin = make_user("admin")
    learner = make_user("learner")
    course_id = create_course(trainer).json()["course"]["id"]

    assert client.get(f"/api/courses/{course_id}").status_code == 403
    assert client.get(f"/api/courses/{course_id}", headers=learner.headers).status_code == 403
    assert (
        client.get(f"/api/courses/{course_id}", headers=other_trainer.headers).status_code == 403
    )

    owner_view = client.get(f"/api/courses/{course_id}", headers=trainer.headers)
    admin_view = client.get(f"/api/courses/{course_id}", headers=admin.headers)
    assert owner_view.status_code == 200
    assert admin_view.status_code == 200
    assert owner_view.json()["course"]["title"] == "Algebra Basics"
    assert "chapters" in admin_view.json()["course"]


def test_approved_course_is_public(client, make_user, create_course):
    trainer = make_user("trainer")
    admin = make_user("admin")
    course_id = create_course(trainer).json()["course"]["id"]
    client.patch(
        f"/api/courses/{course_id}/approval", json={"status": "approved"}, headers=admin.headers
    )

    response = client.get(f"/api/courses/{course_id}")

    assert response.status_code == 200


def test_course_listings(client, make_user, create_course):
    trainer = make_user("trainer")
    admin = make_user("admin")
    first = create_course(trainer, fields=course_fields(title="First")).json()["course"]["id"]
    second = create_course(trainer, fields=course_fields(title="Second")).json()["course"]["id"]
    create_course(trainer, fields=course_fields(title="Still pending"))
    for course_id in (first, second):
        client.patch(
            f"/api/courses/{course_id}/approval",
            json={"status": "approved"},
            headers=admin.headers,
        )

    public = client.get("/api/courses").json()["courses"]
    pending = client.get("/api/courses/pending", headers=admin.headers).json()["courses"]
    mine = client.get("/api/courses/mine", headers=trainer.headers).json()["courses"]

    assert [c["title"] for c in public] == ["Second", "First"]
    assert public[0]["trainer"]["email"] == trainer.email
    assert [c["title"] for c in pending] == ["Still pending"]
    assert {c["id"] for c in mine} == {first, second}


def test_delete_course_removes_lessons_chapters_and_media(
    client, make_user, create_course, s3_client
):
    trainer = make_user("trainer")
    fields = course_fields(
        chapters=_chapters({"title": "One", "lessons": [_upload_lesson("A")]})
    )
    course_id = create_course(
        trainer, fields=fields, files=[image_file(), video_file("a.mp4")]
    ).json()["course"]["id"]
    stored_keys = list(s3_client.put_keys)

    response = client.delete(f"/api/courses/{course_id}", headers=trainer.headers)

    assert response.status_code == 200
    with SessionLocal() as db:
        assert db.query(LessonModel).filter(LessonModel.course_id == course_id).count() == 0
        assert db.query(ChapterModel).filter(ChapterModel.course_id == course_id).count() == 0
    assert client.get(f"/api/courses/{course_id}", headers=trainer.headers).status_code == 404
    assert sorted(s3_client.deleted) == sorted(stored_keys)


def test_delete_course_requires_owner_or_admin(client, make_user, create_course):
    trainer = make_user("trainer")
    other_trainer = make_user("trainer")
    admin = make_user("admin")
    course_id = create_course(trainer).json()["course"]["id"]

    assert client.delete(f"/api/courses/{course_id}", headers=other_trainer.headers).status_code == 403
    assert client.delete(f"/api/courses/{course_id}", headers=admin.headers).status_code == 200
    assert client.delete(f"/api/courses/{course_id}", headers=admin.headers).status_code == 404


def test_delete_course_survives_media_failures(client, make_user, create_course, s3_client):
    trainer = make_user("trainer")
    course_id = create_course(trainer).json()["course"]["id"]
    s3_client.fail_delete = True

    response = client.delete(f"/api/courses/{course_id}", headers=trainer.headers)

    assert response.status_code == 200


def test_store_failure_aborts_create(client, make_user, create_course, s3_client):
    trainer = make_user("trainer")
    s3_client.fail_put = True

    response = create_course(trainer)

    assert response.status_code == 502
    assert response.json()["success"] is False
    with SessionLocal() as db:
        assert db.query(CourseModel).count() == 0


def test_malformed_syllabus_entry_is_rejected_before_upload(
    client, make_user, create_course, s3_client
):
    trainer = make_user("trainer")
    fields = course_fields(syllabus='[{"title": 1, "description": "x"}]')

    response = create_course(trainer, fields=fields)

    assert response.status_code == 400
    assert "syllabus" in response.json()["message"]
    assert s3_client.put_keys == []


def test_malformed_chapters_are_rejected_before_upload(
    client, make_user, create_course, s3_client
):
    trainer = make_user("trainer")
    fields = course_fields(chapters=_chapters({"title": "One", "lessons": "not a list"}))

    response = create_course(trainer, fields=fields, files=[image_file(), video_file("a.mp4")])

    assert response.status_code == 400
    assert "chapters" in response.json()["message"]
    assert s3_client.put_keys == []


def test_failed_chapter_keeps_the_saved_course(client, make_user, create_course, monkeypatch):
    from utils.course_manager import CourseManager

    original = CourseManager._new_lesson

    def new_lesson(self, *args, **kwargs):
        lesson = original(self, *args, **kwargs)
        if lesson.title == "Broken":
            lesson.title = None  # violates NOT NULL on flush
        return lesson

    monkeypatch.setattr(CourseManager, "_new_lesson", new_lesson)
    trainer = make_user("trainer")
    fields = course_fields(
        chapters=_chapters(
            {"title": "Intro", "lessons": [{"title": "Welcome", "videoType": "external"}]},
            {"title": "Later", "lessons": [{"title": "Broken", "videoType": "external"}]},
        )
    )

    response = create_course(trainer, fields=fields)

    assert response.status_code == 201, response.text
    course = response.json()["course"]
    assert [c["title"] for c in course["chapters"]] == ["Intro"]
    with SessionLocal() as db:
        assert db.query(CourseModel).filter(CourseModel.course_id == course["id"]).count() == 1
        assert db.query(LessonModel).filter(LessonModel.course_id == course["id"]).count() == 1


def test_unmapped_lesson_videos_are_discarded_after_create(
    client, make_user, create_course, s3_client
):
    trainer = make_user("trainer")
    fields = course_fields(
        chapters=_chapters({"title": "One", "lessons": [_upload_lesson("A")]}),
        lessonVideoMappings=json.dumps([{"chapterIndex": 0, "lessonIndex": 0}]),
    )

    response = create_course(
        trainer, fields=fields, files=[image_file(), video_file("a.mp4"), video_file("extra.mp4")]
    )

    assert response.status_code == 201, response.text
    thumbnail_key, mapped_key, extra_key = s3_client.put_keys
    assert s3_client.deleted == [extra_key]
    assert mapped_key in s3_client.objects
