from __future__ import annotations

import json

import pytest

from conftest import course_fields, image_file
from core.database import SessionLocal
from models.chapter import ChapterModel
from models.course import CourseModel


@pytest.fixture()
def trainer(make_user):
    return make_user("trainer")


@pytest.fixture()
def course(trainer, create_course):
    fields = course_fields(
        chapters=json.dumps(
            [{"title": "Intro", "lessons": [{"title": "Welcome", "videoType": "external", "videoUrl": "https://v/0"}]}]
        )
    )
    return create_course(trainer, fields=fields, files=[image_file()]).json()["course"]


def _video(name="clip.mp4"):
    return ("video", (name, f"video bytes {name}".encode(), "video/mp4"))


def test_create_lesson_appends_to_chapter_and_course(client, trainer, course, media_store, s3_client):
    chapter_id = course["chapters"][0]["id"]

    response = client.post(
        f"/api/lessons/create/{course['id']}",
        data={"chapterId": chapter_id, "title": "Second", "duration": "05:00"},
        files=[_video()],
        headers=trainer.headers,
    )

    assert response.status_code == 201, response.text
    lesson = response.json()["lesson"]
    assert lesson["chapter"] == chapter_id
    assert lesson["order"] == 1
    assert s3_client.objects[media_store.key_for(lesson["videoUrl"])] == b"video bytes clip.mp4"
    with SessionLocal() as db:
        chapter = db.query(ChapterModel).filter(ChapterModel.chapter_id == chapter_id).one()
        stored = db.query(CourseModel).filter(CourseModel.course_id == course["id"]).one()
        assert chapter.lesson_ids[-1] == lesson["id"]
        assert stored.lesson_ids[-1] == lesson["id"]


def test_create_lesson_in_unknown_chapter_discards_upload(client, trainer, course, s3_client):
    before = len(s3_client.put_keys)

    response = client.post(
        f"/api/lessons/create/{course['id']}",
        data={"chapterId": "nope", "title": "Lost"},
        files=[_video()],
        headers=trainer.headers,
    )

    assert response.status_code == 404
    assert s3_client.deleted == s3_client.put_keys[before:]


def test_update_lesson_replaces_video_after_commit(client, trainer, course, media_store, s3_client):
    chapter_id = course["chapters"][0]["id"]
    created = client.post(
        f"/api/lessons/create/{course['id']}",
        data={"chapterId": chapter_id, "title": "Second"},
        files=[_video("v1.mp4")],
        headers=trainer.headers,
    ).json()["lesson"]

    response = client.put(
        f"/api/lessons/update/{created['id']}",
        data={"title": "Second (revised)"},
        files=[_video("v2.mp4")],
        headers=trainer.headers,
    )

    assert response.status_code == 200, response.text
    lesson = response.json()["lesson"]
    assert lesson["title"] == "Second (revised)"
    assert s3_client.objects[media_store.key_for(lesson["videoUrl"])] == b"video bytes v2.mp4"
    assert s3_client.deleted == [media_store.key_for(created["videoUrl"])]


def test_delete_lesson_unlinks_it(client, trainer, course, s3_client):
    lesson_id = course["chapters"][0]["lessons"][0]["id"]

    response = client.delete(f"/api/lessons/delete/{lesson_id}", headers=trainer.headers)

    assert response.status_code == 200
    with SessionLocal() as db:
        chapter = db.query(ChapterModel).filter(ChapterModel.chapter_id == course["chapters"][0]["id"]).one()
        stored = db.query(CourseModel).filter(CourseModel.course_id == course["id"]).one()
        assert lesson_id not in chapter.lesson_ids
        assert lesson_id not in stored.lesson_ids
    # External links are never deleted from the media store
    assert s3_client.deleted == []


def test_lessons_of_pending_course_are_hidden_from_learners(client, make_user, trainer, course):
    learner = make_user("learner")

    assert client.get(f"/api/lessons/{course['id']}", headers=learner.headers).status_code == 403
    owner_view = client.get(f"/api/lessons/{course['id']}", headers=trainer.headers)
    assert [l["title"] for l in owner_view.json()["lessons"]] == ["Welcome"]


def test_other_trainer_cannot_touch_lessons(client, make_user, course):
    intruder = make_user("trainer")
    lesson_id = course["chapters"][0]["lessons"][0]["id"]

    assert client.delete(f"/api/lessons/delete/{lesson_id}", headers=intruder.headers).status_code == 403
    assert (
        client.put(
            f"/api/lessons/update/{lesson_id}", data={"title": "x"}, headers=intruder.headers
        ).status_code
        == 403
    )


def test_other_trainer_lesson_uploads_store_nothing(client, make_user, course, s3_client):
    intruder = make_user("trainer")
    chapter_id = course["chapters"][0]["id"]
    lesson_id = course["chapters"][0]["lessons"][0]["id"]
    before = list(s3_client.put_keys)

    created = client.post(
        f"/api/lessons/create/{course['id']}",
        data={"chapterId": chapter_id, "title": "Sneaky"},
        files=[_video()],
        headers=intruder.headers,
    )
    updated = client.put(
        f"/api/lessons/update/{lesson_id}",
        data={"title": "Sneaky"},
        files=[_video()],
        headers=intruder.headers,
    )

    assert created.status_code == 403
    assert updated.status_code == 403
    assert s3_client.put_keys == before


def test_invalid_lesson_fields_store_nothing(client, trainer, course, s3_client):
    chapter_id = course["chapters"][0]["id"]
    before = list(s3_client.put_keys)

    response = client.post(
        f"/api/lessons/create/{course['id']}",
        data={"chapterId": chapter_id, "title": "Second", "order": "first"},
        files=[_video()],
        headers=trainer.headers,
    )

    assert response.status_code == 400
    assert s3_client.put_keys == before


def test_lesson_update_skips_files_the_store_rejects(client, trainer, course, s3_client):
    lesson = course["chapters"][0]["lessons"][0]
    s3_client.fail_put = True

    response = client.put(
        f"/api/lessons/update/{lesson['id']}",
        data={"title": "Renamed"},
        files=[("notes", ("n.pdf", b"%PDF-1.4", "application/pdf"))],
        headers=trainer.headers,
    )

    assert response.status_code == 200, response.text
    assert response.json()["lesson"]["title"] == "Renamed"
    assert response.json()["lesson"]["notesUrl"] is None
