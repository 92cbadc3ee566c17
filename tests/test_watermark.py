from __future__ import annotations

import io
import tempfile

import pytest

fitz = pytest.importorskip("fitz")

from config import get_settings
from core.database import SessionLocal
from core.exceptions import ProcessingError
from models.course import CourseModel
from utils.media_store import CONTEXT_COURSE, CONTEXT_LESSON
from utils.watermark import PdfWatermarker, add_text_watermark


def build_pdf(page_count: int = 2) -> bytes:
    document = fitz.open()
    for index in range(page_count):
        page = document.new_page()
        page.insert_text((72, 72), f"Lecture notes page {index + 1}")
    buffer = io.BytesIO()
    document.save(buffer)
    document.close()
    return buffer.getvalue()


def _page_texts(data: bytes) -> list[str]:
    with fitz.open(stream=data, filetype="pdf") as document:
        return [page.get_text() for page in document]


def test_add_text_watermark_stamps_every_page(tmp_path):
    source = tmp_path / "in.pdf"
    source.write_bytes(build_pdf(3))
    target = tmp_path / "out.pdf"

    add_text_watermark(source, target, "CourseHub")

    texts = _page_texts(target.read_bytes())
    assert len(texts) == 3
    assert all("CourseHub" in text for text in texts)
    assert all("Lecture notes page" in text for text in texts)


def test_watermarker_overwrites_same_identifier(media_store, s3_client, monkeypatch, tmp_path):
    monkeypatch.setattr(tempfile, "tempdir", str(tmp_path))
    stored = media_store.upload(
        build_pdf(), "application/pdf", "notes.pdf", CONTEXT_LESSON, "notes"
    )
    original_url = stored.url
    original_key = stored.key

    PdfWatermarker(get_settings(), media_store).apply([stored])

    assert stored.url == original_url
    assert s3_client.put_keys == [original_key, original_key]
    assert all("CourseHub" in text for text in _page_texts(s3_client.objects[original_key]))
    assert list(tmp_path.iterdir()) == []


def test_watermarker_skips_non_pdf_files(media_store, s3_client):
    stored = media_store.upload(b"img", "image/png", "a.png", CONTEXT_COURSE, "thumbnail")

    PdfWatermarker(get_settings(), media_store).apply([stored])

    assert s3_client.put_keys == [stored.key]


def test_watermarker_fails_closed_and_cleans_up(media_store, monkeypatch, tmp_path):
    monkeypatch.setattr(tempfile, "tempdir", str(tmp_path))
    stored = media_store.upload(
        b"definitely not a pdf", "application/pdf", "broken.pdf", CONTEXT_LESSON, "notes"
    )

    with pytest.raises(ProcessingError):
        PdfWatermarker(get_settings(), media_store).apply([stored])

    assert list(tmp_path.iterdir()) == []


def test_uploaded_course_pdf_is_watermarked_before_the_course_sees_it(
    client, make_user, create_course, s3_client, media_store
):
    from conftest import course_fields, image_file

    trainer = make_user("trainer")

    response = create_course(
        trainer,
        fields=course_fields(),
        files=[image_file(), ("courseSyllabusPdf", ("syllabus.pdf", build_pdf(), "application/pdf"))],
    )

    assert response.status_code == 201, response.text
    url = response.json()["course"]["courseSyllabusPdf"]
    assert "/raw/course_pdfs/pdf-" in url
    assert "CourseHub" in _page_texts(s3_client.objects[media_store.key_for(url)])[0]


def test_broken_pdf_aborts_the_request(client, make_user, create_course):
    from conftest import course_fields, image_file

    trainer = make_user("trainer")

    response = create_course(
        trainer,
        fields=course_fields(),
        files=[image_file(), ("courseNotesPdf", ("bad.pdf", b"%PDF-garbage", "application/pdf"))],
    )

    assert response.status_code == 500
    assert response.json()["success"] is False
    with SessionLocal() as db:
        assert db.query(CourseModel).count() == 0
