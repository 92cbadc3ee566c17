from __future__ import annotations

import itertools
import os
import sys
from pathlib import Path
from types import SimpleNamespace

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

# Must be set before the application modules read their configuration
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_SECRET_KEY"] = "test-secret"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["MEDIA_BUCKET"] = "test-bucket"
os.environ["MEDIA_PUBLIC_BASE_URL"] = "https://cdn.test/media"

pytest.importorskip("fastapi")
pytest.importorskip("httpx")

from botocore.exceptions import ClientError
from fastapi.testclient import TestClient

from app import app
from config import get_settings
from core.database import SessionLocal, engine
from core.dependencies import get_media_store
from models.base import Base
from models.user import UserModel
from utils.media_store import MediaStore


class FakeS3Client:
    """Records object-store calls and keeps objects in memory."""

    def __init__(self) -> None:
        self.objects: dict[str, bytes] = {}
        self.put_keys: list[str] = []
        self.deleted: list[str] = []
        self.fail_put = False
        self.fail_delete = False

    def put_object(self, Bucket, Key, Body, ContentType):
        if self.fail_put:
            raise ClientError({"Error": {"Code": "500", "Message": "boom"}}, "PutObject")
        self.objects[Key] = Body
        self.put_keys.append(Key)
        return {}

    def head_object(self, Bucket, Key):
        if Key not in self.objects:
            raise ClientError({"Error": {"Code": "404", "Message": "Not Found"}}, "HeadObject")
        return {}

    def delete_object(self, Bucket, Key):
        if self.fail_delete:
            raise ClientError({"Error": {"Code": "500", "Message": "boom"}}, "DeleteObject")
        self.deleted.append(Key)
        self.objects.pop(Key, None)
        return {}


class InMemoryMediaStore(MediaStore):
    """Media store whose downloads read straight from the fake client."""

    def download(self, url: str) -> bytes:
        key = url[len(self.public_base_url) + 1:]
        return self._client.objects[key]

    def key_for(self, url: str) -> str:
        return url[len(self.public_base_url) + 1:]


@pytest.fixture(autouse=True)
def fresh_database():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def s3_client() -> FakeS3Client:
    return FakeS3Client()


@pytest.fixture()
def media_store(s3_client: FakeS3Client) -> InMemoryMediaStore:
    return InMemoryMediaStore(get_settings(), client=s3_client)


@pytest.fixture()
def client(media_store: InMemoryMediaStore):
    app.dependency_overrides[get_media_store] = lambda: media_store
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture()
def make_user(client: TestClient):
    counter = itertools.count()

    def _make(role: str = "learner", email: str | None = None, password: str = "secret123"):
        email = email or f"{role}{next(counter)}@example.com"
        response = client.post(
            "/api/auth/register", json={"email": email, "password": password}
        )
        assert response.status_code == 201, response.text
        user_id = response.json()["user"]["user_id"]
        if role != "learner":
            with SessionLocal() as db:
                db.query(UserModel).filter(UserModel.user_id == user_id).update(
                    {"role": role}
                )
                db.commit()
        login = client.post("/api/auth/login", json={"email": email, "password": password})
        assert login.status_code == 200, login.text
        token = login.json()["token"]
        return SimpleNamespace(
            id=user_id,
            email=email,
            password=password,
            headers={"Authorization": f"Bearer {token}"},
        )

    return _make


def course_fields(**overrides) -> dict:
    fields = {
        "title": "Algebra Basics",
        "description": "Linear equations from scratch",
        "category": "Mathematics",
        "price": "499",
        "duration": "6 weeks",
        "courseLevel": "Beginner",
        "syllabus": '[{"title": "Week 1", "description": "Variables"}]',
        "prerequisites": "Arithmetic, Fractions",
    }
    fields.update(overrides)
    return fields


def image_file(name: str = "thumb.png"):
    return ("thumbnail", (name, b"\x89PNG fake image", "image/png"))


def video_file(name: str, field: str = "lessonVideos[]"):
    return (field, (name, f"video bytes {name}".encode(), "video/mp4"))


@pytest.fixture()
def create_course(client: TestClient):
    def _create(trainer, fields: dict | None = None, files: list | None = None):
        response = client.post(
            "/api/courses",
            data=fields if fields is not None else course_fields(),
            files=files if files is not None else [image_file()],
            headers=trainer.headers,
        )
        return response

    return _create
