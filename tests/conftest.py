import itertools
import os
import tempfile

# settings are read at import time
os.environ["COOKIE_SECURE"] = "false"
os.environ["ACCESS_TOKEN_SECRET"] = "test-access-secret"
os.environ["REFRESH_TOKEN_SECRET"] = "test-refresh-secret"
os.environ["UPLOAD_TEMP_DIR"] = tempfile.mkdtemp(prefix="video-backend-uploads-")
os.environ["LOG_LEVEL"] = "WARNING"

import mongomock
import pytest
from fastapi.testclient import TestClient

import database
from config import get_settings
from main import app
from media import MediaRelay, MediaRelayError, get_media_relay

VIDEO_EXTENSIONS = (".mp4", ".mov", ".webm", ".mkv")


class FakeMediaRelay(MediaRelay):
    """MediaRelay whose remote calls are recorded instead of sent to Cloudinary."""

    def __init__(self, settings):
        super().__init__(settings)
        self._ids = itertools.count(1)
        self.uploaded = []
        self.deleted = []
        self.fail_uploads = False
        self.fail_deletes = False

    def upload(self, local_path):
        ext = os.path.splitext(local_path)[1]
        os.remove(local_path)
        if self.fail_uploads:
            raise MediaRelayError("media host unavailable")
        kind = "video" if ext in VIDEO_EXTENSIONS else "image"
        public_id = f"tests/asset{next(self._ids)}"
        self.uploaded.append(public_id)
        return {
            "url": f"https://res.cloudinary.com/demo/{kind}/upload/v1700000000/{public_id}{ext}",
            "public_id": public_id,
            "duration": 42.5 if kind == "video" else 0,
            "resource_type": kind,
        }

    def delete(self, public_id, resource_type="image"):
        if self.fail_deletes:
            return False
        self.deleted.append((public_id, resource_type))
        return True


@pytest.fixture
def db():
    mock_db = mongomock.MongoClient()["videotube_test"]
    database.ensure_indexes(mock_db)
    return mock_db


@pytest.fixture
def media():
    return FakeMediaRelay(get_settings())


@pytest.fixture
def client(db, media):
    app.dependency_overrides[database.get_db] = lambda: db
    app.dependency_overrides[get_media_relay] = lambda: media
    yield TestClient(app)
    app.dependency_overrides.clear()


def image_file(name="avatar.png"):
    return (name, b"\x89PNG fake image bytes", "image/png")


def video_file(name="clip.mp4"):
    return (name, b"fake mp4 bytes", "video/mp4")


def register(client, username, password="secret123", email=None, cover=False):
    files = {"avatar": image_file()}
    if cover:
        files["coverImage"] = image_file("cover.png")
    return client.post(
        "/api/v2/users/register",
        data={
            "username": username,
            "email": email or f"{username}@example.com",
            "fullName": username.title(),
            "password": password,
        },
        files=files,
    )


@pytest.fixture
def make_user(client):
    """Register and log in a user; returns its id, tokens and a bearer header."""

    def _make(username, password="secret123"):
        assert register(client, username, password).status_code == 201
        resp = client.post("/api/v2/users/login", json={"username": username, "password": password})
        assert resp.status_code == 200
        data = resp.json()["data"]
        # each test user authenticates with its own header, not the shared cookie jar
        client.cookies.clear()
        return {
            "id": data["user"]["id"],
            "access": data["accessToken"],
            "refresh": data["refreshToken"],
            "headers": {"Authorization": f"Bearer {data['accessToken']}"},
        }

    return _make


@pytest.fixture
def publish(client):
    def _publish(user, title="A video", description="Something to watch"):
        resp = client.post(
            "/api/v2/videos",
            data={"title": title, "description": description},
            files={"videoFile": video_file(), "thumbnail": image_file("thumb.png")},
            headers=user["headers"],
        )
        assert resp.status_code == 201, resp.text
        return resp.json()["data"]

    return _publish
