import functools

import cloudinary.uploader

from conftest import image_file, register
from media import MediaRelay


def test_register_creates_exactly_one_sanitized_user(client, db, media):
    resp = register(client, "Alice", cover=True)
    assert resp.status_code == 201
    body = resp.json()
    assert body["success"] is True
    assert body["statusCode"] == 201

    user = body["data"]
    assert user["username"] == "alice"
    assert user["full_name"] == "Alice"
    assert user["avatar"].startswith("https://res.cloudinary.com/")
    assert user["cover_image"].startswith("https://res.cloudinary.com/")
    assert "password" not in user
    assert "refresh_token" not in user
    assert db["users"].count_documents({}) == 1
    assert len(media.uploaded) == 2
    # stored hash, never plaintext
    assert db["users"].find_one()["password"] != "secret123"


def test_register_rejects_duplicates(client, db):
    assert register(client, "bob").status_code == 201
    again = register(client, "bob", email="other@example.com")
    assert again.status_code == 409
    assert again.json()["success"] is False
    assert register(client, "bobby", email="bob@example.com").status_code == 409
    assert db["users"].count_documents({}) == 1


def test_register_requires_avatar_and_fields(client, db):
    resp = client.post(
        "/api/v2/users/register",
        data={"username": "carol", "email": "carol@example.com", "fullName": "Carol", "password": "pw"},
    )
    assert resp.status_code == 400
    assert resp.json()["message"] == "Avatar file is required"

    blank = client.post(
        "/api/v2/users/register",
        data={"username": "  ", "email": "carol@example.com", "fullName": "Carol", "password": "pw"},
        files={"avatar": image_file()},
    )
    assert blank.status_code == 400
    assert blank.json()["errors"] == []
    assert db["users"].count_documents({}) == 0


def test_register_upload_failure_is_a_server_error(client, db, media):
    media.fail_uploads = True
    resp = register(client, "dave")
    assert resp.status_code == 500
    assert resp.json() == {
        "statusCode": 500,
        "message": "Error while uploading avatar",
        "success": False,
        "errors": [],
    }
    assert db["users"].count_documents({}) == 0


def test_register_cover_failure_deletes_uploaded_avatar(client, db, media):
    real_upload = media.upload
    calls = []

    def flaky_upload(path):
        calls.append(path)
        if len(calls) == 2:
            media.fail_uploads = True
        return real_upload(path)

    media.upload = flaky_upload
    resp = register(client, "erin", cover=True)
    assert resp.status_code == 500
    assert resp.json()["message"] == "Error while uploading cover image"
    assert media.deleted == [("tests/asset1", "image")]
    assert db["users"].count_documents({}) == 0


def test_register_lost_insert_race_deletes_uploaded_media(client, db, media):
    real_upload = media.upload

    def racing_upload(path):
        # a concurrent registration claims the username while files upload
        if db["users"].count_documents({}) == 0:
            db["users"].insert_one({"username": "fred", "email": "someone@example.com"})
        return real_upload(path)

    media.upload = racing_upload
    resp = register(client, "fred", cover=True)
    assert resp.status_code == 409
    assert sorted(media.deleted) == [("tests/asset1", "image"), ("tests/asset2", "image")]
    assert db["users"].count_documents({}) == 1


def test_login_sets_cookies_and_hides_secrets(client, db):
    register(client, "erin")
    resp = client.post("/api/v2/users/login", json={"email": "erin@example.com", "password": "secret123"})
    assert resp.status_code == 200
    assert "accessToken" in resp.cookies
    assert "refreshToken" in resp.cookies

    data = resp.json()["data"]
    assert "password" not in data["user"]
    assert "refresh_token" not in data["user"]
    assert db["users"].find_one({"username": "erin"})["refresh_token"] == data["refreshToken"]

    # cookie alone authenticates
    me = client.get("/api/v2/users/current-user")
    assert me.status_code == 200
    assert me.json()["data"]["username"] == "erin"


def test_login_with_wrong_password_creates_no_session(client, db):
    register(client, "frank")
    resp = client.post("/api/v2/users/login", json={"username": "frank", "password": "nope"})
    assert resp.status_code == 401
    assert "accessToken" not in resp.cookies
    assert db["users"].find_one({"username": "frank"}).get("refresh_token") is None


def test_login_unknown_user(client):
    resp = client.post("/api/v2/users/login", json={"username": "ghost", "password": "x"})
    assert resp.status_code == 404


def test_refresh_rotates_and_rejects_stale_token(client, make_user):
    user = make_user("gina")

    resp = client.post("/api/v2/users/refresh-token", json={"refreshToken": user["refresh"]})
    assert resp.status_code == 200
    new_refresh = resp.json()["data"]["refreshToken"]
    assert new_refresh != user["refresh"]
    client.cookies.clear()

    # valid signature and expiry, but no longer the stored token
    stale = client.post("/api/v2/users/refresh-token", json={"refreshToken": user["refresh"]})
    assert stale.status_code == 401

    ok = client.post("/api/v2/users/refresh-token", json={"refreshToken": new_refresh})
    assert ok.status_code == 200


def test_refresh_from_cookie(client):
    register(client, "hank")
    client.post("/api/v2/users/login", json={"username": "hank", "password": "secret123"})
    resp = client.post("/api/v2/users/refresh-token")
    assert resp.status_code == 200
    assert resp.json()["data"]["accessToken"]


def test_refresh_without_token(client):
    resp = client.post("/api/v2/users/refresh-token")
    assert resp.status_code == 401


def test_second_login_invalidates_first_refresh_token(client, make_user):
    first = make_user("ivy")
    client.post("/api/v2/users/login", json={"username": "ivy", "password": "secret123"})
    client.cookies.clear()
    resp = client.post("/api/v2/users/refresh-token", json={"refreshToken": first["refresh"]})
    assert resp.status_code == 401


def test_logout_clears_refresh_token(client, db, make_user):
    user = make_user("jack")
    resp = client.post("/api/v2/users/logout", headers=user["headers"])
    assert resp.status_code == 200
    assert "refresh_token" not in db["users"].find_one({"username": "jack"})

    again = client.post("/api/v2/users/refresh-token", json={"refreshToken": user["refresh"]})
    assert again.status_code == 401


def test_avatar_update_replaces_then_cleans_up(client, db, media, make_user):
    user = make_user("kate")
    old_avatar = db["users"].find_one({"username": "kate"})["avatar"]

    resp = client.post("/api/v2/users/avatar", files={"avatar": image_file("new.png")}, headers=user["headers"])
    assert resp.status_code == 200
    new_avatar = resp.json()["data"]["avatar"]
    assert new_avatar != old_avatar
    assert ("tests/asset1", "image") in media.deleted


def test_avatar_cleanup_failure_keeps_new_avatar(client, db, media, make_user):
    user = make_user("liam")
    media.fail_deletes = True
    resp = client.post("/api/v2/users/avatar", files={"avatar": image_file("new.png")}, headers=user["headers"])
    assert resp.status_code == 200
    assert db["users"].find_one({"username": "liam"})["avatar"] == resp.json()["data"]["avatar"]


def test_avatar_update_survives_media_host_error_during_cleanup(client, db, media, make_user, monkeypatch):
    user = make_user("mona")

    def failing_destroy(public_id, **options):
        raise ValueError("Must supply api_key")

    monkeypatch.setattr(cloudinary.uploader, "destroy", failing_destroy)
    monkeypatch.setattr(media, "delete", functools.partial(MediaRelay.delete, media))

    resp = client.post("/api/v2/users/avatar", files={"avatar": image_file("new.png")}, headers=user["headers"])
    assert resp.status_code == 200
    assert db["users"].find_one({"username": "mona"})["avatar"] == resp.json()["data"]["avatar"]
