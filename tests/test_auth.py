from bson import ObjectId

from config import get_settings
from security import TokenManager


def test_protected_route_without_token(client):
    resp = client.get("/api/v2/users/current-user")
    assert resp.status_code == 401
    assert resp.json() == {
        "statusCode": 401,
        "message": "Unauthorized request",
        "success": False,
        "errors": [],
    }


def test_bearer_header_authenticates(client, make_user):
    user = make_user("mona")
    resp = client.get("/api/v2/users/current-user", headers=user["headers"])
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["id"] == user["id"]
    assert "password" not in data and "refresh_token" not in data


def test_garbage_and_expired_tokens_are_rejected(client, make_user):
    user = make_user("nina")
    bad = client.get("/api/v2/users/current-user", headers={"Authorization": "Bearer not.a.jwt"})
    assert bad.status_code == 401

    expired = TokenManager(get_settings().model_copy(update={"access_token_expire_minutes": -1}))
    token = expired.issue_access_token(ObjectId(user["id"]))
    resp = client.get("/api/v2/users/current-user", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 401


def test_token_for_vanished_user_is_rejected(client, db, make_user):
    user = make_user("omar")
    db["users"].delete_one({"_id": ObjectId(user["id"])})
    resp = client.get("/api/v2/users/current-user", headers=user["headers"])
    assert resp.status_code == 401


def test_healthcheck_is_protected(client, make_user):
    assert client.get("/api/v2/healthcheck").status_code == 401
    user = make_user("pete")
    resp = client.get("/api/v2/healthcheck", headers=user["headers"])
    assert resp.status_code == 200
    assert resp.json()["success"] is True


def test_optional_auth_route_allows_anonymous(client, make_user, publish):
    video = publish(make_user("quinn"))
    resp = client.get(f"/api/v2/videos/{video['id']}", headers={"Authorization": "Bearer broken"})
    assert resp.status_code == 200
    assert resp.json()["data"]["isLiked"] is False
