from bson import ObjectId


def like(client, user, video_id):
    return client.post(f"/api/v2/likes/toggle/v/{video_id}", headers=user["headers"])


def dislike(client, user, video_id):
    return client.post(f"/api/v2/likes/toggle/dislike/v/{video_id}", headers=user["headers"])


def test_like_toggle_flips_and_never_duplicates(client, db, make_user, publish):
    owner, fan = make_user("owner"), make_user("fan")
    video = publish(owner)

    assert like(client, fan, video["id"]).json()["data"] == {"isLiked": True, "isDisliked": False}
    assert dislike(client, fan, video["id"]).json()["data"] == {"isLiked": False, "isDisliked": True}
    assert db["likes"].count_documents({}) == 1
    assert db["likes"].find_one()["liked"] is False

    assert dislike(client, fan, video["id"]).json()["data"] == {"isLiked": False, "isDisliked": False}
    assert db["likes"].count_documents({}) == 0


def test_like_unknown_video(client, make_user):
    fan = make_user("fan")
    assert like(client, fan, str(ObjectId())).status_code == 404
    assert like(client, fan, "bad").status_code == 400


def test_liked_videos_list(client, make_user, publish):
    owner, fan = make_user("owner"), make_user("fan")
    first = publish(owner, title="first")
    publish(owner, title="second")
    like(client, fan, first["id"])

    resp = client.get("/api/v2/likes/videos", headers=fan["headers"])
    assert resp.status_code == 200
    assert [v["title"] for v in resp.json()["data"]] == ["first"]
