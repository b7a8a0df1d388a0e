import logging

from bson import ObjectId
from fastapi import APIRouter, Depends
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from auth import get_current_user
from database import get_db, objid, to_str_id, utcnow
from responses import ApiError, ApiResponse
from routers.videos import video_exists
from schemas import Like

logger = logging.getLogger(__name__)

router = APIRouter()


def toggle_reaction(db: Database, user_id: ObjectId, video_id: ObjectId, liked: bool) -> dict:
    """Same polarity again removes the edge, the opposite polarity flips it."""
    edge = Like(liked_by=user_id, video=video_id, liked=liked).model_dump()
    if db["likes"].find_one_and_delete(edge):
        state = None
    else:
        now = utcnow()
        pair = {"liked_by": user_id, "video": video_id}
        try:
            db["likes"].update_one(
                pair,
                {"$set": {"liked": liked, "updated_at": now}, "$setOnInsert": {"created_at": now}},
                upsert=True,
            )
        except DuplicateKeyError:
            # lost an insert race on the unique pair; the edge exists now
            db["likes"].update_one(pair, {"$set": {"liked": liked, "updated_at": now}})
        state = liked
    return {"isLiked": state is True, "isDisliked": state is False}


def _toggle(video_id: str, current_user: dict, db: Database, liked: bool) -> ApiResponse:
    vid = objid(video_id, "video id")
    if not video_exists(db, vid):
        raise ApiError(404, "Video not found")
    result = toggle_reaction(db, current_user["_id"], vid, liked)
    logger.info("User %s reacted to video %s: %s", current_user["_id"], vid, result)
    return ApiResponse(statusCode=200, data=result, message="Reaction updated successfully")


@router.post("/toggle/v/{video_id}", response_model=ApiResponse)
def toggle_video_like(
    video_id: str,
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    return _toggle(video_id, current_user, db, liked=True)


@router.post("/toggle/dislike/v/{video_id}", response_model=ApiResponse)
def toggle_video_dislike(
    video_id: str,
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    return _toggle(video_id, current_user, db, liked=False)


@router.get("/videos", response_model=ApiResponse)
def get_liked_videos(
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    edges = list(db["likes"].find({"liked_by": current_user["_id"], "liked": True}).sort("created_at", -1))
    ids = [e["video"] for e in edges]
    videos = {v["_id"]: v for v in db["videos"].find({"_id": {"$in": ids}, "is_published": True})}
    liked = [to_str_id(videos[i]) for i in ids if i in videos]
    return ApiResponse(statusCode=200, data=liked, message="Liked videos fetched successfully")
