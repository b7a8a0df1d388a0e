import logging
from typing import Optional

from bson import ObjectId
from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from pymongo import ReturnDocument
from pymongo.database import Database

from auth import get_current_user, get_optional_user
from database import create_document, get_db, objid, to_str_id, utcnow
from media import MediaRelay, MediaRelayError, get_media_relay
from responses import ApiError, ApiResponse
from routers.users import upload_or_fail
from schemas import Video
from video_query import build_listing_pipeline, paginate

logger = logging.getLogger(__name__)

router = APIRouter()

OWNER_PROJECTION = {"username": 1, "full_name": 1, "avatar": 1}


def get_owned_video(db: Database, video_id: str, user: dict) -> dict:
    video = db["videos"].find_one({"_id": objid(video_id, "video id")})
    if not video:
        raise ApiError(404, "Video not found")
    if video["owner"] != user["_id"]:
        raise ApiError(403, "You are not authorized to modify this video")
    return video


# -------------------- Listing --------------------
@router.get("", response_model=ApiResponse)
def get_all_videos(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    query: Optional[str] = None,
    sortBy: Optional[str] = None,
    sortType: Optional[str] = None,
    userId: Optional[str] = None,
    db: Database = Depends(get_db),
):
    pipeline = build_listing_pipeline(query=query, sort_by=sortBy, sort_type=sortType, user_id=userId)
    docs, paging = paginate(db["videos"], pipeline, page, limit)
    return ApiResponse(
        statusCode=200,
        data={"videos": to_str_id(docs), "pagingInfo": paging},
        message="All videos fetched successfully",
    )


# -------------------- Publish --------------------
@router.post("", status_code=201, response_model=ApiResponse)
def publish_video(
    title: str = Form(...),
    description: str = Form(...),
    videoFile: Optional[UploadFile] = File(None),
    thumbnail: Optional[UploadFile] = File(None),
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
    media: MediaRelay = Depends(get_media_relay),
):
    if not title.strip() or not description.strip():
        raise ApiError(400, "All fields are required")
    if videoFile is None or not videoFile.filename:
        raise ApiError(400, "Video file is required")
    if thumbnail is None or not thumbnail.filename:
        raise ApiError(400, "Thumbnail file is required")

    uploaded_video = upload_or_fail(media, videoFile, "video file")
    try:
        uploaded_thumb = media.upload_file(thumbnail)
    except MediaRelayError:
        media.delete(uploaded_video["public_id"], "video")
        raise ApiError(500, "Error while uploading thumbnail file")

    video = create_document(db, "videos", Video(
        owner=current_user["_id"],
        video_file=uploaded_video["url"],
        thumbnail=uploaded_thumb["url"],
        title=title.strip(),
        description=description.strip(),
        duration=uploaded_video["duration"],
    ))
    logger.info("User %s published video %s", current_user["_id"], video["_id"])
    return ApiResponse(statusCode=201, data=to_str_id(video), message="Video published successfully")


# -------------------- Detail --------------------
@router.get("/{video_id}", response_model=ApiResponse)
def get_video_by_id(
    video_id: str,
    current_user: Optional[dict] = Depends(get_optional_user),
    db: Database = Depends(get_db),
):
    vid = objid(video_id, "video id")
    visible = {"is_published": True}
    if current_user:
        visible = {"$or": [{"is_published": True}, {"owner": current_user["_id"]}]}

    video = db["videos"].find_one_and_update(
        {"_id": vid, **visible},
        {"$inc": {"views": 1}},
        return_document=ReturnDocument.AFTER,
    )
    if not video:
        raise ApiError(404, "Video not found")

    owner = db["users"].find_one({"_id": video["owner"]}, OWNER_PROJECTION)
    reaction = None
    if current_user:
        reaction = db["likes"].find_one({"video": vid, "liked_by": current_user["_id"]})

    payload = to_str_id(video)
    payload["owner"] = to_str_id(owner)
    payload["totalLikes"] = db["likes"].count_documents({"video": vid, "liked": True})
    payload["totalDislikes"] = db["likes"].count_documents({"video": vid, "liked": False})
    payload["isLiked"] = bool(reaction) and reaction["liked"] is True
    payload["isDisliked"] = bool(reaction) and reaction["liked"] is False
    return ApiResponse(statusCode=200, data=payload, message="Video found successfully")


# -------------------- Update / Delete --------------------
@router.patch("/{video_id}", response_model=ApiResponse)
def update_video(
    video_id: str,
    title: str = Form(...),
    description: str = Form(...),
    thumbnail: Optional[UploadFile] = File(None),
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
    media: MediaRelay = Depends(get_media_relay),
):
    if not title.strip() or not description.strip():
        raise ApiError(400, "Title and description are required")
    video = get_owned_video(db, video_id, current_user)

    changes = {"title": title.strip(), "description": description.strip(), "updated_at": utcnow()}
    old_thumbnail = None
    if thumbnail is not None and thumbnail.filename:
        changes["thumbnail"] = upload_or_fail(media, thumbnail, "thumbnail file")["url"]
        old_thumbnail = video.get("thumbnail")

    updated = db["videos"].find_one_and_update(
        {"_id": video["_id"]},
        {"$set": changes},
        return_document=ReturnDocument.AFTER,
    )
    if not updated:
        raise ApiError(500, "Error while updating video")

    if old_thumbnail:
        media.cleanup_replaced(old_thumbnail, "image")
    return ApiResponse(statusCode=200, data=to_str_id(updated), message="Video updated successfully")


@router.delete("/{video_id}", response_model=ApiResponse)
def delete_video(
    video_id: str,
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
    media: MediaRelay = Depends(get_media_relay),
):
    video = get_owned_video(db, video_id, current_user)
    db["videos"].delete_one({"_id": video["_id"]})
    db["likes"].delete_many({"video": video["_id"]})
    db["comments"].delete_many({"video": video["_id"]})
    db["playlists"].update_many({"videos": video["_id"]}, {"$pull": {"videos": video["_id"]}})
    logger.info("User %s deleted video %s", current_user["_id"], video["_id"])

    media.cleanup_replaced(video.get("video_file"), "video")
    media.cleanup_replaced(video.get("thumbnail"), "image")
    return ApiResponse(statusCode=200, data={}, message="Video deleted successfully")


@router.patch("/toggle/publish/{video_id}", response_model=ApiResponse)
def toggle_publish_status(
    video_id: str,
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    video = get_owned_video(db, video_id, current_user)
    published = not video.get("is_published", True)
    db["videos"].update_one(
        {"_id": video["_id"]},
        {"$set": {"is_published": published, "updated_at": utcnow()}},
    )
    return ApiResponse(
        statusCode=200,
        data={"isPublished": published},
        message="Video published" if published else "Video unpublished",
    )


def video_exists(db: Database, video_id: ObjectId, published_only: bool = True) -> bool:
    criteria = {"_id": video_id}
    if published_only:
        criteria["is_published"] = True
    return db["videos"].find_one(criteria, {"_id": 1}) is not None
