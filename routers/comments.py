from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from pymongo import ReturnDocument
from pymongo.database import Database

from auth import get_current_user, get_optional_user
from database import create_document, get_db, objid, to_str_id, utcnow
from responses import ApiError, ApiResponse
from routers.videos import video_exists
from schemas import Comment
from video_query import paging_info

router = APIRouter()


class CommentRequest(BaseModel):
    content: str


def _owned_comment(db: Database, comment_id: str, user: dict) -> dict:
    comment = db["comments"].find_one({"_id": objid(comment_id, "comment id")})
    if not comment:
        raise ApiError(404, "Comment not found")
    if comment["owner"] != user["_id"]:
        raise ApiError(403, "You are not authorized to modify this comment")
    return comment


@router.get("/{video_id}", response_model=ApiResponse)
def get_video_comments(
    video_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    current_user: Optional[dict] = Depends(get_optional_user),
    db: Database = Depends(get_db),
):
    vid = objid(video_id, "video id")
    total = db["comments"].count_documents({"video": vid})
    cursor = (
        db["comments"].find({"video": vid})
        .sort("created_at", -1)
        .skip((page - 1) * limit)
        .limit(limit)
    )
    comments = []
    for c in cursor:
        user = db["users"].find_one({"_id": c["owner"]}, {"username": 1, "full_name": 1, "avatar": 1})
        item = to_str_id(c)
        item["owner"] = to_str_id(user) if user else None
        item["isOwner"] = bool(current_user) and c["owner"] == current_user["_id"]
        comments.append(item)
    return ApiResponse(
        statusCode=200,
        data={"comments": comments, "pagingInfo": paging_info(total, page, limit)},
        message="Comments fetched successfully",
    )


@router.post("/{video_id}", status_code=201, response_model=ApiResponse)
def add_comment(
    video_id: str,
    payload: CommentRequest,
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    if not payload.content.strip():
        raise ApiError(400, "Comment content is required")
    vid = objid(video_id, "video id")
    if not video_exists(db, vid):
        raise ApiError(404, "Video not found")
    comment = create_document(db, "comments", Comment(
        content=payload.content.strip(),
        video=vid,
        owner=current_user["_id"],
    ))
    return ApiResponse(statusCode=201, data=to_str_id(comment), message="Comment added successfully")


@router.patch("/c/{comment_id}", response_model=ApiResponse)
def update_comment(
    comment_id: str,
    payload: CommentRequest,
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    if not payload.content.strip():
        raise ApiError(400, "Comment content is required")
    comment = _owned_comment(db, comment_id, current_user)
    updated = db["comments"].find_one_and_update(
        {"_id": comment["_id"]},
        {"$set": {"content": payload.content.strip(), "updated_at": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    return ApiResponse(statusCode=200, data=to_str_id(updated), message="Comment updated successfully")


@router.delete("/c/{comment_id}", response_model=ApiResponse)
def delete_comment(
    comment_id: str,
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    comment = _owned_comment(db, comment_id, current_user)
    db["comments"].delete_one({"_id": comment["_id"]})
    return ApiResponse(statusCode=200, data={}, message="Comment deleted successfully")
