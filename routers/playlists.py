from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from pymongo import ReturnDocument
from pymongo.database import Database

from auth import get_current_user, get_optional_user
from database import create_document, get_db, objid, to_str_id, utcnow
from responses import ApiError, ApiResponse
from routers.videos import video_exists
from schemas import Playlist

router = APIRouter()


class PlaylistRequest(BaseModel):
    name: str
    description: str = ""


def _owned_playlist(db: Database, playlist_id: str, user: dict) -> dict:
    playlist = db["playlists"].find_one({"_id": objid(playlist_id, "playlist id")})
    if not playlist:
        raise ApiError(404, "Playlist not found")
    if playlist["owner"] != user["_id"]:
        raise ApiError(403, "You are not authorized to modify this playlist")
    return playlist


def _with_videos(db: Database, playlist: dict) -> dict:
    """Expand video ids into published videos, keeping playlist order."""
    ids = playlist.get("videos", [])
    found = {v["_id"]: v for v in db["videos"].find({"_id": {"$in": ids}, "is_published": True})}
    payload = to_str_id(playlist)
    payload["videos"] = [to_str_id(found[i]) for i in ids if i in found]
    payload["totalVideos"] = len(payload["videos"])
    return payload


@router.post("", status_code=201, response_model=ApiResponse)
def create_playlist(
    payload: PlaylistRequest,
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    if not payload.name.strip():
        raise ApiError(400, "Playlist name is required")
    playlist = create_document(db, "playlists", Playlist(
        name=payload.name.strip(),
        description=payload.description.strip(),
        owner=current_user["_id"],
    ))
    return ApiResponse(statusCode=201, data=to_str_id(playlist), message="Playlist created successfully")


@router.get("/user/{user_id}", response_model=ApiResponse)
def get_user_playlists(
    user_id: str,
    current_user: Optional[dict] = Depends(get_optional_user),
    db: Database = Depends(get_db),
):
    owner = objid(user_id, "user id")
    playlists = db["playlists"].find({"owner": owner}).sort("created_at", -1)
    return ApiResponse(
        statusCode=200,
        data=[_with_videos(db, p) for p in playlists],
        message="User playlists fetched successfully",
    )


@router.get("/{playlist_id}", response_model=ApiResponse)
def get_playlist_by_id(
    playlist_id: str,
    current_user: Optional[dict] = Depends(get_optional_user),
    db: Database = Depends(get_db),
):
    playlist = db["playlists"].find_one({"_id": objid(playlist_id, "playlist id")})
    if not playlist:
        raise ApiError(404, "Playlist not found")
    payload = _with_videos(db, playlist)
    payload["isOwner"] = bool(current_user) and playlist["owner"] == current_user["_id"]
    return ApiResponse(statusCode=200, data=payload, message="Playlist fetched successfully")


@router.patch("/{playlist_id}", response_model=ApiResponse)
def update_playlist(
    playlist_id: str,
    payload: PlaylistRequest,
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    if not payload.name.strip():
        raise ApiError(400, "Playlist name is required")
    playlist = _owned_playlist(db, playlist_id, current_user)
    updated = db["playlists"].find_one_and_update(
        {"_id": playlist["_id"]},
        {"$set": {"name": payload.name.strip(), "description": payload.description.strip(), "updated_at": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    return ApiResponse(statusCode=200, data=to_str_id(updated), message="Playlist updated successfully")


@router.delete("/{playlist_id}", response_model=ApiResponse)
def delete_playlist(
    playlist_id: str,
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    playlist = _owned_playlist(db, playlist_id, current_user)
    db["playlists"].delete_one({"_id": playlist["_id"]})
    return ApiResponse(statusCode=200, data={}, message="Playlist deleted successfully")


@router.patch("/add/{video_id}/{playlist_id}", response_model=ApiResponse)
def add_video_to_playlist(
    video_id: str,
    playlist_id: str,
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    vid = objid(video_id, "video id")
    playlist = _owned_playlist(db, playlist_id, current_user)
    if not video_exists(db, vid):
        raise ApiError(404, "Video not found")
    updated = db["playlists"].find_one_and_update(
        {"_id": playlist["_id"]},
        {"$addToSet": {"videos": vid}, "$set": {"updated_at": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    return ApiResponse(statusCode=200, data=to_str_id(updated), message="Video added to playlist")


@router.patch("/remove/{video_id}/{playlist_id}", response_model=ApiResponse)
def remove_video_from_playlist(
    video_id: str,
    playlist_id: str,
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    vid = objid(video_id, "video id")
    playlist = _owned_playlist(db, playlist_id, current_user)
    updated = db["playlists"].find_one_and_update(
        {"_id": playlist["_id"]},
        {"$pull": {"videos": vid}, "$set": {"updated_at": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    return ApiResponse(statusCode=200, data=to_str_id(updated), message="Video removed from playlist")
