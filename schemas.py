"""
Database Schemas for the video sharing backend

Each Pydantic model maps to a MongoDB collection. Collection names are the
lowercase plural of the class name.

Collections:
- User -> users
- Video -> videos
- Subscription -> subscriptions
- Like -> likes
- Comment -> comments
- Playlist -> playlists
"""

from typing import List, Optional

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, EmailStr, Field


class _Document(BaseModel):
    # references are stored as real ObjectIds
    model_config = ConfigDict(arbitrary_types_allowed=True)


class User(_Document):
    username: str = Field(..., min_length=1, max_length=30)
    email: EmailStr
    full_name: str = Field(..., min_length=1)
    password: str = Field(..., description="Bcrypt hash")
    avatar: str = Field(..., description="Media host URL")
    cover_image: str = ""
    refresh_token: Optional[str] = None


class Video(_Document):
    owner: ObjectId
    video_file: str
    thumbnail: str
    title: str = Field(..., min_length=1)
    description: str = ""
    duration: float = 0
    views: int = 0
    is_published: bool = True


class Subscription(_Document):
    subscriber: ObjectId = Field(..., description="The user who subscribes")
    channel: ObjectId = Field(..., description="The user being subscribed to")


class Like(_Document):
    liked_by: ObjectId
    video: ObjectId
    liked: bool = Field(True, description="True for like, False for dislike")


class Comment(_Document):
    content: str = Field(..., min_length=1)
    video: ObjectId
    owner: ObjectId


class Playlist(_Document):
    name: str = Field(..., min_length=1)
    description: str = ""
    owner: ObjectId
    videos: List[ObjectId] = Field(default_factory=list)
