import logging

from fastapi import APIRouter, Depends
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from auth import get_current_user
from database import get_db, objid, to_str_id, utcnow
from responses import ApiError, ApiResponse
from schemas import Subscription

logger = logging.getLogger(__name__)

router = APIRouter()

PUBLIC_PROFILE = {"username": 1, "full_name": 1, "avatar": 1}


def _profiles(db: Database, user_ids) -> list:
    users = {u["_id"]: u for u in db["users"].find({"_id": {"$in": list(user_ids)}}, PUBLIC_PROFILE)}
    return [to_str_id(users[uid]) for uid in user_ids if uid in users]


@router.post("/c/{channel_id}", response_model=ApiResponse)
def toggle_subscription(
    channel_id: str,
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    channel = objid(channel_id, "channel id")
    if channel == current_user["_id"]:
        raise ApiError(400, "Cannot subscribe to yourself")
    if not db["users"].find_one({"_id": channel}, {"_id": 1}):
        raise ApiError(404, "Channel not found")

    edge = Subscription(subscriber=current_user["_id"], channel=channel).model_dump()
    if db["subscriptions"].delete_one(edge).deleted_count:
        is_subscribed = False
    else:
        now = utcnow()
        try:
            db["subscriptions"].update_one(
                edge,
                {"$setOnInsert": {"created_at": now, "updated_at": now}},
                upsert=True,
            )
        except DuplicateKeyError:
            # a concurrent toggle inserted the same edge first
            pass
        is_subscribed = True

    logger.info("User %s %s channel %s", current_user["_id"],
                "subscribed to" if is_subscribed else "unsubscribed from", channel)
    return ApiResponse(
        statusCode=200,
        data={"isSubscribed": is_subscribed},
        message=f"Successfully {'subscribed' if is_subscribed else 'unsubscribed'} to channel",
    )


@router.get("/u/{channel_id}", response_model=ApiResponse)
def get_user_channel_subscribers(
    channel_id: str,
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    channel = objid(channel_id, "channel id")
    edges = db["subscriptions"].find({"channel": channel}).sort("created_at", -1)
    subscribers = _profiles(db, [e["subscriber"] for e in edges])
    return ApiResponse(
        statusCode=200,
        data={"subscribers": subscribers, "subscribersCount": len(subscribers)},
        message="Subscribers fetched successfully",
    )


@router.get("/c/{subscriber_id}", response_model=ApiResponse)
def get_subscribed_channels(
    subscriber_id: str,
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    subscriber = objid(subscriber_id, "subscriber id")
    edges = db["subscriptions"].find({"subscriber": subscriber}).sort("created_at", -1)
    channels = _profiles(db, [e["channel"] for e in edges])
    return ApiResponse(
        statusCode=200,
        data={"channels": channels, "channelsCount": len(channels)},
        message="Subscribed channels fetched successfully",
    )
