import logging
from typing import Optional

from bson import ObjectId
from fastapi import Depends, Request
from pymongo.database import Database

from database import get_db
from responses import ApiError
from security import TokenError, TokenManager, get_token_manager

logger = logging.getLogger(__name__)

ACCESS_COOKIE = "accessToken"
REFRESH_COOKIE = "refreshToken"

PUBLIC_USER_PROJECTION = {"password": 0, "refresh_token": 0}


def extract_token(request: Request) -> Optional[str]:
    token = request.cookies.get(ACCESS_COOKIE)
    if token:
        return token
    header = request.headers.get("Authorization", "")
    scheme, _, value = header.partition(" ")
    if scheme.lower() == "bearer" and value.strip():
        return value.strip()
    return None


def _resolve_user(request: Request, db: Database, tokens: TokenManager) -> dict:
    token = extract_token(request)
    if not token:
        raise ApiError(401, "Unauthorized request")
    try:
        user_id = tokens.decode_access_token(token)
    except TokenError as exc:
        logger.debug("Rejected access token: %s", exc)
        raise ApiError(401, str(exc) or "Invalid access token")
    user = db["users"].find_one({"_id": ObjectId(user_id)}, PUBLIC_USER_PROJECTION)
    if not user:
        raise ApiError(401, "Invalid access token")
    return user


def get_current_user(
    request: Request,
    db: Database = Depends(get_db),
    tokens: TokenManager = Depends(get_token_manager),
) -> dict:
    return _resolve_user(request, db, tokens)


def get_optional_user(
    request: Request,
    db: Database = Depends(get_db),
    tokens: TokenManager = Depends(get_token_manager),
) -> Optional[dict]:
    """Like get_current_user, but anonymous callers get None instead of a 401."""
    try:
        return _resolve_user(request, db, tokens)
    except ApiError:
        return None
