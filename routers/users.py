import logging
from typing import Optional

from fastapi import APIRouter, Body, Depends, File, Form, Request, Response, UploadFile
from pydantic import BaseModel, EmailStr, ValidationError
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from auth import ACCESS_COOKIE, PUBLIC_USER_PROJECTION, REFRESH_COOKIE, get_current_user
from config import Settings, get_settings
from database import create_document, get_db, to_str_id, utcnow
from media import MediaRelay, MediaRelayError, get_media_relay
from responses import ApiError, ApiResponse
from schemas import User
from security import TokenError, TokenManager, get_token_manager, hash_password, verify_password

logger = logging.getLogger(__name__)

router = APIRouter()


class LoginRequest(BaseModel):
    email: Optional[EmailStr] = None
    username: Optional[str] = None
    password: str


class RefreshRequest(BaseModel):
    refreshToken: Optional[str] = None


def set_auth_cookies(response: Response, settings: Settings, access_token: str, refresh_token: str) -> None:
    options = {"httponly": True, "secure": settings.cookie_secure, "samesite": "lax"}
    response.set_cookie(ACCESS_COOKIE, access_token, max_age=settings.access_token_expire_minutes * 60, **options)
    response.set_cookie(REFRESH_COOKIE, refresh_token, max_age=settings.refresh_token_expire_days * 86400, **options)


def clear_auth_cookies(response: Response, settings: Settings) -> None:
    for name in (ACCESS_COOKIE, REFRESH_COOKIE):
        response.delete_cookie(name, httponly=True, secure=settings.cookie_secure, samesite="lax")


def upload_or_fail(media: MediaRelay, upload: UploadFile, what: str) -> dict:
    try:
        return media.upload_file(upload)
    except MediaRelayError:
        raise ApiError(500, f"Error while uploading {what}")


# -------------------- Registration --------------------
@router.post("/register", status_code=201, response_model=ApiResponse)
def register(
    username: str = Form(...),
    email: str = Form(...),
    fullName: str = Form(...),
    password: str = Form(...),
    avatar: Optional[UploadFile] = File(None),
    coverImage: Optional[UploadFile] = File(None),
    db: Database = Depends(get_db),
    media: MediaRelay = Depends(get_media_relay),
):
    if any(not (field or "").strip() for field in (username, email, fullName, password)):
        raise ApiError(400, "All fields are required")

    username = username.strip().lower()
    email = email.strip().lower()
    if db["users"].find_one({"$or": [{"username": username}, {"email": email}]}):
        raise ApiError(409, "User with username or email already exists")

    if avatar is None or not avatar.filename:
        raise ApiError(400, "Avatar file is required")

    try:
        user = User(
            username=username,
            email=email,
            full_name=fullName.strip(),
            password=hash_password(password),
            avatar="",
        )
    except ValidationError as exc:
        raise ApiError(400, "Invalid registration details", [e["msg"] for e in exc.errors()])

    uploaded = [upload_or_fail(media, avatar, "avatar")]
    user.avatar = uploaded[0]["url"]
    if coverImage is not None and coverImage.filename:
        try:
            uploaded.append(media.upload_file(coverImage))
        except MediaRelayError:
            media.delete(uploaded[0]["public_id"], "image")
            raise ApiError(500, "Error while uploading cover image")
        user.cover_image = uploaded[1]["url"]

    try:
        created = create_document(db, "users", user)
    except DuplicateKeyError:
        for asset in uploaded:
            media.delete(asset["public_id"], "image")
        raise ApiError(409, "User with username or email already exists")

    logger.info("Registered user %s", created["_id"])
    created_user = db["users"].find_one({"_id": created["_id"]}, PUBLIC_USER_PROJECTION)
    return ApiResponse(statusCode=201, data=to_str_id(created_user), message="User registered successfully")


# -------------------- Sessions --------------------
@router.post("/login", response_model=ApiResponse)
def login(
    payload: LoginRequest,
    response: Response,
    db: Database = Depends(get_db),
    tokens: TokenManager = Depends(get_token_manager),
    settings: Settings = Depends(get_settings),
):
    if not (payload.email or payload.username):
        raise ApiError(400, "Username or email is required")

    clauses = []
    if payload.email:
        clauses.append({"email": payload.email.lower()})
    if payload.username:
        clauses.append({"username": payload.username.strip().lower()})
    user = db["users"].find_one({"$or": clauses})
    if not user:
        raise ApiError(404, "User does not exist")
    if not verify_password(payload.password, user.get("password", "")):
        raise ApiError(401, "Invalid user credentials")

    access_token, refresh_token = tokens.issue_session(db, user["_id"])
    set_auth_cookies(response, settings, access_token, refresh_token)
    logger.info("User %s logged in", user["_id"])

    logged_in = db["users"].find_one({"_id": user["_id"]}, PUBLIC_USER_PROJECTION)
    return ApiResponse(
        statusCode=200,
        data={"user": to_str_id(logged_in), "accessToken": access_token, "refreshToken": refresh_token},
        message="User logged in successfully",
    )


@router.post("/logout", response_model=ApiResponse)
def logout(
    response: Response,
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
    tokens: TokenManager = Depends(get_token_manager),
    settings: Settings = Depends(get_settings),
):
    tokens.revoke(db, current_user["_id"])
    clear_auth_cookies(response, settings)
    logger.info("User %s logged out", current_user["_id"])
    return ApiResponse(statusCode=200, data={}, message="User logged out")


@router.post("/refresh-token", response_model=ApiResponse)
def refresh_access_token(
    request: Request,
    response: Response,
    payload: Optional[RefreshRequest] = Body(None),
    db: Database = Depends(get_db),
    tokens: TokenManager = Depends(get_token_manager),
    settings: Settings = Depends(get_settings),
):
    incoming = request.cookies.get(REFRESH_COOKIE) or (payload.refreshToken if payload else None)
    if not incoming:
        raise ApiError(401, "Unauthorized request")
    try:
        access_token, refresh_token = tokens.rotate(db, incoming)
    except TokenError as exc:
        raise ApiError(401, str(exc))

    set_auth_cookies(response, settings, access_token, refresh_token)
    return ApiResponse(
        statusCode=200,
        data={"accessToken": access_token, "refreshToken": refresh_token},
        message="Access token refreshed",
    )


# -------------------- Profile --------------------
@router.get("/current-user", response_model=ApiResponse)
def current_user_profile(current_user: dict = Depends(get_current_user)):
    return ApiResponse(statusCode=200, data=to_str_id(current_user), message="Current user fetched successfully")


@router.post("/avatar", response_model=ApiResponse)
def update_avatar(
    avatar: Optional[UploadFile] = File(None),
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
    media: MediaRelay = Depends(get_media_relay),
):
    if avatar is None or not avatar.filename:
        raise ApiError(400, "Avatar file is missing")

    old_avatar = current_user.get("avatar")
    uploaded = upload_or_fail(media, avatar, "avatar")
    db["users"].update_one(
        {"_id": current_user["_id"]},
        {"$set": {"avatar": uploaded["url"], "updated_at": utcnow()}},
    )
    media.cleanup_replaced(old_avatar, "image")

    user = db["users"].find_one({"_id": current_user["_id"]}, PUBLIC_USER_PROJECTION)
    return ApiResponse(statusCode=200, data=to_str_id(user), message="Avatar updated successfully")
