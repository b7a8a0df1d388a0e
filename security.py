"""
Credential verification and session tokens.

Access tokens are short lived and verified statelessly. Refresh tokens are
longer lived and the user document keeps the single one currently valid, so
a refresh token that no longer matches the stored value is rejected even if
its signature and expiry are fine.
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Tuple

import jwt
from bson import ObjectId
from passlib.context import CryptContext
from pymongo.database import Database

from config import Settings, get_settings

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, hashed: str) -> bool:
    if not password or not hashed:
        return False
    try:
        return pwd_context.verify(password, hashed)
    except (ValueError, TypeError):
        # unknown or malformed hash
        return False


class TokenError(Exception):
    """Raised for any token that must not be honoured."""


class TokenManager:
    def __init__(self, settings: Settings):
        self.access_secret = settings.access_token_secret
        self.refresh_secret = settings.refresh_token_secret
        self.access_ttl = timedelta(minutes=settings.access_token_expire_minutes)
        self.refresh_ttl = timedelta(days=settings.refresh_token_expire_days)

    # -------------------- Issuing --------------------

    def issue_access_token(self, user_id) -> str:
        payload = {
            "sub": str(user_id),
            "exp": datetime.now(timezone.utc) + self.access_ttl,
        }
        return jwt.encode(payload, self.access_secret, algorithm=ALGORITHM)

    def issue_refresh_token(self, user_id) -> str:
        payload = {
            "sub": str(user_id),
            "exp": datetime.now(timezone.utc) + self.refresh_ttl,
            "jti": uuid.uuid4().hex,
        }
        return jwt.encode(payload, self.refresh_secret, algorithm=ALGORITHM)

    # -------------------- Verifying --------------------

    @staticmethod
    def _decode(token: str, secret: str) -> str:
        if not token:
            raise TokenError("Token missing")
        try:
            payload = jwt.decode(token, secret, algorithms=[ALGORITHM])
        except jwt.ExpiredSignatureError:
            raise TokenError("Token expired")
        except jwt.InvalidTokenError:
            raise TokenError("Invalid token")
        sub = payload.get("sub")
        if not sub or not ObjectId.is_valid(sub):
            raise TokenError("Invalid token subject")
        return sub

    def decode_access_token(self, token: str) -> str:
        return self._decode(token, self.access_secret)

    def decode_refresh_token(self, token: str) -> str:
        return self._decode(token, self.refresh_secret)

    # -------------------- Sessions --------------------

    def issue_session(self, db: Database, user_id: ObjectId) -> Tuple[str, str]:
        """Mint a token pair and make its refresh token the only valid one for the user."""
        access_token = self.issue_access_token(user_id)
        refresh_token = self.issue_refresh_token(user_id)
        db["users"].update_one(
            {"_id": user_id},
            {"$set": {"refresh_token": refresh_token, "updated_at": datetime.now(timezone.utc)}},
        )
        return access_token, refresh_token

    def rotate(self, db: Database, old_refresh_token: str) -> Tuple[str, str]:
        user_id = ObjectId(self.decode_refresh_token(old_refresh_token))
        access_token = self.issue_access_token(user_id)
        refresh_token = self.issue_refresh_token(user_id)
        # swap only if the presented token is still the stored one
        result = db["users"].update_one(
            {"_id": user_id, "refresh_token": old_refresh_token},
            {"$set": {"refresh_token": refresh_token, "updated_at": datetime.now(timezone.utc)}},
        )
        if result.matched_count == 0:
            logger.info("Stale or unknown refresh token presented for user %s", user_id)
            raise TokenError("Refresh token is expired or used")
        return access_token, refresh_token

    def revoke(self, db: Database, user_id: ObjectId) -> None:
        db["users"].update_one(
            {"_id": user_id},
            {"$unset": {"refresh_token": ""}, "$set": {"updated_at": datetime.now(timezone.utc)}},
        )


@lru_cache(maxsize=1)
def get_token_manager() -> TokenManager:
    return TokenManager(get_settings())
