"""
Media relay to Cloudinary.

Uploaded multipart files are spooled to a local temp directory, pushed to
Cloudinary, and the temp copy is always removed. Replacing an asset is two
phases: the new reference is saved first, then the old remote asset is
deleted. A failed delete is logged as a cleanup failure and never undoes the
saved change.
"""

import logging
import os
import re
import shutil
from functools import lru_cache
from typing import Optional

import cloudinary
import cloudinary.uploader
from bson import ObjectId
from fastapi import UploadFile

from config import Settings, get_settings

logger = logging.getLogger(__name__)

_VERSION_SEGMENT = re.compile(r"^v\d+$")


class MediaRelayError(Exception):
    pass


def save_upload(upload: UploadFile, temp_dir: str) -> str:
    os.makedirs(temp_dir, exist_ok=True)
    ext = os.path.splitext(upload.filename or "")[1]
    path = os.path.join(temp_dir, f"{ObjectId()}{ext}")
    with open(path, "wb") as f:
        shutil.copyfileobj(upload.file, f)
    return path


def public_id_from_url(url: Optional[str]) -> Optional[str]:
    """https://res.cloudinary.com/x/image/upload/v123/folder/name.jpg -> folder/name"""
    if not url:
        return None
    parts = url.split("?")[0].split("/")
    try:
        start = next(i for i, p in enumerate(parts) if _VERSION_SEGMENT.match(p)) + 1
    except StopIteration:
        # unversioned delivery url: everything after "upload"
        if "upload" not in parts:
            return None
        start = parts.index("upload") + 1
    tail = "/".join(parts[start:])
    if not tail:
        return None
    return os.path.splitext(tail)[0]


class MediaRelay:
    def __init__(self, settings: Settings):
        self.temp_dir = settings.upload_temp_dir
        cloudinary.config(
            cloud_name=settings.cloudinary_cloud_name,
            api_key=settings.cloudinary_api_key,
            api_secret=settings.cloudinary_api_secret,
            secure=True,
        )

    def upload_file(self, upload: UploadFile) -> dict:
        return self.upload(save_upload(upload, self.temp_dir))

    def upload(self, local_path: str) -> dict:
        try:
            result = cloudinary.uploader.upload(local_path, resource_type="auto")
        except Exception as exc:
            logger.error("Upload of %s to media host failed: %s", local_path, exc)
            raise MediaRelayError(str(exc)) from exc
        finally:
            if os.path.exists(local_path):
                os.remove(local_path)
        logger.info("Uploaded %s as %s", local_path, result.get("public_id"))
        return {
            "url": result.get("secure_url") or result.get("url"),
            "public_id": result.get("public_id"),
            "duration": result.get("duration") or 0,
            "resource_type": result.get("resource_type", "image"),
        }

    def delete(self, public_id: Optional[str], resource_type: str = "image") -> bool:
        if not public_id:
            return True
        try:
            result = cloudinary.uploader.destroy(public_id, resource_type=resource_type, invalidate=True)
        except Exception as exc:
            logger.warning("Delete of %s asset %s failed: %s", resource_type, public_id, exc)
            return False
        # "not found" means a previous attempt already removed it
        if result.get("result") in ("ok", "not found"):
            return True
        logger.warning("Delete of %s asset %s returned %s", resource_type, public_id, result)
        return False

    def cleanup_replaced(self, old_url: Optional[str], resource_type: str = "image") -> bool:
        """Second phase of a replacement; the primary change is already saved."""
        ok = self.delete(public_id_from_url(old_url), resource_type)
        if not ok:
            logger.warning("Cleanup failed: stale %s left on media host (%s)", resource_type, old_url)
        return ok


@lru_cache(maxsize=1)
def get_media_relay() -> MediaRelay:
    return MediaRelay(get_settings())
