import logging
import os
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pymongo.database import Database
from pymongo.errors import PyMongoError

import database
from config import get_settings
from database import get_db
from responses import register_exception_handlers
from routers import comments, healthcheck, likes, playlists, subscriptions, users, videos

settings = get_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    os.makedirs(settings.upload_temp_dir, exist_ok=True)
    try:
        database.ensure_indexes(database.get_db())
    except PyMongoError as exc:
        logger.error("Could not ensure indexes: %s", exc)
    logger.info("Video sharing backend started")
    yield


app = FastAPI(title="Video Sharing Backend", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

API_PREFIX = "/api/v2"

app.include_router(healthcheck.router, prefix=f"{API_PREFIX}/healthcheck", tags=["healthcheck"])
app.include_router(users.router, prefix=f"{API_PREFIX}/users", tags=["users"])
app.include_router(videos.router, prefix=f"{API_PREFIX}/videos", tags=["videos"])
app.include_router(subscriptions.router, prefix=f"{API_PREFIX}/subscriptions", tags=["subscriptions"])
app.include_router(likes.router, prefix=f"{API_PREFIX}/likes", tags=["likes"])
app.include_router(comments.router, prefix=f"{API_PREFIX}/comments", tags=["comments"])
app.include_router(playlists.router, prefix=f"{API_PREFIX}/playlists", tags=["playlists"])


# -------------------- Basic Routes --------------------
@app.get("/")
def read_root():
    return {"message": "Video Sharing Backend is running"}


@app.get("/test")
def test_database(db: Database = Depends(get_db)):
    info = {
        "backend": "running",
        "database_connected": False,
        "database_name": db.name,
        "collections": [],
    }
    try:
        info["collections"] = db.list_collection_names()
        info["database_connected"] = True
    except PyMongoError as e:
        info["error"] = str(e)
    return info


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
