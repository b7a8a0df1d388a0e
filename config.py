from functools import lru_cache
from typing import List
import os

from dotenv import load_dotenv
from pydantic import BaseModel

load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Settings(BaseModel):
    database_url: str = os.getenv("DATABASE_URL", "mongodb://localhost:27017")
    database_name: str = os.getenv("DATABASE_NAME", "videotube")
    cors_origin: str = os.getenv("CORS_ORIGIN", "*")

    access_token_secret: str = os.getenv("ACCESS_TOKEN_SECRET", "change-me-access")
    access_token_expire_minutes: int = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "1440"))
    refresh_token_secret: str = os.getenv("REFRESH_TOKEN_SECRET", "change-me-refresh")
    refresh_token_expire_days: int = int(os.getenv("REFRESH_TOKEN_EXPIRE_DAYS", "10"))
    cookie_secure: bool = _env_bool("COOKIE_SECURE", True)

    cloudinary_cloud_name: str = os.getenv("CLOUDINARY_CLOUD_NAME", "")
    cloudinary_api_key: str = os.getenv("CLOUDINARY_API_KEY", "")
    cloudinary_api_secret: str = os.getenv("CLOUDINARY_API_SECRET", "")
    upload_temp_dir: str = os.getenv("UPLOAD_TEMP_DIR", os.path.join("public", "temp"))

    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    @property
    def cors_origins(self) -> List[str]:
        return [o.strip() for o in self.cors_origin.split(",") if o.strip()]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
