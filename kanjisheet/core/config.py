from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Base
    APP_ENV: str = "dev"  # dev | staging | prod
    APP_NAME: str = "Kanji Sheet API"
    APP_VERSION: str = "0.1.0"

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5173"

    # Logging
    LOG_LEVEL: str = "INFO"

    # Canvas
    CANVAS_ORIENTATION: str = "landscape"  # landscape (1700x1200) | portrait (1200x1700)
    CANVAS_SCALE: float = 1.0  # équivalent du devicePixelRatio
    FONT_PATH: Optional[str] = None

    # Upload relay
    STORAGE_BACKEND: str = "local"  # local | drive | script
    STORAGE_PATH: str = "./storage"
    MAX_UPLOAD_MB: int = 10
    UPLOAD_SECRET: str = ""  # vide = pas de vérification de signature
    UPLOAD_TIMEOUT_S: float = 30.0

    # Google Drive (compte de service, JSON complet)
    GOOGLE_CREDENTIALS: str = ""
    DRIVE_FOLDER_ID: str = ""

    # Relais via script hébergé (Apps Script ou équivalent)
    SCRIPT_ENDPOINT_URL: str = ""
    SCRIPT_ENCODING: str = "json"  # json | form | multipart

    class Config:
        env_file = ".env"
        case_sensitive = True


@lru_cache
def get_settings() -> Settings:
    return Settings()
