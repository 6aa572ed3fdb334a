from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import List, Literal
import os


class Settings(BaseSettings):
    """Global app settings loaded from environment.
    - Keep defaults light for dev (in-memory record store, local drafts dir).
    - Override via .env or real env vars.
    """

    APP_NAME: str = "basma_clinic_api"
    APP_ENV: str = "dev"
    APP_DEBUG: bool = True

    # Raw CORS string from env (comma-separated); parsed via cors_origins property
    CORS_ORIGINS: str | None = None

    # Record storage: "memory" for dev/tests, "firebase" for the Realtime Database
    RECORD_BACKEND: Literal["memory", "firebase"] = "memory"

    # Firebase Admin SDK service account + Realtime Database URL
    FIREBASE_CREDENTIALS_FILE: str | None = None
    FIREBASE_DATABASE_URL: str | None = None

    # المسودات تُحفظ محلياً فقط ولا تصل أبداً إلى قاعدة البيانات
    DRAFTS_DIR: str = ".drafts"
    DRAFT_PREFIX: str = "clinic_draft_"
    DRAFT_DEBOUNCE_MS: int = 800

    DEFAULT_LANGUAGE: Literal["en", "ar"] = "en"
    PATIENTS_LIST_LIMIT: int = 100

    LOGS_DIR: str = "logs"

    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_DEFAULT: str = "300/minute"
    RATE_LIMIT_WRITES: str = "60/minute"

    # Periodic sweep that repairs sessionCount / sessionsIndex drift
    RECONCILE_ENABLED: bool = True
    RECONCILE_INTERVAL_MINUTES: int = 60

    class Config:
        env_file = ".env"
        case_sensitive = False

    @property
    def cors_origins(self) -> List[str]:
        """Return CORS origins as a list, parsing comma-separated env string."""
        raw = self.CORS_ORIGINS or os.getenv("CORS_ORIGINS", "") or ""
        return [o.strip() for o in raw.split(",") if o.strip()]


@lru_cache()
def get_settings() -> Settings:
    """Cached settings instance."""
    return Settings()
