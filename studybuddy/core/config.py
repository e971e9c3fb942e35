from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Base
    APP_ENV: str = "dev"  # dev | staging | prod
    APP_NAME: str = "StudyBuddy API"
    APP_VERSION: str = "0.1.0"

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5173"

    # Logging
    LOG_LEVEL: str = "INFO"

    # External collaborators
    EXTRACTION_URL: str = ""  # vide = extraction PDF locale (pypdf)
    COMPLETION_URL: str = ""  # vide = OpenAI si OPENAI_API_KEY est défini
    AI_MODEL: str = "smart"
    OPENAI_API_KEY: str = ""
    OPENAI_MODEL: str = "gpt-4o-mini"
    REQUEST_TIMEOUT_S: float = 60.0

    # Uploads
    MAX_UPLOAD_MB: int = 25

    # Sessions
    SESSION_TTL_SECONDS: int = 60 * 60

    @property
    def cors_origins(self) -> List[str]:
        origins = [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]
        return origins or ["*"]

    class Config:
        env_file = ".env"
        case_sensitive = True


@lru_cache
def get_settings() -> Settings:
    return Settings()
