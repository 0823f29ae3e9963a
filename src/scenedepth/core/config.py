from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="SCENEDEPTH_", env_file=".env", extra="ignore")

    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # Cloud scene analysis (Gemini REST API)
    GEMINI_API_KEY: Optional[str] = None
    GEMINI_MODEL: str = "gemini-1.5-flash"
    GEMINI_BASE_URL: str = "https://generativelanguage.googleapis.com"
    GEMINI_API_VERSION: str = "v1beta"
    GEMINI_TIMEOUT: float = 30.0
    GEMINI_ENABLE_IN_PROD: bool = False
    USE_LOCAL_AI: bool = False

    # On-device depth model
    LOCAL_DEPTH_ENABLED: bool = True
    LOCAL_DEPTH_MODEL: str = "depth-anything/Depth-Anything-V2-Small-hf"
    MODEL_LOAD_TIMEOUT: float = 15.0
    MODEL_LOAD_ATTEMPTS: int = 3
    MODEL_LOAD_BASE_DELAY: float = 1.0
    MODEL_LOAD_MAX_DELAY: float = 10.0

    # AI result cache
    CACHE_ENABLED: bool = True
    CACHE_MAX_SIZE: int = 50
    CACHE_TTL_MS: int = 30 * 60 * 1000

    # Image handling
    DEPTH_MAX_SIZE: int = 1024
    ANALYSIS_MAX_SIZE: int = 1024
    DEPTH_SOFT_BLUR: float = 0.0
    FETCH_TIMEOUT: float = 30.0

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.strip().lower() == "production"


@lru_cache()
def get_settings() -> Settings:
    return Settings()
