import logging
from pathlib import Path
from typing import Literal

from pydantic import Field, RedisDsn
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Configuration settings for the Post Classifier service.
    Settings are loaded from environment variables and/or a .env file.
    Scoring weights and thresholds live in the keyword dictionary file, not here.
    """

    # --- General Service Settings ---
    SERVICE_NAME: str = Field(default="post_classifier", description="Name of the service.")
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level for the service."
    )
    API_VERSION: str = Field(default="v1", description="API version prefix for REST endpoints.")

    # --- Keyword Dictionary Settings ---
    # Default path is relative to the package directory, but can be overridden with an absolute path
    KEYWORDS_FILE_PATH: str = Field(
        default="data/keywords.json",
        description="Path to the JSON file containing categories, keywords and scoring weights."
    )
    NORMALIZE_CACHE_SIZE: int = Field(
        default=1024,
        description="Maximum number of normalized strings kept in the LRU cache (0 disables it)."
    )

    # --- Post Store Settings ---
    STORE_BACKEND: Literal["redis", "memory"] = Field(
        default="redis",
        description="Where posts and their tags are read from and written to."
    )
    REDIS_URL: RedisDsn = Field(default="redis://localhost:6379/0")
    REDIS_KEY_PREFIX: str = Field(
        default="posts",
        description="Prefix for every Redis key owned by the post store."
    )

    # --- Batch Settings ---
    READ_BATCH_SIZE: int = Field(default=20, gt=0, description="Posts read per page of untagged posts.")
    RECLASSIFY_BATCH_SIZE: int = Field(default=50, gt=0, description="Posts read per reclassification run.")
    ATTEMPTED_CACHE_SIZE: int = Field(
        default=10000,
        gt=0,
        description="Untagged posts remembered as already attempted; the oldest are forgotten first."
    )
    WRITE_CHUNK_SIZE: int = Field(
        default=500,
        gt=0,
        description="Maximum number of tag writes grouped into one atomic multi-write."
    )
    CHUNK_DELAY_SECONDS: float = Field(
        default=0.1,
        ge=0,
        description="Pause between two committed write chunks."
    )

    # --- API Server Settings ---
    API_HOST: str = Field(
        default="0.0.0.0",
        description="Host to bind the API server to."
    )
    API_PORT: int = Field(
        default=8006,
        description="Port to bind the API server to."
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    def get_absolute_keywords_path(self) -> Path:
        """
        Returns the absolute path to the keyword dictionary file.
        If KEYWORDS_FILE_PATH is already absolute, it is returned as is.
        Otherwise, it is resolved relative to the package directory.
        """
        path = Path(self.KEYWORDS_FILE_PATH)
        if path.is_absolute():
            return path

        # backend/post_classifier/src/post_classifier/config.py -> post_classifier/
        package_root = Path(__file__).resolve().parent
        return package_root / path


# Initialize settings globally for easy access
settings = Settings()

# Configure logging based on settings
logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(settings.SERVICE_NAME)

logger.debug(f"Post Classifier service settings loaded: {settings.model_dump()}")
logger.debug(f"Absolute keywords file path: {settings.get_absolute_keywords_path()}")

if __name__ == "__main__":
    print("Loaded Post Classifier Service Settings:")
    for field_name, value in settings.model_dump().items():
        print(f"  {field_name}: {value}")

    keywords_path = settings.get_absolute_keywords_path()
    print(f"\nAbsolute keywords file path: {keywords_path}")
    print(f"Keywords file exists: {keywords_path.exists()}")
