"""Application configuration settings.

All configuration values are loaded from environment variables (.env file).
No sensitive values should be hardcoded here.
"""

from typing import Optional
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    PROJECT_NAME: str = "EduStream Transcoding API"
    VERSION: str = "0.1.0"
    API_V1_PREFIX: str = "/api/v1"
    DEBUG: bool = False

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True

    # Database - REQUIRED
    DATABASE_URL: str

    # Redis - REQUIRED (Celery broker)
    REDIS_URL: str

    # Celery
    CELERY_BROKER_URL: str = ""
    CELERY_RESULT_BACKEND: str = ""
    HANDLER_TIME_LIMIT_SECONDS: int = 300
    # Completion notifications that race their own job submission
    NOTIFICATION_RETRY_DELAY_SECONDS: int = 30
    NOTIFICATION_MAX_DEFERRALS: int = 10

    # Transcoder job service
    GCP_PROJECT_NUMBER: str = ""
    TRANSCODER_LOCATION: str = "us-central1"
    TRANSCODER_API_URL: str = "https://transcoder.googleapis.com/v1"
    # Static bearer token; when empty, Application Default Credentials are used
    TRANSCODER_ACCESS_TOKEN: str = ""
    TRANSCODER_TIMEOUT_SECONDS: float = 30.0
    TRANSCODER_PUBSUB_TOPIC: Optional[str] = None

    # Video layout inside the bucket
    VIDEO_BUCKET: str = "edustream-videos"
    STORAGE_URI_SCHEME: str = "gs"
    VIDEO_INTAKE_PREFIX: str = "contents/videos/"
    TRANSCODED_PREFIX: str = "transcoded-videos/"
    HLS_MANIFEST_NAME: str = "manifest.m3u8"
    TRANSCODE_METADATA_KEY: str = "transcode"

    # Storage Configuration
    # STORAGE_BACKEND: gcs (JSON API), local, s3 (any S3-compatible API)
    STORAGE_BACKEND: str = "gcs"

    # Local Storage (when STORAGE_BACKEND=local)
    LOCAL_STORAGE_PATH: str = "./storage"

    # S3-compatible storage (when STORAGE_BACKEND=s3)
    STORAGE_REGION: str = ""
    STORAGE_ACCESS_KEY: str = ""
    STORAGE_SECRET_KEY: str = ""
    STORAGE_ENDPOINT_URL: Optional[str] = None

    # Pub/Sub push endpoints
    PUSH_VERIFICATION_TOKEN: Optional[str] = None

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"


settings = Settings()
