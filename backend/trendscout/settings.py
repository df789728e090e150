from functools import lru_cache

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="",
        extra="ignore",
        populate_by_name=True,
    )

    app_name: str = "trendscout"
    environment: str = Field(default="local", validation_alias=AliasChoices("ENVIRONMENT", "TRENDSCOUT_ENVIRONMENT"))
    database_url: str = Field(
        default="postgresql+asyncpg://postgres:postgres@db:5432/trendscout",
        validation_alias=AliasChoices("DATABASE_URL", "TRENDSCOUT_DATABASE_URL"),
    )
    service_token: str | None = Field(default=None, validation_alias=AliasChoices("SERVICE_TOKEN", "TRENDSCOUT_SERVICE_TOKEN"))

    # Third-party APIs
    rapidapi_key: str | None = Field(default=None, validation_alias=AliasChoices("RAPIDAPI_KEY", "TRENDSCOUT_RAPIDAPI_KEY"))
    rapidapi_tiktok_host: str = Field(default="tiktok-api23.p.rapidapi.com", validation_alias=AliasChoices("RAPIDAPI_TIKTOK_HOST", "TRENDSCOUT_RAPIDAPI_TIKTOK_HOST"))
    tikwm_api_url: str = Field(default="https://www.tikwm.com/api/", validation_alias=AliasChoices("TIKWM_API_URL", "TRENDSCOUT_TIKWM_API_URL"))
    apify_token: str | None = Field(default=None, validation_alias=AliasChoices("APIFY_TOKEN", "TRENDSCOUT_APIFY_TOKEN"))
    instagram_discovery_hashtags: list[str] = Field(default_factory=lambda: ["trending"], validation_alias=AliasChoices("INSTAGRAM_DISCOVERY_HASHTAGS", "TRENDSCOUT_INSTAGRAM_DISCOVERY_HASHTAGS"))
    gemini_api_key: str | None = Field(default=None, validation_alias=AliasChoices("GEMINI_API_KEY", "TRENDSCOUT_GEMINI_API_KEY"))
    gemini_model: str = Field(default="gemini-2.0-flash", validation_alias=AliasChoices("GEMINI_MODEL", "TRENDSCOUT_GEMINI_MODEL"))
    google_translate_api_key: str | None = Field(default=None, validation_alias=AliasChoices("GOOGLE_TRANSLATE_API_KEY", "TRENDSCOUT_GOOGLE_TRANSLATE_API_KEY"))
    http_timeout_sec: int = Field(default=120, validation_alias=AliasChoices("HTTP_TIMEOUT_SEC", "TRENDSCOUT_HTTP_TIMEOUT_SEC"))

    # Object storage
    storage_backend: str = Field(default="local", validation_alias=AliasChoices("STORAGE_BACKEND", "TRENDSCOUT_STORAGE_BACKEND"))
    media_dir: str = Field(default="/data/media", validation_alias=AliasChoices("MEDIA_DIR", "TRENDSCOUT_MEDIA_DIR"))
    media_public_base_url: str = Field(default="http://localhost:8000/files/media", validation_alias=AliasChoices("MEDIA_PUBLIC_BASE_URL", "TRENDSCOUT_MEDIA_PUBLIC_BASE_URL"))
    s3_bucket: str = Field(default="library-videos", validation_alias=AliasChoices("S3_BUCKET", "TRENDSCOUT_S3_BUCKET"))
    s3_endpoint_url: str | None = Field(default=None, validation_alias=AliasChoices("S3_ENDPOINT_URL", "TRENDSCOUT_S3_ENDPOINT_URL"))
    s3_access_key: str | None = Field(default=None, validation_alias=AliasChoices("S3_ACCESS_KEY", "TRENDSCOUT_S3_ACCESS_KEY"))
    s3_secret_key: str | None = Field(default=None, validation_alias=AliasChoices("S3_SECRET_KEY", "TRENDSCOUT_S3_SECRET_KEY"))
    s3_region: str = Field(default="auto", validation_alias=AliasChoices("S3_REGION", "TRENDSCOUT_S3_REGION"))
    s3_public_base_url: str | None = Field(default=None, validation_alias=AliasChoices("S3_PUBLIC_BASE_URL", "TRENDSCOUT_S3_PUBLIC_BASE_URL"))

    # Pipeline tunables
    discovery_max_count: int = Field(default=30, validation_alias=AliasChoices("DISCOVERY_MAX_COUNT", "TRENDSCOUT_DISCOVERY_MAX_COUNT"))
    gemini_poll_interval_sec: float = Field(default=3.0, validation_alias=AliasChoices("GEMINI_POLL_INTERVAL_SEC", "TRENDSCOUT_GEMINI_POLL_INTERVAL_SEC"))
    gemini_poll_max_attempts: int = Field(default=60, validation_alias=AliasChoices("GEMINI_POLL_MAX_ATTEMPTS", "TRENDSCOUT_GEMINI_POLL_MAX_ATTEMPTS"))
    analysis_photo_timeout_lenient: bool = Field(default=False, validation_alias=AliasChoices("ANALYSIS_PHOTO_TIMEOUT_LENIENT", "TRENDSCOUT_ANALYSIS_PHOTO_TIMEOUT_LENIENT"))
    analysis_language: str = Field(default="German", validation_alias=AliasChoices("ANALYSIS_LANGUAGE", "TRENDSCOUT_ANALYSIS_LANGUAGE"))
    adaptable_score_threshold: float = Field(default=7, validation_alias=AliasChoices("ADAPTABLE_SCORE_THRESHOLD", "TRENDSCOUT_ADAPTABLE_SCORE_THRESHOLD"))
    translation_languages: list[str] = Field(default_factory=lambda: ["en", "de"], validation_alias=AliasChoices("TRANSLATION_LANGUAGES", "TRENDSCOUT_TRANSLATION_LANGUAGES"))
    job_max_attempts: int = Field(default=3, validation_alias=AliasChoices("JOB_MAX_ATTEMPTS", "TRENDSCOUT_JOB_MAX_ATTEMPTS"))
    stale_job_timeout_minutes: int = Field(default=10, validation_alias=AliasChoices("STALE_JOB_TIMEOUT_MINUTES", "TRENDSCOUT_STALE_JOB_TIMEOUT_MINUTES"))

    # Background execution
    scheduler_enabled: bool = Field(default=True, validation_alias=AliasChoices("SCHEDULER_ENABLED", "TRENDSCOUT_SCHEDULER_ENABLED"))
    queue_tick_interval_sec: int = Field(default=30, validation_alias=AliasChoices("QUEUE_TICK_INTERVAL_SEC", "TRENDSCOUT_QUEUE_TICK_INTERVAL_SEC"))
    reaper_interval_minutes: int = Field(default=5, validation_alias=AliasChoices("REAPER_INTERVAL_MINUTES", "TRENDSCOUT_REAPER_INTERVAL_MINUTES"))
    discovery_interval_minutes: int | None = Field(default=None, validation_alias=AliasChoices("DISCOVERY_INTERVAL_MINUTES", "TRENDSCOUT_DISCOVERY_INTERVAL_MINUTES"))
    redis_url: str = Field(default="redis://redis:6379/0", validation_alias=AliasChoices("REDIS_URL", "TRENDSCOUT_REDIS_URL"))
    celery_enabled: bool = Field(default=False, validation_alias=AliasChoices("CELERY_ENABLED", "TRENDSCOUT_CELERY_ENABLED"))

    # Alerts
    telegram_bot_token: str | None = Field(default=None, validation_alias=AliasChoices("TELEGRAM_BOT_TOKEN", "TRENDSCOUT_TELEGRAM_BOT_TOKEN"))
    telegram_chat_id: str | None = Field(default=None, validation_alias=AliasChoices("TELEGRAM_CHAT_ID", "TRENDSCOUT_TELEGRAM_CHAT_ID"))

    @property
    def async_database_url(self) -> str:
        if self.database_url.startswith("postgresql+"):
            return self.database_url
        if self.database_url.startswith("postgresql://"):
            return self.database_url.replace("postgresql://", "postgresql+asyncpg://", 1)
        return self.database_url


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
