from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Service settings loaded from environment variables."""

    project_name: str = "icocodec"
    api_prefix: str = "/api/v1"
    max_upload_size_bytes: int = 10 * 1024 * 1024
    max_upload_files: int = 64
    allowed_image_formats: tuple[str, ...] = ("PNG", "JPEG", "WEBP", "BMP")
    max_icon_dimension: int = 256
    request_id_header: str = "X-Request-ID"
    require_api_key: str | None = None
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env", env_prefix="ICOCODEC_", extra="ignore"
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""

    return Settings()


settings = get_settings()
