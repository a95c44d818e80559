"""
Central configuration. All API keys and settings in one place.
"""

from functools import lru_cache
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # --- Environment ---
    env: str = Field(default="development", alias="ENV")
    log_level: str = Field(default="info", alias="LOG_LEVEL")
    debug: bool = Field(default=False, alias="DEBUG")

    # --- Database ---
    database_url: str = Field(
        default="sqlite+aiosqlite:///./database.db",
        alias="DATABASE_URL",
    )

    # --- Analysis model (Gemini) ---
    # The only required credential. Missing key never blocks startup:
    # uploads are rejected and searches fall back to literal matching.
    gemini_api_key: str = Field(default="", alias="GEMINI_API_KEY_AI")
    gemini_base_url: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta/openai",
        alias="GEMINI_BASE_URL",
    )
    analysis_model: str = Field(default="gemini-2.5-flash", alias="ANALYSIS_MODEL")
    analysis_timeout: float = Field(default=60.0, alias="ANALYSIS_TIMEOUT")
    analysis_max_tokens: int = Field(default=4096, alias="ANALYSIS_MAX_TOKENS")
    analysis_temperature: float = Field(default=0.2, alias="ANALYSIS_TEMPERATURE")

    # --- Costs ---
    usd_to_brl: float = Field(default=5.0, alias="USD_TO_BRL")

    # --- Uploads ---
    upload_dir: str = Field(default="./uploads", alias="UPLOAD_DIR")
    max_upload_size: int = Field(default=10 * 1024 * 1024, alias="MAX_UPLOAD_SIZE")

    # --- AWS S3 ---
    aws_access_key_id: str = Field(default="", alias="AWS_ACCESS_KEY_ID")
    aws_secret_access_key: str = Field(default="", alias="AWS_SECRET_ACCESS_KEY")
    aws_region: str = Field(default="us-east-1", alias="AWS_REGION")
    s3_bucket_name: str = Field(default="docgallery-uploads", alias="S3_BUCKET_NAME")

    # --- Redis ---
    redis_url: str = Field(default="redis://localhost:6379/0", alias="REDIS_URL")

    # --- API ---
    api_host: str = Field(default="0.0.0.0", alias="API_HOST")
    api_port: int = Field(default=3001, alias="API_PORT")
    cors_origins: str = Field(default="*", alias="CORS_ORIGINS")


@lru_cache
def get_settings() -> Settings:
    return Settings()
