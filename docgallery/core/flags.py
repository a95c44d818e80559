"""
Central feature flags. One file controls every external dependency.

Set via environment variables (prefix FF_) or .env file.
When a flag is OFF, the system uses a local fallback. Nothing crashes.
"""

from functools import lru_cache
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class FeatureFlags(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Storage ──────────────────────────────────────────────────────
    use_s3: bool = Field(default=False, alias="FF_USE_S3")
    # ON  → Files go to AWS S3. Needs AWS creds + S3_BUCKET_NAME.
    # OFF → Files saved to UPLOAD_DIR and served from /uploads.

    # ── Realtime ─────────────────────────────────────────────────────
    use_redis: bool = Field(default=False, alias="FF_USE_REDIS")
    # ON  → Ingestion events published on Redis pub/sub. Needs REDIS_URL.
    # OFF → Events silently skipped.

    # ── LLM Provider ─────────────────────────────────────────────────
    llm_provider: str = Field(default="gemini", alias="FF_LLM_PROVIDER")
    # "gemini" is the only analysis backend. Needs GEMINI_API_KEY_AI.


@lru_cache
def get_flags() -> FeatureFlags:
    return FeatureFlags()
