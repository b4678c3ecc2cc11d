"""
Application configuration using Pydantic settings.

Configuration is loaded from environment variables with sensible defaults.
Using Pydantic's BaseSettings means we get:
- Type validation at startup (fail fast if config is wrong)
- Documentation of what's required vs optional
- Easy testing with different configurations

Mock modes enable local development without external services.
"""

import tempfile
from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be overridden via environment variables.
    For lists (like cors_origins), use comma-separated values in env.
    """

    # API Configuration
    api_title: str = "VidScore AI API"
    api_version: str = "v1"

    # Anthropic Configuration
    anthropic_api_key: str = Field(
        default="",
        description="Claude API key. Required for video analysis."
    )
    anthropic_model: str = Field(
        default="claude-sonnet-4-20250514",
        description="Vision-capable Claude model used for scoring."
    )
    anthropic_max_tokens: int = Field(
        default=2048,
        description="Max tokens for the scoring response. The JSON object is small."
    )
    anthropic_temperature: float = Field(
        default=0.2,
        description="Low temperature keeps scores stable between runs."
    )
    anthropic_timeout_seconds: float = Field(
        default=120.0,
        description="Per-request timeout for the inference call."
    )

    # Snowflake Configuration
    snowflake_account: str = Field(
        default="",
        description="Snowflake account identifier"
    )
    snowflake_user: str = Field(
        default="",
        description="Snowflake service account username"
    )
    snowflake_password: str = Field(
        default="",
        description="Snowflake service account password"
    )
    snowflake_private_key_path: Optional[str] = Field(
        default=None,
        description="Path to RSA private key file for key-pair authentication"
    )
    snowflake_database: str = Field(
        default="VIDSCORE",
        description="Snowflake database name"
    )
    snowflake_schema: str = Field(
        default="PUBLIC",
        description="Snowflake schema name"
    )
    snowflake_warehouse: str = Field(
        default="COMPUTE_WH",
        description="Snowflake warehouse for query execution"
    )
    snowflake_role: Optional[str] = Field(
        default=None,
        description="Snowflake role to use (optional)"
    )
    snowflake_mock_mode: bool = Field(
        default=False,
        description="Use in-memory mock instead of real Snowflake connection. Enables local dev without DB."
    )

    # R2/S3 Storage Configuration
    r2_account_id: str = Field(
        default="",
        description="Cloudflare account ID for R2"
    )
    r2_access_key_id: str = Field(
        default="",
        description="R2 access key ID"
    )
    r2_secret_access_key: str = Field(
        default="",
        description="R2 secret access key"
    )
    r2_bucket_name: str = Field(
        default="vidscoreai",
        description="R2 bucket holding uploaded videos"
    )
    r2_endpoint_url: Optional[str] = Field(
        default=None,
        description="R2 endpoint URL. Auto-constructed from account_id if not provided."
    )
    r2_mock_mode: bool = Field(
        default=False,
        description="Return placeholder upload URLs instead of talking to R2."
    )
    upload_url_expiry_seconds: int = Field(
        default=3600,
        description="Lifetime of presigned upload and read URLs."
    )

    # Video Analysis
    video_processor_mock_mode: bool = Field(
        default=False,
        description="Use placeholder frames instead of FFmpeg. Enables local dev without FFmpeg."
    )
    ffmpeg_path: str = Field(default="ffmpeg", description="Path to the ffmpeg binary")
    ffprobe_path: str = Field(default="ffprobe", description="Path to the ffprobe binary")
    analysis_frame_count: int = Field(
        default=5,
        description="Number of evenly spaced frames sent to the model."
    )
    analysis_frame_width: int = Field(
        default=640,
        description="Frame width in pixels. Keeps the image payload small."
    )
    scratch_dir: str = Field(
        default="",
        description="Directory for per-run scratch files. Empty means the system temp dir."
    )
    download_timeout_seconds: float = Field(
        default=300.0,
        description="Timeout for fetching the uploaded video from storage."
    )
    retry_max_attempts: int = Field(
        default=3,
        description="Attempts for download and inference before giving up."
    )
    retry_initial_delay_seconds: float = Field(
        default=1.0,
        description="First backoff delay. Doubles on each retry."
    )
    stale_processing_minutes: int = Field(
        default=30,
        description="PROCESSING videos older than this are marked FAILED at startup."
    )

    # Knowledge Base
    embedding_model: str = Field(
        default="e5-base-v2",
        description="Snowflake Cortex embedding model for the knowledge base."
    )
    embedding_dimension: int = Field(
        default=768,
        description="Embedding size. Must match the model and the knowledge_base column."
    )
    rag_default_limit: int = Field(
        default=4,
        description="Results returned by /rag/search when no limit is given."
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )

    # CORS
    cors_origins: str = Field(
        default="http://localhost:3000",
        description="Comma-separated list of allowed CORS origins. Use * for development only."
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse comma-separated CORS origins into a list."""
        if self.cors_origins == "*":
            return ["*"]
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def r2_endpoint(self) -> str:
        """
        Construct R2 endpoint URL from account ID.

        R2 endpoints follow the pattern: https://{account_id}.r2.cloudflarestorage.com
        """
        if self.r2_endpoint_url:
            return self.r2_endpoint_url
        return f"https://{self.r2_account_id}.r2.cloudflarestorage.com"

    @property
    def scratch_root(self) -> str:
        return self.scratch_dir or tempfile.gettempdir()

    @property
    def analysis_configured(self) -> bool:
        """True when the vision backend has a credential."""
        return bool(self.anthropic_api_key)

    def validate_required_fields(self) -> list[str]:
        """
        Validate that required fields are set based on mock mode settings.

        Returns list of missing required fields.
        This is separate from Pydantic validation because requirements
        depend on whether we're in mock mode.
        """
        missing = []

        if not self.anthropic_api_key:
            missing.append("ANTHROPIC_API_KEY")

        if not self.snowflake_mock_mode:
            if not self.snowflake_account:
                missing.append("SNOWFLAKE_ACCOUNT")
            if not self.snowflake_user:
                missing.append("SNOWFLAKE_USER")
            if not self.snowflake_password and not self.snowflake_private_key_path:
                missing.append("SNOWFLAKE_PASSWORD or SNOWFLAKE_PRIVATE_KEY_PATH")

        if not self.r2_mock_mode:
            if not self.r2_account_id and not self.r2_endpoint_url:
                missing.append("R2_ACCOUNT_ID")
            if not self.r2_access_key_id:
                missing.append("R2_ACCESS_KEY_ID")
            if not self.r2_secret_access_key:
                missing.append("R2_SECRET_ACCESS_KEY")

        return missing


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Using lru_cache means we only load settings once per process.
    For tests, you can call get_settings.cache_clear() to reset.
    """
    return Settings()
