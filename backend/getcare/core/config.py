"""Application configuration loaded from environment variables.

All configuration is via environment variables (or a local .env file).
No hardcoded URLs, ports, or credentials.
"""

from functools import lru_cache

from pydantic import Field, PostgresDsn
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="GetCareKorea Content Engine")
    app_version: str = Field(default="1.0.0")
    debug: bool = Field(default=False)
    environment: str = Field(default="development")
    frontend_url: str | None = Field(
        default=None, description="Allowed CORS origin for the admin UI"
    )

    # Server
    port: int = Field(default=8000, description="Port to bind to")
    host: str = Field(default="0.0.0.0", description="Host to bind to")

    # Database
    database_url: PostgresDsn = Field(
        ...,
        description="PostgreSQL connection string",
    )
    db_pool_size: int = Field(default=5, description="Database connection pool size")
    db_max_overflow: int = Field(default=10, description="Max overflow connections")
    db_pool_timeout: int = Field(default=30, description="Pool timeout in seconds")
    db_slow_query_threshold_ms: int = Field(
        default=100, description="Threshold for slow query warnings (ms)"
    )
    db_connect_timeout: int = Field(
        default=60, description="Connection timeout in seconds"
    )
    db_command_timeout: int = Field(
        default=60, description="Command timeout in seconds"
    )

    # Logging
    log_level: str = Field(default="INFO", description="Log level")
    log_format: str = Field(default="json", description="Log format: json or text")

    # Claude/Anthropic LLM
    anthropic_api_key: str | None = Field(
        default=None,
        description="Anthropic API key for Claude models",
    )
    claude_model: str = Field(
        default="claude-sonnet-4-20250514",
        description="Claude model used for long-form content generation",
    )
    claude_timeout: float = Field(
        default=180.0, description="Claude API request timeout in seconds"
    )
    claude_max_retries: int = Field(
        default=3, description="Maximum retry attempts for Claude API requests"
    )
    claude_retry_delay: float = Field(
        default=1.0, description="Base delay between retries in seconds"
    )
    claude_max_tokens: int = Field(
        default=8000, description="Maximum tokens in Claude response"
    )
    claude_temperature: float = Field(
        default=0.7, description="Sampling temperature for content generation"
    )
    claude_input_cost_per_1k: float = Field(
        default=0.003, description="USD per 1k input tokens"
    )
    claude_output_cost_per_1k: float = Field(
        default=0.015, description="USD per 1k output tokens"
    )
    # Circuit breaker settings for Claude
    claude_circuit_failure_threshold: int = Field(
        default=5, description="Failures before circuit opens"
    )
    claude_circuit_recovery_timeout: float = Field(
        default=60.0, description="Seconds before attempting recovery"
    )

    # Image generation (Google Imagen)
    image_api_key: str | None = Field(
        default=None,
        description="API key for the image generation backend",
    )
    image_api_url: str = Field(
        default="https://generativelanguage.googleapis.com",
        description="Image generation API base URL",
    )
    image_model: str = Field(
        default="imagen-4.0-generate-001",
        description="Image generation model",
    )
    image_timeout: float = Field(
        default=120.0, description="Image generation request timeout in seconds"
    )
    image_max_retries: int = Field(
        default=2, description="Maximum retry attempts for image requests"
    )
    image_retry_delay: float = Field(
        default=2.0, description="Base delay between retries in seconds"
    )
    image_cost_per_image: float = Field(
        default=0.02, description="USD charged per generated image"
    )
    image_concurrency: int = Field(
        default=3, description="Max simultaneous image requests per document"
    )
    image_aspect_ratio: str = Field(
        default="16:9", description="Default aspect ratio for blog images"
    )
    image_circuit_failure_threshold: int = Field(
        default=5, description="Failures before circuit opens"
    )
    image_circuit_recovery_timeout: float = Field(
        default=60.0, description="Seconds before attempting recovery"
    )

    # Object storage for generated images (S3-compatible)
    s3_bucket: str | None = Field(default=None, description="Bucket for blog images")
    s3_endpoint_url: str | None = Field(
        default=None, description="S3-compatible endpoint URL"
    )
    s3_access_key: str | None = Field(default=None, description="S3 access key")
    s3_secret_key: str | None = Field(default=None, description="S3 secret key")
    s3_region: str = Field(default="us-east-1", description="S3 region")
    s3_public_base_url: str | None = Field(
        default=None, description="Public base URL that serves uploaded objects"
    )
    s3_timeout: float = Field(default=30.0, description="S3 operation timeout")
    s3_max_retries: int = Field(default=3, description="Maximum S3 retry attempts")
    s3_retry_delay: float = Field(
        default=1.0, description="Base delay between retries in seconds"
    )
    s3_circuit_failure_threshold: int = Field(
        default=5, description="Failures before circuit opens"
    )
    s3_circuit_recovery_timeout: float = Field(
        default=60.0, description="Seconds before attempting recovery"
    )

    # Retrieval context (vector search)
    retrieval_api_url: str | None = Field(
        default=None,
        description="Base URL of the vector search service",
    )
    retrieval_api_key: str | None = Field(
        default=None, description="API key for the vector search service"
    )
    retrieval_timeout: float = Field(
        default=10.0, description="Retrieval request timeout in seconds"
    )
    retrieval_top_k: int = Field(default=5, description="Snippets per lookup")
    retrieval_cache_ttl: float = Field(
        default=3600.0, description="Seconds to memoise retrieval results"
    )
    retrieval_cost: float = Field(
        default=0.0001, description="USD added when retrieval context is used"
    )

    # Pipeline
    pipeline_default_image_count: int = Field(
        default=3, description="Images planned per post when not specified"
    )
    pipeline_max_image_count: int = Field(
        default=6, description="Upper bound for images per post"
    )
    pipeline_error_message_max_length: int = Field(
        default=500, description="Max length of stored keyword error messages"
    )
    persona_cache_ttl: float = Field(
        default=300.0, description="Seconds to memoise the active persona list"
    )

    # Queue / worker
    queue_max_batch_size: int = Field(
        default=50, description="Maximum keywords per submitted batch"
    )
    queue_stuck_job_minutes: int = Field(
        default=30, description="Minutes before a running job is considered stuck"
    )
    queue_recovery_interval_minutes: int = Field(
        default=10, description="How often stuck-job recovery runs"
    )
    scheduler_enabled: bool = Field(
        default=True, description="Run periodic background jobs"
    )

    # Progress stream (SSE)
    sse_poll_interval: float = Field(
        default=1.0, description="Seconds between polls in viewer mode"
    )
    sse_max_polls: int = Field(
        default=300, description="Polls before the viewer stream closes"
    )
    sse_idle_sleep: float = Field(
        default=2.0, description="Seconds to wait when the worker finds no job"
    )
    sse_max_iterations: int = Field(
        default=200, description="Safety cap on worker-driven stream iterations"
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
