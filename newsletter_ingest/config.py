"""Pipeline configuration loaded from environment variables.

Uses pydantic-settings so every field can be overridden via env vars,
which is how the receive hook is configured in deployment.
"""

from __future__ import annotations

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings


class S3Config(BaseSettings):
    """S3 bucket holding the raw EML blobs written by the mail receiver."""

    model_config = {"env_prefix": "S3_"}

    bucket: str = Field(description="S3 bucket name")
    prefix: str = Field(
        default="",
        description="Optional key prefix prepended to every content key",
    )
    region: str = Field(default="ap-northeast-2", description="AWS region")
    endpoint_url: str | None = Field(
        default=None,
        description="Custom S3 endpoint URL (e.g. for MinIO)",
    )


class SupabaseConfig(BaseSettings):
    """Supabase project backing the registry, record store and subscriptions."""

    model_config = {"env_prefix": "SUPABASE_"}

    url: str = Field(description="Supabase project URL")
    service_role_key: SecretStr = Field(description="Service role key (bypasses RLS)")


class OracleConfig(BaseSettings):
    """Language model used for summarization and translation."""

    model_config = {"env_prefix": "ORACLE_"}

    api_key: SecretStr = Field(description="OpenAI API key")
    model: str = Field(default="gpt-4o-mini", description="Chat completion model name")
    temperature: float = Field(default=0.0, description="Sampling temperature")
    timeout_seconds: float = Field(default=60.0, description="Per-request timeout")


class RetryConfig(BaseSettings):
    """Retry / backoff settings for oracle calls, driven by Tenacity."""

    model_config = {"env_prefix": "RETRY_"}

    max_attempts: int = Field(default=3, description="Maximum oracle attempts per call")
    initial_wait_seconds: float = Field(
        default=1.0,
        description="Initial backoff wait in seconds",
    )
    max_wait_seconds: float = Field(
        default=8.0,
        description="Maximum backoff wait in seconds",
    )
    multiplier: float = Field(default=2.0, description="Exponential backoff multiplier")


class SlackConfig(BaseSettings):
    """Slack webhooks for notifications and the operator side-channel."""

    model_config = {"env_prefix": "SLACK_"}

    logging_webhook_url: str | None = Field(
        default=None,
        description="Webhook receiving a line for every ingested message (disabled if unset)",
    )
    unknown_sender_webhook_url: str | None = Field(
        default=None,
        description="Webhook alerted when no newsletter source matches (disabled if unset)",
    )
    timeout_seconds: float = Field(default=10.0, description="HTTP request timeout")


class PipelineConfig(BaseSettings):
    """Root configuration for the ingestion pipeline.

    Nested configs are populated from their own env-var prefixes.
    """

    model_config = {"env_prefix": "PIPELINE_"}

    host: str = Field(default="0.0.0.0", description="Bind address for the receive hook")
    port: int = Field(default=8000, description="Bind port for the receive hook")
    log_level: str = Field(default="INFO", description="Log level")
    log_json: bool = Field(
        default=True,
        description="Use JSON log output (True for prod, False for dev)",
    )
    read_link_base: str = Field(
        default="https://mailpocket.me/read",
        description="Reader URL; the content key is appended as ?mail=<key>",
    )
    native_language: str = Field(
        default="ko",
        description="Language of the audience; other source languages are translated",
    )
    comparable_body_max_length: int = Field(
        default=10_000,
        description="Cap on the normalized body used for name matching",
    )
    translate_max_length: int = Field(
        default=5_500,
        description="Cap on the plain text submitted for translation",
    )

    s3: S3Config = Field(default_factory=S3Config)
    supabase: SupabaseConfig = Field(default_factory=SupabaseConfig)
    oracle: OracleConfig = Field(default_factory=OracleConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    slack: SlackConfig = Field(default_factory=SlackConfig)
