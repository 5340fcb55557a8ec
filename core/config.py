from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Database
    database_url: str = "postgresql+asyncpg://postgres:postgres@db:5432/pairly"

    # Redis
    redis_url: str = "redis://redis:6379/0"

    # API
    api_port: int = 8000

    # Realtime notifier: "redis" (Redis Streams) or "memory" (single process)
    notifier_backend: str = "redis"
    stream_maxlen: int = 10000
    stream_block_ms: int = 5000

    # Identity gateway
    identity_secret: str = ""  # HMAC secret shared with the upstream identity gateway
    identity_trust_header: bool = False  # accept unsigned X-User-Id (development only)

    # Conversations
    message_max_length: int = 2000

    # Reconciliation worker
    reconcile_interval_seconds: float = 30.0
    reconcile_batch_size: int = 100

    # Logging
    log_level: str = "INFO"

    # Environment
    environment: str = "development"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def is_development(self) -> bool:
        return self.environment == "development"


settings = Settings()
