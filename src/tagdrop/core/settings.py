"""Application settings and configuration.

This module defines all configuration options for the Tag Drop service.
Settings are loaded from environment variables with sensible defaults.
"""

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_DEFAULT_HASH_SECRET = "tagdrop-drop-token-hash"
_DEFAULT_RATE_LIMIT_SECRET = "tagdrop-drop-rate-limit"


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Secrets follow fallback chains so that a single shared ``JWT_SECRET`` is
    enough for development while production deployments can separate the
    hashing, derivation and rate-limit keys.
    """

    # Application metadata
    app_name: str = Field(default="Tag Drop", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    debug: bool = Field(default=False, alias="DEBUG")

    # Database configuration
    database_url: str = Field(default="sqlite:///./tagdrop.db", alias="DATABASE_URL")
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")

    # Redis configuration for the shared rate-limit backend
    redis_url: str = Field(default="redis://localhost:6379", alias="REDIS_URL")

    # Shared application secret and per-purpose drop secrets
    jwt_secret: str | None = Field(default=None, alias="JWT_SECRET")
    secret_key: str | None = Field(default=None, alias="SECRET_KEY")
    drop_token_hash_secret: str | None = Field(default=None, alias="DROP_TOKEN_HASH_SECRET")
    drop_token_derive_secret: str | None = Field(default=None, alias="DROP_TOKEN_DERIVE_SECRET")
    drop_rate_limit_secret: str | None = Field(default=None, alias="DROP_RATE_LIMIT_SECRET")

    # Message constraints
    drop_message_max_chars: int = Field(default=300, alias="DROP_MESSAGE_MAX_CHARS")
    drop_message_ttl_days: int = Field(default=7, alias="DROP_MESSAGE_TTL_DAYS")
    drop_token_daily_limit: int = Field(default=250, alias="DROP_TOKEN_DAILY_LIMIT")
    drop_token_cooldown_seconds: int = Field(default=5, alias="DROP_TOKEN_COOLDOWN_SECONDS")
    drop_max_messages_per_fetch: int = Field(default=100, alias="DROP_MAX_MESSAGES_PER_FETCH")

    # Fixed-window rate limits (requests per window)
    drop_max_gets_per_ip: int = Field(default=120, alias="DROP_MAX_GETS_PER_IP_PER_MINUTE")
    drop_max_posts_per_ip: int = Field(default=20, alias="DROP_MAX_POSTS_PER_IP_PER_MINUTE")
    drop_max_gets_per_token: int = Field(default=300, alias="DROP_MAX_GETS_PER_TOKEN_PER_MINUTE")
    drop_max_posts_per_token: int = Field(default=40, alias="DROP_MAX_POSTS_PER_TOKEN_PER_MINUTE")
    drop_rate_limit_window_ms: int = Field(default=60_000, alias="DROP_RATE_LIMIT_WINDOW_MS")
    drop_rate_limit_backend: str = Field(default="memory", alias="DROP_RATE_LIMIT_BACKEND")
    drop_rate_limit_prune_interval_seconds: float = Field(
        default=300.0,
        alias="DROP_RATE_LIMIT_PRUNE_INTERVAL_SECONDS",
    )

    # Response jitter applied to every drop response
    drop_jitter_min_ms: int = Field(default=40, alias="DROP_JITTER_MIN_MS")
    drop_jitter_max_ms: int = Field(default=160, alias="DROP_JITTER_MAX_MS")

    # Background expiry sweeping
    drop_expiry_enabled: bool = Field(default=True, alias="DROP_EXPIRY_ENABLED")
    drop_expiry_batch_size: int = Field(default=1000, alias="DROP_EXPIRY_BATCH_SIZE")
    drop_expiry_interval_seconds: float = Field(
        default=3600.0,
        alias="DROP_EXPIRY_INTERVAL_SECONDS",
    )

    # Requester IP resolution behind a reverse proxy
    drop_trust_forwarded_for: bool = Field(default=True, alias="DROP_TRUST_FORWARDED_FOR")

    # CORS configuration for web frontend access
    cors_origins: list[str] = Field(default=["*"], alias="CORS_ORIGINS")
    cors_allow_methods: list[str] = Field(
        default=["GET", "POST", "OPTIONS"],
        alias="CORS_ALLOW_METHODS",
    )
    cors_allow_headers: list[str] = Field(default=["*"], alias="CORS_ALLOW_HEADERS")

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        extra="ignore",
    )

    @model_validator(mode="after")
    def _check_drop_bounds(self) -> "Settings":
        if self.drop_jitter_min_ms < 0 or self.drop_jitter_max_ms < self.drop_jitter_min_ms:
            raise ValueError("DROP_JITTER_MIN_MS must be >= 0 and <= DROP_JITTER_MAX_MS")
        if self.drop_rate_limit_backend not in {"memory", "redis"}:
            raise ValueError("DROP_RATE_LIMIT_BACKEND must be 'memory' or 'redis'")
        if self.drop_expiry_batch_size < 1:
            raise ValueError("DROP_EXPIRY_BATCH_SIZE must be positive")
        return self

    @property
    def token_hash_secret(self) -> str:
        """Return the secret keying stored token hashes."""
        return (
            self.drop_token_hash_secret
            or self.jwt_secret
            or self.secret_key
            or _DEFAULT_HASH_SECRET
        )

    @property
    def token_derive_secret(self) -> str:
        """Return the secret keying per-tag token derivation.

        Falls back to the hash secret only when nothing more specific is set.
        """
        return self.drop_token_derive_secret or self.token_hash_secret

    @property
    def rate_limit_secret(self) -> str:
        """Return the secret used to hash rate-limit identifiers."""
        return (
            self.drop_rate_limit_secret
            or self.jwt_secret
            or self.secret_key
            or _DEFAULT_RATE_LIMIT_SECRET
        )

    @property
    def database_url_sync(self) -> str:
        """Return a sync-compatible database URL for tooling.

        Converts asyncpg URLs to psycopg for synchronous database operations
        like Alembic migrations.
        """
        url = self.database_url
        if url.startswith("postgresql+asyncpg"):
            return url.replace("postgresql+asyncpg", "postgresql+psycopg", 1)
        return url


settings = Settings()
