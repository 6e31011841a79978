"""
Configuration management for the matchmaking service.
Loads settings from environment variables.
"""
from typing import List, Optional, Union
from pydantic_settings import BaseSettings
from pydantic import Field, field_validator


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    ENVIRONMENT: str = Field(default="development", description="'development' or 'production'")

    # Database configuration
    DATABASE_URL: Optional[str] = Field(default=None, description="Full SQLAlchemy async URL; overrides MYSQL_* when set")
    MYSQL_HOST: str = Field(default="localhost", description="MySQL host")
    MYSQL_PORT: int = Field(default=3306, description="MySQL port")
    MYSQL_USER: str = Field(default="strangers_user", description="MySQL username")
    MYSQL_PASSWORD: str = Field(default="strangers_pass", description="MySQL password")
    MYSQL_DATABASE: str = Field(default="strangers", description="MySQL database name")

    # Database connection pool configuration
    DB_POOL_SIZE: int = Field(default=20, description="Database connection pool size")
    DB_MAX_OVERFLOW: int = Field(default=10, description="Maximum overflow connections for database pool")

    # Redis configuration
    REDIS_HOST: str = Field(default="localhost", description="Redis host")
    REDIS_PORT: int = Field(default=6379, description="Redis port")
    REDIS_DB: int = Field(default=0, description="Redis database number")
    REDIS_PASSWORD: str = Field(default="", description="Redis password (empty if not set)")
    REDIS_MAX_CONNECTIONS: int = Field(default=50, description="Maximum Redis connection pool size")

    # FastAPI configuration
    API_HOST: str = Field(default="0.0.0.0", description="FastAPI host")
    API_PORT: int = Field(default=8000, description="FastAPI port")
    API_SECRET_KEY: str = Field(default="your-secret-key", description="HS256 key for identity tokens")
    CORS_ORIGINS: Union[str, List[str]] = Field(default="*", description="Comma-separated allowed origins")

    @field_validator('CORS_ORIGINS', mode='before')
    @classmethod
    def parse_cors_origins(cls, v):
        """Parse comma-separated origins to list."""
        if isinstance(v, list):
            return v
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(',') if origin.strip()] or ["*"]
        return ["*"]

    # Matchmaking backend
    MATCHMAKING_BACKEND: str = Field(
        default="redis",
        description="Backend for waiting pools: 'redis' or 'memory'"
    )

    # Matching rules
    MATCH_MIN_SHARED: int = Field(default=2, description="Shared interests that accept a candidate on their own")
    MATCH_MIN_JACCARD: float = Field(default=0.2, description="Jaccard score that accepts a candidate on its own")
    MATCH_SAMPLE: int = Field(default=30, description="Maximum candidates scored per interest pass")
    RANDOM_SCAN_LIMIT: int = Field(default=50, description="Maximum pops from the random queue per request")
    GUEST_SCAN_LIMIT: int = Field(default=10, description="Maximum pops from the guest queue per request")
    GUEST_RANDOM_SCAN_LIMIT: int = Field(default=20, description="Maximum random-queue pops for a guest request")
    ALLOW_SELF_MATCH: bool = Field(default=False, description="Allow pairing a user with themselves (never in production)")
    PENDING_WRITE_RETRIES: int = Field(default=2, description="Extra attempts for the partner's pending marker")

    # TTLs
    QUEUE_TTL_SECONDS: int = Field(default=180, description="Queue shadow key TTL for account holders")
    GUEST_QUEUE_TTL_SECONDS: int = Field(default=300, description="Queue shadow key TTL for guests")
    PRESENCE_TTL_SECONDS: int = Field(default=90, description="Presence marker TTL for account holders")
    GUEST_PRESENCE_TTL_SECONDS: int = Field(default=60, description="Presence marker TTL for guests")
    PENDING_TTL_SECONDS: int = Field(default=120, description="Pending match marker TTL")
    GUEST_SESSION_MINUTES: int = Field(default=30, description="Guest session token lifetime")

    # Client polling hints
    PENDING_POLL_INTERVAL_SECONDS: int = Field(default=3, description="How often a queued client polls for its match")
    ACCOUNT_WAIT_TIMEOUT_SECONDS: int = Field(default=120, description="Client-side queue timeout for account holders")
    GUEST_WAIT_TIMEOUT_SECONDS: int = Field(default=45, description="Client-side queue timeout for guests")

    # Rate limiting
    RATE_LIMIT_MESSAGES: int = Field(default=5, description="Max chat messages per window per identity")
    RATE_LIMIT_WINDOW_SECONDS: int = Field(default=10, description="Chat rate limit window")
    MAX_MESSAGE_LENGTH: int = Field(default=2000, description="Longest chat message relayed")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    @property
    def self_match_allowed(self) -> bool:
        """Self matching is a development aid and is ignored in production."""
        return self.ALLOW_SELF_MATCH and not self.is_production

    @property
    def database_url(self) -> str:
        """Build database connection URL."""
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return f"mysql+aiomysql://{self.MYSQL_USER}:{self.MYSQL_PASSWORD}@{self.MYSQL_HOST}:{self.MYSQL_PORT}/{self.MYSQL_DATABASE}"

    @property
    def redis_url(self) -> str:
        """Build Redis connection URL."""
        if self.REDIS_PASSWORD:
            return f"redis://:{self.REDIS_PASSWORD}@{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"


# Global settings instance
settings = Settings()
