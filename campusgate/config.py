"""
CampusGate - Configuration Management

Centralized configuration using Pydantic Settings.
All secrets and deployment knobs are loaded from environment variables.

Security: No secrets are hardcoded. Use .env for local development.
"""

from pathlib import Path
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Attributes:
        SECRET_KEY: Signing key for identity tokens
        SESSION_DURATION_MINUTES: Absolute session lifetime from login
        ACTIVITY_TIMEOUT_MINUTES: Sliding inactivity window
        RATE_LIMIT_MAX_REQUESTS: Requests allowed per client/path window
        RATE_LIMIT_STORAGE_URI: limits storage backend for rate limit counters
        PUBLIC_PATHS: Path prefixes reachable without authentication
        PUBLIC_API_PATHS: Public API prefixes restricted to PUBLIC_METHODS
        ROUTE_POLICY_FILE: YAML file mapping path prefixes to roles
        CLEANUP_SECRET: Bearer secret for the scheduled cleanup endpoint
    """

    ENVIRONMENT: str = "development"

    # Security
    SECRET_KEY: str = ""  # Must be set via environment
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    SESSION_COOKIE_NAME: str = "campusgate.session-token"

    # Session lifecycle
    SESSION_DURATION_MINUTES: int = 60
    ACTIVITY_TIMEOUT_MINUTES: int = 60
    SESSION_CLEANUP_INTERVAL_SECONDS: int = 300
    SESSION_CLEANUP_ENABLED: bool = True
    CLEANUP_SECRET: str = ""  # Must be set via environment

    # Account lockout
    MAX_LOGIN_ATTEMPTS: int = 5
    LOCKOUT_BASE_MINUTES: int = 30
    LOCKOUT_MAX_HOURS: int = 24
    ATTEMPT_WINDOW_MINUTES: int = 60
    BCRYPT_ROUNDS: int = 12

    # Request gate
    RATE_LIMIT_MAX_REQUESTS: int = 100
    RATE_LIMIT_WINDOW_SECONDS: int = 60
    RATE_LIMIT_STORAGE_URI: str = "memory://"  # redis://host:6379 to share across workers
    AUTH_PROVIDER_PREFIX: str = "/api/auth"
    LOGIN_PATH: str = "/login"
    FORBIDDEN_PATH: str = "/forbidden"
    DEFAULT_LANDING_PATH: str = "/dashboard"
    # Prefix match on "/" boundaries, so "/" itself would expose everything
    PUBLIC_PATHS: List[str] = [
        "/login",
        "/register",
        "/forbidden",
        "/session-reset",
        "/health",
        "/docs",
        "/openapi.json",
        "/favicon.ico",
        "/_next/static",
        "/_next/image",
        "/api/cron",
    ]
    PUBLIC_API_PATHS: List[str] = [
        "/api/auth",
        "/api/register-users",
        "/api/password-reset",
        "/api/contact",
    ]
    PUBLIC_METHODS: List[str] = ["GET", "POST", "OPTIONS"]
    ROUTE_POLICY_FILE: Path = Path(__file__).parent / "gateway" / "routes.yaml"
    SERVER_HEADER: str = "CampusGate"

    # Database (PostgreSQL for production, SQLite for development)
    DATABASE_URL: str = "sqlite:///./campusgate.db"

    # CORS
    ALLOWED_ORIGINS: List[str] = ["http://localhost:3000"]

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    @property
    def session_cookie(self) -> str:
        """Cookie carrying the identity token; secure-prefixed in production."""
        if self.is_production:
            return f"__Secure-{self.SESSION_COOKIE_NAME}"
        return self.SESSION_COOKIE_NAME


settings = Settings()
