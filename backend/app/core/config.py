"""Application configuration loaded from environment variables.

Settings for the database, API, onboarding session tokens, the external
identity and media stores, onboarding policy knobs, and admin notifications.
Uses pydantic-settings for validation and .env file support.
"""

from typing import Literal

from pydantic import SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Known insecure default password that must not be used in production
_INSECURE_DEFAULT_PASSWORD = "onboarding_dev_password"  # nosec B105

# Minimum length for AUTH_SECRET in production (256 bits = 32 bytes)
_MIN_AUTH_SECRET_LENGTH = 32

# Development-only signing secret for onboarding session cookies
_DEV_AUTH_SECRET = "dev-onboarding-secret-change-me-in-production"  # nosec B105


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Database
    database_host: str = "localhost"
    database_port: int = 5432
    database_name: str = "talent_onboarding"
    database_user: str = "onboarding_user"
    database_password: str = _INSECURE_DEFAULT_PASSWORD

    # API
    # 0.0.0.0 binds to all network interfaces (required for Docker containers)
    api_host: str = "0.0.0.0"  # nosec B104
    api_port: int = 8000

    # CORS
    # Never set to ["*"]: the onboarding session travels in a credentialed cookie
    allowed_origins: list[str] = ["http://localhost:3000"]

    # Application
    environment: str = "development"
    log_level: str = "INFO"

    # Onboarding session cookie (signed JWT holding the session key)
    auth_secret: SecretStr = SecretStr(_DEV_AUTH_SECRET)
    auth_issuer: str = "talent-onboarding"
    auth_cookie_name: str = "talent.onboarding-session"
    auth_cookie_secure: bool = True
    auth_cookie_samesite: Literal["lax", "strict", "none"] = "lax"
    auth_cookie_domain: str = ""
    onboarding_session_hours: int = 72

    # Identity store (GoTrue-compatible auth service)
    # "mock" keeps everything in process for local development and tests
    identity_provider: Literal["gotrue", "mock"] = "mock"
    identity_api_url: str = "http://localhost:9999"
    identity_api_key: SecretStr = SecretStr("")
    identity_timeout_seconds: float = 10.0

    # Media store
    media_provider: Literal["http", "mock"] = "mock"
    media_upload_url: str = "http://localhost:9000/upload"
    media_api_key: SecretStr = SecretStr("")
    media_max_size_mb: int = 200

    # Onboarding policy
    min_price_usd: int = 10
    default_price_usd: int = 50
    default_fulfillment_hours: int = 72
    default_admin_fee_percentage: int = 25
    bio_min_length: int = 50
    handle_check_debounce_ms: int = 500
    otp_resend_cooldown_seconds: int = 60
    sms_fallback_delay_seconds: int = 2
    progress_cache_ttl_hours: int = 72
    invite_ttl_days: int = 14
    session_sweep_interval_seconds: int = 600

    # Days after signup on which unfinished talent get a reminder email
    onboarding_reminder_days: list[int] = [1, 3, 7, 14, 30]

    # MFA policy per entry point: self-service signups may skip, invited
    # talent must enroll a verified factor before completion
    mfa_required_self_signup: bool = False
    mfa_required_invited: bool = True

    # Email (admin notification on completed onboarding)
    email_from: str = "noreply@talent-onboarding.local"
    resend_api_key: SecretStr = SecretStr("")
    admin_notification_emails: list[str] = []

    # Frontend URL (admin review links in notification emails)
    frontend_url: str = "http://localhost:3000"

    # Rate limiting on identity and handle-probe endpoints
    rate_limit_identity: str = "10/minute"
    rate_limit_handle_check: str = "60/minute"
    rate_limit_enabled: bool = True

    @property
    def database_url(self) -> str:
        """Async database URL for SQLAlchemy."""
        return (
            f"postgresql+asyncpg://{self.database_user}:{self.database_password}"
            f"@{self.database_host}:{self.database_port}/{self.database_name}"
        )

    @property
    def database_url_sync(self) -> str:
        """Sync database URL for Alembic."""
        return (
            f"postgresql://{self.database_user}:{self.database_password}"
            f"@{self.database_host}:{self.database_port}/{self.database_name}"
        )

    @property
    def media_max_size_bytes(self) -> int:
        """Upper bound for a single introductory video upload."""
        return self.media_max_size_mb * 1024 * 1024

    @model_validator(mode="after")
    def check_production_security(self) -> "Settings":
        """Validate security requirements and onboarding policy sanity.

        Checks:
        - SameSite=None requires Secure flag (browser requirement)
        - CORS must not use wildcard origin (incompatible with credentials)
        - Minimum price and debounce window must be sensible
        - Database password must not be the default in production
        - AUTH_SECRET must be a real secret of >= 32 chars in production
        - Mock collaborators are not allowed in production
        """
        if self.auth_cookie_samesite == "none" and not self.auth_cookie_secure:
            msg = (
                "AUTH_COOKIE_SECURE must be true when AUTH_COOKIE_SAMESITE=none. "
                "Browsers reject SameSite=None cookies without the Secure flag."
            )
            raise ValueError(msg)

        if "*" in self.allowed_origins:
            msg = (
                "ALLOWED_ORIGINS must not contain '*' (wildcard). "
                "The onboarding session cookie is incompatible with wildcard "
                "CORS origins."
            )
            raise ValueError(msg)

        if self.min_price_usd <= 0:
            msg = f"MIN_PRICE_USD must be positive. Got: {self.min_price_usd}"
            raise ValueError(msg)
        if self.default_price_usd < self.min_price_usd:
            msg = (
                "DEFAULT_PRICE_USD cannot be below MIN_PRICE_USD. "
                f"Got: {self.default_price_usd} < {self.min_price_usd}"
            )
            raise ValueError(msg)
        if self.handle_check_debounce_ms < 0:
            msg = (
                "HANDLE_CHECK_DEBOUNCE_MS cannot be negative. "
                f"Got: {self.handle_check_debounce_ms}"
            )
            raise ValueError(msg)

        if self.environment == "production":
            if self.database_password == _INSECURE_DEFAULT_PASSWORD:
                msg = (
                    "Cannot use default database password in production. "
                    "Set DATABASE_PASSWORD environment variable to a secure value."
                )
                raise ValueError(msg)

            secret_value = self.auth_secret.get_secret_value()
            if not secret_value or secret_value == _DEV_AUTH_SECRET:
                msg = (
                    "AUTH_SECRET must be set in production. "
                    'Generate with: python -c "import secrets; '
                    'print(secrets.token_hex(32))"'
                )
                raise ValueError(msg)
            if len(secret_value) < _MIN_AUTH_SECRET_LENGTH:
                msg = (
                    f"AUTH_SECRET must be at least {_MIN_AUTH_SECRET_LENGTH} "
                    "characters for adequate security."
                )
                raise ValueError(msg)

            if self.identity_provider == "mock" or self.media_provider == "mock":
                msg = (
                    "IDENTITY_PROVIDER and MEDIA_PROVIDER must not be 'mock' "
                    "in production."
                )
                raise ValueError(msg)

        return self


settings = Settings()
