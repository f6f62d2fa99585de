"""Tests for application configuration.

Settings for the database, session cookie, collaborators and onboarding
policy. Tests cover defaults and production security validation.
"""

import pytest
from pydantic import SecretStr, ValidationError

from app.core.config import _INSECURE_DEFAULT_PASSWORD, Settings

# Reusable test constants
_SECURE_DB_PASSWORD = "my-secure-production-password-123!"
_TEST_AUTH_SECRET = "a" * 64
_PRODUCTION = "production"


def _production(**overrides) -> Settings:
    """Settings that pass every production check unless overridden."""
    values = {
        "environment": _PRODUCTION,
        "database_password": _SECURE_DB_PASSWORD,
        "auth_secret": SecretStr(_TEST_AUTH_SECRET),
        "identity_provider": "gotrue",
        "media_provider": "http",
    }
    values.update(overrides)
    return Settings(**values)


class TestProductionSecurityValidation:
    """Tests for production security requirements."""

    def test_allows_default_password_in_development(self):
        """Default password is allowed in development environment."""
        s = Settings(
            environment="development",
            database_password=_INSECURE_DEFAULT_PASSWORD,
        )
        assert s.database_password == _INSECURE_DEFAULT_PASSWORD

    def test_rejects_default_password_in_production(self):
        """Default password is rejected in production environment."""
        with pytest.raises(ValidationError) as exc_info:
            _production(database_password=_INSECURE_DEFAULT_PASSWORD)

        errors = exc_info.value.errors()
        assert len(errors) == 1
        assert "Cannot use default database password in production" in str(
            errors[0]["msg"]
        )

    def test_accepts_complete_production_config(self):
        s = _production()
        assert s.environment == _PRODUCTION

    def test_rejects_dev_auth_secret_in_production(self):
        """The built-in development secret must be replaced."""
        with pytest.raises(ValidationError, match="AUTH_SECRET must be set"):
            _production(auth_secret=Settings().auth_secret)

    def test_rejects_short_auth_secret_in_production(self):
        with pytest.raises(ValidationError, match="at least 32 characters"):
            _production(auth_secret=SecretStr("short-secret"))

    @pytest.mark.parametrize(
        "overrides",
        [{"identity_provider": "mock"}, {"media_provider": "mock"}],
    )
    def test_rejects_mock_collaborators_in_production(self, overrides):
        with pytest.raises(ValidationError, match="must not be 'mock'"):
            _production(**overrides)

    def test_allows_default_password_in_staging(self):
        """Default password is allowed in non-production environments."""
        s = Settings(
            environment="staging",
            database_password=_INSECURE_DEFAULT_PASSWORD,
        )
        assert s.environment == "staging"


class TestCookieAndCorsValidation:
    """Cookie and CORS combinations browsers would reject."""

    def test_samesite_none_requires_secure(self):
        with pytest.raises(ValidationError, match="AUTH_COOKIE_SECURE must be true"):
            Settings(auth_cookie_samesite="none", auth_cookie_secure=False)

    def test_samesite_none_with_secure_allowed(self):
        s = Settings(auth_cookie_samesite="none", auth_cookie_secure=True)
        assert s.auth_cookie_samesite == "none"

    def test_wildcard_origin_rejected(self):
        with pytest.raises(ValidationError, match="must not contain"):
            Settings(allowed_origins=["*"])


class TestOnboardingPolicyValidation:
    """Sanity checks on onboarding policy knobs."""

    def test_min_price_must_be_positive(self):
        with pytest.raises(ValidationError, match="MIN_PRICE_USD must be positive"):
            Settings(min_price_usd=0)

    def test_default_price_not_below_minimum(self):
        with pytest.raises(ValidationError, match="DEFAULT_PRICE_USD cannot be below"):
            Settings(min_price_usd=20, default_price_usd=10)

    def test_negative_debounce_rejected(self):
        with pytest.raises(ValidationError, match="cannot be negative"):
            Settings(handle_check_debounce_ms=-1)


class TestDefaults:
    """Defaults that onboarding behaviour depends on."""

    def test_policy_defaults(self):
        s = Settings()
        assert s.handle_check_debounce_ms == 500
        assert s.otp_resend_cooldown_seconds == 60
        assert s.sms_fallback_delay_seconds == 2
        assert s.invite_ttl_days == 14

    def test_invited_talent_must_enroll_mfa(self):
        s = Settings()
        assert s.mfa_required_invited is True
        assert s.mfa_required_self_signup is False

    def test_cookie_defaults(self):
        s = Settings()
        assert s.auth_cookie_secure is True
        assert s.auth_cookie_samesite == "lax"

    def test_media_max_size_bytes(self):
        assert Settings(media_max_size_mb=2).media_max_size_bytes == 2 * 1024 * 1024

    def test_database_urls(self):
        s = Settings(
            database_user="u",
            database_password="p",
            database_host="db",
            database_port=5433,
            database_name="n",
        )
        assert s.database_url == "postgresql+asyncpg://u:p@db:5433/n"
        assert s.database_url_sync == "postgresql://u:p@db:5433/n"
