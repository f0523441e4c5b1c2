"""Unit tests for configuration and settings."""
import pytest

from common.config import Settings, get_settings, reset_settings_cache


class TestSettings:
    """Test configuration management."""

    def test_get_settings_returns_same_instance(self):
        """Test that get_settings returns cached instance."""
        settings1 = get_settings()
        settings2 = get_settings()

        assert settings1 is settings2

    def test_reset_settings_cache(self):
        """Test that cache can be reset."""
        settings1 = get_settings()
        reset_settings_cache()
        settings2 = get_settings()

        assert settings1 is not settings2

    def test_test_database_url(self):
        """The test run points at a throwaway SQLite file."""
        assert get_settings().database_url.startswith("sqlite")

    def test_jwt_configuration(self):
        settings = get_settings()

        assert settings.jwt_secret
        assert settings.jwt_algorithm == "HS256"
        assert settings.access_token_expire_minutes > 0

    def test_upload_policy_defaults(self):
        settings = Settings()

        assert settings.upload_max_bytes == 10 * 1024 * 1024
        assert settings.upload_max_files == 10
        assert set(settings.upload_allowed_types) == {"image/jpeg", "image/jpg", "image/png", "image/webp"}

    def test_media_defaults(self):
        settings = Settings()

        assert settings.cloudinary_folder == "grand-hotel/rooms"
        assert settings.media_delete_retries == 1
        assert settings.media_timeout_seconds > 0
        assert settings.room_currency == "XAF"

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("CLOUDINARY_CLOUD_NAME", "grand-hotel")
        monkeypatch.setenv("MEDIA_DELETE_RETRIES", "3")
        monkeypatch.setenv("EXPOSE_ERROR_DETAILS", "false")

        settings = Settings()

        assert settings.cloudinary_cloud_name == "grand-hotel"
        assert settings.media_delete_retries == 3
        assert settings.expose_error_details is False

    def test_negative_retries_rejected(self):
        with pytest.raises(ValueError):
            Settings(media_delete_retries=-1)

    def test_rate_limiting_disabled_for_tests(self):
        assert get_settings().rate_limiting_enabled is False
