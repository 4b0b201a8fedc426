"""
Tests for privacy and notification settings.
"""
import pytest

from accountguard.errors import InputValidationError
from accountguard.services.settings import SettingsService


@pytest.fixture
def service(db, clock):
    return SettingsService(db, clock=clock)


@pytest.fixture
def identity(alice, login_as):
    identity, _ = login_as(alice)
    return identity


class TestPrivacySettings:

    def test_defaults(self, service, identity):
        settings = service.get_privacy_settings(identity)
        assert settings["profile_visibility"] == "private"
        assert settings["data_sharing"] is False
        assert settings["cookies_accepted"] is False
        assert settings["cookies_accepted_at"] is None

    def test_partial_update(self, service, identity):
        settings = service.update_privacy_settings(identity, {"data_sharing": True})
        assert settings["data_sharing"] is True
        assert settings["profile_visibility"] == "private"

    def test_accepting_cookies_stamps_time(self, service, identity, clock):
        settings = service.update_privacy_settings(identity, {"cookies_accepted": True})
        assert settings["cookies_accepted_at"] == clock()

    def test_withdrawing_cookies_clears_time(self, service, identity):
        service.update_privacy_settings(identity, {"cookies_accepted": True})
        settings = service.update_privacy_settings(identity, {"cookies_accepted": False})
        assert settings["cookies_accepted_at"] is None

    def test_invalid_visibility(self, service, identity):
        with pytest.raises(InputValidationError) as exc_info:
            service.update_privacy_settings(identity, {"profile_visibility": "everyone"})
        assert "profile_visibility" in exc_info.value.details

    def test_unknown_field(self, service, identity):
        with pytest.raises(InputValidationError):
            service.update_privacy_settings(identity, {"password_hash": "x"})

    def test_missing_row_is_created(self, service, db, make_user, login_as):
        user_id = db.create_user("bare@example.com", None)
        identity, _ = login_as({"user_id": user_id, "email": "bare@example.com"})

        settings = service.update_privacy_settings(identity, {"profile_visibility": "friends"})

        assert settings["profile_visibility"] == "friends"
        assert settings["analytics_enabled"] is True


class TestNotificationSettings:

    def test_defaults(self, service, identity):
        settings = service.get_notification_settings(identity)
        assert settings["email_marketing"] is False
        assert settings["email_transactional"] is True
        assert settings["in_app_enabled"] is True

    def test_update(self, service, identity):
        settings = service.update_notification_settings(
            identity, {"email_marketing": True, "push_enabled": True}
        )
        assert settings["email_marketing"] is True
        assert settings["push_enabled"] is True
        assert settings["email_updates"] is True

    def test_settings_are_per_user(self, service, identity, bob, login_as):
        bob_identity, _ = login_as(bob)
        service.update_notification_settings(identity, {"email_marketing": True})

        assert service.get_notification_settings(bob_identity)["email_marketing"] is False


class TestProfile:

    def test_update_name_and_phone(self, service, identity):
        profile = service.update_profile(identity, {"name": "Alice B.", "phone": "+41 79 000 00 00"})

        assert profile["name"] == "Alice B."
        assert profile["phone"] == "+41 79 000 00 00"
        assert profile["email"] == "alice@example.com"

    def test_phone_can_be_cleared(self, service, identity, db):
        service.update_profile(identity, {"phone": "+41 79 000 00 00"})
        profile = service.update_profile(identity, {"phone": None})

        assert profile["phone"] is None
        assert db.get_user_by_id(identity.user_id)["name"] == "Alice"

    def test_empty_name_rejected(self, service, identity):
        with pytest.raises(InputValidationError) as exc_info:
            service.update_profile(identity, {"name": ""})
        assert "name" in exc_info.value.details

    def test_other_columns_cannot_be_written(self, service, identity, db):
        with pytest.raises(InputValidationError):
            service.update_profile(identity, {"email": "mallory@example.com"})
        assert db.get_user_by_id(identity.user_id)["email"] == "alice@example.com"


class TestPreferences:

    def test_defaults(self, db, identity):
        user = db.get_user_by_id(identity.user_id)
        assert (user["theme"], user["language"], user["timezone"]) == ("system", "en", "UTC")

    def test_partial_update(self, service, identity):
        preferences = service.update_preferences(identity, {"theme": "dark"})

        assert preferences["theme"] == "dark"
        assert preferences["language"] == "en"

    def test_unknown_theme_rejected(self, service, identity):
        with pytest.raises(InputValidationError) as exc_info:
            service.update_preferences(identity, {"theme": "neon"})
        assert "theme" in exc_info.value.details

    def test_empty_value_rejected(self, service, identity):
        with pytest.raises(InputValidationError):
            service.update_preferences(identity, {"timezone": ""})
