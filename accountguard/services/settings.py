"""
Privacy, notification, profile and preference settings for the caller.
"""
import logging
from datetime import datetime
from typing import Any, Callable, Dict

from ..auth.identity import Identity
from ..auth.tokens import utcnow
from ..errors import InputValidationError, NotFoundError

logger = logging.getLogger(__name__)

PROFILE_VISIBILITY_CHOICES = ("private", "public", "friends")
THEME_CHOICES = ("light", "dark", "system")

PRIVACY_FIELDS = frozenset({
    "profile_visibility",
    "data_sharing",
    "analytics_enabled",
    "cookies_accepted",
})

NOTIFICATION_FIELDS = frozenset({
    "email_marketing",
    "email_transactional",
    "email_updates",
    "push_enabled",
    "in_app_enabled",
})

PROFILE_FIELDS = ("name", "phone")

PREFERENCE_FIELDS = ("theme", "language", "timezone")


def _check_fields(changes: Dict[str, Any], allowed: frozenset) -> None:
    unknown = sorted(set(changes) - allowed)
    if unknown:
        raise InputValidationError(
            details={field: ["Unknown setting"] for field in unknown}
        )


class SettingsService:
    def __init__(self, db, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.clock = clock

    def get_privacy_settings(self, identity: Identity) -> Dict[str, Any]:
        settings = self.db.get_privacy_settings(identity.user_id)
        if settings is None:
            settings = self.db.update_privacy_settings(identity.user_id, {})
        return settings

    def update_privacy_settings(self, identity: Identity, changes: Dict[str, Any]) -> Dict[str, Any]:
        """
        Apply a partial update of the privacy flags.

        Accepting cookies stamps cookies_accepted_at; withdrawing clears it.
        """
        _check_fields(changes, PRIVACY_FIELDS)
        visibility = changes.get("profile_visibility")
        if visibility is not None and visibility not in PROFILE_VISIBILITY_CHOICES:
            raise InputValidationError(
                details={"profile_visibility": [
                    f"Must be one of: {', '.join(PROFILE_VISIBILITY_CHOICES)}"
                ]}
            )

        values = dict(changes)
        if "cookies_accepted" in values:
            values["cookies_accepted_at"] = self.clock() if values["cookies_accepted"] else None

        settings = self.db.update_privacy_settings(identity.user_id, values)
        logger.info(f"Privacy settings updated for user {identity.user_id}: {sorted(changes)}")
        return settings

    def get_notification_settings(self, identity: Identity) -> Dict[str, Any]:
        settings = self.db.get_notification_settings(identity.user_id)
        if settings is None:
            settings = self.db.update_notification_settings(identity.user_id, {})
        return settings

    def update_notification_settings(
        self, identity: Identity, changes: Dict[str, Any]
    ) -> Dict[str, Any]:
        _check_fields(changes, NOTIFICATION_FIELDS)
        settings = self.db.update_notification_settings(identity.user_id, changes)
        logger.info(f"Notification settings updated for user {identity.user_id}: {sorted(changes)}")
        return settings

    def update_profile(self, identity: Identity, changes: Dict[str, Any]) -> Dict[str, Any]:
        """
        Update the display name and phone number.

        Passing phone as None clears it; name cannot be cleared.

        Raises:
            InputValidationError: Unknown field or empty name.
            NotFoundError: User no longer exists.
        """
        _check_fields(changes, frozenset(PROFILE_FIELDS))
        if "name" in changes and not changes["name"]:
            raise InputValidationError(details={"name": ["Name cannot be empty"]})

        profile = self.db.update_user_fields(
            identity.user_id, changes, columns=["name", "email", "phone"]
        )
        if profile is None:
            raise NotFoundError("User")
        logger.info(f"Profile updated for user {identity.user_id}: {sorted(changes)}")
        return profile

    def update_preferences(self, identity: Identity, changes: Dict[str, Any]) -> Dict[str, Any]:
        """
        Update theme, language and timezone.

        Raises:
            InputValidationError: Unknown field, empty value or unknown theme.
            NotFoundError: User no longer exists.
        """
        _check_fields(changes, frozenset(PREFERENCE_FIELDS))
        empty = sorted(field for field, value in changes.items() if not value)
        if empty:
            raise InputValidationError(details={field: ["Cannot be empty"] for field in empty})
        theme = changes.get("theme")
        if theme is not None and theme not in THEME_CHOICES:
            raise InputValidationError(
                details={"theme": [f"Must be one of: {', '.join(THEME_CHOICES)}"]}
            )

        preferences = self.db.update_user_fields(
            identity.user_id, changes, columns=list(PREFERENCE_FIELDS)
        )
        if preferences is None:
            raise NotFoundError("User")
        logger.info(f"Preferences updated for user {identity.user_id}: {sorted(changes)}")
        return preferences
