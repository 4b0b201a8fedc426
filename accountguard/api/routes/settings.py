"""
Settings Endpoints: privacy, notifications, profile and display preferences.
"""
from fastapi import APIRouter, Depends

from ..models import (
    PrivacySettings,
    PrivacySettingsUpdate,
    PrivacySettingsResponse,
    NotificationSettings,
    NotificationSettingsUpdate,
    NotificationSettingsResponse,
    Profile,
    ProfileUpdate,
    ProfileResponse,
    Preferences,
    PreferencesUpdate,
    PreferencesResponse,
    ErrorResponse,
)
from ..deps import get_current_identity, get_settings_service
from ...auth.identity import Identity
from ...services import SettingsService

router = APIRouter(prefix="/settings", tags=["Settings"])


@router.get("/privacy", response_model=PrivacySettingsResponse)
def get_privacy_settings(
    identity: Identity = Depends(get_current_identity),
    service: SettingsService = Depends(get_settings_service),
):
    settings = service.get_privacy_settings(identity)
    return PrivacySettingsResponse(settings=PrivacySettings.model_validate(settings))


@router.patch("/privacy", response_model=PrivacySettingsResponse)
def update_privacy_settings(
    update: PrivacySettingsUpdate,
    identity: Identity = Depends(get_current_identity),
    service: SettingsService = Depends(get_settings_service),
):
    """Update privacy flags. Omitted fields are left as they are."""
    settings = service.update_privacy_settings(identity, update.model_dump(exclude_unset=True, exclude_none=True))
    return PrivacySettingsResponse(settings=PrivacySettings.model_validate(settings))


@router.get("/notifications", response_model=NotificationSettingsResponse)
def get_notification_settings(
    identity: Identity = Depends(get_current_identity),
    service: SettingsService = Depends(get_settings_service),
):
    settings = service.get_notification_settings(identity)
    return NotificationSettingsResponse(settings=NotificationSettings.model_validate(settings))


@router.patch("/notifications", response_model=NotificationSettingsResponse)
def update_notification_settings(
    update: NotificationSettingsUpdate,
    identity: Identity = Depends(get_current_identity),
    service: SettingsService = Depends(get_settings_service),
):
    """Update notification flags. Omitted fields are left as they are."""
    settings = service.update_notification_settings(identity, update.model_dump(exclude_unset=True, exclude_none=True))
    return NotificationSettingsResponse(settings=NotificationSettings.model_validate(settings))


@router.patch(
    "/profile",
    response_model=ProfileResponse,
    responses={400: {"model": ErrorResponse, "description": "Invalid input"}},
)
def update_profile(
    update: ProfileUpdate,
    identity: Identity = Depends(get_current_identity),
    service: SettingsService = Depends(get_settings_service),
):
    """Update display name and phone number. Send phone as null to remove it."""
    profile = service.update_profile(identity, update.model_dump(exclude_unset=True))
    return ProfileResponse(user=Profile.model_validate(profile))


@router.patch(
    "/preferences",
    response_model=PreferencesResponse,
    responses={400: {"model": ErrorResponse, "description": "Invalid input"}},
)
def update_preferences(
    update: PreferencesUpdate,
    identity: Identity = Depends(get_current_identity),
    service: SettingsService = Depends(get_settings_service),
):
    """Update theme (light, dark or system), language and timezone."""
    preferences = service.update_preferences(identity, update.model_dump(exclude_unset=True))
    return PreferencesResponse(user=Preferences.model_validate(preferences))
