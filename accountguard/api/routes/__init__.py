"""
API Routes for AccountGuard.
"""
from .auth import router as auth_router
from .mfa import router as mfa_router
from .sessions import router as sessions_router
from .security import router as security_router
from .privacy import router as privacy_router
from .settings import router as settings_router
from .health import router as health_router

__all__ = [
    "auth_router",
    "mfa_router",
    "sessions_router",
    "security_router",
    "privacy_router",
    "settings_router",
    "health_router",
]
