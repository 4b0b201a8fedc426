"""
Shared utilities for AccountGuard.
"""
from .secrets import get_secret, get_required_secret, mask_secret

__all__ = ["get_secret", "get_required_secret", "mask_secret"]
