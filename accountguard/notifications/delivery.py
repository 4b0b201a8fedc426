"""
Email delivery collaborator.

The account lifecycle hands verification links to an EmailDelivery and does
not care how they leave the building. LoggingEmailDelivery logs a masked
record instead of sending, for development and tests.
"""
import logging
from typing import Optional, Protocol

from ..utils.secrets import mask_secret

logger = logging.getLogger(__name__)


class EmailDelivery(Protocol):
    def send_email_change_verification(self, new_email: str, token: str) -> None:
        ...


class LoggingEmailDelivery:
    """Logs email-change verifications instead of sending them."""

    def __init__(self):
        self.sent_count = 0

    def send_email_change_verification(self, new_email: str, token: str) -> None:
        self.sent_count += 1
        logger.info(
            f"Email change verification for {mask_secret(new_email, 2)} "
            f"(token {mask_secret(token)})"
        )


_delivery_instance: Optional[EmailDelivery] = None


def get_email_delivery() -> EmailDelivery:
    """Get the process-wide EmailDelivery (logging implementation)."""
    global _delivery_instance
    if _delivery_instance is None:
        _delivery_instance = LoggingEmailDelivery()
    return _delivery_instance
