"""
Outbound notifications for AccountGuard.
"""
from .delivery import EmailDelivery, LoggingEmailDelivery, get_email_delivery

__all__ = ["EmailDelivery", "LoggingEmailDelivery", "get_email_delivery"]
