"""
Tests for the logging email delivery.
"""
import logging

from accountguard.notifications.delivery import LoggingEmailDelivery, get_email_delivery
from accountguard.utils.secrets import mask_secret


class TestLoggingEmailDelivery:

    def test_logs_masked_values(self, caplog):
        delivery = LoggingEmailDelivery()
        token = "a" * 64

        with caplog.at_level(logging.INFO, logger="accountguard.notifications.delivery"):
            delivery.send_email_change_verification("new.person@example.com", token)

        assert delivery.sent_count == 1
        assert token not in caplog.text
        assert "new.person@example.com" not in caplog.text

    def test_singleton(self):
        assert get_email_delivery() is get_email_delivery()


class TestMaskSecret:

    def test_short_values_fully_masked(self):
        assert "abc" not in mask_secret("abc")

    def test_long_values_keep_prefix_only(self):
        masked = mask_secret("supersecretvalue")
        assert masked != "supersecretvalue"
        assert "secretvalue" not in masked
