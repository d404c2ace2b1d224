"""
tests/test_notify.py -- Reset link delivery.

smtplib.SMTP is replaced with a MagicMock; no network access happens.
"""

from __future__ import annotations

import logging
import smtplib
from unittest.mock import MagicMock

from auth.notify import LogResetNotifier, SmtpResetNotifier, build_notifier
from tests.helpers import make_settings

URL = "http://localhost:3000/reset-password?token=abc"


def _smtp_settings(**overrides):
    values = {"smtp_user": "mailer", "smtp_password": "secret", "smtp_host": "mail.example.com"}
    values.update(overrides)
    return make_settings(**values)


def test_build_notifier_picks_smtp_when_configured() -> None:
    assert isinstance(build_notifier(_smtp_settings()), SmtpResetNotifier)
    assert isinstance(build_notifier(make_settings()), LogResetNotifier)


def test_smtp_sends_message(monkeypatch) -> None:
    smtp = MagicMock()
    monkeypatch.setattr(smtplib, "SMTP", smtp)

    assert SmtpResetNotifier(_smtp_settings()).send_password_reset("reader@example.com", URL, 15) is True

    smtp.assert_called_once_with("mail.example.com", 587, timeout=10)
    server = smtp.return_value.__enter__.return_value
    server.starttls.assert_called_once()
    server.login.assert_called_once_with("mailer", "secret")
    message = server.send_message.call_args.args[0]
    assert message["To"] == "reader@example.com"
    assert URL in message.get_body(("plain",)).get_content()


def test_smtp_failure_is_reported_not_raised(monkeypatch) -> None:
    smtp = MagicMock(side_effect=OSError("connection refused"))
    monkeypatch.setattr(smtplib, "SMTP", smtp)
    assert SmtpResetNotifier(_smtp_settings()).send_password_reset("reader@example.com", URL, 15) is False


def test_log_notifier_hides_link_outside_debug(caplog) -> None:
    with caplog.at_level(logging.INFO, logger="finder.notify"):
        assert LogResetNotifier(debug=False).send_password_reset("reader@example.com", URL, 15) is False
    assert URL not in caplog.text


def test_log_notifier_shows_link_in_debug(caplog) -> None:
    with caplog.at_level(logging.INFO, logger="finder.notify"):
        LogResetNotifier(debug=True).send_password_reset("reader@example.com", URL, 15)
    assert URL in caplog.text
