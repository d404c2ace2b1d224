"""
auth/notify.py -- Out-of-band delivery of password reset links.

ResetTokenFlow only knows the ResetNotifier protocol. Two implementations:
  SmtpResetNotifier -- sends a plain-text + HTML email via smtplib
  LogResetNotifier  -- used when SMTP is not configured; logs that a reset was
                       requested and, in debug mode only, the link itself

Delivery failures are logged and reported as False, never raised: the
forgot-password response must look identical whether or not mail went out.
"""

from __future__ import annotations

import html
import logging
import smtplib
from email.message import EmailMessage
from typing import Protocol

from core.config import Settings

logger = logging.getLogger("finder.notify")

APP_NAME = "Little Free Finder"


class ResetNotifier(Protocol):
    def send_password_reset(self, email: str, reset_url: str, expires_minutes: int) -> bool: ...


class SmtpResetNotifier:
    def __init__(self, settings: Settings) -> None:
        self.host = settings.smtp_host
        self.port = settings.smtp_port
        self.user = settings.smtp_user
        self.password = settings.smtp_password
        self.from_address = settings.smtp_from_address
        self.use_tls = settings.smtp_use_tls

    def send_password_reset(self, email: str, reset_url: str, expires_minutes: int) -> bool:
        msg = EmailMessage()
        msg["Subject"] = f"Reset your {APP_NAME} password"
        msg["From"] = f"{APP_NAME} <{self.from_address}>"
        msg["To"] = email
        msg.set_content(
            f"We received a request to reset your password.\n\n"
            f"Open this link to choose a new one:\n\n{reset_url}\n\n"
            f"This link will expire in {expires_minutes} minutes.\n\n"
            f"If you didn't request a password reset, you can safely ignore this email."
        )
        safe_url = html.escape(reset_url, quote=True)
        msg.add_alternative(
            f"""\
<html>
  <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
    <h2>Password Reset Request</h2>
    <p>We received a request to reset your password.</p>
    <p><a href="{safe_url}">Reset Password</a></p>
    <p style="word-break: break-all; color: #666;">{safe_url}</p>
    <p><strong>This link will expire in {expires_minutes} minutes.</strong></p>
    <p style="color: #666; font-size: 12px;">If you didn't request a password reset,
    you can safely ignore this email.</p>
  </body>
</html>
""",
            subtype="html",
        )
        try:
            with smtplib.SMTP(self.host, self.port, timeout=10) as server:
                if self.use_tls:
                    server.starttls()
                server.login(self.user, self.password)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError):
            logger.exception("Failed to send password reset email")
            return False
        logger.info("Password reset email sent")
        return True


class LogResetNotifier:
    def __init__(self, debug: bool = False) -> None:
        self.debug = debug

    def send_password_reset(self, email: str, reset_url: str, expires_minutes: int) -> bool:
        if self.debug:
            logger.info("Password reset link (debug, not emailed): %s", reset_url)
        else:
            logger.warning("Email not configured - password reset link was not delivered")
        return False


def build_notifier(settings: Settings) -> ResetNotifier:
    """Pick SMTP delivery when credentials are configured, logging otherwise."""
    if settings.smtp_user and settings.smtp_password:
        return SmtpResetNotifier(settings)
    return LogResetNotifier(debug=settings.debug)
