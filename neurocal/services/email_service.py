"""
Transactional e-mail for NeuroCal.

Sends over SMTP. With EMAIL_ENABLED=false (the default) messages are only
logged. With no SMTP credentials (local development) they are logged too.
Links in messages point at settings.FRONTEND_URL.
"""

import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from html import escape
from typing import Optional

from neurocal.config import settings
from neurocal.utils.logging import mask_email

logger = logging.getLogger(__name__)


class EmailService:
    """SMTP e-mail sender with one method per NeuroCal message."""

    def __init__(self):
        self.smtp_server = settings.SMTP_SERVER
        self.smtp_port = settings.SMTP_PORT
        self.smtp_username = settings.SMTP_USERNAME or None
        self.smtp_password = settings.SMTP_PASSWORD or None
        self.from_email = settings.FROM_EMAIL
        self.from_name = settings.FROM_NAME
        self.enabled = settings.EMAIL_ENABLED
        self.frontend_url = settings.FRONTEND_URL.rstrip("/")

    def send_email(
        self,
        to_email: str,
        subject: str,
        html_content: str,
        text_content: Optional[str] = None
    ) -> bool:
        """
        Send an email.

        Returns True if sent (or logged in local development), False otherwise.
        """
        if not self.enabled:
            logger.info(f"Email disabled, would send to {mask_email(to_email)}: {subject}")
            return False

        try:
            msg = MIMEMultipart('alternative')
            msg['Subject'] = subject
            msg['From'] = f"{self.from_name} <{self.from_email}>"
            msg['To'] = to_email

            if text_content:
                msg.attach(MIMEText(text_content, 'plain'))
            msg.attach(MIMEText(html_content, 'html'))

            if self.smtp_username and self.smtp_password:
                with smtplib.SMTP(self.smtp_server, self.smtp_port) as server:
                    server.starttls()
                    server.login(self.smtp_username, self.smtp_password)
                    server.send_message(msg)
            else:
                logger.info(f"No SMTP credentials, would send email to {mask_email(to_email)}: {subject}")

            return True

        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Error sending email to {mask_email(to_email)}: {str(e)}")
            return False

    def _greeting(self, name: Optional[str]) -> str:
        # Names are user input and go into HTML bodies
        return f"<p>Hi {escape(name or 'there')},</p>"

    def send_verification_email(self, to_email: str, name: Optional[str], token: str) -> bool:
        link = f"{self.frontend_url}/verify-email?token={token}"
        html = (
            self._greeting(name)
            + "<p>Welcome to NeuroCal. Please confirm your e-mail address to activate your account.</p>"
            + f'<p><a href="{link}">Verify my e-mail</a></p>'
            + f"<p>This link expires in {settings.EMAIL_VERIFICATION_TTL_HOURS} hours.</p>"
        )
        text = f"Verify your NeuroCal e-mail address: {link}"
        return self.send_email(to_email, "Verify your NeuroCal account", html, text)

    def send_password_reset_email(self, to_email: str, name: Optional[str], token: str) -> bool:
        link = f"{self.frontend_url}/reset-password?token={token}"
        html = (
            self._greeting(name)
            + "<p>We received a request to reset your NeuroCal password.</p>"
            + f'<p><a href="{link}">Choose a new password</a></p>'
            + f"<p>This link expires in {settings.PASSWORD_RESET_TTL_HOURS} hour(s). "
            + "If you did not ask for a reset you can ignore this e-mail.</p>"
        )
        text = f"Reset your NeuroCal password: {link}"
        return self.send_email(to_email, "Reset your NeuroCal password", html, text)

    def send_welcome_email(self, to_email: str, name: Optional[str]) -> bool:
        html = (
            self._greeting(name)
            + "<p>Your e-mail is verified and your free trial of NeuroCal Pro has started.</p>"
            + f'<p><a href="{self.frontend_url}/dashboard">Open your calendar</a></p>'
        )
        return self.send_email(to_email, "Welcome to NeuroCal", html)

    def send_trial_ending_soon_email(self, to_email: str, name: Optional[str], days_left: int) -> bool:
        day_word = "day" if days_left == 1 else "days"
        html = (
            self._greeting(name)
            + f"<p>Your NeuroCal trial ends in {days_left} {day_word}.</p>"
            + "<p>Add a payment method to keep AI scheduling and calendar insights.</p>"
            + f'<p><a href="{self.frontend_url}/dashboard/billing">Choose a plan</a></p>'
        )
        return self.send_email(to_email, f"Your NeuroCal trial ends in {days_left} {day_word}", html)

    def send_trial_expired_email(self, to_email: str, name: Optional[str]) -> bool:
        html = (
            self._greeting(name)
            + "<p>Your NeuroCal trial has ended. Your events are safe, but AI features are paused.</p>"
            + f'<p><a href="{self.frontend_url}/dashboard/billing">Upgrade now</a></p>'
        )
        return self.send_email(to_email, "Your NeuroCal trial has ended", html)

    def send_payment_failed_email(self, to_email: str, name: Optional[str]) -> bool:
        html = (
            self._greeting(name)
            + "<p>We could not process your latest NeuroCal payment.</p>"
            + "<p>Please update your payment method to avoid losing access.</p>"
            + f'<p><a href="{self.frontend_url}/dashboard/billing">Update payment method</a></p>'
        )
        return self.send_email(to_email, "NeuroCal payment failed", html)


email_service = EmailService()
