"""
Outgoing email over SMTP.
The app runs without mail configured; verification mail then fails loudly
and contact messages are skipped.
"""
import smtplib
from email.message import EmailMessage
from typing import Optional

from config import Settings
from errors import ServiceUnavailableError
from logger import practice_logger

APP_NAME = "Math Practice App"


def verification_text(code: str, name: str = "", expiry_minutes: int = 15) -> str:
    greeting = f"Hello {name}," if name else "Hello,"
    return (
        f"{APP_NAME} - Email Verification\n\n"
        f"{greeting}\n\n"
        f"Please use the verification code below to continue:\n\n"
        f"VERIFICATION CODE: {code}\n\n"
        f"- This code expires in {expiry_minutes} minutes\n"
        f"- Never share this code with anyone\n"
        f"- If you didn't request this, please ignore this email\n"
    )


class Mailer:

    def __init__(
        self,
        host: str,
        port: int,
        user: Optional[str],
        password: Optional[str],
        sender: str,
        contact_to: Optional[str] = None,
        expiry_minutes: int = 15,
    ):
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.sender = sender
        self.contact_to = contact_to or user
        self.expiry_minutes = expiry_minutes

    @classmethod
    def from_settings(cls, settings: Settings) -> "Mailer":
        return cls(
            host=settings.email_host,
            port=settings.email_port,
            user=settings.email_user,
            password=settings.email_app_password,
            sender=settings.email_from,
            contact_to=settings.contact_to,
            expiry_minutes=settings.code_expiry_minutes,
        )

    @property
    def configured(self) -> bool:
        return bool(self.user and self.password)

    def _send(self, message: EmailMessage) -> None:
        with smtplib.SMTP(self.host, self.port, timeout=30) as smtp:
            smtp.starttls()
            smtp.login(self.user, self.password)
            smtp.send_message(message)

    def send_verification_email(self, email: str, code: str, name: str = "") -> dict:
        if not self.configured:
            raise ServiceUnavailableError("Email service not configured")
        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = email
        message["Subject"] = "Verify Your Email Address"
        message.set_content(verification_text(code, name, self.expiry_minutes))
        try:
            self._send(message)
        except (smtplib.SMTPException, OSError) as e:
            practice_logger.error(f"Failed to send verification email: {e}")
            raise ServiceUnavailableError("Failed to send verification email") from e
        practice_logger.info("📧 Verification email sent")
        return {"skipped": False}

    def send_contact_email(self, name: str, from_email: str, subject: str, message_text: str) -> dict:
        if not self.configured or not self.contact_to:
            practice_logger.warning("Contact message received but email is not configured; skipping delivery")
            return {"skipped": True}
        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = self.contact_to
        message["Reply-To"] = from_email
        message["Subject"] = f"[Contact] {subject}"
        message.set_content(f"From: {name} <{from_email}>\n\n{message_text}")
        self._send(message)
        practice_logger.info("📧 Contact message delivered")
        return {"skipped": False}
