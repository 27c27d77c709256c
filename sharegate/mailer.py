"""
Outbound email for share links.
"""

from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage

from .config import get_settings

logger = logging.getLogger(__name__)


class EmailService:
    """Sends share-link emails over SMTP using the configured relay"""

    @staticmethod
    def is_configured() -> bool:
        settings = get_settings()
        return bool(settings.smtp_host and settings.smtp_from_email)

    @staticmethod
    def build_share_email(recipient: str, sender: str, file_name: str, share_url: str, message: str | None = None) -> EmailMessage:
        settings = get_settings()
        msg = EmailMessage()
        msg["Subject"] = f"{sender} shared \"{file_name}\" with you"
        msg["From"] = f"{settings.smtp_from_name} <{settings.smtp_from_email}>"
        msg["To"] = recipient
        lines = [f"{sender} shared a file with you: {file_name}", ""]
        if message:
            lines += [message, ""]
        lines += [f"Download it here: {share_url}", ""]
        msg.set_content("\n".join(lines))
        return msg

    @classmethod
    def send_share_email(cls, recipient: str, sender: str, file_name: str, share_url: str, message: str | None = None) -> bool:
        """
        Deliver a share link. Returns False instead of raising so the caller
        can roll back the link it created for this email.
        """
        if not cls.is_configured():
            logger.warning(f"SMTP not configured; share email to {recipient} not sent")
            return False
        settings = get_settings()
        msg = cls.build_share_email(recipient, sender, file_name, share_url, message)
        try:
            with smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=10) as smtp:
                if settings.smtp_use_tls:
                    smtp.starttls()
                if settings.smtp_username:
                    smtp.login(settings.smtp_username, settings.smtp_password)
                smtp.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send share email to {recipient}: {e}")
            return False
        logger.info(f"Share email for {file_name} sent to {recipient}")
        return True
