"""
SMTP integration for outgoing email.

Sends multipart (text + HTML) messages through the configured SMTP server.
"""

from email.message import EmailMessage
import smtplib
import structlog

from config import settings

logger = structlog.get_logger(__name__)


class MailerError(Exception):
    """SMTP delivery error."""
    pass


def build_message(to: str, subject: str, text: str, html: str) -> EmailMessage:
    message = EmailMessage()
    message["From"] = settings.smtp_from
    message["To"] = to
    message["Subject"] = subject
    message.set_content(text)
    message.add_alternative(html, subtype="html")
    return message


def send_email(to: str, subject: str, text: str, html: str) -> bool:
    """
    Send one email.

    Args:
        to: Recipient address
        subject: Subject line
        text: Plain-text body
        html: HTML body

    Returns:
        True if sent, False if SMTP isn't configured

    Raises:
        MailerError: If the SMTP conversation fails
    """
    if not settings.smtp_configured:
        logger.warning("smtp_not_configured_skipping_send", to=to)
        return False

    message = build_message(to, subject, text, html)

    try:
        logger.info("sending_email", to=to, subject=subject)

        with smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=15) as smtp:
            if settings.smtp_use_tls:
                smtp.starttls()
            if settings.smtp_user and settings.smtp_password:
                smtp.login(settings.smtp_user, settings.smtp_password)
            smtp.send_message(message)

        logger.info("email_sent", to=to)
        return True

    except (smtplib.SMTPException, OSError) as e:
        logger.error("email_send_failed", to=to, error=str(e))
        raise MailerError(f"Failed to send email to {to}: {e}") from e
