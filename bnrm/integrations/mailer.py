import html
import logging
import smtplib
import ssl
from email.message import EmailMessage

from bnrm.core.config import settings

logger = logging.getLogger(__name__)


def send_email(*, email_to: str, subject: str, html_content: str, text_content: str | None = None) -> bool:
    """Send one message through the configured SMTP relay; False when email is disabled or fails."""
    if not settings.emails_enabled:
        logger.info("Emails disabled, not sending '%s' to %s", subject, email_to)
        return False

    message = EmailMessage()
    message["Subject"] = subject
    message["From"] = f"{settings.EMAILS_FROM_NAME} <{settings.EMAILS_FROM_EMAIL}>"
    message["To"] = email_to
    message.set_content(text_content or "Ce message nécessite un client compatible HTML.")
    message.add_alternative(html_content, subtype="html")

    try:
        if settings.SMTP_SSL:
            server = smtplib.SMTP_SSL(
                settings.SMTP_HOST, settings.SMTP_PORT, timeout=30, context=ssl.create_default_context()
            )
        else:
            server = smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT, timeout=30)
        with server:
            if settings.SMTP_TLS and not settings.SMTP_SSL:
                server.starttls(context=ssl.create_default_context())
            if settings.SMTP_USER:
                server.login(settings.SMTP_USER, settings.SMTP_PASSWORD or "")
            server.send_message(message)
    except (smtplib.SMTPException, OSError) as e:
        logger.error("Failed to send '%s' to %s: %s", subject, email_to, e)
        return False

    logger.info("Sent '%s' to %s", subject, email_to)
    return True


def render_notice(title: str, paragraphs: list[str]) -> str:
    body = "".join(f"<p>{html.escape(p)}</p>" for p in paragraphs)
    return (
        "<div style=\"font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;\">"
        f"<h2>{html.escape(title)}</h2>{body}"
        "<p style=\"color: #888; font-size: 12px;\">"
        "Cet email a été envoyé automatiquement, merci de ne pas y répondre.</p>"
        "</div>"
    )
