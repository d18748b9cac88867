"""
Outbound email over SMTP.

Used by the notification processor. Raises on any delivery problem so
the caller can record the failure; nothing is retried here.
"""

import logging
import smtplib
import ssl
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from html import escape

from flask import current_app

logger = logging.getLogger(__name__)


class EmailDeliveryError(RuntimeError):
    """Raised when a message cannot be handed to the SMTP server."""


def render_body(first_name: str, title: str, message: str) -> tuple[str, str]:
    """Return the plain-text and HTML bodies for a notification email."""
    company = current_app.config["COMPANY_NAME"]
    support = current_app.config["SUPPORT_EMAIL"]
    greeting = f"Hi {first_name}," if first_name else "Hello,"
    text = (
        f"{greeting}\n\n{message}\n\n"
        f"{company}\nQuestions? Contact {support}\n"
    )
    html = (
        f"<p>{escape(greeting)}</p>"
        f"<h2>{escape(title)}</h2>"
        f"<p>{escape(message)}</p>"
        f"<hr><p style=\"color:#666;font-size:12px\">{company} &middot; "
        f"Questions? Contact <a href=\"mailto:{support}\">{support}</a></p>"
    )
    return text, html


def send_email(to_address: str, subject: str, first_name: str, message: str) -> None:
    """
    Send one notification email.

    Args:
        to_address: Recipient email address.
        subject:    Subject line (the notification title).
        first_name: Recipient's first name for the greeting.
        message:    Notification body.

    Raises:
        EmailDeliveryError: If SMTP is not configured or the send fails.
    """
    config = current_app.config
    host = config.get("SMTP_HOST")
    if not host:
        raise EmailDeliveryError("SMTP_HOST is not configured.")

    text, html = render_body(first_name, subject, message)
    msg = MIMEMultipart("alternative")
    msg["Subject"] = subject
    msg["From"] = config["MAIL_FROM_ADDRESS"]
    msg["To"] = to_address
    msg.attach(MIMEText(text, "plain"))
    msg.attach(MIMEText(html, "html"))

    port = config.get("SMTP_PORT", 587)
    context = ssl.create_default_context()
    use_ssl = config.get("SMTP_USE_SSL")
    try:
        if use_ssl:
            server = smtplib.SMTP_SSL(host, port, context=context, timeout=30)
        else:
            server = smtplib.SMTP(host, port, timeout=30)
        with server:
            if not use_ssl:
                server.starttls(context=context)
            if config.get("SMTP_USERNAME"):
                server.login(config["SMTP_USERNAME"], config.get("SMTP_PASSWORD", ""))
            server.sendmail(msg["From"], [to_address], msg.as_string())
    except (smtplib.SMTPException, OSError) as exc:
        raise EmailDeliveryError(f"SMTP delivery to {to_address} failed: {exc}") from exc

    logger.info("Sent email '%s' to %s", subject, to_address)
