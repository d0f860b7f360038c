from email.message import EmailMessage
from email.utils import formataddr
import asyncio
import logging
import smtplib

from filyo.core.config import settings
from filyo.core.errors import UpstreamUnavailable
from filyo.models import AppSettings

logger = logging.getLogger("filyo.email")


def smtp_configured(app_settings: AppSettings) -> bool:
    return bool(app_settings.smtp_host and app_settings.smtp_from)


def _send(app_settings: AppSettings, msg: EmailMessage):
    port = app_settings.smtp_port or 587
    timeout = settings.smtp_timeout_seconds
    if app_settings.smtp_secure and port == 465:
        server = smtplib.SMTP_SSL(app_settings.smtp_host, port, timeout=timeout)
    else:
        server = smtplib.SMTP(app_settings.smtp_host, port, timeout=timeout)
    with server:
        if app_settings.smtp_secure and port != 465:
            server.starttls()
        if app_settings.smtp_user:
            server.login(app_settings.smtp_user, app_settings.smtp_pass or "")
        server.send_message(msg)


async def send_email(app_settings: AppSettings, to_email: str, subject: str, text: str, html: str | None = None):
    """Send through the SMTP server stored in app settings."""
    if not smtp_configured(app_settings):
        raise UpstreamUnavailable("SMTP is not configured")

    msg = EmailMessage()
    msg["From"] = formataddr((app_settings.app_name, app_settings.smtp_from))
    msg["To"] = to_email
    msg["Subject"] = subject
    msg.set_content(text)
    if html:
        msg.add_alternative(html, subtype="html")

    loop = asyncio.get_running_loop()
    try:
        await loop.run_in_executor(None, _send, app_settings, msg)
    except (OSError, smtplib.SMTPException) as exc:
        logger.error("Mail to %s failed: %s", to_email, exc)
        raise UpstreamUnavailable(f"Mail delivery failed: {exc}", status_code=502) from exc
    logger.info("Mail sent to %s: %s", to_email, subject)


async def check_smtp_connection(host: str, port: int) -> None:
    """Open and close a TCP connection to the SMTP server."""
    try:
        _, writer = await asyncio.wait_for(
            asyncio.open_connection(host, port), timeout=settings.smtp_timeout_seconds
        )
    except (OSError, asyncio.TimeoutError) as exc:
        raise UpstreamUnavailable(f"Connection failed: {exc or 'timeout'}", status_code=502) from exc
    writer.close()
    await writer.wait_closed()
