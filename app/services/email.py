import asyncio
import html
import smtplib
from email.message import EmailMessage
from typing import Optional

import resend
from starlette.concurrency import run_in_threadpool

from app.core.config import Settings, logger


class Mailer:
    """
    Outbound mail: Resend first, SMTP as fallback.

    `send` never raises; it reports whether a transport accepted the message
    within MAIL_TIMEOUT_SECONDS.
    """

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    async def send(self, to_email: str, subject: str, body: str, reply_to: Optional[str] = None) -> bool:
        try:
            return await asyncio.wait_for(
                run_in_threadpool(self._send_email, to_email, subject, body, reply_to),
                timeout=self.settings.MAIL_TIMEOUT_SECONDS,
            )
        except asyncio.TimeoutError:
            logger.error(f"[email] timed out after {self.settings.MAIL_TIMEOUT_SECONDS}s to={to_email}")
            return False

    def _send_email(self, to_email: str, subject: str, body: str, reply_to: Optional[str]) -> bool:
        if self._send_via_resend(to_email, subject, body, reply_to):
            return True
        if self._send_via_smtp(to_email, subject, body, reply_to):
            return True
        logger.warning(f"[email] no transport delivered to={to_email} subject={subject}")
        return False

    def _send_via_resend(self, to_email: str, subject: str, body: str, reply_to: Optional[str]) -> bool:
        api_key = self.settings.RESEND_API_KEY
        sender = self.settings.RESEND_FROM or self.settings.SMTP_FROM
        if not api_key or not sender:
            return False
        params = {
            "from": sender,
            "to": to_email,
            "subject": subject,
            "html": body,
        }
        if reply_to:
            params["reply_to"] = reply_to
        try:
            resend.api_key = api_key
            resend.Emails.send(params)
            logger.info(f"[email:resend] sent to={to_email} subject={subject}")
            return True
        except Exception as exc:
            logger.error(f"[email:resend] {exc}")
            return False

    def _build_smtp_client(self) -> Optional[smtplib.SMTP]:
        settings = self.settings
        if not settings.SMTP_HOST:
            return None
        timeout = settings.MAIL_TIMEOUT_SECONDS
        if settings.SMTP_USE_SSL:
            return smtplib.SMTP_SSL(settings.SMTP_HOST, settings.SMTP_PORT, timeout=timeout)
        client = smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT, timeout=timeout)
        if settings.SMTP_USE_TLS:
            client.starttls()
        return client

    def _send_via_smtp(self, to_email: str, subject: str, body: str, reply_to: Optional[str]) -> bool:
        settings = self.settings
        if not settings.SMTP_HOST or not settings.SMTP_FROM:
            return False

        # header values with CR/LF are refused here, before any connection
        try:
            msg = EmailMessage()
            msg["From"] = settings.SMTP_FROM
            msg["To"] = to_email
            msg["Subject"] = subject
            if reply_to:
                msg["Reply-To"] = reply_to
            msg.set_content(body)
        except ValueError as exc:
            logger.warning(f"[email:smtp] rejected message to={to_email!r}: {exc}")
            return False

        try:
            client = self._build_smtp_client()
        except (OSError, smtplib.SMTPException) as exc:
            logger.error(f"[email:smtp] connect failed: {exc}")
            return False
        if not client:
            return False

        try:
            if settings.SMTP_USER and settings.SMTP_PASSWORD:
                client.login(settings.SMTP_USER, settings.SMTP_PASSWORD)
            client.send_message(msg)
            logger.info(f"[email:smtp] sent to={to_email} subject={subject}")
            return True
        except (OSError, smtplib.SMTPException) as exc:
            logger.error(f"[email:smtp] {exc}")
            return False
        finally:
            try:
                client.quit()
            except (OSError, smtplib.SMTPException):
                pass


async def send_reset_email(mailer: Mailer, email: str, token: str) -> bool:
    link = f"{mailer.settings.APP_URL}/auth/reset-password?token={token}"
    subject = "Password reset"
    body = f"<p>To choose a new password, follow this link: <a href=\"{link}\">{link}</a></p>"
    return await mailer.send(email, subject, body)


async def send_contact_message(mailer: Mailer, sender: str, subject: str, text: str) -> bool:
    recipient = mailer.settings.MAIL_CONTACT_TO or mailer.settings.SMTP_FROM or mailer.settings.RESEND_FROM
    if not recipient:
        logger.error("[email] MAIL_CONTACT_TO not configured")
        return False
    body = f"<p>From: {html.escape(sender)}</p><p>{html.escape(text)}</p>"
    return await mailer.send(recipient, subject, body, reply_to=sender)
