"""
services/notifications.py

Best-effort SMS and email delivery for workflow events.

No public method here raises. Delivery runs on FastAPI `BackgroundTasks` when
one is supplied, so it happens after the response (and the commit that
preceded it); otherwise it runs inline. Every failure is logged and dropped.
"""

import logging
import smtplib
import ssl
from email.message import EmailMessage
from typing import Optional

from fastapi import BackgroundTasks

from app.core.config import Settings, settings as default_settings

logger = logging.getLogger(__name__)


class NotificationError(RuntimeError):
    pass


class NotificationDispatcher:
    def __init__(self, settings: Settings = None, background_tasks: Optional[BackgroundTasks] = None):
        self.settings = settings or default_settings
        self.background_tasks = background_tasks

    # ─── Public API ──────────────────────────────────────────────────────────

    def send_sms(self, phone: Optional[str], message: str) -> None:
        self._dispatch(self._deliver_sms, phone, message)

    def send_email(self, to_email: Optional[str], subject: str, text: str) -> None:
        self._dispatch(self._deliver_email, to_email, subject, text)

    def notify_admin(self, subject: str, message: str) -> None:
        if self.settings.ADMIN_PHONE:
            self.send_sms(self.settings.ADMIN_PHONE, message)
        if self.settings.ADMIN_EMAIL:
            self.send_email(self.settings.ADMIN_EMAIL, subject, message)

    # ─── Internals ───────────────────────────────────────────────────────────

    def _dispatch(self, func, *args) -> None:
        if self.background_tasks is not None:
            self.background_tasks.add_task(self._safe_call, func, *args)
        else:
            self._safe_call(func, *args)

    @staticmethod
    def _safe_call(func, *args) -> None:
        try:
            func(*args)
        except Exception:
            logger.exception("Notification delivery failed (%s)", func.__name__)

    def _deliver_sms(self, phone: Optional[str], message: str) -> None:
        phone = (phone or "").strip()
        message = (message or "").strip()
        if not phone or not message:
            return

        backend = self.settings.SMS_BACKEND.strip().lower()
        if backend in {"disabled", "off", "none"}:
            return
        if backend == "console":
            logger.info("SMS to %s: %s", phone, message)
            return
        raise NotificationError(f"Unsupported SMS_BACKEND: {backend}")

    def _deliver_email(self, to_email: Optional[str], subject: str, text: str) -> None:
        to_email = (to_email or "").strip()
        if not to_email or "@" not in to_email:
            return

        backend = self.settings.EMAIL_BACKEND.strip().lower()
        if backend in {"disabled", "off", "none"}:
            return
        if backend == "console":
            logger.info("Email to %s subject=%s\n%s", to_email, subject, text)
            return
        if backend == "smtp":
            self._send_via_smtp(to_email, subject, text)
            return
        raise NotificationError(f"Unsupported EMAIL_BACKEND: {backend}")

    def _send_via_smtp(self, to_email: str, subject: str, text: str) -> None:
        s = self.settings
        sender = s.SMTP_FROM or s.SMTP_USER
        if not s.SMTP_HOST or not sender:
            raise NotificationError("SMTP_HOST/SMTP_FROM not configured")

        msg = EmailMessage()
        msg["From"] = f"PropertyVerify <{sender}>"
        msg["To"] = to_email
        msg["Subject"] = subject
        msg.set_content(text)

        timeout = 15
        if s.SMTP_PORT == 465:
            with smtplib.SMTP_SSL(s.SMTP_HOST, s.SMTP_PORT, timeout=timeout, context=ssl.create_default_context()) as smtp:
                if s.SMTP_USER and s.SMTP_PASSWORD:
                    smtp.login(s.SMTP_USER, s.SMTP_PASSWORD)
                smtp.send_message(msg)
            return

        with smtplib.SMTP(s.SMTP_HOST, s.SMTP_PORT, timeout=timeout) as smtp:
            smtp.ehlo()
            if smtp.has_extn("starttls"):
                smtp.starttls(context=ssl.create_default_context())
                smtp.ehlo()
            if s.SMTP_USER and s.SMTP_PASSWORD:
                smtp.login(s.SMTP_USER, s.SMTP_PASSWORD)
            smtp.send_message(msg)
        logger.info("Email sent to %s", to_email)
