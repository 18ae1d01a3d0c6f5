from __future__ import annotations

import logging
import smtplib
import ssl
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Protocol

from crm_api.core.config import Settings, get_settings
from crm_api.core.errors import DependencyError

logger = logging.getLogger("crm_api.mail")


class Mailer(Protocol):
    def send(self, to: str, subject: str, text: str, html: str | None = None) -> None: ...


class SmtpMailer:
    def __init__(self, settings: Settings, *, timeout: float = 30.0) -> None:
        self.host = settings.smtp_host
        self.port = settings.smtp_port
        self.user = settings.smtp_user
        self.password = settings.smtp_password
        self.use_tls = settings.smtp_use_tls
        self.sender = settings.mail_from
        self.timeout = timeout

    def _build_message(self, to: str, subject: str, text: str, html: str | None) -> MIMEMultipart:
        message = MIMEMultipart("alternative")
        message["Subject"] = subject
        message["From"] = self.sender
        message["To"] = to
        message.attach(MIMEText(text, "plain", "utf-8"))
        if html:
            message.attach(MIMEText(html, "html", "utf-8"))
        return message

    def send(self, to: str, subject: str, text: str, html: str | None = None) -> None:
        message = self._build_message(to, subject, text, html)
        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
                if self.use_tls:
                    server.starttls(context=ssl.create_default_context())
                if self.user and self.password:
                    server.login(self.user, self.password)
                server.sendmail(self.sender, [to], message.as_string())
        except (smtplib.SMTPException, OSError) as exc:
            raise DependencyError(f"failed to send mail to {to}: {exc}") from exc
        logger.info("mail.sent", extra={"recipient": to})


def get_mailer() -> Mailer:
    return SmtpMailer(get_settings())
