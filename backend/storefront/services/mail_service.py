# Overview: Outbound email transports (SMTP for real delivery, in-memory for tests and local runs).

from __future__ import annotations

import smtplib
from abc import ABC, abstractmethod
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import make_msgid

from flask import current_app


class MailTransport(ABC):
    """Abstract interface for email dispatch adapters."""

    @abstractmethod
    def send(
        self,
        to: str,
        subject: str,
        body: str,
        html_body: str | None = None,
    ) -> dict:
        """Send an email message.

        Returns:
            dict with keys: message_id, status ("sent" or "failed"), error (optional)
        """
        ...


class SmtpMailTransport(MailTransport):
    """STARTTLS SMTP delivery."""

    def __init__(self, host: str, port: int, user: str | None, password: str | None, sender: str, timeout: int = 15):
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.sender = sender
        self.timeout = timeout

    def send(self, to, subject, body, html_body=None) -> dict:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = self.sender
        msg["To"] = to
        message_id = make_msgid()
        msg["Message-ID"] = message_id
        msg.attach(MIMEText(body, "plain", "utf-8"))
        if html_body:
            msg.attach(MIMEText(html_body, "html", "utf-8"))

        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
                server.starttls()
                if self.user and self.password:
                    server.login(self.user, self.password)
                server.sendmail(self.sender, [to], msg.as_string())
        except (smtplib.SMTPException, OSError) as exc:
            return {"message_id": None, "status": "failed", "error": str(exc)}

        return {"message_id": message_id, "status": "sent"}


class MemoryMailTransport(MailTransport):
    """Records messages in memory for test assertions."""

    def __init__(self):
        self.sent_emails: list[dict] = []
        self.should_succeed = True
        self.failure_reason = "Email delivery failed"
        # Recipients that fail even while should_succeed is True
        self.fail_for: set[str] = set()

    def configure(
        self,
        should_succeed: bool = True,
        failure_reason: str = "Email delivery failed",
        fail_for=(),
    ):
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason
        self.fail_for = set(fail_for)

    def send(self, to, subject, body, html_body=None) -> dict:
        if not self.should_succeed or to in self.fail_for:
            return {"message_id": None, "status": "failed", "error": self.failure_reason}

        message_id = f"mem-{len(self.sent_emails) + 1}"
        self.sent_emails.append({
            "message_id": message_id,
            "to": to,
            "subject": subject,
            "body": body,
            "html_body": html_body,
        })
        return {"message_id": message_id, "status": "sent"}

    def reset(self):
        self.sent_emails.clear()
        self.should_succeed = True
        self.failure_reason = "Email delivery failed"
        self.fail_for = set()


def build_transport(config) -> MailTransport:
    kind = config.get("MAIL_TRANSPORT", "smtp")
    if kind == "memory":
        return MemoryMailTransport()
    if kind == "smtp":
        return SmtpMailTransport(
            host=config["SMTP_HOST"],
            port=config["SMTP_PORT"],
            user=config.get("SMTP_USER"),
            password=config.get("SMTP_PASSWORD"),
            sender=config["SMTP_SENDER"],
        )
    raise ValueError(f"Unknown MAIL_TRANSPORT: {kind}")


def get_transport() -> MailTransport:
    return current_app.extensions["mail_transport"]


def send_mail(to: str, subject: str, body: str, html_body: str | None = None) -> dict:
    """Send through the configured transport; failures are logged, not raised."""
    result = get_transport().send(to, subject, body, html_body)
    if result.get("status") != "sent":
        current_app.logger.warning("Mail to %s failed: %s", to, result.get("error"))
    return result
