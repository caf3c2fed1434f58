import logging
import smtplib
import ssl
from dataclasses import dataclass
from email.mime.application import MIMEApplication
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Protocol

from telemed.core import config

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EmailAttachment:
    filename: str
    content: bytes
    subtype: str = "octet-stream"


class EmailSender(Protocol):
    def send(self, to_email: str, subject: str, html: str, attachment: EmailAttachment | None = None) -> None:
        ...


class LoggingEmailSender:
    """Records outgoing mail in the log instead of delivering it."""

    def send(self, to_email: str, subject: str, html: str, attachment: EmailAttachment | None = None) -> None:
        logger.info(
            "Email to %s: %s (attachment: %s)",
            to_email,
            subject,
            attachment.filename if attachment else "none",
        )


class SmtpEmailSender:
    def __init__(
        self,
        host: str,
        port: int,
        sender: str,
        username: str = "",
        password: str = "",
        use_tls: bool = True,
    ) -> None:
        self.host = host
        self.port = port
        self.sender = sender
        self.username = username
        self.password = password
        self.use_tls = use_tls

    def build_message(
        self, to_email: str, subject: str, html: str, attachment: EmailAttachment | None = None
    ) -> MIMEMultipart:
        msg = MIMEMultipart("mixed")
        msg["Subject"] = subject
        msg["From"] = self.sender
        msg["To"] = to_email
        msg.attach(MIMEText(html, "html"))

        if attachment is not None:
            part = MIMEApplication(attachment.content, _subtype=attachment.subtype)
            part.add_header("Content-Disposition", "attachment", filename=attachment.filename)
            msg.attach(part)

        return msg

    def send(self, to_email: str, subject: str, html: str, attachment: EmailAttachment | None = None) -> None:
        msg = self.build_message(to_email, subject, html, attachment)

        with smtplib.SMTP(self.host, self.port) as server:
            if self.use_tls:
                server.starttls(context=ssl.create_default_context())
            if self.username:
                server.login(self.username, self.password)
            server.sendmail(self.sender, [to_email], msg.as_string())

        logger.info("Email sent to %s: %s", to_email, subject)


def build_email_sender() -> EmailSender:
    if not config.SMTP_HOST:
        return LoggingEmailSender()
    return SmtpEmailSender(
        host=config.SMTP_HOST,
        port=config.SMTP_PORT,
        sender=config.SMTP_SENDER,
        username=config.SMTP_USERNAME,
        password=config.SMTP_PASSWORD,
        use_tls=config.SMTP_USE_TLS,
    )
