from __future__ import annotations

from dataclasses import dataclass
from email.message import EmailMessage
import logging
import smtplib
import sys
from typing import TextIO

from .config import SmtpSettings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ContactMessage:
    name: str
    email: str
    subject: str
    message: str
    phone: str | None = None


class MailDeliveryError(RuntimeError):
    pass


class Mailer:
    def __init__(self, smtp: SmtpSettings, stream: TextIO | None = None) -> None:
        self.smtp = smtp
        self.stream = stream or sys.stdout

    def send_contact(self, contact: ContactMessage) -> bool:
        """Deliver a contact form to the site owner and acknowledge the sender.

        Returns ``True`` when SMTP delivered both mails and ``False`` when no
        SMTP server is configured and the message was written to the stream.
        """
        if not self.smtp.enabled:
            self.stream.write(f"[contact] {contact.name} <{contact.email}>: {contact.subject}\n")
            self.stream.flush()
            return False

        host_mail = self._build(
            to=self.smtp.contact_recipient,
            subject=f"Contact form: {contact.subject}",
            body=_host_body(contact),
            reply_to=contact.email,
        )
        reply_mail = self._build(
            to=contact.email,
            subject="Thank you for contacting us",
            body=_auto_reply_body(contact),
        )

        try:
            with smtplib.SMTP(self.smtp.host, self.smtp.port, timeout=15) as client:
                if self.smtp.use_tls:
                    client.starttls()
                if self.smtp.username:
                    client.login(self.smtp.username, self.smtp.password)
                client.send_message(host_mail)
                client.send_message(reply_mail)
        except (smtplib.SMTPException, OSError) as exc:
            logger.exception("contact mail delivery failed")
            raise MailDeliveryError("Email service configuration error") from exc

        logger.info("contact mail delivered for %s", contact.email)
        return True

    def _build(self, to: str, subject: str, body: str, reply_to: str | None = None) -> EmailMessage:
        mail = EmailMessage()
        mail["From"] = self.smtp.sender or self.smtp.username
        mail["To"] = to
        mail["Subject"] = subject
        if reply_to:
            mail["Reply-To"] = reply_to
        mail.set_content(body)
        return mail


def _host_body(contact: ContactMessage) -> str:
    lines = [
        "New contact form submission",
        "",
        f"Name: {contact.name}",
        f"Email: {contact.email}",
    ]
    if contact.phone:
        lines.append(f"Phone: {contact.phone}")
    lines.extend([f"Subject: {contact.subject}", "", contact.message])
    return "\n".join(lines)


def _auto_reply_body(contact: ContactMessage) -> str:
    excerpt = contact.message[:100] + ("..." if len(contact.message) > 100 else "")
    return "\n".join(
        [
            f"Dear {contact.name},",
            "",
            "We have received your message and will get back to you within 24-48 hours.",
            "",
            f"Subject: {contact.subject}",
            f"Message: {excerpt}",
        ]
    )
