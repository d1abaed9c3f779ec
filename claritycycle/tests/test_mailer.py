from __future__ import annotations

import io
import smtplib
import unittest
from unittest import mock

from claritycycle.config import SmtpSettings
from claritycycle.mailer import ContactMessage, MailDeliveryError, Mailer

CONTACT = ContactMessage(
    name="Visitor",
    email="visitor@example.com",
    subject="Hello there",
    message="I would like to know more.",
    phone="555-0100",
)

SMTP = SmtpSettings(
    host="smtp.example.com",
    username="owner@example.com",
    password="secret",
    contact_recipient="owner@example.com",
)


class TestMailer(unittest.TestCase):
    def test_fallback_when_smtp_missing(self) -> None:
        stream = io.StringIO()
        mailer = Mailer(SmtpSettings(), stream=stream)

        self.assertFalse(mailer.send_contact(CONTACT))
        self.assertIn("[contact] Visitor <visitor@example.com>: Hello there", stream.getvalue())

    def test_sends_host_mail_and_auto_reply(self) -> None:
        stream = io.StringIO()
        mailer = Mailer(SMTP, stream=stream)

        with mock.patch("claritycycle.mailer.smtplib.SMTP") as smtp_cls:
            client = smtp_cls.return_value.__enter__.return_value
            self.assertTrue(mailer.send_contact(CONTACT))

        smtp_cls.assert_called_once_with("smtp.example.com", 587, timeout=15)
        client.starttls.assert_called_once()
        client.login.assert_called_once_with("owner@example.com", "secret")
        self.assertEqual(client.send_message.call_count, 2)
        host_mail = client.send_message.call_args_list[0].args[0]
        self.assertEqual(host_mail["To"], "owner@example.com")
        self.assertEqual(host_mail["Reply-To"], "visitor@example.com")
        self.assertIn("Phone: 555-0100", host_mail.get_content())
        reply = client.send_message.call_args_list[1].args[0]
        self.assertEqual(reply["To"], "visitor@example.com")
        self.assertEqual(stream.getvalue(), "")

    def test_smtp_failure_raises(self) -> None:
        mailer = Mailer(SMTP, stream=io.StringIO())

        with mock.patch(
            "claritycycle.mailer.smtplib.SMTP",
            side_effect=smtplib.SMTPConnectError(421, b"unavailable"),
        ):
            with self.assertRaises(MailDeliveryError):
                mailer.send_contact(CONTACT)


if __name__ == "__main__":
    unittest.main()
