import smtplib
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from spinwheel.config import Settings
from spinwheel.mail import OutboundEmail, SmtpMailTransport, brand_images, build_message
from spinwheel.notifications import (
    INTERNAL_SUBJECT,
    TRY_AGAIN_SUBJECT,
    WIN_SUBJECT,
    NotificationDispatcher,
    build_dispatcher,
    run_dispatch,
)
from spinwheel.schemas import ActivitySnapshot

from tests.support import FailingTransport, RecordingTransport, make_registry


def snapshot(**overrides) -> ActivitySnapshot:
    fields = dict(
        id=7,
        campaign_id="three",
        name="Ada",
        email="ada@example.com",
        phone="+233200000000",
        prize=None,
        has_won_prize=False,
        spin_count=1,
    )
    fields.update(overrides)
    return ActivitySnapshot(**fields)


class DispatcherTestCase(unittest.TestCase):
    def setUp(self):
        self.internal = RecordingTransport()
        self.participant = RecordingTransport()
        self.dispatcher = NotificationDispatcher(
            make_registry(),
            internal_transport=self.internal,
            participant_transport=self.participant,
            team_sender="Built Team <team@example.com>",
            participant_sender="Customer Success <cs@example.com>",
            ops_mailbox="cs@example.com",
        )

    def test_winner_gets_congratulations(self):
        result = self.dispatcher.dispatch(snapshot(has_won_prize=True, prize="T-Shirt"))
        self.assertTrue(result.internal_sent)
        self.assertTrue(result.participant_sent)

        (notice,) = self.internal.sent
        self.assertEqual(notice.to, "cs@example.com")
        self.assertEqual(notice.subject, INTERNAL_SUBJECT)
        self.assertIn("Has Won Prize: Yes", notice.text)
        self.assertIn("Wheel ID: three", notice.text)

        (mail,) = self.participant.sent
        self.assertEqual(mail.to, "ada@example.com")
        self.assertEqual(mail.subject, WIN_SUBJECT)
        self.assertIn("T-Shirt", mail.text)
        self.assertIn("get in touch", mail.text)
        self.assertIn("T-Shirt", mail.html)

    def test_exhausted_loser_gets_thank_you(self):
        result = self.dispatcher.dispatch(snapshot(spin_count=3))
        self.assertEqual(result.participant_template, "try_again")
        (mail,) = self.participant.sent
        self.assertEqual(mail.subject, TRY_AGAIN_SUBJECT)
        self.assertIn("Try Again", mail.text)

    def test_loser_with_budget_left_gets_nothing(self):
        result = self.dispatcher.dispatch(snapshot(spin_count=2))
        self.assertTrue(result.internal_sent)
        self.assertIsNone(result.participant_template)
        self.assertEqual(self.participant.sent, [])
        self.assertEqual(len(self.internal.sent), 1)

    def test_budget_follows_campaign_policy(self):
        # "october" allows a single spin
        self.dispatcher.dispatch(snapshot(campaign_id="october", spin_count=1))
        self.assertEqual(self.participant.sent[0].subject, TRY_AGAIN_SUBJECT)

    def test_failures_are_independent(self):
        failing = FailingTransport()
        self.dispatcher.internal_transport = failing
        with self.assertLogs("spinwheel.notifications", level="ERROR"):
            result = self.dispatcher.dispatch(snapshot(has_won_prize=True, prize="Mug"))
        self.assertEqual(failing.attempts, 1)
        self.assertFalse(result.internal_sent)
        self.assertTrue(result.participant_sent)

        self.dispatcher.internal_transport = self.internal
        self.dispatcher.participant_transport = FailingTransport()
        with self.assertLogs("spinwheel.notifications", level="ERROR"):
            result = self.dispatcher.dispatch(snapshot(has_won_prize=True, prize="Mug"))
        self.assertTrue(result.internal_sent)
        self.assertFalse(result.participant_sent)

    def test_dispatching_twice_sends_twice(self):
        snap = snapshot(has_won_prize=True, prize="Mug")
        self.dispatcher.dispatch(snap)
        self.dispatcher.dispatch(snap)
        self.assertEqual(len(self.internal.sent), 2)
        self.assertEqual(len(self.participant.sent), 2)

    def test_html_escapes_participant_input(self):
        self.dispatcher.dispatch(snapshot(name="<script>x</script>", has_won_prize=True, prize="<b>Mug</b>"))
        html = self.participant.sent[0].html
        self.assertNotIn("<script>", html)
        self.assertIn("&lt;script&gt;", html)
        self.assertIn("&lt;b&gt;Mug&lt;/b&gt;", self.internal.sent[0].html)

    def test_missing_configuration_is_a_logged_noop(self):
        dispatcher = NotificationDispatcher(make_registry(), None, None)
        with self.assertLogs("spinwheel.notifications", level="WARNING"):
            result = dispatcher.dispatch(snapshot(has_won_prize=True, prize="Mug"))
        self.assertFalse(result.internal_sent)
        self.assertFalse(result.participant_sent)

    def test_run_dispatch_swallows_crashes(self):
        broken = mock.Mock()
        broken.dispatch.side_effect = RuntimeError("boom")
        with self.assertLogs("spinwheel.notifications", level="ERROR"):
            run_dispatch(broken, snapshot())
        broken.dispatch.assert_called_once()


class BuildDispatcherTestCase(unittest.TestCase):
    def test_unconfigured(self):
        dispatcher = build_dispatcher(
            Settings(gmail_user=None, gmail_app_password=None, customer_success_user=None), make_registry()
        )
        self.assertFalse(dispatcher.enabled)

    def test_participant_mail_falls_back_to_team_credentials(self):
        settings = Settings(
            gmail_user="team@example.com",
            gmail_app_password="secret",
            customer_success_user="cs@example.com",
            customer_success_app_password=None,
            mail_assets_dir="/nonexistent",
        )
        dispatcher = build_dispatcher(settings, make_registry())
        self.assertTrue(dispatcher.enabled)
        self.assertIs(dispatcher.participant_transport, dispatcher.internal_transport)
        self.assertEqual(dispatcher.ops_mailbox, "cs@example.com")
        self.assertIn("cs@example.com", dispatcher.participant_sender)
        self.assertEqual(dispatcher.attachments, [])

    def test_customer_success_credentials(self):
        settings = Settings(
            gmail_user="team@example.com",
            gmail_app_password="secret",
            customer_success_user="cs@example.com",
            customer_success_app_password="cs-secret",
            smtp_timeout_seconds=5,
        )
        dispatcher = build_dispatcher(settings, make_registry())
        self.assertIsNot(dispatcher.participant_transport, dispatcher.internal_transport)
        self.assertEqual(dispatcher.participant_transport.username, "cs@example.com")
        self.assertEqual(dispatcher.participant_transport.timeout, 5)


class MailTestCase(unittest.TestCase):
    def test_inline_images_attached_by_cid(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            (Path(tmpdir) / "logo.png").write_bytes(b"\x89PNG fake")
            images = brand_images(tmpdir)
            self.assertEqual([i.cid for i in images], ["logo"])

            msg = build_message(
                OutboundEmail(
                    sender="a@example.com",
                    to="b@example.com",
                    subject="Hi",
                    text="plain",
                    html='<img src="cid:logo" />',
                    attachments=images,
                )
            )
        content_ids = [part.get("Content-ID") for part in msg.walk()]
        self.assertIn("<logo>", content_ids)
        self.assertEqual(msg["Subject"], "Hi")

    def test_smtp_errors_become_dispatch_errors(self):
        from spinwheel.exceptions import DispatchError

        transport = SmtpMailTransport("u@example.com", "pw", host="localhost", port=2525, timeout=1)
        with mock.patch("spinwheel.mail.smtplib.SMTP", side_effect=ConnectionRefusedError("nope")):
            with self.assertRaises(DispatchError):
                transport.send(OutboundEmail(sender="u@example.com", to="x@example.com", subject="s", text="t"))

    def test_smtp_send_uses_timeout_and_login(self):
        transport = SmtpMailTransport("u@example.com", "pw", host="smtp.example.com", port=587, timeout=3)
        with mock.patch("spinwheel.mail.smtplib.SMTP") as smtp:
            server = smtp.return_value.__enter__.return_value
            smtp.return_value.starttls.return_value = None
            transport.send(OutboundEmail(sender="u@example.com", to="x@example.com", subject="s", text="t"))
        smtp.assert_called_once_with("smtp.example.com", 587, timeout=3)
        server.login.assert_called_once_with("u@example.com", "pw")
        server.send_message.assert_called_once()

    def test_failed_starttls_closes_connection(self):
        from spinwheel.exceptions import DispatchError

        transport = SmtpMailTransport("u@example.com", "pw", host="smtp.example.com", port=587, timeout=3)
        with mock.patch("spinwheel.mail.smtplib.SMTP") as smtp:
            smtp.return_value.starttls.side_effect = smtplib.SMTPNotSupportedError("no STARTTLS")
            with self.assertRaises(DispatchError):
                transport.send(OutboundEmail(sender="u@example.com", to="x@example.com", subject="s", text="t"))
        smtp.return_value.close.assert_called_once()
        smtp.return_value.login.assert_not_called()


if __name__ == "__main__":
    unittest.main()
