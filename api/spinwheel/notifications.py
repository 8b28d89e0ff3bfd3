"""Emails sent after a spin is recorded.

Two independent messages: an internal notice to the operations mailbox, and
a participant message whose content depends on the outcome. Dispatch holds
no state and never retries; calling it twice sends twice.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from jinja2 import DictLoader, Environment, select_autoescape

from .campaigns import CampaignRegistry
from .config import Settings
from .exceptions import DispatchError
from .mail import InlineImage, MailTransport, OutboundEmail, SmtpMailTransport, brand_images, sender_address
from .schemas import ActivitySnapshot
from .utils import utcnow

logger = logging.getLogger(__name__)

WIN_SUBJECT = "Congratulations! You've Won in Built's Spin-the-Wheel Promo"
TRY_AGAIN_SUBJECT = "Thank You for Playing Built's Spin-the-Wheel"
INTERNAL_SUBJECT = "New Spin Activity Recorded"

_FOOTER = """
<div style="text-align: center; margin-top: 40px; padding-top: 20px; border-top: 1px solid #eee;">
  <img src="cid:footer" alt="Footer" style="max-width: 100%; height: auto;" />
  <p style="color: #64748b; font-size: 14px; margin: 15px 0;">Copyright &copy; {{ year }} Built Financial Technologies.</p>
  <div style="margin-bottom: 20px;">
    <a href="https://facebook.com/builtaccounting"><img src="cid:facebook" alt="Facebook" style="width: 24px; height: 24px;" /></a>
    <a href="https://x.com/built_africa" style="margin-left:8px;"><img src="cid:twitter" alt="X (Twitter)" style="width: 24px; height: 24px;" /></a>
    <a href="https://www.instagram.com/built.africa/" style="margin-left:8px;"><img src="cid:instagram" alt="Instagram" style="width: 24px; height: 24px;" /></a>
    <a href="https://linkedin.com/company/built-accounting" style="margin-left:8px;"><img src="cid:linkedin" alt="LinkedIn" style="width: 24px; height: 24px;" /></a>
  </div>
</div>
"""

TEMPLATES = {
    "layout.html": """
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px; color: #333; font-size: 16px; line-height: 1.6;">
  <div style="text-align: center; margin-bottom: 30px;">
    <img src="cid:logo" alt="Built Team Logo" style="max-width: 150px; height: auto;" />
  </div>
  <p>Hi {{ a.name }},</p>
  {% block body %}{% endblock %}
  <p style="margin-top: 16px;">Best regards,<br />The Built Team</p>
""" + _FOOTER + """
</div>
""",
    "won.html": """{% extends "layout.html" %}{% block body %}
  <p>Congratulations on participating in Built's Spin-the-Wheel promotion!</p>
  <p>We're excited to let you know that you've won:</p>
  {% if a.prize %}<p style="font-size: 18px; font-weight: bold; text-align: center; background-color: #f0f9ff; padding: 15px; border-radius: 8px;">{{ a.prize }}</p>{% endif %}
  <p>Our team will get in touch with you to help claim your reward.</p>
  <p>Thank you for engaging with us. We truly value your time and support. Keep an eye out for more exciting promos and rewards from Built!</p>
{% endblock %}""",
    "won.txt": """Hi {{ a.name }},

Congratulations on participating in Built's Spin-the-Wheel promotion!
We're excited to let you know that you've won:
 {{ a.prize or "a prize" }}
Our team will get in touch with you to help claim your reward.
Thank you for engaging with us. We truly value your time and support. Keep an eye out for more exciting promos and rewards from Built!

Best regards,
The Built Team""",
    "try_again.html": """{% extends "layout.html" %}{% block body %}
  <p>Thank you for participating in Built's Spin-the-Wheel promotion!</p>
  <p>This time, you landed on "Try Again". Don't worry, there are still more chances to win exciting rewards in our future promos.</p>
  <p>We truly appreciate your time and engagement, and we can't wait to see you spin again!</p>
{% endblock %}""",
    "try_again.txt": """Hi {{ a.name }},

Thank you for participating in Built's Spin-the-Wheel promotion!
This time, you landed on "Try Again". Don't worry, there are still more chances to win exciting rewards in our future promos.
We truly appreciate your time and engagement, and we can't wait to see you spin again!

Best regards,
The Built Team""",
    "internal.html": """
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">
  <h2 style="margin:0 0 16px 0;">New Spin-the-Wheel Activity</h2>
  {% for label, value in rows %}<p style="margin:0 0 10px 0;">{{ label }}: <strong>{{ value }}</strong></p>
  {% endfor %}
</div>""",
    "internal.txt": """New spin activity recorded.
{% for label, value in rows %}{{ label }}: {{ value }}
{% endfor %}""",
}

env = Environment(
    loader=DictLoader(TEMPLATES),
    autoescape=select_autoescape(enabled_extensions=("html",), default_for_string=False),
)


def render(name: str, **context) -> str:
    return env.get_template(name).render(**context)


def internal_rows(a: ActivitySnapshot) -> list[tuple[str, object]]:
    return [
        ("Name", a.name),
        ("Email", a.email),
        ("Phone", a.phone),
        ("Wheel ID", a.campaign_id),
        ("Prize", a.prize or "-"),
        ("Has Won Prize", "Yes" if a.has_won_prize else "No"),
        ("Number of Spins", a.spin_count),
    ]


@dataclass
class DispatchResult:
    internal_sent: bool = False
    participant_sent: bool = False
    participant_template: Optional[str] = None


class NotificationDispatcher:
    def __init__(
        self,
        campaigns: CampaignRegistry,
        internal_transport: Optional[MailTransport],
        participant_transport: Optional[MailTransport],
        team_sender: str = "",
        participant_sender: str = "",
        ops_mailbox: str = "",
        attachments: Optional[list[InlineImage]] = None,
    ):
        self.campaigns = campaigns
        self.internal_transport = internal_transport
        self.participant_transport = participant_transport
        self.team_sender = team_sender
        self.participant_sender = participant_sender
        self.ops_mailbox = ops_mailbox
        self.attachments = attachments or []

    @property
    def enabled(self) -> bool:
        return self.internal_transport is not None and self.participant_transport is not None

    def participant_template(self, a: ActivitySnapshot) -> Optional[str]:
        """Which participant email fits the outcome; None means send nothing."""
        if a.has_won_prize:
            return "won"
        if a.spin_count >= self.campaigns.get(a.campaign_id).max_spins:
            return "try_again"
        return None

    def internal_notice(self, a: ActivitySnapshot) -> OutboundEmail:
        rows = internal_rows(a)
        return OutboundEmail(
            sender=self.team_sender,
            to=self.ops_mailbox,
            subject=INTERNAL_SUBJECT,
            text=render("internal.txt", rows=rows),
            html=render("internal.html", rows=rows),
        )

    def participant_message(self, a: ActivitySnapshot, template: str) -> OutboundEmail:
        return OutboundEmail(
            sender=self.participant_sender,
            to=a.email,
            subject=WIN_SUBJECT if template == "won" else TRY_AGAIN_SUBJECT,
            text=render(f"{template}.txt", a=a),
            html=render(f"{template}.html", a=a, year=(a.created_at or utcnow()).year),
            attachments=list(self.attachments),
        )

    def dispatch(self, a: ActivitySnapshot) -> DispatchResult:
        result = DispatchResult()
        if not self.enabled:
            logger.warning("Email env vars missing. Skipping spin activity emails for %s", a.email)
            return result

        try:
            self.internal_transport.send(self.internal_notice(a))
            result.internal_sent = True
        except DispatchError:
            logger.exception("Internal notice for activity %s failed", a.id)

        template = self.participant_template(a)
        result.participant_template = template
        if template is None:
            return result

        try:
            self.participant_transport.send(self.participant_message(a, template))
            result.participant_sent = True
        except DispatchError:
            logger.exception("Participant %s email for activity %s failed", template, a.id)
        return result


def run_dispatch(dispatcher: NotificationDispatcher, snapshot: ActivitySnapshot) -> None:
    """Background entry point: nothing raised here may reach the request."""
    try:
        dispatcher.dispatch(snapshot)
    except Exception:
        logger.exception("Notification dispatch for activity %s crashed", snapshot.id)


def build_dispatcher(settings: Settings, campaigns: CampaignRegistry) -> NotificationDispatcher:
    """Wire SMTP transports from settings, once per process."""
    if not settings.mail_configured:
        return NotificationDispatcher(campaigns, None, None)

    internal = SmtpMailTransport(
        settings.gmail_user,
        settings.gmail_app_password,
        host=settings.smtp_host,
        port=settings.smtp_port,
        timeout=settings.smtp_timeout_seconds,
    )
    if settings.customer_success_app_password:
        participant = SmtpMailTransport(
            settings.customer_success_user,
            settings.customer_success_app_password,
            host=settings.smtp_host,
            port=settings.smtp_port,
            timeout=settings.smtp_timeout_seconds,
        )
    else:
        participant = internal

    return NotificationDispatcher(
        campaigns,
        internal_transport=internal,
        participant_transport=participant,
        team_sender=sender_address(settings.team_sender_name, settings.gmail_user),
        participant_sender=sender_address(settings.cs_sender_name, settings.customer_success_user),
        ops_mailbox=settings.customer_success_user,
        attachments=brand_images(settings.mail_assets_dir),
    )
