from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from .campaigns import Campaign, CampaignRegistry
from .exceptions import InvalidArgument
from .models import SpinActivity
from .repository import ActivityRepository
from .utils import is_blank, normalize_email

NOT_STARTED = "not yet started"
ENDED = "ended"
OUTSIDE_HOURS = "outside active hours"
NO_ACTIVITY = "no activity found"
ALREADY_WON = "already won"
MAX_SPINS = "maximum spins reached"
ELIGIBLE = "eligible"

MESSAGES = {
    NO_ACTIVITY: "No activity found - eligible to spin",
    ALREADY_WON: "Already won a prize",
    MAX_SPINS: "Maximum spins reached",
    ELIGIBLE: "Eligible to spin",
}


@dataclass(frozen=True)
class Verdict:
    eligible: bool
    reason: str
    message: str
    has_won_prize: bool = False
    spins_used: int = 0
    activity: Optional[SpinActivity] = None


def check_window(campaign: Campaign, now: datetime) -> Optional[Verdict]:
    """Return a closed verdict when ``now`` falls outside the campaign, else None."""
    if not campaign.has_started(now):
        return Verdict(False, NOT_STARTED, campaign.not_started_message)
    if campaign.has_ended(now):
        return Verdict(False, ENDED, campaign.ended_message)
    if not campaign.within_daily_hours(now):
        return Verdict(False, OUTSIDE_HOURS, campaign.outside_hours_message)
    return None


def evaluate(campaign: Campaign, activity: Optional[SpinActivity], now: datetime) -> Verdict:
    """Pure verdict from the campaign policy, the current record and the clock."""
    closed = check_window(campaign, now)
    if closed is not None:
        return closed

    if activity is None:
        return Verdict(True, NO_ACTIVITY, MESSAGES[NO_ACTIVITY])

    spins = int(activity.spin_count or 0)
    has_won = bool(activity.has_won_prize)
    has_max_spins = spins >= campaign.max_spins

    if has_won:
        reason = ALREADY_WON
    elif has_max_spins:
        reason = MAX_SPINS
    else:
        reason = ELIGIBLE

    return Verdict(
        eligible=not has_won and not has_max_spins,
        reason=reason,
        message=MESSAGES[reason],
        has_won_prize=has_won,
        spins_used=spins,
        activity=activity,
    )


def check_eligibility(
    session: Session,
    campaigns: CampaignRegistry,
    campaign_id: Optional[str],
    email: Optional[str],
    now: datetime,
) -> Verdict:
    """Decide whether ``email`` may spin the ``campaign_id`` wheel at ``now``.

    Read-only. The store is not consulted when the campaign is closed.
    """
    if is_blank(email):
        raise InvalidArgument("Email parameter is required")
    if is_blank(campaign_id):
        raise InvalidArgument("Wheel ID parameter is required")

    campaign = campaigns.get(campaign_id.strip())
    closed = check_window(campaign, now)
    if closed is not None:
        return closed

    activity = ActivityRepository(session).find_current(campaign.id, normalize_email(email))
    return evaluate(campaign, activity, now)
