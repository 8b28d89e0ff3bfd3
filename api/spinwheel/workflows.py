import logging
from dataclasses import dataclass
from typing import Any, Optional

from email_validator import EmailNotValidError, validate_email
from sqlalchemy.orm import Session

from .campaigns import CampaignRegistry
from .exceptions import RecordNotFound, StaleRecordError, StoreError, ValidationError
from .models import SpinActivity
from .repository import ActivityRepository
from .utils import is_blank, normalize_email, normalize_phone

logger = logging.getLogger(__name__)

MAX_WRITE_ATTEMPTS = 5
REQUIRED_ON_EDIT = ("campaign_id", "name", "email", "phone", "has_won_prize", "spin_count")
IDENTITY_FIELDS = ("campaign_id", "name", "email", "phone")


@dataclass
class SpinOutcome:
    campaign_id: str
    email: str
    name: Optional[str] = None
    phone: Optional[str] = None
    prize_label: Optional[str] = None
    is_winning: Optional[bool] = None


def _require(**fields: Optional[str]) -> None:
    missing = [name for name, value in fields.items() if is_blank(value)]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")


def _check_email(email: str) -> None:
    try:
        validate_email(email, check_deliverability=False)
    except EmailNotValidError as exc:
        raise ValidationError(f"Invalid email: {exc}") from exc


def record_spin(
    session: Session, campaigns: CampaignRegistry, outcome: SpinOutcome
) -> tuple[SpinActivity, bool]:
    """Persist one completed spin for the participant.

    Creates the participant's record on their first spin, otherwise adds one
    spin to the current record. A win sets ``has_won_prize`` and ``prize``
    once; later calls never overwrite them. When ``is_winning`` is not given
    it is derived from the campaign's losing labels.

    Returns ``(record, created)``. Eligibility is not re-checked here.
    """
    _require(wheelId=outcome.campaign_id, email=outcome.email)
    campaign = campaigns.get(outcome.campaign_id.strip())
    email = normalize_email(outcome.email)
    is_winning = outcome.is_winning
    if is_winning is None:
        is_winning = campaign.is_winning_label(outcome.prize_label)
    prize = outcome.prize_label.strip() if is_winning and outcome.prize_label else None

    repo = ActivityRepository(session)
    for attempt in range(1, MAX_WRITE_ATTEMPTS + 1):
        current = repo.find_current(campaign.id, email)
        if current is None:
            _require(name=outcome.name, phoneNumber=outcome.phone)
            _check_email(email)
            record = repo.create(
                campaign_id=campaign.id,
                email=email,
                name=outcome.name.strip(),
                phone=normalize_phone(outcome.phone),
                spin_count=1,
                has_won_prize=is_winning,
                prize=prize,
            )
            logger.info("Recorded first spin for %s on %s (won=%s)", email, campaign.id, is_winning)
            return record, True

        changes: dict[str, Any] = {}
        if is_winning and not current.has_won_prize:
            changes.update(has_won_prize=True, prize=prize)
        try:
            record = repo.apply_spin(current, **changes)
        except StaleRecordError:
            logger.warning(
                "Concurrent spin on activity %s, retrying (%d/%d)", current.id, attempt, MAX_WRITE_ATTEMPTS
            )
            continue
        logger.info(
            "Recorded spin %d for %s on %s (won=%s)",
            record.spin_count, email, campaign.id, record.has_won_prize,
        )
        return record, False

    raise StoreError("Spin activity kept changing, giving up")


def update_activity(
    session: Session,
    changes: dict[str, Any],
    record_id: Optional[int] = None,
    email: Optional[str] = None,
    campaign_id: Optional[str] = None,
) -> SpinActivity:
    """Explicit edit of a record, located by id or by most recent email match.

    Only keys present in ``changes`` are written. The spin counter may not go
    down and a won prize may not be un-won.
    """
    if record_id is None and is_blank(email):
        raise ValidationError("Either id or email is required for update")
    changes = dict(changes)
    nulled = [key for key in REQUIRED_ON_EDIT if key in changes and changes[key] is None]
    if nulled:
        raise ValidationError(f"Fields cannot be null: {', '.join(nulled)}")
    blank = [key for key in IDENTITY_FIELDS if key in changes and is_blank(changes[key])]
    if blank:
        raise ValidationError(f"Fields cannot be blank: {', '.join(blank)}")
    if "email" in changes:
        changes["email"] = normalize_email(changes["email"])
        _check_email(changes["email"])
    for key in ("name", "campaign_id"):
        if key in changes:
            changes[key] = changes[key].strip()

    repo = ActivityRepository(session)
    if record_id is not None:
        record = repo.get(record_id)
    elif not is_blank(campaign_id):
        record = repo.find_current(campaign_id.strip(), normalize_email(email))
    else:
        record = repo.find_current_by_email(normalize_email(email))
    if record is None:
        raise RecordNotFound("Spin activity not found")

    if "spin_count" in changes:
        if changes["spin_count"] < record.spin_count:
            raise ValidationError("numberOfSpins cannot decrease")
    if changes.get("has_won_prize") is False and record.has_won_prize:
        raise ValidationError("hasWonPrize cannot be reset once a prize is won")
    if "phone" in changes:
        changes["phone"] = normalize_phone(changes["phone"])
        if not changes["phone"].lstrip("+"):
            raise ValidationError("Invalid phoneNumber")

    return repo.update(record, **changes)


def increment_spin_count(
    session: Session, email: Optional[str], campaign_id: Optional[str] = None
) -> SpinActivity:
    """Add exactly one spin to the participant's current record.

    Prize fields are left alone. Without ``campaign_id`` the most recently
    updated record for the email across all campaigns is used.
    """
    if is_blank(email):
        raise ValidationError("Email is required")
    email = normalize_email(email)
    repo = ActivityRepository(session)

    for attempt in range(1, MAX_WRITE_ATTEMPTS + 1):
        if is_blank(campaign_id):
            current = repo.find_current_by_email(email)
        else:
            current = repo.find_current(campaign_id.strip(), email)
        if current is None:
            raise RecordNotFound("Spin activity not found for this email")
        try:
            return repo.apply_spin(current)
        except StaleRecordError:
            logger.warning("Concurrent increment on activity %s (%d/%d)", current.id, attempt, MAX_WRITE_ATTEMPTS)

    raise StoreError("Spin activity kept changing, giving up")
