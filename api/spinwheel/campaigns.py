"""Campaign policies: time window, daily hours, spin budget and prize labels."""

from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from .config import PROJECT_ROOT, Settings
from .utils import as_utc

logger = logging.getLogger(__name__)

DEFAULT_LOSING_LABELS = ["Try again"]


class Campaign(BaseModel):
    id: str
    name: Optional[str] = None
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None
    open_hour: Optional[int] = Field(default=None, ge=0, le=23)
    close_hour: Optional[int] = Field(default=None, ge=1, le=24)
    max_spins: int = Field(default=1, ge=1)
    prizes: list[str] = []
    losing_labels: list[str] = Field(default_factory=lambda: list(DEFAULT_LOSING_LABELS))

    not_started_message: str = "The spin event hasn't started yet. Please come back later!"
    ended_message: str = "The spin event has ended. Thank you for participating!"
    outside_hours_message: str = (
        "The spin event is only available during its daily opening hours. "
        "Please come back during these hours!"
    )

    @field_validator("starts_at", "ends_at")
    @classmethod
    def _to_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return as_utc(v)

    @model_validator(mode="after")
    def _check_windows(self) -> "Campaign":
        if self.starts_at and self.ends_at and self.ends_at <= self.starts_at:
            raise ValueError("ends_at must be after starts_at")
        if (self.open_hour is None) != (self.close_hour is None):
            raise ValueError("open_hour and close_hour must be set together")
        if self.open_hour is not None and self.close_hour <= self.open_hour:
            raise ValueError("close_hour must be after open_hour")
        return self

    def has_started(self, now: datetime) -> bool:
        return self.starts_at is None or as_utc(now) >= self.starts_at

    def has_ended(self, now: datetime) -> bool:
        return self.ends_at is not None and as_utc(now) >= self.ends_at

    def within_daily_hours(self, now: datetime) -> bool:
        if self.open_hour is None:
            return True
        hour = as_utc(now).hour
        return self.open_hour <= hour < self.close_hour

    def is_winning_label(self, label: Optional[str]) -> bool:
        if not label or not label.strip():
            return False
        lowered = label.lower()
        return not any(lose.lower() in lowered for lose in self.losing_labels)


class CampaignFile(BaseModel):
    campaigns: list[Campaign] = []


class CampaignRegistry:
    """Configured campaigns, with a default policy for ids nobody configured."""

    def __init__(self, campaigns: list[Campaign] | None = None, default: Campaign | None = None):
        self._campaigns = {c.id: c for c in campaigns or []}
        self._default = default or Campaign(id="default")

    def get(self, campaign_id: str) -> Campaign:
        campaign = self._campaigns.get(campaign_id)
        if campaign is not None:
            return campaign
        return self._default.model_copy(update={"id": campaign_id})

    def __len__(self) -> int:
        return len(self._campaigns)

    @classmethod
    def from_settings(cls, settings: Settings) -> "CampaignRegistry":
        default = Campaign(
            id="default",
            starts_at=settings.default_starts_at,
            ends_at=settings.default_ends_at,
            open_hour=settings.default_open_hour,
            close_hour=settings.default_close_hour,
            max_spins=settings.default_max_spins,
        )
        campaigns: list[Campaign] = []
        if settings.campaigns_file:
            path = Path(settings.campaigns_file)
            if not path.is_absolute():
                # relative to the project root, like .env
                path = PROJECT_ROOT / path
            campaigns = load_campaigns(path)
        return cls(campaigns, default=default)


def load_campaigns(path: Path) -> list[Campaign]:
    """Read ``{"campaigns": [...]}`` from ``path``; a missing file is a config error."""
    if not path.exists():
        raise FileNotFoundError(f"Campaigns file not found: {path}")
    data = json.loads(path.read_text(encoding="utf-8"))
    parsed = CampaignFile.model_validate(data)
    logger.info("Loaded %d campaign(s) from %s", len(parsed.campaigns), path)
    return parsed.campaigns
