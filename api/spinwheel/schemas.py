from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from datetime import datetime
from typing import Optional, List

from .utils import as_utc


class CamelModel(BaseModel):
    # the wheel page speaks camelCase
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class ActivitySnapshot(CamelModel):
    id: Optional[int] = None
    campaign_id: str = Field(alias="wheelId")
    name: str = Field(min_length=1)
    email: str = Field(min_length=3)
    phone: str = Field(default="", alias="phoneNumber")
    prize: Optional[str] = None
    has_won_prize: bool = False
    spin_count: int = Field(default=0, ge=0, alias="numberOfSpins")
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("created_at", "updated_at")
    @classmethod
    def _utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return as_utc(v)


class SpinRecordRequest(CamelModel):
    campaign_id: Optional[str] = Field(default=None, alias="wheelId")
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = Field(default=None, alias="phoneNumber")
    prize: Optional[str] = None
    # older pages send hasWonPrize for the outcome of this spin
    is_winning: Optional[bool] = Field(
        default=None, validation_alias=AliasChoices("isWinning", "hasWonPrize", "is_winning")
    )


class SpinUpdateRequest(CamelModel):
    id: Optional[int] = None
    email: Optional[str] = None
    campaign_id: Optional[str] = Field(default=None, alias="wheelId")
    name: Optional[str] = None
    phone: Optional[str] = Field(default=None, alias="phoneNumber")
    prize: Optional[str] = None
    has_won_prize: Optional[bool] = None
    spin_count: Optional[int] = Field(default=None, ge=0, alias="numberOfSpins")


class IncrementRequest(CamelModel):
    email: Optional[str] = None
    campaign_id: Optional[str] = Field(default=None, alias="wheelId")


class ActivityEnvelope(CamelModel):
    success: bool = True
    message: str
    activity: ActivitySnapshot


class EligibilityResponse(CamelModel):
    eligible: bool
    reason: str
    message: str
    has_won_prize: bool = False
    spins_used: int = 0
    activity: Optional[ActivitySnapshot] = None


class CampaignOut(CamelModel):
    id: str
    name: Optional[str] = None
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None
    open_hour: Optional[int] = None
    close_hour: Optional[int] = None
    max_spins: int
    prizes: List[str] = []


class OkResponse(BaseModel):
    ok: bool
    message: Optional[str] = None
