from datetime import datetime

from sqlalchemy import BigInteger, Boolean, DateTime, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from .db import Base
from .utils import utcnow

# BigInteger in Postgres, plain Integer so SQLite autoincrements
ID_TYPE = BigInteger().with_variant(Integer, "sqlite")


class SpinActivity(Base):
    """One participant's spin history for one campaign.

    Storage may keep several rows for the same participant; the most recently
    updated row is the current one.
    """

    __tablename__ = "spin_activities"
    __table_args__ = (
        Index("ix_spin_activities_lookup", "campaign_id", "email", "updated_at"),
    )

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    campaign_id: Mapped[str] = mapped_column(String(120), nullable=False)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    phone: Mapped[str] = mapped_column(String(40), nullable=False)
    spin_count: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    has_won_prize: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    prize: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    def __repr__(self) -> str:
        return (
            f"<SpinActivity id={self.id} campaign={self.campaign_id!r} email={self.email!r} "
            f"spins={self.spin_count} won={self.has_won_prize}>"
        )
