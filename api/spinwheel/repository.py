import logging
from typing import Any, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .exceptions import StaleRecordError, StoreError
from .models import SpinActivity
from .utils import utcnow

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("campaign_id", "name", "email", "phone", "prize", "has_won_prize", "spin_count")


class ActivityRepository:
    """Persistence for spin activity records.

    Every write commits its own transaction; SQLAlchemy failures are rolled
    back and re-raised as :class:`StoreError`.
    """

    def __init__(self, session: Session):
        self.session = session

    def _commit(self) -> None:
        try:
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.exception("Commit failed")
            raise StoreError("Failed to persist spin activity") from exc

    def find_current(self, campaign_id: str, email: str) -> Optional[SpinActivity]:
        """Return the most recently updated record for the participant, if any.

        Storage may hold historical duplicates; only one is ever current.
        """
        return self._first(
            select(SpinActivity).where(
                SpinActivity.campaign_id == campaign_id,
                SpinActivity.email == email,
            )
        )

    def find_current_by_email(self, email: str) -> Optional[SpinActivity]:
        return self._first(select(SpinActivity).where(SpinActivity.email == email))

    def get(self, record_id: int) -> Optional[SpinActivity]:
        try:
            return self.session.get(SpinActivity, record_id)
        except SQLAlchemyError as exc:
            logger.exception("Lookup of activity %s failed", record_id)
            raise StoreError("Failed to load spin activity") from exc

    def _first(self, stmt) -> Optional[SpinActivity]:
        stmt = stmt.order_by(SpinActivity.updated_at.desc(), SpinActivity.id.desc()).limit(1)
        try:
            return self.session.scalars(stmt).first()
        except SQLAlchemyError as exc:
            logger.exception("Activity lookup failed")
            raise StoreError("Failed to load spin activity") from exc

    def create(self, **fields: Any) -> SpinActivity:
        now = utcnow()
        record = SpinActivity(created_at=now, updated_at=now, **fields)
        self.session.add(record)
        self._commit()
        self.session.refresh(record)
        return record

    def update(self, record: SpinActivity, **changes: Any) -> SpinActivity:
        unknown = set(changes) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValueError(f"Not editable: {', '.join(sorted(unknown))}")
        for key, value in changes.items():
            setattr(record, key, value)
        record.updated_at = utcnow()
        self._commit()
        return record

    def apply_spin(self, record: SpinActivity, **changes: Any) -> SpinActivity:
        """Add one spin to ``record`` in a single guarded UPDATE.

        The write only lands if ``spin_count`` still holds the value that was
        read; otherwise :class:`StaleRecordError` is raised and nothing changes.
        """
        expected = record.spin_count
        stmt = (
            update(SpinActivity)
            .where(SpinActivity.id == record.id, SpinActivity.spin_count == expected)
            .values(spin_count=expected + 1, updated_at=utcnow(), **changes)
            .execution_options(synchronize_session=False)
        )
        try:
            result = self.session.execute(stmt)
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.exception("Spin update of activity %s failed", record.id)
            raise StoreError("Failed to persist spin activity") from exc

        if result.rowcount != 1:
            self.session.rollback()
            raise StaleRecordError(f"Activity {record.id} changed since it was read")

        self._commit()
        self.session.refresh(record)
        return record
