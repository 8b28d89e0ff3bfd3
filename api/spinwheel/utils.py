from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    """UTC-aware 'now' to keep comparisons consistent with timestamptz columns."""
    return datetime.now(timezone.utc)


def as_utc(dt: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes for timezone=True columns
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def is_blank(value: Optional[str]) -> bool:
    # broken clients send the literal "undefined" for missing query params
    return value is None or not value.strip() or value.strip() == "undefined"


def normalize_email(email: str) -> str:
    return email.strip().lower()


def normalize_phone(p: str) -> str:
    p = p.strip()
    digits = "".join(ch for ch in p if ch.isdigit())
    return f"+{digits}" if p.startswith("+") else digits
