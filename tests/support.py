from datetime import datetime, timedelta, timezone

from jose import jwt

from spinwheel.campaigns import Campaign, CampaignRegistry
from spinwheel.db import Base, get_sessionmaker, make_engine
from spinwheel.exceptions import DispatchError
from spinwheel.security import ALGO, ISSUER, body_digest

START = datetime(2025, 10, 6, 12, 0, tzinfo=timezone.utc)
END = datetime(2025, 10, 10, 14, 0, tzinfo=timezone.utc)
DURING = datetime(2025, 10, 6, 12, 30, tzinfo=timezone.utc)

ONE_SPIN = Campaign(
    id="october",
    starts_at=START,
    ends_at=END,
    open_hour=12,
    close_hour=14,
    max_spins=1,
    prizes=["T-Shirt", "Mug", "Try again"],
)
THREE_SPINS = Campaign(id="three", starts_at=START, ends_at=END, max_spins=3)


def make_registry() -> CampaignRegistry:
    return CampaignRegistry([ONE_SPIN, THREE_SPINS], default=Campaign(id="default", max_spins=1))


def in_memory_db():
    engine = make_engine("sqlite://")
    Base.metadata.create_all(engine)
    return engine, get_sessionmaker(engine)


class RecordingTransport:
    def __init__(self):
        self.sent = []

    def send(self, message):
        self.sent.append(message)


class FailingTransport:
    def __init__(self):
        self.attempts = 0

    def send(self, message):
        self.attempts += 1
        raise DispatchError("smtp down")


def make_queue_signature(body: bytes, signing_key: str, url: str = "", ttl_seconds: int = 300) -> str:
    """Sign ``body`` the way the queue does before calling back."""
    now = datetime.now(timezone.utc)
    claims = {
        "iss": ISSUER,
        "sub": url,
        "iat": int(now.timestamp()),
        "nbf": int(now.timestamp()),
        "exp": int((now + timedelta(seconds=ttl_seconds)).timestamp()),
        "body": body_digest(body),
    }
    return jwt.encode(claims, signing_key, algorithm=ALGO)
