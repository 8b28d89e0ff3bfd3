import base64
import hashlib
import secrets
from typing import Optional

from jose import JWTError, jwt

from .exceptions import QueueSignatureError

ALGO = "HS256"
ISSUER = "Upstash"


def body_digest(body: bytes) -> str:
    return base64.urlsafe_b64encode(hashlib.sha256(body).digest()).decode("ascii").rstrip("=")


def verify_queue_signature(signature: Optional[str], body: bytes, signing_key: str) -> dict:
    """Check the queue's HS256 signature over ``body``; returns the claims."""
    if not signature:
        raise QueueSignatureError("Missing queue signature")
    try:
        claims = jwt.decode(
            signature,
            signing_key,
            algorithms=[ALGO],
            issuer=ISSUER,
            options={"verify_aud": False},
        )
    except JWTError as exc:
        raise QueueSignatureError("Invalid queue signature") from exc

    expected = claims.get("body") or ""
    if not secrets.compare_digest(expected.rstrip("="), body_digest(body)):
        raise QueueSignatureError("Queue signature does not match body")
    return claims
