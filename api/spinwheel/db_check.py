"""Connectivity check for a Postgres DATABASE_URL.

    python -m spinwheel.db_check
"""

import logging
import socket
import sys
from typing import Optional

import psycopg
from sqlalchemy.engine import make_url

from .config import settings
from .logging_config import setup_logging

logger = logging.getLogger(__name__)


def libpq_dsn(database_url: str) -> str:
    """SQLAlchemy URL -> plain libpq URL psycopg understands."""
    url = make_url(database_url)
    if not url.drivername.startswith("postgresql"):
        raise ValueError(f"Not a Postgres URL: {url.drivername}")
    return url.set(drivername="postgresql").render_as_string(hide_password=False)


def check_database(database_url: Optional[str] = None) -> int:
    """Resolve the host, connect, and count activity rows. Returns the count."""
    dsn = libpq_dsn(database_url or settings.database_url)
    url = make_url(dsn)
    # Show parsed host to catch hidden-character issues
    if not url.host:
        raise ValueError(f"Could not parse host from URL: {url!r}")
    logger.info("Parsed host: %s", url.host)

    socket.getaddrinfo(url.host, url.port or 5432)
    logger.info("DNS OK")

    with psycopg.connect(dsn, connect_timeout=10) as conn, conn.cursor() as cur:
        cur.execute("select count(*) from spin_activities;")
        count = cur.fetchone()[0]
    logger.info("spin_activities rows = %s", count)
    return count


def main() -> int:
    setup_logging(settings.log_level)
    try:
        check_database()
    except (ValueError, OSError, psycopg.Error) as exc:
        logger.error("Database check failed: %s", exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
