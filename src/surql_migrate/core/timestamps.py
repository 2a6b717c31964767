"""
Version tokens and UTC timestamp utilities (stdlib-only).

Migration units are identified by a time-derived version token
``YYYYMMDD_HHMMSS``. The fixed-width format sorts lexicographically in the
same order as chronologically, so folder names, ledger rows and in-memory
lists all agree on ordering without parsing.

Features:
    - **utc_now():** Timezone-aware UTC datetime
    - **mint_version():** Next token, strictly greater than any existing one
    - **to_iso8601() / from_iso8601():** Safe serialization round-trip

Tags:
    timestamps, version-token, utc, datetime, surql-migrate, stdlib-only
"""

import re
from collections.abc import Iterable
from datetime import UTC, datetime, timedelta

VERSION_FORMAT = "%Y%m%d_%H%M%S"
VERSION_PATTERN = re.compile(r"^\d{8}_\d{6}$")


def utc_now() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(UTC)


def is_version(token: str) -> bool:
    """True if ``token`` is a well-formed version token."""
    if not VERSION_PATTERN.match(token):
        return False
    try:
        datetime.strptime(token, VERSION_FORMAT)
    except ValueError:
        return False
    return True


def format_version(moment: datetime) -> str:
    return moment.astimezone(UTC).strftime(VERSION_FORMAT)


def parse_version(token: str) -> datetime:
    return datetime.strptime(token, VERSION_FORMAT).replace(tzinfo=UTC)


def mint_version(existing: Iterable[str] = (), now: datetime | None = None) -> str:
    """
    Mint a version token for a new migration unit.

    The token is derived from ``now`` (UTC) but bumped one second past the
    newest existing token when the clock has not moved on, or has moved
    backwards, so tokens stay unique and monotonically increasing.
    """
    moment = (now or utc_now()).astimezone(UTC).replace(microsecond=0)
    latest = max(existing, default=None)
    if latest is not None:
        floor = parse_version(latest) + timedelta(seconds=1)
        if moment < floor:
            moment = floor
    return format_version(moment)


def to_iso8601(dt: datetime | None) -> str | None:
    """Convert datetime to ISO 8601 string."""
    if dt is None:
        return None
    return dt.isoformat()


def from_iso8601(s: str | None) -> datetime | None:
    """Parse ISO 8601 string to datetime."""
    if s is None:
        return None
    return datetime.fromisoformat(s.replace("Z", "+00:00"))
