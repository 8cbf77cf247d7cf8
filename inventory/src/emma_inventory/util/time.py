from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

FILENAME_TIMESTAMP_FORMAT = "%Y%m%dT%H%M%SZ"


def utc_now_iso(seconds: bool = True) -> str:
    """
    Return current UTC time in ISO-8601 format.
    - If seconds is True, use seconds precision (stable strings).
    - Else, use milliseconds precision.
    """
    if seconds:
        return datetime.now(timezone.utc).isoformat(timespec="seconds")
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds")


def filename_timestamp(now: Optional[datetime] = None) -> str:
    """
    UTC timestamp safe for file names on every platform (no ':' characters).
    """
    moment = now or datetime.now(timezone.utc)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).strftime(FILENAME_TIMESTAMP_FORMAT)
