"""
dicevault/core/time.py

Journal timestamps.

Wire format: YYYY-MM-DDTHH:MM:SS.mmmZ
             (milliseconds, explicit Z, no +00:00, no microseconds)

The ledger's own clock is the slot counter; wall-clock time only appears in
the journal, for humans.
"""

from datetime import datetime, timezone


def utc_timestamp() -> str:
    """Return current UTC time as YYYY-MM-DDTHH:MM:SS.mmmZ."""
    now = datetime.now(timezone.utc)
    ms  = now.microsecond // 1000
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{ms:03d}Z"
