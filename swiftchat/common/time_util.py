from __future__ import annotations

from datetime import datetime, timezone

def utc_now_iso() -> str:
    """Current UTC time as ISO-8601 with a trailing Z, second precision."""
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")
