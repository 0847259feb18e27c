from __future__ import annotations

from datetime import datetime, timezone


def now_iso() -> str:
    # Millisecond precision, "Z" suffix: ISO strings then sort chronologically.
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
