"""UTC timezone enforcement.

Sets the TZ environment variable to UTC and provides the naive-UTC clock
used for every persisted timestamp.
"""

import os
from datetime import datetime, timezone

os.environ["TZ"] = "UTC"


def utcnow() -> datetime:
    """Current UTC time as a naive datetime (matches TIMESTAMP WITHOUT TIME ZONE columns)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
