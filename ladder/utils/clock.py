from datetime import datetime, timezone


def utc_now() -> datetime:
    """Naive UTC timestamp, matching what SQLite DateTime columns round-trip"""
    return datetime.now(timezone.utc).replace(tzinfo=None)
