from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo


def utcnow() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """Make a naive datetime timezone-aware (UTC). Already-aware datetimes pass through.

    MongoDB stores datetimes without tzinfo (naive). Wrap values read back from
    a document before comparing them with tz-aware values.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def today_iso(tz_name: str, now: datetime | None = None) -> str:
    """Calendar date (YYYY-MM-DD) of ``now`` in the given IANA zone."""
    now = ensure_utc(now or utcnow())
    return now.astimezone(ZoneInfo(tz_name)).date().isoformat()


def parse_date_iso(value: str) -> date | None:
    """Strict YYYY-MM-DD parse. Returns None for anything that is not a real date."""
    if not isinstance(value, str) or len(value) != 10:
        return None
    try:
        parsed = date.fromisoformat(value)
    except ValueError:
        return None
    # fromisoformat accepts a few other shapes on newer Pythons
    return parsed if parsed.isoformat() == value else None
