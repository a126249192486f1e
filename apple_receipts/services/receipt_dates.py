"""
Epoch-millisecond date helpers for App Store receipt fields.

Apple encodes timestamps such as `expires_date_ms` as strings holding
milliseconds since the Unix epoch.
"""

from datetime import UTC, datetime, timedelta

_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


def _parse(raw: object) -> datetime | None:
    if raw is None or isinstance(raw, bool):
        return None

    if isinstance(raw, int):
        millis = raw
    elif isinstance(raw, str):
        text = raw.strip()
        # int() would also accept "1_000"
        if not text or "_" in text:
            return None
        try:
            millis = int(text)
        except ValueError:
            return None
    else:
        return None

    try:
        return _EPOCH + timedelta(milliseconds=millis)
    except OverflowError:
        return None


def is_valid_date(raw: object) -> bool:
    """Check if `raw` is present and parses as epoch milliseconds."""
    return _parse(raw) is not None


def is_after_now(raw: object, now: datetime | None = None) -> bool:
    """Check if `raw` parses and lies strictly after `now` (default: current UTC time)."""
    parsed = _parse(raw)
    if parsed is None:
        return False
    return parsed > (now or datetime.now(UTC))


def to_date(raw: object) -> datetime:
    """
    Convert epoch milliseconds to an aware UTC datetime.

    Raises:
        ValueError: If `raw` does not parse; guard with `is_valid_date`
    """
    parsed = _parse(raw)
    if parsed is None:
        raise ValueError(f"Not an epoch-millisecond timestamp: {raw!r}")
    return parsed
