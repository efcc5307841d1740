import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone


@dataclass(frozen=True)
class Remaining:
    label: str
    is_expired: bool
    seconds: float


def ensure_utc(value: datetime) -> datetime:
    """Return an aware UTC datetime. Naive values are assumed to already be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def snipe_time(ending_at: datetime, offset_minutes: int) -> datetime:
    """Moment the snipe bid should fire for an auction ending at `ending_at`."""
    return ensure_utc(ending_at) - timedelta(minutes=offset_minutes)


def remaining(deadline: datetime, now: datetime) -> Remaining:
    """Calculate and label the time left until `deadline`.

    Returns:
        - "Ended" if the deadline has passed (never a negative duration)
        - "<1m" if less than a minute remains
        - Minutes (e.g., "45m") if less than 1 hour remaining
        - Hours (e.g., "5h") if 1-36 hours remaining
        - Days (e.g., "3d") if 36 hours or more remaining
    """
    total_seconds = (ensure_utc(deadline) - ensure_utc(now)).total_seconds()

    if total_seconds <= 0:
        return Remaining(label="Ended", is_expired=True, seconds=0.0)

    total_minutes = total_seconds / 60
    total_hours = total_seconds / 3600

    if total_minutes < 1:
        label = "<1m"
    elif total_hours < 1:
        label = f"{int(total_minutes)}m"
    elif total_hours < 36:
        label = f"{int(total_hours)}h"
    else:
        # Round up to the nearest day: 36.5h -> 2d, 48.1h -> 3d
        label = f"{math.ceil(total_hours / 24)}d"

    return Remaining(label=label, is_expired=False, seconds=total_seconds)
