"""Wall clock pinned to the deployment timezone.

Calendar days (task assignment dates, the stale sweep cutoff) are always
computed in ``settings.timezone``. Stored instants are UTC ISO strings so they
compare correctly as text.
"""

from datetime import UTC, date, datetime
from zoneinfo import ZoneInfo

from src.core.config import settings


def tz() -> ZoneInfo:
    return ZoneInfo(settings.timezone)


def now() -> datetime:
    """Current time as an aware datetime in the configured timezone."""
    return datetime.now(tz())


def local_day(moment: datetime) -> date:
    """Calendar day of `moment` in the configured timezone.

    Naive datetimes are taken to already be local.
    """
    if moment.tzinfo is None:
        return moment.date()
    return moment.astimezone(tz()).date()


def today() -> str:
    """Today's date in the configured timezone as YYYY-MM-DD."""
    return local_day(now()).isoformat()


def timestamp(moment: datetime | None = None) -> str:
    """UTC ISO timestamp for storage."""
    moment = moment or datetime.now(UTC)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=tz())
    return moment.astimezone(UTC).isoformat()
