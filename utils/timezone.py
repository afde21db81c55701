"""UTC-everywhere time handling. Due dates and payment dates are UTC calendar days."""

from datetime import date, datetime, timedelta, timezone


def now_utc() -> datetime:
    """
    Current time in UTC.

    Use this instead of datetime.now() everywhere.
    """
    return datetime.now(timezone.utc)


def today_utc() -> date:
    """Current calendar date in UTC. Overdue checks compare against this."""
    return now_utc().date()


def days_from_today(days: int) -> date:
    """UTC date `days` from today (negative for the past)."""
    return today_utc() + timedelta(days=days)
