import datetime
from typing import Iterable, Tuple
from zoneinfo import ZoneInfo


class CalendarTools:
    """Timestamp parsing and calendar bucketing helpers."""

    @staticmethod
    def parse_timestamp(ts: str) -> datetime.datetime:
        """Return ``ts`` as timezone-aware datetime, treating naive input as UTC."""
        dt = datetime.datetime.fromisoformat(ts.replace("Z", "+00:00"))
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=datetime.timezone.utc)
        return dt

    @staticmethod
    def to_iso(dt: datetime.datetime) -> str:
        """Format ``dt`` in the canonical stored form (UTC, millisecond precision)."""
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=datetime.timezone.utc)
        return dt.astimezone(datetime.timezone.utc).isoformat(timespec="milliseconds")

    @staticmethod
    def normalize(ts: str) -> str:
        return CalendarTools.to_iso(CalendarTools.parse_timestamp(ts))

    @staticmethod
    def trailing_range(now: datetime.datetime, days: int) -> Tuple[str, str]:
        """Return ``(from, to)`` ISO bounds covering the ``days`` before ``now``."""
        start = now - datetime.timedelta(days=days)
        return CalendarTools.to_iso(start), CalendarTools.to_iso(now)

    @staticmethod
    def zone(tz: str) -> ZoneInfo:
        return ZoneInfo(tz)

    @staticmethod
    def local_date(ts: str, tz: str = "UTC") -> datetime.date:
        return CalendarTools.parse_timestamp(ts).astimezone(ZoneInfo(tz)).date()

    @staticmethod
    def week_key(ts: str, tz: str = "UTC", week_start: str = "sunday") -> str:
        """Return the ISO date of the first day of the week containing ``ts``."""
        day = CalendarTools.local_date(ts, tz)
        if week_start == "monday":
            offset = day.weekday()
        else:
            offset = (day.weekday() + 1) % 7
        return (day - datetime.timedelta(days=offset)).isoformat()

    @staticmethod
    def week_label(key: str) -> str:
        """Shorten a ``YYYY-MM-DD`` week key to ``MM-DD``."""
        return key[5:]

    @staticmethod
    def compute_streak(
        timestamps: Iterable[str], today: datetime.date, tz: str = "UTC"
    ) -> int:
        """Count consecutive training days ending today.

        A user who has not trained yet today has a streak of 0, even when
        yesterday was a training day.
        """
        days = sorted(
            {CalendarTools.local_date(ts, tz) for ts in timestamps}, reverse=True
        )
        streak = 0
        expected = today
        for day in days:
            if day != expected:
                break
            streak += 1
            expected -= datetime.timedelta(days=1)
        return streak
