import time
from datetime import date, datetime, timedelta


def to_datetime(ms: int) -> datetime:
    """Local, timezone-aware datetime for an epoch-milliseconds value."""
    return datetime.fromtimestamp(ms / 1000).astimezone()


def date_string(day: date) -> str:
    return day.strftime("%Y-%m-%d")


def weekday_index(day: date) -> int:
    """Monday=0 ... Sunday=6."""
    return day.weekday()


class Clock:
    """Wall clock in epoch milliseconds. Swapped for a manual clock in tests."""

    def now_ms(self) -> int:
        return int(time.time() * 1000)

    def now(self) -> datetime:
        return to_datetime(self.now_ms())

    def today(self) -> date:
        return self.now().date()

    def today_string(self) -> str:
        return date_string(self.today())

    def yesterday_string(self) -> str:
        return date_string(self.today() - timedelta(days=1))

    def last_days(self, count: int = 7) -> list[str]:
        """Local date strings for today and the previous `count - 1` days."""
        today = self.today()
        return [date_string(today - timedelta(days=i)) for i in range(count)]
