import calendar
from datetime import date, datetime, timezone


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


def to_utc_day(value: datetime | date) -> date:
    """Calendar day of ``value`` in UTC; naive datetimes are taken as UTC."""
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date()
    return value


def month_range(month: int, year: int) -> tuple[date, date]:
    """First and last day of a calendar month."""
    if not 1 <= month <= 12:
        raise ValueError("month must be between 1 and 12")
    if not 1000 <= year <= 9999:
        raise ValueError("year must have 4 digits")
    last = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last)


def format_delivery_day(value: date) -> str:
    return value.strftime("%b %d, %Y")
