"""
Calendar attribute derivation for the date dimension.
"""

from dataclasses import dataclass
from datetime import date, datetime
from typing import Union

from salesdw.exceptions import ValidationError

DateLike = Union[date, datetime, str]


@dataclass(frozen=True)
class DateAttributes:
    """Calendar attributes of one day"""
    full_date: date
    date_key: int  # YYYYMMDD
    year: int
    quarter: int
    month: int
    day: int
    day_of_week: int  # 0=Monday
    day_of_year: int
    week_of_year: int
    month_name: str
    is_weekend: bool

    def as_row(self) -> dict:
        return {
            "date_key": self.date_key,
            "full_date": self.full_date,
            "year": self.year,
            "quarter": self.quarter,
            "month": self.month,
            "day": self.day,
            "day_of_week": self.day_of_week,
            "day_of_year": self.day_of_year,
            "week_of_year": self.week_of_year,
            "month_name": self.month_name,
            "is_weekend": self.is_weekend,
        }


def parse_date(value: DateLike) -> date:
    """
    Coerce a date, datetime or ISO string to a calendar date.

    Strings may carry a time part ("2016-08-01 10:00:00" or "2016-08-01T10:00"),
    which is dropped.

    Raises:
        ValidationError: If the value is not a valid calendar date
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        try:
            if len(text) > 10:
                return datetime.fromisoformat(text).date()
            return date.fromisoformat(text)
        except ValueError as e:
            raise ValidationError(f"Invalid calendar date '{value}': {e}") from e
    raise ValidationError(f"Expected a calendar date, got {type(value).__name__}")


def quarter_of(month: int) -> int:
    return (month - 1) // 3 + 1


def derive(value: DateLike) -> DateAttributes:
    """
    Derive the date dimension attributes of a calendar date.

    Args:
        value: date, datetime or ISO date string

    Returns:
        DateAttributes for that day

    Raises:
        ValidationError: If the value is not a valid calendar date
    """
    d = parse_date(value)
    return DateAttributes(
        full_date=d,
        date_key=d.year * 10000 + d.month * 100 + d.day,
        year=d.year,
        quarter=quarter_of(d.month),
        month=d.month,
        day=d.day,
        day_of_week=d.weekday(),
        day_of_year=d.timetuple().tm_yday,
        week_of_year=d.isocalendar()[1],
        month_name=d.strftime("%B"),
        is_weekend=d.weekday() >= 5,
    )
