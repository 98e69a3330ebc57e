"""
Unit Tests - Date Dimension Derivation
"""
import pytest
from datetime import date, datetime

from salesdw.exceptions import ValidationError
from salesdw.warehouse.dates import derive, parse_date, quarter_of


class TestDerive:
    """Tests for calendar attribute derivation"""

    def test_derive_basic_attributes(self):
        """Test year/quarter/month/day of a known date"""
        attrs = derive(date(2016, 8, 1))

        assert attrs.year == 2016
        assert attrs.quarter == 3
        assert attrs.month == 8
        assert attrs.day == 1
        assert attrs.date_key == 20160801
        assert attrs.month_name == "August"

    def test_derive_calendar_extras(self):
        """Test weekday, weekend flag and day of year"""
        attrs = derive(date(2024, 3, 16))  # a Saturday

        assert attrs.day_of_week == 5
        assert attrs.is_weekend is True
        assert attrs.day_of_year == 76
        assert attrs.week_of_year == 11

    def test_leap_day(self):
        """Test February 29 in a leap year"""
        attrs = derive("2024-02-29")

        assert attrs.date_key == 20240229
        assert attrs.quarter == 1

    def test_as_row_matches_dimension_columns(self):
        """Test the row form carries every dim_date column"""
        row = derive("2024-12-31").as_row()

        assert row["full_date"] == date(2024, 12, 31)
        assert row["date_key"] == 20241231
        assert row["quarter"] == 4
        assert row["is_weekend"] is False

    @pytest.mark.parametrize("month,quarter", [(1, 1), (3, 1), (4, 2), (6, 2), (7, 3), (9, 3), (10, 4), (12, 4)])
    def test_quarter_boundaries(self, month, quarter):
        """Test quarter of each boundary month"""
        assert quarter_of(month) == quarter


class TestParseDate:
    """Tests for date coercion"""

    def test_datetime_is_truncated(self):
        """Test datetime values keep only their date"""
        assert parse_date(datetime(2016, 8, 1, 23, 59)) == date(2016, 8, 1)

    def test_string_with_time_part(self):
        """Test ISO strings carrying a time part"""
        assert parse_date("2016-08-01 10:00:00") == date(2016, 8, 1)
        assert parse_date("2016-08-01T10:00") == date(2016, 8, 1)

    def test_string_is_stripped(self):
        """Test surrounding whitespace is ignored"""
        assert parse_date("  2016-08-01 ") == date(2016, 8, 1)

    def test_invalid_calendar_date(self):
        """Test nonexistent days are rejected"""
        with pytest.raises(ValidationError, match="Invalid calendar date"):
            parse_date("2023-02-29")

    def test_garbage_string(self):
        """Test unparseable text is rejected"""
        with pytest.raises(ValidationError):
            parse_date("not a date")

    def test_unsupported_type(self):
        """Test non-date values are rejected"""
        with pytest.raises(ValidationError, match="Expected a calendar date"):
            parse_date(20160801)
