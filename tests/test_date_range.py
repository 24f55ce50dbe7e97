from datetime import date

import pytest

from agentmeter.date_range import (
    days_between,
    default_range,
    describe_range,
    is_valid_date,
    iter_days,
    local_date,
    local_noon_timestamp,
    period_range,
)


class TestIsValidDate:
    @pytest.mark.parametrize("value", ["2024-01-01", "2024-02-29", "1999-12-31"])
    def test_valid(self, value: "str") -> "None":
        assert is_valid_date(value)

    @pytest.mark.parametrize(
        "value", ["2023-02-29", "2024-13-01", "2024-1-01", "20240101", "", "2024-01-01T00:00"]
    )
    def test_invalid(self, value: "str") -> "None":
        assert not is_valid_date(value)


class TestLocalDates:
    def test_noon_round_trips_to_same_date(self) -> "None":
        for day in ("2024-03-10", "2024-03-31", "2024-11-03", "2024-12-31"):
            assert local_date(local_noon_timestamp(day)) == day

    def test_iter_days_inclusive(self) -> "None":
        assert list(iter_days("2023-12-30", "2024-01-02")) == [
            "2023-12-30",
            "2023-12-31",
            "2024-01-01",
            "2024-01-02",
        ]
        assert days_between("2023-12-30", "2024-01-02") == 3


class TestPeriodRange:
    # a Wednesday
    today = date(2024, 2, 14)

    def test_daily(self) -> "None":
        r = period_range("daily", self.today)
        assert (r.start, r.end) == ("2024-02-14", "2024-02-14")

    def test_weekly_runs_sunday_to_saturday(self) -> "None":
        r = period_range("weekly", self.today)
        assert (r.start, r.end) == ("2024-02-11", "2024-02-17")

    def test_weekly_on_sunday(self) -> "None":
        r = period_range("weekly", date(2024, 2, 11))
        assert (r.start, r.end) == ("2024-02-11", "2024-02-17")

    def test_monthly_leap_year(self) -> "None":
        r = period_range("monthly", self.today)
        assert (r.start, r.end) == ("2024-02-01", "2024-02-29")

    def test_yearly(self) -> "None":
        r = period_range("yearly", self.today)
        assert (r.start, r.end) == ("2024-01-01", "2024-12-31")

    def test_unknown_period(self) -> "None":
        with pytest.raises(ValueError):
            period_range("hourly", self.today)


class TestDefaultRange:
    def test_last_thirty_days(self) -> "None":
        r = default_range(today=date(2024, 3, 31))
        assert (r.start, r.end) == ("2024-03-01", "2024-03-31")

    def test_explicit_bounds(self) -> "None":
        r = default_range("2024-01-05", "2024-01-10")
        assert (r.start, r.end) == ("2024-01-05", "2024-01-10")

    def test_start_defaults_relative_to_end(self) -> "None":
        r = default_range(end="2024-01-31")
        assert r.start == "2024-01-01"


class TestDescribeRange:
    def test_single_day(self) -> "None":
        assert describe_range("2024-03-05", "2024-03-05") == "March 5, 2024"

    def test_same_month(self) -> "None":
        assert describe_range("2024-03-01", "2024-03-05") == "March 1 - 5, 2024"

    def test_same_year(self) -> "None":
        assert describe_range("2024-03-01", "2024-04-05") == "Mar 1 - Apr 5, 2024"

    def test_across_years(self) -> "None":
        assert describe_range("2023-12-30", "2024-01-02") == "Dec 30, 2023 - Jan 2, 2024"
