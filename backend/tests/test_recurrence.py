from datetime import date
from zoneinfo import ZoneInfo

import pytest

from medreminder.services.recurrence import (
    Occurrence,
    add_months,
    first_occurrence,
    is_recurring,
    next_occurrence,
    reminder_minutes_for,
)

from .factories import utc


def test_daily_steps_one_day() -> None:
    base = utc(2024, 1, 1, 9, 0)
    assert next_occurrence(base, "daily", utc(2024, 1, 1, 9, 0, 30)) == utc(2024, 1, 2, 9, 0)


def test_weekly_steps_seven_days() -> None:
    base = utc(2024, 1, 1, 9, 0)
    assert next_occurrence(base, Occurrence.WEEKLY, base) == utc(2024, 1, 8, 9, 0)


def test_monthly_clamps_to_end_of_short_month() -> None:
    base = utc(2024, 1, 31, 9, 0)
    assert next_occurrence(base, "monthly", base) == utc(2024, 2, 29, 9, 0)
    assert next_occurrence(utc(2023, 1, 31, 9, 0), "monthly", utc(2023, 1, 31, 9, 0)) == utc(2023, 2, 28, 9, 0)


def test_monthly_carries_clamped_day_forward() -> None:
    # Fast-forwarding from Jan 31 past Feb steps from the clamped Feb 29
    base = utc(2024, 1, 31, 9, 0)
    assert next_occurrence(base, "monthly", utc(2024, 3, 1)) == utc(2024, 3, 29, 9, 0)


def test_add_months_wraps_year() -> None:
    assert add_months(utc(2024, 12, 15, 8, 0), 1) == utc(2025, 1, 15, 8, 0)


def test_skips_occurrences_missed_during_outage() -> None:
    base = utc(2024, 1, 1, 9, 0)
    now = utc(2024, 1, 4, 10, 0)
    assert next_occurrence(base, "daily", now) == utc(2024, 1, 5, 9, 0)


def test_result_is_strictly_after_now() -> None:
    base = utc(2024, 1, 1, 9, 0)
    # now lands exactly on the next instance, which is no longer upcoming
    assert next_occurrence(base, "daily", utc(2024, 1, 2, 9, 0)) == utc(2024, 1, 3, 9, 0)


@pytest.mark.parametrize("occurrence", ["once", "custom", None, "", "fortnightly"])
def test_non_recurring_rules_end_the_series(occurrence) -> None:
    base = utc(2024, 1, 1, 9, 0)
    assert next_occurrence(base, occurrence, base) is None


def test_daily_keeps_local_wall_clock_across_dst() -> None:
    zone = ZoneInfo("America/New_York")
    # 09:00 EST the day before the spring-forward change
    base = utc(2024, 3, 9, 14, 0)
    result = next_occurrence(base, "daily", base, zone)
    assert result == utc(2024, 3, 10, 13, 0)
    assert result.astimezone(zone).hour == 9


def test_default_zone_steps_in_utc() -> None:
    base = utc(2024, 3, 9, 14, 0)
    assert next_occurrence(base, "daily", base) == utc(2024, 3, 10, 14, 0)


def test_result_is_utc() -> None:
    result = next_occurrence(utc(2024, 1, 1, 9, 0), "daily", utc(2024, 1, 1, 9, 0), ZoneInfo("Asia/Kolkata"))
    assert result.utcoffset().total_seconds() == 0
    assert result == utc(2024, 1, 2, 9, 0)


def test_reminder_lead_depends_on_meal_timing() -> None:
    assert reminder_minutes_for("after") == 30
    assert reminder_minutes_for("before") == 15


def test_is_recurring() -> None:
    assert is_recurring("daily")
    assert is_recurring(Occurrence.MONTHLY)
    assert not is_recurring("once")
    assert not is_recurring(None)


def test_first_occurrence_future_start_is_used_as_is() -> None:
    zone = ZoneInfo("Asia/Kolkata")
    result = first_occurrence(date(2024, 1, 10), "09:00", "daily", utc(2024, 1, 1), zone)
    assert result == utc(2024, 1, 10, 3, 30)


def test_first_occurrence_past_start_is_fast_forwarded() -> None:
    result = first_occurrence(date(2024, 1, 1), "09:00", "daily", utc(2024, 1, 3, 12, 0))
    assert result == utc(2024, 1, 4, 9, 0)


def test_first_occurrence_past_one_off_has_nothing_left() -> None:
    assert first_occurrence(date(2024, 1, 1), "09:00", "once", utc(2024, 1, 3)) is None
