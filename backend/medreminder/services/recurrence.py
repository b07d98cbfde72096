"""Next-occurrence calculation for recurring medicine schedules.

Calendar steps are taken in the medicine's own timezone so a 09:00 dose stays
at 09:00 local time across DST changes; results are always returned in UTC.

Monthly steps clamp to the last valid day of the target month
(Jan 31 + 1 month = Feb 28, or Feb 29 in a leap year). Each step starts from
the previous candidate, so a clamped day is carried forward (Feb 29 -> Mar 29).
"""
import calendar
import logging
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from enum import Enum
from typing import Optional

from ..utils.time_utils import ensure_utc

logger = logging.getLogger(__name__)


class Occurrence(str, Enum):
    """Recurrence rule of a medicine schedule."""
    ONCE = "once"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    CUSTOM = "custom"


class MealTiming(str, Enum):
    """Whether the dose is taken before or after a meal."""
    BEFORE = "before"
    AFTER = "after"


# Rules that never produce a further occurrence
TERMINAL_OCCURRENCES = {Occurrence.ONCE.value, Occurrence.CUSTOM.value}

RECURRING_OCCURRENCES = {
    Occurrence.DAILY.value,
    Occurrence.WEEKLY.value,
    Occurrence.MONTHLY.value,
}

REMINDER_MINUTES_BEFORE_MEAL = 15
REMINDER_MINUTES_AFTER_MEAL = 30


def _value(occurrence) -> Optional[str]:
    if occurrence is None:
        return None
    if isinstance(occurrence, Occurrence):
        return occurrence.value
    return str(occurrence)


def is_recurring(occurrence) -> bool:
    """True for rules that advance (daily, weekly, monthly)."""
    return _value(occurrence) in RECURRING_OCCURRENCES


def reminder_minutes_for(meal_timing) -> int:
    """Lead time of the reminder push: 30 minutes after a meal, otherwise 15."""
    value = meal_timing.value if isinstance(meal_timing, MealTiming) else meal_timing
    if value == MealTiming.AFTER.value:
        return REMINDER_MINUTES_AFTER_MEAL
    return REMINDER_MINUTES_BEFORE_MEAL


def add_months(value: datetime, months: int) -> datetime:
    """Add calendar months, clamping the day to the end of a shorter month."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return value.replace(year=year, month=month, day=min(value.day, last_day))


def _step(value: datetime, occurrence: str) -> Optional[datetime]:
    """Advance one period; None for a rule that cannot advance."""
    if occurrence == Occurrence.DAILY.value:
        return value + timedelta(days=1)
    if occurrence == Occurrence.WEEKLY.value:
        return value + timedelta(days=7)
    if occurrence == Occurrence.MONTHLY.value:
        return add_months(value, 1)
    return None


def next_occurrence(
    base: datetime,
    occurrence,
    now: datetime,
    tz: Optional[tzinfo] = None,
) -> Optional[datetime]:
    """Compute the first scheduled instant after both base and now.

    Args:
        base: The last scheduled instant of the series
        occurrence: Recurrence rule (Occurrence or its string value)
        now: Current time; every returned instant is strictly later
        tz: Zone whose wall clock the schedule follows (UTC if omitted)

    Returns:
        The next instant in UTC, or None when the series ends (once, custom,
        missing or unrecognized rule)
    """
    rule = _value(occurrence)
    if not rule or rule in TERMINAL_OCCURRENCES:
        return None

    zone = tz or timezone.utc
    now_utc = ensure_utc(now)
    candidate = _step(ensure_utc(base).astimezone(zone), rule)
    if candidate is None:
        logger.warning(f"Unrecognized occurrence rule: {rule!r}")
        return None

    # Fast-forward past every instance missed while the scheduler was not running
    skipped = 0
    while candidate.astimezone(timezone.utc) <= now_utc:
        candidate = _step(candidate, rule)
        skipped += 1

    if skipped:
        logger.info(f"Skipped {skipped} past {rule} occurrence(s) after {base.isoformat()}")

    return candidate.astimezone(timezone.utc)


def parse_timing(timing: str) -> time:
    """Parse an HH:MM or HH:MM:SS wall-clock time."""
    return time.fromisoformat(timing.strip())


def first_occurrence(
    scheduled_date: date,
    timing: str,
    occurrence,
    now: datetime,
    tz: Optional[tzinfo] = None,
) -> Optional[datetime]:
    """First dose instant of a new schedule that is still in the future.

    A recurring schedule whose start already passed is fast-forwarded; a
    one-off dose in the past has no occurrence left.
    """
    zone = tz or timezone.utc
    local = datetime.combine(scheduled_date, parse_timing(timing)).replace(tzinfo=zone)
    start = local.astimezone(timezone.utc)

    if start > ensure_utc(now):
        return start
    if is_recurring(occurrence):
        return next_occurrence(start, occurrence, now, zone)
    return None
