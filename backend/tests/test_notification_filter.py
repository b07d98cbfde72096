from datetime import timedelta

from medreminder.services.notification_filter import (
    DEFAULT_TOLERANCE,
    is_missed,
    select_due,
    select_missed,
    send_time,
)

from .factories import make_entry, utc


def test_send_time_subtracts_reminder_lead() -> None:
    entry = make_entry(notification_type="reminder", minutes_before=30)
    assert send_time(entry) == utc(2024, 1, 1, 8, 30)


def test_select_due_uses_two_minute_window() -> None:
    entry = make_entry()
    assert select_due([entry], utc(2024, 1, 1, 9, 2)) == [entry]
    assert select_due([entry], utc(2024, 1, 1, 8, 58)) == [entry]
    assert select_due([entry], utc(2024, 1, 1, 9, 2, 1)) == []
    assert select_due([entry], utc(2024, 1, 1, 8, 57, 59)) == []


def test_select_due_applies_lead_before_window() -> None:
    reminder = make_entry(notification_type="reminder", minutes_before=15)
    assert select_due([reminder], utc(2024, 1, 1, 8, 45, 30)) == [reminder]
    assert select_due([reminder], utc(2024, 1, 1, 9, 0)) == []


def test_select_due_never_returns_sent_entries() -> None:
    sent = make_entry(sent_at=utc(2024, 1, 1, 9, 0))
    assert select_due([sent], utc(2024, 1, 1, 9, 0)) == []


def test_select_due_preserves_order_and_is_repeatable() -> None:
    entries = [
        make_entry(scheduled_datetime=utc(2024, 1, 1, 9, 1)),
        make_entry(),
        make_entry(scheduled_datetime=utc(2024, 1, 1, 12, 0)),
        make_entry(scheduled_datetime=utc(2024, 1, 1, 8, 59)),
    ]
    now = utc(2024, 1, 1, 9, 0)
    first = select_due(entries, now)
    assert first == [entries[0], entries[1], entries[3]]
    assert select_due(entries, now) == first


def test_custom_tolerance() -> None:
    entry = make_entry()
    assert select_due([entry], utc(2024, 1, 1, 9, 4), timedelta(minutes=5)) == [entry]
    assert DEFAULT_TOLERANCE == timedelta(minutes=2)


def test_missed_entries_are_past_the_window() -> None:
    old = make_entry(scheduled_datetime=utc(2024, 1, 1, 8, 0))
    current = make_entry()
    now = utc(2024, 1, 1, 9, 0)
    assert is_missed(old, now)
    assert not is_missed(current, now)
    assert select_missed([old, current], now) == [old]
