import pytest
from datetime import datetime

from lock_it.schedule import active_slot, is_locked_now
from lock_it.schema import DaySchedule, TimeSlot, WeeklySchedule

# 2024-01-01 is a Monday
MONDAY = 1
TUESDAY = 2
SUNDAY = 7


def at(day: int, hour: int, minute: int = 0) -> datetime:
    return datetime(2024, 1, day, hour, minute)


def empty_week(**days: DaySchedule) -> WeeklySchedule:
    week = {d: DaySchedule() for d in WeeklySchedule.model_fields}
    week.update(days)
    return WeeklySchedule(**week)


def slot(start: str, end: str) -> TimeSlot:
    return TimeSlot(start=start, end=end)


def test_default_schedule_is_workdays_nine_to_five():
    schedule = WeeklySchedule()
    assert is_locked_now(schedule, at(MONDAY, 8))
    assert is_locked_now(schedule, at(MONDAY, 16, 59))
    assert not is_locked_now(schedule, at(MONDAY, 17))
    assert not is_locked_now(schedule, at(MONDAY, 7, 59))
    assert not is_locked_now(schedule, at(SUNDAY, 10))


def test_same_day_slot_is_half_open():
    schedule = empty_week(monday=DaySchedule(enabled=True, slots=[slot("09:00", "10:00")]))
    assert is_locked_now(schedule, at(MONDAY, 9))
    assert is_locked_now(schedule, at(MONDAY, 9, 59))
    assert not is_locked_now(schedule, at(MONDAY, 10))


def test_disabled_day_never_locks():
    schedule = empty_week(monday=DaySchedule(enabled=False, slots=[slot("09:00", "10:00")]))
    assert not is_locked_now(schedule, at(MONDAY, 9, 30))


@pytest.mark.parametrize(
    "now, expected",
    [
        (at(MONDAY, 21, 59), False),
        (at(MONDAY, 22), True),
        (at(MONDAY, 23), True),
        (at(TUESDAY, 0), True),
        (at(TUESDAY, 1), True),
        (at(TUESDAY, 2), False),
        (at(TUESDAY, 3), False),
    ],
)
def test_overnight_slot(now, expected):
    schedule = empty_week(monday=DaySchedule(enabled=True, slots=[slot("22:00", "02:00")]))
    assert is_locked_now(schedule, now) is expected


def test_overnight_tail_follows_the_owning_day():
    # Tuesday itself is disabled, Monday's overnight slot still covers early Tuesday
    schedule = empty_week(
        monday=DaySchedule(enabled=True, slots=[slot("22:00", "02:00")]),
        tuesday=DaySchedule(enabled=False, slots=[slot("01:00", "05:00")]),
    )
    assert is_locked_now(schedule, at(TUESDAY, 1))
    assert not is_locked_now(schedule, at(TUESDAY, 3))

    # Monday disabled: neither half applies
    schedule = empty_week(monday=DaySchedule(enabled=False, slots=[slot("22:00", "02:00")]))
    assert not is_locked_now(schedule, at(MONDAY, 23))
    assert not is_locked_now(schedule, at(TUESDAY, 1))


def test_sunday_overnight_wraps_into_monday():
    schedule = empty_week(sunday=DaySchedule(enabled=True, slots=[slot("23:00", "01:00")]))
    assert is_locked_now(schedule, at(SUNDAY, 23, 30))
    assert is_locked_now(schedule, at(MONDAY, 0, 30))
    assert not is_locked_now(schedule, at(MONDAY, 1))


def test_zero_width_slot_never_matches():
    schedule = empty_week(monday=DaySchedule(enabled=True, slots=[slot("09:00", "09:00")]))
    for hour in (0, 9, 12, 23):
        assert not is_locked_now(schedule, at(MONDAY, hour))
    assert not is_locked_now(schedule, at(TUESDAY, 0))


def test_overlapping_slots_are_a_union():
    schedule = empty_week(
        monday=DaySchedule(
            enabled=True, slots=[slot("12:00", "14:00"), slot("09:00", "13:00")]
        )
    )
    assert is_locked_now(schedule, at(MONDAY, 9))
    assert is_locked_now(schedule, at(MONDAY, 13, 30))
    assert not is_locked_now(schedule, at(MONDAY, 14))


def test_active_slot_reports_owning_day():
    overnight = slot("22:00", "02:00")
    schedule = empty_week(monday=DaySchedule(enabled=True, slots=[overnight]))
    assert active_slot(schedule, at(TUESDAY, 1)) == ("monday", overnight)
    assert active_slot(schedule, at(TUESDAY, 12)) is None


def test_evaluation_is_deterministic():
    schedule = WeeklySchedule()
    now = at(MONDAY, 10)
    assert {is_locked_now(schedule, now) for _ in range(5)} == {True}


def test_slots_accept_clock_strings_and_minutes():
    assert slot("08:30", "17:00") == TimeSlot(start=510, end=1020)
    with pytest.raises(ValueError):
        TimeSlot(start=0, end=1440)
