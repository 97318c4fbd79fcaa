"""
Weekly schedule evaluation.

A slot with ``start < end`` covers ``[start, end)`` on its own day. A slot with
``end < start`` spans midnight: ``[start, 1440)`` on its own day and ``[0, end)``
on the following day. Both halves follow the ``enabled`` flag of the day the
slot is configured on. ``start == end`` never matches.
"""

from datetime import datetime

from lock_it.schema import TimeSlot, WeeklySchedule
from lock_it.utils.time import minute_of_day, previous_weekday, weekday_name


def _covers_same_day(slot: TimeSlot, minute: int) -> bool:
    if slot.start < slot.end:
        return slot.start <= minute < slot.end
    if slot.wraps:
        return minute >= slot.start
    return False


def _covers_next_day(slot: TimeSlot, minute: int) -> bool:
    return slot.wraps and minute < slot.end


def active_slot(schedule: WeeklySchedule, now: datetime) -> tuple[str, TimeSlot] | None:
    """Returns (owning weekday, slot) of the first window covering ``now``, or None."""
    minute = minute_of_day(now)
    today = weekday_name(now)

    today_schedule = schedule.day(today)
    if today_schedule.enabled:
        for slot in today_schedule.slots:
            if _covers_same_day(slot, minute):
                return today, slot

    # Overnight tails inherited from yesterday
    yesterday = previous_weekday(today)
    yesterday_schedule = schedule.day(yesterday)
    if yesterday_schedule.enabled:
        for slot in yesterday_schedule.slots:
            if _covers_next_day(slot, minute):
                return yesterday, slot

    return None


def is_locked_now(schedule: WeeklySchedule, now: datetime) -> bool:
    """True if any window of the weekly schedule covers ``now``."""
    return active_slot(schedule, now) is not None
