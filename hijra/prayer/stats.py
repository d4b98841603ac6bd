"""
Streaks and weekly statistics over a day-by-day timeline.
Input everywhere is a most-recent-first sequence of days; each day is either a
DayRecord or a plain sequence of PrayerEntry. Nothing here touches storage.
"""
from collections import namedtuple
from typing import Dict, List, Sequence, Union

from hijra.prayer.status import DayRecord, PrayerEntry, PrayerSlot, PrayerStatus, completed_count

STREAK_DAYS = 30
WEEK_DAYS = 7

SlotStats = namedtuple("SlotStats", ["completed", "total", "streak"])

PrayerStatistics = namedtuple(
    "PrayerStatistics",
    [
        "current_streak",
        "longest_streak",
        "completed_today",
        "total_completed_this_week",
        "prayer_stats",  # {slot: SlotStats}
    ],
)

Day = Union[DayRecord, Sequence[PrayerEntry]]


def _entries(day: Day) -> Sequence[PrayerEntry]:
    if day is None:
        return ()
    if isinstance(day, DayRecord):
        return day.entries or ()
    return day


def _slot_completed(day: Day, slot: str) -> bool:
    for entry in _entries(day):
        if entry.slot == slot:
            return PrayerStatus.is_completed(entry.status)
    return False


def completed_today(days: Sequence[Day]) -> int:
    """Completed prayers on day[0]."""
    if not days:
        return 0
    return completed_count(_entries(days[0]))


def current_streak(days: Sequence[Day]) -> int:
    """Consecutive days from day[0] backward with at least one completed prayer."""
    streak = 0
    for day in days:
        if completed_count(_entries(day)) == 0:
            break
        streak += 1
    return streak


def longest_streak(days: Sequence[Day]) -> int:
    """Longest run of consecutive days with at least one completed prayer."""
    longest = run = 0
    for day in days:
        if completed_count(_entries(day)) > 0:
            run += 1
            longest = max(longest, run)
        else:
            run = 0
    return longest


def slot_streak(days: Sequence[Day], slot: str) -> int:
    """Consecutive days from day[0] backward on which this slot was completed."""
    streak = 0
    for day in days:
        if not _slot_completed(day, slot):
            break
        streak += 1
    return streak


def slot_stats(days: Sequence[Day], week_days: int = WEEK_DAYS) -> Dict[str, SlotStats]:
    week = days[:week_days]
    result = {}
    for slot in PrayerSlot.ALL:
        completed = sum(1 for day in week if _slot_completed(day, slot))
        result[slot] = SlotStats(completed=completed, total=len(week), streak=slot_streak(days, slot))
    return result


def total_completed(days: Sequence[Day], window: int = WEEK_DAYS) -> int:
    return sum(completed_count(_entries(day)) for day in days[:window])


def calculate_streaks(days: Sequence[Day], week_days: int = WEEK_DAYS) -> PrayerStatistics:
    """All statistics for one timeline (most recent day first)."""
    days = list(days)
    return PrayerStatistics(
        current_streak=current_streak(days),
        longest_streak=longest_streak(days),
        completed_today=completed_today(days),
        total_completed_this_week=total_completed(days, week_days),
        prayer_stats=slot_stats(days, week_days),
    )


def empty_statistics() -> PrayerStatistics:
    return PrayerStatistics(0, 0, 0, 0, {})


def heatmap(days: Sequence[DayRecord]) -> List[Dict[str, object]]:
    """Oldest-first grid of {date, statuses: {slot: status}, completed} for a contribution chart."""
    cells = []
    for day in reversed(list(days)):
        statuses = {e.slot: e.status for e in day.entries}
        cells.append({
            "date": day.date,
            "statuses": {slot: statuses.get(slot, PrayerStatus.NO_ENTRY) for slot in PrayerSlot.ALL},
            "completed": completed_count(day.entries),
        })
    return cells
