"""Tests for streaks and weekly statistics."""
from __future__ import annotations

from hijra.prayer.stats import (
    calculate_streaks,
    completed_today,
    current_streak,
    empty_statistics,
    heatmap,
    longest_streak,
    slot_streak,
)
from hijra.prayer.status import DayRecord, PrayerSlot, PrayerStatus

from conftest import entries

ON, LATE, MISS, NONE = "on_time", "late", "missed", "no_entry"
EMPTY = entries()
ONE = entries(ON)


def test_completed_today_counts_on_time_and_late():
    """[on_time, late, missed, no_entry, on_time] has 3 completed."""
    days = [entries(ON, LATE, MISS, NONE, ON)]
    assert completed_today(days) == 3


def test_completed_today_without_days():
    assert completed_today([]) == 0


class TestStreaks:

    def test_empty_today_breaks_current_streak(self):
        """Day 0 with nothing completed gives current 0 even if days 1-5 are done."""
        days = [EMPTY] + [ONE] * 5 + [EMPTY] * 24
        assert len(days) == 30
        assert current_streak(days) == 0
        assert longest_streak(days) >= 5

    def test_current_streak_includes_today(self):
        days = [ONE, entries(NONE, LATE), ONE, EMPTY, ONE]
        assert current_streak(days) == 3

    def test_missed_does_not_count(self):
        """A day of only missed prayers breaks the streak."""
        days = [ONE, entries(MISS, MISS, MISS, MISS, MISS), ONE]
        assert current_streak(days) == 1

    def test_longest_streak_finds_older_run(self):
        days = [ONE, ONE, EMPTY, ONE, ONE, ONE, ONE, EMPTY, ONE]
        assert longest_streak(days) == 4
        assert longest_streak(list(reversed(days))) == 4

    def test_no_completed_days(self):
        assert longest_streak([EMPTY] * 10) == 0
        assert current_streak([EMPTY] * 10) == 0

    def test_slot_streak_not_bounded_by_week(self):
        """Per-slot streak counts past the 7-day window."""
        days = [entries(ON)] * 12 + [EMPTY]
        assert slot_streak(days, PrayerSlot.FAJR) == 12
        assert slot_streak(days, PrayerSlot.ISHA) == 0

    def test_accepts_day_records(self):
        day = DayRecord("id", "u", "2024-03-15", entries(ON, ON))
        assert current_streak([day, day]) == 2


class TestCalculateStreaks:

    def test_weekly_numbers_cover_full_week(self):
        """Weekly totals are not cut short where the current streak breaks."""
        days = [entries(ON, ON), EMPTY, entries(ON, LATE, LATE)] + [entries(ON)] * 10
        result = calculate_streaks(days)

        assert result.current_streak == 1
        assert result.completed_today == 2
        # day0: 2, day1: 0, day2: 3, days 3-6: 1 each
        assert result.total_completed_this_week == 9
        fajr = result.prayer_stats[PrayerSlot.FAJR]
        assert (fajr.completed, fajr.total, fajr.streak) == (6, 7, 1)
        dhuhr = result.prayer_stats[PrayerSlot.DHUHR]
        assert (dhuhr.completed, dhuhr.total) == (2, 7)
        assert result.prayer_stats[PrayerSlot.ISHA].completed == 0

    def test_all_slots_present(self):
        result = calculate_streaks([EMPTY] * 30)
        assert set(result.prayer_stats) == set(PrayerSlot.ALL)
        assert all(s.total == 7 for s in result.prayer_stats.values())

    def test_short_history(self):
        """With fewer than 7 days the weekly total is the number of days given."""
        result = calculate_streaks([ONE, ONE, ONE])
        assert result.prayer_stats[PrayerSlot.FAJR].total == 3
        assert result.prayer_stats[PrayerSlot.FAJR].completed == 3
        assert result.longest_streak == 3

    def test_empty_input(self):
        result = calculate_streaks([])
        assert result.current_streak == 0
        assert result.total_completed_this_week == 0
        assert empty_statistics().prayer_stats == {}


def test_heatmap_oldest_first():
    newest = DayRecord(None, "u", "2024-03-15", entries(ON, LATE))
    oldest = DayRecord(None, "u", "2024-03-14", entries(MISS))
    cells = heatmap([newest, oldest])
    assert [c["date"] for c in cells] == ["2024-03-14", "2024-03-15"]
    assert cells[0]["statuses"][PrayerSlot.FAJR] == PrayerStatus.MISSED
    assert cells[1]["completed"] == 2
