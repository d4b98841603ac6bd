"""
Prayer slots, the four-state status cycle, and the entry/day record types.
Records are namedtuples; change them with _replace().
"""
from collections import namedtuple
from datetime import date, datetime, timedelta, timezone
from typing import Iterable, List, Optional, Sequence, Tuple, Union


class PrayerSlot:
    """The five daily prayers, in order."""
    FAJR = "Fajr"
    DHUHR = "Dhuhr"
    ASR = "Asr"
    MAGHRIB = "Maghrib"
    ISHA = "Isha"

    ALL = (FAJR, DHUHR, ASR, MAGHRIB, ISHA)

    @classmethod
    def remote_name(cls, slot: str) -> str:
        """Remote prayer_time value: lowercase slot name."""
        return slot.lower()

    @classmethod
    def from_remote_name(cls, name: str) -> Optional[str]:
        for slot in cls.ALL:
            if slot.lower() == (name or "").lower():
                return slot
        return None

    @classmethod
    def index(cls, slot: str) -> int:
        return cls.ALL.index(slot)


class PrayerStatus:
    """Per-slot status. CYCLE is the order a tap advances through."""
    ON_TIME = "on_time"
    LATE = "late"
    MISSED = "missed"
    NO_ENTRY = "no_entry"

    CYCLE = (ON_TIME, LATE, MISSED, NO_ENTRY)
    COMPLETED = frozenset({ON_TIME, LATE})

    @classmethod
    def is_valid(cls, status: str) -> bool:
        return status in cls.CYCLE

    @classmethod
    def is_completed(cls, status: str) -> bool:
        return status in cls.COMPLETED


def advance(status: str) -> str:
    """Next status in the cycle. Unknown input starts the cycle at on_time."""
    try:
        current = PrayerStatus.CYCLE.index(status)
    except ValueError:
        current = -1
    return PrayerStatus.CYCLE[(current + 1) % len(PrayerStatus.CYCLE)]


def map_completed_to_status(completed: Union[bool, str]) -> str:
    """Booleans from older clients map to on_time/no_entry; statuses pass through."""
    if isinstance(completed, bool):
        return PrayerStatus.ON_TIME if completed else PrayerStatus.NO_ENTRY
    if PrayerStatus.is_valid(completed):
        return completed
    return PrayerStatus.NO_ENTRY


PrayerEntry = namedtuple(
    "PrayerEntry",
    [
        "slot",       # PrayerSlot value
        "status",     # PrayerStatus value
        "timestamp",  # naive UTC datetime, None while status is no_entry
    ],
    defaults=(PrayerStatus.NO_ENTRY, None),
)

DayRecord = namedtuple(
    "DayRecord",
    [
        "id",          # uuid4 string; None for a default day that was never stored
        "user_id",
        "date",        # "YYYY-MM-DD"
        "entries",     # tuple of 5 PrayerEntry in PrayerSlot.ALL order
        "created_at",
        "updated_at",
        "synced",      # True once the current entries are in the remote store
    ],
    defaults=(None, None, False),
)


def default_entries() -> Tuple[PrayerEntry, ...]:
    return tuple(PrayerEntry(slot) for slot in PrayerSlot.ALL)


def default_day(user_id: Optional[str], date_str: Optional[str]) -> DayRecord:
    """All slots no_entry; not persisted."""
    return DayRecord(id=None, user_id=user_id, date=date_str, entries=default_entries())


def normalize_entries(entries: Iterable[PrayerEntry]) -> Tuple[PrayerEntry, ...]:
    """Exactly five entries in slot order. Missing slots become no_entry, unknown slots are dropped."""
    by_slot = {}
    for entry in entries:
        if entry.slot in PrayerSlot.ALL:
            status = entry.status if PrayerStatus.is_valid(entry.status) else PrayerStatus.NO_ENTRY
            by_slot[entry.slot] = PrayerEntry(entry.slot, status, entry.timestamp)
    return tuple(by_slot.get(slot, PrayerEntry(slot)) for slot in PrayerSlot.ALL)


def next_entry(entry: PrayerEntry, now: datetime) -> PrayerEntry:
    """Advance one slot: timestamp set to now unless the new status is no_entry."""
    status = advance(entry.status)
    return PrayerEntry(entry.slot, status, now if status != PrayerStatus.NO_ENTRY else None)


def stamp_entry(entry: PrayerEntry, now: datetime) -> PrayerEntry:
    """Timestamp present exactly when the status is not no_entry; missing ones become now."""
    if entry.status == PrayerStatus.NO_ENTRY:
        return entry._replace(timestamp=None) if entry.timestamp is not None else entry
    if entry.timestamp is None:
        return entry._replace(timestamp=now)
    return entry


def completed_count(entries: Sequence[PrayerEntry]) -> int:
    return sum(1 for e in entries if PrayerStatus.is_completed(e.status))


# Serialization for the local JSON column: {"name", "status", "time"}

def entry_to_dict(entry: PrayerEntry) -> dict:
    return {
        "name": entry.slot,
        "status": entry.status,
        "time": entry.timestamp.isoformat() if entry.timestamp else None,
    }


def entry_from_dict(data: dict) -> PrayerEntry:
    timestamp = data.get("time")
    if isinstance(timestamp, str):
        try:
            timestamp = parse_timestamp(timestamp)
        except ValueError:
            timestamp = None
    return PrayerEntry(data.get("name"), map_completed_to_status(data.get("status")), timestamp)


def parse_timestamp(value: str) -> datetime:
    """ISO-8601 string to naive UTC datetime (accepts a trailing Z or an offset)."""
    value = value.strip()
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


# Dates are local calendar days, kept as YYYY-MM-DD strings

def format_date_str(value: Union[date, datetime]) -> str:
    return f"{value.year:04d}-{value.month:02d}-{value.day:02d}"


def parse_date_str(value: str) -> date:
    """Parse YYYY-MM-DD. Unpadded month/day ("2023-1-5") is accepted."""
    parts = value.strip().split("-")
    if len(parts) != 3:
        raise ValueError(f"Invalid date string: {value!r}")
    year, month, day = (int(p) for p in parts)
    return date(year, month, day)


def normalize_date_str(value: Union[str, date, None]) -> Optional[str]:
    """Canonical YYYY-MM-DD, or None if the input is not a date."""
    if isinstance(value, (date, datetime)):
        return format_date_str(value)
    if not isinstance(value, str) or not value:
        return None
    try:
        return format_date_str(parse_date_str(value))
    except ValueError:
        return None


def recent_dates(today: date, days: int) -> List[str]:
    """days date strings, today first."""
    return [format_date_str(today - timedelta(days=i)) for i in range(days)]
