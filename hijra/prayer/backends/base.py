"""
Base type and interface for remote prayer stores.
The remote table holds one row per (user_id, prayer_date, prayer_time):
{user_id, prayer_date, prayer_time, prayer_status, created_at, updated_at}.
"""
from abc import ABC, abstractmethod
from collections import namedtuple
from datetime import datetime, timezone
from typing import List, Optional

from hijra.prayer.status import PrayerSlot, PrayerStatus, parse_timestamp

# One remote row, already mapped to local names
RemoteEntry = namedtuple(
    "RemoteEntry",
    [
        "slot",       # PrayerSlot value ("Fajr")
        "status",     # PrayerStatus value
        "timestamp",  # updated_at for statuses other than no_entry, else None
    ],
    defaults=(None,),
)


class RemoteStoreError(Exception):
    """Any failure talking to the remote store (network, auth, query)."""


class RemoteStore(ABC):
    """Abstract remote store. Upserts are per slot, never a whole day at once."""

    @abstractmethod
    def fetch_remote_entries(self, user_id: str, date_str: str) -> List[RemoteEntry]:
        """All rows for this user and date. Empty list when the remote has nothing."""
        pass

    @abstractmethod
    def upsert_remote_entry(
        self,
        user_id: str,
        date_str: str,
        slot: str,
        status: str,
        timestamp: Optional[datetime],
        created_at: Optional[datetime] = None,
    ) -> None:
        """Update the row for (user, date, slot) if it exists, else insert it."""
        pass

    def close(self) -> None:
        pass


def row_to_entry(prayer_time: str, prayer_status: str, updated_at) -> Optional[RemoteEntry]:
    """Map one remote row to a RemoteEntry. None for an unknown prayer_time."""
    slot = PrayerSlot.from_remote_name(prayer_time)
    if slot is None:
        return None
    status = prayer_status if PrayerStatus.is_valid(prayer_status) else PrayerStatus.NO_ENTRY
    if status == PrayerStatus.NO_ENTRY or updated_at is None:
        return RemoteEntry(slot, status, None)
    if isinstance(updated_at, str):
        try:
            updated_at = parse_timestamp(updated_at)
        except ValueError:
            updated_at = None
    return RemoteEntry(slot, status, updated_at)


def push_updated_at(timestamp: Optional[datetime]) -> datetime:
    """updated_at written on push: the entry's own timestamp, or now for no_entry."""
    return timestamp or datetime.now(timezone.utc).replace(tzinfo=None)
