from .status import DayRecord, PrayerEntry, PrayerSlot, PrayerStatus, advance
from .store import LocalStore, LocalStoreError
from .sync_service import PendingWrite, SyncReport, SyncService, WriteState

__all__ = [
    "DayRecord", "PrayerEntry", "PrayerSlot", "PrayerStatus", "advance",
    "LocalStore", "LocalStoreError",
    "PendingWrite", "SyncReport", "SyncService", "WriteState",
]
