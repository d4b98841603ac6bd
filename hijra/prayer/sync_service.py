"""
Offline-first sync for the prayer log.

resolve_day() reconciles the local record for a date with the remote rows
(an unsynced local record wins over the remote, otherwise the remote is
authoritative). update_status() advances one slot optimistically, persists
locally, and hands the push to the debounced scheduler. sync_all() pushes
every unsynced record slot by slot; a day is marked synced only when all five
slot upserts succeeded.

Public methods never raise: failures are logged and a safe default returned.
"""
import logging
import threading
from collections import OrderedDict, namedtuple
from datetime import date, datetime, timezone
from typing import Callable, List, Optional, Sequence, Tuple
from uuid import uuid4

from hijra.core.connectivity import Connectivity
from hijra.core.scheduler import DEFAULT_DEBOUNCE_MS, SyncScheduler
from hijra.prayer import stats
from hijra.prayer.backends.base import RemoteStore, RemoteStoreError
from hijra.prayer.status import (
    DayRecord,
    PrayerEntry,
    PrayerSlot,
    default_day,
    next_entry,
    normalize_date_str,
    normalize_entries,
    recent_dates,
    stamp_entry,
)
from hijra.prayer.store import LocalStore, LocalStoreError

logger = logging.getLogger(__name__)

HEATMAP_DAYS = 14
CACHE_DAYS = 400  # (user, date) pairs kept in the in-memory day cache

SyncReport = namedtuple(
    "SyncReport",
    [
        "days_synced",
        "days_failed",   # days left unsynced because at least one slot failed
        "slots_failed",
        "skipped",       # True when the pass did not run (offline, no remote)
    ],
    defaults=(0, 0, 0, False),
)


def _utc_now() -> datetime:
    """UTC now as naive datetime for DateTime(timezone=False) columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class WriteState:
    """Lifecycle of one optimistic slot update."""
    APPLIED = "applied"
    PERSISTING = "persisting"
    CONFIRMED = "confirmed"
    ROLLED_BACK = "rolled_back"

    TRANSITIONS = {
        APPLIED: (PERSISTING, ROLLED_BACK),
        PERSISTING: (CONFIRMED, ROLLED_BACK),
        CONFIRMED: (),
        ROLLED_BACK: (),
    }


class PendingWrite:
    """One slot change: what it replaced, what it set, and where it got to."""

    def __init__(self, user_id: str, date_str: str, slot_index: int, previous: PrayerEntry, current: PrayerEntry):
        self.user_id = user_id
        self.date = date_str
        self.slot_index = slot_index
        self.previous = previous
        self.current = current
        self.state = WriteState.APPLIED
        self.record: Optional[DayRecord] = None
        self.error: Optional[Exception] = None

    def transition(self, state: str) -> None:
        if state not in WriteState.TRANSITIONS[self.state]:
            raise ValueError(f"Invalid write transition {self.state} -> {state}")
        self.state = state

    @property
    def slot(self) -> str:
        return self.current.slot

    def __repr__(self) -> str:
        return f"PendingWrite({self.user_id!r}, {self.date!r}, {self.slot}, {self.previous.status}->{self.current.status}, {self.state})"


class SyncService:
    def __init__(
        self,
        store: LocalStore,
        remote: Optional[RemoteStore],
        connectivity: Connectivity,
        debounce_ms: int = DEFAULT_DEBOUNCE_MS,
        clock: Optional[Callable[[], datetime]] = None,
        stats_days: int = stats.STREAK_DAYS,
        heatmap_days: int = HEATMAP_DAYS,
        cache_size: int = CACHE_DAYS,
    ):
        self.store = store
        self.remote = remote
        self.connectivity = connectivity
        self.clock = clock or _utc_now
        self.scheduler = SyncScheduler(self.sync_all, debounce_ms)
        self.stats_days = stats_days
        self.heatmap_days = heatmap_days
        self.cache_size = cache_size
        self.day_cache: "OrderedDict[Tuple[str, str], DayRecord]" = OrderedDict()
        self._cache_lock = threading.Lock()
        self._sync_lock = threading.Lock()
        self.last_report: Optional[SyncReport] = None
        connectivity.subscribe(self._on_connectivity_change)

    # Connectivity

    def is_online(self) -> bool:
        return self.remote is not None and self.connectivity.is_online

    def _on_connectivity_change(self, online: bool) -> None:
        if online:
            logger.info("Back online, scheduling sync")
            self.scheduler.schedule()

    # In-memory day cache (the optimistic layer callers read from)

    def cached_day(self, user_id: str, date_str: str) -> Optional[DayRecord]:
        with self._cache_lock:
            return self.day_cache.get((user_id, date_str))

    def _cache_store(self, key: Tuple[str, str], record: DayRecord) -> None:
        """Insert as most recent and evict the least recently written days. Caller holds the lock."""
        self.day_cache[key] = record
        self.day_cache.move_to_end(key)
        while len(self.day_cache) > self.cache_size:
            self.day_cache.popitem(last=False)

    def _cache_put(self, record: DayRecord) -> None:
        with self._cache_lock:
            self._cache_store((record.user_id, record.date), record)

    def _cache_set_slot(self, base: DayRecord, slot_index: int, entry: PrayerEntry) -> DayRecord:
        """Replace one slot in the cached copy of base's day, leaving the other slots as cached."""
        key = (base.user_id, base.date)
        with self._cache_lock:
            current = self.day_cache.get(key, base)
            entries = list(current.entries)
            entries[slot_index] = entry
            updated = current._replace(entries=tuple(entries))
            self._cache_store(key, updated)
            return updated

    # Local store helpers

    def _read_local(self, user_id: str, date_str: str) -> Optional[DayRecord]:
        try:
            return self.store.get_by_date(date_str, user_id)
        except LocalStoreError as e:
            logger.error(f"Error reading local prayers for {date_str}: {e}")
            return None

    def _persist_day(self, user_id: str, date_str: str, entries: Sequence[PrayerEntry]) -> DayRecord:
        """Lookup-before-insert write of a whole day, always synced=False. Raises LocalStoreError."""
        existing = self.store.get_by_date(date_str, user_id)
        now = self.clock()
        entries = [stamp_entry(e, now) for e in normalize_entries(entries)]
        if existing:
            record = existing._replace(entries=normalize_entries(entries), updated_at=now, synced=False)
        else:
            record = DayRecord(
                id=str(uuid4()),
                user_id=user_id,
                date=date_str,
                entries=normalize_entries(entries),
                created_at=now,
                updated_at=now,
                synced=False,
            )
        self.store.put(record)
        return record

    # Reconciliation

    def resolve_day(self, user_id: str, date_value) -> DayRecord:
        """The canonical record for one user and date, merged with the remote when online."""
        date_str = normalize_date_str(date_value)
        if not user_id or not date_str:
            logger.error(f"Missing or invalid parameters for resolve_day: user={user_id!r} date={date_value!r}")
            return default_day(user_id or None, date_str)

        logger.debug(f"Resolving prayers for {date_str}")
        local = self._read_local(user_id, date_str)
        record = None

        if self.is_online():
            remote_entries = self._fetch_remote(user_id, date_str)
            if remote_entries:
                record = self._merge_remote(user_id, date_str, local, remote_entries)

        if record is None:
            record = local if local is not None else default_day(user_id, date_str)

        self._cache_put(record)
        return record

    def _fetch_remote(self, user_id: str, date_str: str) -> Optional[List]:
        try:
            return self.remote.fetch_remote_entries(user_id, date_str)
        except RemoteStoreError as e:
            logger.error(f"Error fetching prayers from server for {date_str}: {e}")
            return None

    def _merge_remote(self, user_id: str, date_str: str, local: Optional[DayRecord], remote_entries) -> DayRecord:
        remote_day = normalize_entries(PrayerEntry(e.slot, e.status, e.timestamp) for e in remote_entries)

        if local is not None and not local.synced:
            # Pending local edits win over the remote; push them now
            logger.info(f"Local prayers for {date_str} have unsynced changes, keeping local")
            self.sync_all()
            return self._read_local(user_id, date_str) or local

        if local is not None and local.entries == remote_day:
            return local

        now = self.clock()
        record = DayRecord(
            id=local.id if local else str(uuid4()),
            user_id=user_id,
            date=date_str,
            entries=remote_day,
            created_at=local.created_at if local else now,
            updated_at=now,
            synced=True,
        )
        try:
            self.store.put(record)
        except LocalStoreError as e:
            logger.error(f"Error storing server prayers for {date_str} locally: {e}")
        return record

    # Mutations

    def update_status(self, user_id: str, date_value, slot_index: int) -> Optional[PendingWrite]:
        """
        Advance one slot through the status cycle.

        The change is visible in the day cache immediately, then persisted
        locally and a debounced sync is scheduled. If persisting (or
        scheduling) fails, only that slot is restored, in the cache and
        in the local store.
        Returns the PendingWrite, or None for invalid input.
        """
        date_str = normalize_date_str(date_value)
        if not user_id or not date_str or not isinstance(slot_index, int) or not 0 <= slot_index < len(PrayerSlot.ALL):
            logger.error(f"Invalid update_status call: user={user_id!r} date={date_value!r} slot={slot_index!r}")
            return None

        base = self.cached_day(user_id, date_str)
        if base is None:
            base = self._read_local(user_id, date_str) or default_day(user_id, date_str)

        previous = base.entries[slot_index]
        write = PendingWrite(user_id, date_str, slot_index, previous, next_entry(previous, self.clock()))
        applied = self._cache_set_slot(base, slot_index, write.current)
        write.record = applied

        write.transition(WriteState.PERSISTING)
        try:
            saved = self._persist_day(user_id, date_str, applied.entries)
        except LocalStoreError as e:
            return self._roll_back(write, base, e)

        if self.is_online():
            try:
                self.scheduler.schedule()
            except RuntimeError as e:
                self._roll_back(write, base, e)
                # The new status is already stored; write the reverted day back
                try:
                    write.record = self._persist_day(user_id, date_str, write.record.entries)
                    self._cache_put(write.record)
                except LocalStoreError as store_error:
                    logger.error(f"Error reverting stored {write.slot} for {date_str}: {store_error}")
                return write

        self._cache_put(saved)
        write.record = saved
        write.transition(WriteState.CONFIRMED)
        return write

    def _roll_back(self, write: PendingWrite, base: DayRecord, error: Exception) -> PendingWrite:
        logger.error(f"Error saving {write.slot} for {write.date}, reverting: {error}")
        write.record = self._cache_set_slot(base, write.slot_index, write.previous)
        write.error = error
        write.transition(WriteState.ROLLED_BACK)
        return write

    def save_day(self, user_id: str, date_value, entries: Sequence[PrayerEntry]) -> Optional[DayRecord]:
        """Store a whole day locally (unsynced) and schedule a sync. None on failure."""
        date_str = normalize_date_str(date_value)
        if not user_id or not date_str:
            logger.error("Missing required parameters for save_day")
            return None
        try:
            record = self._persist_day(user_id, date_str, entries)
        except LocalStoreError as e:
            logger.error(f"Error saving prayers offline for {date_str}: {e}")
            return None
        self._cache_put(record)
        if self.is_online():
            self.scheduler.schedule()
        return record

    # Push

    def sync_all(self) -> SyncReport:
        """Push every unsynced local record to the remote store."""
        if not self.is_online():
            logger.info("Cannot sync prayers: offline")
            return SyncReport(skipped=True)

        with self._sync_lock:
            try:
                unsynced = self.store.get_unsynced()
            except LocalStoreError as e:
                logger.error(f"Error loading unsynced prayers: {e}")
                return SyncReport(skipped=True)

            if not unsynced:
                logger.debug("No unsynced prayers to sync")

            days_synced = days_failed = slots_failed = 0
            for record in unsynced:
                if not record.user_id or not record.date:
                    logger.error(f"Record {record.id} has no date or user, skipping sync")
                    continue

                logger.info(f"Syncing prayers for {record.date}")
                failed = self._push_day(record)
                if failed:
                    days_failed += 1
                    slots_failed += failed
                    logger.warning(f"{failed} slot(s) failed for {record.date}, will retry on next sync")
                    continue

                try:
                    marked = self.store.mark_synced(record.id, record.updated_at)
                except LocalStoreError as e:
                    logger.error(f"Error marking {record.date} as synced: {e}")
                    days_failed += 1
                    continue
                if marked:
                    days_synced += 1
                    self._mark_cached_synced(record)

            report = SyncReport(days_synced, days_failed, slots_failed, False)
            self.last_report = report
            return report

    def _push_day(self, record: DayRecord) -> int:
        """Upsert the five slots of one day. Returns the number of slots that failed."""
        failed = 0
        for entry in record.entries:
            try:
                self.remote.upsert_remote_entry(
                    record.user_id, record.date, entry.slot, entry.status, entry.timestamp, record.created_at
                )
            except Exception as e:
                logger.error(f"Error syncing {entry.slot} prayer for {record.date}: {e}")
                failed += 1
        return failed

    def _mark_cached_synced(self, record: DayRecord) -> None:
        key = (record.user_id, record.date)
        with self._cache_lock:
            cached = self.day_cache.get(key)
            if cached is not None and cached.id == record.id and cached.updated_at == record.updated_at:
                self.day_cache[key] = cached._replace(synced=True)

    # History and statistics

    def get_recent_days(self, user_id: str, days: Optional[int] = None, today: Optional[date] = None) -> List[DayRecord]:
        """Most-recent-first records for the last `days` days, missing days defaulted."""
        if not user_id:
            logger.error("Missing user_id for get_recent_days")
            return []
        dates = recent_dates(today or date.today(), days or self.stats_days)
        try:
            found = {r.date: r for r in self.store.get_by_dates(user_id, dates)}
        except LocalStoreError as e:
            logger.error(f"Error fetching recent prayers: {e}")
            return []

        result = []
        for d in dates:
            cached = self.cached_day(user_id, d)
            result.append(cached or found.get(d) or default_day(user_id, d))
        return result

    def calculate_prayer_streaks(self, user_id: str, today: Optional[date] = None, days: Optional[int] = None) -> stats.PrayerStatistics:
        if not user_id:
            logger.error("Missing user_id for calculate_prayer_streaks")
            return stats.empty_statistics()
        return stats.calculate_streaks(self.get_recent_days(user_id, days or self.stats_days, today))

    def get_heatmap(self, user_id: str, days: Optional[int] = None, today: Optional[date] = None) -> List[dict]:
        return stats.heatmap(self.get_recent_days(user_id, days or self.heatmap_days, today))

    # Lifecycle

    def get_status(self) -> dict:
        try:
            unsynced = self.store.count_unsynced()
        except LocalStoreError as e:
            logger.error(f"Error counting unsynced prayers: {e}")
            unsynced = None
        return {
            "online": self.connectivity.is_online,
            "remote_configured": self.remote is not None,
            "unsynced_days": unsynced,
            "scheduler": self.scheduler.get_status(),
            "last_report": self.last_report._asdict() if self.last_report else None,
        }

    def close(self) -> None:
        self.scheduler.stop()
        if self.remote is not None:
            self.remote.close()
