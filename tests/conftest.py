"""Shared pytest fixtures."""
from __future__ import annotations

from pathlib import Path
from typing import Optional

import pytest

from hijra.core.connectivity import Connectivity
from hijra.core.db import Database
from hijra.prayer.backends import RemoteStore, RemoteStoreError, SqlRemoteStore
from hijra.prayer.status import PrayerEntry, PrayerSlot, PrayerStatus
from hijra.prayer.store import LocalStore
from hijra.prayer.sync_service import SyncService

USER = "user-1"
DAY = "2024-03-15"


class FlakyRemote(RemoteStore):
    """Wraps a real remote store and fails on demand."""

    def __init__(self, inner: RemoteStore):
        self.inner = inner
        self.fail_fetch = False
        self.fail_slots = set()
        self.upserts = []
        self.fetches = 0

    def fetch_remote_entries(self, user_id, date_str):
        self.fetches += 1
        if self.fail_fetch:
            raise RemoteStoreError("fetch failed")
        return self.inner.fetch_remote_entries(user_id, date_str)

    def upsert_remote_entry(self, user_id, date_str, slot, status, timestamp, created_at=None):
        self.upserts.append((user_id, date_str, slot, status))
        if slot in self.fail_slots:
            raise RemoteStoreError(f"upsert {slot} failed")
        self.inner.upsert_remote_entry(user_id, date_str, slot, status, timestamp, created_at)


def entries(*statuses: str, timestamp=None) -> tuple:
    """Five entries from up to five statuses; missing slots are no_entry."""
    result = []
    for i, slot in enumerate(PrayerSlot.ALL):
        status = statuses[i] if i < len(statuses) else PrayerStatus.NO_ENTRY
        ts = timestamp if status != PrayerStatus.NO_ENTRY else None
        result.append(PrayerEntry(slot, status, ts))
    return tuple(result)


@pytest.fixture
def database(tmp_path: Path) -> Database:
    db = Database(db_url=f"sqlite:///{tmp_path / 'local.db'}")
    yield db
    db.dispose()


@pytest.fixture
def store(database: Database) -> LocalStore:
    return LocalStore(database)


@pytest.fixture
def sql_remote(tmp_path: Path) -> SqlRemoteStore:
    remote = SqlRemoteStore(f"sqlite:///{tmp_path / 'remote.db'}")
    yield remote
    remote.close()


@pytest.fixture
def remote(sql_remote: SqlRemoteStore) -> FlakyRemote:
    return FlakyRemote(sql_remote)


@pytest.fixture
def connectivity() -> Connectivity:
    return Connectivity(online=True)


@pytest.fixture
def service(store: LocalStore, remote: FlakyRemote, connectivity: Connectivity) -> SyncService:
    """Service with a long debounce window so timers never fire during a test."""
    svc = SyncService(store, remote, connectivity, debounce_ms=60000)
    yield svc
    svc.scheduler.stop()
