"""Tests for the local store."""
from __future__ import annotations

from datetime import datetime, timedelta

import pytest
from sqlalchemy.exc import OperationalError

from hijra.prayer.status import DayRecord, PrayerStatus
from hijra.prayer.store import LocalStore, LocalStoreError

from conftest import entries

NOW = datetime(2024, 3, 15, 12, 0)


def make_record(record_id="r1", user_id="u1", day="2024-03-15", synced=False, updated_at=NOW, **kw):
    return DayRecord(
        id=record_id,
        user_id=user_id,
        date=day,
        entries=kw.get("entries", entries("on_time", "late", timestamp=NOW)),
        created_at=NOW,
        updated_at=updated_at,
        synced=synced,
    )


class TestLocalStore:

    def test_put_and_get_by_date(self, store: LocalStore):
        """A stored record comes back with all five entries and timestamps."""
        record = make_record()
        store.put(record)
        loaded = store.get_by_date("2024-03-15", "u1")
        assert loaded == record
        assert loaded.entries[0].timestamp == NOW
        assert loaded.entries[2].status == PrayerStatus.NO_ENTRY

    def test_get_by_date_filters_by_user(self, store: LocalStore):
        """The same date for another user is not returned."""
        store.put(make_record("a", user_id="u1"))
        store.put(make_record("b", user_id="u2"))
        assert store.get_by_date("2024-03-15", "u2").id == "b"
        assert store.get_by_date("2024-03-15", "u3") is None

    def test_put_is_idempotent(self, store: LocalStore):
        """Putting the same id twice keeps one row with the latest contents."""
        store.put(make_record())
        store.put(make_record(entries=entries("missed")))
        rows = store.get_by_user("u1")
        assert len(rows) == 1
        assert rows[0].entries[0].status == PrayerStatus.MISSED

    def test_put_requires_id(self, store: LocalStore):
        with pytest.raises(LocalStoreError):
            store.put(make_record(record_id=None))

    def test_get_unsynced_across_users(self, store: LocalStore):
        store.put(make_record("a", user_id="u1"))
        store.put(make_record("b", user_id="u2", day="2024-03-14"))
        store.put(make_record("c", user_id="u1", day="2024-03-13", synced=True))
        assert {r.id for r in store.get_unsynced()} == {"a", "b"}
        assert store.count_unsynced() == 2

    def test_mark_synced(self, store: LocalStore):
        store.put(make_record())
        assert store.mark_synced("r1") is True
        assert store.get_by_date("2024-03-15", "u1").synced is True
        assert store.get_unsynced() == []

    def test_mark_synced_missing_is_noop(self, store: LocalStore):
        assert store.mark_synced("nope") is False

    def test_mark_synced_skips_newer_edit(self, store: LocalStore):
        """A record edited after the pushed snapshot stays unsynced."""
        store.put(make_record(updated_at=NOW + timedelta(seconds=5)))
        assert store.mark_synced("r1", updated_at=NOW) is False
        assert store.get_by_date("2024-03-15", "u1").synced is False
        assert store.mark_synced("r1", updated_at=NOW + timedelta(seconds=5)) is True

    def test_get_by_dates(self, store: LocalStore):
        store.put(make_record("a", day="2024-03-15"))
        store.put(make_record("b", day="2024-03-14"))
        store.put(make_record("c", day="2024-03-01"))
        found = store.get_by_dates("u1", ["2024-03-15", "2024-03-14", "2024-03-13"])
        assert {r.id for r in found} == {"a", "b"}

    def test_storage_errors_are_wrapped(self, store: LocalStore, database, monkeypatch):
        """SQLAlchemy failures surface as LocalStoreError."""
        def broken_session():
            raise OperationalError("SELECT", {}, Exception("disk I/O error"))
        monkeypatch.setattr(database, "_session_factory", broken_session)
        with pytest.raises(LocalStoreError):
            store.get_unsynced()
        with pytest.raises(LocalStoreError):
            store.put(make_record())
