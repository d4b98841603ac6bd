"""
Local store: durable per-device prayer log on top of the SQLAlchemy Database.
Every method opens its own session. Storage errors surface as LocalStoreError.
"""
import logging
from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from hijra.core.db import Database
from hijra.prayer.models import PrayerDayRecord
from hijra.prayer.status import DayRecord, entry_from_dict, entry_to_dict, normalize_entries

logger = logging.getLogger(__name__)


class LocalStoreError(Exception):
    """Read or write against the local store failed."""


class LocalStore:
    def __init__(self, database: Database):
        self.database = database

    def put(self, record: DayRecord) -> None:
        """Insert or replace the row with record.id."""
        if not record.id:
            raise LocalStoreError("Cannot store a DayRecord without an id")
        entries = [entry_to_dict(e) for e in normalize_entries(record.entries)]
        try:
            with self.database.session_scope() as session:
                row = session.get(PrayerDayRecord, record.id)
                if row is None:
                    row = PrayerDayRecord(id=record.id)
                    session.add(row)
                row.user_id = record.user_id
                row.prayer_date = record.date
                row.entries = entries
                row.created_at = record.created_at
                row.updated_at = record.updated_at
                row.synced = bool(record.synced)
        except SQLAlchemyError as e:
            raise LocalStoreError(f"put {record.id} failed: {e}") from e

    def get_by_date(self, date_str: str, user_id: str) -> Optional[DayRecord]:
        """The record for this user on this date, if any."""
        try:
            with self.database.session_scope() as session:
                row = session.execute(
                    select(PrayerDayRecord)
                    .where(
                        PrayerDayRecord.prayer_date == date_str,
                        PrayerDayRecord.user_id == user_id,
                    )
                    .order_by(PrayerDayRecord.created_at)
                    .limit(1)
                ).scalars().first()
                return _row_to_record(row) if row else None
        except SQLAlchemyError as e:
            raise LocalStoreError(f"get_by_date {date_str} failed: {e}") from e

    def get_by_dates(self, user_id: str, dates: Iterable[str]) -> List[DayRecord]:
        """Records for this user on any of the given dates (unordered)."""
        dates = list(dates)
        try:
            with self.database.session_scope() as session:
                rows = session.execute(
                    select(PrayerDayRecord).where(
                        PrayerDayRecord.user_id == user_id,
                        PrayerDayRecord.prayer_date.in_(dates),
                    )
                ).scalars().all()
                return [_row_to_record(r) for r in rows]
        except SQLAlchemyError as e:
            raise LocalStoreError(f"get_by_dates for {user_id} failed: {e}") from e

    def get_by_user(self, user_id: str) -> List[DayRecord]:
        try:
            with self.database.session_scope() as session:
                rows = session.execute(
                    select(PrayerDayRecord)
                    .where(PrayerDayRecord.user_id == user_id)
                    .order_by(PrayerDayRecord.prayer_date.desc())
                ).scalars().all()
                return [_row_to_record(r) for r in rows]
        except SQLAlchemyError as e:
            raise LocalStoreError(f"get_by_user {user_id} failed: {e}") from e

    def get_unsynced(self) -> List[DayRecord]:
        """All records still waiting to be pushed, across users and dates."""
        try:
            with self.database.session_scope() as session:
                rows = session.execute(
                    select(PrayerDayRecord)
                    .where(PrayerDayRecord.synced.is_(False))
                    .order_by(PrayerDayRecord.prayer_date)
                ).scalars().all()
                return [_row_to_record(r) for r in rows]
        except SQLAlchemyError as e:
            raise LocalStoreError(f"get_unsynced failed: {e}") from e

    def mark_synced(self, record_id: str, updated_at: Optional[datetime] = None) -> bool:
        """
        Set synced on one record. No-op (False) if the record is gone.
        With updated_at, only marks the row if it was not modified after that snapshot.
        """
        try:
            with self.database.session_scope() as session:
                row = session.get(PrayerDayRecord, record_id)
                if row is None:
                    return False
                if updated_at is not None and row.updated_at is not None and row.updated_at > updated_at:
                    logger.info(f"Record {record_id} changed during sync, leaving it unsynced")
                    return False
                row.synced = True
                return True
        except SQLAlchemyError as e:
            raise LocalStoreError(f"mark_synced {record_id} failed: {e}") from e

    def count_unsynced(self) -> int:
        return len(self.get_unsynced())


def _row_to_record(row: PrayerDayRecord) -> DayRecord:
    return DayRecord(
        id=row.id,
        user_id=row.user_id,
        date=row.prayer_date,
        entries=normalize_entries(entry_from_dict(e) for e in (row.entries or [])),
        created_at=row.created_at,
        updated_at=row.updated_at,
        synced=bool(row.synced),
    )
