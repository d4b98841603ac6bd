"""
Remote store backed directly by a SQL database (e.g. the Postgres behind the
hosted backend, or SQLite for local setups). Uses its own metadata so the
remote table is never created inside the device database.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import Column, Date, DateTime, Integer, String, create_engine, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker

from hijra.prayer.backends.base import (
    RemoteEntry,
    RemoteStore,
    RemoteStoreError,
    push_updated_at,
    row_to_entry,
)
from hijra.prayer.status import PrayerSlot, parse_date_str

RemoteBase = declarative_base()


class PrayerTrackerRow(RemoteBase):
    """Remote row: one prayer slot of one day for one user."""
    __tablename__ = "prayer_tracker"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(255), nullable=False, index=True)
    prayer_date = Column(Date, nullable=False, index=True)
    prayer_time = Column(String(16), nullable=False)  # fajr, dhuhr, asr, maghrib, isha
    prayer_status = Column(String(16), nullable=False)  # on_time, late, missed, no_entry
    created_at = Column(DateTime(timezone=False), nullable=True)
    updated_at = Column(DateTime(timezone=False), nullable=True)


class SqlRemoteStore(RemoteStore):
    def __init__(self, db_url: str, create_tables: bool = True):
        self.logger = logging.getLogger(self.__class__.__name__)
        connect_args = {"check_same_thread": False} if db_url.startswith("sqlite") else {}
        self.engine = create_engine(db_url, echo=False, future=True, connect_args=connect_args)
        if create_tables:
            RemoteBase.metadata.create_all(self.engine)
        self._session_factory = sessionmaker(bind=self.engine, expire_on_commit=False)
        self.logger.info(f"SQL remote store: {db_url.split('?')[0]}")

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "SqlRemoteStore":
        db_url = config.get("db_url")
        if not db_url:
            raise RemoteStoreError("remote.db_url is required for the sql backend")
        return cls(db_url, create_tables=config.get("create_tables", True))

    def fetch_remote_entries(self, user_id: str, date_str: str) -> List[RemoteEntry]:
        try:
            prayer_date = parse_date_str(date_str)
            with self._session_factory() as session:
                rows = session.execute(
                    select(PrayerTrackerRow).where(
                        PrayerTrackerRow.user_id == user_id,
                        PrayerTrackerRow.prayer_date == prayer_date,
                    )
                ).scalars().all()
        except (SQLAlchemyError, ValueError) as e:
            raise RemoteStoreError(f"fetch {user_id} {date_str} failed: {e}") from e

        entries = []
        for r in rows:
            entry = row_to_entry(r.prayer_time, r.prayer_status, r.updated_at)
            if entry is None:
                self.logger.warning(f"Ignoring remote row with unknown prayer_time {r.prayer_time!r}")
                continue
            entries.append(entry)
        return entries

    def upsert_remote_entry(
        self,
        user_id: str,
        date_str: str,
        slot: str,
        status: str,
        timestamp: Optional[datetime],
        created_at: Optional[datetime] = None,
    ) -> None:
        prayer_time = PrayerSlot.remote_name(slot)
        updated_at = push_updated_at(timestamp)
        try:
            prayer_date = parse_date_str(date_str)
            with self._session_factory.begin() as session:
                row = session.execute(
                    select(PrayerTrackerRow).where(
                        PrayerTrackerRow.user_id == user_id,
                        PrayerTrackerRow.prayer_date == prayer_date,
                        PrayerTrackerRow.prayer_time == prayer_time,
                    ).limit(1)
                ).scalars().first()
                if row:
                    row.prayer_status = status
                    row.updated_at = updated_at
                else:
                    session.add(PrayerTrackerRow(
                        user_id=user_id,
                        prayer_date=prayer_date,
                        prayer_time=prayer_time,
                        prayer_status=status,
                        created_at=created_at or updated_at,
                        updated_at=updated_at,
                    ))
        except (SQLAlchemyError, ValueError) as e:
            raise RemoteStoreError(f"upsert {user_id} {date_str} {prayer_time} failed: {e}") from e

    def close(self) -> None:
        self.engine.dispose()
