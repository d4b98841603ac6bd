"""
SQLAlchemy model for the local prayer log: one row per (user, date).
entries is JSON: [{"name": "Fajr", "status": "on_time", "time": ISO string or null}, ...].
"""
from sqlalchemy import Column, String, DateTime, Boolean, JSON, Index

from hijra.core.db import Base


class PrayerDayRecord(Base):
    """Local DayRecord row. Uniqueness of (user_id, prayer_date) is kept by lookup-before-insert."""
    __tablename__ = "prayer_days"

    id = Column(String(36), primary_key=True)
    user_id = Column(String(255), nullable=False, index=True)
    prayer_date = Column(String(10), nullable=False, index=True)  # YYYY-MM-DD
    entries = Column(JSON, nullable=False)
    created_at = Column(DateTime(timezone=False), nullable=True)
    updated_at = Column(DateTime(timezone=False), nullable=True)
    synced = Column(Boolean, default=False, nullable=False, index=True)

    __table_args__ = (Index("ix_prayer_days_user_date", "user_id", "prayer_date"),)
