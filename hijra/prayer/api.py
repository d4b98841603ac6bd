"""
API for the prayer log. Mounted at /api/prayers/.
Identity is resolved upstream; every route takes the user id in the path.
"""
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from hijra.prayer.status import PrayerSlot, normalize_date_str
from hijra.prayer.sync_service import SyncService


class PrayerEntryResponse(BaseModel):
    slot: str
    status: str
    timestamp: Optional[datetime] = None


class DayRecordResponse(BaseModel):
    """Pydantic view of a DayRecord."""

    id: Optional[str] = None
    user_id: Optional[str] = None
    date: Optional[str] = None
    entries: List[PrayerEntryResponse] = []
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    synced: bool = False


class UpdateResponse(BaseModel):
    state: str
    slot: str
    previous_status: str
    status: str
    record: DayRecordResponse


class SlotStatsResponse(BaseModel):
    completed: int
    total: int
    streak: int


class StatsResponse(BaseModel):
    current_streak: int
    longest_streak: int
    completed_today: int
    total_completed_this_week: int
    prayer_stats: Dict[str, SlotStatsResponse]


class HeatmapCell(BaseModel):
    date: str
    statuses: Dict[str, str]
    completed: int


def _day_response(record) -> DayRecordResponse:
    return DayRecordResponse(
        id=record.id,
        user_id=record.user_id,
        date=record.date,
        entries=[PrayerEntryResponse(slot=e.slot, status=e.status, timestamp=e.timestamp) for e in record.entries],
        created_at=record.created_at,
        updated_at=record.updated_at,
        synced=record.synced,
    )


def _require_date(value: str) -> str:
    date_str = normalize_date_str(value)
    if date_str is None:
        raise HTTPException(status_code=422, detail=f"Invalid date {value!r}, expected YYYY-MM-DD")
    return date_str


def get_router(sync_service: SyncService) -> APIRouter:
    """Return router for the prayer log; mounted with prefix /api/prayers."""
    router = APIRouter(tags=["Prayers"])

    @router.get("/{user_id}/days/{day}", response_model=DayRecordResponse)
    def get_day(user_id: str, day: str) -> DayRecordResponse:
        """Reconciled record for one date."""
        return _day_response(sync_service.resolve_day(user_id, _require_date(day)))

    @router.post("/{user_id}/days/{day}/slots/{slot_index}/advance", response_model=UpdateResponse)
    def advance_slot(user_id: str, day: str, slot_index: int) -> UpdateResponse:
        """Advance one prayer to its next status (on_time, late, missed, no_entry)."""
        if not 0 <= slot_index < len(PrayerSlot.ALL):
            raise HTTPException(status_code=404, detail=f"No prayer slot {slot_index}")
        write = sync_service.update_status(user_id, _require_date(day), slot_index)
        if write is None:
            raise HTTPException(status_code=422, detail="Invalid update")
        return UpdateResponse(
            state=write.state,
            slot=write.slot,
            previous_status=write.previous.status,
            status=write.record.entries[slot_index].status,
            record=_day_response(write.record),
        )

    @router.get("/{user_id}/stats", response_model=StatsResponse)
    def get_stats(user_id: str, today: Optional[date] = None) -> StatsResponse:
        """Streaks and weekly completion over the configured window (stats.days)."""
        result = sync_service.calculate_prayer_streaks(user_id, today=today)
        return StatsResponse(
            current_streak=result.current_streak,
            longest_streak=result.longest_streak,
            completed_today=result.completed_today,
            total_completed_this_week=result.total_completed_this_week,
            prayer_stats={slot: SlotStatsResponse(**s._asdict()) for slot, s in result.prayer_stats.items()},
        )

    @router.get("/{user_id}/heatmap", response_model=List[HeatmapCell])
    def get_heatmap(user_id: str, days: Optional[int] = None, today: Optional[date] = None) -> List[Dict[str, Any]]:
        """Oldest-first status grid for the last `days` days (default stats.heatmap_days)."""
        if days is not None and not 1 <= days <= 366:
            raise HTTPException(status_code=422, detail="days must be between 1 and 366")
        return sync_service.get_heatmap(user_id, days=days, today=today)

    return router
