"""
Remote store over the hosted backend's PostgREST API (Supabase).
Table rows: {id, user_id, prayer_date, prayer_time, prayer_status, created_at, updated_at}.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

import requests

from hijra.prayer.backends.base import (
    RemoteEntry,
    RemoteStore,
    RemoteStoreError,
    push_updated_at,
    row_to_entry,
)
from hijra.prayer.status import PrayerSlot


class SupabaseRemoteStore(RemoteStore):
    """Per-slot check-then-update-or-insert against /rest/v1/<table>."""

    def __init__(
        self,
        url: str,
        api_key: str,
        table: str = "prayer_tracker",
        timeout: float = 10,
        access_token: Optional[str] = None,
        session: Optional[requests.Session] = None,
    ):
        if not url or not api_key:
            raise RemoteStoreError("Supabase url and api_key are required")
        self.logger = logging.getLogger(self.__class__.__name__)
        self.base_url = f"{url.rstrip('/')}/rest/v1/{table}"
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({
            "apikey": api_key,
            "Authorization": f"Bearer {access_token or api_key}",
            "Content-Type": "application/json",
        })

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "SupabaseRemoteStore":
        return cls(
            url=config.get("url"),
            api_key=config.get("api_key"),
            table=config.get("table", "prayer_tracker"),
            timeout=config.get("timeout", 10),
            access_token=config.get("access_token"),
        )

    def set_access_token(self, access_token: str) -> None:
        """Use the signed-in user's JWT so row-level security applies."""
        self.session.headers["Authorization"] = f"Bearer {access_token}"

    def _request(self, method: str, params: Dict[str, str], json: Optional[dict] = None, prefer: Optional[str] = None) -> Any:
        headers = {"Prefer": prefer} if prefer else None
        try:
            response = self.session.request(
                method, self.base_url, params=params, json=json, headers=headers, timeout=self.timeout
            )
            response.raise_for_status()
            if not response.content:
                return None
            return response.json()
        except requests.RequestException as e:
            raise RemoteStoreError(f"{method} {self.base_url} failed: {e}") from e
        except ValueError as e:
            raise RemoteStoreError(f"{method} {self.base_url} returned invalid JSON: {e}") from e

    def fetch_remote_entries(self, user_id: str, date_str: str) -> List[RemoteEntry]:
        rows = self._request("GET", {
            "select": "prayer_time,prayer_status,updated_at",
            "user_id": f"eq.{user_id}",
            "prayer_date": f"eq.{date_str}",
        }) or []

        entries = []
        for row in rows:
            entry = row_to_entry(row.get("prayer_time"), row.get("prayer_status"), row.get("updated_at"))
            if entry is None:
                self.logger.warning(f"Ignoring remote row with unknown prayer_time {row.get('prayer_time')!r}")
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
        updated_at = push_updated_at(timestamp).isoformat()
        existing = self._request("GET", {
            "select": "id",
            "user_id": f"eq.{user_id}",
            "prayer_date": f"eq.{date_str}",
            "prayer_time": f"eq.{prayer_time}",
            "limit": "1",
        }) or []

        if existing:
            self._request(
                "PATCH",
                {"id": f"eq.{existing[0]['id']}"},
                json={"prayer_status": status, "updated_at": updated_at},
                prefer="return=minimal",
            )
        else:
            self._request(
                "POST",
                {},
                json={
                    "user_id": user_id,
                    "prayer_date": date_str,
                    "prayer_time": prayer_time,
                    "prayer_status": status,
                    "created_at": created_at.isoformat() if created_at else updated_at,
                    "updated_at": updated_at,
                },
                prefer="return=minimal",
            )

    def close(self) -> None:
        self.session.close()
