"""
Online/offline signal. Holds the current state, notifies subscribers on change,
and can optionally probe a URL to refresh itself.
"""
import logging
import threading
from typing import Callable, List, Optional

import requests

logger = logging.getLogger(__name__)


class Connectivity:
    """Observable online flag polled by the sync code before any remote call."""

    def __init__(self, online: bool = True, probe_url: Optional[str] = None, probe_timeout: float = 5):
        self._online = bool(online)
        self.probe_url = probe_url
        self.probe_timeout = probe_timeout
        self._subscribers: List[Callable[[bool], None]] = []
        self._lock = threading.Lock()

    @property
    def is_online(self) -> bool:
        return self._online

    def subscribe(self, callback: Callable[[bool], None]) -> None:
        """callback(online) runs after every state change."""
        self._subscribers.append(callback)

    def set_online(self, online: bool) -> None:
        with self._lock:
            changed = self._online != bool(online)
            self._online = bool(online)
        if not changed:
            return
        logger.info(f"Connectivity changed: {'online' if online else 'offline'}")
        for callback in list(self._subscribers):
            try:
                callback(bool(online))
            except Exception as e:
                logger.error(f"Error in connectivity callback: {e}")

    def check(self) -> bool:
        """Probe probe_url (if configured) and update the state from the result."""
        if not self.probe_url:
            return self._online
        try:
            response = requests.head(self.probe_url, timeout=self.probe_timeout, allow_redirects=True)
            online = response.status_code < 500
        except requests.RequestException as e:
            logger.debug(f"Connectivity probe failed: {e}")
            online = False
        self.set_online(online)
        return online

    @classmethod
    def from_config(cls, config_data: dict) -> "Connectivity":
        section = config_data.get("connectivity") or {}
        return cls(
            online=section.get("online", True),
            probe_url=section.get("probe_url"),
            probe_timeout=section.get("probe_timeout", 5),
        )
