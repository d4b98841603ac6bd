from typing import Any, Dict, Optional
import logging
import os
import sys
import threading

from .config import Config
from .connectivity import Connectivity
from .db import Database


class HijraApp:
    """Wires config, logging, local database, remote backend and the sync service."""

    def __init__(self, config_path: Optional[str] = None, watch_config: bool = False):
        self.logger = logging.getLogger(self.__class__.__name__)

        self.config = Config(config_path=config_path, watch=watch_config)
        self.config.register_change_callback(self.handle_config_change)

        self._setup_logging()

        self.database = Database(self.config.data)
        self.connectivity = Connectivity.from_config(self.config.data)
        self.sync_service = self._create_sync_service()
        self._stop_event = threading.Event()

    def _setup_logging(self):
        """Configure logging to write to both file and stdout"""
        log_config = self.config.get_section("logging")
        root_logger = logging.getLogger()
        for handler in list(root_logger.handlers):
            root_logger.removeHandler(handler)
        root_logger.setLevel(getattr(logging, str(log_config.get("level", "INFO")).upper(), logging.INFO))

        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s'
        )

        log_file = log_config.get("file")
        if log_file:
            os.makedirs(os.path.dirname(log_file) or ".", exist_ok=True)
            file_handler = logging.FileHandler(log_file)
            file_handler.setFormatter(formatter)
            root_logger.addHandler(file_handler)

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

        self.logger.info("Logging configured")

    def _create_sync_service(self):
        from hijra.prayer.backends import RemoteStoreError, get_backend
        from hijra.prayer.store import LocalStore
        from hijra.prayer.sync_service import SyncService

        remote_config = self.config.get_section("remote")
        backend_type = remote_config.get("backend")
        remote = None
        try:
            remote = get_backend(backend_type, remote_config)
            if remote is None:
                self.logger.warning(f"Unknown remote backend {backend_type!r}, running local-only")
        except RemoteStoreError as e:
            self.logger.warning(f"Remote store not configured ({e}), running local-only")

        sync_config = self.config.get_section("sync")
        stats_config = self.config.get_section("stats")
        return SyncService(
            LocalStore(self.database),
            remote,
            self.connectivity,
            debounce_ms=int(sync_config.get("debounce_ms", 2000)),
            stats_days=int(stats_config.get("days", 30)),
            heatmap_days=int(stats_config.get("heatmap_days", 14)),
        )

    @property
    def user_id(self) -> Optional[str]:
        return self.config.user_id

    def handle_config_change(self, new_config: Dict[str, Any]) -> None:
        """Apply settings that can change without a restart."""
        sync_config = new_config.get("sync") or {}
        if "debounce_ms" in sync_config:
            self.sync_service.scheduler.set_debounce_ms(int(sync_config["debounce_ms"]))
        self.sync_service.scheduler.start_periodic(sync_config.get("retry_interval_seconds", 0))

        stats_config = new_config.get("stats") or {}
        if "days" in stats_config:
            self.sync_service.stats_days = int(stats_config["days"])
        if "heatmap_days" in stats_config:
            self.sync_service.heatmap_days = int(stats_config["heatmap_days"])

        conn_config = new_config.get("connectivity") or {}
        self.connectivity.probe_url = conn_config.get("probe_url")
        if "online" in conn_config and not self.connectivity.probe_url:
            self.connectivity.set_online(bool(conn_config["online"]))

    def run(self) -> None:
        """Serve the API (if enabled) and keep syncing in the background until interrupted."""
        from hijra.api.server import run_api_server

        self.config.start_watching()
        self.connectivity.check()
        self.sync_service.scheduler.start_periodic(
            self.config.get_section("sync").get("retry_interval_seconds", 0)
        )
        run_api_server(self)
        self.sync_service.scheduler.schedule()
        try:
            while not self._stop_event.wait(30):
                self.connectivity.check()
        except KeyboardInterrupt:
            self.logger.info("Interrupted, shutting down")
        finally:
            self.shutdown()

    def stop(self) -> None:
        self._stop_event.set()

    def shutdown(self) -> None:
        self.sync_service.close()
        self.config.cleanup()
        self.database.dispose()
