"""
FastAPI server for the prayer sync engine. Run with run_api_server(app) in a background thread.
Central endpoints: GET /api/status, POST /api/sync, PUT /api/connectivity. Prayer routes
are mounted from hijra.prayer.api under /api/prayers/.
Docs when enabled: http://<host>:<port>/docs
"""
import logging
import threading
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import FastAPI
from pydantic import BaseModel

from hijra.prayer.api import get_router as get_prayer_router
from hijra.prayer.sync_service import SyncService

logger = logging.getLogger(__name__)


class ConnectivityUpdate(BaseModel):
    online: bool


def _serialize_datetime(dt: Optional[datetime]) -> Optional[str]:
    """Serialize datetime to ISO string (UTC)."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.isoformat()


def create_app(sync_service: SyncService) -> FastAPI:
    """Create FastAPI app with routes that use the given SyncService."""
    app = FastAPI(title="Hijra API", description="Offline-first prayer log and sync")

    @app.get("/api/status")
    def get_status() -> Dict[str, Any]:
        """Connectivity, pending local changes and scheduler state."""
        status = sync_service.get_status()
        status["scheduler"]["last_run"] = _serialize_datetime(status["scheduler"].get("last_run"))
        return status

    @app.post("/api/sync")
    def sync_now() -> Dict[str, Any]:
        """Run a sync pass immediately instead of waiting for the debounce window."""
        sync_service.scheduler.cancel()
        return sync_service.sync_all()._asdict()

    @app.put("/api/connectivity")
    def set_connectivity(update: ConnectivityUpdate) -> Dict[str, Any]:
        """Report the device going online or offline."""
        sync_service.connectivity.set_online(update.online)
        return {"online": sync_service.connectivity.is_online}

    app.include_router(get_prayer_router(sync_service), prefix="/api/prayers")
    return app


def run_api_server(hijra_app: Any) -> None:
    """
    Start the API server in a daemon thread if api.enabled is true.
    Reads api.host (default 127.0.0.1) and api.port (default 8765) from config.
    """
    api_config = hijra_app.config.get_section("api")
    enabled = api_config.get("enabled", False)
    logger.info(f"API config: enabled={enabled}, config_file={hijra_app.config.config_file}")
    if not enabled:
        logger.info("API server not started: set api.enabled to true in your config file to enable.")
        return
    host = api_config.get("host", "127.0.0.1")
    port = int(api_config.get("port", 8765))
    fastapi_app = create_app(hijra_app.sync_service)

    def run_uvicorn():
        try:
            import uvicorn
            logger.info(f"API server listening at http://{host}:{port} (docs at /docs)")
            uvicorn.run(fastapi_app, host=host, port=port)
        except Exception as e:
            logger.exception(f"API server thread failed: {e}")

    thread = threading.Thread(target=run_uvicorn, daemon=True)
    thread.start()
    logger.info("API server thread started.")
