"""HTTP API for scraping, updating and wiping the metric store using FastAPI."""
from typing import Callable
import logging
import time

from fastapi import FastAPI, HTTPException, Response
from pydantic import BaseModel

from promstore.errors import InvalidCommand, StorageUnavailable
from promstore.exposition import CONTENT_TYPE_LATEST, render
from promstore.models import CounterUpdate, GaugeUpdate, HistogramUpdate

logger = logging.getLogger(__name__)


class LogLevelRequest(BaseModel):
    """Request to change log level."""
    level: str


class ControlAPI:
    """FastAPI front end for a RedisStorage."""

    def __init__(self, storage):
        """
        Initialize control API.

        Args:
            storage: RedisStorage the routes read from and write to
        """
        self.storage = storage
        self.app = FastAPI(title="Redis Metric Store API")

        # Setup routes
        self._setup_routes()

    def _apply(self, update_fn: Callable, update, kind: str) -> dict:
        try:
            update_fn(update)
        except InvalidCommand as e:
            raise HTTPException(status_code=400, detail=str(e))
        except StorageUnavailable as e:
            logger.error(f"Error updating {kind} '{update.name}': {e}")
            raise HTTPException(status_code=503, detail=str(e))
        return {"status": "ok", "type": kind, "metric": update.name}

    def _setup_routes(self):
        """Setup API routes."""

        @self.app.get("/healthz")
        def healthz():
            """Health check endpoint; fails when Redis does not answer."""
            try:
                self.storage.ping()
            except StorageUnavailable as e:
                logger.error(f"Health check failed: {e}")
                raise HTTPException(status_code=503, detail=str(e))
            return {"status": "healthy", "timestamp": time.time()}

        @self.app.get("/metrics")
        def metrics():
            """Prometheus text exposition of every stored metric."""
            try:
                payload = render(self.storage)
            except StorageUnavailable as e:
                logger.error(f"Error collecting metrics: {e}")
                raise HTTPException(status_code=503, detail=str(e))
            return Response(content=payload, media_type=CONTENT_TYPE_LATEST)

        @self.app.post("/metrics/counter")
        def update_counter(update: CounterUpdate):
            """Apply one counter update."""
            return self._apply(self.storage.update_counter, update, "counter")

        @self.app.post("/metrics/gauge")
        def update_gauge(update: GaugeUpdate):
            """Apply one gauge update."""
            return self._apply(self.storage.update_gauge, update, "gauge")

        @self.app.post("/metrics/histogram")
        def update_histogram(update: HistogramUpdate):
            """Record one histogram observation."""
            return self._apply(self.storage.update_histogram, update, "histogram")

        @self.app.delete("/metrics")
        def wipe():
            """Delete every stored metric. Irreversible."""
            try:
                deleted = self.storage.wipe_all()
            except StorageUnavailable as e:
                logger.error(f"Error wiping metrics: {e}")
                raise HTTPException(status_code=503, detail=str(e))
            return {"status": "wiped", "deleted": deleted, "timestamp": time.time()}

        @self.app.post("/control/loglevel")
        async def set_log_level(request: LogLevelRequest):
            """Change log level at runtime."""
            level = request.level.upper()

            if level not in ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]:
                raise HTTPException(
                    status_code=400,
                    detail=f"Invalid log level: {level}"
                )

            logging.getLogger().setLevel(getattr(logging, level))
            logger.info(f"Log level changed to: {level}")

            return {
                "status": "log_level_changed",
                "level": level,
                "timestamp": time.time()
            }

    def run(self, host: str = "0.0.0.0", port: int = 9091):
        """Run the API server."""
        import uvicorn
        uvicorn.run(self.app, host=host, port=port, log_level="info")
