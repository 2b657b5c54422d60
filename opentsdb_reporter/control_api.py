"""Control API for runtime management using FastAPI."""
from typing import Optional
from fastapi import FastAPI, HTTPException, Response
from pydantic import BaseModel
from prometheus_client import CONTENT_TYPE_LATEST
import logging
import time

from opentsdb_reporter.scheduler import ReportScheduler
from opentsdb_reporter.self_metrics import SelfMetrics

logger = logging.getLogger(__name__)


class LogLevelRequest(BaseModel):
    """Request to change log level."""
    level: str


class ControlAPI:
    """FastAPI-based control API for the reporter daemon."""

    def __init__(self, scheduler: ReportScheduler, self_metrics: Optional[SelfMetrics] = None):
        """
        Initialize control API.

        Args:
            scheduler: Scheduler driving the reporter
            self_metrics: Reporter self-metrics served on /metrics
        """
        self.scheduler = scheduler
        self.self_metrics = self_metrics
        self.app = FastAPI(title="OpenTSDB Reporter Control API")

        self._setup_routes()

    def _setup_routes(self):
        """Setup API routes."""

        @self.app.get("/healthz")
        async def healthz():
            """Health check endpoint."""
            return {"status": "healthy", "timestamp": time.time()}

        @self.app.get("/status")
        async def status():
            """Get current reporter status."""
            reporter = self.scheduler.reporter
            registry = reporter.registry
            return {
                "running": self.scheduler.running,
                "uptime_seconds": time.time() - self.scheduler.start_time,
                "report_count": self.scheduler.tick_count,
                "error_count": self.scheduler.error_count,
                "last_report_time": self.scheduler.last_report_time,
                "last_report_points": self.scheduler.last_report_points,
                "registered_metrics": registry.names() if registry is not None else [],
                "config": {
                    "interval_s": self.scheduler.interval_s,
                    "prefix": reporter.config.prefix,
                    "tags": reporter.config.tags,
                    "rate_unit": reporter.config.rate_unit.value,
                    "duration_unit": reporter.config.duration_unit.value,
                    "batch_size": reporter.client.batch_size_limit,
                },
            }

        # Sync handler; FastAPI runs it in its threadpool
        @self.app.post("/control/report")
        def report_now():
            """Run a reporting cycle immediately."""
            try:
                points = self.scheduler.tick()
            except Exception as e:
                logger.error(f"Error in on-demand report: {e}", exc_info=True)
                raise HTTPException(status_code=500, detail=str(e))

            return {"status": "reported", "points": points, "timestamp": time.time()}

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

        @self.app.get("/metrics")
        async def metrics():
            """Reporter self-metrics in Prometheus text format."""
            if self.self_metrics is None:
                raise HTTPException(status_code=404, detail="Self-metrics disabled")
            return Response(content=self.self_metrics.render(), media_type=CONTENT_TYPE_LATEST)

    def run(self, host: str = "0.0.0.0", port: int = 8081):
        """Run the API server."""
        import uvicorn
        uvicorn.run(self.app, host=host, port=port, log_level="info")
