"""Main entry point for the OpenTSDB reporter daemon."""
import argparse
import logging
import signal
import sys
import threading
import time

from opentsdb_reporter.config import load_config
from opentsdb_reporter.control_api import ControlAPI
from opentsdb_reporter.registry import MetricRegistry
from opentsdb_reporter.reporter import create_reporter
from opentsdb_reporter.scheduler import ReportScheduler, run_scheduler_thread
from opentsdb_reporter.self_metrics import SelfMetrics


def setup_logging(log_level: str, log_format: str):
    """Setup logging configuration."""
    level = getattr(logging, log_level.upper(), logging.INFO)

    if log_format == "json":
        fmt = '{"time": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", "message": "%(message)s"}'
    else:
        fmt = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"

    logging.basicConfig(
        level=level,
        format=fmt,
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    # Reduce noise from some libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def register_process_metrics(registry: MetricRegistry):
    """Gauges describing this process."""
    start_time = time.time()
    registry.gauge("process.uptime_seconds", lambda: round(time.time() - start_time, 3))
    registry.gauge("process.threads", threading.active_count)


def main():
    """Main function."""
    parser = argparse.ArgumentParser(
        description="OpenTSDB Reporter - Push registry metrics to OpenTSDB"
    )
    parser.add_argument(
        "--config",
        "-c",
        required=True,
        help="Path to configuration YAML file"
    )

    args = parser.parse_args()

    # Load configuration
    try:
        config = load_config(args.config)
    except Exception as e:
        print(f"Error loading configuration: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(config.global_.log_level, config.global_.log_format)
    logger = logging.getLogger(__name__)

    logger.info("=" * 60)
    logger.info("OpenTSDB Reporter")
    logger.info("=" * 60)
    logger.info(f"Configuration loaded from: {args.config}")
    logger.info(f"OpenTSDB endpoint: {config.opentsdb.base_url}")
    logger.info(f"Report interval: {config.reporter.interval_s}s")

    registry = MetricRegistry()
    register_process_metrics(registry)

    self_metrics = SelfMetrics(prefix=config.global_.self_metrics_prefix)
    reporter = create_reporter(config, registry, self_metrics=self_metrics)
    scheduler = ReportScheduler(reporter, config.reporter.interval_s)

    # Setup signal handlers
    def signal_handler(signum, frame):
        logger.info(f"Received signal {signum}, shutting down...")
        scheduler.stop()
        sys.exit(0)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    if not config.global_.control_api_enabled:
        run_scheduler_thread(scheduler)
        return

    scheduler_thread = threading.Thread(
        target=run_scheduler_thread,
        args=(scheduler,),
        daemon=True
    )
    scheduler_thread.start()
    logger.info("Reporter started")

    control_api = ControlAPI(scheduler, self_metrics)

    # Run control API (blocking)
    logger.info(f"Starting control API on port {config.global_.control_api_port}")
    try:
        control_api.run(
            host="0.0.0.0",
            port=config.global_.control_api_port
        )
    except Exception as e:
        logger.error(f"Control API error: {e}", exc_info=True)
        scheduler.stop()
        sys.exit(1)


if __name__ == "__main__":
    main()
