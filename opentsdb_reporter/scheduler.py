"""Fixed-interval scheduling of reporting cycles."""
import logging
import threading
import time
from typing import Optional

from opentsdb_reporter.reporter import OpenTsdbReporter

logger = logging.getLogger(__name__)


class ReportScheduler:
    """Calls the reporter at a fixed interval until stopped."""

    def __init__(self, reporter: OpenTsdbReporter, interval_s: float):
        if interval_s <= 0:
            raise ValueError(f"interval_s must be positive, got {interval_s}")

        self.reporter = reporter
        self.interval_s = interval_s
        self.running = False
        self.tick_count = 0
        self.error_count = 0
        self.start_time = time.time()
        self.last_report_time: Optional[float] = None
        self.last_report_points = 0
        self._stop_event = threading.Event()
        # Reentrant: a signal handler may call stop() on the thread running a cycle
        self._lock = threading.RLock()

    def tick(self) -> int:
        """Run one reporting cycle and return the number of points reported."""
        # Serialises scheduled cycles with on-demand reports from the control API
        with self._lock:
            points = self.reporter.report()
            self.tick_count += 1
            self.last_report_time = time.time()
            self.last_report_points = len(points)

        if self.tick_count % 60 == 0:  # Log every 60 ticks
            logger.info(f"Report {self.tick_count}: sent {len(points)} points")

        return len(points)

    def run(self):
        """Run reporting cycles until stop() is called."""
        self.running = True
        self.start_time = time.time()
        self._stop_event.clear()

        logger.info(f"Starting reporter, interval {self.interval_s}s")

        while self.running:
            tick_start = time.time()

            try:
                self.tick()
            except Exception as e:
                self.error_count += 1
                logger.error(f"Error in report cycle: {e}", exc_info=True)

            # Sleep for remaining time in the interval
            tick_duration = time.time() - tick_start
            sleep_time = max(0, self.interval_s - tick_duration)

            if sleep_time > 0:
                self._stop_event.wait(sleep_time)
            else:
                logger.warning(
                    f"Report took {tick_duration:.3f}s, longer than interval {self.interval_s}s"
                )

    def stop(self):
        """Stop the loop and release the HTTP client."""
        logger.info("Stopping reporter")
        self.running = False
        self._stop_event.set()
        # Waits for an in-flight cycle to finish its sends
        with self._lock:
            self.reporter.client.close()


def run_scheduler_thread(scheduler: ReportScheduler):
    """Run the scheduler in a separate thread."""
    try:
        scheduler.run()
    except KeyboardInterrupt:
        logger.info("Received interrupt signal")
        scheduler.stop()
    except Exception as e:
        logger.error(f"Scheduler thread error: {e}", exc_info=True)
        scheduler.stop()
