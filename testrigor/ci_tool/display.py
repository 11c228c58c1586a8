"""Human-readable progress output for a running test run."""

import logging
import time
from collections.abc import Callable

from testrigor.ci_tool.models.run_options import RunOptions
from testrigor.ci_tool.models.run_status import RunResults, RunStatus

logger = logging.getLogger(__name__)


class StatusDisplay:
    """Rate-limited status lines.

    A line is logged when the status text changes, when the counters
    change, or when ``heartbeat_interval`` seconds passed since the last
    line.
    """

    def __init__(
        self,
        heartbeat_interval: float = 30,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize display with heartbeat interval and clock."""
        self.heartbeat_interval = heartbeat_interval
        self._clock = clock
        self._last_status: str | None = None
        self._last_results: RunResults | None = None
        self._last_update: float | None = None

    def reason_to_display(self, status: RunStatus) -> str | None:
        """Return why the snapshot should be shown, or None to stay quiet."""
        if status.status != self._last_status:
            return "status changed"
        if status.results != self._last_results:
            return "results updated"
        if (
            self._last_update is None
            or self._clock() - self._last_update >= self.heartbeat_interval
        ):
            return "periodic update"
        return None

    def update(self, status: RunStatus) -> bool:
        """Log the snapshot if warranted and report whether it was logged."""
        reason = self.reason_to_display(status)
        if reason is None:
            return False

        log_status_line(status, reason)
        self._last_status = status.status
        self._last_results = status.results
        self._last_update = self._clock()
        return True


def log_status_line(status: RunStatus, reason: str) -> None:
    """Log one progress line for a snapshot."""
    results = status.results
    progress = results.finished / results.total * 100 if results.total else 0.0

    line = f"[{reason}] Test status: {status.status or 'unknown'}"
    if status.http_status_code and not 200 <= status.http_status_code <= 299:
        line += f" (HTTP {status.http_status_code})"
    logger.info(line)
    logger.info(
        f"  Progress: {results.finished}/{results.total} tests completed | "
        f"Queue: {results.queued} | Running: {results.in_progress} | "
        f"Passed: {results.passed} | Failed: {results.failed} | "
        f"Canceled: {results.canceled} ({progress:.1f}% complete)"
    )


def log_final_results(status: RunStatus, duration: float) -> None:
    """Log the final counters and error details of a run."""
    results = status.results
    logger.info(f"Test run finished with status: {status.status or 'unknown'}")
    logger.info(f"Total duration: {round(duration)}s")
    if status.details_url:
        logger.info(f"Details URL: {status.details_url}")

    logger.info("Final results:")
    logger.info(f"  Total: {results.total}")
    logger.info(f"  Passed: {results.passed}")
    logger.info(f"  Failed: {results.failed}")
    logger.info(f"  In progress: {results.in_progress}")
    logger.info(f"  In queue: {results.queued}")
    logger.info(f"  Not started: {results.not_started}")
    logger.info(f"  Canceled: {results.canceled}")
    logger.info(f"  Crash: {results.crashed}")

    if status.errors:
        logger.error("Errors:")
        for error in status.errors:
            logger.error(
                f"  - {error.category}: {error.message} "
                f"(Severity: {error.severity}, Occurrences: {error.occurrences})"
            )
            if error.details_url:
                logger.error(f"    Details URL: {error.details_url}")


def log_run_parameters(options: RunOptions) -> None:
    """Log the parameters a run is submitted with."""
    logger.info("Starting test run with parameters:")
    if options.test_case_uuids:
        logger.info(f"  Test cases: {', '.join(options.test_case_uuids)}")
    if options.branch_name:
        logger.info(f"  Branch: {options.branch_name}")
    if options.commit_hash:
        logger.info(f"  Commit: {options.commit_hash}")
    if options.url:
        logger.info(f"  URL: {options.url}")
    if options.labels:
        logger.info(f"  Labels: {', '.join(options.labels)}")
    if options.excluded_labels:
        logger.info(f"  Excluded labels: {', '.join(options.excluded_labels)}")
    if options.custom_name:
        logger.info(f"  Custom name: {options.custom_name}")
    logger.info(f"  Force cancel previous: {options.force_cancel_previous}")
