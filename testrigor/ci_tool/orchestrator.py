"""Run orchestrator driving one test run from submission to result."""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from pathlib import Path

from testrigor.ci_tool.api import TestRigorApi
from testrigor.ci_tool.display import log_final_results, log_run_parameters
from testrigor.ci_tool.exceptions import (
    RunCanceledError,
    RunFatalError,
    RunTimeoutError,
    TestRigorError,
)
from testrigor.ci_tool.models.run_options import RunOptions
from testrigor.ci_tool.models.run_result import PollResult, RunResult
from testrigor.ci_tool.models.settings import RunSettings
from testrigor.ci_tool.poller import CompletionPoller
from testrigor.ci_tool.report import ReportRetriever, write_report
from testrigor.ci_tool.submission import submit_run

logger = logging.getLogger(__name__)


def is_successful(poll: PollResult) -> bool:
    """Whether a run completed tests with no failures and no crashes."""
    if poll.outcome != "completed" or poll.status is None:
        return False
    results = poll.status.results
    return results.total > 0 and results.failed == 0 and results.crashed == 0


class RunOrchestrator:
    """Submit a run, wait for it and optionally fetch its report."""

    def __init__(
        self,
        api: TestRigorApi,
        settings: RunSettings,
        report_writer: Callable[[bytes, Path], Path] = write_report,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize orchestrator with API, settings and collaborators."""
        self.api = api
        self.settings = settings
        self.report_writer = report_writer
        self._clock = clock
        self.poller = CompletionPoller(api, settings, sleep=sleep, clock=clock)
        self.retriever = ReportRetriever(
            api,
            poll_interval=settings.poll_interval,
            max_attempts=settings.report_max_attempts,
            sleep=sleep,
        )

    async def run(
        self, options: RunOptions, stop: asyncio.Event | None = None
    ) -> RunResult:
        """Execute the whole run lifecycle.

        Failing or crashed tests produce a result with ``success`` False;
        only errors that prevent a verdict are raised.

        Args:
            options: Submission parameters
            stop: Optional event that ends polling early when set

        Returns:
            Final result of the run

        Raises:
            RemoteFatalError: If the run could not be started
            RunTimeoutError: If the run did not finish in time
            RunFatalError: If status polling kept failing
            RunCanceledError: If ``stop`` was set while waiting

        """
        start = self._clock()
        log_run_parameters(options)

        logger.info("Orchestrator: Starting test run...")
        handle = await submit_run(self.api, options)
        logger.info(f"Test run started with task ID: {handle.task_id}")
        logger.info(f"Using branch name: {handle.branch_name or '-'} for tracking")

        logger.info("Orchestrator: Monitoring test execution...")
        poll = await self.poller.wait_for_completion(handle, options.labels, stop)
        duration = max(0.0, self._clock() - start)
        logger.info(f"Polling finished after {poll.polls} status checks")

        message = poll.message or f"test run ended with outcome {poll.outcome}"
        if poll.outcome == "timed_out":
            raise RunTimeoutError(message)
        if poll.outcome == "fatal_error":
            raise RunFatalError(message)
        if poll.outcome == "canceled_by_caller":
            raise RunCanceledError(message)

        if poll.status is not None:
            log_final_results(poll.status, duration)
        if poll.outcome == "crashed":
            logger.error(message)
        elif poll.outcome == "canceled":
            logger.warning(message)

        report_path = None
        if self.settings.fetch_report:
            report_path = await self._download_report(handle.task_id)

        return RunResult(
            task_id=handle.task_id,
            branch_name=handle.branch_name,
            outcome=poll.outcome,
            status=poll.status,
            duration=duration,
            success=is_successful(poll),
            message=poll.message,
            report_path=report_path,
        )

    async def _download_report(self, task_id: str) -> Path | None:
        """Fetch and store the report; failures only produce a warning."""
        logger.info("Orchestrator: Downloading JUnit report...")
        try:
            data = await self.retriever.fetch(task_id)
            return self.report_writer(data, self.settings.report_path)
        except (TestRigorError, OSError) as e:
            logger.warning(f"Failed to download report: {e}")
            return None
