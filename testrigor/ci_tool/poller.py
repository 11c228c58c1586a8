"""Poll a submitted run until it reaches a terminal state."""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Sequence

from testrigor.ci_tool.api import TestRigorApi
from testrigor.ci_tool.classifier import classify_status_response
from testrigor.ci_tool.display import StatusDisplay
from testrigor.ci_tool.exceptions import TransportError
from testrigor.ci_tool.models.run_options import RunHandle
from testrigor.ci_tool.models.run_result import PollResult, TerminalOutcome
from testrigor.ci_tool.models.run_status import RunStatus, StatusClassification
from testrigor.ci_tool.models.settings import RunSettings

logger = logging.getLogger(__name__)


def terminal_outcome(classification: StatusClassification) -> TerminalOutcome | None:
    """Map a non-error classification to a terminal outcome, if any."""
    if classification.kind == "crashed":
        return "crashed"
    if classification.kind == "failed":
        return "failed"
    if classification.kind == "canceled":
        return "canceled"
    if classification.kind == "completed":
        status = classification.status
        if status is not None and status.results.failed > 0:
            return "completed_with_failures"
        return "completed"
    return None


class CompletionPoller:
    """Drive the status polling loop of one run."""

    def __init__(
        self,
        api: TestRigorApi,
        settings: RunSettings,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize poller with API, settings and time sources."""
        self.api = api
        self.settings = settings
        self._sleep = sleep
        self._clock = clock

    async def wait_for_completion(
        self,
        handle: RunHandle,
        labels: Sequence[str] = (),
        stop: asyncio.Event | None = None,
    ) -> PollResult:
        """Poll until the run ends, then cancel it remotely.

        Args:
            handle: Run to follow
            labels: Labels the run was started with, narrowing the status query
            stop: Optional event that ends polling early when set

        Returns:
            Terminal state with the most recent snapshot

        """
        try:
            return await self._poll(handle, labels, stop)
        except asyncio.CancelledError:
            logger.warning(f"Polling of run {handle.task_id} interrupted")
            raise
        finally:
            await self._cancel_remote(handle.task_id)

    async def _poll(
        self,
        handle: RunHandle,
        labels: Sequence[str],
        stop: asyncio.Event | None,
    ) -> PollResult:
        settings = self.settings
        timeout_seconds = settings.timeout_minutes * 60
        display = StatusDisplay(settings.heartbeat_interval, self._clock)
        start = self._clock()
        last_status: RunStatus | None = None
        consecutive_errors = 0
        polls = 0

        while True:
            if stop is not None and stop.is_set():
                return PollResult(
                    outcome="canceled_by_caller",
                    status=last_status,
                    message="test run canceled by caller",
                    polls=polls,
                )

            if self._clock() - start >= timeout_seconds:
                return PollResult(
                    outcome="timed_out",
                    status=last_status,
                    message=(
                        "timed out waiting for test completion after "
                        f"{settings.timeout_minutes} minute(s)"
                    ),
                    polls=polls,
                )

            polls += 1
            error_message, classification = await self._check_status(handle, labels)

            if classification is None:
                consecutive_errors += 1
                logger.warning(
                    f"Status check error ({consecutive_errors}/"
                    f"{settings.max_consecutive_errors}): {error_message}"
                )
                if consecutive_errors >= settings.max_consecutive_errors:
                    return PollResult(
                        outcome="fatal_error",
                        status=last_status,
                        message=(
                            f"too many consecutive errors ({consecutive_errors}) "
                            f"while checking test status: {error_message}"
                        ),
                        polls=polls,
                    )
            else:
                consecutive_errors = 0
                if classification.status is not None:
                    last_status = classification.status
                    display.update(last_status)

                outcome = terminal_outcome(classification)
                if outcome is not None:
                    logger.info(f"Run {handle.task_id} reached outcome: {outcome}")
                    return PollResult(
                        outcome=outcome,
                        status=last_status,
                        message=classification.message,
                        polls=polls,
                    )

            await self._pause(settings.poll_interval, stop)

    async def _check_status(
        self, handle: RunHandle, labels: Sequence[str]
    ) -> tuple[str | None, StatusClassification | None]:
        """Fetch and classify one status response.

        Returns (error message, None) for failures that count against the
        consecutive error budget, (None, classification) otherwise.
        """
        try:
            response = await self.api.get_status(handle.branch_name, labels)
        except TransportError as e:
            return str(e), None

        classification = classify_status_response(response.status_code, response.body)
        if classification.is_error:
            return classification.message, None
        return None, classification

    async def _pause(self, seconds: float, stop: asyncio.Event | None) -> None:
        if stop is None:
            await self._sleep(seconds)
            return

        sleeper = asyncio.ensure_future(self._sleep(seconds))
        waiter = asyncio.ensure_future(stop.wait())
        try:
            await asyncio.wait({sleeper, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            sleeper.cancel()
            waiter.cancel()

    async def _cancel_remote(self, task_id: str) -> None:
        """Best-effort cancel so no orphaned run keeps executing remotely."""
        try:
            response = await asyncio.wait_for(
                self.api.cancel_run(task_id), timeout=self.settings.cancel_timeout
            )
        except Exception as e:
            logger.warning(f"Failed to cancel test run {task_id}: {e!r}")
            return

        if response.status_code != 200:
            logger.warning(
                f"Failed to cancel test run {task_id}: "
                f"status {response.status_code} {response.text.strip()}"
            )
        else:
            logger.debug(f"Cancel request for run {task_id} accepted")
