"""Fetch and store the JUnit report of a finished run."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from pathlib import Path

from testrigor.ci_tool.api import TestRigorApi
from testrigor.ci_tool.classifier import extract_error_message
from testrigor.ci_tool.exceptions import (
    RemoteFatalError,
    ReportNotReadyError,
    ReportRetriesExhaustedError,
)

logger = logging.getLogger(__name__)

REPORT_NOT_READY_MESSAGE = "Report still being generated"


class ReportRetriever:
    """Download a report, waiting while the service is still generating it."""

    def __init__(
        self,
        api: TestRigorApi,
        poll_interval: float = 10,
        max_attempts: int = 60,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Initialize retriever with API, retry interval and retry budget."""
        self.api = api
        self.poll_interval = poll_interval
        self.max_attempts = max_attempts
        self._sleep = sleep

    async def fetch_once(self, task_id: str) -> bytes:
        """Make a single attempt at downloading the report.

        Raises:
            ReportNotReadyError: If the report is still being generated
            RemoteFatalError: For any other non-success response

        """
        response = await self.api.get_report(task_id)
        if response.status_code == 200:
            return response.body

        data = response.json_mapping()
        message = extract_error_message(data, response.text)
        if response.status_code == 404 and REPORT_NOT_READY_MESSAGE.lower() in (
            message.lower()
        ):
            raise ReportNotReadyError(message)

        raise RemoteFatalError(response.status_code, message)

    async def fetch(self, task_id: str) -> bytes:
        """Download the report, retrying while it is not ready.

        Args:
            task_id: Task identifier of the run

        Returns:
            Raw report bytes

        Raises:
            ReportRetriesExhaustedError: If the report never became ready
            RemoteFatalError: If the service answered with a real error
            TransportError: If the request could not be performed

        """
        for attempt in range(1, self.max_attempts + 1):
            try:
                return await self.fetch_once(task_id)
            except ReportNotReadyError:
                logger.info(
                    f"Report not ready yet (attempt {attempt}/{self.max_attempts})"
                )
                if attempt < self.max_attempts:
                    await self._sleep(self.poll_interval)

        raise ReportRetriesExhaustedError(self.max_attempts)


def write_report(data: bytes, path: Path) -> Path:
    """Write report bytes to disk and return the absolute path."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    absolute = path.resolve()

    logger.info("JUnit report downloaded successfully:")
    logger.info(f"  Path: {path}")
    logger.info(f"  Full path: {absolute}")
    logger.info(f"  Size: {len(data)} bytes")

    return absolute
