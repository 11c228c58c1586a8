"""Start a test run and work out how it will be tracked."""

import logging
from collections.abc import Callable
from datetime import UTC, datetime

from testrigor.ci_tool.api import TestRigorApi
from testrigor.ci_tool.classifier import extract_error_message
from testrigor.ci_tool.exceptions import RemoteFatalError
from testrigor.ci_tool.models.run_options import RunHandle, RunOptions

logger = logging.getLogger(__name__)

FAKE_COMMIT_PREFIX = "66616b65"  # "fake" in hex
COMMIT_HASH_LENGTH = 40
TIMESTAMP_FORMAT = "%Y%m%d-%H%M%S"


def generate_branch_name(labels: list[str], timestamp: str) -> str:
    """Derive a tracking branch name from labels and a timestamp."""
    if labels:
        return f"{'-'.join(labels)}-{timestamp}"
    return f"fake-branch-{timestamp}"


def generate_fake_commit_hash(timestamp: str) -> str:
    """Build a 40 character commit hash that is recognizably synthetic."""
    base = f"{FAKE_COMMIT_PREFIX}{timestamp.replace('-', '')}"[:COMMIT_HASH_LENGTH]
    return base.ljust(COMMIT_HASH_LENGTH, "0")


def build_branch_info(options: RunOptions, timestamp: str) -> dict[str, str] | None:
    """Build the ``branch`` block of a start request.

    Returns None when no branch information should be sent.
    """
    if options.commit_hash and not options.branch_name:
        logger.warning(
            "Commit hash given without a branch name; "
            "branch information will not be sent"
        )
        return None

    if not options.branch_name and not options.labels:
        return None

    return {
        "name": options.branch_name or generate_branch_name(options.labels, timestamp),
        "commit": options.commit_hash or generate_fake_commit_hash(timestamp),
    }


def build_start_payload(
    options: RunOptions, timestamp: str
) -> tuple[dict[str, object], str]:
    """Build the start request payload.

    Args:
        options: Submission parameters
        timestamp: Timestamp used for generated branch names and commits

    Returns:
        Tuple of (payload, branch name used for tracking)

    """
    payload: dict[str, object] = {
        "forceCancelPreviousTesting": options.force_cancel_previous,
        "skipXrayCloud": not options.make_xray_reports,
    }

    if options.test_case_uuids:
        payload["testCaseUuids"] = list(options.test_case_uuids)
        if options.url:
            payload["url"] = options.url
        return payload, ""

    branch_info = build_branch_info(options, timestamp)
    if branch_info is not None:
        payload["branch"] = branch_info
        if options.url:
            payload["url"] = options.url

    if options.labels:
        payload["labels"] = list(options.labels)
        payload["excludedLabels"] = list(options.excluded_labels)

    if options.custom_name:
        payload["customName"] = options.custom_name

    branch_name = branch_info["name"] if branch_info is not None else ""
    return payload, branch_name


async def submit_run(
    api: TestRigorApi,
    options: RunOptions,
    now: Callable[[], datetime] = lambda: datetime.now(UTC),
) -> RunHandle:
    """Start a test run.

    Args:
        api: testRigor API
        options: Submission parameters
        now: Clock used to timestamp generated identifiers

    Returns:
        Handle with task ID and tracking branch name

    Raises:
        RemoteFatalError: If the service rejects the request

    """
    timestamp = now().strftime(TIMESTAMP_FORMAT)
    payload, branch_name = build_start_payload(options, timestamp)

    response = await api.start_run(payload)
    data = response.json_mapping()

    if response.status_code != 200:
        raise RemoteFatalError(
            response.status_code, extract_error_message(data, response.text)
        )

    task_id = data.get("taskId") if data is not None else None
    if not isinstance(task_id, str) or not task_id:
        raise RemoteFatalError(
            response.status_code,
            f"invalid response, missing taskId: {response.text.strip()}",
        )

    return RunHandle(task_id=task_id, branch_name=branch_name)
