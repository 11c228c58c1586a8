"""Interpret testRigor status responses.

The status endpoint mixes transport codes and body content to describe a
run. Everything here is a pure function of status code and body so that
the poller can apply its policy on top of a stable, testable reading.
"""

import json
import math
from collections.abc import Mapping
from typing import Literal

from testrigor.ci_tool.models.run_status import (
    CRASH_CATEGORY,
    CRASH_MARKER,
    RunError,
    RunResults,
    RunStatus,
    StatusClassification,
)

HTTP_OK = 200
HTTP_NOT_FOUND = 404
STATUS_QUEUED = 227
STATUS_IN_PROGRESS = 228
STATUS_FAILED = 230
IN_PROGRESS_CODES = frozenset({STATUS_QUEUED, STATUS_IN_PROGRESS})

SnapshotVerdict = Literal["crashed", "failed", "canceled", "completed"]

# First spelling present wins; spellings are never summed.
RESULT_FIELDS: dict[str, tuple[str, ...]] = {
    "total": ("Total", "total"),
    "queued": ("In queue", "inQueue", "queued"),
    "in_progress": ("In progress", "inProgress", "running"),
    "passed": ("Passed", "passed"),
    "failed": ("Failed", "failed"),
    "not_started": ("Not started", "notStarted"),
    "canceled": ("Canceled", "canceled", "cancelled"),
    "crashed": ("Crash", "crash"),
}

_QUEUED_STATUSES = {"new", "queued", "in queue"}
_FAILED_STATUSES = {"failed", "error"}
_CANCELED_STATUSES = {"canceled", "cancelled"}
_COMPLETED_STATUSES = {"completed"}


def _to_count(value: object) -> int:
    if isinstance(value, bool):
        return 0
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except (ValueError, OverflowError):
            return 0
    if isinstance(value, int):
        return max(0, value)
    if isinstance(value, float) and math.isfinite(value):
        return max(0, int(value))
    return 0


def _string(mapping: Mapping[str, object], key: str) -> str:
    value = mapping.get(key)
    return value if isinstance(value, str) else ""


def parse_results(data: Mapping[str, object]) -> RunResults:
    """Parse the ``overallResults`` block of a status body."""
    raw = data.get("overallResults")
    if not isinstance(raw, Mapping):
        return RunResults()

    counts: dict[str, int] = {}
    for field, spellings in RESULT_FIELDS.items():
        for spelling in spellings:
            if spelling in raw:
                counts[field] = _to_count(raw[spelling])
                break
    return RunResults(**counts)


def parse_errors(data: Mapping[str, object]) -> list[RunError]:
    """Parse the ``errors`` list, accepting objects and bare strings."""
    raw = data.get("errors")
    if not isinstance(raw, list):
        return []

    errors: list[RunError] = []
    for entry in raw:
        if isinstance(entry, Mapping):
            details_url = _string(entry, "detailsUrl")
            errors.append(
                RunError(
                    category=_string(entry, "category"),
                    message=_string(entry, "error") or _string(entry, "message"),
                    severity=_string(entry, "severity"),
                    occurrences=max(1, _to_count(entry.get("occurrences"))),
                    details_url=details_url or None,
                )
            )
        elif isinstance(entry, str):
            crash = CRASH_MARKER in entry
            errors.append(
                RunError(
                    category=CRASH_CATEGORY if crash else "ERROR",
                    message=entry,
                    severity="BLOCKER" if crash else "ERROR",
                    occurrences=1,
                )
            )
    return errors


def parse_run_status(
    status_code: int, data: Mapping[str, object], default_status: str = ""
) -> RunStatus:
    """Build a snapshot from a decoded status body."""
    details_url = _string(data, "detailsUrl")
    task_id = _string(data, "taskId")
    if not task_id and details_url:
        task_id = details_url.rstrip("/").rsplit("/", 1)[-1]

    return RunStatus(
        status=_string(data, "status") or default_status,
        details_url=details_url or None,
        task_id=task_id or None,
        errors=parse_errors(data),
        results=parse_results(data),
        http_status_code=status_code,
    )


def extract_error_message(data: Mapping[str, object] | None, raw: str) -> str:
    """Pick the most readable error description from a response body."""
    if data is None:
        return raw.strip() or "empty response body"

    message = _string(data, "message")
    details = "; ".join(
        error.message for error in parse_errors(data) if error.message
    )
    if message and details:
        return f"{message}, errors: {details}"
    return message or details or raw.strip() or "empty response body"


def crash_message(status: RunStatus) -> str:
    """Describe why a snapshot counts as crashed."""
    if status.results.crashed > 0:
        return f"test crashed: {status.results.crashed} test(s) crashed"
    crash_errors = status.crash_errors
    if crash_errors:
        return f"test crashed: {crash_errors[0].message}"
    return "test crashed"


def evaluate_snapshot(status: RunStatus) -> SnapshotVerdict | None:
    """Decide whether a snapshot ends the run.

    Crashes win over everything else, then an explicit failure or error,
    then a remote cancel, then completion. Completion is read from the
    counters first because the status string lags behind them; a
    completed status string is accepted too. Returns None while the run
    is still going.
    """
    if status.has_crashes:
        return "crashed"

    status_text = status.status.strip().lower()
    if status.http_status_code == STATUS_FAILED or status_text in _FAILED_STATUSES:
        return "failed"

    if status_text in _CANCELED_STATUSES:
        return "canceled"

    if status.results.is_complete or status_text in _COMPLETED_STATUSES:
        return "completed"

    return None


def _verdict_message(verdict: SnapshotVerdict, status: RunStatus) -> str | None:
    if verdict == "crashed":
        return crash_message(status)
    if verdict == "failed":
        return "test run failed"
    if verdict == "canceled":
        return "test run was canceled"
    return None


def classify_status_response(status_code: int, body: bytes) -> StatusClassification:
    """Turn a status response into a domain classification.

    Args:
        status_code: Transport status code
        body: Raw response body

    Returns:
        Classification carrying the parsed snapshot when the body has one

    """
    raw = body.decode("utf-8", errors="replace")
    data = _json_mapping(raw)

    if status_code in IN_PROGRESS_CODES:
        queued = status_code == STATUS_QUEUED
        status = parse_run_status(
            status_code, data or {}, "New" if queued else "In progress"
        )
        return StatusClassification(
            kind="queued" if queued else "in_progress", status=status
        )

    if status_code == HTTP_OK:
        if data is None:
            return StatusClassification(
                kind="fatal_error",
                message=f"error parsing status response: {raw.strip()!r}",
            )
        status = parse_run_status(status_code, data)
        verdict = evaluate_snapshot(status)
        if verdict is not None:
            return StatusClassification(
                kind=verdict, status=status, message=_verdict_message(verdict, status)
            )
        pending = status.status.strip().lower() in _QUEUED_STATUSES
        return StatusClassification(
            kind="queued" if pending else "in_progress", status=status
        )

    if status_code == STATUS_FAILED:
        status = parse_run_status(status_code, data or {}, "Failed")
        verdict = "crashed" if status.has_crashes else "failed"
        return StatusClassification(
            kind=verdict, status=status, message=_verdict_message(verdict, status)
        )

    if status_code == HTTP_NOT_FOUND:
        errors = data.get("errors") if data is not None else None
        if isinstance(errors, list):
            for entry in errors:
                if isinstance(entry, str) and CRASH_MARKER in entry:
                    status = parse_run_status(status_code, data, "Crash")
                    return StatusClassification(
                        kind="crashed", status=status, message=f"test crashed: {entry}"
                    )
        return StatusClassification(
            kind="transient_error",
            message=(
                "test not found or not ready (status 404): "
                f"{extract_error_message(data, raw)}"
            ),
        )

    return StatusClassification(
        kind="fatal_error",
        message=f"API error (status {status_code}): {extract_error_message(data, raw)}",
    )


def _json_mapping(raw: str) -> Mapping[str, object] | None:
    try:
        data = json.loads(raw)
    except ValueError:
        return None
    return data if isinstance(data, dict) else None
