"""Tests for the completion poller."""

import asyncio
from unittest.mock import patch

import pytest
from fakes import FakeClock, FakeTransport, make_response

from testrigor.ci_tool.api import TestRigorApi
from testrigor.ci_tool.exceptions import TransportError
from testrigor.ci_tool.models.run_options import RunHandle
from testrigor.ci_tool.models.run_status import StatusClassification
from testrigor.ci_tool.models.settings import RunSettings
from testrigor.ci_tool.poller import CompletionPoller, terminal_outcome

HANDLE = RunHandle(task_id="task-1", branch_name="ci-1")

COMPLETED = make_response(
    200,
    {
        "status": "Completed",
        "overallResults": {"Total": 2, "Passed": 2, "Failed": 0},
    },
)
IN_PROGRESS = make_response(
    228, {"status": "In progress", "overallResults": {"Total": 2, "In progress": 2}}
)
CANCELED = make_response(200, {"message": "Canceled"})


@pytest.fixture
def settings() -> RunSettings:
    """Create polling settings."""
    return RunSettings(poll_interval=10, timeout_minutes=1)


@pytest.fixture
def poller(
    api: TestRigorApi, settings: RunSettings, clock: FakeClock
) -> CompletionPoller:
    """Create poller driven by the fake clock."""
    return CompletionPoller(api, settings, sleep=clock.sleep, clock=clock)


def test_terminal_outcome_mapping() -> None:
    """terminal_outcome maps classifications to outcomes."""
    assert terminal_outcome(StatusClassification(kind="queued")) is None
    assert terminal_outcome(StatusClassification(kind="in_progress")) is None
    assert terminal_outcome(StatusClassification(kind="crashed")) == "crashed"
    assert terminal_outcome(StatusClassification(kind="failed")) == "failed"
    assert terminal_outcome(StatusClassification(kind="canceled")) == "canceled"
    assert terminal_outcome(StatusClassification(kind="completed")) == "completed"


async def test_completes_after_three_polls(
    poller: CompletionPoller, transport: FakeTransport, clock: FakeClock
) -> None:
    """Queued, in progress, then completed ends as completed."""
    transport.add("GET", "/status", make_response(227), IN_PROGRESS, COMPLETED)
    transport.add("PUT", "/cancel", CANCELED)

    result = await poller.wait_for_completion(HANDLE)

    assert result.outcome == "completed"
    assert result.polls == 3
    assert result.status is not None
    assert result.status.results.passed == 2
    assert clock.sleeps == [10, 10]


async def test_status_query_uses_branch_and_labels(
    poller: CompletionPoller, transport: FakeTransport
) -> None:
    """The status request carries branch name and labels."""
    transport.add("GET", "/status", COMPLETED)
    transport.add("PUT", "/cancel", CANCELED)

    await poller.wait_for_completion(HANDLE, ["smoke", "login"])

    request = transport.requests_for("GET", "/status")[0]
    assert request.params == {"branchName": "ci-1", "labels": "smoke,login"}


async def test_completed_with_failures(
    poller: CompletionPoller, transport: FakeTransport
) -> None:
    """A completed run with failed tests is reported as such."""
    transport.add(
        "GET",
        "/status",
        make_response(
            200,
            {"status": "Completed", "overallResults": {"Total": 2, "Failed": 1}},
        ),
    )
    transport.add("PUT", "/cancel", CANCELED)

    result = await poller.wait_for_completion(HANDLE)

    assert result.outcome == "completed_with_failures"
    assert not result.is_error


async def test_crash_stops_polling_and_cancels(
    poller: CompletionPoller, transport: FakeTransport
) -> None:
    """A crash ends polling immediately and cancels the remote run."""
    transport.add(
        "GET",
        "/status",
        IN_PROGRESS,
        make_response(
            200,
            {"status": "In progress", "overallResults": {"Total": 2, "Crash": 1}},
        ),
    )
    transport.add("PUT", "/cancel", CANCELED)

    result = await poller.wait_for_completion(HANDLE)

    assert result.outcome == "crashed"
    assert result.message is not None
    assert "1 test(s) crashed" in result.message
    assert result.polls == 2
    cancels = transport.requests_for("PUT")
    assert len(cancels) == 1
    assert cancels[0].url.endswith("/runs/task-1/cancel")


async def test_failed_status_code(
    poller: CompletionPoller, transport: FakeTransport
) -> None:
    """A 230 response ends polling as failed."""
    transport.add("GET", "/status", make_response(230, {"status": "Failed"}))
    transport.add("PUT", "/cancel", CANCELED)

    result = await poller.wait_for_completion(HANDLE)

    assert result.outcome == "failed"
    assert result.message == "test run failed"


async def test_timeout_after_deadline(
    poller: CompletionPoller, transport: FakeTransport, clock: FakeClock
) -> None:
    """A run that never finishes times out at the deadline."""
    transport.add("GET", "/status", IN_PROGRESS)
    transport.add("PUT", "/cancel", CANCELED)

    result = await poller.wait_for_completion(HANDLE)

    assert result.outcome == "timed_out"
    assert result.polls == 6
    assert result.message is not None
    assert "1 minute(s)" in result.message
    assert result.status is not None
    assert result.status.status == "In progress"
    assert clock.now == 60
    assert len(transport.requests_for("PUT")) == 1


async def test_consecutive_transport_errors(
    poller: CompletionPoller, transport: FakeTransport
) -> None:
    """Too many transport errors in a row end polling."""
    transport.add("GET", "/status", TransportError("connection refused"))
    transport.add("PUT", "/cancel", CANCELED)

    result = await poller.wait_for_completion(HANDLE)

    assert result.outcome == "fatal_error"
    assert result.polls == 5
    assert result.message == (
        "too many consecutive errors (5) while checking test status: "
        "connection refused"
    )


async def test_fatal_responses_count_toward_error_budget(
    poller: CompletionPoller, transport: FakeTransport
) -> None:
    """Fatal status codes are retried until the error budget runs out."""
    transport.add("GET", "/status", make_response(500, {"message": "oops"}))
    transport.add("PUT", "/cancel", CANCELED)

    result = await poller.wait_for_completion(HANDLE)

    assert result.outcome == "fatal_error"
    assert result.polls == 5
    assert result.message is not None
    assert "API error (status 500): oops" in result.message


async def test_success_resets_error_count(
    api: TestRigorApi, transport: FakeTransport, clock: FakeClock
) -> None:
    """A good response resets the consecutive error count."""
    settings = RunSettings(poll_interval=10, timeout_minutes=5)
    poller = CompletionPoller(api, settings, sleep=clock.sleep, clock=clock)
    not_ready = make_response(404, {"message": "Not ready"})
    transport.add(
        "GET",
        "/status",
        not_ready,
        not_ready,
        not_ready,
        not_ready,
        IN_PROGRESS,
        not_ready,
        not_ready,
        COMPLETED,
    )
    transport.add("PUT", "/cancel", CANCELED)

    result = await poller.wait_for_completion(HANDLE)

    assert result.outcome == "completed"
    assert result.polls == 8


async def test_404_crash_marker(
    poller: CompletionPoller, transport: FakeTransport
) -> None:
    """A 404 carrying a crash marker ends polling as crashed."""
    transport.add(
        "GET", "/status", make_response(404, {"errors": ["CRASH: no browser"]})
    )
    transport.add("PUT", "/cancel", CANCELED)

    result = await poller.wait_for_completion(HANDLE)

    assert result.outcome == "crashed"
    assert result.message == "test crashed: CRASH: no browser"


async def test_stop_before_first_poll(
    poller: CompletionPoller, transport: FakeTransport
) -> None:
    """A stop request ends polling without querying the status."""
    transport.add("PUT", "/cancel", CANCELED)
    stop = asyncio.Event()
    stop.set()

    result = await poller.wait_for_completion(HANDLE, stop=stop)

    assert result.outcome == "canceled_by_caller"
    assert result.polls == 0
    assert result.is_error
    assert transport.requests_for("GET") == []
    assert len(transport.requests_for("PUT")) == 1


async def test_stop_during_pause(
    api: TestRigorApi, settings: RunSettings, transport: FakeTransport
) -> None:
    """A stop request while waiting ends polling at the next iteration."""
    transport.add("GET", "/status", IN_PROGRESS)
    transport.add("PUT", "/cancel", CANCELED)
    stop = asyncio.Event()

    async def sleep_then_stop(seconds: float) -> None:
        stop.set()

    poller = CompletionPoller(api, settings, sleep=sleep_then_stop, clock=lambda: 0.0)
    result = await poller.wait_for_completion(HANDLE, stop=stop)

    assert result.outcome == "canceled_by_caller"
    assert result.polls == 1
    assert result.status is not None
    assert result.status.status == "In progress"


async def test_cancel_failure_is_only_logged(
    poller: CompletionPoller,
    transport: FakeTransport,
    caplog: pytest.LogCaptureFixture,
) -> None:
    """A failing remote cancel does not change the outcome."""
    transport.add("GET", "/status", COMPLETED)
    transport.add("PUT", "/cancel", TransportError("connection reset"))

    result = await poller.wait_for_completion(HANDLE)

    assert result.outcome == "completed"
    assert "Failed to cancel test run task-1" in caplog.text


async def test_cancel_rejected_is_only_logged(
    poller: CompletionPoller,
    transport: FakeTransport,
    caplog: pytest.LogCaptureFixture,
) -> None:
    """A rejected remote cancel does not change the outcome."""
    transport.add("GET", "/status", COMPLETED)
    transport.add("PUT", "/cancel", make_response(400, text="already finished"))

    result = await poller.wait_for_completion(HANDLE)

    assert result.outcome == "completed"
    assert "status 400 already finished" in caplog.text


async def test_cancel_is_bounded_in_time(
    api: TestRigorApi,
    transport: FakeTransport,
    clock: FakeClock,
    caplog: pytest.LogCaptureFixture,
) -> None:
    """A hanging remote cancel is abandoned after the cancel timeout."""
    transport.add("GET", "/status", COMPLETED)
    settings = RunSettings(poll_interval=10, timeout_minutes=1, cancel_timeout=0.01)
    poller = CompletionPoller(api, settings, sleep=clock.sleep, clock=clock)

    async def hang(task_id: str) -> None:
        await asyncio.sleep(10)

    with patch.object(api, "cancel_run", hang):
        result = await poller.wait_for_completion(HANDLE)

    assert result.outcome == "completed"
    assert "Failed to cancel test run task-1" in caplog.text


async def test_polling_is_repeatable(
    poller: CompletionPoller, transport: FakeTransport
) -> None:
    """Identical responses lead to identical results."""
    transport.add("GET", "/status", IN_PROGRESS, COMPLETED)
    transport.add("PUT", "/cancel", CANCELED)
    first = await poller.wait_for_completion(HANDLE)

    second_transport = FakeTransport()
    second_transport.add("GET", "/status", IN_PROGRESS, COMPLETED)
    second_transport.add("PUT", "/cancel", CANCELED)
    second_api = TestRigorApi(poller.api.config, second_transport)
    clock = FakeClock()
    second = await CompletionPoller(
        second_api, poller.settings, sleep=clock.sleep, clock=clock
    ).wait_for_completion(HANDLE)

    assert first == second
