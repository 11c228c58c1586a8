"""CLI entry point for the testRigor CI tool."""

import asyncio
import json
import logging
import signal
import sys
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path

import typer
from pydantic import ValidationError

from testrigor.ci_tool.api import TestRigorApi
from testrigor.ci_tool.classifier import classify_status_response, extract_error_message
from testrigor.ci_tool.config import load_config
from testrigor.ci_tool.exceptions import ConfigError, RunCanceledError, TestRigorError
from testrigor.ci_tool.models.run_options import RunOptions
from testrigor.ci_tool.models.run_result import RunResult
from testrigor.ci_tool.models.settings import RunSettings, TestRigorConfig
from testrigor.ci_tool.orchestrator import RunOrchestrator
from testrigor.ci_tool.submission import submit_run
from testrigor.ci_tool.transport.aiohttp_transport import AiohttpTransport

# Configure logging - force reconfiguration
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    stream=sys.stderr,
    force=True,
)
logger = logging.getLogger(__name__)

app = typer.Typer(help="Run testRigor test suites from CI and wait for the outcome.")

EXIT_INTERRUPTED = 130

CONFIG_OPTION = typer.Option(
    None, "--config", help="Config file (default is $HOME/.testrigor.yaml)"
)
DEBUG_OPTION = typer.Option(False, "--debug", help="Enable debug output")
LABELS_OPTION = typer.Option(
    [], "--labels", help="Labels to filter tests (repeatable or comma-separated)"
)
EXCLUDED_LABELS_OPTION = typer.Option(
    [], "--excluded-labels", help="Labels to exclude from the test run"
)
BRANCH_OPTION = typer.Option(
    None, "--branch", help="Branch name for tracking the run (e.g. ci-123, pr-456)"
)
COMMIT_OPTION = typer.Option(None, "--commit", help="Commit hash for the test run")
URL_OPTION = typer.Option(None, "--url", help="URL of the application under test")
TEST_CASE_OPTION = typer.Option(
    [], "--test-case", help="Test case UUID to run (repeatable)"
)
NAME_OPTION = typer.Option(None, "--name", help="Custom name for the test run")
FORCE_CANCEL_OPTION = typer.Option(
    False, "--force-cancel", help="Force cancel previous testing"
)
XRAY_OPTION = typer.Option(
    False, "--make-xray-reports", help="Enable Xray Cloud reporting"
)


def _version_callback(value: bool) -> None:
    if value:
        try:
            typer.echo(f"Version: {version('testrigor-ci-tool')}")
        except PackageNotFoundError:
            typer.echo("Version: dev")
        raise typer.Exit()


@app.callback()
def main(
    show_version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Print version information and exit",
    ),
) -> None:
    """Manage testRigor test suite runs."""


def _split_values(values: list[str]) -> list[str]:
    """Accept both repeated options and comma-separated lists."""
    return [part.strip() for value in values for part in value.split(",") if part]


def _configure_debug(debug: bool) -> None:
    if debug:
        logging.getLogger().setLevel(logging.DEBUG)
        logger.debug("Debug output enabled")


def _load_config_or_exit(config_path: Path | None) -> TestRigorConfig:
    try:
        return load_config(config_path)
    except ConfigError as e:
        logger.error(f"Failed to load configuration: {e}")
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)


def _create_api(config: TestRigorConfig) -> TestRigorApi:
    """Create the API client backed by the aiohttp transport."""
    return TestRigorApi(config, AiohttpTransport(timeout=config.request_timeout))


def _build_options(
    test_cases: list[str],
    labels: list[str],
    excluded_labels: list[str],
    branch: str | None,
    commit: str | None,
    url: str | None,
    name: str | None,
    force_cancel: bool,
    make_xray_reports: bool,
) -> RunOptions:
    try:
        return RunOptions(
            test_case_uuids=_split_values(test_cases),
            labels=_split_values(labels),
            excluded_labels=_split_values(excluded_labels),
            branch_name=branch,
            commit_hash=commit,
            url=url,
            custom_name=name,
            force_cancel_previous=force_cancel,
            make_xray_reports=make_xray_reports,
        )
    except ValidationError as e:
        messages = "; ".join(error["msg"] for error in e.errors())
        typer.echo(f"Error: invalid run options: {messages}", err=True)
        raise typer.Exit(code=1)


async def _run_until_interrupted(
    orchestrator: RunOrchestrator, options: RunOptions
) -> RunResult:
    """Run the orchestrator, turning Ctrl-C into a graceful stop."""
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, stop.set)
        handler_installed = True
    except (NotImplementedError, RuntimeError, ValueError):  # pragma: no cover
        logger.debug("SIGINT handler unavailable, Ctrl-C will abort immediately")
        handler_installed = False

    try:
        return await orchestrator.run(options, stop)
    finally:
        if handler_installed:
            loop.remove_signal_handler(signal.SIGINT)


def _result_summary(result: RunResult) -> dict[str, object]:
    status = result.status
    return {
        "task_id": result.task_id,
        "branch_name": result.branch_name,
        "outcome": result.outcome,
        "success": result.success,
        "status": status.status if status else None,
        "http_status_code": status.http_status_code if status else None,
        "details_url": status.details_url if status else None,
        "duration": round(result.duration, 2),
        "message": result.message,
        "report_path": str(result.report_path) if result.report_path else None,
        "results": status.results.model_dump() if status else None,
        "errors": [error.model_dump() for error in status.errors] if status else [],
    }


@app.command("run-and-wait")
def run_and_wait(  # noqa: C901
    labels: list[str] = LABELS_OPTION,
    excluded_labels: list[str] = EXCLUDED_LABELS_OPTION,
    branch: str | None = BRANCH_OPTION,
    commit: str | None = COMMIT_OPTION,
    url: str | None = URL_OPTION,
    test_case: list[str] = TEST_CASE_OPTION,
    name: str | None = NAME_OPTION,
    poll_interval: int = typer.Option(
        10, "--poll-interval", min=1, help="Polling interval in seconds"
    ),
    timeout: int = typer.Option(
        30, "--timeout", min=1, help="Maximum time to wait in minutes"
    ),
    force_cancel: bool = FORCE_CANCEL_OPTION,
    fetch_report: bool = typer.Option(
        False, "--fetch-report", help="Download JUnit report after completion"
    ),
    report_path: Path = typer.Option(  # noqa: B008
        Path("test-report.xml"), "--report-path", help="Where to save the report"
    ),
    make_xray_reports: bool = XRAY_OPTION,
    debug: bool = DEBUG_OPTION,
    config_path: Path | None = CONFIG_OPTION,
) -> None:
    """Start a test run and wait for it to complete.

    If no branch name is provided, one is generated from the labels.
    """
    _configure_debug(debug)
    config = _load_config_or_exit(config_path)
    options = _build_options(
        test_case,
        labels,
        excluded_labels,
        branch,
        commit,
        url,
        name,
        force_cancel,
        make_xray_reports,
    )
    settings = RunSettings(
        poll_interval=poll_interval,
        timeout_minutes=timeout,
        fetch_report=fetch_report,
        report_path=report_path,
    )

    orchestrator = RunOrchestrator(_create_api(config), settings)

    try:
        result = asyncio.run(_run_until_interrupted(orchestrator, options))
    except RunCanceledError as e:
        logger.warning(f"Test run canceled: {e}")
        typer.echo(f"Canceled: {e}", err=True)
        raise typer.Exit(code=EXIT_INTERRUPTED)
    except KeyboardInterrupt:
        typer.echo("Interrupted", err=True)
        raise typer.Exit(code=EXIT_INTERRUPTED)
    except Exception as e:
        logger.exception("Test run failed")
        typer.echo(f"Error running tests: {e}", err=True)
        raise typer.Exit(code=1)

    typer.echo(json.dumps(_result_summary(result), indent=2))

    if result.success:
        logger.info("Test run passed")
        return

    failed = result.status.results.failed if result.status else 0
    crashed = result.status.results.crashed if result.status else 0
    if config.error_on_test_failure:
        logger.error(
            f"Test run not successful ({result.outcome}): "
            f"{failed} failed, {crashed} crashed"
        )
        raise typer.Exit(code=1)
    logger.warning(
        f"Test run not successful ({result.outcome}), "
        "but continuing due to configuration"
    )


@app.command("run")
def run(
    labels: list[str] = LABELS_OPTION,
    excluded_labels: list[str] = EXCLUDED_LABELS_OPTION,
    branch: str | None = BRANCH_OPTION,
    commit: str | None = COMMIT_OPTION,
    url: str | None = URL_OPTION,
    test_case: list[str] = TEST_CASE_OPTION,
    name: str | None = NAME_OPTION,
    force_cancel: bool = FORCE_CANCEL_OPTION,
    make_xray_reports: bool = XRAY_OPTION,
    debug: bool = DEBUG_OPTION,
    config_path: Path | None = CONFIG_OPTION,
) -> None:
    """Start a test run without waiting for it."""
    _configure_debug(debug)
    config = _load_config_or_exit(config_path)
    options = _build_options(
        test_case,
        labels,
        excluded_labels,
        branch,
        commit,
        url,
        name,
        force_cancel,
        make_xray_reports,
    )

    try:
        handle = asyncio.run(submit_run(_create_api(config), options))
    except TestRigorError as e:
        typer.echo(f"Error: failed to start test run: {e}", err=True)
        raise typer.Exit(code=1)

    logger.info(f"Test run started with task ID: {handle.task_id}")
    typer.echo(json.dumps(handle.model_dump(), indent=2))


@app.command("status")
def status(
    branch: str = typer.Option(..., "--branch", help="Branch name to check"),
    labels: list[str] = LABELS_OPTION,
    debug: bool = DEBUG_OPTION,
    config_path: Path | None = CONFIG_OPTION,
) -> None:
    """Check the current status of a test run by branch name."""
    _configure_debug(debug)
    config = _load_config_or_exit(config_path)
    label_list = _split_values(labels)

    try:
        response = asyncio.run(_create_api(config).get_status(branch, label_list))
    except TestRigorError as e:
        typer.echo(f"Error: failed to get test status: {e}", err=True)
        raise typer.Exit(code=1)

    classification = classify_status_response(response.status_code, response.body)
    snapshot = classification.status
    output = {
        "branch_name": branch,
        "labels": label_list,
        "classification": classification.kind,
        "message": classification.message,
        "status": snapshot.model_dump(mode="json") if snapshot else None,
    }
    typer.echo(json.dumps(output, indent=2))

    if classification.is_error:
        raise typer.Exit(code=1)


@app.command("cancel")
def cancel(
    run_id: str = typer.Option(..., "--run-id", help="ID of the run to cancel"),
    debug: bool = DEBUG_OPTION,
    config_path: Path | None = CONFIG_OPTION,
) -> None:
    """Cancel a running test by its run ID."""
    _configure_debug(debug)
    config = _load_config_or_exit(config_path)

    logger.info(f"Canceling test run with ID: {run_id}")
    try:
        response = asyncio.run(_create_api(config).cancel_run(run_id))
    except TestRigorError as e:
        typer.echo(f"Error: failed to cancel test run: {e}", err=True)
        raise typer.Exit(code=1)

    if response.status_code != 200:
        message = extract_error_message(response.json_mapping(), response.text)
        typer.echo(
            f"Error: failed to cancel test run: "
            f"API error (status {response.status_code}): {message}",
            err=True,
        )
        raise typer.Exit(code=1)

    typer.echo(f"Test run {run_id} has been canceled successfully.")


if __name__ == "__main__":  # pragma: no cover
    app()
