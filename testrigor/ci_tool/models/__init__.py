"""Data models for run options, status snapshots, results and settings."""

from testrigor.ci_tool.models.run_options import RunHandle, RunOptions
from testrigor.ci_tool.models.run_result import PollResult, RunResult, TerminalOutcome
from testrigor.ci_tool.models.run_status import (
    RunError,
    RunResults,
    RunStatus,
    StatusClassification,
    StatusKind,
)
from testrigor.ci_tool.models.settings import RunSettings, TestRigorConfig

__all__ = [
    "PollResult",
    "RunError",
    "RunHandle",
    "RunOptions",
    "RunResult",
    "RunResults",
    "RunSettings",
    "RunStatus",
    "StatusClassification",
    "StatusKind",
    "TerminalOutcome",
    "TestRigorConfig",
]
