"""Models for the outcome of a test run."""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from testrigor.ci_tool.models.run_status import RunStatus

TerminalOutcome = Literal[
    "completed",
    "completed_with_failures",
    "failed",
    "crashed",
    "canceled",
    "timed_out",
    "canceled_by_caller",
    "fatal_error",
]


class PollResult(BaseModel):
    """Terminal state reached by the completion poller."""

    model_config = ConfigDict(frozen=True)

    outcome: TerminalOutcome = Field(..., description="How polling ended")
    status: RunStatus | None = Field(
        default=None, description="Most recent snapshot received"
    )
    message: str | None = Field(default=None, description="Reason for the outcome")
    polls: int = Field(default=0, ge=0, description="Status requests issued")

    @property
    def is_error(self) -> bool:
        """Whether polling ended without a usable verdict on the tests."""
        return self.outcome in {"timed_out", "fatal_error", "canceled_by_caller"}


class RunResult(BaseModel):
    """Final result of a submitted, awaited run."""

    task_id: str = Field(..., description="Task identifier of the run")
    branch_name: str = Field(default="", description="Tracking branch name")
    outcome: TerminalOutcome = Field(..., description="Terminal outcome")
    status: RunStatus | None = Field(default=None, description="Last snapshot")
    duration: float = Field(..., ge=0, description="Elapsed time in seconds")
    success: bool = Field(..., description="Completed without failures or crashes")
    message: str | None = Field(default=None, description="Outcome details")
    report_path: Path | None = Field(default=None, description="Saved report")
