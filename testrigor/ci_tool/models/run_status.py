"""Models for point-in-time status snapshots of a test run."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

CRASH_CATEGORY = "CRASH"
CRASH_MARKER = "CRASH:"

StatusKind = Literal[
    "queued",
    "in_progress",
    "completed",
    "failed",
    "crashed",
    "canceled",
    "transient_error",
    "fatal_error",
]


class RunResults(BaseModel):
    """Per-outcome test counts of a run."""

    model_config = ConfigDict(frozen=True)

    total: int = Field(default=0, ge=0)
    queued: int = Field(default=0, ge=0)
    in_progress: int = Field(default=0, ge=0)
    passed: int = Field(default=0, ge=0)
    failed: int = Field(default=0, ge=0)
    not_started: int = Field(default=0, ge=0)
    canceled: int = Field(default=0, ge=0)
    crashed: int = Field(default=0, ge=0)

    @property
    def finished(self) -> int:
        """Number of test cases that reached an end state."""
        return self.passed + self.failed + self.canceled + self.crashed

    @property
    def is_complete(self) -> bool:
        """Whether the breakdown shows nothing left to run."""
        return (
            self.total > 0
            and self.queued == 0
            and self.in_progress == 0
            and self.not_started == 0
        )


class RunError(BaseModel):
    """One structured failure entry reported for a run."""

    model_config = ConfigDict(frozen=True)

    category: str = Field(default="", description="Error category")
    message: str = Field(default="", description="Error text")
    severity: str = Field(default="", description="Severity as reported")
    occurrences: int = Field(default=1, ge=1)
    details_url: str | None = Field(default=None, description="Link to details")

    @property
    def is_crash(self) -> bool:
        """Whether this entry signals broken test infrastructure."""
        return (
            self.category.upper() == CRASH_CATEGORY
            or self.message.lstrip().startswith(CRASH_MARKER)
        )


class RunStatus(BaseModel):
    """Snapshot produced by a single status request."""

    model_config = ConfigDict(frozen=True)

    status: str = Field(default="", description="Status string from the service")
    details_url: str | None = Field(default=None, description="Run details page")
    task_id: str | None = Field(default=None, description="Echoed task identifier")
    errors: list[RunError] = Field(default_factory=list)
    results: RunResults = Field(default_factory=RunResults)
    http_status_code: int = Field(default=0, description="Transport status code")

    @property
    def crash_errors(self) -> list[RunError]:
        """Error entries that signal a crash."""
        return [error for error in self.errors if error.is_crash]

    @property
    def has_crashes(self) -> bool:
        """Whether counts or error entries report a crash."""
        return self.results.crashed > 0 or bool(self.crash_errors)


class StatusClassification(BaseModel):
    """Domain-level reading of one status response."""

    model_config = ConfigDict(frozen=True)

    kind: StatusKind
    status: RunStatus | None = None
    message: str | None = None

    @property
    def is_error(self) -> bool:
        """Whether the response carries no usable snapshot."""
        return self.kind in {"transient_error", "fatal_error"}

    @property
    def is_pending(self) -> bool:
        """Whether the run is still waiting or executing."""
        return self.kind in {"queued", "in_progress"}
