"""Models for starting a test run."""

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class RunOptions(BaseModel):
    """Submission parameters for a single test run."""

    model_config = ConfigDict(frozen=True)

    test_case_uuids: list[str] = Field(
        default_factory=list, description="Explicit test cases to run"
    )
    labels: list[str] = Field(
        default_factory=list, description="Run test cases carrying these labels"
    )
    excluded_labels: list[str] = Field(
        default_factory=list, description="Skip test cases carrying these labels"
    )
    branch_name: str | None = Field(
        default=None, description="Tracking branch name, generated when omitted"
    )
    commit_hash: str | None = Field(default=None, description="Commit under test")
    url: str | None = Field(default=None, description="Base URL under test")
    custom_name: str | None = Field(default=None, description="Run display name")
    force_cancel_previous: bool = Field(
        default=False, description="Cancel runs already in progress"
    )
    make_xray_reports: bool = Field(
        default=False, description="Publish results to Xray Cloud"
    )

    @field_validator("test_case_uuids", "labels", "excluded_labels")
    @classmethod
    def _strip_blank(cls, values: list[str]) -> list[str]:
        return [value.strip() for value in values if value.strip()]

    @field_validator("branch_name", "commit_hash", "url", "custom_name")
    @classmethod
    def _blank_to_none(cls, value: str | None) -> str | None:
        if value is None or not value.strip():
            return None
        return value.strip()

    @model_validator(mode="after")
    def _check_target_selection(self) -> "RunOptions":
        if self.test_case_uuids and self.labels:
            raise ValueError(
                "test cases and labels are mutually exclusive; specify only one"
            )
        return self


class RunHandle(BaseModel):
    """Identifiers of a submitted run."""

    model_config = ConfigDict(frozen=True)

    task_id: str = Field(..., description="Task identifier returned by the service")
    branch_name: str = Field(
        default="", description="Branch name used to track the run"
    )
