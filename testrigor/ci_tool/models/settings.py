"""Configuration models for the testRigor API and run policy."""

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_API_URL = "https://api.testrigor.com/api/v1"
DEFAULT_REPORT_API_URL = "https://api2.testrigor.com/api/v1"


class TestRigorConfig(BaseModel):
    """Credentials and endpoints of the testRigor service."""

    __test__ = False

    model_config = ConfigDict(coerce_numbers_to_str=True)

    auth_token: str = Field(..., min_length=1, description="testRigor auth token")
    app_id: str = Field(..., min_length=1, description="testRigor application ID")
    api_url: str = Field(default=DEFAULT_API_URL, description="API base URL")
    report_api_url: str = Field(
        default=DEFAULT_REPORT_API_URL, description="Report API base URL"
    )
    error_on_test_failure: bool = Field(
        default=False, description="Fail the process when tests fail"
    )
    request_timeout: float = Field(
        default=30.0, gt=0, description="Per-request timeout in seconds"
    )

    @field_validator("api_url", "report_api_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")


class RunSettings(BaseModel):
    """Polling and reporting policy for one run."""

    poll_interval: float = Field(default=10, ge=1, description="Seconds between polls")
    timeout_minutes: int = Field(default=30, ge=1, description="Overall deadline")
    fetch_report: bool = Field(default=False, description="Download JUnit report")
    report_path: Path = Field(
        default=Path("test-report.xml"), description="Where to save the report"
    )
    max_consecutive_errors: int = Field(
        default=5, ge=1, description="Status errors tolerated in a row"
    )
    report_max_attempts: int = Field(
        default=60, ge=1, description="Report fetches before giving up"
    )
    heartbeat_interval: float = Field(
        default=30, ge=0, description="Seconds between unchanged status lines"
    )
    cancel_timeout: float = Field(
        default=5, gt=0, description="Seconds allowed for the remote cancel"
    )
