"""Endpoints of the testRigor REST API."""

from collections.abc import Sequence

from testrigor.ci_tool.models.settings import TestRigorConfig
from testrigor.ci_tool.transport.base import HttpRequest, HttpResponse, HttpTransport


class TestRigorApi:
    """Build requests for the testRigor endpoints and send them.

    Responses are returned as-is; interpreting status codes and bodies is
    left to the callers.
    """

    __test__ = False

    def __init__(self, config: TestRigorConfig, transport: HttpTransport) -> None:
        """Initialize API with configuration and a transport."""
        self.config = config
        self.transport = transport
        self._app_url = f"{config.api_url}/apps/{config.app_id}"
        self._report_app_url = f"{config.report_api_url}/apps/{config.app_id}"

    def _headers(self, accept: str = "application/json") -> dict[str, str]:
        return {
            "Accept": accept,
            "auth-token": self.config.auth_token,
        }

    async def start_run(self, payload: dict[str, object]) -> HttpResponse:
        """Ask the service to (re)run test cases."""
        return await self.transport.send(
            HttpRequest(
                method="POST",
                url=f"{self._app_url}/retest",
                headers=self._headers(),
                json_body=payload,
            )
        )

    async def get_status(
        self, branch_name: str | None, labels: Sequence[str] = ()
    ) -> HttpResponse:
        """Fetch the status of the run tracked by branch name and labels."""
        params: dict[str, str] = {}
        if branch_name:
            params["branchName"] = branch_name
        if labels:
            params["labels"] = ",".join(labels)

        return await self.transport.send(
            HttpRequest(
                method="GET",
                url=f"{self._app_url}/status",
                headers=self._headers(),
                params=params,
            )
        )

    async def cancel_run(self, task_id: str) -> HttpResponse:
        """Cancel a run by task ID."""
        return await self.transport.send(
            HttpRequest(
                method="PUT",
                url=f"{self._app_url}/runs/{task_id}/cancel",
                headers=self._headers(),
            )
        )

    async def get_report(self, task_id: str) -> HttpResponse:
        """Download the JUnit report of a run."""
        return await self.transport.send(
            HttpRequest(
                method="GET",
                url=f"{self._report_app_url}/runs/{task_id}/junit_report",
                headers=self._headers(accept="application/xml"),
            )
        )
