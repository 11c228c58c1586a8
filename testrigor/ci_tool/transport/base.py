"""Abstract HTTP transport used by every API operation."""

import json
from abc import ABC, abstractmethod
from collections.abc import Mapping

from pydantic import BaseModel, Field


class HttpRequest(BaseModel):
    """A single HTTP request."""

    method: str = Field(..., description="HTTP method")
    url: str = Field(..., description="Absolute URL without query string")
    headers: dict[str, str] = Field(default_factory=dict)
    params: dict[str, str] = Field(default_factory=dict, description="Query string")
    json_body: dict[str, object] | None = Field(
        default=None, description="JSON payload"
    )


class HttpResponse(BaseModel):
    """Status code and raw body of an HTTP response."""

    status_code: int
    body: bytes = b""
    headers: dict[str, str] = Field(default_factory=dict)

    @property
    def text(self) -> str:
        """Body decoded as UTF-8, undecodable bytes replaced."""
        return self.body.decode("utf-8", errors="replace")

    def json_mapping(self) -> Mapping[str, object] | None:
        """Body parsed as a JSON object, or None when it is not one."""
        try:
            data = json.loads(self.body)
        except ValueError:
            return None
        return data if isinstance(data, dict) else None


class HttpTransport(ABC):
    """Capability to send a request and receive status code and body."""

    @abstractmethod
    async def send(self, request: HttpRequest) -> HttpResponse:
        """Send a request.

        Args:
            request: Request to perform

        Returns:
            The response, whatever its status code

        Raises:
            TransportError: If no response could be obtained

        """
