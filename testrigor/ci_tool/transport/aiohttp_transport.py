"""HTTP transport backed by aiohttp."""

import asyncio
import logging

import aiohttp

from testrigor.ci_tool.exceptions import TransportError
from testrigor.ci_tool.transport.base import HttpRequest, HttpResponse, HttpTransport

logger = logging.getLogger(__name__)


class AiohttpTransport(HttpTransport):
    """Send requests with a short-lived aiohttp session per call."""

    def __init__(self, timeout: float = 30.0) -> None:
        """Initialize transport with a total per-request timeout in seconds."""
        self.timeout = aiohttp.ClientTimeout(total=timeout)

    async def send(self, request: HttpRequest) -> HttpResponse:
        """Perform the request and return status code and raw body."""
        logger.debug(f"Sending {request.method} request to {request.url}")
        if request.params:
            logger.debug(f"Query parameters: {request.params}")
        if request.json_body is not None:
            logger.debug(f"Request body: {request.json_body}")

        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.request(
                    request.method,
                    request.url,
                    headers=request.headers,
                    params=request.params or None,
                    json=request.json_body,
                ) as response:
                    body = await response.read()
                    headers = dict(response.headers)
                    status = response.status
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransportError(
                f"{request.method} {request.url} failed: {type(e).__name__}: {e}"
            ) from e

        logger.debug(f"Response status: {status}")
        logger.debug(f"Response body: {body.decode('utf-8', errors='replace')}")

        return HttpResponse(status_code=status, body=body, headers=headers)
