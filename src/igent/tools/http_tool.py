"""
HTTP request tool - the agent's curl.
"""

from typing import Any

import httpx
import structlog

from ..errors import ToolExecutionError
from .base import BaseTool, RiskLevel, ToolParameter, get_int, get_str
from .system_tools import truncate_output

logger = structlog.get_logger()

HTTP_METHODS = ["GET", "POST", "PUT", "DELETE", "HEAD", "PATCH"]


class HTTPRequestTool(BaseTool):
    """Make HTTP requests and return status, headers and body."""

    name = "curl"
    description = (
        "Make HTTP requests to URLs. Supports GET, POST, and other methods. "
        "Returns response body and status."
    )
    parameters = [
        ToolParameter("url", "string", "The URL to request", required=True),
        ToolParameter("method", "string", "HTTP method (GET, POST, PUT, DELETE, etc.)", enum=HTTP_METHODS),
        ToolParameter("headers", "object", "HTTP headers as key-value pairs"),
        ToolParameter("data", "string", "Request body data (for POST, PUT, PATCH)"),
        ToolParameter("timeout", "integer", "Request timeout in seconds (default: 30)"),
    ]
    risk = RiskLevel.DANGEROUS
    timeout = 125.0

    def __init__(self, transport: httpx.AsyncBaseTransport | None = None):
        self._transport = transport

    async def execute(self, args: dict[str, Any]) -> str:
        url = get_str(args, "url")
        if not url:
            raise ToolExecutionError("url is required")

        method = (get_str(args, "method") or "GET").upper()
        if method not in HTTP_METHODS:
            raise ToolExecutionError(f"unsupported method: {method}")

        raw_headers = args.get("headers")
        headers = {
            str(k): v for k, v in raw_headers.items() if isinstance(v, str)
        } if isinstance(raw_headers, dict) else {}

        data = get_str(args, "data") or None
        timeout = min(max(get_int(args, "timeout", 30), 1), 120)

        try:
            async with httpx.AsyncClient(
                timeout=timeout,
                follow_redirects=True,
                transport=self._transport,
            ) as client:
                response = await client.request(method, url, headers=headers, content=data)
        except httpx.HTTPError as e:
            logger.warning("HTTP request failed", url=url, error=str(e))
            raise ToolExecutionError(f"request failed: {e}") from e

        header_lines = "\n".join(f"{k}: {v}" for k, v in response.headers.items())
        return truncate_output(
            f"HTTP/{response.http_version.removeprefix('HTTP/')} "
            f"{response.status_code} {response.reason_phrase}\n"
            f"{header_lines}\n\n{response.text}"
        )
