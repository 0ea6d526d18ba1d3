"""
Lightweight JSON-RPC surface for MCP-style tooling.

``McpDispatcher`` routes the four supported methods to handlers and, for the
streaming transport, turns ``tools/call`` into a sequence of envelopes. It
holds no per-request state; the Readwise client and config are injected so
tests can substitute a fake upstream.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional, Tuple

from readwise_mcp.config import ReadwiseConfig, default_config
from readwise_mcp.metrics import MetricsRecorder, default_metrics
from readwise_mcp.readwise_api import ReadwiseApiClient, ReadwiseApiError, default_client
from readwise_mcp.tools import (
    INPUT_SCHEMA,
    TOOL_DESCRIPTION,
    TOOL_NAME,
    InvalidArgumentsError,
    has_search_terms,
    parse_search_arguments,
    parse_streaming_search_arguments,
    search_readwise_highlights,
)

logger = logging.getLogger(__name__)

JSONRPC_VERSION = "2.0"
PROTOCOL_VERSION = "2024-11-05"
SERVER_NAME = "Readwise MCP HTTP Server"
SERVER_VERSION = "0.0.6"

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603

STREAM_STARTED_TEXT = "Starting search..."
STREAM_COMPLETED_TEXT = "Search completed."
MISSING_SEARCH_TERMS = "Either vector_search_term or full_text_queries must be provided"


@dataclass(slots=True)
class ToolDefinition:
    name: str
    description: str
    input_schema: Dict[str, Any]


TOOL_REGISTRY: Dict[str, ToolDefinition] = {
    TOOL_NAME: ToolDefinition(
        name=TOOL_NAME,
        description=TOOL_DESCRIPTION,
        input_schema=INPUT_SCHEMA,
    ),
}


def list_tools() -> List[Dict[str, Any]]:
    """Return the static tool descriptors."""
    return [
        {
            "name": tool.name,
            "description": tool.description,
            "inputSchema": tool.input_schema,
        }
        for tool in TOOL_REGISTRY.values()
    ]


def server_info() -> Dict[str, str]:
    return {"name": SERVER_NAME, "version": SERVER_VERSION}


def initialize_result() -> Dict[str, Any]:
    return {
        "protocolVersion": PROTOCOL_VERSION,
        "capabilities": {
            "tools": {"listChanged": False},
            "resources": {"subscribe": False, "listChanged": False},
            "prompts": {"listChanged": False},
        },
        "serverInfo": server_info(),
    }


def info_payload() -> Dict[str, Any]:
    """Static envelope served at ``GET /mcp/info``."""
    return success_payload(
        None,
        {
            "name": SERVER_NAME,
            "version": SERVER_VERSION,
            "capabilities": {"tools": {"listChanged": False}},
        },
    )


def success_payload(rpc_id: Any, result: Any) -> Dict[str, Any]:
    return {"jsonrpc": JSONRPC_VERSION, "id": rpc_id, "result": result}


def error_payload(rpc_id: Any, code: int, message: str, data: Any = None) -> Dict[str, Any]:
    error: Dict[str, Any] = {"code": code, "message": message}
    if data is not None:
        error["data"] = data
    return {"jsonrpc": JSONRPC_VERSION, "id": rpc_id, "error": error}


def to_text(value: Any) -> str:
    """Compact JSON rendering used for tool-result text blocks."""
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"))


def text_result(text: str) -> Dict[str, Any]:
    return {"content": [{"type": "text", "text": text}]}


def validate_envelope(body: Any) -> Optional[Dict[str, Any]]:
    """
    Check the JSON-RPC envelope of a parsed request body.

    Returns:
        None when the envelope is acceptable, otherwise the ``-32600`` error
        payload to send back with HTTP 400.
    """
    if not isinstance(body, dict):
        logger.warning("invalid JSON-RPC request: body is not an object")
        return error_payload(None, INVALID_REQUEST, "Invalid Request")
    if body.get("jsonrpc") != JSONRPC_VERSION:
        logger.warning(
            "invalid JSON-RPC version jsonrpc=%r", body.get("jsonrpc"), extra={"error": INVALID_REQUEST}
        )
        return error_payload(body.get("id"), INVALID_REQUEST, "Invalid Request")
    return None


def _tool_call_params(params: Any) -> Optional[Tuple[Any, Any]]:
    if not isinstance(params, dict):
        return None
    return params.get("name"), params.get("arguments")


def _missing_params(rpc_id: Any, request_id: Optional[str]) -> Dict[str, Any]:
    # A tools/call without params has nothing to name the tool; it fails as an execution error.
    logger.warning("tools/call without params", extra={"request_id": request_id, "error": INTERNAL_ERROR})
    return error_payload(rpc_id, INTERNAL_ERROR, "Tool execution failed")


Handler = Callable[[Any, Any, Optional[str]], Awaitable[Dict[str, Any]]]


class McpDispatcher:
    """Route JSON-RPC requests to the Readwise-backed handlers."""

    def __init__(
        self,
        client: ReadwiseApiClient = default_client,
        *,
        config: ReadwiseConfig = default_config,
        stream_item_delay: Optional[float] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        metrics: MetricsRecorder = default_metrics,
    ) -> None:
        self.client = client
        self.config = config
        self.stream_item_delay = (
            config.stream_item_delay if stream_item_delay is None else stream_item_delay
        )
        self._sleep = sleep
        self._metrics = metrics
        self._handlers: Dict[str, Handler] = {
            "initialize": self._initialize,
            "tools/list": self._tools_list,
            "tools/call": self._tools_call,
            "notifications/list": self._notifications_list,
        }

    async def handle(self, request: Dict[str, Any], *, request_id: Optional[str] = None) -> Dict[str, Any]:
        """Dispatch one request whose envelope has already been validated."""
        method = request.get("method")
        rpc_id = request.get("id")
        handler = self._handlers.get(method) if isinstance(method, str) else None
        if handler is None:
            logger.warning(
                "unknown MCP method method=%r",
                method,
                extra={"request_id": request_id, "error": METHOD_NOT_FOUND},
            )
            self._metrics.record_method("unknown", success=False)
            return error_payload(rpc_id, METHOD_NOT_FOUND, "Method not found")

        logger.debug("handling MCP method=%s id=%s", method, rpc_id, extra={"method": method, "request_id": request_id})
        response = await handler(rpc_id, request.get("params"), request_id)
        self._metrics.record_method(method, success="error" not in response)
        return response

    async def stream(
        self, request: Dict[str, Any], *, request_id: Optional[str] = None
    ) -> AsyncIterator[Dict[str, Any]]:
        """
        Yield the envelopes for one request on the streaming transport.

        ``tools/call`` produces a start marker, one envelope per result and a
        completion marker. Every other method yields its single envelope.
        """
        if request.get("method") != "tools/call":
            yield await self.handle(request, request_id=request_id)
            return

        success = True
        async for envelope in self._stream_tool_call(request.get("id"), request.get("params"), request_id):
            success = "error" not in envelope
            yield envelope
        self._metrics.record_method("tools/call", success=success)

    async def _initialize(self, rpc_id: Any, params: Any, request_id: Optional[str]) -> Dict[str, Any]:
        try:
            await self.client.initialize()
        except ReadwiseApiError as exc:
            _log_upstream_failure("Failed to initialize Readwise MCP", exc, method="initialize", request_id=request_id)
            return error_payload(rpc_id, INTERNAL_ERROR, "Failed to initialize Readwise MCP")
        logger.debug("readwise initialize succeeded", extra={"method": "initialize", "request_id": request_id})
        return success_payload(rpc_id, initialize_result())

    async def _tools_list(self, rpc_id: Any, params: Any, request_id: Optional[str]) -> Dict[str, Any]:
        return success_payload(rpc_id, {"tools": list_tools()})

    async def _notifications_list(self, rpc_id: Any, params: Any, request_id: Optional[str]) -> Dict[str, Any]:
        return success_payload(rpc_id, {"notifications": []})

    async def _tools_call(self, rpc_id: Any, params: Any, request_id: Optional[str]) -> Dict[str, Any]:
        if params is None:
            return _missing_params(rpc_id, request_id)
        extracted = _tool_call_params(params)
        if extracted is None:
            return error_payload(rpc_id, INVALID_PARAMS, "Invalid params")
        name, arguments = extracted
        if not _is_known_tool(name):
            logger.warning("unknown tool requested tool=%r", name, extra={"request_id": request_id, "error": METHOD_NOT_FOUND})
            return error_payload(rpc_id, METHOD_NOT_FOUND, "Tool not found")

        try:
            payload = parse_search_arguments(arguments)
        except InvalidArgumentsError as exc:
            logger.warning(
                "invalid tool arguments tool=%s reasons=%s",
                name,
                exc.reasons,
                extra={"tool": name, "request_id": request_id, "error": INVALID_PARAMS},
            )
            return error_payload(rpc_id, INVALID_PARAMS, f"Invalid arguments: {exc}")

        try:
            results = await search_readwise_highlights(payload, client=self.client)
        except ReadwiseApiError as exc:
            _log_upstream_failure("Tool execution failed", exc, tool=name, request_id=request_id)
            return error_payload(rpc_id, INTERNAL_ERROR, "Tool execution failed")

        logger.info(
            "tool=%s outcome=success results=%s request_id=%s",
            name,
            len(results),
            request_id,
            extra={"tool": name, "request_id": request_id},
        )
        return success_payload(rpc_id, text_result(to_text(results)))

    async def _stream_tool_call(
        self, rpc_id: Any, params: Any, request_id: Optional[str]
    ) -> AsyncIterator[Dict[str, Any]]:
        if params is None:
            yield _missing_params(rpc_id, request_id)
            return
        extracted = _tool_call_params(params)
        if extracted is None:
            yield error_payload(rpc_id, INVALID_PARAMS, "Invalid params")
            return
        name, arguments = extracted
        if not _is_known_tool(name):
            logger.warning("unknown streaming tool requested tool=%r", name, extra={"request_id": request_id, "error": METHOD_NOT_FOUND})
            yield error_payload(rpc_id, METHOD_NOT_FOUND, "Tool not found")
            return

        try:
            payload = parse_streaming_search_arguments(arguments)
        except InvalidArgumentsError as exc:
            # Shape errors on this path fail the call rather than report -32602.
            logger.warning(
                "malformed streaming tool arguments tool=%s reasons=%s",
                name,
                exc.reasons,
                extra={"tool": name, "request_id": request_id, "error": INTERNAL_ERROR},
            )
            yield error_payload(rpc_id, INTERNAL_ERROR, "Tool execution failed")
            return

        if not has_search_terms(payload):
            logger.warning(
                "streaming tool call without search terms", extra={"tool": name, "request_id": request_id, "error": INVALID_PARAMS}
            )
            yield error_payload(rpc_id, INVALID_PARAMS, MISSING_SEARCH_TERMS)
            return

        logger.debug("stream started tool=%s", name, extra={"tool": name, "request_id": request_id})
        yield success_payload(rpc_id, text_result(STREAM_STARTED_TEXT))

        try:
            results = await search_readwise_highlights(payload, client=self.client)
        except ReadwiseApiError as exc:
            _log_upstream_failure("Streaming tool execution failed", exc, tool=name, request_id=request_id)
            yield error_payload(rpc_id, INTERNAL_ERROR, "Tool execution failed")
            return

        total = len(results)
        for index, item in enumerate(results, start=1):
            logger.debug("streaming result %s/%s", index, total, extra={"tool": name, "request_id": request_id})
            yield success_payload(rpc_id, text_result(to_text(item)))
            self._metrics.incr_streamed_items()
            await self._sleep(self.stream_item_delay)

        logger.debug("stream completed tool=%s results=%s", name, total, extra={"tool": name, "request_id": request_id})
        yield success_payload(rpc_id, text_result(STREAM_COMPLETED_TEXT))


def _is_known_tool(name: Any) -> bool:
    return isinstance(name, str) and name in TOOL_REGISTRY


def _log_upstream_failure(
    message: str,
    exc: ReadwiseApiError,
    *,
    method: Optional[str] = None,
    tool: Optional[str] = None,
    request_id: Optional[str] = None,
) -> None:
    logger.error(
        "%s: %s status=%s attempts=%s cause=%r",
        message,
        type(exc).__name__,
        exc.status_code,
        exc.attempts,
        exc.__cause__,
        extra={
            "method": method,
            "tool": tool,
            "request_id": request_id,
            "error": type(exc).__name__,
            "status_code": exc.status_code,
            "attempt": exc.attempts,
        },
    )
