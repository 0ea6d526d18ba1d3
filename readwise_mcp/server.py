"""FastAPI application exposing the Readwise MCP dispatcher over HTTP."""

from __future__ import annotations

import asyncio
import json
import logging
import time
import uuid
from contextlib import asynccontextmanager, suppress
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, Optional

import uvicorn
from fastapi import APIRouter, FastAPI, Request
from fastapi.responses import JSONResponse, StreamingResponse

from readwise_mcp.config import ReadwiseConfig, default_config
from readwise_mcp.mcp import (
    INTERNAL_ERROR,
    PARSE_ERROR,
    SERVER_NAME,
    SERVER_VERSION,
    McpDispatcher,
    error_payload,
    info_payload,
    server_info,
    validate_envelope,
)
from readwise_mcp.metrics import default_metrics
from readwise_mcp.readwise_api import ReadwiseApiClient, ReadwiseApiError, default_client

logger = logging.getLogger(__name__)

LOG_EXTRA_KEYS = ("method", "tool", "request_id", "error", "status_code", "attempt")

STREAM_HEADERS = {
    "Transfer-Encoding": "chunked",
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "time": self.formatTime(record),
            "level": record.levelname,
            "message": record.getMessage(),
            "name": record.name,
        }
        for key in LOG_EXTRA_KEYS:
            value = getattr(record, key, None)
            if value is not None:
                payload[key] = value
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def configure_logging(config: ReadwiseConfig = default_config) -> None:
    level = getattr(logging, config.log_level.upper(), logging.INFO)
    if config.log_format.lower() == "json":
        handler = logging.StreamHandler()
        handler.setFormatter(JsonFormatter())
        logging.basicConfig(level=level, handlers=[handler])
    else:
        logging.basicConfig(level=level)


configure_logging()


async def _initialize_readwise(client: ReadwiseApiClient) -> None:
    try:
        await client.initialize()
    except ReadwiseApiError as exc:
        logger.error(
            "Failed to initialize Readwise MCP status=%s attempts=%s",
            exc.status_code,
            exc.attempts,
            extra={"method": "initialize", "status_code": exc.status_code, "attempt": exc.attempts},
        )
        return
    except Exception:
        logger.exception("Unexpected error initializing Readwise MCP", extra={"method": "initialize"})
        return
    logger.info("Readwise MCP initialized successfully")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    dispatcher: McpDispatcher = app.state.dispatcher
    startup_task: Optional[asyncio.Task] = None
    if app.state.config.initialize_on_startup:
        startup_task = asyncio.create_task(_initialize_readwise(dispatcher.client))
    yield
    # Shutdown
    if startup_task is not None:
        startup_task.cancel()
        with suppress(asyncio.CancelledError):
            await startup_task
    await dispatcher.client.aclose()


async def add_request_context(request: Request, call_next):
    request_id = str(uuid.uuid4())
    request.state.request_id = request_id
    start = time.time()
    default_metrics.incr_request()
    logger.debug(
        "%s %s from %s",
        request.method,
        request.url.path,
        request.client.host if request.client else "unknown",
        extra={"request_id": request_id},
    )
    response = await call_next(request)
    duration_ms = (time.time() - start) * 1000
    default_metrics.record_duration(request_id, duration_ms)
    response.headers["X-Request-ID"] = request_id
    return response


router = APIRouter()


@router.get("/health")
async def health() -> JSONResponse:
    """Lightweight health endpoint for monitoring."""
    timestamp = datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
    return JSONResponse(content={"status": "ok", "timestamp": timestamp, "server": server_info()})


@router.get("/metrics")
async def metrics() -> JSONResponse:
    """Return in-process metrics snapshot."""
    return JSONResponse(content=default_metrics.snapshot())


@router.get("/mcp/info")
async def mcp_info() -> JSONResponse:
    """Static server description; carries no request id."""
    return JSONResponse(content=info_payload())


async def _read_envelope(request: Request) -> tuple[Optional[Dict[str, Any]], Optional[JSONResponse]]:
    try:
        body = await request.json()
    except ValueError:
        logger.warning("MCP request body is not valid JSON", extra={"error": PARSE_ERROR})
        return None, JSONResponse(status_code=400, content=error_payload(None, PARSE_ERROR, "Parse error"))
    invalid = validate_envelope(body)
    if invalid is not None:
        return None, JSONResponse(status_code=400, content=invalid)
    return body, None


def _encode_line(envelope: Dict[str, Any]) -> str:
    return json.dumps(envelope, ensure_ascii=False, separators=(",", ":")) + "\n"


@router.post("/mcp")
async def mcp_gateway(request: Request) -> JSONResponse:
    """
    JSON-RPC gateway for MCP clients.

    Supported methods:
      - initialize
      - tools/list
      - tools/call
      - notifications/list
    """
    request_id = getattr(request.state, "request_id", None)
    body, rejected = await _read_envelope(request)
    if rejected is not None:
        return rejected

    dispatcher: McpDispatcher = request.app.state.dispatcher
    try:
        response = await dispatcher.handle(body, request_id=request_id)
    except Exception:
        logger.exception("MCP request error", extra={"request_id": request_id, "method": body.get("method")})
        return JSONResponse(
            status_code=500, content=error_payload(body.get("id"), INTERNAL_ERROR, "Internal error")
        )
    return JSONResponse(content=response)


async def _ndjson_stream(
    dispatcher: McpDispatcher, body: Dict[str, Any], request_id: Optional[str]
) -> AsyncIterator[str]:
    try:
        async for envelope in dispatcher.stream(body, request_id=request_id):
            yield _encode_line(envelope)
    except Exception:
        # Headers are already sent; report in-band and end the stream.
        logger.exception("MCP streaming error", extra={"request_id": request_id, "method": body.get("method")})
        yield _encode_line(error_payload(body.get("id"), INTERNAL_ERROR, "Internal error"))


@router.post("/mcp/stream")
async def mcp_stream(request: Request):
    """Newline-delimited JSON-RPC stream; ``tools/call`` emits one envelope per result."""
    request_id = getattr(request.state, "request_id", None)
    body, rejected = await _read_envelope(request)
    if rejected is not None:
        return rejected

    dispatcher: McpDispatcher = request.app.state.dispatcher
    return StreamingResponse(
        _ndjson_stream(dispatcher, body, request_id),
        media_type="application/json",
        headers=STREAM_HEADERS,
    )


def create_app(
    dispatcher: Optional[McpDispatcher] = None, *, config: ReadwiseConfig = default_config
) -> FastAPI:
    """Build the application around an injected dispatcher (a default one otherwise)."""
    app = FastAPI(
        title=SERVER_NAME,
        description="Readwise highlight search exposed over MCP-style JSON-RPC.",
        version=SERVER_VERSION,
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.dispatcher = dispatcher or McpDispatcher(default_client, config=config)
    app.middleware("http")(add_request_context)
    app.include_router(router)
    return app


app = create_app()


def main() -> None:
    """Console entry point: run the server with uvicorn on HOST:PORT."""
    config = default_config
    if not config.access_token:
        logger.error("ACCESS_TOKEN is not set; refusing to start")
        raise SystemExit(1)
    logger.info(
        "Readwise MCP HTTP Server starting on %s:%s (debug=%s)", config.host, config.port, config.debug
    )
    uvicorn.run(app, host=config.host, port=config.port)


if __name__ == "__main__":
    main()
