import asyncio
import logging

import pytest
from fastapi.testclient import TestClient

from conftest import FakeReadwiseClient
from readwise_mcp.config import ReadwiseConfig
from readwise_mcp.mcp import McpDispatcher
from readwise_mcp.readwise_api import ReadwiseApiError
from readwise_mcp.server import _initialize_readwise, create_app


def test_startup_handshake_and_shutdown_close():
    fake = FakeReadwiseClient()
    app = create_app(McpDispatcher(fake, stream_item_delay=0), config=ReadwiseConfig(access_token="t"))
    with TestClient(app) as client:
        assert client.get("/health").status_code == 200
        assert fake.initialize_calls == 1
    assert fake.closed is True


def test_startup_handshake_failure_does_not_block_requests():
    fake = FakeReadwiseClient(init_error=ReadwiseApiError("down", status_code=503, attempts=4))
    app = create_app(McpDispatcher(fake, stream_item_delay=0), config=ReadwiseConfig(access_token="t"))
    with TestClient(app) as client:
        resp = client.post("/mcp", json={"jsonrpc": "2.0", "id": 1, "method": "tools/list"})
        assert resp.status_code == 200
    assert fake.closed is True


def test_startup_handshake_can_be_disabled():
    fake = FakeReadwiseClient()
    config = ReadwiseConfig(access_token="t", initialize_on_startup=False)
    app = create_app(McpDispatcher(fake, stream_item_delay=0), config=config)
    with TestClient(app) as client:
        client.get("/health")
    assert fake.initialize_calls == 0
    assert fake.closed is True


class HangingReadwiseClient(FakeReadwiseClient):
    def __init__(self):
        super().__init__()
        self.finished = False

    async def initialize(self):
        self.initialize_calls += 1
        await asyncio.Event().wait()
        self.finished = True


def test_startup_unexpected_error_does_not_block_requests():
    fake = FakeReadwiseClient(init_error=RuntimeError("bad base url"))
    app = create_app(McpDispatcher(fake, stream_item_delay=0), config=ReadwiseConfig(access_token="t"))
    with TestClient(app) as client:
        resp = client.post("/mcp", json={"jsonrpc": "2.0", "id": 1, "method": "tools/list"})
        assert resp.status_code == 200
    assert fake.closed is True


def test_shutdown_cancels_pending_handshake():
    fake = HangingReadwiseClient()
    app = create_app(McpDispatcher(fake, stream_item_delay=0), config=ReadwiseConfig(access_token="t"))
    with TestClient(app) as client:
        assert client.get("/health").status_code == 200
    assert fake.finished is False
    assert fake.closed is True


@pytest.mark.asyncio
async def test_unexpected_handshake_error_is_logged(caplog):
    fake = FakeReadwiseClient(init_error=RuntimeError("bad base url"))
    with caplog.at_level(logging.ERROR, logger="readwise_mcp.server"):
        await _initialize_readwise(fake)
    assert fake.initialize_calls == 1
    assert "Unexpected error initializing Readwise MCP" in caplog.text
    assert "bad base url" in caplog.text
