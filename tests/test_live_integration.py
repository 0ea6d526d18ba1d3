import os

import httpx
import pytest
import pytest_asyncio

from readwise_mcp.config import ReadwiseConfig, load_access_token
from readwise_mcp.mcp import McpDispatcher
from readwise_mcp.readwise_api import ReadwiseApiClient, RetryPolicy


LIVE = os.getenv("LIVE_READWISE") in {"1", "true", "yes"}
BASE_URL = os.getenv("BASE_URL", "https://readwise.io")
SAMPLE_TERM = os.getenv("READWISE_SAMPLE_TERM", "learning")


pytestmark = pytest.mark.skipif(not LIVE, reason="Live Readwise integration tests are disabled")


@pytest_asyncio.fixture
async def live_client():
    config = ReadwiseConfig(base_url=BASE_URL, access_token=load_access_token())
    async with httpx.AsyncClient(base_url=BASE_URL, timeout=config.timeout) as httpx_client:
        yield ReadwiseApiClient(config, async_client=httpx_client, retry_policy=RetryPolicy(retries=0))


@pytest.mark.asyncio
async def test_live_initialize(live_client):
    await live_client.initialize()


@pytest.mark.asyncio
async def test_live_search_via_dispatcher(live_client):
    dispatcher = McpDispatcher(live_client, stream_item_delay=0)
    response = await dispatcher.handle(
        {
            "jsonrpc": "2.0",
            "id": 1,
            "method": "tools/call",
            "params": {
                "name": "search_readwise_highlights",
                "arguments": {"vector_search_term": SAMPLE_TERM, "full_text_queries": []},
            },
        }
    )
    assert "result" in response
    assert response["result"]["content"][0]["type"] == "text"
