import os
import sys

import pytest

# Ensure repository root is on sys.path before importing project modules.
repo_root = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if repo_root not in sys.path:
    sys.path.insert(0, repo_root)

from fastapi.testclient import TestClient  # noqa: E402

from readwise_mcp.mcp import McpDispatcher  # noqa: E402
from readwise_mcp.metrics import default_metrics  # noqa: E402
from readwise_mcp.server import create_app  # noqa: E402

SAMPLE_RESULTS = [
    {"id": 1, "text": "First highlight", "document_title": "Book A"},
    {"id": 2, "text": "Second highlight", "document_title": "Book B"},
    {"id": 3, "text": "Third highlight", "document_title": "Book C"},
]

VALID_ARGUMENTS = {
    "vector_search_term": "habits",
    "full_text_queries": [{"field_name": "document_author", "search_term": "Clear"}],
}


class FakeReadwiseClient:
    """Stands in for ReadwiseApiClient; records payloads and replays canned results."""

    def __init__(self, results=None, error=None, init_error=None):
        self.results = list(results) if results is not None else list(SAMPLE_RESULTS)
        self.error = error
        self.init_error = init_error
        self.payloads = []
        self.initialize_calls = 0
        self.closed = False

    async def initialize(self):
        self.initialize_calls += 1
        if self.init_error is not None:
            raise self.init_error

    async def search_highlights(self, payload):
        self.payloads.append(payload)
        if self.error is not None:
            raise self.error
        return list(self.results)

    async def aclose(self):
        self.closed = True


class SleepRecorder:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


@pytest.fixture(autouse=True)
def reset_metrics():
    default_metrics.reset()
    yield
    default_metrics.reset()


@pytest.fixture
def fake_client():
    return FakeReadwiseClient()


@pytest.fixture
def dispatcher(fake_client):
    return McpDispatcher(fake_client, stream_item_delay=0)


@pytest.fixture
def client(dispatcher):
    return TestClient(create_app(dispatcher))
