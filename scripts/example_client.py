"""Drive a running Readwise MCP server through initialize, tools/list and a search."""

from __future__ import annotations

import asyncio
import itertools
import json
import os
from typing import Any, Dict, Optional

import httpx

SERVER_URL = os.getenv("MCP_SERVER_URL", "http://localhost:3000")
# Search terms for the sample calls; override via env.
VECTOR_TERM = os.getenv("MCP_SAMPLE_VECTOR_TERM", "learning")
AUTHOR_TERM = os.getenv("MCP_SAMPLE_AUTHOR", "")
# Opt-in to the streamed search (paced at ~100ms per result).
RUN_STREAM = os.getenv("RUN_STREAM_EXAMPLE", "true").lower() in {"1", "true", "yes"}

_ids = itertools.count(1)


def _request(method: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    return {"jsonrpc": "2.0", "id": next(_ids), "method": method, "params": params}


def _search_arguments() -> Dict[str, Any]:
    queries = []
    if AUTHOR_TERM:
        queries.append({"field_name": "document_author", "search_term": AUTHOR_TERM})
    return {"vector_search_term": VECTOR_TERM, "full_text_queries": queries}


async def main() -> None:
    async with httpx.AsyncClient(base_url=SERVER_URL, timeout=60.0) as client:
        print("Health:", (await client.get("/health")).json())

        resp = await client.post("/mcp", json=_request("initialize"))
        print("Initialize:", resp.json())

        resp = await client.post("/mcp", json=_request("tools/list"))
        tools = resp.json().get("result", {}).get("tools", [])
        print("Tools:", [tool["name"] for tool in tools])

        call = _request(
            "tools/call", {"name": "search_readwise_highlights", "arguments": _search_arguments()}
        )
        resp = await client.post("/mcp", json=call)
        print("Search:", resp.json())

        if RUN_STREAM:
            call = _request(
                "tools/call", {"name": "search_readwise_highlights", "arguments": _search_arguments()}
            )
            async with client.stream("POST", "/mcp/stream", json=call) as stream:
                async for line in stream.aiter_lines():
                    if not line.strip():
                        continue
                    envelope = json.loads(line)
                    if "error" in envelope:
                        print("Stream error:", envelope["error"])
                    else:
                        print("Stream:", envelope["result"]["content"][0]["text"])


if __name__ == "__main__":
    asyncio.run(main())
