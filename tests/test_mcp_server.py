#!/usr/bin/env python3
"""
Tests for the MCP JSON-RPC server and its documentation tools
"""

import io
import json
import sys
import os
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from server.mcp_server import (
    INTERNAL_ERROR, INVALID_PARAMS, METHOD_NOT_FOUND, PARSE_ERROR, MCPServer
)
from server.query_engine import QueryEngine

def request(method, params=None, id=1):
    data = {"jsonrpc": "2.0", "id": id, "method": method}
    if params is not None:
        data["params"] = params
    return data

def call(name, arguments):
    return request("tools/call", {"name": name, "arguments": arguments})

def text_of(response):
    content = response["result"]["content"]
    assert content[0]["type"] == "text"
    return content[0]["text"]

@pytest.fixture
def server(sample_content):
    return MCPServer(QueryEngine(sample_content))

class TestProtocol:
    """JSON-RPC envelope handling"""

    @pytest.mark.asyncio
    async def test_initialize(self, server):
        response = await server.handle_request(request("initialize", {"clientInfo": {"name": "test"}}))
        assert response["id"] == 1
        assert response["result"]["serverInfo"]["name"] == "docforge"
        assert "tools" in response["result"]["capabilities"]

    @pytest.mark.asyncio
    async def test_initialized_notification_has_no_response(self, server):
        response = await server.handle_request({"jsonrpc": "2.0", "method": "notifications/initialized"})
        assert response is None
        assert server.session_initialized

    @pytest.mark.asyncio
    async def test_tools_list(self, server):
        response = await server.handle_request(request("tools/list"))
        names = [tool["name"] for tool in response["result"]["tools"]]
        assert names == ["search_content", "get_content", "list_resources"]

    @pytest.mark.asyncio
    async def test_unknown_method(self, server):
        response = await server.handle_request(request("resources/list"))
        assert response["error"]["code"] == METHOD_NOT_FOUND

    @pytest.mark.asyncio
    async def test_unknown_tool(self, server):
        response = await server.handle_request(call("delete_everything", {}))
        assert response["error"]["code"] == METHOD_NOT_FOUND
        assert "delete_everything" in response["error"]["message"]

    @pytest.mark.asyncio
    async def test_parse_error(self, server):
        response = await server.handle_message("{not json")
        assert response["error"]["code"] == PARSE_ERROR
        assert response["id"] is None

    @pytest.mark.asyncio
    async def test_engine_not_ready_is_internal_error(self):
        response = await MCPServer(QueryEngine()).handle_request(call("list_resources", {}))
        assert response["error"]["code"] == INTERNAL_ERROR

class TestTools:
    """search_content, get_content and list_resources"""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("arguments", [{}, {"query": ""}, {"query": 5}, {"query": "x", "limit": 0}])
    async def test_search_invalid_params(self, server, arguments):
        response = await server.handle_request(call("search_content", arguments))
        assert response["error"]["code"] == INVALID_PARAMS

    @pytest.mark.asyncio
    async def test_search_renders_results(self, server):
        response = await server.handle_request(call("search_content", {"query": "installation", "limit": 2.0}))
        text = text_of(response)
        assert text.startswith('Found ')
        assert '1. **Installation Guide** (Match: ' in text
        assert "   Source: docs" in text
        assert "   Path: guide/install.md" in text
        assert "   Description: Getting started" in text
        assert "   Preview: How to install" in text

    @pytest.mark.asyncio
    async def test_search_no_results(self, server):
        text = text_of(await server.handle_request(call("search_content", {"query": "zzzzqqqq"})))
        assert text == 'No results found for "zzzzqqqq"'

    @pytest.mark.asyncio
    async def test_get_content(self, server):
        text = text_of(await server.handle_request(call("get_content", {"id": "a1", "includeRelated": True})))
        lines = text.split("\n")
        assert lines[0] == "# Installation Guide"
        assert "**Source:** docs" in lines
        assert "**Path:** guide/install.md" in lines
        assert "How to install the package with pip." in lines
        assert "## Related Content" in lines
        assert "1. [Configuration](guide/config.md)" in lines

    @pytest.mark.asyncio
    async def test_get_content_not_found(self, server):
        response = await server.handle_request(call("get_content", {"id": "unknown"}))
        assert "error" not in response
        assert text_of(response) == "Content not found for ID: unknown"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("flag", ["false", "true", 1, None])
    async def test_get_content_include_related_must_be_boolean(self, server, flag):
        response = await server.handle_request(call("get_content", {"id": "a1", "includeRelated": flag}))
        assert response["error"]["code"] == INVALID_PARAMS

    @pytest.mark.asyncio
    async def test_get_content_without_related(self, server):
        text = text_of(await server.handle_request(call("get_content", {"id": "a1", "includeRelated": False})))
        assert "## Related Content" not in text

    @pytest.mark.asyncio
    async def test_get_content_requires_id_or_path(self, server):
        response = await server.handle_request(call("get_content", {}))
        assert response["error"]["code"] == INVALID_PARAMS

    @pytest.mark.asyncio
    async def test_list_resources(self, server):
        text = text_of(await server.handle_request(call("list_resources", {})))
        assert text.startswith("# Documentation Resources")
        assert "**Total Items:** 5" in text
        assert "**Sections:** 4" in text
        assert "**Sources:** docs, repo" in text
        assert text.index("## api") < text.index("## guide") < text.index("## root") < text.index("## wiki")
        assert text.index("**Configuration**") < text.index("**Installation Guide**")

    @pytest.mark.asyncio
    async def test_list_resources_with_path(self, server):
        text = text_of(await server.handle_request(call("list_resources", {"path": "guide/"})))
        assert "Browsing path: guide/" in text
        assert "**Total Items:** 2" in text

@pytest.mark.asyncio
async def test_stdio_loop(server):
    """Test line-delimited JSON-RPC over stdio streams."""
    stdin = io.StringIO("\n".join([
        json.dumps(request("initialize", {})),
        json.dumps({"jsonrpc": "2.0", "method": "notifications/initialized"}),
        "",
        "garbage",
        json.dumps(request("tools/list", id=2)),
    ]) + "\n")
    stdout = io.StringIO()

    await server.serve_stdio(stdin, stdout)

    responses = [json.loads(line) for line in stdout.getvalue().splitlines()]
    assert [r.get("id") for r in responses] == [1, None, 2]
    assert responses[1]["error"]["code"] == PARSE_ERROR
    assert "tools" in responses[2]["result"]
