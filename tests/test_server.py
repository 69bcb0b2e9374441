import json

import pytest
from fastapi.testclient import TestClient

from evm_mcp import server as server_mod
from evm_mcp.mcp import TOOL_REGISTRY
from evm_mcp.server import MCP_SERVER_NAME, MCP_SERVER_VERSION, app


@pytest.fixture(autouse=True)
def unlimited(monkeypatch):
    async def allow(*_args, **_kwargs):
        return True

    monkeypatch.setattr(server_mod.rate_limiter, "allow", allow)


@pytest.fixture
def client():
    return TestClient(app)


def _rpc(client, method, params=None, rpc_id=1):
    body = {"jsonrpc": "2.0", "id": rpc_id, "method": method}
    if params is not None:
        body["params"] = params
    return client.post("/mcp", json=body)


def test_health_and_request_id(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}
    assert resp.headers["X-Request-ID"]


def test_metrics_counts_requests(client):
    client.get("/health")
    data = client.get("/metrics").json()
    assert data["requests"] >= 1
    assert "tool_success" in data


def test_rate_limited_route_returns_jsonrpc_envelope(client, monkeypatch):
    async def deny(*_args, **_kwargs):
        return False

    monkeypatch.setattr(server_mod.rate_limiter, "allow", deny)
    resp = client.get("/tools/gas_price")
    assert resp.status_code == 429
    assert resp.json() == {"jsonrpc": "2.0", "error": {"code": 429, "message": "Rate limit exceeded"}}
    assert client.get("/metrics").json()["rate_limited"] == 1

    rpc = _rpc(client, "tools/list")
    assert rpc.status_code == 429


def test_balance_route_validates_address(client):
    resp = client.get("/tools/balance/0x123")
    assert resp.status_code == 200
    assert resp.json() == {"error": "Invalid Ethereum address format"}
    assert client.get("/metrics").json()["tool_error"] == {"eth_getBalance": 1}


def test_transaction_route_unsupported_chain(client):
    resp = client.get(f"/tools/transaction/0x{'ab' * 32}", params={"chain": "polygon"})
    assert resp.json() == {"error": "Unsupported chain. Use one of: plasma, ethereum"}


def test_kb_search_route_requires_query(client):
    resp = client.get("/tools/kb/search")
    assert resp.json() == {"error": "query must be a string"}


def test_initialize(client):
    resp = _rpc(client, "initialize", {"protocolVersion": "2025-03-26", "capabilities": {}}, rpc_id=10)
    result = resp.json()["result"]
    assert result["protocolVersion"] == "2025-03-26"
    assert result["serverInfo"] == {"name": MCP_SERVER_NAME, "version": MCP_SERVER_VERSION}
    assert set(result["capabilities"]) == {"tools", "resources", "prompts"}

    assert _rpc(client, "initialize", {}).json()["error"]["code"] == -32602


def test_tools_list_aliases(client):
    for method in ("list_tools", "tools/list"):
        data = _rpc(client, method, rpc_id=3).json()
        assert data["id"] == 3
        names = {tool["name"] for tool in data["result"]["tools"]}
        assert names == set(TOOL_REGISTRY)


def test_tools_call_wraps_errors_in_band(client):
    resp = _rpc(
        client,
        "tools/call",
        {"name": "eth_getBalance", "arguments": {"address": "bad"}},
        rpc_id=4,
    )
    assert resp.status_code == 200
    result = resp.json()["result"]
    assert result["isError"] is True
    assert result["content"] == [{"type": "text", "text": "Invalid Ethereum address format"}]
    assert result["structuredContent"] == {"error": "Invalid Ethereum address format"}


def test_call_tool_success_returns_structured_content(client, monkeypatch):
    async def fake_status(**_kwargs):
        return {"root": "/kb", "sources": []}

    monkeypatch.setattr(TOOL_REGISTRY["kb_status"], "callable", fake_status)
    resp = _rpc(client, "call_tool", {"tool": "kb_status", "params": {}})
    result = resp.json()["result"]
    assert "isError" not in result
    assert json.loads(result["content"][0]["text"]) == {"root": "/kb", "sources": []}
    assert result["structuredContent"] == {"root": "/kb", "sources": []}
    assert client.get("/metrics").json()["tool_success"] == {"kb_status": 1}


def test_call_tool_invalid_params(client):
    assert _rpc(client, "tools/call", {"arguments": {}}).json()["error"]["code"] == -32602
    for falsy in ([], "", 0):
        rejected = _rpc(client, "tools/call", {"name": "kb_status", "arguments": falsy}).json()
        assert rejected["error"]["code"] == -32602
    assert _rpc(client, "prompts/get", {"name": "check-wallet", "arguments": []}).json()["error"]["code"] == -32602
    unknown = _rpc(client, "tools/call", {"name": "nope", "arguments": {}}).json()["result"]
    assert unknown["isError"] is True
    assert unknown["structuredContent"] == {"error": "Unknown tool: nope"}


def test_resources_list_and_read(client):
    listed = _rpc(client, "resources/list").json()["result"]["resources"]
    assert {item["uri"] for item in listed} == {
        "evm://docs/gas-reference",
        "evm://docs/block-explorers",
        "evm://docs/supported-chains",
    }
    read = _rpc(client, "resources/read", {"uri": "evm://docs/supported-chains"}).json()["result"]
    content = read["contents"][0]
    assert content["mimeType"] == "application/json"
    assert json.loads(content["text"])["plasma"]["chainId"] == 9745

    missing = _rpc(client, "resources/read", {"uri": "evm://nope"}).json()
    assert missing["error"] == {"code": -32602, "message": "Unknown resource: evm://nope"}


def test_prompts_list_and_get(client):
    listed = _rpc(client, "prompts/list").json()["result"]["prompts"]
    assert any(prompt["name"] == "check-wallet" for prompt in listed)

    got = _rpc(
        client,
        "prompts/get",
        {"name": "check-wallet", "arguments": {"address": "0x" + "00" * 20}},
    ).json()["result"]
    text = got["messages"][0]["content"]["text"]
    assert "on plasma chain" in text

    missing_arg = _rpc(client, "prompts/get", {"name": "check-wallet", "arguments": {}}).json()
    assert missing_arg["error"] == {"code": -32602, "message": "Missing required argument: address"}
    unknown = _rpc(client, "prompts/get", {"name": "nope"}).json()
    assert unknown["error"]["message"] == "Unknown prompt: nope"


def test_protocol_errors(client):
    parse = client.post("/mcp", content=b"{not json", headers={"Content-Type": "application/json"})
    assert parse.status_code == 400
    assert parse.json()["error"]["code"] == -32700

    not_object = client.post("/mcp", json=[1, 2])
    assert not_object.status_code == 400
    assert not_object.json()["error"]["code"] == -32600

    assert _rpc(client, "bogus/method").json()["error"] == {"code": -32601, "message": "Method not found"}
    assert client.post("/mcp", json={"jsonrpc": "2.0", "id": 1, "params": {}}).json()["error"]["code"] == -32600


def test_initialized_notification_has_no_body(client):
    resp = client.post("/mcp", json={"jsonrpc": "2.0", "method": "notifications/initialized"})
    assert resp.status_code == 204
    assert resp.content == b""


def test_json_formatter_includes_known_extras():
    import logging

    record = logging.LogRecord("evm_mcp.server", logging.WARNING, __file__, 1, "tool=%s failed", ("kb_get",), None)
    record.tool = "kb_get"
    record.request_id = "req-1"
    payload = json.loads(server_mod.JsonFormatter().format(record))
    assert payload == {
        "level": "WARNING",
        "message": "tool=kb_get failed",
        "name": "evm_mcp.server",
        "tool": "kb_get",
        "request_id": "req-1",
    }
