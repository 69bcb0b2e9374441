import json

import httpx
import pytest

from evm_mcp.config import EvmConfig
from evm_mcp.metrics import default_metrics
from evm_mcp.upstream import RpcClientCache
from evm_mcp.upstream.errors import (
    RpcError,
    UpstreamHTTPError,
    UpstreamResponseError,
    UpstreamUnreachableError,
)
from evm_mcp.upstream.rpc import JsonRpcClient
from evm_mcp.upstream.sourcify import SourcifyClient
from evm_mcp.chains import CHAINS


def _rpc_client(handler):
    return JsonRpcClient("https://node.example/", async_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))


@pytest.mark.asyncio
async def test_rpc_request_envelope_and_result():
    bodies = []

    def handler(request):
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "result": "0x10"})

    client = _rpc_client(handler)
    assert await client.get_balance("0xabc") == "0x10"
    assert await client.block_number() == "0x10"
    assert bodies[0] == {"jsonrpc": "2.0", "id": 1, "method": "eth_getBalance", "params": ["0xabc", "latest"]}
    assert bodies[1]["id"] == 2
    assert bodies[1]["method"] == "eth_blockNumber"
    assert default_metrics.snapshot()["upstream_ok"] == {"rpc": 2}


@pytest.mark.asyncio
async def test_rpc_error_object_is_raised():
    client = _rpc_client(
        lambda request: httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "error": {"code": -32000, "message": "nonce too low"}})
    )
    with pytest.raises(RpcError, match="nonce too low") as excinfo:
        await client.send_raw_transaction("0x00")
    assert excinfo.value.code == -32000
    assert default_metrics.snapshot()["upstream_failed"] == {"rpc": 1}


@pytest.mark.asyncio
async def test_rpc_http_and_shape_errors():
    http_error = _rpc_client(lambda request: httpx.Response(502, text="bad gateway"))
    with pytest.raises(UpstreamHTTPError, match="RPC HTTP error 502"):
        await http_error.gas_price()

    not_object = _rpc_client(lambda request: httpx.Response(200, json=["unexpected"]))
    with pytest.raises(UpstreamResponseError):
        await not_object.gas_price()


@pytest.mark.asyncio
async def test_rpc_unreachable():
    def handler(request):
        raise httpx.ConnectError("boom", request=request)

    with pytest.raises(UpstreamUnreachableError, match="RPC node unreachable"):
        await _rpc_client(handler).get_code("0xabc")


@pytest.mark.asyncio
async def test_rpc_client_cache_reuses_clients():
    cache = RpcClientCache(EvmConfig(rpc_overrides={"plasma": "http://localhost:8545"}))
    first = cache.get(CHAINS["plasma"])
    assert cache.get(CHAINS["plasma"]) is first
    assert first.url == "http://localhost:8545"
    assert "plasma" in cache
    await cache.aclose()
    assert len(cache) == 0


@pytest.mark.asyncio
async def test_sourcify_verify_posts_multipart_without_rpc_url():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["body"] = request.read()
        return httpx.Response(200, json={"result": [{"status": "perfect"}]})

    client = SourcifyClient(
        EvmConfig(sourcify_url="https://sourcify.example/server/"),
        async_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )
    result = await client.verify(
        address="0x" + "00" * 20,
        chain_id=9745,
        files=[("files", ("metadata.json", b"{}", "application/json"))],
    )
    assert result == {"result": [{"status": "perfect"}]}
    assert seen["url"] == "https://sourcify.example/server/verify"
    assert b'name="chain"' in seen["body"]
    assert b"9745" in seen["body"]
    assert b"quiknode" not in seen["body"]


@pytest.mark.asyncio
async def test_sourcify_empty_body_and_http_error():
    ok_empty = SourcifyClient(
        EvmConfig(sourcify_url="https://sourcify.example/server"),
        async_client=httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(200))),
    )
    assert await ok_empty.check_all_by_addresses(address="0x" + "00" * 20, chain_id=1) == {}

    failing = SourcifyClient(
        EvmConfig(sourcify_url="https://sourcify.example/server"),
        async_client=httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(500, text="oops"))),
    )
    with pytest.raises(UpstreamHTTPError, match="Sourcify HTTP error 500"):
        await failing.check_all_by_addresses(address="0x" + "00" * 20, chain_id=1)
