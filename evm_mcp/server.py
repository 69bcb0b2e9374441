"""FastAPI application wiring EVM MCP tools to HTTP routes."""

from __future__ import annotations

import json
import logging
import time
import uuid
from contextlib import asynccontextmanager
from typing import Any, Awaitable, Callable, Dict, List, Optional

from fastapi import FastAPI, Query, Request
from fastapi.responses import JSONResponse, Response

from evm_mcp import __version__, mcp, prompts, resources
from evm_mcp.config import DEFAULT_CHAIN, default_config
from evm_mcp.metrics import default_metrics
from evm_mcp.rate_limiter import PerKeyRateLimiter
from evm_mcp.tools import (
    get_balance,
    get_block_number,
    get_code,
    get_gas_price,
    get_transaction,
    inspect_proxy,
    kb_search,
    kb_status,
)
from evm_mcp.upstream import aclose_all

logger = logging.getLogger(__name__)


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "level": record.levelname,
            "message": record.getMessage(),
            "name": record.name,
        }
        for key in ("tool", "request_id", "error", "chain", "upstream"):
            if hasattr(record, key):
                payload[key] = getattr(record, key)
        return json.dumps(payload)


_log_level = getattr(logging, default_config.log_level.upper(), logging.INFO)
if default_config.log_format.lower() == "json":
    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    logging.basicConfig(level=_log_level, handlers=[handler])
else:
    logging.basicConfig(level=_log_level)

rate_limiter = PerKeyRateLimiter(
    rate_per_sec=default_config.rate_limit_qps,
    per_tool=default_config.per_tool_rate_limits,
)
HEALTH_STATUS = {"status": "ok"}
APP_VERSION = __version__
MCP_SERVER_NAME = "evm-mcp-server"
MCP_SERVER_VERSION = APP_VERSION


@asynccontextmanager
async def lifespan(_app: FastAPI):
    yield
    await aclose_all()


app = FastAPI(
    title="EVM MCP Server",
    description="EVM chain, Routescan explorer and knowledge base tools for LLM agents.",
    version=APP_VERSION,
    lifespan=lifespan,
)


@app.middleware("http")
async def add_request_context(request: Request, call_next):
    request_id = str(uuid.uuid4())
    request.state.request_id = request_id
    start = time.time()
    default_metrics.incr_request()
    response = await call_next(request)
    duration_ms = (time.time() - start) * 1000
    default_metrics.record_duration(request_id, duration_ms)
    response.headers["X-Request-ID"] = request_id
    return response


def _log_tool_result(tool_name: str, result: Dict[str, Any], request_id: Optional[str] = None) -> None:
    if isinstance(result, dict) and result.get("error"):
        logger.warning(
            "tool=%s outcome=error error=%s request_id=%s",
            tool_name,
            result.get("error"),
            request_id,
            extra={"tool": tool_name, "request_id": request_id, "error": result.get("error")},
        )
        default_metrics.record_tool(tool_name, success=False)
    else:
        logger.info(
            "tool=%s outcome=success request_id=%s",
            tool_name,
            request_id,
            extra={"tool": tool_name, "request_id": request_id},
        )
        default_metrics.record_tool(tool_name, success=True)


async def _enforce_rate_limit(tool_name: str) -> Optional[JSONResponse]:
    allowed = await rate_limiter.allow(tool_name)
    if not allowed:
        logger.warning("tool=%s outcome=rate_limited", tool_name, extra={"tool": tool_name})
        default_metrics.incr_rate_limited()
        # JSON-RPC style error envelope for MCP clients.
        return JSONResponse(
            status_code=429,
            content={"jsonrpc": "2.0", "error": {"code": 429, "message": "Rate limit exceeded"}},
        )
    return None


async def _run_route(request: Request, tool_name: str, call: Callable[[], Awaitable[Any]]) -> JSONResponse:
    limited = await _enforce_rate_limit(tool_name)
    if limited:
        return limited
    result = await call()
    request_id = getattr(request.state, "request_id", None)
    _log_tool_result(tool_name, result if isinstance(result, dict) else {}, request_id)
    return JSONResponse(content=result)


@app.get("/health")
async def health() -> JSONResponse:
    """Lightweight health endpoint for monitoring."""
    return JSONResponse(content=HEALTH_STATUS)


@app.get("/metrics")
async def metrics() -> JSONResponse:
    """Return in-process metrics snapshot."""
    return JSONResponse(content=default_metrics.snapshot())


@app.get("/tools/balance/{address}")
async def balance_route(address: str, request: Request, chain: str = DEFAULT_CHAIN) -> JSONResponse:
    """Proxy for eth_getBalance."""
    return await _run_route(request, "eth_getBalance", lambda: get_balance(address, chain=chain))


@app.get("/tools/code/{address}")
async def code_route(address: str, request: Request, chain: str = DEFAULT_CHAIN) -> JSONResponse:
    """Proxy for eth_getCode."""
    return await _run_route(request, "eth_getCode", lambda: get_code(address, chain=chain))


@app.get("/tools/gas_price")
async def gas_price_route(request: Request, chain: str = DEFAULT_CHAIN) -> JSONResponse:
    """Proxy for eth_gasPrice."""
    return await _run_route(request, "eth_gasPrice", lambda: get_gas_price(chain=chain))


@app.get("/tools/block_number")
async def block_number_route(request: Request, chain: str = DEFAULT_CHAIN) -> JSONResponse:
    """Proxy for eth_blockNumber."""
    return await _run_route(request, "eth_blockNumber", lambda: get_block_number(chain=chain))


@app.get("/tools/transaction/{tx_hash}")
async def transaction_route(tx_hash: str, request: Request, chain: str = DEFAULT_CHAIN) -> JSONResponse:
    """Proxy for eth_getTransactionByHash."""
    return await _run_route(request, "eth_getTransactionByHash", lambda: get_transaction(tx_hash, chain=chain))


@app.get("/tools/proxy/{address}")
async def proxy_route(address: str, request: Request, chain: str = DEFAULT_CHAIN) -> JSONResponse:
    """Proxy for proxy_inspect."""
    return await _run_route(request, "proxy_inspect", lambda: inspect_proxy(address, chain=chain))


@app.get("/tools/kb/status")
async def kb_status_route(request: Request) -> JSONResponse:
    """Proxy for kb_status."""
    return await _run_route(request, "kb_status", kb_status)


@app.get("/tools/kb/search")
async def kb_search_route(
    request: Request,
    query: str | None = None,
    topK: int | None = Query(None, ge=1),
    sourceIds: List[str] | None = Query(None),
    pathPrefix: str | None = Query(None),
) -> JSONResponse:
    """Proxy for kb_search."""
    return await _run_route(
        request,
        "kb_search",
        lambda: kb_search(query, top_k=topK, source_ids=sourceIds, path_prefix=pathPrefix),
    )


@app.post("/mcp")
async def mcp_gateway(request: Request) -> JSONResponse:
    """
    JSON-RPC gateway for MCP integrations.

    Supported methods:
      - initialize
      - list_tools / tools/list
      - call_tool / tools/call
      - resources/list, resources/read
      - prompts/list, prompts/get
      - notifications/initialized
    """
    request_id = getattr(request.state, "request_id", None)
    start_time = time.time()

    def _respond(payload: Dict[str, Any], status_code: int = 200, *, outcome: str, method_label: Optional[str] = None, tool_label: Optional[str] = None, error_code: Optional[int] = None) -> JSONResponse:
        duration_ms = (time.time() - start_time) * 1000
        logger.debug(
            "mcp outcome=%s method=%s tool=%s id=%s status=%s duration_ms=%.2f error_code=%s",
            outcome,
            method_label,
            tool_label,
            payload.get("id"),
            status_code,
            duration_ms,
            error_code,
            extra={"request_id": request_id, "tool": tool_label, "error": error_code},
        )
        return JSONResponse(status_code=status_code, content=payload)

    def _error(rpc_id: Any, code: int, message: str, method_label: Optional[str]) -> JSONResponse:
        payload = _jsonrpc_error_payload(rpc_id, code, message)
        return _respond(payload, outcome="error", method_label=method_label, error_code=code)

    def _success(rpc_id: Any, result: Any, method_label: str, tool_label: Optional[str] = None) -> JSONResponse:
        payload = _jsonrpc_success_payload(rpc_id, result)
        return _respond(payload, outcome="success", method_label=method_label, tool_label=tool_label)

    try:
        body = await request.json()
    except Exception:
        payload = _jsonrpc_error_payload(None, -32700, "Parse error")
        return _respond(payload, status_code=400, outcome="error", method_label=None, error_code=-32700)

    if not isinstance(body, dict):
        payload = _jsonrpc_error_payload(None, -32600, "Invalid request")
        return _respond(payload, status_code=400, outcome="error", method_label=None, error_code=-32600)

    method = body.get("method")
    rpc_id = body.get("id")
    raw_params = body.get("params")
    if raw_params is None:
        params = {}
    elif isinstance(raw_params, dict):
        params = raw_params
    else:
        return _error(rpc_id, -32602, "Invalid params", method)

    if not method:
        return _error(rpc_id, -32600, "Invalid request", None)

    if method == "initialize":
        protocol_version = params.get("protocolVersion")
        if not isinstance(protocol_version, str) or not protocol_version:
            return _error(rpc_id, -32602, "Invalid params", method)
        logger.debug(
            "mcp initialize requested protocol=%s request_id=%s",
            protocol_version,
            request_id,
            extra={"request_id": request_id},
        )
        result = {
            "protocolVersion": protocol_version,
            "serverInfo": {"name": MCP_SERVER_NAME, "version": MCP_SERVER_VERSION},
            "capabilities": {
                "tools": {"listChanged": False},
                "resources": {"listChanged": False},
                "prompts": {"listChanged": False},
            },
        }
        return _success(rpc_id, result, method)

    if method in ("list_tools", "tools/list"):
        limited = await _enforce_rate_limit("list_tools")
        if limited:
            return limited
        return _success(rpc_id, {"tools": mcp.list_tools()}, method)

    if method in ("call_tool", "tools/call"):
        tool_name = params.get("tool") or params.get("name")
        if "params" in params:
            tool_params = params["params"]
        else:
            tool_params = params["arguments"] if "arguments" in params else {}
        if not isinstance(tool_name, str) or not tool_name.strip():
            return _error(rpc_id, -32602, "Invalid params", method)
        if not isinstance(tool_params, dict):
            return _error(rpc_id, -32602, "Invalid params", method)
        limited = await _enforce_rate_limit(tool_name)
        if limited:
            return limited
        result = await mcp.call_tool(tool_name, tool_params)
        _log_tool_result(tool_name, result if isinstance(result, dict) else {}, request_id)
        return _success(rpc_id, _wrap_tool_result(result), method, tool_name)

    if method == "resources/list":
        return _success(rpc_id, {"resources": resources.list_resources()}, method)

    if method == "resources/read":
        uri = params.get("uri")
        if not isinstance(uri, str) or not uri:
            return _error(rpc_id, -32602, "Invalid params", method)
        try:
            return _success(rpc_id, resources.read_resource(uri), method)
        except resources.ResourceNotFoundError:
            return _error(rpc_id, -32602, f"Unknown resource: {uri}", method)

    if method == "prompts/list":
        return _success(rpc_id, {"prompts": prompts.list_prompts()}, method)

    if method == "prompts/get":
        name = params.get("name")
        arguments = params["arguments"] if "arguments" in params else {}
        if not isinstance(name, str) or not isinstance(arguments, dict):
            return _error(rpc_id, -32602, "Invalid params", method)
        try:
            return _success(rpc_id, prompts.get_prompt(name, arguments), method)
        except prompts.PromptNotFoundError:
            return _error(rpc_id, -32602, f"Unknown prompt: {name}", method)
        except prompts.PromptArgumentError as exc:
            return _error(rpc_id, -32602, str(exc), method)

    if method in ("notifications/initialized", "initialized"):
        # Notifications do not get a JSON-RPC response body.
        logger.debug(
            "mcp initialized notification received request_id=%s",
            request_id,
            extra={"request_id": request_id},
        )
        return Response(status_code=204)

    return _error(rpc_id, -32601, "Method not found", method)


# Run with: uvicorn evm_mcp.server:app --reload


def _jsonrpc_success_payload(rpc_id: Any, result: Any) -> Dict[str, Any]:
    return {"jsonrpc": "2.0", "id": rpc_id, "result": result}


def _jsonrpc_error_payload(rpc_id: Any, code: int, message: str) -> Dict[str, Any]:
    return {"jsonrpc": "2.0", "id": rpc_id, "error": {"code": code, "message": message}}


def _wrap_tool_result(result: Any) -> Dict[str, Any]:
    """
    Shape tool outputs into MCP-friendly content array.
    """
    # Tool-level errors are returned in-band with isError flag.
    if isinstance(result, dict) and "error" in result:
        message = result.get("error") or "Error"
        wrapped = {"content": [{"type": "text", "text": str(message)}], "isError": True}
        wrapped["structuredContent"] = result
        return wrapped

    if isinstance(result, str):
        return {"content": [{"type": "text", "text": result}]}

    text_repr = json.dumps(result, ensure_ascii=True, default=str)
    return {
        "content": [{"type": "text", "text": text_repr}],
        "structuredContent": result,
    }
