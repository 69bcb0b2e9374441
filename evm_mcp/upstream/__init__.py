"""HTTP clients for the JSON-RPC node, Routescan and Sourcify."""

from .errors import (
    RpcError,
    UpstreamError,
    UpstreamHTTPError,
    UpstreamResponseError,
    UpstreamUnreachableError,
)
from .routescan import RoutescanClient
from .rpc import JsonRpcClient, RpcClientCache
from .sourcify import SourcifyClient

default_rpc_clients = RpcClientCache()
default_routescan = RoutescanClient()
default_sourcify = SourcifyClient()


async def aclose_all() -> None:
    """Close every shared client; called on server shutdown."""
    await default_rpc_clients.aclose()
    await default_routescan.aclose()
    await default_sourcify.aclose()


__all__ = [
    "JsonRpcClient",
    "RpcClientCache",
    "RoutescanClient",
    "SourcifyClient",
    "UpstreamError",
    "UpstreamUnreachableError",
    "UpstreamHTTPError",
    "UpstreamResponseError",
    "RpcError",
    "default_rpc_clients",
    "default_routescan",
    "default_sourcify",
    "aclose_all",
]
