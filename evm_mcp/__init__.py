"""
EVM MCP server package.

This package exposes LLM-friendly tools backed by an EVM JSON-RPC node, the
Routescan explorer API, Sourcify, and a local file knowledge base. See
DESIGN.md for full details.
"""

__version__ = "0.1.0"

__all__ = ["config", "chains", "__version__"]
