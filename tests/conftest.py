import os
import sys

import pytest

# Ensure repository root is on sys.path before importing project modules.
repo_root = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if repo_root not in sys.path:
    sys.path.insert(0, repo_root)

from evm_mcp.config import EvmConfig  # noqa: E402
from evm_mcp.kb import KnowledgeBase  # noqa: E402
from evm_mcp.metrics import default_metrics  # noqa: E402


@pytest.fixture(autouse=True)
def reset_metrics():
    default_metrics.reset()
    yield
    default_metrics.reset()


@pytest.fixture
def kb(tmp_path):
    return KnowledgeBase(tmp_path / "kb", config=EvmConfig(kb_root=tmp_path / "kb"))


class RecordingExplorer:
    """Explorer stand-in that records queries and answers with a canned payload."""

    endpoint = "https://api.routescan.io/v2/network/mainnet/evm/9745/etherscan"

    def __init__(self, result=None, error=None):
        self.result = "ok" if result is None else result
        self.error = error
        self.calls = []

    async def etherscan(self, chain, module, action, params=None, *, api_key=None):
        self.calls.append(("etherscan", chain.key, module, action, dict(params or {}), api_key))
        if self.error is not None:
            raise self.error
        return {"endpoint": self.endpoint, "result": self.result}

    async def get(self, chain, path, query=None, *, api_key=None):
        self.calls.append(("get", chain.key, path, dict(query or {}), api_key))
        if self.error is not None:
            raise self.error
        return {"endpoint": self.endpoint, "result": self.result}


@pytest.fixture
def explorer():
    return RecordingExplorer()
