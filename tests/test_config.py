import pytest

from evm_mcp.chains import (
    CHAINS,
    RpcNotConfiguredError,
    UnsupportedChainError,
    build_rpc_url,
    get_chain,
    public_rpc_endpoint,
    routescan_base,
)
from evm_mcp.config import (
    EvmConfig,
    _load_timeout,
    _parse_rpc_overrides,
    load_deployer_key,
)


def test_load_timeout_invalid_env(monkeypatch):
    monkeypatch.setenv("EVM_MCP_HTTP_TIMEOUT", "not-a-number")
    assert _load_timeout() == 15.0  # falls back to default on parse error


def test_load_timeout_valid_env(monkeypatch):
    monkeypatch.setenv("EVM_MCP_HTTP_TIMEOUT", "5.5")
    assert _load_timeout() == 5.5


def test_parse_rpc_overrides_skips_malformed_pairs():
    raw = "plasma=https://rpc.plasma.example, broken ,ethereum = https://eth.example,=x"
    assert _parse_rpc_overrides(raw) == {
        "plasma": "https://rpc.plasma.example",
        "ethereum": "https://eth.example",
    }
    assert _parse_rpc_overrides(None) == {}


def test_deployer_key_is_read_lazily(monkeypatch):
    monkeypatch.delenv("DEPLOYER_PRIVATE_KEY", raising=False)
    assert load_deployer_key() is None
    monkeypatch.setenv("DEPLOYER_PRIVATE_KEY", "  0xabc  ")
    assert load_deployer_key() == "0xabc"
    assert not hasattr(EvmConfig(), "deployer_private_key")


def test_get_chain():
    assert get_chain("plasma").chain_id == 9745
    assert get_chain("ethereum").symbol == "ETH"
    for bad in ("Plasma", None, "polygon"):
        with pytest.raises(UnsupportedChainError, match="Use one of: plasma, ethereum"):
            get_chain(bad)


def test_build_rpc_url_from_quicknode_parts():
    config = EvmConfig(qn_endpoint_name="my-node", qn_token_id="tok123", rpc_overrides={})
    assert build_rpc_url(CHAINS["plasma"], config) == "https://my-node.plasma-mainnet.quiknode.pro/tok123/"
    assert build_rpc_url(CHAINS["ethereum"], config) == "https://my-node.quiknode.pro/tok123/"
    assert public_rpc_endpoint(build_rpc_url(CHAINS["plasma"], config), config) == (
        "https://my-node.plasma-mainnet.quiknode.pro/***/"
    )


def test_build_rpc_url_override_and_missing_config():
    config = EvmConfig(qn_endpoint_name=None, qn_token_id=None, rpc_overrides={"plasma": "http://localhost:8545"})
    assert build_rpc_url(CHAINS["plasma"], config) == "http://localhost:8545"
    with pytest.raises(RpcNotConfiguredError, match="RPC endpoint not configured"):
        build_rpc_url(CHAINS["ethereum"], config)


def test_routescan_base_uses_chain_id():
    config = EvmConfig(routescan_url="https://api.routescan.io/v2/network/")
    assert routescan_base(CHAINS["plasma"], config) == "https://api.routescan.io/v2/network/mainnet/evm/9745"
