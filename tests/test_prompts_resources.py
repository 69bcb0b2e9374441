import json

import pytest

from evm_mcp.prompts import (
    NETWORK_POLICY,
    PROMPTS,
    PromptArgumentError,
    PromptNotFoundError,
    get_prompt,
    list_prompts,
)
from evm_mcp.resources import ResourceNotFoundError, list_resources, read_resource

ADDRESS = "0x000000000000000000000000000000000000dead"


def _text(result):
    return result["messages"][0]["content"]["text"]


def test_prompt_listing_shape():
    listed = list_prompts()
    assert len(listed) == len(PROMPTS) == 14
    wallet = next(item for item in listed if item["name"] == "check-wallet")
    assert wallet["arguments"][0] == {"name": "address", "description": "0x-prefixed address", "required": True}


def test_chain_defaults_to_plasma_with_policy():
    text = _text(get_prompt("check-wallet", {"address": ADDRESS}))
    assert f"{ADDRESS} on plasma chain" in text
    assert NETWORK_POLICY in text
    assert "on ethereum chain" in _text(get_prompt("check-wallet", {"address": ADDRESS, "chain": "ethereum"}))


def test_prompt_argument_validation():
    with pytest.raises(PromptArgumentError, match="Missing required argument: address"):
        get_prompt("check-wallet", {})
    with pytest.raises(PromptArgumentError, match="Invalid Ethereum address format"):
        get_prompt("check-wallet", {"address": "0x12"})
    with pytest.raises(PromptArgumentError, match="Invalid transaction hash format"):
        get_prompt("transaction-lookup", {"hash": "0x12"})
    with pytest.raises(PromptArgumentError, match="Unsupported chain"):
        get_prompt("gas-analysis", {"chain": "bsc"})
    with pytest.raises(PromptNotFoundError):
        get_prompt("unknown")


def test_token_transfers_selects_tool_by_type():
    default = _text(get_prompt("token-transfers", {"address": ADDRESS}))
    assert "routescan_account_tokentx" in default
    nft = _text(get_prompt("token-transfers", {"address": ADDRESS, "type": "ERC721", "contractAddress": ADDRESS}))
    assert "routescan_account_tokennfttx" in nft
    assert f"contract_address={ADDRESS}" in nft
    with pytest.raises(PromptArgumentError, match="type must be one of"):
        get_prompt("token-transfers", {"address": ADDRESS, "type": "erc4626"})


def test_kb_research_has_no_chain_argument():
    text = _text(get_prompt("kb-research", {"question": "How are blocks finalized?"}))
    assert "How are blocks finalized?" in text
    assert "kb_search" in text


def test_resources():
    uris = [item["uri"] for item in list_resources()]
    assert "evm://docs/gas-reference" in uris
    gas = json.loads(read_resource("evm://docs/gas-reference")["contents"][0]["text"])
    assert gas["ethereum"]["average"] == 40
    explorers = json.loads(read_resource("evm://docs/block-explorers")["contents"][0]["text"])
    assert explorers["plasma"].startswith("https://")
    with pytest.raises(ResourceNotFoundError):
        read_resource("evm://docs/missing")
