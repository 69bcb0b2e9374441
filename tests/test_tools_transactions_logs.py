import pytest

from evm_mcp.tools.contracts import (
    ADMIN_SLOT,
    BEACON_SLOT,
    IMPLEMENTATION_SLOT,
    call_contract,
    inspect_proxy,
)
from evm_mcp.tools.logs import get_logs
from evm_mcp.tools.transactions import get_transaction
from evm_mcp.upstream.errors import RpcError, UpstreamUnreachableError

TX_HASH = "0x" + "aa" * 32
TOPIC = "0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"
ADDRESS = "0x000000000000000000000000000000000000dead"
OTHER = "0x00000000000000000000000000000000000000ff"


def _tx():
    return {
        "hash": TX_HASH,
        "from": ADDRESS,
        "to": OTHER,
        "value": "0x2386f26fc10000",
        "gas": "0x5208",
        "gasPrice": "0x3b9aca00",
        "maxFeePerGas": "0x77359400",
        "maxPriorityFeePerGas": "0x3b9aca00",
        "nonce": "0x5",
        "input": "0x",
        "blockNumber": "0x64",
        "blockHash": "0x" + "bb" * 32,
        "transactionIndex": "0x0",
        "type": "0x2",
    }


class TxRpc:
    url = "https://node.example/"

    def __init__(self, receipt=None, receipt_error=None):
        self.receipt = receipt
        self.receipt_error = receipt_error

    async def get_transaction(self, tx_hash):
        return _tx()

    async def get_transaction_receipt(self, tx_hash):
        if self.receipt_error is not None:
            raise self.receipt_error
        return self.receipt


@pytest.mark.asyncio
async def test_transaction_with_successful_receipt(explorer):
    receipt = {
        "status": "0x1",
        "gasUsed": "0x5208",
        "effectiveGasPrice": "0x3b9aca00",
        "cumulativeGasUsed": "0xa410",
        "logs": [{"address": OTHER, "topics": [TOPIC], "data": "0x", "logIndex": "0x3"}],
        "contractAddress": None,
        "type": "0x2",
    }
    result = await get_transaction(TX_HASH, client=TxRpc(receipt=receipt), explorer=explorer)
    assert result["status"] == "success"
    assert result["value"] == "10000000000000000"
    assert result["valueFormatted"] == "0.01 XPL"
    assert result["nonce"] == 5
    assert result["blockNumber"] == "100"
    assert result["type"] == "eip1559"
    assert result["receipt"]["gasUsed"] == "21000"
    assert result["receipt"]["logs"] == [{"address": OTHER, "topics": [TOPIC], "data": "0x", "logIndex": 3}]
    assert explorer.calls[0][2:5] == ("proxy", "eth_getTransactionByHash", {"txhash": TX_HASH})


@pytest.mark.asyncio
async def test_transaction_failed_and_pending(explorer):
    failed = await get_transaction(TX_HASH, client=TxRpc(receipt={"status": "0x0"}), explorer=explorer)
    assert failed["status"] == "failed"
    assert failed["receipt"]["status"] == "reverted"

    pending = await get_transaction(TX_HASH, client=TxRpc(receipt=None), explorer=explorer)
    assert pending["status"] == "pending"
    assert "receipt" not in pending

    unreachable = TxRpc(receipt_error=UpstreamUnreachableError("RPC node unreachable"))
    assert (await get_transaction(TX_HASH, client=unreachable, explorer=explorer))["status"] == "pending"


@pytest.mark.asyncio
async def test_transaction_not_found_and_invalid_hash(explorer):
    class MissingRpc(TxRpc):
        async def get_transaction(self, tx_hash):
            return None

    result = await get_transaction(TX_HASH, client=MissingRpc(), explorer=explorer)
    assert result == {"error": f"Failed to get transaction: Transaction {TX_HASH} not found"}
    assert await get_transaction("0x1234", client=MissingRpc(), explorer=explorer) == {
        "error": "Invalid transaction hash format"
    }


class LogsRpc:
    url = "https://node.example/"

    def __init__(self):
        self.filters = []

    async def get_logs(self, log_filter):
        self.filters.append(log_filter)
        return [
            {
                "address": ADDRESS,
                "topics": [TOPIC],
                "data": "0x01",
                "blockNumber": "0x10",
                "blockHash": "0x" + "cc" * 32,
                "transactionHash": TX_HASH,
                "transactionIndex": "0x1",
                "logIndex": "0x2",
            }
        ]


@pytest.mark.asyncio
async def test_get_logs_builds_rpc_and_explorer_filters(explorer):
    rpc = LogsRpc()
    result = await get_logs(
        address=ADDRESS,
        from_block=16,
        to_block="latest",
        topics=[TOPIC, None, [TOPIC, TOPIC]],
        client=rpc,
        explorer=explorer,
    )
    assert rpc.filters == [
        {"address": ADDRESS, "fromBlock": "0x10", "toBlock": "latest", "topics": [TOPIC, None, [TOPIC, TOPIC]]}
    ]
    _, _, module, action, params, _ = explorer.calls[0]
    assert (module, action) == ("logs", "getLogs")
    assert params == {
        "fromBlock": 16,
        "toBlock": "latest",
        "address": ADDRESS,
        "topic0": TOPIC,
        "topic2": f"{TOPIC},{TOPIC}",
    }
    assert result["logsCount"] == 1
    assert result["logs"][0]["blockNumber"] == "16"
    assert result["logs"][0]["logIndex"] == 2
    assert result["logs"][0]["removed"] is False
    assert result["filter"]["fromBlock"] == "16"


@pytest.mark.asyncio
async def test_get_logs_block_hash_replaces_range(explorer):
    rpc = LogsRpc()
    block_hash = "0x" + "cc" * 32
    await get_logs(block_hash=block_hash, client=rpc, explorer=explorer)
    assert rpc.filters == [{"blockHash": block_hash}]
    assert explorer.calls[0][4]["blockhash"] == block_hash


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "kwargs, message",
    [
        ({"address": "0x12"}, "Invalid Ethereum address format"),
        ({"from_block": -1}, "Invalid block parameter; use a block tag, integer or hex number."),
        ({"to_block": "yesterday"}, "Invalid block parameter; use a block tag, integer or hex number."),
        ({"topics": ["0x1234"]}, "Invalid topics; each entry must be a 32-byte hex string, null or a list of them."),
        ({"block_hash": "0xzz"}, "Invalid block hash format"),
    ],
)
async def test_get_logs_validation(kwargs, message, explorer):
    assert await get_logs(client=LogsRpc(), explorer=explorer, **kwargs) == {"error": message}


class CallRpc:
    url = "https://node.example/"

    def __init__(self):
        self.calls = []

    async def call(self, call_params, block="latest"):
        self.calls.append((call_params, block))
        return "0x" + "00" * 31 + "2a"


@pytest.mark.asyncio
async def test_call_contract_normalizes_quantities(explorer):
    rpc = CallRpc()
    result = await call_contract(
        OTHER,
        "0x70a08231",
        from_address=ADDRESS,
        gas=100000,
        value="0x0",
        block=100,
        client=rpc,
        explorer=explorer,
    )
    assert rpc.calls == [
        ({"to": OTHER, "data": "0x70a08231", "from": ADDRESS, "gas": "0x186a0", "value": "0x0"}, "0x64")
    ]
    assert explorer.calls[0][2:4] == ("proxy", "eth_call")
    assert explorer.calls[0][4]["tag"] == "0x64"
    assert result["result"].endswith("2a")
    assert result["callParams"] == {
        "from": ADDRESS,
        "gas": "100000",
        "gasPrice": None,
        "value": "0x0",
        "blockNumber": "100",
    }


@pytest.mark.asyncio
async def test_call_contract_validation_and_errors(explorer):
    assert await call_contract(OTHER, "70a0", client=CallRpc(), explorer=explorer) == {
        "error": "Data must be a hex string starting with 0x"
    }
    assert await call_contract(OTHER, "0x", gas=0, client=CallRpc(), explorer=explorer) == {
        "error": "Invalid gas; use a non-negative integer or hex number."
    }

    class RevertingRpc(CallRpc):
        async def call(self, call_params, block="latest"):
            raise RpcError("execution reverted", code=3)

    assert await call_contract(OTHER, "0x", client=RevertingRpc(), explorer=explorer) == {
        "error": "Failed to call contract: execution reverted"
    }


class ProxyRpc:
    url = "https://node.example/"

    def __init__(self, slots):
        self.slots = slots

    async def get_storage_at(self, address, slot, block="latest"):
        return self.slots.get(slot, "0x" + "00" * 32)


@pytest.mark.asyncio
async def test_inspect_proxy_reads_eip1967_slots():
    impl_word = "0x" + "00" * 12 + "ab" * 20
    admin_word = "0x" + "00" * 12 + "cd" * 20
    result = await inspect_proxy(ADDRESS, client=ProxyRpc({IMPLEMENTATION_SLOT: impl_word, ADMIN_SLOT: admin_word}))
    assert result == {
        "isProxy": True,
        "implementation": "0x" + "ab" * 20,
        "admin": "0x" + "cd" * 20,
        "beacon": None,
    }


@pytest.mark.asyncio
async def test_inspect_proxy_beacon_only_and_plain_contract():
    beacon_word = "0x" + "00" * 12 + "ef" * 20
    beacon = await inspect_proxy(ADDRESS, client=ProxyRpc({BEACON_SLOT: beacon_word}))
    assert beacon["isProxy"] is True
    assert beacon["implementation"] is None

    plain = await inspect_proxy(ADDRESS, client=ProxyRpc({}))
    assert plain == {"isProxy": False, "implementation": None, "admin": None, "beacon": None}
    assert await inspect_proxy("bad", client=ProxyRpc({})) == {"error": "Invalid address"}
