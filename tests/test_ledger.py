"""Tests for the web3-backed Ledger over a patched RPC surface."""

from types import SimpleNamespace

import pytest
from web3 import Web3
from web3.datastructures import AttributeDict
from web3.exceptions import TransactionNotFound

from polybracket.settlement.ledger import Ledger
from polybracket.settlement.safe import GWEI, FeeParams

TEST_KEY = "0x4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"
SAFE_WALLET = "0x1111111111111111111111111111111111111111"
CTF_TARGET = "0x4D97DCd97eC945f40cF65F87097ACe5EA0476045"
TX_HASH = "0x" + "12" * 32


@pytest.fixture
def ledger():
    return Ledger(TEST_KEY, rpc_url="http://127.0.0.1:1")


def _calldata(tx) -> bytes:
    data = tx["data"]
    return Web3.to_bytes(hexstr=data) if isinstance(data, str) else bytes(data)


def _word(data: bytes, index: int) -> bytes:
    return data[4 + index * 32:4 + (index + 1) * 32]


# ------------------------------------------------------------------
# get_receipt
# ------------------------------------------------------------------


class TestGetReceipt:

    @pytest.mark.asyncio
    async def test_unmined_transaction_is_none(self, ledger, monkeypatch):
        def not_found(tx_hash):
            raise TransactionNotFound(f"Transaction with hash {tx_hash} not found")

        monkeypatch.setattr(ledger._w3.eth, "get_transaction_receipt", not_found)
        assert await ledger.get_receipt(TX_HASH) is None

    @pytest.mark.asyncio
    async def test_transport_error_propagates(self, ledger, monkeypatch):
        def unreachable(tx_hash):
            raise ConnectionError("rpc unreachable")

        monkeypatch.setattr(ledger._w3.eth, "get_transaction_receipt", unreachable)
        with pytest.raises(ConnectionError):
            await ledger.get_receipt(TX_HASH)

    @pytest.mark.asyncio
    async def test_mined_receipt_is_plain_dict(self, ledger, monkeypatch):
        seen = []

        def receipt(tx_hash):
            seen.append(tx_hash)
            return AttributeDict({"status": 1, "blockNumber": 42, "transactionHash": tx_hash})

        monkeypatch.setattr(ledger._w3.eth, "get_transaction_receipt", receipt)
        result = await ledger.get_receipt(TX_HASH)

        assert type(result) is dict
        assert result["status"] == 1
        assert result["blockNumber"] == 42
        assert seen == [TX_HASH]


# ------------------------------------------------------------------
# Fees and submission
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_fee_params_read_node_suggestions(ledger, monkeypatch):
    eth = SimpleNamespace(max_priority_fee=30 * GWEI, gas_price=100 * GWEI)
    monkeypatch.setattr(ledger, "_w3", SimpleNamespace(eth=eth))

    fees = await ledger.fee_params()

    assert fees == FeeParams(max_fee_per_gas=174 * GWEI, max_priority_fee_per_gas=45 * GWEI)


@pytest.mark.asyncio
async def test_exec_transaction_sends_signed_tx_with_given_fees(ledger, monkeypatch):
    built, nonce_queries, raw_sent = [], [], []
    sign = ledger._account.sign_transaction

    def spy_sign(tx):
        built.append(dict(tx))
        return sign(tx)

    def transaction_count(account, block_identifier):
        nonce_queries.append((account, block_identifier))
        return 7

    def send_raw(raw):
        raw_sent.append(bytes(raw))
        return bytes.fromhex("12" * 32)

    monkeypatch.setattr(ledger._account, "sign_transaction", spy_sign)
    monkeypatch.setattr(ledger._w3.eth, "get_transaction_count", transaction_count)
    monkeypatch.setattr(ledger._w3.eth, "send_raw_transaction", send_raw)

    fees = FeeParams(max_fee_per_gas=174 * GWEI, max_priority_fee_per_gas=45 * GWEI)
    inner = ledger.encode_redeem(CTF_TARGET, "0x" + "ab" * 32)
    tx_hash = await ledger.exec_transaction(
        SAFE_WALLET, CTF_TARGET, inner, bytes(65), fees, gas_limit=321_000)

    assert tx_hash == TX_HASH
    assert nonce_queries == [(ledger.owner_address, "pending")]
    assert len(raw_sent) == 1 and raw_sent[0]

    tx = built[0]
    assert tx["gas"] == 321_000
    assert tx["maxFeePerGas"] == 174 * GWEI
    assert tx["maxPriorityFeePerGas"] == 45 * GWEI
    assert "gasPrice" not in tx
    assert tx["nonce"] == 7
    assert tx["chainId"] == ledger.chain_id
    assert tx["from"] == ledger.owner_address
    assert tx["to"] == Web3.to_checksum_address(SAFE_WALLET)
    # execTransaction(address to, ...): first argument is the inner target
    assert _word(_calldata(tx), 0)[12:].hex() == CTF_TARGET[2:].lower()


# ------------------------------------------------------------------
# Contract reads
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_safe_transaction_hash_passes_nonce_and_returns_bytes(ledger, monkeypatch):
    calls = []
    safe_hash = bytes.fromhex("ee" * 32)

    def eth_call(tx, *args, **kwargs):
        calls.append(tx)
        return safe_hash

    monkeypatch.setattr(ledger._w3.eth, "call", eth_call)

    result = await ledger.safe_transaction_hash(SAFE_WALLET, CTF_TARGET, b"\x01\x02", nonce=5)

    assert result == safe_hash
    assert calls[0]["to"] == Web3.to_checksum_address(SAFE_WALLET)
    data = _calldata(calls[0])
    assert _word(data, 0)[12:].hex() == CTF_TARGET[2:].lower()
    # to, value, data, operation, safeTxGas, baseGas, gasPrice, gasToken, refundReceiver, nonce
    assert int.from_bytes(_word(data, 9), "big") == 5


@pytest.mark.asyncio
async def test_payout_numerator_decodes_uint(ledger, monkeypatch):
    monkeypatch.setattr(ledger._w3.eth, "call", lambda tx, *a, **kw: (1).to_bytes(32, "big"))
    assert await ledger.payout_numerator("0x" + "ab" * 32, 0) == 1


@pytest.mark.asyncio
async def test_contract_read_errors_propagate(ledger, monkeypatch):
    def failing_call(tx, *args, **kwargs):
        raise TimeoutError("rpc timed out")

    monkeypatch.setattr(ledger._w3.eth, "call", failing_call)
    with pytest.raises(TimeoutError):
        await ledger.safe_nonce(SAFE_WALLET)
