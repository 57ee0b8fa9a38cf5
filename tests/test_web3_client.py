from __future__ import annotations

import pytest
import requests
from web3.exceptions import TimeExhausted, Web3RPCError

from chain.session import open_session
from chain.web3_client import TRANSFER_GAS, Web3ChainClient
from config.networks import NetworkConfig
from execution.batch_runner import send_batch
from execution.errors import BroadcastFailed, ChainRejection, ConfirmationTimeout, NetworkUnavailable
from execution.models import Failed, TransferRequest
from tests.conftest import ALICE, BOB, TEST_ADDRESS


class StubEth:
    def __init__(self):
        self.balance_error = None
        self.chain_id = 1
        self.gas_price = 2_000_000_000
        self.nonce = 7
        self.gas_estimate = 21_000
        self.estimate_error = None
        self.count_error = None
        self.send_error = None
        self.receipt_error = None
        self.sent = []

    def get_balance(self, address):
        if self.balance_error:
            raise self.balance_error
        return 123

    def get_transaction_count(self, address, block_identifier):
        if self.count_error:
            raise self.count_error
        return self.nonce

    def estimate_gas(self, tx):
        if self.estimate_error:
            raise self.estimate_error
        return self.gas_estimate

    def send_raw_transaction(self, raw):
        if self.send_error:
            raise self.send_error
        self.sent.append(raw)
        return bytes.fromhex("cd" * 32)

    def wait_for_transaction_receipt(self, tx_hash, timeout, poll_latency):
        if self.receipt_error:
            raise self.receipt_error
        return {"blockNumber": 99, "blockHash": bytes.fromhex("ef" * 32), "status": 1}


class StubWeb3:
    def __init__(self):
        self.eth = StubEth()


class RecordingIdentity:
    address = TEST_ADDRESS

    def __init__(self):
        self.signed = []

    def sign_transaction(self, tx):
        self.signed.append(dict(tx))
        return tx


class SignedStub:
    raw_transaction = b"\x02raw"


@pytest.fixture
def w3():
    return StubWeb3()


def _client(w3, chain_id=11155111):
    network = NetworkConfig(identifier="sepolia", endpoint_url="https://rpc.example/sepolia", chain_id=chain_id)
    return Web3ChainClient(network, web3=w3)


def test_configured_chain_id_is_used(w3):
    identity = RecordingIdentity()

    _client(w3).build_and_sign(TransferRequest(recipient=ALICE, amount_wei=5), identity)

    tx = identity.signed[0]
    assert tx["chainId"] == 11155111
    assert tx["nonce"] == 7
    assert tx["value"] == 5
    assert tx["gas"] == 21_000
    assert "from" not in tx


def test_node_chain_id_used_when_not_configured(w3):
    identity = RecordingIdentity()

    _client(w3, chain_id=None).build_and_sign(TransferRequest(recipient=ALICE, amount_wei=5), identity)

    assert identity.signed[0]["chainId"] == 1


def test_zero_estimate_falls_back_to_transfer_gas(w3):
    w3.eth.gas_estimate = 0
    identity = RecordingIdentity()

    _client(w3).build_and_sign(TransferRequest(recipient=ALICE, amount_wei=5), identity)

    assert identity.signed[0]["gas"] == TRANSFER_GAS


def test_signs_with_real_identity(w3, identity):
    signed = _client(w3).build_and_sign(TransferRequest(recipient=ALICE, amount_wei=5), identity)

    assert signed.raw_transaction


def test_estimate_rejection_is_chain_rejection(w3):
    w3.eth.estimate_error = ValueError({"code": -32000, "message": "insufficient funds for transfer"})

    with pytest.raises(ChainRejection, match="insufficient funds for transfer"):
        _client(w3).build_and_sign(TransferRequest(recipient=ALICE, amount_wei=5), RecordingIdentity())


def test_unreachable_node_during_build(w3):
    w3.eth.count_error = requests.exceptions.ConnectionError("connection refused")

    with pytest.raises(NetworkUnavailable):
        _client(w3).build_and_sign(TransferRequest(recipient=ALICE, amount_wei=5), RecordingIdentity())


def test_broadcast_returns_hex_hash(w3):
    tx_hash = _client(w3).broadcast(SignedStub())

    assert tx_hash == "0x" + "cd" * 32
    assert w3.eth.sent == [b"\x02raw"]


def test_broadcast_rejection_keeps_node_message(w3):
    w3.eth.send_error = Web3RPCError(
        "nonce too low", rpc_response={"jsonrpc": "2.0", "id": 1, "error": {"code": -32000, "message": "nonce too low"}}
    )

    with pytest.raises(BroadcastFailed) as exc:
        _client(w3).broadcast(SignedStub())

    assert exc.value.message == "nonce too low"


def test_broadcast_transport_failure(w3):
    w3.eth.send_error = requests.exceptions.Timeout("read timed out")

    with pytest.raises(NetworkUnavailable):
        _client(w3).broadcast(SignedStub())


def test_await_inclusion_returns_block(w3):
    block = _client(w3).await_inclusion("0x" + "cd" * 32, timeout=1)

    assert block.number == 99
    assert block.block_hash == "0x" + "ef" * 32
    assert block.status == 1


def test_await_inclusion_timeout(w3):
    w3.eth.receipt_error = TimeExhausted("not in chain after 1 seconds")

    with pytest.raises(ConfirmationTimeout):
        _client(w3).await_inclusion("0x" + "cd" * 32, timeout=1)


def test_query_balance(w3):
    assert _client(w3).query_balance(ALICE) == 123


def test_rpc_error_during_build_is_chain_rejection(w3):
    w3.eth.count_error = Web3RPCError("header not found")

    with pytest.raises(ChainRejection, match="header not found"):
        _client(w3).build_and_sign(TransferRequest(recipient=ALICE, amount_wei=5), RecordingIdentity())


def test_rpc_error_during_balance_read(w3):
    w3.eth.balance_error = Web3RPCError("rate limit exceeded")

    with pytest.raises(NetworkUnavailable, match="rate limit exceeded"):
        _client(w3).query_balance(ALICE)


def test_rpc_error_does_not_abort_batch(w3, identity):
    w3.eth.count_error = Web3RPCError("header not found")
    network = NetworkConfig(identifier="sepolia", endpoint_url="https://rpc.example/sepolia", chain_id=11155111)

    with open_session(network, identity, client_factory=lambda net: Web3ChainClient(net, web3=w3)) as session:
        results = send_batch(session, [ALICE, BOB], 10**15)

    assert len(results) == 2
    assert all(isinstance(r, Failed) for r in results)
    assert [r.reason for r in results] == ["ChainRejection", "ChainRejection"]
    assert "header not found" in results[0].detail
    assert w3.eth.sent == []
