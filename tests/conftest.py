from __future__ import annotations

import threading
from typing import Any, Dict, List, Optional

import pytest

from chain.client import BlockRef, ChainClient
from chain.session import open_session
from config.networks import NetworkConfig
from execution.errors import BroadcastFailed, NetworkUnavailable, SigningFailed, TransferError
from integration.key_manager import SigningIdentity

# Well-known development key (Hardhat/Anvil account #0). Never funded on a real network.
TEST_PRIVATE_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
TEST_ADDRESS = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"

ALICE = "0x" + "11" * 20
BOB = "0x" + "22" * 20
CAROL = "0x" + "33" * 20

ONE_ETH = 10**18


class FakeChainClient(ChainClient):
    """Recording chain client: no network, deterministic hashes."""

    def __init__(self, balance: int = 5 * ONE_ETH):
        self.balance = balance
        self.builds: List[Any] = []
        self.broadcasts: List[Dict[str, Any]] = []
        self.waits: List[Dict[str, Any]] = []
        self.reject_recipients: set = set()
        self.transport_down = False
        self.sign_fail = False
        self.inclusion_error: Optional[TransferError] = None
        self.block = BlockRef(number=4242, block_hash="0x" + "ab" * 32, status=1)
        self.broadcast_gate: Optional[threading.Event] = None
        self.closed = False
        self._lock = threading.Lock()

    def query_balance(self, address: str) -> int:
        if self.transport_down:
            raise NetworkUnavailable("connection refused", network="sepolia")
        return self.balance

    def build_and_sign(self, request, identity) -> Any:
        self.builds.append(request)
        if self.sign_fail:
            raise SigningFailed("key rejected by signer")
        return {"to": request.recipient, "value": request.amount_wei, "from": identity.address}

    def broadcast(self, signed_tx: Any) -> str:
        if self.broadcast_gate is not None:
            self.broadcast_gate.wait(timeout=5)
        if self.transport_down:
            raise NetworkUnavailable("connection refused", network="sepolia")
        if signed_tx["to"].lower() in self.reject_recipients:
            raise BroadcastFailed("insufficient funds for gas * price + value", network="sepolia")
        with self._lock:
            self.broadcasts.append(signed_tx)
            return "0x%064x" % len(self.broadcasts)

    def await_inclusion(self, tx_hash: str, timeout: float, poll_latency: float = 2.0) -> BlockRef:
        self.waits.append({"tx_hash": tx_hash, "timeout": timeout, "poll_latency": poll_latency})
        if self.inclusion_error is not None:
            raise self.inclusion_error
        return self.block

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def identity() -> SigningIdentity:
    return SigningIdentity.from_key(TEST_PRIVATE_KEY)


@pytest.fixture
def network() -> NetworkConfig:
    return NetworkConfig(identifier="sepolia", endpoint_url="https://rpc.example/sepolia", chain_id=11155111)


@pytest.fixture
def fake_client() -> FakeChainClient:
    return FakeChainClient()


@pytest.fixture
def session(network, identity, fake_client):
    s = open_session(network, identity, client_factory=lambda _net: fake_client)
    try:
        yield s
    finally:
        s.close()
