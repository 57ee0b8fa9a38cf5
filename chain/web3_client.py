"""chain/web3_client.py

Chain client implementation over web3.py (HTTP JSON-RPC).

Flow:
1. build_and_sign: nonce (pending), gas estimate and gas price from the node, sign locally
2. broadcast: eth_sendRawTransaction
3. await_inclusion: poll for the receipt until timeout

Error mapping:
- requests transport errors -> NetworkUnavailable
- node errors (Web3Exception / ValueError) -> ChainRejection while building,
  BroadcastFailed on broadcast, NetworkUnavailable on balance reads
- TimeExhausted -> ConfirmationTimeout
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import requests
from web3 import Web3
from web3.exceptions import TimeExhausted, Web3Exception, Web3RPCError

from chain.client import BlockRef, ChainClient
from config.networks import NetworkConfig
from execution.errors import (
    BroadcastFailed,
    ChainRejection,
    ConfirmationTimeout,
    NetworkUnavailable,
    TransportError,
)

logger = logging.getLogger(__name__)

DEFAULT_REQUEST_TIMEOUT = 10.0

# Intrinsic gas of a plain value transfer; used if estimation is not possible.
TRANSFER_GAS = 21_000


def _to_hex(value: Any) -> str:
    if isinstance(value, str):
        return value if value.startswith("0x") else "0x" + value
    return Web3.to_hex(value)


def _rpc_message(e: Exception) -> str:
    """Extract the node's message from a JSON-RPC error, falling back to str(e)."""
    if isinstance(e, Web3RPCError) and isinstance(getattr(e, "rpc_response", None), dict):
        err = e.rpc_response.get("error")
        if isinstance(err, dict) and err.get("message"):
            return str(err["message"])
    if e.args and isinstance(e.args[0], dict) and e.args[0].get("message"):
        return str(e.args[0]["message"])
    return str(e)


class Web3ChainClient(ChainClient):
    """Chain client bound to one network endpoint."""

    def __init__(
        self,
        network: NetworkConfig,
        *,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
        web3: Optional[Web3] = None,
    ):
        """Initialize the client.

        Args:
            network: Resolved network parameters.
            request_timeout: HTTP request timeout in seconds.
            web3: Pre-built Web3 instance (tests); built from the endpoint if None.
        """
        self.network = network
        self.request_timeout = request_timeout
        self._w3 = web3 or Web3(
            Web3.HTTPProvider(network.endpoint_url, request_kwargs={"timeout": request_timeout})
        )

    def _transport_error(self, e: Exception, action: str) -> TransportError:
        return NetworkUnavailable(f"{action} failed: {e}", network=self.network.identifier)

    def query_balance(self, address: str) -> int:
        try:
            return int(self._w3.eth.get_balance(Web3.to_checksum_address(address)))
        except requests.exceptions.RequestException as e:
            raise self._transport_error(e, "eth_getBalance") from e
        except (Web3Exception, ValueError) as e:
            raise NetworkUnavailable(
                f"eth_getBalance failed: {_rpc_message(e)}", network=self.network.identifier
            ) from e

    def build_and_sign(self, request, identity) -> Any:
        to = Web3.to_checksum_address(request.recipient)
        sender = identity.address
        tx: Dict[str, Any] = {
            "from": sender,
            "to": to,
            "value": int(request.amount_wei),
        }

        try:
            tx["nonce"] = self._w3.eth.get_transaction_count(sender, "pending")
            tx["chainId"] = (
                self.network.chain_id if self.network.chain_id is not None else self._w3.eth.chain_id
            )
            tx["gasPrice"] = self._w3.eth.gas_price
            try:
                tx["gas"] = self._w3.eth.estimate_gas(tx)
            except (Web3Exception, ValueError) as e:
                # Estimation fails on insufficient funds: that is a rejection, not a gas problem.
                raise ChainRejection(
                    f"Node rejected transfer during gas estimation: {_rpc_message(e)}",
                    network=self.network.identifier,
                    recipient=request.recipient,
                ) from e
        except requests.exceptions.RequestException as e:
            raise self._transport_error(e, "Transaction build") from e
        except (Web3Exception, ValueError) as e:
            # nonce / chain id / gas price lookups answered with a JSON-RPC error
            raise ChainRejection(
                f"Node rejected transaction build: {_rpc_message(e)}",
                network=self.network.identifier,
                recipient=request.recipient,
            ) from e

        if not tx.get("gas"):
            tx["gas"] = TRANSFER_GAS
        tx.pop("from", None)

        logger.debug(
            f"[web3] Built tx nonce={tx['nonce']} gas={tx['gas']} chainId={tx['chainId']} "
            f"on {self.network.identifier}"
        )
        return identity.sign_transaction(tx)

    def broadcast(self, signed_tx: Any) -> str:
        try:
            tx_hash = self._w3.eth.send_raw_transaction(signed_tx.raw_transaction)
        except requests.exceptions.RequestException as e:
            raise self._transport_error(e, "eth_sendRawTransaction") from e
        except (Web3Exception, ValueError) as e:
            raise BroadcastFailed(_rpc_message(e), network=self.network.identifier) from e
        return _to_hex(tx_hash)

    def await_inclusion(self, tx_hash: str, timeout: float, poll_latency: float = 2.0) -> BlockRef:
        try:
            receipt = self._w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=timeout, poll_latency=poll_latency
            )
        except TimeExhausted as e:
            raise ConfirmationTimeout(
                f"Transaction {tx_hash} not included after {timeout}s", network=self.network.identifier
            ) from e
        except requests.exceptions.RequestException as e:
            raise self._transport_error(e, "eth_getTransactionReceipt") from e
        except Web3Exception as e:
            raise TransportError(
                f"Confirmation wait failed: {e}", network=self.network.identifier
            ) from e

        return BlockRef(
            number=int(receipt["blockNumber"]),
            block_hash=_to_hex(receipt["blockHash"]),
            status=int(receipt.get("status", 1)),
        )


def create_chain_client(
    network: NetworkConfig,
    *,
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
) -> ChainClient:
    """Factory used by open_session when no client factory is injected."""
    return Web3ChainClient(network, request_timeout=request_timeout)
