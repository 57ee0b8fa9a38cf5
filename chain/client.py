"""chain/client.py

Chain client contract.

The core depends only on four operations of the chain client:
- query_balance: read the native balance of an address
- build_and_sign: build an unsigned transfer with default nonce/gas policy and sign it
- broadcast: submit a signed transaction, returning its hash
- await_inclusion: block until the transaction is mined or the timeout expires

Failure signatures:
- TransportError for an unreachable endpoint
- ChainRejection when the node rejects the transaction
- ConfirmationTimeout when inclusion is not observed in time
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from execution.models import TransferRequest
    from integration.key_manager import SigningIdentity


@dataclass(frozen=True)
class BlockRef:
    """
    Inclusion reference for a mined transaction.

    Attributes:
        number: Block number.
        block_hash: Block hash (hex).
        status: Receipt status (1 = success, 0 = reverted).
    """
    number: int
    block_hash: str
    status: int = 1


class ChainClient(ABC):
    """Abstract chain client bound to one network endpoint."""

    @abstractmethod
    def query_balance(self, address: str) -> int:
        """Return the balance of ``address`` in wei."""
        ...

    @abstractmethod
    def build_and_sign(self, request: "TransferRequest", identity: "SigningIdentity") -> Any:
        """Build the transfer for ``request`` and sign it with ``identity``.

        Returns:
            Opaque signed transaction accepted by ``broadcast``.
        """
        ...

    @abstractmethod
    def broadcast(self, signed_tx: Any) -> str:
        """Broadcast a signed transaction and return its hash (hex)."""
        ...

    @abstractmethod
    def await_inclusion(self, tx_hash: str, timeout: float, poll_latency: float = 2.0) -> BlockRef:
        """Wait until ``tx_hash`` is included in a block."""
        ...

    def close(self) -> None:
        """Release connection resources. Default: nothing to release."""
        return None
