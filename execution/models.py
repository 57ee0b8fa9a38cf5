"""execution/models.py

Data models for transfer dispatch.

TransferResult is a tagged variant: exactly one of Submitted, Confirmed or
Failed. Results are frozen and never mutated after creation.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from chain.client import BlockRef


@dataclass(frozen=True)
class TransferRequest:
    """
    A single native-coin transfer.

    Attributes:
        recipient: Destination address (hex string, 0x-prefixed).
        amount_wei: Amount in wei. Must be > 0; checked by the dispatcher
            before any network call.
    """
    recipient: str
    amount_wei: int


@dataclass(frozen=True)
class Submitted:
    """Broadcast accepted by the node; inclusion not (yet) observed."""
    tx_hash: str
    recipient: str = ""
    network: str = ""
    warning: Optional[str] = None

    kind = "submitted"

    @property
    def ok(self) -> bool:
        return True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "tx_hash": self.tx_hash,
            "recipient": self.recipient,
            "network": self.network,
            "warning": self.warning,
        }


@dataclass(frozen=True)
class Confirmed:
    """Transfer included in a block.

    A receipt status other than 1 means the transaction was mined but
    reverted; such a result is not ``ok``.
    """
    tx_hash: str
    block: BlockRef
    recipient: str = ""
    network: str = ""

    kind = "confirmed"

    @property
    def ok(self) -> bool:
        return self.block.status == 1

    @property
    def reverted(self) -> bool:
        return self.block.status != 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "tx_hash": self.tx_hash,
            "recipient": self.recipient,
            "network": self.network,
            "block_number": self.block.number,
            "block_hash": self.block.block_hash,
            "status": self.block.status,
            "reverted": self.reverted,
        }


@dataclass(frozen=True)
class Failed:
    """
    Transfer not broadcast.

    Attributes:
        recipient: Recipient of the failed transfer.
        reason: Short error code (e.g. "InvalidRequest", "BroadcastFailed").
        detail: Underlying error message, verbatim.
        network: Network identifier the attempt targeted.
    """
    recipient: str
    reason: str
    detail: str = ""
    network: str = ""

    kind = "failed"

    @property
    def ok(self) -> bool:
        return False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "recipient": self.recipient,
            "network": self.network,
            "reason": self.reason,
            "detail": self.detail,
        }


TransferResult = Union[Submitted, Confirmed, Failed]
