"""execution/batch_runner.py

Bulk send: one transfer per recipient, strictly sequential, in input order.

Per-item failure isolation: any TransferError for a recipient (including a
malformed address) becomes that recipient's Failed result and processing
continues. Dispatch is not parallelized since all items share one signing
identity and therefore one nonce sequence.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from chain.session import ChainSession
from execution.dispatcher import Dispatcher
from execution.errors import TransferError
from execution.models import Failed, TransferRequest, TransferResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BatchSummary:
    total: int
    submitted: int
    confirmed: int
    failed: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "submitted": self.submitted,
            "confirmed": self.confirmed,
            "failed": self.failed,
        }


def summarize(results: List[TransferResult]) -> BatchSummary:
    """Count results by kind."""
    counts = {"submitted": 0, "confirmed": 0, "failed": 0}
    for r in results:
        counts[r.kind] += 1
    return BatchSummary(total=len(results), **counts)


def send_batch(
    session: ChainSession,
    recipients: Iterable[str],
    amount_wei: int,
    *,
    await_confirmation: bool = False,
    dispatcher: Optional[Dispatcher] = None,
) -> List[TransferResult]:
    """Send ``amount_wei`` to each recipient in order.

    Args:
        session: Session to dispatch with.
        recipients: Ordered recipient addresses.
        amount_wei: Amount per recipient.
        await_confirmation: Wait for each transfer's inclusion before the next.
        dispatcher: Dispatcher to use (default config if None).

    Returns:
        Exactly one result per recipient, in input order.
    """
    dispatcher = dispatcher or Dispatcher()
    network = session.network.identifier
    results: List[TransferResult] = []

    for index, recipient in enumerate(recipients):
        request = TransferRequest(recipient=recipient, amount_wei=amount_wei)
        try:
            result = dispatcher.send(session, request, await_confirmation=await_confirmation)
        except TransferError as e:
            logger.warning(f"[batch] #{index} {recipient}: {e.code}: {e.message}")
            result = Failed(recipient=recipient, reason=e.code, detail=e.message, network=network)
        results.append(result)

    summary = summarize(results)
    logger.info(
        f"[batch] Done on {network}: {summary.total} items, "
        f"{summary.submitted} submitted, {summary.confirmed} confirmed, {summary.failed} failed"
    )
    return results
