"""execution/dispatcher.py

Single-transfer dispatch: validate, build + sign, broadcast, optionally await
confirmation.

HARD RULES:
- Invalid requests raise InvalidRequest before any network call
- Build/sign/broadcast run under the session's transaction lock
- A broadcast hash is never dropped: a failed confirmation wait still returns Submitted
- Broadcast failures are not retried here; retry policy belongs to callers
"""

from __future__ import annotations

import logging
from typing import Optional

from web3 import Web3

from chain.session import ChainSession
from config.runtime_schema import DispatchConfig
from execution.errors import AuthError, ChainRejection, InvalidRequest, TransportError
from execution.models import Confirmed, Failed, Submitted, TransferRequest, TransferResult

logger = logging.getLogger(__name__)


def validate_request(request: TransferRequest) -> None:
    """Check request shape.

    Raises:
        InvalidRequest: If amount_wei is not a positive integer or the
            recipient is not a valid EVM address.
    """
    recipient = getattr(request, "recipient", None)
    amount = getattr(request, "amount_wei", None)

    if isinstance(amount, bool) or not isinstance(amount, int):
        raise InvalidRequest(f"amount_wei must be an integer, got {amount!r}", recipient=recipient)
    if amount <= 0:
        raise InvalidRequest(f"amount_wei must be > 0, got {amount}", recipient=recipient)
    if amount >= 2**256:
        raise InvalidRequest("amount_wei does not fit in 256 bits", recipient=recipient)

    # is_address also rejects mixed-case addresses with a bad EIP-55 checksum.
    if not isinstance(recipient, str) or not Web3.is_address(recipient):
        raise InvalidRequest(f"Malformed recipient address: {recipient!r}", recipient=recipient)


class Dispatcher:
    """Executes single transfers against a ChainSession."""

    def __init__(self, config: Optional[DispatchConfig] = None):
        self.config = config or DispatchConfig()

    def send(
        self,
        session: ChainSession,
        request: TransferRequest,
        *,
        await_confirmation: bool = False,
        confirmation_timeout: Optional[float] = None,
        poll_latency: Optional[float] = None,
    ) -> TransferResult:
        """Dispatch one transfer.

        Args:
            session: Session to sign and broadcast with.
            request: Transfer to perform.
            await_confirmation: Wait for inclusion before returning.
            confirmation_timeout: Override of the configured wait timeout (seconds).
            poll_latency: Override of the configured receipt poll interval (seconds).

        Returns:
            Submitted, Confirmed or Failed.

        Raises:
            InvalidRequest: If the request is malformed (nothing is broadcast).
        """
        validate_request(request)

        network = session.network.identifier
        recipient = request.recipient

        with session.transaction_lock:
            try:
                signed = session.client.build_and_sign(request, session.identity)
                tx_hash = session.client.broadcast(signed)
            except (AuthError, TransportError, ChainRejection) as e:
                logger.error(f"[dispatch] {e.code} sending {request.amount_wei} wei to {recipient} on {network}: {e.message}")
                return Failed(recipient=recipient, reason=e.code, detail=e.message, network=network)

        logger.info(f"[dispatch] Broadcast {tx_hash} ({request.amount_wei} wei -> {recipient}) on {network}")
        submitted = Submitted(tx_hash=tx_hash, recipient=recipient, network=network)

        if not await_confirmation:
            return submitted
        return self.confirm(session, submitted, timeout=confirmation_timeout, poll_latency=poll_latency)

    def confirm(
        self,
        session: ChainSession,
        submitted: Submitted,
        *,
        timeout: Optional[float] = None,
        poll_latency: Optional[float] = None,
    ) -> TransferResult:
        """Wait for inclusion of a broadcast transfer.

        Returns:
            Confirmed on inclusion, otherwise ``submitted`` with a warning attached.
        """
        wait = self.config.confirmation_timeout_sec if timeout is None else timeout
        poll = self.config.poll_latency_sec if poll_latency is None else poll_latency

        try:
            block = session.client.await_inclusion(submitted.tx_hash, timeout=wait, poll_latency=poll)
        except TransportError as e:
            warning = f"{e.code}: {e.message}"
            logger.warning(f"[dispatch] Confirmation of {submitted.tx_hash} not observed: {warning}")
            return Submitted(
                tx_hash=submitted.tx_hash,
                recipient=submitted.recipient,
                network=submitted.network,
                warning=warning,
            )

        if block.status != 1:
            logger.warning(f"[dispatch] {submitted.tx_hash} included in block {block.number} with status {block.status}")
        else:
            logger.info(f"[dispatch] Confirmed {submitted.tx_hash} in block {block.number}")
        return Confirmed(
            tx_hash=submitted.tx_hash,
            block=block,
            recipient=submitted.recipient,
            network=submitted.network,
        )


_default_dispatcher = Dispatcher()


def send(
    session: ChainSession,
    request: TransferRequest,
    *,
    await_confirmation: bool = False,
    confirmation_timeout: Optional[float] = None,
    poll_latency: Optional[float] = None,
) -> TransferResult:
    """Dispatch one transfer with the default DispatchConfig."""
    return _default_dispatcher.send(
        session,
        request,
        await_confirmation=await_confirmation,
        confirmation_timeout=confirmation_timeout,
        poll_latency=poll_latency,
    )


def confirm(
    session: ChainSession,
    submitted: Submitted,
    *,
    timeout: Optional[float] = None,
    poll_latency: Optional[float] = None,
) -> TransferResult:
    """Confirmation step with the default DispatchConfig."""
    return _default_dispatcher.confirm(session, submitted, timeout=timeout, poll_latency=poll_latency)
