"""chain/session.py

ChainSession binds one network to one signing identity.

The session owns its identity and chain client. Its transaction_lock is the
single-writer region for signing and broadcasting: two in-flight dispatches on
the same session never pick a nonce concurrently. Sessions perform no retries.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from chain.client import ChainClient
from chain.web3_client import create_chain_client
from config.networks import NetworkConfig, is_well_formed_url
from execution.errors import (
    InvalidEndpoint,
    NetworkUnavailable,
    SigningIdentityUnavailable,
    TransportError,
)
from integration.key_manager import SigningIdentity

logger = logging.getLogger(__name__)

ClientFactory = Callable[[NetworkConfig], ChainClient]


class ChainSession:
    """
    A network + signing identity pair capable of reading balances and
    broadcasting transfers.

    Use open_session() rather than constructing directly.
    """

    def __init__(self, network: NetworkConfig, identity: SigningIdentity, client: ChainClient):
        self._network = network
        self._identity = identity
        self._client = client
        self._tx_lock = threading.RLock()
        self._closed = False

    @property
    def network(self) -> NetworkConfig:
        return self._network

    @property
    def account_address(self) -> str:
        return self._identity.address

    @property
    def identity(self) -> SigningIdentity:
        return self._identity

    @property
    def client(self) -> ChainClient:
        return self._client

    @property
    def transaction_lock(self) -> threading.RLock:
        """Mutually exclusive region for build/sign/broadcast."""
        return self._tx_lock

    @property
    def closed(self) -> bool:
        return self._closed

    def get_balance(self) -> int:
        """Balance of the session account in wei.

        Raises:
            NetworkUnavailable: On transport failure.
        """
        try:
            return self._client.query_balance(self.account_address)
        except NetworkUnavailable:
            raise
        except TransportError as e:
            raise NetworkUnavailable(e.message, network=self._network.identifier) from e

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._client.close()
        logger.debug(f"[session] Closed session for {self.account_address} on {self._network.identifier}")

    def __enter__(self) -> "ChainSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"ChainSession(network={self._network.identifier}, account={self.account_address})"


def open_session(
    network: NetworkConfig,
    identity: Optional[SigningIdentity],
    client_factory: Optional[ClientFactory] = None,
) -> ChainSession:
    """Open a session for ``network`` signed by ``identity``.

    No network call is made here.

    Raises:
        InvalidEndpoint: If the network endpoint is missing or malformed.
        SigningIdentityUnavailable: If the identity is missing or not a SigningIdentity.
    """
    if network is None or not is_well_formed_url(network.endpoint_url):
        raise InvalidEndpoint(
            f"Endpoint is missing or malformed: {getattr(network, 'endpoint_url', None)!r}",
            network=getattr(network, "identifier", None),
        )

    if identity is None:
        raise SigningIdentityUnavailable("No signing identity supplied", network=network.identifier)
    if not isinstance(identity, SigningIdentity):
        raise SigningIdentityUnavailable(
            f"Unsupported signing identity type: {type(identity).__name__}", network=network.identifier
        )

    factory = client_factory or create_chain_client
    client = factory(network)

    logger.info(f"[session] Opened session for {identity.address} on {network.identifier}")
    return ChainSession(network, identity, client)
