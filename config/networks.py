"""config/networks.py

Network registry: maps a logical network identifier to connection parameters.

Entries are snapshotted once at construction (environment variables are read
then, not at resolve time), so resolve() is a pure lookup. A missing or
malformed endpoint is reported as MisconfiguredNetwork when the network is
resolved, not when the registry is built, so that one bad entry does not make
the other networks unusable.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Tuple
from urllib.parse import urlparse

from execution.errors import ConfigError, MisconfiguredNetwork, UnknownNetwork

logger = logging.getLogger(__name__)


# Built-in test networks: identifier -> (RPC URL env var, chain id)
DEFAULT_NETWORKS: Dict[str, Tuple[str, int]] = {
    "sepolia": ("RPC_URL_SEPOLIA", 11155111),
    "base-sepolia": ("RPC_URL_BASE_SEPOLIA", 84532),
}


@dataclass(frozen=True)
class NetworkConfig:
    """
    Resolved connection parameters for one network.

    Attributes:
        identifier: Logical network name (e.g. "sepolia").
        endpoint_url: Well-formed http(s) JSON-RPC URL.
        chain_id: Chain id stamped into signed transactions (None = ask the node).
    """
    identifier: str
    endpoint_url: str
    chain_id: Optional[int] = None


def is_well_formed_url(url: Optional[str]) -> bool:
    """True if ``url`` is an http(s) URL with a host."""
    if not url or not isinstance(url, str):
        return False
    try:
        parsed = urlparse(url.strip())
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


class NetworkRegistry:
    """Static, process-wide registry of supported networks."""

    def __init__(self, entries: Mapping[str, Tuple[str, Optional[int]]]):
        # Copy so later mutation of the caller's mapping cannot leak in.
        self._entries: Dict[str, Tuple[str, Optional[int]]] = {
            str(k): (str(url or ""), chain_id) for k, (url, chain_id) in entries.items()
        }

    def identifiers(self) -> List[str]:
        """Supported identifiers in registration order."""
        return list(self._entries)

    def __contains__(self, identifier: object) -> bool:
        return identifier in self._entries

    def resolve(self, identifier: str) -> NetworkConfig:
        """Resolve a network identifier.

        Raises:
            UnknownNetwork: If the identifier is not registered.
            MisconfiguredNetwork: If the registered endpoint is empty or malformed.
        """
        if identifier not in self._entries:
            known = ", ".join(self._entries) or "none"
            raise UnknownNetwork(f"Unknown network '{identifier}' (known: {known})", network=identifier)

        url, chain_id = self._entries[identifier]
        if not url:
            raise MisconfiguredNetwork("RPC endpoint is not configured", network=identifier)
        if not is_well_formed_url(url):
            raise MisconfiguredNetwork(f"RPC endpoint is not a well-formed http(s) URL: {url!r}", network=identifier)

        return NetworkConfig(identifier=identifier, endpoint_url=url.strip(), chain_id=chain_id)

    @classmethod
    def from_mapping(
        cls,
        networks: Mapping[str, Any],
        environ: Optional[Mapping[str, str]] = None,
    ) -> "NetworkRegistry":
        """Build a registry from the ``networks:`` section of the config.

        Each entry is a mapping with ``chain_id`` and either ``rpc_url``
        (literal) or ``rpc_url_env`` (environment variable name). A literal
        URL wins over the environment variable when both are given.

        Raises:
            ConfigError: If an entry is not a mapping or chain_id is not an integer.
        """
        env = os.environ if environ is None else environ
        entries: Dict[str, Tuple[str, Optional[int]]] = {}

        for name, raw in networks.items():
            if not isinstance(raw, dict):
                raise ConfigError(f"networks.{name} must be a mapping", network=str(name))

            url = raw.get("rpc_url") or ""
            if not url and raw.get("rpc_url_env"):
                url = env.get(str(raw["rpc_url_env"]), "")

            chain_id = raw.get("chain_id")
            if chain_id is not None:
                if isinstance(chain_id, bool):
                    raise ConfigError(f"networks.{name}.chain_id must be an integer", network=str(name))
                try:
                    chain_id = int(chain_id)
                except (TypeError, ValueError):
                    raise ConfigError(
                        f"networks.{name}.chain_id must be an integer, got {chain_id!r}", network=str(name)
                    ) from None

            entries[str(name)] = (str(url), chain_id)

        logger.debug(f"[registry] Loaded {len(entries)} networks: {', '.join(entries)}")
        return cls(entries)


def default_registry(environ: Optional[Mapping[str, str]] = None) -> NetworkRegistry:
    """Registry with the built-in Sepolia and Base Sepolia entries."""
    return NetworkRegistry.from_mapping(
        {
            name: {"rpc_url_env": env_key, "chain_id": chain_id}
            for name, (env_key, chain_id) in DEFAULT_NETWORKS.items()
        },
        environ=environ,
    )
