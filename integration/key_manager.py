"""integration/key_manager.py

Safe key loading from environment variables:
- Reads PRIVATE_KEY from environment (or an injected mapping)
- Accepts a 32-byte hex key, with or without 0x prefix
- Raises SigningIdentityUnavailable if key is missing or invalid

The raw key never leaves SigningIdentity; callers only see the address and
the ability to sign.
"""

from __future__ import annotations

import os
from typing import Any, Dict, Mapping, Optional

from eth_account import Account
from eth_account.signers.local import LocalAccount

from execution.errors import SigningFailed, SigningIdentityUnavailable

DEFAULT_KEY_ENV = "PRIVATE_KEY"


class SigningIdentity:
    """Opaque signing credential for one EVM account."""

    __slots__ = ("_account",)

    def __init__(self, account: LocalAccount):
        self._account = account

    @classmethod
    def from_key(cls, private_key: str) -> "SigningIdentity":
        """Create an identity from a hex private key.

        Raises:
            SigningIdentityUnavailable: If the key cannot be parsed.
        """
        key = (private_key or "").strip()
        if not key:
            raise SigningIdentityUnavailable("Private key is empty")
        try:
            account = Account.from_key(key)
        except Exception as e:  # eth_keys raises its own ValidationError for bad lengths
            # Do not echo the key material back.
            raise SigningIdentityUnavailable(f"Invalid private key format: {type(e).__name__}") from None
        return cls(account)

    @property
    def address(self) -> str:
        """Checksummed account address."""
        return self._account.address

    def sign_transaction(self, tx: Dict[str, Any]) -> Any:
        """Sign a transaction dict.

        Raises:
            SigningFailed: If the transaction cannot be signed.
        """
        try:
            return self._account.sign_transaction(tx)
        except Exception as e:
            raise SigningFailed(f"Signing failed: {e}", recipient=str(tx.get("to", "")) or None) from e

    def __repr__(self) -> str:
        return f"SigningIdentity(address={self.address}, key=<redacted>)"


def load_signing_identity(
    env_var: str = DEFAULT_KEY_ENV,
    environ: Optional[Mapping[str, str]] = None,
) -> SigningIdentity:
    """Load the signing identity from an environment variable.

    Args:
        env_var: Name of the variable holding the hex private key.
        environ: Mapping to read from (defaults to os.environ).

    Returns:
        SigningIdentity bound to the key.

    Raises:
        SigningIdentityUnavailable: If variable is missing or key is invalid.
    """
    env = os.environ if environ is None else environ
    key_str = env.get(env_var, "")

    if not key_str:
        raise SigningIdentityUnavailable(f"{env_var} environment variable is not set")

    return SigningIdentity.from_key(key_str)


def validate_key_exists(env_var: str = DEFAULT_KEY_ENV, environ: Optional[Mapping[str, str]] = None) -> bool:
    """Check if the key variable is set and parseable."""
    try:
        load_signing_identity(env_var, environ)
        return True
    except SigningIdentityUnavailable:
        return False
