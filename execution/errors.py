"""execution/errors.py

Error taxonomy for transfer dispatch and scheduling.

Every error carries a short ``code`` (used as the ``Failed.reason`` of a
transfer result) and, where known, the network and recipient it concerns.
"""

from __future__ import annotations

from typing import Optional


class TransferError(Exception):
    """Base class for all dispatch/scheduling errors."""

    code = "TransferError"

    def __init__(
        self,
        message: str,
        *,
        network: Optional[str] = None,
        recipient: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.network = network
        self.recipient = recipient

    def context(self) -> str:
        """Human-readable context suffix (network / recipient)."""
        parts = []
        if self.network:
            parts.append(f"network={self.network}")
        if self.recipient:
            parts.append(f"recipient={self.recipient}")
        return ", ".join(parts)

    def __str__(self) -> str:
        ctx = self.context()
        return f"{self.message} ({ctx})" if ctx else self.message


# -------- configuration --------

class ConfigurationError(TransferError):
    code = "ConfigurationError"


class UnknownNetwork(ConfigurationError):
    code = "UnknownNetwork"


class MisconfiguredNetwork(ConfigurationError):
    code = "MisconfiguredNetwork"


class InvalidEndpoint(ConfigurationError):
    code = "InvalidEndpoint"


class ConfigError(ConfigurationError):
    """Raised when the YAML configuration file is malformed."""

    code = "ConfigError"


# -------- request validation --------

class ValidationError(TransferError):
    code = "ValidationError"


class InvalidRequest(ValidationError):
    code = "InvalidRequest"


# -------- signing identity --------

class AuthError(TransferError):
    code = "AuthError"


class SigningIdentityUnavailable(AuthError):
    code = "SigningIdentityUnavailable"


class SigningFailed(AuthError):
    code = "SigningFailed"


# -------- network --------

class TransportError(TransferError):
    code = "TransportError"


class NetworkUnavailable(TransportError):
    code = "NetworkUnavailable"


class ConfirmationTimeout(TransportError):
    code = "ConfirmationTimeout"


class ChainRejection(TransferError):
    code = "ChainRejection"


class BroadcastFailed(ChainRejection):
    code = "BroadcastFailed"


# -------- scheduling --------

class ScheduleError(TransferError):
    code = "ScheduleError"


class InvalidSchedule(ScheduleError):
    code = "InvalidSchedule"


# -------- recipient source --------

class RecipientSourceError(TransferError):
    """The recipient list could not be obtained at all."""

    code = "RecipientSourceError"
