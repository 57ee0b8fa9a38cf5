"""config/runtime_schema.py

Tunables for dispatch and scheduling.
Implements manual validation to avoid Pydantic dependency.
"""

from dataclasses import dataclass
from typing import Any, Optional


@dataclass(frozen=True)
class DispatchConfig:
    """
    Dispatch and scheduler parameters, fixed at startup.
    """
    # Confirmation wait
    confirmation_timeout_sec: float = 120.0
    poll_latency_sec: float = 2.0

    # JSON-RPC HTTP requests
    request_timeout_sec: float = 10.0

    # Scheduler
    scheduler_max_concurrent_fires: int = 3
    scheduler_misfire_grace_sec: int = 30

    def __post_init__(self):
        """Validate constraints manually since we don't have Pydantic."""
        self._validate_range("confirmation_timeout_sec", self.confirmation_timeout_sec, 1, 3600)
        self._validate_range("poll_latency_sec", self.poll_latency_sec, 0.1, 60)
        self._validate_range("request_timeout_sec", self.request_timeout_sec, 1, 120)
        self._validate_range("scheduler_max_concurrent_fires", self.scheduler_max_concurrent_fires, 1, 32)
        self._validate_range("scheduler_misfire_grace_sec", self.scheduler_misfire_grace_sec, 1, 3600)

    def _validate_range(self, name: str, value: Any, min_val: float, max_val: Optional[float] = None) -> None:
        if isinstance(value, bool):
            raise ValueError(f"{name} must be numeric, got {value}")
        try:
            val = float(value)
        except (TypeError, ValueError):
            raise ValueError(f"{name} must be numeric, got {value}")

        if val < min_val:
            raise ValueError(f"{name} {val} is below minimum {min_val}")
        if max_val is not None and val > max_val:
            raise ValueError(f"{name} {val} is above maximum {max_val}")
