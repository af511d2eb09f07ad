from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass
class NetworkError(Exception):
    """Canonical error type for integration network setup and tx transport failures."""

    code: str
    reason: str
    details: Any | None = None

    def __str__(self) -> str:  # pragma: no cover
        if self.details is None:
            return f"{self.code}:{self.reason}"
        return f"{self.code}:{self.reason}:{self.details}"


class ConfigurationError(NetworkError):
    """Invalid network configuration (zero validators, bad denomination, ...)."""


class ConstructionError(NetworkError):
    """Genesis fragments are mutually inconsistent."""


class SerializationError(NetworkError):
    """Genesis state could not be encoded."""


class BootstrapError(NetworkError):
    """Runtime initialization, commit or begin-block failed."""


class TxDecodeError(NetworkError):
    """Transaction bytes could not be decoded (transport-level, not an execution failure)."""


__all__ = [
    "NetworkError",
    "ConfigurationError",
    "ConstructionError",
    "SerializationError",
    "BootstrapError",
    "TxDecodeError",
]
