"""
Canonical data models for fee observations, prices and network state.

Every model here is immutable. State changes are expressed by building a new
instance, which lets consumers detect changed slices by identity.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class ConnectionStatus(str, Enum):
    """Lifecycle of a network's head subscription."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    FAILED = "failed"


@dataclass(frozen=True)
class Observation:
    """Single fee sample derived from one block, all fees in gwei."""
    timestamp: int          # Block time, epoch ms
    base_fee: float         # Protocol base fee
    priority_fee: float     # Tip component
    total_fee: float = field(init=False)

    def __post_init__(self):
        object.__setattr__(self, "total_fee", self.base_fee + self.priority_fee)


@dataclass(frozen=True)
class BlockHeader:
    """Subset of a block header the engine needs."""
    number: int
    timestamp: int                           # Seconds, as reported by the chain
    base_fee_per_gas: Optional[int] = None   # Wei; None on pre-London chains


@dataclass(frozen=True)
class PriceQuote:
    """Raw oracle answer before range validation."""
    token: str
    value: float
    fetched_at: int         # Wall-clock epoch ms of the query


@dataclass(frozen=True)
class TokenPrice:
    """Active USD price for one token."""
    value: float = 0.0
    last_updated_at: int = 0      # Epoch ms; 0 means never set
    is_fallback: bool = False     # True while the static fallback is in use

    @property
    def has_accepted_value(self) -> bool:
        """True once a validated oracle value has been written."""
        return self.last_updated_at > 0 and not self.is_fallback


@dataclass(frozen=True)
class NetworkState:
    """Read-only snapshot of one network's fee state."""
    current_base_fee: float = 0.0
    current_priority_fee: float = 0.0
    history: tuple[Observation, ...] = ()
    last_update: int = 0          # Epoch ms of the last mutation

    @property
    def current_total_fee(self) -> float:
        return self.current_base_fee + self.current_priority_fee

    @property
    def latest(self) -> Optional[Observation]:
        """Most recent observation, None if history is empty."""
        return self.history[-1] if self.history else None


@dataclass(frozen=True)
class Candle:
    """OHLC summary of observations falling into one bucket."""
    bucket_start: int       # Epoch ms, aligned to the interval
    open: float
    high: float
    low: float
    close: float
    count: int = 1          # Observations in the bucket
