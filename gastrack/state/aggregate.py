"""
Composed engine state: network fees, token prices and connectivity.

AggregateState is the only mutation boundary for the ingestion and price
components and the only read boundary for consumers. Every update replaces
the touched slice and the top-level mapping holding it (copy-on-write), so a
snapshot taken earlier is never modified and consumers can compare slices by
identity to see what changed.
"""

import itertools
import threading
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, replace
from enum import Enum
from types import MappingProxyType
from typing import Any, Optional

import structlog

from ..data.models import ConnectionStatus, NetworkState, Observation, TokenPrice
from ..data.store import DEFAULT_CAPACITY, TimeSeriesStore
from ..utils.time import now_ms

logger = structlog.get_logger(__name__)


class SliceKind(str, Enum):
    """Subscription scopes."""
    NETWORK = "network"
    TOKEN = "token"


@dataclass(frozen=True)
class StateChange:
    """Notification payload describing one slice update."""
    kind: SliceKind
    key: str            # Network id or token symbol
    field: str          # "fees", "history", "connectivity" or "price"
    old: Any
    new: Any


@dataclass(frozen=True)
class StateSnapshot:
    """Immutable view of the whole state at one point in time."""
    networks: Mapping[str, NetworkState]
    tokens: Mapping[str, TokenPrice]
    connectivity: Mapping[str, ConnectionStatus]


Listener = Callable[[StateChange], None]


@dataclass(frozen=True)
class _ListenerEntry:
    callback: Listener
    network: Optional[str]
    token: Optional[str]

    def matches(self, change: StateChange) -> bool:
        if self.network is None and self.token is None:
            return True
        if change.kind is SliceKind.NETWORK:
            return self.network == change.key
        return self.token == change.key


class Subscription:
    """Handle returned by AggregateState.subscribe."""

    def __init__(self, state: "AggregateState", listener_id: int):
        self._state = state
        self._listener_id = listener_id
        self.active = True

    def unsubscribe(self) -> None:
        """Stop receiving notifications. Safe to call more than once."""
        if self.active:
            self._state._remove_listener(self._listener_id)
            self.active = False


class AggregateState:
    """Subscribable state for every tracked network and token."""

    def __init__(
        self,
        network_ids: Iterable[str],
        tokens: Iterable[str],
        capacity: int = DEFAULT_CAPACITY,
        clock: Callable[[], int] = now_ms,
    ):
        self.logger = logger
        self._clock = clock
        self._lock = threading.Lock()

        network_ids = list(network_ids)
        self._store = TimeSeriesStore(capacity=capacity, network_ids=network_ids)
        self._networks: dict[str, NetworkState] = {nid: NetworkState() for nid in network_ids}
        self._connectivity: dict[str, ConnectionStatus] = {
            nid: ConnectionStatus.DISCONNECTED for nid in network_ids
        }
        self._tokens: dict[str, TokenPrice] = {token: TokenPrice() for token in tokens}

        self._listeners: dict[int, _ListenerEntry] = {}
        self._listener_ids = itertools.count(1)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @property
    def capacity(self) -> int:
        return self._store.capacity

    def snapshot(self) -> StateSnapshot:
        """Read-only snapshot of the whole state."""
        with self._lock:
            return StateSnapshot(
                networks=MappingProxyType(self._networks),
                tokens=MappingProxyType(self._tokens),
                connectivity=MappingProxyType(self._connectivity),
            )

    def network(self, network_id: str) -> NetworkState:
        """Current NetworkState for one network."""
        return self._networks[network_id]

    def history(self, network_id: str) -> tuple[Observation, ...]:
        """Ordered copy of a network's observation history."""
        self._require_network(network_id)
        return self._store.snapshot(network_id)

    def token_price(self, token: str) -> TokenPrice:
        """Current TokenPrice for one token."""
        return self._tokens[token]

    def connectivity(self, network_id: str) -> ConnectionStatus:
        """Connection status of one network."""
        return self._connectivity[network_id]

    def is_connected(self, network_id: Optional[str] = None) -> bool:
        """True if the network (or, without an id, any network) is connected."""
        if network_id is not None:
            return self._connectivity[network_id] is ConnectionStatus.CONNECTED
        return any(status is ConnectionStatus.CONNECTED for status in self._connectivity.values())

    @property
    def network_ids(self) -> list[str]:
        return list(self._networks)

    @property
    def tokens(self) -> list[str]:
        return list(self._tokens)

    # ------------------------------------------------------------------
    # Updates
    # ------------------------------------------------------------------

    def set_network_fee(self, network_id: str, base_fee: float, priority_fee: float) -> NetworkState:
        """Set the current fee components without touching history."""
        with self._lock:
            self._require_network(network_id)
            old = self._networks[network_id]
            new = replace(
                old,
                current_base_fee=base_fee,
                current_priority_fee=priority_fee,
                last_update=self._clock(),
            )
            self._networks = {**self._networks, network_id: new}

        self._notify(StateChange(SliceKind.NETWORK, network_id, "fees", old, new))
        return new

    def append_observation(self, network_id: str, observation: Observation) -> NetworkState:
        """
        Append an observation to a network's history and adopt its fees.

        Raises:
            TemporalDataError: If the observation is older than the history tail
        """
        with self._lock:
            self._require_network(network_id)
            self._store.append(network_id, observation)
            old = self._networks[network_id]
            new = NetworkState(
                current_base_fee=observation.base_fee,
                current_priority_fee=observation.priority_fee,
                history=self._store.snapshot(network_id),
                last_update=self._clock(),
            )
            self._networks = {**self._networks, network_id: new}

        self._notify(StateChange(SliceKind.NETWORK, network_id, "history", old, new))
        return new

    def set_token_price(self, token: str, price: TokenPrice) -> bool:
        """
        Write a token price.

        A validated price older than the stored accepted price is ignored, and
        a fallback never replaces an accepted price.

        Returns:
            True if the price became the active value
        """
        with self._lock:
            if token not in self._tokens:
                raise KeyError(f"Unknown token: {token}")
            old = self._tokens[token]

            if old.has_accepted_value:
                if price.is_fallback:
                    return False
                if price.last_updated_at < old.last_updated_at:
                    self.logger.debug(
                        "Ignoring stale price write",
                        token=token,
                        stored_at=old.last_updated_at,
                        fetched_at=price.last_updated_at
                    )
                    return False

            self._tokens = {**self._tokens, token: price}

        self._notify(StateChange(SliceKind.TOKEN, token, "price", old, price))
        return True

    def set_connectivity(self, network_id: str, status: ConnectionStatus) -> None:
        """Record a network's connection status."""
        with self._lock:
            self._require_network(network_id)
            old = self._connectivity[network_id]
            if old is status:
                return
            self._connectivity = {**self._connectivity, network_id: status}

        self._notify(StateChange(SliceKind.NETWORK, network_id, "connectivity", old, status))

    def reset_network(self, network_id: str) -> None:
        """Drop a network's history and fees back to the initial state."""
        with self._lock:
            self._require_network(network_id)
            self._store.clear(network_id)
            old = self._networks[network_id]
            new = NetworkState()
            self._networks = {**self._networks, network_id: new}

        self._notify(StateChange(SliceKind.NETWORK, network_id, "history", old, new))

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(
        self,
        callback: Listener,
        network: Optional[str] = None,
        token: Optional[str] = None,
    ) -> Subscription:
        """
        Register a listener for state changes.

        Args:
            callback: Called synchronously with a StateChange after each update
            network: Only receive changes of this network
            token: Only receive changes of this token

        Returns:
            Subscription handle
        """
        if network is not None and token is not None:
            raise ValueError("Subscribe to a network or a token, not both")
        if network is not None:
            self._require_network(network)
        if token is not None and token not in self._tokens:
            raise KeyError(f"Unknown token: {token}")

        with self._lock:
            listener_id = next(self._listener_ids)
            self._listeners = {
                **self._listeners,
                listener_id: _ListenerEntry(callback, network, token),
            }

        return Subscription(self, listener_id)

    def clear_listeners(self) -> None:
        """Drop every registered listener."""
        with self._lock:
            self._listeners = {}

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def _remove_listener(self, listener_id: int) -> None:
        with self._lock:
            self._listeners = {k: v for k, v in self._listeners.items() if k != listener_id}

    def _notify(self, change: StateChange) -> None:
        for entry in self._listeners.values():
            if not entry.matches(change):
                continue
            try:
                entry.callback(change)
            except Exception as e:
                self.logger.error(
                    "State listener raised",
                    kind=change.kind.value,
                    key=change.key,
                    field=change.field,
                    error=str(e),
                    exc_info=True
                )

    def _require_network(self, network_id: str) -> None:
        if network_id not in self._networks:
            raise KeyError(f"Unknown network: {network_id}")
