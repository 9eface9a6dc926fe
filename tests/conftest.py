"""Pytest configuration and shared fixtures."""

import asyncio
from typing import Any, Optional, Sequence

import pytest

from gastrack.config.defaults import EngineConfig, get_default_config
from gastrack.data.models import BlockHeader, Observation
from gastrack.errors import ChainConnectionError, FetchError
from gastrack.state.aggregate import AggregateState

NETWORKS = ["ethereum", "polygon", "arbitrum"]
TOKENS = ["ETH", "MATIC"]

# 2023-11-14T22:15:00Z, aligned to a 15-minute bucket
BASE_TS_MS = 1_700_000_100_000

_END = object()
_LOST = object()


class FakeSubscription:
    """Notification stream (heads or logs) driven by an asyncio.Queue."""

    def __init__(self, network_id: str, kind: str = "Head"):
        self.network_id = network_id
        self.kind = kind
        self.queue: asyncio.Queue = asyncio.Queue()
        self.closed = False

    def push(self, *items: Any) -> None:
        for item in items:
            self.queue.put_nowait(item)

    def lose(self) -> None:
        """Simulate the remote side dropping the subscription."""
        self.queue.put_nowait(_LOST)

    def end(self) -> None:
        self.queue.put_nowait(_END)

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        while True:
            item = await self.queue.get()
            if item is _END:
                return
            if item is _LOST:
                raise ChainConnectionError(f"{self.kind} subscription lost", network_id=self.network_id)
            yield item

    async def close(self) -> None:
        self.closed = True
        self.queue.put_nowait(_END)


class FakeChainClient:
    """In-memory ChainClient for tests."""

    def __init__(self):
        self.headers: dict[tuple[str, int], BlockHeader] = {}
        self.contract_results: dict[tuple[str, str], bytes] = {}
        self.subscriptions: dict[str, list[FakeSubscription]] = {}
        self.subscribe_errors: dict[str, Exception] = {}
        self.log_subscriptions: list[FakeSubscription] = []
        self.log_subscribe_error: Optional[Exception] = None
        self.subscribe_delay = 0.0
        self.header_delay = 0.0
        self.header_gate: Optional[asyncio.Event] = None

        self.subscribe_calls: list[tuple[str, str]] = []
        self.log_subscribe_calls: list[tuple[str, str, tuple[str, ...]]] = []
        self.header_calls: list[tuple[str, int]] = []
        self.contract_calls: list[tuple[str, str]] = []
        self.closed = False

    def add_header(self, network_id: str, number: int, timestamp: int,
                   base_fee_wei: Optional[int] = None) -> None:
        self.headers[(network_id, number)] = BlockHeader(number, timestamp, base_fee_wei)

    def subscription(self, network_id: str) -> FakeSubscription:
        """Most recent subscription for a network."""
        return self.subscriptions[network_id][-1]

    async def subscribe_heads(self, network_id: str, endpoint: str) -> FakeSubscription:
        self.subscribe_calls.append((network_id, endpoint))
        if self.subscribe_delay:
            await asyncio.sleep(self.subscribe_delay)
        error = self.subscribe_errors.get(network_id)
        if error is not None:
            raise error
        subscription = FakeSubscription(network_id)
        self.subscriptions.setdefault(network_id, []).append(subscription)
        return subscription

    async def subscribe_logs(self, network_id: str, address: str, topics: Sequence[str]) -> FakeSubscription:
        self.log_subscribe_calls.append((network_id, address, tuple(topics)))
        if self.log_subscribe_error is not None:
            raise self.log_subscribe_error
        subscription = FakeSubscription(network_id, kind="Log")
        self.log_subscriptions.append(subscription)
        return subscription

    async def get_block_header(self, network_id: str, height: int) -> BlockHeader:
        self.header_calls.append((network_id, height))
        if self.header_gate is not None:
            await self.header_gate.wait()
        if self.header_delay:
            await asyncio.sleep(self.header_delay)
        try:
            return self.headers[(network_id, height)]
        except KeyError:
            raise FetchError(f"Block {height} not found", network_id=network_id) from None

    async def call_contract(self, address: str, signature: str, args: Sequence[Any] = (),
                            network_id: Optional[str] = None) -> bytes:
        self.contract_calls.append((address, signature))
        try:
            return self.contract_results[(address, signature)]
        except KeyError:
            raise FetchError(f"eth_call to {address} failed", network_id=network_id) from None

    async def close(self) -> None:
        self.closed = True


class FakePriceSource:
    """PriceSource returning scripted values; the last value repeats."""

    def __init__(self, token: str, values: Sequence[Any], delay: float = 0.0):
        self.token = token
        self.values = list(values)
        self.delay = delay
        self.gate: Optional[asyncio.Event] = None
        self.calls = 0

    async def fetch(self) -> float:
        self.calls += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.delay:
            await asyncio.sleep(self.delay)
        value = self.values.pop(0) if len(self.values) > 1 else self.values[0]
        if isinstance(value, Exception):
            raise value
        return value


class FakeClock:
    """Manually advanced epoch-ms clock."""

    def __init__(self, start: int = BASE_TS_MS):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> int:
        self.now += ms
        return self.now


def make_observations(values: Sequence[float], start: int = BASE_TS_MS, step_ms: int = 12_000,
                      priority_fee: float = 0.0) -> list[Observation]:
    """Observations whose total_fee equals each value, spaced step_ms apart."""
    return [
        Observation(timestamp=start + i * step_ms, base_fee=value - priority_fee, priority_fee=priority_fee)
        for i, value in enumerate(values)
    ]


async def wait_until(predicate, timeout: float = 1.0) -> None:
    """Yield to the event loop until predicate() holds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.001)


@pytest.fixture
def default_config() -> EngineConfig:
    """Built-in default configuration."""
    return get_default_config()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def state(clock) -> AggregateState:
    """Aggregate state for the three default networks and two tokens."""
    return AggregateState(NETWORKS, TOKENS, capacity=96, clock=clock)


@pytest.fixture
def fake_client() -> FakeChainClient:
    return FakeChainClient()


@pytest.fixture
def eventually():
    """Async helper waiting for a condition on the running loop."""
    return wait_until


@pytest.fixture
def observations_factory():
    return make_observations


@pytest.fixture
def price_source_factory():
    return FakePriceSource
