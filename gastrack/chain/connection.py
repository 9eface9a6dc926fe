"""
Per-network live-data connections.

Each connected network owns a ConnectionRecord holding its head subscription,
a bounded head queue and two tasks: a reader that moves heights from the
subscription into the queue, and a single worker that drains the queue in
arrival order into BlockIngestor. Only ConnectionManager creates or releases
these resources.
"""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from typing import Optional

from ..data.models import ConnectionStatus
from ..errors import ChainConnectionError
from ..logging.config import get_ingest_logger, log_connection_transition
from ..state.aggregate import AggregateState
from ..utils.time import now_ms
from .client import ChainClient, HeadSubscription
from .ingestor import BlockIngestor

logger = get_ingest_logger(__name__)

_STOP = object()

ConnectedHook = Callable[[str], None]


@dataclass(frozen=True)
class ConnectionOutcome:
    """Result of a connect() call."""
    network_id: str
    status: ConnectionStatus
    reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status is ConnectionStatus.CONNECTED


@dataclass
class ConnectionRecord:
    """Resources owned by one network connection."""
    network_id: str
    endpoint: str
    status: ConnectionStatus = ConnectionStatus.DISCONNECTED
    subscription: Optional[HeadSubscription] = None
    queue: Optional[asyncio.Queue] = None
    reader_task: Optional[asyncio.Task] = None
    worker_task: Optional[asyncio.Task] = None
    last_error: Optional[str] = None
    connected_at: Optional[int] = None
    dropped_heads: int = 0
    closing: bool = False


class ConnectionManager:
    """Owns connect/disconnect/status for every network's head subscription."""

    def __init__(
        self,
        client: ChainClient,
        ingestor: BlockIngestor,
        state: AggregateState,
        connect_timeout: float = 15.0,
        queue_size: int = 64,
    ):
        self.client = client
        self.ingestor = ingestor
        self.state = state
        self.connect_timeout = connect_timeout
        self.queue_size = queue_size
        self.logger = logger

        self._records: dict[str, ConnectionRecord] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._hooks: list[ConnectedHook] = []
        self._closed = False

    def add_connected_hook(self, hook: ConnectedHook) -> None:
        """Register a callback invoked with the network id after each successful connect."""
        self._hooks.append(hook)

    def status(self, network_id: str) -> ConnectionStatus:
        """Current status of a network's connection."""
        record = self._records.get(network_id)
        return record.status if record else ConnectionStatus.DISCONNECTED

    def record(self, network_id: str) -> Optional[ConnectionRecord]:
        """Connection record for a network, None if never connected."""
        return self._records.get(network_id)

    def statuses(self) -> dict[str, ConnectionStatus]:
        """Status of every network known to the state."""
        return {network_id: self.status(network_id) for network_id in self.state.network_ids}

    async def connect(self, network_id: str, endpoint: str) -> ConnectionOutcome:
        """
        Establish the head subscription for a network.

        A no-op while the network is connecting or connected. On failure the
        status becomes FAILED and the reason is returned; nothing is retried.

        Raises:
            KeyError: If the network is not part of the state
        """
        if network_id not in self.state.network_ids:
            raise KeyError(f"Unknown network: {network_id}")

        if self._closed:
            return ConnectionOutcome(network_id, self.status(network_id), "connection manager is shut down")

        async with self._lock(network_id):
            record = self._records.get(network_id)
            if record is not None and record.status in (ConnectionStatus.CONNECTED,
                                                        ConnectionStatus.CONNECTING):
                self.logger.debug("Already connected, skipping", network_id=network_id)
                return self._outcome(record)

            if record is not None:
                await self._release(record)

            record = ConnectionRecord(network_id=network_id, endpoint=endpoint)
            self._records[network_id] = record
            self._transition(record, ConnectionStatus.CONNECTING)

            try:
                subscription = await asyncio.wait_for(
                    self.client.subscribe_heads(network_id, endpoint),
                    self.connect_timeout,
                )
            except asyncio.TimeoutError:
                return self._fail(record, f"subscription timed out after {self.connect_timeout}s")
            except ChainConnectionError as e:
                return self._fail(record, str(e))
            except Exception as e:
                self.logger.error(
                    "Unexpected error establishing subscription",
                    network_id=network_id,
                    error=str(e),
                    exc_info=True
                )
                return self._fail(record, f"unexpected error: {e}")

            record.subscription = subscription
            record.queue = asyncio.Queue(maxsize=self.queue_size)
            record.worker_task = asyncio.create_task(
                self._drain(record), name=f"ingest-{network_id}"
            )
            record.reader_task = asyncio.create_task(
                self._read(record), name=f"heads-{network_id}"
            )
            record.connected_at = now_ms()
            record.last_error = None
            self._transition(record, ConnectionStatus.CONNECTED)

        for hook in self._hooks:
            try:
                hook(network_id)
            except Exception as e:
                self.logger.error("Connected hook raised", network_id=network_id, error=str(e))

        return self._outcome(record)

    async def disconnect(self, network_id: str) -> None:
        """Tear down a network's subscription and tasks. Safe to repeat."""
        async with self._lock(network_id):
            record = self._records.get(network_id)
            if record is None:
                return
            await self._release(record)
            if record.status is not ConnectionStatus.DISCONNECTED:
                self._transition(record, ConnectionStatus.DISCONNECTED)

    async def shutdown(self) -> None:
        """Disconnect every network and refuse new connections. Idempotent."""
        self._closed = True
        for network_id in list(self._records):
            await self.disconnect(network_id)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _lock(self, network_id: str) -> asyncio.Lock:
        return self._locks.setdefault(network_id, asyncio.Lock())

    def _outcome(self, record: ConnectionRecord) -> ConnectionOutcome:
        return ConnectionOutcome(record.network_id, record.status, record.last_error)

    def _fail(self, record: ConnectionRecord, reason: str) -> ConnectionOutcome:
        record.last_error = reason
        self._transition(record, ConnectionStatus.FAILED, reason)
        return self._outcome(record)

    def _transition(self, record: ConnectionRecord, status: ConnectionStatus,
                    reason: Optional[str] = None) -> None:
        old = record.status
        record.status = status
        self.state.set_connectivity(record.network_id, status)
        log_connection_transition(self.logger, record.network_id, old.value, status.value, reason)

    def _enqueue(self, record: ConnectionRecord, item: object) -> None:
        """Queue an item, dropping the oldest pending head when full."""
        try:
            record.queue.put_nowait(item)
        except asyncio.QueueFull:
            dropped = record.queue.get_nowait()
            record.queue.put_nowait(item)
            record.dropped_heads += 1
            self.logger.warning(
                "Head queue full, dropped oldest head",
                network_id=record.network_id,
                dropped_height=dropped,
                dropped_total=record.dropped_heads
            )

    async def _read(self, record: ConnectionRecord) -> None:
        """Move heights from the subscription into the head queue."""
        try:
            async for height in record.subscription:
                self._enqueue(record, height)
            reason = "head stream ended"
        except ChainConnectionError as e:
            reason = str(e)
        except Exception as e:
            self.logger.error(
                "Unexpected error reading heads",
                network_id=record.network_id,
                error=str(e),
                exc_info=True
            )
            reason = f"unexpected error: {e}"

        self._enqueue(record, _STOP)

        if not record.closing and record.status is ConnectionStatus.CONNECTED:
            record.last_error = reason
            self._transition(record, ConnectionStatus.DISCONNECTED, reason)

    async def _drain(self, record: ConnectionRecord) -> None:
        """Feed queued heights to the ingestor one at a time."""
        while True:
            height = await record.queue.get()
            if height is _STOP:
                return
            try:
                await self.ingestor.handle_head(record.network_id, height)
            except Exception as e:
                self.logger.error(
                    "Unexpected error ingesting head",
                    network_id=record.network_id,
                    height=height,
                    error=str(e),
                    exc_info=True
                )

    async def _release(self, record: ConnectionRecord) -> None:
        """Cancel tasks and close the subscription owned by a record."""
        record.closing = True
        tasks = [task for task in (record.reader_task, record.worker_task) if task is not None]

        for task in tasks:
            task.cancel()

        if record.subscription is not None:
            try:
                await record.subscription.close()
            except Exception as e:
                self.logger.warning(
                    "Error closing subscription",
                    network_id=record.network_id,
                    error=str(e)
                )

        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        record.subscription = None
        record.reader_task = None
        record.worker_task = None
        record.queue = None
