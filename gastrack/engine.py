"""
Main engine coordinator.

Wires configuration, chain client, aggregate state, block ingestion,
connection management and price polling, and exposes the consumer-facing
queries (candles, cost simulation, connectivity).
"""

import asyncio
from pathlib import Path
from typing import Optional

import structlog

from .chain.client import ChainClient, JsonRpcChainClient
from .chain.connection import ConnectionManager, ConnectionOutcome
from .chain.ingestor import BlockIngestor
from .config.defaults import EngineConfig
from .config.loader import ConfigLoader
from .config.validation import ConfigValidator
from .data.models import Candle, TokenPrice
from .metrics.candles import aggregate_timeframe
from .metrics.costs import CostEstimate, simulate_costs
from .prices.poller import PriceFeedPoller
from .state.aggregate import AggregateState

logger = structlog.get_logger(__name__)


class GasTrackerEngine:
    """
    Coordinator for the fee ingestion and aggregation pipeline.

    Manages the pipeline:
    Head notification → Block header → Observation → AggregateState → Candles
    Oracle poll → Range validation → AggregateState
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        client: Optional[ChainClient] = None,
        state: Optional[AggregateState] = None,
        config_dir: Optional[Path] = None,
    ) -> None:
        """
        Initialize the engine.

        Args:
            config: Explicit configuration; loaded from config_dir/env when omitted
            client: Chain client; a JsonRpcChainClient is built when omitted
            state: Aggregate state; a fresh one is built when omitted
            config_dir: Directory holding networks.yaml

        Raises:
            ValueError: If the loaded configuration fails validation
        """
        self.logger = logger

        if config is None:
            config = self._load_config(config_dir)
        self.config = config

        self.state = state or AggregateState(
            config.network_ids,
            config.tokens,
            capacity=config.store.history_capacity,
        )
        self.client = client or JsonRpcChainClient(
            endpoints={network.network_id: network.endpoint for network in config.networks},
            rpc_timeout=config.timeouts.rpc_timeout_seconds,
            connect_timeout=config.timeouts.connect_timeout_seconds,
        )

        self.ingestor = BlockIngestor(
            self.client,
            self.state,
            priority_fees={network.network_id: network.priority_fee_gwei for network in config.networks},
            fetch_timeout=config.timeouts.rpc_timeout_seconds,
        )
        self.connections = ConnectionManager(
            self.client,
            self.ingestor,
            self.state,
            connect_timeout=config.timeouts.connect_timeout_seconds,
            queue_size=config.store.head_queue_size,
        )
        self.poller = PriceFeedPoller(
            self.client,
            self.state,
            config.price_feeds,
            fetch_timeout=config.timeouts.rpc_timeout_seconds,
        )
        self.connections.add_connected_hook(self._on_network_connected)

        self._shut_down = False

        self.logger.info(
            "Gas tracker engine initialized",
            networks=config.network_ids,
            tokens=config.tokens,
            history_capacity=config.store.history_capacity
        )

    @staticmethod
    def _load_config(config_dir: Optional[Path]) -> EngineConfig:
        loader = ConfigLoader.create(config_dir)
        merged = loader.merge_config()

        issues = ConfigValidator.validate_config(merged)
        if issues:
            messages = [f"{issue.field}: {issue.message} (got: {issue.value})" for issue in issues]
            logger.error("Configuration validation failed", errors=messages)
            raise ValueError("Invalid configuration: " + "; ".join(messages))

        return loader.build(merged)

    async def start(self) -> dict[str, ConnectionOutcome]:
        """
        Connect every configured network, then start price polling.

        Returns:
            Connection outcome per network; failures do not stop other networks
        """
        outcomes = await asyncio.gather(*(
            self.connections.connect(network.network_id, network.endpoint)
            for network in self.config.networks
        ))
        self.poller.start()

        failed = [outcome.network_id for outcome in outcomes if not outcome.ok]
        self.logger.info(
            "Engine started",
            connected=[outcome.network_id for outcome in outcomes if outcome.ok],
            failed=failed
        )
        return {outcome.network_id: outcome for outcome in outcomes}

    async def shutdown(self) -> None:
        """Stop polling, drop every connection and listener. Safe to call twice."""
        await self.poller.stop()
        await self.connections.shutdown()
        await self.client.close()
        self.state.clear_listeners()

        if not self._shut_down:
            self._shut_down = True
            self.logger.info("Engine shut down")

    async def connect(self, network_id: str) -> ConnectionOutcome:
        """Manually (re)connect one network using its configured endpoint."""
        network = self.config.network(network_id)
        return await self.connections.connect(network_id, network.endpoint)

    async def disconnect(self, network_id: str) -> None:
        await self.connections.disconnect(network_id)

    async def refresh_prices(self) -> dict[str, TokenPrice]:
        """On-demand refresh of every token price."""
        return await self.poller.refresh_all()

    def candles(
        self,
        network_id: str,
        timeframe: Optional[str] = None,
        field: Optional[str] = None,
    ) -> list[Candle]:
        """Aggregate a network's current history into candles."""
        return aggregate_timeframe(
            self.state.history(network_id),
            timeframe or self.config.candles.default_timeframe,
            field or self.config.candles.value_field,
        )

    def simulate(self, gas_limit: Optional[int] = None, tx_value: Optional[float] = None) -> list[CostEstimate]:
        """Estimate transaction costs on every network from current state."""
        return simulate_costs(
            self.state.snapshot(),
            self.config.networks,
            gas_limit=gas_limit if gas_limit is not None else self.config.simulation.gas_limit,
            tx_value=tx_value if tx_value is not None else self.config.simulation.tx_value,
        )

    def connection_summary(self) -> dict[str, str]:
        """Status value per network."""
        return {network_id: status.value for network_id, status in self.connections.statuses().items()}

    def _on_network_connected(self, network_id: str) -> None:
        price_networks = {feed.network_id for feed in self.config.price_feeds}
        if self.poller.running and network_id in price_networks:
            self.poller.schedule_refresh_all()
            self.poller.ensure_swap_watchers()

    async def __aenter__(self) -> "GasTrackerEngine":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.shutdown()
