"""Default configuration parameters for the fee ingestion engine."""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class NetworkParams:
    """Per-network connection and fee parameters."""
    network_id: str
    endpoint: str                                    # WebSocket JSON-RPC endpoint
    native_token: str                                # Token used to pay fees
    priority_fee_gwei: float                         # Fixed tip added to every observation
    endpoint_env: str = ""                           # Env var overriding the endpoint


@dataclass(frozen=True)
class PriceFeedParams:
    """Oracle price feed parameters for one token."""
    token: str
    source: str                                      # "chainlink" or "uniswap_v3"
    address: str                                     # Aggregator or pool contract
    min_value: float                                 # Inclusive plausible range
    max_value: float
    fallback_value: float                            # Used until a fetch is accepted
    interval_seconds: float = 60.0                   # Poll period
    network_id: str = "ethereum"                     # Network the contract lives on

    # Uniswap V3 pool layout (ignored for chainlink)
    token0_decimals: int = 6
    token1_decimals: int = 18
    base_is_token0: bool = False                     # Priced token sits in slot token0
    watch_swaps: bool = False                        # Also price from Swap events between polls


@dataclass(frozen=True)
class StoreParams:
    """Rolling history parameters."""
    history_capacity: int = 96                       # 24h of 15-minute points
    head_queue_size: int = 64                        # Pending heads per network


@dataclass(frozen=True)
class TimeoutParams:
    """Bounded waits for every suspending RPC call."""
    rpc_timeout_seconds: float = 10.0
    connect_timeout_seconds: float = 15.0


@dataclass(frozen=True)
class CandleParams:
    """Candle aggregation parameters."""
    default_timeframe: str = "15m"
    value_field: str = "total_fee"


@dataclass(frozen=True)
class SimulationParams:
    """Transaction cost simulation defaults."""
    gas_limit: int = 21000
    tx_value: float = 0.0


DEFAULT_NETWORKS = (
    NetworkParams(
        network_id="ethereum",
        endpoint="wss://ethereum-rpc.publicnode.com",
        native_token="ETH",
        priority_fee_gwei=2.0,
        endpoint_env="ETHEREUM_WS_URL",
    ),
    NetworkParams(
        network_id="polygon",
        endpoint="wss://polygon-bor-rpc.publicnode.com",
        native_token="MATIC",
        priority_fee_gwei=30.0,
        endpoint_env="POLYGON_WS_URL",
    ),
    NetworkParams(
        network_id="arbitrum",
        endpoint="wss://arbitrum-one-rpc.publicnode.com",
        native_token="ETH",
        priority_fee_gwei=0.1,
        endpoint_env="ARBITRUM_WS_URL",
    ),
)

DEFAULT_PRICE_FEEDS = (
    # ETH/USDC 0.05% pool: token0 = USDC, token1 = WETH
    PriceFeedParams(
        token="ETH",
        source="uniswap_v3",
        address="0x88e6A0c2dDD26FEEb64F039a2c41296FcB3f5640",
        min_value=500.0,
        max_value=10000.0,
        fallback_value=2500.0,
        interval_seconds=30.0,
        token0_decimals=6,
        token1_decimals=18,
        base_is_token0=False,
        watch_swaps=True,
    ),
    # Chainlink MATIC/USD aggregator
    PriceFeedParams(
        token="MATIC",
        source="chainlink",
        address="0x7bAC85A8a13A4BcD8abb3eB7d6b4d632c5a57676",
        min_value=0.05,
        max_value=5.0,
        fallback_value=0.85,
        interval_seconds=60.0,
    ),
)


@dataclass(frozen=True)
class EngineConfig:
    """Complete engine configuration."""
    networks: tuple[NetworkParams, ...] = DEFAULT_NETWORKS
    price_feeds: tuple[PriceFeedParams, ...] = DEFAULT_PRICE_FEEDS
    store: StoreParams = field(default_factory=StoreParams)
    timeouts: TimeoutParams = field(default_factory=TimeoutParams)
    candles: CandleParams = field(default_factory=CandleParams)
    simulation: SimulationParams = field(default_factory=SimulationParams)

    def network(self, network_id: str) -> NetworkParams:
        """Look up a network by id."""
        for params in self.networks:
            if params.network_id == network_id:
                return params
        raise KeyError(f"Unknown network: {network_id}")

    def price_feed(self, token: str) -> PriceFeedParams:
        """Look up a price feed by token symbol."""
        for params in self.price_feeds:
            if params.token == token:
                return params
        raise KeyError(f"Unknown token: {token}")

    @property
    def network_ids(self) -> list[str]:
        return [params.network_id for params in self.networks]

    @property
    def tokens(self) -> list[str]:
        return [params.token for params in self.price_feeds]


def get_default_config() -> EngineConfig:
    """Get the default configuration instance."""
    return EngineConfig()
