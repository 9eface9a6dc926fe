"""Transaction cost estimates across networks"""

from collections.abc import Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from ..config.defaults import NetworkParams
from ..data.parsers import WEI_PER_GWEI

if TYPE_CHECKING:
    from ..state.aggregate import StateSnapshot


@dataclass(frozen=True)
class CostEstimate:
    """Cost of one transaction on one network"""
    network_id: str
    token: str
    gas_price_gwei: float
    gas_cost_token: float
    gas_cost_usd: float
    total_cost_token: float
    total_cost_usd: float
    token_price: float


def estimate_cost(
    network: NetworkParams,
    gas_price_gwei: float,
    token_price: float,
    gas_limit: int = 21000,
    tx_value: float = 0.0,
) -> CostEstimate:
    """
    Estimate the cost of a transaction on a single network

    gas_cost = gas_price_gwei * gas_limit / 1e9 (native token units)

    Args:
        network: Network parameters (for the native token)
        gas_price_gwei: Base plus priority fee
        token_price: USD price of the native token
        gas_limit: Gas units consumed
        tx_value: Value transferred, in native token units

    Returns:
        CostEstimate in native token and USD
    """
    if gas_limit <= 0:
        raise ValueError(f"gas_limit must be positive, got {gas_limit}")
    if tx_value < 0:
        raise ValueError(f"tx_value must be non-negative, got {tx_value}")

    gas_cost_token = gas_price_gwei * gas_limit / WEI_PER_GWEI
    total_cost_token = tx_value + gas_cost_token

    return CostEstimate(
        network_id=network.network_id,
        token=network.native_token,
        gas_price_gwei=gas_price_gwei,
        gas_cost_token=gas_cost_token,
        gas_cost_usd=gas_cost_token * token_price,
        total_cost_token=total_cost_token,
        total_cost_usd=total_cost_token * token_price,
        token_price=token_price,
    )


def simulate_costs(
    snapshot: "StateSnapshot",
    networks: Iterable[NetworkParams],
    gas_limit: int = 21000,
    tx_value: float = 0.0,
) -> list[CostEstimate]:
    """Estimate transaction costs for every network using current fees and prices"""
    estimates = []

    for network in networks:
        state = snapshot.networks.get(network.network_id)
        price = snapshot.tokens.get(network.native_token)
        gas_price = state.current_total_fee if state is not None else 0.0
        token_price = price.value if price is not None else 0.0

        estimates.append(estimate_cost(network, gas_price, token_price, gas_limit, tx_value))

    return estimates


def cheapest(estimates: Iterable[CostEstimate]) -> Optional[CostEstimate]:
    """Estimate with the lowest USD gas cost, None if there are none"""
    return min(estimates, key=lambda estimate: estimate.gas_cost_usd, default=None)
