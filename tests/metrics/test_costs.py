"""Tests for transaction cost simulation."""

import pytest

from gastrack.data.models import Observation, TokenPrice
from gastrack.metrics.costs import cheapest, estimate_cost, simulate_costs


class TestEstimateCost:
    """Test suite for estimate_cost()."""

    def test_simple_transfer(self, default_config):
        """30 gwei * 21000 gas = 0.00063 ETH."""
        estimate = estimate_cost(default_config.network("ethereum"), 30.0, 2500.0)

        assert estimate.network_id == "ethereum"
        assert estimate.token == "ETH"
        assert estimate.gas_cost_token == pytest.approx(0.00063)
        assert estimate.gas_cost_usd == pytest.approx(1.575)
        assert estimate.total_cost_token == pytest.approx(0.00063)

    def test_value_added_to_total(self, default_config):
        estimate = estimate_cost(default_config.network("polygon"), 100.0, 0.5,
                                 gas_limit=50_000, tx_value=10.0)

        assert estimate.token == "MATIC"
        assert estimate.gas_cost_token == pytest.approx(0.005)
        assert estimate.total_cost_token == pytest.approx(10.005)
        assert estimate.total_cost_usd == pytest.approx(5.0025)

    def test_invalid_gas_limit(self, default_config):
        with pytest.raises(ValueError):
            estimate_cost(default_config.network("ethereum"), 30.0, 2500.0, gas_limit=0)

    def test_negative_value(self, default_config):
        with pytest.raises(ValueError):
            estimate_cost(default_config.network("ethereum"), 30.0, 2500.0, tx_value=-1.0)


class TestSimulateCosts:
    """Test suite for simulate_costs() and cheapest()."""

    def test_uses_current_fees_and_prices(self, state, default_config):
        state.append_observation("ethereum", Observation(1000, 28.0, 2.0))
        state.append_observation("polygon", Observation(1000, 70.0, 30.0))
        state.set_token_price("ETH", TokenPrice(value=2000.0, last_updated_at=1))
        state.set_token_price("MATIC", TokenPrice(value=0.5, last_updated_at=1))

        estimates = simulate_costs(state.snapshot(), default_config.networks)
        by_network = {e.network_id: e for e in estimates}

        assert [e.network_id for e in estimates] == ["ethereum", "polygon", "arbitrum"]
        assert by_network["ethereum"].gas_price_gwei == 30.0
        assert by_network["ethereum"].gas_cost_usd == pytest.approx(1.26)
        assert by_network["polygon"].gas_cost_usd == pytest.approx(0.00105)
        # Arbitrum has no observations yet, its ETH price is shared
        assert by_network["arbitrum"].gas_cost_usd == 0.0
        assert by_network["arbitrum"].token_price == 2000.0

    def test_cheapest(self, state, default_config):
        state.append_observation("ethereum", Observation(1000, 28.0, 2.0))
        state.append_observation("polygon", Observation(1000, 70.0, 30.0))
        state.append_observation("arbitrum", Observation(1000, 0.01, 0.1))
        state.set_token_price("ETH", TokenPrice(value=2000.0, last_updated_at=1))
        state.set_token_price("MATIC", TokenPrice(value=0.5, last_updated_at=1))

        best = cheapest(simulate_costs(state.snapshot(), default_config.networks))

        assert best.network_id == "polygon"

    def test_cheapest_empty(self):
        assert cheapest([]) is None
