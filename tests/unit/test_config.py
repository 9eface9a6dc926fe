"""Unit tests for configuration management."""

from pathlib import Path

import pytest

from gastrack.config.defaults import EngineConfig, get_default_config
from gastrack.config.loader import ConfigLoader
from gastrack.config.validation import ConfigValidator


class TestDefaultConfig:
    """Test suite for default configuration."""

    def test_default_config_creation(self) -> None:
        """Test that default configuration can be created."""
        config = get_default_config()

        assert config.network_ids == ["ethereum", "polygon", "arbitrum"]
        assert config.tokens == ["ETH", "MATIC"]
        assert config.store.history_capacity == 96
        assert config.candles.default_timeframe == "15m"

    def test_priority_fees(self) -> None:
        config = get_default_config()

        assert config.network("ethereum").priority_fee_gwei == 2.0
        assert config.network("polygon").priority_fee_gwei == 30.0
        assert config.network("arbitrum").priority_fee_gwei == 0.1

    def test_price_feed_ranges(self) -> None:
        config = get_default_config()
        eth = config.price_feed("ETH")
        matic = config.price_feed("MATIC")

        assert (eth.min_value, eth.max_value, eth.fallback_value) == (500.0, 10000.0, 2500.0)
        assert (matic.min_value, matic.max_value, matic.fallback_value) == (0.05, 5.0, 0.85)
        assert eth.source == "uniswap_v3"
        assert matic.source == "chainlink"

    def test_unknown_lookups(self) -> None:
        config = get_default_config()
        with pytest.raises(KeyError):
            config.network("solana")
        with pytest.raises(KeyError):
            config.price_feed("BTC")


class TestConfigLoader:
    """Test suite for configuration loader."""

    def test_config_loader_creation(self) -> None:
        """Test that ConfigLoader can be created."""
        loader = ConfigLoader.create()
        assert isinstance(loader.config_dir, Path)
        assert loader.config_dir.name == "config"

    def test_round_trip_of_defaults(self, tmp_path) -> None:
        """With no file, env or overrides the defaults come back unchanged."""
        loader = ConfigLoader.create(tmp_path, environ={})
        assert loader.load() == EngineConfig()

    def test_repository_config_is_valid(self) -> None:
        loader = ConfigLoader.create(environ={})
        merged = loader.merge_config()

        assert ConfigValidator.validate_config(merged) == []
        config = loader.build(merged)
        assert config.price_feed("ETH").interval_seconds == 30
        assert config.price_feed("ETH").watch_swaps

    def test_yaml_overrides_defaults(self, tmp_path) -> None:
        (tmp_path / "networks.yaml").write_text(
            "networks:\n"
            "  polygon:\n"
            "    priority_fee_gwei: 45.0\n"
            "store:\n"
            "  history_capacity: 48\n"
        )
        config = ConfigLoader.create(tmp_path, environ={}).load()

        assert config.network("polygon").priority_fee_gwei == 45.0
        # Untouched fields keep their defaults
        assert config.network("polygon").native_token == "MATIC"
        assert config.store.history_capacity == 48
        assert config.store.head_queue_size == 64

    def test_yaml_can_add_network(self, tmp_path) -> None:
        (tmp_path / "networks.yaml").write_text(
            "networks:\n"
            "  base:\n"
            "    endpoint: wss://base-rpc.publicnode.com\n"
            "    native_token: ETH\n"
            "    priority_fee_gwei: 0.05\n"
        )
        config = ConfigLoader.create(tmp_path, environ={}).load()

        assert config.network_ids[-1] == "base"
        assert config.network("base").endpoint_env == ""

    def test_env_overrides_yaml(self, tmp_path) -> None:
        (tmp_path / "networks.yaml").write_text(
            "networks:\n"
            "  polygon:\n"
            "    endpoint: wss://yaml.example/ws\n"
        )
        loader = ConfigLoader.create(tmp_path, environ={"POLYGON_WS_URL": "wss://env.example/ws"})

        assert loader.load().network("polygon").endpoint == "wss://env.example/ws"

    def test_empty_env_value_ignored(self, tmp_path) -> None:
        loader = ConfigLoader.create(tmp_path, environ={"ETHEREUM_WS_URL": ""})
        assert loader.load().network("ethereum").endpoint == "wss://ethereum-rpc.publicnode.com"

    def test_explicit_overrides_win(self, tmp_path) -> None:
        loader = ConfigLoader.create(tmp_path, environ={"POLYGON_WS_URL": "wss://env.example/ws"})
        config = loader.load({"networks": {"polygon": {"endpoint": "wss://override.example/ws"}}})

        assert config.network("polygon").endpoint == "wss://override.example/ws"

    def test_unknown_keys_ignored(self, tmp_path) -> None:
        (tmp_path / "networks.yaml").write_text(
            "timeouts:\n"
            "  rpc_timeout_seconds: 5\n"
            "  note: not a field\n"
        )
        config = ConfigLoader.create(tmp_path, environ={}).load()
        assert config.timeouts.rpc_timeout_seconds == 5

    def test_empty_yaml_file(self, tmp_path) -> None:
        (tmp_path / "networks.yaml").write_text("")
        assert ConfigLoader.create(tmp_path, environ={}).load_file_config() == {}


class TestConfigValidator:
    """Test suite for configuration validation."""

    def _merged(self, tmp_path, overrides):
        return ConfigLoader.create(tmp_path, environ={}).merge_config(overrides)

    def test_defaults_are_valid(self, tmp_path) -> None:
        assert ConfigValidator.validate_config(self._merged(tmp_path, None)) == []

    def test_bad_endpoint(self, tmp_path) -> None:
        merged = self._merged(tmp_path, {"networks": {"ethereum": {"endpoint": "https://rpc.example"}}})
        issues = ConfigValidator.validate_config(merged)

        assert [issue.field for issue in issues] == ["networks.ethereum.endpoint"]

    def test_negative_priority_fee(self, tmp_path) -> None:
        merged = self._merged(tmp_path, {"networks": {"arbitrum": {"priority_fee_gwei": -1}}})
        issues = ConfigValidator.validate_config(merged)

        assert issues[0].field == "networks.arbitrum.priority_fee_gwei"

    def test_added_network_missing_priority_fee(self, tmp_path) -> None:
        merged = self._merged(tmp_path, {"networks": {"base": {
            "endpoint": "wss://base-rpc.publicnode.com",
            "native_token": "ETH",
        }}})
        issues = ConfigValidator.validate_config(merged)

        assert [issue.field for issue in issues] == ["networks.base.priority_fee_gwei"]
        assert issues[0].value is None

    def test_inverted_price_range(self, tmp_path) -> None:
        merged = self._merged(tmp_path, {"price_feeds": {"ETH": {"min_value": 20000.0}}})
        fields = [issue.field for issue in ConfigValidator.validate_config(merged)]

        assert "price_feeds.ETH.min_value" in fields

    def test_fallback_outside_range(self, tmp_path) -> None:
        merged = self._merged(tmp_path, {"price_feeds": {"MATIC": {"fallback_value": 10.0}}})
        fields = [issue.field for issue in ConfigValidator.validate_config(merged)]

        assert fields == ["price_feeds.MATIC.fallback_value"]

    def test_bad_source_and_address(self, tmp_path) -> None:
        merged = self._merged(tmp_path, {"price_feeds": {"ETH": {"source": "pyth", "address": "0x123"}}})
        fields = {issue.field for issue in ConfigValidator.validate_config(merged)}

        assert fields == {"price_feeds.ETH.source", "price_feeds.ETH.address"}

    def test_feed_on_unknown_network(self, tmp_path) -> None:
        merged = self._merged(tmp_path, {"price_feeds": {"ETH": {"network_id": "solana"}}})
        fields = [issue.field for issue in ConfigValidator.validate_config(merged)]

        assert fields == ["price_feeds.ETH.network_id"]

    def test_watch_swaps_needs_pool_source(self, tmp_path) -> None:
        merged = self._merged(tmp_path, {"price_feeds": {"MATIC": {"watch_swaps": True}}})
        fields = [issue.field for issue in ConfigValidator.validate_config(merged)]

        assert fields == ["price_feeds.MATIC.watch_swaps"]

    def test_watch_swaps_must_be_boolean(self, tmp_path) -> None:
        merged = self._merged(tmp_path, {"price_feeds": {"ETH": {"watch_swaps": "yes"}}})
        fields = [issue.field for issue in ConfigValidator.validate_config(merged)]

        assert fields == ["price_feeds.ETH.watch_swaps"]

    def test_store_timeouts_and_candles(self, tmp_path) -> None:
        merged = self._merged(tmp_path, {
            "store": {"history_capacity": 0},
            "timeouts": {"rpc_timeout_seconds": 0},
            "candles": {"default_timeframe": "7m", "value_field": "volume"},
        })
        fields = {issue.field for issue in ConfigValidator.validate_config(merged)}

        assert fields == {
            "store.history_capacity",
            "timeouts.rpc_timeout_seconds",
            "candles.default_timeframe",
            "candles.value_field",
        }
