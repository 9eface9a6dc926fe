"""Configuration loader with layered parameter precedence."""

import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml

from .defaults import (
    CandleParams,
    EngineConfig,
    NetworkParams,
    PriceFeedParams,
    SimulationParams,
    StoreParams,
    TimeoutParams,
    get_default_config,
)

CONFIG_FILENAME = "networks.yaml"


@dataclass(frozen=True)
class ConfigLoader:
    """Manages configuration loading with layered precedence."""

    config_dir: Path
    defaults: EngineConfig
    environ: Mapping[str, str]

    @classmethod
    def create(
        cls,
        config_dir: Optional[Path] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> "ConfigLoader":
        """Create a ConfigLoader instance."""
        if config_dir is None:
            config_dir = Path(__file__).parent.parent.parent / "config"

        return cls(
            config_dir=Path(config_dir),
            defaults=get_default_config(),
            environ=os.environ if environ is None else environ,
        )

    def load_file_config(self) -> dict[str, Any]:
        """Load overrides from the YAML config file, if present."""
        config_file = self.config_dir / CONFIG_FILENAME

        if not config_file.exists():
            return {}

        with open(config_file) as f:
            file_config = yaml.safe_load(f)

        return file_config or {}

    def load_env_config(self, config: dict[str, Any]) -> dict[str, Any]:
        """Collect endpoint overrides from the environment."""
        networks: dict[str, Any] = {}
        for network_id, params in config.get("networks", {}).items():
            env_name = params.get("endpoint_env")
            if env_name and self.environ.get(env_name):
                networks[network_id] = {"endpoint": self.environ[env_name]}
        return {"networks": networks} if networks else {}

    def merge_config(self, overrides: Optional[dict[str, Any]] = None) -> dict[str, Any]:
        """
        Merge configuration with layered precedence.

        Priority order:
        1. Explicit overrides (highest priority)
        2. Endpoint environment variables
        3. YAML config file
        4. Built-in defaults (lowest priority)
        """
        config = self.to_dict(self.defaults)
        config = self._deep_merge(config, self.load_file_config())
        config = self._deep_merge(config, self.load_env_config(config))

        if overrides:
            config = self._deep_merge(config, overrides)

        return config

    def load(self, overrides: Optional[dict[str, Any]] = None) -> EngineConfig:
        """Merge every layer and build an EngineConfig."""
        return self.build(self.merge_config(overrides))

    @staticmethod
    def to_dict(config: EngineConfig) -> dict[str, Any]:
        """Convert an EngineConfig into the keyed dictionary form used for merging."""
        return {
            "networks": {
                params.network_id: _without(asdict(params), "network_id")
                for params in config.networks
            },
            "price_feeds": {
                params.token: _without(asdict(params), "token")
                for params in config.price_feeds
            },
            "store": asdict(config.store),
            "timeouts": asdict(config.timeouts),
            "candles": asdict(config.candles),
            "simulation": asdict(config.simulation),
        }

    @staticmethod
    def build(config: dict[str, Any]) -> EngineConfig:
        """Build an EngineConfig from the keyed dictionary form."""
        networks = tuple(
            NetworkParams(network_id=network_id, **_known(NetworkParams, params))
            for network_id, params in config.get("networks", {}).items()
            if params is not None
        )
        price_feeds = tuple(
            PriceFeedParams(token=token, **_known(PriceFeedParams, params))
            for token, params in config.get("price_feeds", {}).items()
            if params is not None
        )

        return EngineConfig(
            networks=networks,
            price_feeds=price_feeds,
            store=StoreParams(**_known(StoreParams, config.get("store", {}))),
            timeouts=TimeoutParams(**_known(TimeoutParams, config.get("timeouts", {}))),
            candles=CandleParams(**_known(CandleParams, config.get("candles", {}))),
            simulation=SimulationParams(**_known(SimulationParams, config.get("simulation", {}))),
        )

    def _deep_merge(self, base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
        """Deep merge two dictionaries."""
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result


def _without(data: dict[str, Any], key: str) -> dict[str, Any]:
    return {k: v for k, v in data.items() if k != key}


def _known(cls: type, params: dict[str, Any]) -> dict[str, Any]:
    """Drop keys the dataclass does not declare (e.g. comments in YAML)."""
    names = {f.name for f in fields(cls)}
    return {k: v for k, v in params.items() if k in names}
