"""Configuration validation utilities."""

from dataclasses import dataclass
from typing import Any
from urllib.parse import urlparse

from ..metrics.candles import TIMEFRAMES, VALUE_FIELDS

PRICE_SOURCES = ("chainlink", "uniswap_v3")


@dataclass(frozen=True)
class ConfigIssue:
    """Represents a configuration validation problem."""
    field: str
    message: str
    value: Any


class ConfigValidator:
    """Validates merged configuration dictionaries."""

    @staticmethod
    def validate_network_params(network_id: str, params: dict[str, Any]) -> list[ConfigIssue]:
        """Validate one network entry."""
        errors = []
        prefix = f"networks.{network_id}"

        endpoint = params.get("endpoint")
        parsed = urlparse(endpoint) if isinstance(endpoint, str) else None
        if parsed is None or parsed.scheme not in ("ws", "wss") or not parsed.netloc:
            errors.append(ConfigIssue(
                field=f"{prefix}.endpoint",
                message="Must be a ws:// or wss:// URL",
                value=endpoint
            ))

        value = params.get("priority_fee_gwei")
        if not isinstance(value, (int, float)) or isinstance(value, bool) or value < 0:
            errors.append(ConfigIssue(
                field=f"{prefix}.priority_fee_gwei",
                message="Must be a non-negative number",
                value=value
            ))

        if not params.get("native_token"):
            errors.append(ConfigIssue(
                field=f"{prefix}.native_token",
                message="Must name the token fees are paid in",
                value=params.get("native_token")
            ))

        return errors

    @staticmethod
    def validate_price_feed_params(token: str, params: dict[str, Any]) -> list[ConfigIssue]:
        """Validate one price feed entry."""
        errors = []
        prefix = f"price_feeds.{token}"

        source = params.get("source")
        if source not in PRICE_SOURCES:
            errors.append(ConfigIssue(
                field=f"{prefix}.source",
                message=f"Must be one of {', '.join(PRICE_SOURCES)}",
                value=source
            ))

        address = params.get("address")
        if not isinstance(address, str) or not address.startswith("0x") or len(address) != 42:
            errors.append(ConfigIssue(
                field=f"{prefix}.address",
                message="Must be a 0x-prefixed 20-byte hex address",
                value=address
            ))

        min_value = params.get("min_value")
        max_value = params.get("max_value")
        if not isinstance(min_value, (int, float)) or not isinstance(max_value, (int, float)) \
                or min_value <= 0 or max_value <= min_value:
            errors.append(ConfigIssue(
                field=f"{prefix}.min_value",
                message="Range must satisfy 0 < min_value < max_value",
                value=(min_value, max_value)
            ))
        else:
            fallback = params.get("fallback_value")
            if not isinstance(fallback, (int, float)) or not min_value <= fallback <= max_value:
                errors.append(ConfigIssue(
                    field=f"{prefix}.fallback_value",
                    message="Must lie inside [min_value, max_value]",
                    value=fallback
                ))

        interval = params.get("interval_seconds")
        if not isinstance(interval, (int, float)) or interval <= 0:
            errors.append(ConfigIssue(
                field=f"{prefix}.interval_seconds",
                message="Must be a positive number",
                value=interval
            ))

        watch_swaps = params.get("watch_swaps", False)
        if not isinstance(watch_swaps, bool):
            errors.append(ConfigIssue(
                field=f"{prefix}.watch_swaps",
                message="Must be true or false",
                value=watch_swaps
            ))
        elif watch_swaps and source == "chainlink":
            errors.append(ConfigIssue(
                field=f"{prefix}.watch_swaps",
                message="Swap events exist only for uniswap_v3 sources",
                value=watch_swaps
            ))

        return errors

    @staticmethod
    def validate_store_params(params: dict[str, Any]) -> list[ConfigIssue]:
        """Validate rolling history parameters."""
        errors = []

        for name in ("history_capacity", "head_queue_size"):
            if name in params:
                value = params[name]
                if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
                    errors.append(ConfigIssue(
                        field=f"store.{name}",
                        message="Must be a positive integer",
                        value=value
                    ))

        return errors

    @staticmethod
    def validate_config(config: dict[str, Any]) -> list[ConfigIssue]:
        """Validate complete configuration."""
        errors = []

        for network_id, params in config.get("networks", {}).items():
            errors.extend(ConfigValidator.validate_network_params(network_id, params or {}))

        network_ids = set(config.get("networks", {}))
        for token, params in config.get("price_feeds", {}).items():
            errors.extend(ConfigValidator.validate_price_feed_params(token, params or {}))
            if params and params.get("network_id") not in network_ids:
                errors.append(ConfigIssue(
                    field=f"price_feeds.{token}.network_id",
                    message="Must reference a configured network",
                    value=params.get("network_id")
                ))

        errors.extend(ConfigValidator.validate_store_params(config.get("store", {})))

        for name, value in config.get("timeouts", {}).items():
            if not isinstance(value, (int, float)) or value <= 0:
                errors.append(ConfigIssue(
                    field=f"timeouts.{name}",
                    message="Must be a positive number of seconds",
                    value=value
                ))

        timeframe = config.get("candles", {}).get("default_timeframe")
        if timeframe is not None and timeframe not in TIMEFRAMES:
            errors.append(ConfigIssue(
                field="candles.default_timeframe",
                message=f"Must be one of {', '.join(TIMEFRAMES)}",
                value=timeframe
            ))

        value_field = config.get("candles", {}).get("value_field")
        if value_field is not None and value_field not in VALUE_FIELDS:
            errors.append(ConfigIssue(
                field="candles.value_field",
                message=f"Must be one of {', '.join(VALUE_FIELDS)}",
                value=value_field
            ))

        return errors
