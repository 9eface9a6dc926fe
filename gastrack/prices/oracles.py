"""
On-chain USD price sources.

Two oracle kinds are supported: Chainlink aggregators (latestRoundData /
decimals) and Uniswap V3 pools (slot0 sqrtPriceX96). Both read through
ChainClient.call_contract and return a plain float; range validation is the
poller's job.

Uniswap Swap logs carry the post-swap sqrtPriceX96 and decode the same way.
"""

import asyncio
from collections.abc import Mapping
from typing import Any, Optional, Protocol

from eth_abi import decode
from eth_abi.exceptions import DecodingError

from ..chain.client import ChainClient, event_topic
from ..config.defaults import PriceFeedParams
from ..data.parsers import decode_hex_bytes
from ..errors import MalformedDataError

Q96 = 2 ** 96

LATEST_ROUND_DATA = "latestRoundData()"
DECIMALS = "decimals()"
SLOT0 = "slot0()"

ROUND_DATA_TYPES = ["uint80", "int256", "uint256", "uint256", "uint80"]
SLOT0_TYPES = ["uint160", "int24", "uint16", "uint16", "uint16", "uint8", "bool"]

SWAP_EVENT = "Swap(address,address,int256,int256,uint160,uint128,int24)"
SWAP_TOPIC = event_topic(SWAP_EVENT)
# Non-indexed Swap fields: amount0, amount1, sqrtPriceX96, liquidity, tick
SWAP_DATA_TYPES = ["int256", "int256", "uint160", "uint128", "int24"]


class PriceSource(Protocol):
    """Anything that can produce a USD price for one token."""

    token: str

    async def fetch(self) -> float: ...


def _decode(types: list[str], raw: bytes, what: str) -> tuple:
    try:
        return decode(types, raw)
    except DecodingError as e:
        raise MalformedDataError(
            f"Could not decode {what}: {e}",
            raw_data="0x" + raw.hex()[:128],
            expected_format=f"({','.join(types)})"
        ) from e


def decode_decimals(raw: bytes) -> int:
    """Decode a decimals() return value."""
    return _decode(["uint8"], raw, "decimals")[0]


def decode_round_answer(raw: bytes, decimals: int) -> float:
    """
    Decode latestRoundData() and scale the answer.

    Raises:
        MalformedDataError: If the payload is undecodable or the answer is not positive
    """
    _round_id, answer, _started_at, _updated_at, _answered_in_round = _decode(
        ROUND_DATA_TYPES, raw, "latestRoundData"
    )
    if answer <= 0:
        raise MalformedDataError(f"Non-positive oracle answer: {answer}")
    return answer / 10 ** decimals


def sqrt_price_to_price(
    sqrt_price_x96: int,
    token0_decimals: int,
    token1_decimals: int,
    base_is_token0: bool,
) -> float:
    """
    Convert a Uniswap V3 sqrtPriceX96 into the price of the base token.

    (sqrtPriceX96 / 2^96)^2 is token1 per token0 in raw units; scaling by
    10^(decimals0 - decimals1) gives human units. When the priced token is
    token1 the result is inverted.
    """
    if sqrt_price_x96 <= 0:
        raise MalformedDataError(f"Invalid sqrtPriceX96: {sqrt_price_x96}")

    token1_per_token0 = (sqrt_price_x96 / Q96) ** 2 * 10 ** (token0_decimals - token1_decimals)
    return token1_per_token0 if base_is_token0 else 1 / token1_per_token0


def decode_swap_price(log: Mapping[str, Any], params: PriceFeedParams) -> float:
    """
    Price of the base token after a Uniswap V3 Swap, from the event's sqrtPriceX96.

    Raises:
        MalformedDataError: If the log data cannot be decoded
    """
    raw = decode_hex_bytes(log.get("data"))
    sqrt_price_x96 = _decode(SWAP_DATA_TYPES, raw, "Swap")[2]
    return sqrt_price_to_price(
        sqrt_price_x96,
        params.token0_decimals,
        params.token1_decimals,
        params.base_is_token0,
    )


class ChainlinkFeedSource:
    """Chainlink aggregator price source."""

    def __init__(self, client: ChainClient, params: PriceFeedParams):
        self.client = client
        self.params = params
        self.token = params.token
        self._decimals: Optional[int] = None

    async def fetch(self) -> float:
        if self._decimals is None:
            round_raw, decimals_raw = await asyncio.gather(
                self._call(LATEST_ROUND_DATA),
                self._call(DECIMALS),
            )
            self._decimals = decode_decimals(decimals_raw)
        else:
            round_raw = await self._call(LATEST_ROUND_DATA)

        return decode_round_answer(round_raw, self._decimals)

    async def _call(self, signature: str) -> bytes:
        return await self.client.call_contract(
            self.params.address, signature, (), network_id=self.params.network_id
        )


class UniswapV3PoolSource:
    """Uniswap V3 pool spot price source."""

    def __init__(self, client: ChainClient, params: PriceFeedParams):
        self.client = client
        self.params = params
        self.token = params.token

    async def fetch(self) -> float:
        raw = await self.client.call_contract(
            self.params.address, SLOT0, (), network_id=self.params.network_id
        )
        sqrt_price_x96 = _decode(SLOT0_TYPES, raw, "slot0")[0]
        return sqrt_price_to_price(
            sqrt_price_x96,
            self.params.token0_decimals,
            self.params.token1_decimals,
            self.params.base_is_token0,
        )


def build_price_source(client: ChainClient, params: PriceFeedParams) -> PriceSource:
    """Create the price source configured for a token."""
    if params.source == "chainlink":
        return ChainlinkFeedSource(client, params)
    if params.source == "uniswap_v3":
        return UniswapV3PoolSource(client, params)
    raise ValueError(f"Unknown price source {params.source!r} for {params.token}")
