"""
Block head ingestion.

Turns a head notification into a fee observation and appends it to the
network's history through AggregateState. Nothing raised while handling one
head escapes: the stream continues with the next notification.
"""

import asyncio
from collections.abc import Mapping
from typing import Optional

from ..data.models import Observation
from ..data.parsers import wei_to_gwei
from ..errors import FetchError, TemporalDataError
from ..logging.config import get_ingest_logger
from ..state.aggregate import AggregateState
from ..utils.time import block_time_to_ms
from .client import ChainClient

logger = get_ingest_logger(__name__)


class BlockIngestor:
    """Derives fee observations from block headers."""

    def __init__(
        self,
        client: ChainClient,
        state: AggregateState,
        priority_fees: Mapping[str, float],
        fetch_timeout: float = 10.0,
    ):
        self.client = client
        self.state = state
        self.priority_fees = dict(priority_fees)
        self.fetch_timeout = fetch_timeout
        self.logger = logger

        self.ingested_count = 0
        self.skipped_count = 0

    def priority_fee(self, network_id: str) -> float:
        """Fixed priority fee for a network, in gwei."""
        return self.priority_fees.get(network_id, 0.0)

    async def handle_head(self, network_id: str, height: int) -> Optional[Observation]:
        """
        Process one head notification.

        Args:
            network_id: Network the head belongs to
            height: Notified block height

        Returns:
            The stored observation, or None if the head was skipped
        """
        try:
            header = await asyncio.wait_for(
                self.client.get_block_header(network_id, height),
                self.fetch_timeout,
            )
        except asyncio.TimeoutError:
            self.skipped_count += 1
            self.logger.warning(
                "Block header fetch timed out",
                network_id=network_id,
                height=height,
                timeout=self.fetch_timeout
            )
            return None
        except FetchError as e:
            self.skipped_count += 1
            self.logger.warning(
                "Block header fetch failed",
                network_id=network_id,
                height=height,
                error=str(e)
            )
            return None
        except Exception as e:
            self.skipped_count += 1
            self.logger.error(
                "Unexpected error fetching block header",
                network_id=network_id,
                height=height,
                error=str(e),
                exc_info=True
            )
            return None

        observation = Observation(
            timestamp=block_time_to_ms(header.timestamp),
            base_fee=wei_to_gwei(header.base_fee_per_gas),
            priority_fee=self.priority_fee(network_id),
        )

        try:
            self.state.append_observation(network_id, observation)
        except TemporalDataError as e:
            self.skipped_count += 1
            self.logger.warning(
                "Rejected out-of-order observation",
                network_id=network_id,
                height=height,
                timestamp=e.timestamp,
                tail_timestamp=e.expected_timestamp
            )
            return None

        self.ingested_count += 1
        self.logger.debug(
            "Ingested block",
            network_id=network_id,
            height=header.number,
            base_fee=round(observation.base_fee, 4),
            priority_fee=observation.priority_fee,
            total_fee=round(observation.total_fee, 4)
        )
        return observation
