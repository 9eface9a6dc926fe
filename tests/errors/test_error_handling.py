"""
Error handling tests for the ingestion and price paths.

Covers the error classification and the recovery behaviour of components
that must log and continue instead of raising.
"""

import pytest

from gastrack.chain.ingestor import BlockIngestor
from gastrack.data.parsers import parse_block_header
from gastrack.errors import (
    ChainConnectionError,
    DataQualityError,
    FetchError,
    MalformedDataError,
    PriceValidationError,
    SystemFailureError,
    TemporalDataError,
)


class TestErrorClassification:
    """Test error classification system."""

    def test_data_quality_error_hierarchy(self):
        """Test that data quality errors have proper hierarchy."""
        base_error = DataQualityError("base error")
        assert base_error.recoverable is True
        assert base_error.context == {}

        fetch_error = FetchError("call failed", network_id="polygon", operation="eth_call")
        assert isinstance(fetch_error, DataQualityError)
        assert fetch_error.network_id == "polygon"
        assert fetch_error.operation == "eth_call"

        malformed = MalformedDataError("bad payload", raw_data="0x", expected_format="block object",
                                       network_id="ethereum")
        assert isinstance(malformed, FetchError)
        assert malformed.raw_data == "0x"
        assert malformed.network_id == "ethereum"

        temporal_error = TemporalDataError("timestamp error", timestamp=100, expected_timestamp=200)
        assert isinstance(temporal_error, DataQualityError)
        assert (temporal_error.timestamp, temporal_error.expected_timestamp) == (100, 200)

        price_error = PriceValidationError("out of range", token="ETH", value=50000.0,
                                           bounds=(500.0, 10000.0))
        assert price_error.recoverable is True
        assert price_error.bounds == (500.0, 10000.0)

    def test_system_failure_error_hierarchy(self):
        """Test that system failure errors have proper hierarchy."""
        error = ChainConnectionError("lost", network_id="arbitrum", endpoint="wss://x",
                                     context={"attempt": 1})
        assert isinstance(error, SystemFailureError)
        assert not isinstance(error, DataQualityError)
        assert error.recoverable is False
        assert error.endpoint == "wss://x"
        assert error.context == {"attempt": 1}

    def test_error_message_preserved(self):
        assert str(FetchError("Block 5 not found")) == "Block 5 not found"


class TestMalformedDataRecovery:
    """Malformed payloads are skipped, never crash the stream."""

    def test_malformed_header_raises_classified_error(self):
        with pytest.raises(MalformedDataError) as exc_info:
            parse_block_header({"number": "not-hex", "timestamp": "0x1"})
        assert exc_info.value.expected_format == "0x-prefixed hex"

    @pytest.mark.asyncio
    async def test_ingestor_recovers_after_failed_head(self, fake_client, state):
        ingestor = BlockIngestor(fake_client, state, {"ethereum": 2.0})
        fake_client.add_header("ethereum", 2, timestamp=1_700_000_000, base_fee_wei=10 ** 10)

        assert await ingestor.handle_head("ethereum", 1) is None
        assert await ingestor.handle_head("ethereum", 2) is not None

        assert ingestor.skipped_count == 1
        assert ingestor.ingested_count == 1
