#!/usr/bin/env python3
"""
Basic Usage Example - Gastrack fee engine

Connects to the configured networks, prints fee and price updates as they
arrive, then shows 15-minute candles and a cost comparison for a plain
transfer. It shows how to:
- Initialize and start the engine
- Subscribe to network and token slices
- Read candles and simulate transaction costs

Run: python examples/basic_usage.py [seconds]
"""

import asyncio
import sys

from gastrack.engine import GasTrackerEngine
from gastrack.logging import configure_logging
from gastrack.state.aggregate import StateChange
from gastrack.utils.time import format_ms


def print_change(change: StateChange) -> None:
    """Print one state change."""
    if change.field == "history":
        latest = change.new.latest
        print(f"[{change.key:>9}] block at {format_ms(latest.timestamp)}: "
              f"{latest.total_fee:.4f} gwei ({len(change.new.history)} points)")
    elif change.field == "price":
        source = "fallback" if change.new.is_fallback else "oracle"
        print(f"[{change.key:>9}] price {change.new.value:.4f} USD ({source})")
    elif change.field == "connectivity":
        print(f"[{change.key:>9}] {change.old.value} -> {change.new.value}")


async def main(duration: float) -> None:
    configure_logging(level="WARNING")

    engine = GasTrackerEngine()
    engine.state.subscribe(print_change)

    async with engine:
        print("Connections:", engine.connection_summary())
        await asyncio.sleep(duration)

        print("\n15-minute candles (total fee, gwei):")
        for network_id in engine.config.network_ids:
            for candle in engine.candles(network_id):
                print(f"  {network_id:>9} {format_ms(candle.bucket_start)} "
                      f"O={candle.open:.3f} H={candle.high:.3f} L={candle.low:.3f} "
                      f"C={candle.close:.3f} n={candle.count}")

        print("\nSimple transfer (21000 gas):")
        for estimate in engine.simulate():
            print(f"  {estimate.network_id:>9} {estimate.gas_price_gwei:10.4f} gwei "
                  f"{estimate.gas_cost_token:.8f} {estimate.token} "
                  f"${estimate.gas_cost_usd:.4f}")


if __name__ == "__main__":
    asyncio.run(main(float(sys.argv[1]) if len(sys.argv) > 1 else 60.0))
