"""
Oracle price polling with range validation and fallback.

Each token is polled by its own timer task: one fetch immediately, then one
every interval_seconds. refresh() runs an out-of-band fetch and joins a fetch
already in flight for the same token. A fetch that errors or falls outside
the token's range never replaces the active price; on first run the static
fallback is written instead.

Feeds with watch_swaps also take the pool price from every Swap log between
polls. A failed or lost log subscription leaves the timer as the only source
until ensure_swap_watchers() runs again.
"""

import asyncio
import math
from collections.abc import Callable, Iterable, Mapping
from typing import Any, Optional

from ..chain.client import ChainClient
from ..config.defaults import PriceFeedParams
from ..data.models import PriceQuote, TokenPrice
from ..errors import ChainConnectionError, FetchError, MalformedDataError, PriceValidationError
from ..logging.config import get_price_logger, log_price_decision
from ..state.aggregate import AggregateState
from ..utils.time import now_ms
from .oracles import SWAP_TOPIC, PriceSource, build_price_source, decode_swap_price

logger = get_price_logger(__name__)


class PriceFeedPoller:
    """Polls oracle prices for every configured token."""

    def __init__(
        self,
        client: ChainClient,
        state: AggregateState,
        feeds: Iterable[PriceFeedParams],
        fetch_timeout: float = 10.0,
        sources: Optional[Mapping[str, PriceSource]] = None,
        clock: Callable[[], int] = now_ms,
    ):
        self.client = client
        self.state = state
        self.feeds: dict[str, PriceFeedParams] = {feed.token: feed for feed in feeds}
        self.fetch_timeout = fetch_timeout
        self.logger = logger
        self._clock = clock

        self.sources: dict[str, PriceSource] = {
            token: build_price_source(client, feed) for token, feed in self.feeds.items()
        }
        if sources:
            self.sources.update(sources)

        self._timers: dict[str, asyncio.Task] = {}
        self._inflight: dict[str, asyncio.Task] = {}
        self._background: set[asyncio.Task] = set()
        self._watchers: dict[str, asyncio.Task] = {}

    @property
    def running(self) -> bool:
        return bool(self._timers)

    async def fetch_price(self, token: str) -> PriceQuote:
        """
        Query the oracle for a token without validating or storing it.

        Raises:
            KeyError: If the token is not configured
            FetchError: If the query fails or times out
        """
        source = self.sources[token]
        fetched_at = self._clock()

        try:
            value = await asyncio.wait_for(source.fetch(), self.fetch_timeout)
        except asyncio.TimeoutError as e:
            raise FetchError(f"Price fetch for {token} timed out after {self.fetch_timeout}s",
                             operation="price_fetch") from e

        return PriceQuote(token=token, value=float(value), fetched_at=fetched_at)

    def validate(self, quote: PriceQuote) -> None:
        """
        Check a quote against the token's inclusive plausible range.

        Raises:
            PriceValidationError: If the value is outside the range or not finite
        """
        feed = self.feeds[quote.token]
        if not math.isfinite(quote.value) or not feed.min_value <= quote.value <= feed.max_value:
            raise PriceValidationError(
                f"{quote.token} price {quote.value} outside [{feed.min_value}, {feed.max_value}]",
                token=quote.token,
                value=quote.value,
                bounds=(feed.min_value, feed.max_value),
            )

    async def poll(self, token: str) -> TokenPrice:
        """
        Fetch, validate and store one token's price. Never raises for fetch
        or validation problems.

        Returns:
            The active TokenPrice after this poll
        """
        try:
            quote = await self.fetch_price(token)
            self.validate(quote)
        except PriceValidationError as e:
            log_price_decision(self.logger, token, False, e.value, str(e))
            self._retain_or_fallback(token)
        except FetchError as e:
            log_price_decision(self.logger, token, False, None, str(e))
            self._retain_or_fallback(token)
        except Exception as e:
            self.logger.error(
                "Unexpected error polling price",
                token=token,
                error=str(e),
                exc_info=True
            )
            self._retain_or_fallback(token)
        else:
            accepted = self.state.set_token_price(
                token, TokenPrice(value=quote.value, last_updated_at=quote.fetched_at)
            )
            log_price_decision(
                self.logger, token, accepted, quote.value,
                "validated" if accepted else "older than stored price"
            )

        return self.state.token_price(token)

    async def refresh(self, token: str) -> TokenPrice:
        """Out-of-band poll for one token, joining any poll already in flight."""
        if token not in self.feeds:
            raise KeyError(f"Unknown token: {token}")

        task = self._inflight.get(token)
        if task is None or task.done():
            task = asyncio.create_task(self.poll(token), name=f"price-{token}")
            self._inflight[token] = task
            task.add_done_callback(lambda done, token=token: self._clear_inflight(token, done))

        return await asyncio.shield(task)

    async def refresh_all(self) -> dict[str, TokenPrice]:
        """Refresh every configured token concurrently."""
        prices = await asyncio.gather(*(self.refresh(token) for token in self.feeds))
        return dict(zip(self.feeds, prices))

    def schedule_refresh_all(self) -> None:
        """Fire-and-forget refresh of every token, tracked for stop()."""
        for token in self.feeds:
            task = asyncio.create_task(self.refresh(token), name=f"price-refresh-{token}")
            self._background.add(task)
            task.add_done_callback(self._background.discard)

    def start(self) -> None:
        """Start one timer task per token. A no-op if already running."""
        if self.running:
            return
        for token in self.feeds:
            self._timers[token] = asyncio.create_task(self._run(token), name=f"price-timer-{token}")
        self.ensure_swap_watchers()
        self.logger.info("Price polling started", tokens=list(self.feeds))

    async def stop(self) -> None:
        """Cancel every timer and in-flight fetch. Safe to call more than once."""
        tasks = [*self._timers.values(), *self._inflight.values(), *self._background,
                 *self._watchers.values()]
        self._timers.clear()
        self._watchers.clear()
        self._inflight.clear()
        self._background.clear()

        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            self.logger.info("Price polling stopped")

    def ensure_swap_watchers(self) -> None:
        """Start a Swap log watcher for every watch_swaps feed that has none running."""
        for token, feed in self.feeds.items():
            if not feed.watch_swaps:
                continue
            task = self._watchers.get(token)
            if task is None or task.done():
                self._watchers[token] = asyncio.create_task(
                    self._watch_swaps(token), name=f"price-swaps-{token}"
                )

    def apply_swap(self, token: str, log: Mapping[str, Any]) -> bool:
        """
        Price a token from one Swap log. Never raises for bad or implausible logs.

        Returns:
            True if the derived price became the active price
        """
        if log.get("removed"):
            self.logger.debug("Ignoring removed swap log", token=token)
            return False

        try:
            quote = PriceQuote(token=token, value=decode_swap_price(log, self.feeds[token]),
                               fetched_at=self._clock())
            self.validate(quote)
        except PriceValidationError as e:
            log_price_decision(self.logger, token, False, e.value, f"swap: {e}")
            return False
        except MalformedDataError as e:
            self.logger.warning("Skipping undecodable swap log", token=token, error=str(e))
            return False

        accepted = self.state.set_token_price(
            token, TokenPrice(value=quote.value, last_updated_at=quote.fetched_at)
        )
        log_price_decision(
            self.logger, token, accepted, quote.value,
            "swap event" if accepted else "older than stored price"
        )
        return accepted

    async def _watch_swaps(self, token: str) -> None:
        feed = self.feeds[token]
        try:
            subscription = await asyncio.wait_for(
                self.client.subscribe_logs(feed.network_id, feed.address, [SWAP_TOPIC]),
                self.fetch_timeout,
            )
        except (ChainConnectionError, asyncio.TimeoutError) as e:
            self.logger.warning("Swap watch unavailable, polling only", token=token,
                                error=str(e) or "timeout")
            return

        self.logger.info("Watching swaps", token=token, pool=feed.address)
        try:
            async for log in subscription:
                self.apply_swap(token, log)
        except ChainConnectionError as e:
            self.logger.warning("Swap watch lost, polling only", token=token, error=str(e))
        except Exception as e:
            self.logger.error("Unexpected error watching swaps", token=token, error=str(e), exc_info=True)
        finally:
            await subscription.close()

    async def _run(self, token: str) -> None:
        interval = self.feeds[token].interval_seconds
        while True:
            await self.refresh(token)
            await asyncio.sleep(interval)

    def _clear_inflight(self, token: str, task: asyncio.Task) -> None:
        if self._inflight.get(token) is task:
            del self._inflight[token]

    def _retain_or_fallback(self, token: str) -> None:
        current = self.state.token_price(token)
        if current.last_updated_at:
            return

        fallback = self.feeds[token].fallback_value
        self.state.set_token_price(
            token, TokenPrice(value=fallback, last_updated_at=self._clock(), is_fallback=True)
        )
        self.logger.warning("Using fallback price", token=token, value=fallback)
