"""Live news monitor — poll, dedup, classify, find affected markets, price them.

One tick:
  news source → dedup → classify → market search (per headline, concurrent)
  → fair value + trade recommendation per market → on_news

Nothing inside a tick stops the loop: tick errors and callback errors are
reported through on_status and the next poll is scheduled as usual.
"""

import asyncio
import time
from datetime import datetime
from enum import Enum
from typing import Callable, Optional

from .config import get_config
from .dedup import HeadlineDeduplicator
from .errors import NewsEdgeError
from .fair_value import estimate_fair_value
from .headline_analyzer import HeadlineClassifier
from .market_search import MarketSearch
from .models import AffectedMarket, MarketQuote, NewsItem, NewsWithMarkets, magnitude_value
from .risk_sizer import generate_trade_recommendation


class MonitorState(Enum):
    IDLE = "idle"
    POLLING = "polling"
    PROCESSING = "processing"
    SCHEDULED_WAIT = "scheduled_wait"
    STOPPED = "stopped"


def _clock() -> str:
    return datetime.now().strftime("%H:%M:%S")


def enrich_markets(news: NewsItem, quotes: list[MarketQuote], cfg=None) -> list[AffectedMarket]:
    """Fair value and a sized recommendation for each market. A bad quote only fails itself."""
    cfg = cfg or get_config()
    confidence = news.confidence if news.confidence is not None else 0.5
    magnitude = magnitude_value(news.magnitude)

    affected = []
    for quote in quotes:
        liquidity = quote.liquidity or cfg.default_liquidity
        try:
            estimate = estimate_fair_value(
                current_price=quote.yes_price,
                magnitude=magnitude,
                direction=news.direction,
                confidence=confidence,
                liquidity=liquidity,
                market_question=quote.question,
                headline=news.headline,
            )
            recommendation = generate_trade_recommendation(
                current_price=quote.yes_price,
                fair_value=estimate.raw_fair_value,
                edge=estimate.raw_edge,
                liquidity=liquidity,
                max_position_size=cfg.max_position_size,
                venue=quote.venue,
                market_id=quote.market_id,
                question=quote.question,
            )
        except NewsEdgeError as e:
            affected.append(AffectedMarket(quote=quote, error=str(e)))
            continue
        affected.append(AffectedMarket(quote=quote, estimate=estimate, recommendation=recommendation))
    return affected


async def analyze_once(headline: str, classifier: HeadlineClassifier | None = None,
                       search: MarketSearch | None = None, cfg=None) -> NewsWithMarkets:
    """One-shot analysis of a single headline, outside the polling loop."""
    cfg = cfg or get_config()
    classifier = classifier or HeadlineClassifier()
    search = search or MarketSearch(cfg)
    started = time.monotonic()

    analysis = await classifier.classify(headline)
    news = NewsItem(headline=headline, source="manual").with_analysis(analysis)
    quotes = await search.search(headline, limit=cfg.search_limit)
    affected = enrich_markets(news, quotes[:cfg.max_markets_per_news], cfg)
    return NewsWithMarkets(news, affected, int((time.monotonic() - started) * 1000))


class NewsMonitor:
    """Polling loop around a news source. Owns its own deduplicator.

    The deduplicator is touched only from this monitor's ticks; it is not
    safe to share one between monitors running concurrently.
    """

    def __init__(
        self,
        news_source,
        market_search: MarketSearch,
        classifier: HeadlineClassifier | None = None,
        deduplicator: HeadlineDeduplicator | None = None,
        on_news: Optional[Callable[[NewsWithMarkets], None]] = None,
        on_status: Optional[Callable[[str], None]] = None,
        cfg=None,
    ):
        self.cfg = cfg or get_config()
        self.news_source = news_source
        self.market_search = market_search
        self.classifier = classifier or HeadlineClassifier()
        self.deduplicator = deduplicator or HeadlineDeduplicator(
            capacity=self.cfg.dedup_capacity,
            threshold=self.cfg.dedup_similarity_threshold,
        )
        self.on_news = on_news or (lambda result: None)
        self.on_status = on_status or print
        self.state = MonitorState.IDLE
        self.poll_count = 0
        self._stop_requested = False
        self._wake: asyncio.Event | None = None

    @property
    def running(self) -> bool:
        return self.state not in (MonitorState.IDLE, MonitorState.STOPPED)

    def _status(self, message: str):
        try:
            self.on_status(message)
        except Exception as e:
            print(f"  [warn] on_status callback failed: {e}")

    def _deliver(self, result: NewsWithMarkets):
        try:
            self.on_news(result)
        except Exception as e:
            self._status(f"[{_clock()}] ❌ on_news callback failed: {e}")

    async def _process(self, news: NewsItem, started: float) -> NewsWithMarkets | None:
        analysis = await self.classifier.classify(news.headline)
        news = news.with_analysis(analysis)
        try:
            quotes = await self.market_search.search(news.headline, limit=self.cfg.search_limit)
            quotes = quotes[:self.cfg.max_markets_per_news]
        except (NewsEdgeError, TypeError, AttributeError, KeyError, ValueError) as e:
            self._status(f"[{_clock()}] ❌ Market search failed for \"{news.headline[:60]}\": {e}")
            return None
        affected = enrich_markets(news, quotes, self.cfg)
        return NewsWithMarkets(news, affected, int((time.monotonic() - started) * 1000))

    async def poll_once(self) -> list[NewsWithMarkets]:
        """Run one tick and deliver its results. Errors are reported, never raised."""
        self.poll_count += 1
        started = time.monotonic()
        self.state = MonitorState.POLLING
        try:
            return await self._tick(started)
        finally:
            self.state = MonitorState.STOPPED if self._stop_requested else MonitorState.IDLE

    async def _tick(self, started: float) -> list[NewsWithMarkets]:
        try:
            items = await self.news_source.fetch(self.cfg.news_categories)
            fresh = [item for item in items if self.deduplicator.is_new(item.headline)]
            if not fresh:
                self._status(f"[{_clock()}] ⏳ Poll #{self.poll_count} - No new breaking news")
                return []

            self.state = MonitorState.PROCESSING
            results = await asyncio.gather(*(self._process(item, started) for item in fresh))
        except Exception as e:
            self._status(f"[{_clock()}] ❌ Error: {e}")
            return []

        delivered = [r for r in results if r is not None]
        for result in delivered:
            self._deliver(result)
        return delivered

    async def run(self):
        """Poll until stop() is called. An in-flight tick always finishes first."""
        if self.state == MonitorState.STOPPED:
            return
        self._wake = asyncio.Event()
        categories = ", ".join(self.cfg.news_categories[:5])
        self._status("🔴 LIVE MONITORING STARTED")
        self._status(f"   Polling every {self.cfg.poll_interval_seconds:g}s for: {categories}...")

        while not self._stop_requested:
            await self.poll_once()
            if self._stop_requested:
                break
            self.state = MonitorState.SCHEDULED_WAIT
            try:
                await asyncio.wait_for(self._wake.wait(), timeout=self.cfg.poll_interval_seconds)
            except asyncio.TimeoutError:
                pass

        self.state = MonitorState.STOPPED
        self._status("⏹️ MONITORING STOPPED")

    def stop(self):
        """Request a stop; takes effect after the current tick, or wakes a pending wait."""
        self._stop_requested = True
        if self._wake is not None:
            self._wake.set()
        if self.state == MonitorState.IDLE:
            self.state = MonitorState.STOPPED
