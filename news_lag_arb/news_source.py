"""News sources — Grok live X search, RSS feeds, and a static replay source.

Every source exposes ``async fetch(categories) -> list[NewsItem]``. An empty
list means no news; only transport failure raises.
"""

import asyncio
import random
import re
from datetime import datetime, timezone

import feedparser
import httpx

from .config import get_config
from .errors import MalformedResponseError, TransportError
from .llm_client import LLMClient
from .models import MAGNITUDE_VALUES, NewsItem

HIGH_IMPACT_KEYWORDS = [
    "breaking", "just in", "urgent", "official", "confirms", "announces",
    "approved", "rejected", "passes", "fails", "wins", "loses", "crashes",
    "surges", "plunges", "record", "emergency", "shock",
]

OFFICIAL_SOURCES = ["fed", "sec", "whitehouse", "treasury", "official"]

RSS_FEEDS = {
    "Reuters": "https://news.google.com/rss/search?q=site:reuters.com+markets&hl=en-US&gl=US&ceid=US:en",
    "AP": "https://news.google.com/rss/search?q=site:apnews.com+business&hl=en-US&gl=US&ceid=US:en",
    "Bloomberg": "https://feeds.bloomberg.com/markets/news.rss",
    "CNBC": "https://www.cnbc.com/id/100003114/device/rss/rss.html",
    "MarketWatch": "https://feeds.marketwatch.com/marketwatch/topstories/",
    "CoinDesk": "https://www.coindesk.com/arc/outboundfeeds/rss/",
    "The Block": "https://www.theblock.co/rss.xml",
    "Yahoo Finance": "https://finance.yahoo.com/news/rssindex",
    "CryptoNews": "https://news.google.com/rss/search?q=cryptocurrency+OR+bitcoin+OR+ethereum&hl=en-US&gl=US&ceid=US:en",
}

BREAKING_NEWS_PROMPT = """You are monitoring X/Twitter for BREAKING financial news in the last 5 minutes.

Categories to watch: {categories}

Search for posts that are:
- Breaking news (contains "breaking", "just in", "urgent", etc.)
- From official/verified sources
- High engagement (many likes/retweets)
- About major market-moving events

Return a JSON array of news items found. Each item should have:
- headline: the main news content (1-2 sentences)
- source: the account/source name
- category: which category it falls under
- magnitude: "HIGH", "MEDIUM", or "LOW" based on market impact
- engagement: "high", "medium" or "low"

If no breaking news found, return an empty array: []

Return ONLY valid JSON array, no other text."""


def _strip_html(text: str) -> str:
    return re.sub(r'<[^>]+>', '', text).strip()


def engagement_magnitude(item: dict) -> float:
    """0-1 importance from engagement, source officialness and breaking wording."""
    score = 0.5
    engagement = str(item.get("engagement", "")).lower()
    if engagement == "high":
        score += 0.2
    elif engagement == "medium":
        score += 0.1

    source = str(item.get("source", "")).lower()
    if any(s in source for s in OFFICIAL_SOURCES):
        score += 0.2

    content = str(item.get("headline") or item.get("content") or "").lower()
    if any(k in content for k in ("breaking", "just in", "urgent", "confirmed")):
        score += 0.1

    return min(score, 1.0)


def _magnitude_for(item: dict) -> str | float:
    label = str(item.get("magnitude", "")).upper()
    if label in MAGNITUDE_VALUES:
        return label
    if "engagement" in item:
        return engagement_magnitude(item)
    return "MEDIUM"


def parse_news_items(data) -> list[NewsItem]:
    """Turn the model's JSON array into NewsItems, skipping blank headlines."""
    if isinstance(data, dict):
        data = data.get("news") or data.get("items") or []
    if not isinstance(data, list):
        raise MalformedResponseError("news response is not a JSON array")

    now = datetime.now(timezone.utc)
    items = []
    for entry in data:
        if not isinstance(entry, dict):
            continue
        headline = str(entry.get("headline") or entry.get("content") or "").strip()
        if not headline:
            continue
        items.append(NewsItem(
            headline=headline,
            source=str(entry.get("source") or "unknown"),
            timestamp=now,
            category=str(entry.get("category") or "general"),
            magnitude=_magnitude_for(entry),
            url=str(entry.get("url") or ""),
        ))
    return items


class GrokNewsSource:
    """Breaking news through an LLM with live X search."""

    def __init__(self, llm: LLMClient, max_categories: int = 5):
        self.llm = llm
        self.max_categories = max_categories

    async def fetch(self, categories: list[str]) -> list[NewsItem]:
        prompt = BREAKING_NEWS_PROMPT.format(
            categories=", ".join(categories[:self.max_categories])
        )
        try:
            data = await self.llm.complete_json(prompt, live_search=True)
        except MalformedResponseError as e:
            print(f"[News] Grok response not parseable: {e}")
            return []
        return parse_news_items(data)


class RssNewsSource:
    """Headlines from RSS feeds that mention a watched category."""

    def __init__(self, feeds: dict[str, str] | None = None, feeds_per_cycle: int | None = None,
                 max_entries: int = 10, timeout: float = 5.0,
                 transport: httpx.AsyncBaseTransport | None = None):
        self.feeds = feeds or RSS_FEEDS
        self.feeds_per_cycle = feeds_per_cycle
        self.max_entries = max_entries
        self.timeout = timeout
        self.transport = transport

    def _select_feeds(self) -> dict[str, str]:
        if not self.feeds_per_cycle or self.feeds_per_cycle >= len(self.feeds):
            return dict(self.feeds)
        keys = random.sample(list(self.feeds), self.feeds_per_cycle)
        return {k: self.feeds[k] for k in keys}

    async def _fetch_feed(self, client: httpx.AsyncClient, source: str, url: str) -> list[dict]:
        resp = await client.get(url)
        resp.raise_for_status()
        feed = feedparser.parse(resp.text)
        entries = []
        for entry in feed.entries[:self.max_entries]:
            title = _strip_html(entry.get("title", ""))
            if title:
                entries.append({"source": source, "title": title, "url": entry.get("link", "")})
        return entries

    async def fetch(self, categories: list[str]) -> list[NewsItem]:
        feeds = self._select_feeds()
        async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True,
                                     headers={"User-Agent": "Mozilla/5.0"},
                                     transport=self.transport) as client:
            results = await asyncio.gather(
                *(self._fetch_feed(client, source, url) for source, url in feeds.items()),
                return_exceptions=True,
            )

        entries = []
        failures = 0
        for source, result in zip(feeds, results):
            if isinstance(result, Exception):
                failures += 1
                print(f"  [warn] {source}: {result}")
                continue
            entries.extend(result)
        if feeds and failures == len(feeds):
            raise TransportError("all RSS feeds failed")

        watched = [c.lower() for c in categories]
        now = datetime.now(timezone.utc)
        items = []
        for entry in entries:
            title_lower = entry["title"].lower()
            if watched and not any(c in title_lower for c in watched):
                continue
            high = any(k in title_lower for k in HIGH_IMPACT_KEYWORDS)
            items.append(NewsItem(
                headline=entry["title"],
                source=entry["source"],
                timestamp=now,
                magnitude="HIGH" if high else "MEDIUM",
                url=entry["url"],
            ))
        return items


class StaticNewsSource:
    """Replays a fixed list of headlines — offline runs and demos."""

    def __init__(self, headlines: list[str], source: str = "replay"):
        self.headlines = list(headlines)
        self.source = source

    async def fetch(self, categories: list[str]) -> list[NewsItem]:
        return [NewsItem(headline=h, source=self.source) for h in self.headlines]


def build_news_source(cfg=None, llm: LLMClient | None = None):
    """Pick the configured news source; "auto" prefers Grok when it is keyed."""
    cfg = cfg or get_config()
    choice = cfg.news_source
    if choice == "auto":
        choice = "grok" if llm is not None and llm.supports_live_search else "rss"
    if choice == "grok":
        if llm is None:
            print("  [warn] Grok news source needs an LLM key — using RSS feeds")
        else:
            return GrokNewsSource(llm)
    return RssNewsSource(feeds_per_cycle=cfg.rss_feeds_per_cycle)
