"""Market search — Replay Labs semantic search plus direct Kalshi / Polymarket lookups.

Each lookup degrades to an offline catalogue when its credentials are missing
or the API call fails, so the pipeline keeps running on demo data.
"""

import json

import httpx

from .config import get_config
from .models import KALSHI, POLYMARKET, MarketQuote

GAMMA_URL = "https://gamma-api.polymarket.com/markets"

# Offline catalogues, used when an API is unkeyed or unreachable
SEMANTIC_MARKETS = [
    MarketQuote(KALSHI, "FED-26JAN-T4.50", "Will the Fed cut rates in January 2026?",
                yes_price=0.65, liquidity=125000, similarity=0.92, category="Economics",
                end_date="2026-01-31T23:59:59Z"),
    MarketQuote(POLYMARKET, "fed-rate-jan-2026",
                "Will Federal Reserve cut interest rates at January 2026 FOMC?",
                yes_price=0.62, liquidity=340000, similarity=0.91, category="Economics",
                end_date="2026-01-31T23:59:59Z"),
    MarketQuote(KALSHI, "FED-26MAR-T4.25", "Will Fed funds rate be at or below 4.25% by March 2026?",
                yes_price=0.71, liquidity=95000, similarity=0.85, category="Economics",
                end_date="2026-03-31T23:59:59Z"),
    MarketQuote(POLYMARKET, "recession-2026", "Will the US enter a recession in 2026?",
                yes_price=0.28, liquidity=450000, similarity=0.72, category="Economics",
                end_date="2026-12-31T23:59:59Z"),
    MarketQuote(KALSHI, "INFLATION-26Q1-A3", "Will CPI inflation be above 3% in Q1 2026?",
                yes_price=0.45, liquidity=85000, similarity=0.78, category="Economics",
                end_date="2026-04-15T23:59:59Z"),
    MarketQuote(POLYMARKET, "btc-100k-jan-2026", "Will Bitcoin reach $100,000 by January 31, 2026?",
                yes_price=0.72, liquidity=890000, similarity=0.94, category="Crypto",
                end_date="2026-01-31T23:59:59Z"),
    MarketQuote(KALSHI, "BTC-26JAN-100K", "Will Bitcoin be above $100,000 by end of January 2026?",
                yes_price=0.70, liquidity=230000, similarity=0.93, category="Crypto",
                end_date="2026-01-31T23:59:59Z"),
    MarketQuote(POLYMARKET, "eth-5000-2026", "Will Ethereum reach $5,000 in 2026?",
                yes_price=0.35, liquidity=150000, similarity=0.75, category="Crypto",
                end_date="2026-12-31T23:59:59Z"),
    MarketQuote(POLYMARKET, "trump-tariffs-china-2026", "Will Trump raise tariffs on Chinese imports in 2026?",
                yes_price=0.52, liquidity=210000, similarity=0.88, category="Politics",
                end_date="2026-12-31T23:59:59Z"),
    MarketQuote(KALSHI, "TARIFF-CHN-26", "Will new US tariffs on China take effect in 2026?",
                yes_price=0.54, liquidity=120000, similarity=0.85, category="Politics",
                end_date="2026-12-31T23:59:59Z"),
]

KALSHI_MARKETS = [
    MarketQuote(KALSHI, "FED-26JAN-T4.50", "Will the Fed cut rates in January 2026?",
                yes_price=0.72, liquidity=125000, volume=450000, category="Economics",
                end_date="2026-01-31T23:59:59Z"),
    MarketQuote(KALSHI, "INFLATION-26Q1-A3", "Will CPI inflation be above 3% in Q1 2026?",
                yes_price=0.45, liquidity=85000, volume=280000, category="Economics",
                end_date="2026-04-15T23:59:59Z"),
    MarketQuote(KALSHI, "FED-26MAR-T4.25", "Will Fed funds rate be at or below 4.25% by March 2026?",
                yes_price=0.58, liquidity=95000, volume=320000, category="Economics",
                end_date="2026-03-31T23:59:59Z"),
    MarketQuote(KALSHI, "BTC-26JAN-100K", "Will Bitcoin be above $100,000 by end of January 2026?",
                yes_price=0.62, liquidity=230000, volume=890000, category="Crypto",
                end_date="2026-01-31T23:59:59Z"),
    MarketQuote(KALSHI, "RECESSION-26", "Will there be a US recession in 2026?",
                yes_price=0.28, liquidity=145000, volume=520000, category="Economics",
                end_date="2026-12-31T23:59:59Z"),
]

POLYMARKET_MARKETS = [
    MarketQuote(POLYMARKET, "fed-rate-jan-2026",
                "Will the Federal Reserve cut interest rates in January 2026?",
                yes_price=0.68, liquidity=340000, volume=1250000, category="Economics",
                end_date="2026-01-31T23:59:59Z",
                description="Resolves YES if the Fed announces a rate cut at the January 2026 FOMC meeting."),
    MarketQuote(POLYMARKET, "btc-100k-jan-2026", "Will Bitcoin reach $100,000 by January 31, 2026?",
                yes_price=0.58, liquidity=890000, volume=2800000, category="Crypto",
                end_date="2026-01-31T23:59:59Z"),
    MarketQuote(POLYMARKET, "inflation-3pct-q1-2026", "Will US CPI inflation be above 3% in Q1 2026?",
                yes_price=0.42, liquidity=180000, volume=560000, category="Economics",
                end_date="2026-04-15T23:59:59Z"),
    MarketQuote(POLYMARKET, "recession-2026", "Will the US enter a recession in 2026?",
                yes_price=0.25, liquidity=450000, volume=1890000, category="Economics",
                end_date="2026-12-31T23:59:59Z"),
    MarketQuote(POLYMARKET, "sp500-6000-2026", "Will S&P 500 close above 6,000 by end of Q1 2026?",
                yes_price=0.71, liquidity=280000, volume=920000, category="Markets",
                end_date="2026-03-31T23:59:59Z"),
]


def _query_words(query: str) -> list[str]:
    return [w for w in query.lower().split() if len(w) > 2]


def keyword_filter(markets: list[MarketQuote], query: str) -> list[MarketQuote]:
    """Markets whose question, category, id or description mention any query word."""
    words = _query_words(query)
    if not words:
        return list(markets)
    matched = []
    for m in markets:
        text = " ".join([m.question, m.category, m.market_id, m.description]).lower()
        if any(w in text for w in words):
            matched.append(m)
    return matched


def _float(value, default: float = 0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def parse_kalshi_market(m: dict) -> MarketQuote:
    """Kalshi trade-api market → quote. Prices arrive in cents."""
    cents = m.get("yes_bid") or m.get("last_price") or 50
    return MarketQuote(
        venue=KALSHI,
        market_id=m.get("ticker", ""),
        question=m.get("title") or m.get("ticker", ""),
        yes_price=_float(cents, 50) / 100,
        liquidity=_float(m.get("open_interest")),
        description=m.get("subtitle") or m.get("rules_primary") or "",
        category=m.get("category") or "unknown",
        end_date=m.get("expiration_time") or m.get("close_time") or "",
        volume=_float(m.get("volume")),
    )


def parse_polymarket_market(m: dict) -> MarketQuote:
    """Gamma API market → quote. outcomePrices may be a JSON-encoded string."""
    raw_prices = m.get("outcomePrices") or []
    if isinstance(raw_prices, str):
        try:
            raw_prices = json.loads(raw_prices)
        except json.JSONDecodeError:
            raw_prices = []
    if not isinstance(raw_prices, list):
        raw_prices = []
    yes_price = _float(raw_prices[0], 0.5) if raw_prices else 0.5

    return MarketQuote(
        venue=POLYMARKET,
        market_id=str(m.get("id") or m.get("conditionId") or m.get("condition_id") or ""),
        question=m.get("question") or m.get("title") or "",
        yes_price=yes_price,
        liquidity=_float(m.get("liquidity") or m.get("liquidityNum")),
        description=(m.get("description") or "")[:300],
        category=m.get("category") or "General",
        end_date=m.get("endDate") or m.get("end_date_iso") or "",
        volume=_float(m.get("volume") or m.get("volumeNum")),
    )


def parse_semantic_result(item: dict) -> MarketQuote:
    """One Replay Labs semantic-search hit ({market, score}) → quote."""
    market = item.get("market")
    market = market if isinstance(market, dict) else {}
    meta = market.get("metadata")
    meta = meta if isinstance(meta, dict) else {}
    return MarketQuote(
        venue=str(market.get("venue", "")).upper(),
        market_id=str(market.get("id", "")),
        question=market.get("question") or market.get("symbol") or "",
        yes_price=_float(meta.get("yesPrice"), 0.5),
        liquidity=_float(meta.get("liquidity")),
        similarity=_float(item.get("score")),
        category=meta.get("category", ""),
        end_date=meta.get("endDate", ""),
        volume=_float(meta.get("volume")),
    )


class MarketSearch:
    """Finds markets for a headline or topic across both venues."""

    def __init__(self, cfg=None, transport: httpx.AsyncBaseTransport | None = None):
        self.cfg = cfg or get_config()
        self.transport = transport
        self._warned: set[str] = set()

    def _warn_once(self, key: str, message: str):
        if key not in self._warned:
            self._warned.add(key)
            print(f"  [warn] {message}")

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.cfg.http_timeout, transport=self.transport,
                                 headers={"User-Agent": "Mozilla/5.0"})

    async def search(self, query: str, venues: list[str] | None = None,
                     active_only: bool = True, limit: int = 10) -> list[MarketQuote]:
        """Semantic search, best match first."""
        if not self.cfg.replay_labs_api_key:
            self._warn_once("replay", "REPLAY_LABS_API_KEY not set — using offline market catalogue")
            return self._offline_semantic(query, venues, limit)

        params = [("q", query), ("limit", str(limit)), ("active", str(active_only).lower())]
        params.extend(("venue", v) for v in venues or [])
        url = f"{self.cfg.replay_labs_base_url.rstrip('/')}/api/markets/semantic-search"
        try:
            async with self._client() as client:
                resp = await client.get(url, params=params,
                                        headers={"x-api-key": self.cfg.replay_labs_api_key})
                resp.raise_for_status()
                data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            print(f"  [warn] Replay Labs search failed ({e}) — using offline market catalogue")
            return self._offline_semantic(query, venues, limit)

        hits = data.get("markets") if isinstance(data, dict) else None
        if not isinstance(hits, list):
            print("  [warn] Replay Labs returned no market list — using offline market catalogue")
            return self._offline_semantic(query, venues, limit)
        quotes = [parse_semantic_result(item) for item in hits if isinstance(item, dict)]
        quotes.sort(key=lambda q: q.similarity or 0.0, reverse=True)
        return quotes[:limit]

    def _offline_semantic(self, query: str, venues: list[str] | None, limit: int) -> list[MarketQuote]:
        pool = [m for m in SEMANTIC_MARKETS if not venues or m.venue in venues]
        matched = keyword_filter(pool, query) or pool
        matched.sort(key=lambda q: q.similarity or 0.0, reverse=True)
        return matched[:limit]

    async def search_kalshi(self, query: str, limit: int = 20) -> list[MarketQuote]:
        """Open Kalshi markets mentioning the query."""
        if not self.cfg.kalshi_api_key:
            self._warn_once("kalshi", "KALSHI_API_KEY not set — using offline Kalshi markets")
            return keyword_filter(KALSHI_MARKETS, query)[:limit]

        try:
            async with self._client() as client:
                resp = await client.get(
                    f"{self.cfg.kalshi_base_url}/markets",
                    params={"limit": 200, "status": "open"},
                    headers={"Authorization": f"Bearer {self.cfg.kalshi_api_key}"},
                )
                resp.raise_for_status()
                data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            print(f"  [warn] Kalshi search failed ({e}) — using offline Kalshi markets")
            return keyword_filter(KALSHI_MARKETS, query)[:limit]

        raw = data.get("markets") if isinstance(data, dict) else None
        if not isinstance(raw, list):
            print("  [warn] Kalshi returned no market list — using offline Kalshi markets")
            return keyword_filter(KALSHI_MARKETS, query)[:limit]
        quotes = [parse_kalshi_market(m) for m in raw if isinstance(m, dict) and m.get("ticker")]
        return keyword_filter(quotes, query)[:limit]

    async def search_polymarket(self, query: str, limit: int = 20,
                                active: bool = True) -> list[MarketQuote]:
        """Polymarket markets (Gamma API, no key needed) mentioning the query."""
        params = {"limit": 200, "order": "volume", "ascending": "false"}
        if active:
            params["closed"] = "false"
        try:
            async with self._client() as client:
                resp = await client.get(GAMMA_URL, params=params)
                resp.raise_for_status()
                raw = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            print(f"  [warn] Polymarket search failed ({e}) — using offline Polymarket markets")
            return keyword_filter(POLYMARKET_MARKETS, query)[:limit]
        if not isinstance(raw, list):
            print("  [warn] Polymarket returned no market list — using offline Polymarket markets")
            return keyword_filter(POLYMARKET_MARKETS, query)[:limit]

        quotes = [parse_polymarket_market(m) for m in raw if isinstance(m, dict)]
        return keyword_filter(quotes, query)[:limit]
