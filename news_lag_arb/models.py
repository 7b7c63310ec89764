"""Shared data model — news items, market quotes, estimates, verification results."""

from datetime import datetime, timezone
from dataclasses import dataclass, field, replace

KALSHI = "KALSHI"
POLYMARKET = "POLYMARKET"
VENUES = (KALSHI, POLYMARKET)

CATEGORIES = ("federal_reserve", "crypto", "politics", "inflation", "economy", "general")
DIRECTIONS = ("positive", "negative", "neutral")

# Label → magnitude used when only a HIGH/MEDIUM/LOW label is known
MAGNITUDE_VALUES = {"HIGH": 0.85, "MEDIUM": 0.5, "LOW": 0.25}

MISALIGNMENT_TYPES = (
    "RESOLUTION_DATE", "RESOLUTION_SOURCE", "SCOPE",
    "THRESHOLD", "DEFINITION", "EDGE_CASE",
)
SEVERITIES = ("LOW", "MEDIUM", "HIGH", "CRITICAL")  # ascending
RECOMMENDATIONS = ("SAFE_TO_TRADE", "PROCEED_WITH_CAUTION", "AVOID", "MANUAL_REVIEW")


def severity_rank(severity: str) -> int:
    """0 for LOW … 3 for CRITICAL; unknown severities rank as MEDIUM."""
    try:
        return SEVERITIES.index(severity)
    except ValueError:
        return 1


def magnitude_value(magnitude) -> float:
    """Continuous 0-1 magnitude from either a label or a number."""
    if isinstance(magnitude, str):
        return MAGNITUDE_VALUES.get(magnitude.upper(), MAGNITUDE_VALUES["MEDIUM"])
    return max(0.0, min(1.0, float(magnitude)))


def magnitude_label(magnitude: float) -> str:
    if magnitude > 0.7:
        return "HIGH"
    if magnitude > 0.4:
        return "MEDIUM"
    return "LOW"


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class NewsItem:
    headline: str
    source: str = "unknown"
    timestamp: datetime = field(default_factory=_now)
    category: str = "general"
    magnitude: str | float = "MEDIUM"  # label, or 0-1 on the LLM path
    direction: str = "neutral"
    confidence: float | None = None
    url: str = ""

    def with_analysis(self, analysis: "HeadlineAnalysis") -> "NewsItem":
        """Copy carrying the classifier's category/magnitude/direction."""
        return replace(
            self,
            category=analysis.category,
            magnitude=analysis.label if analysis.method == "heuristic" else analysis.magnitude,
            direction=analysis.direction,
            confidence=analysis.confidence,
        )


@dataclass(frozen=True)
class MarketQuote:
    venue: str  # KALSHI or POLYMARKET
    market_id: str
    question: str
    yes_price: float = 0.5
    liquidity: float = 0.0
    similarity: float | None = None  # score against the search query
    description: str = ""
    category: str = ""
    end_date: str = ""  # ISO timestamp of resolution / expiry
    volume: float = 0.0


@dataclass
class HeadlineAnalysis:
    category: str
    magnitude: float
    direction: str
    confidence: float
    label: str  # HIGH / MEDIUM / LOW
    method: str = "heuristic"  # or "llm"


@dataclass
class FairValueEstimate:
    current_price: float
    fair_value: float
    edge: float
    edge_percent: float
    direction: str  # "long", "short", "hold"
    signal: str     # "strong_buy", "buy", "hold", "sell", "strong_sell"
    confidence: float
    entry_price: float
    target_price: float
    stop_loss: float
    risk_reward: float
    reasoning: str = ""
    # unrounded, for sizing
    raw_fair_value: float = 0.0
    raw_edge: float = 0.0

    @property
    def is_actionable(self) -> bool:
        return self.signal != "hold"


@dataclass
class TradeRecommendation:
    action: str  # "BUY", "SELL", "HOLD"
    side: str    # "YES", "NO"
    suggested_size: float
    contracts: int
    expected_profit: float
    entry_limit: float
    stop_loss: float
    take_profit: float
    confidence: str  # "HIGH", "MEDIUM", "LOW"
    reasoning: str = ""
    venue: str = ""
    market_id: str = ""
    question: str = ""
    current_price: float = 0.0
    fair_value: float = 0.0
    edge: float = 0.0
    edge_percent: float = 0.0


@dataclass
class AffectedMarket:
    quote: MarketQuote
    estimate: FairValueEstimate | None = None
    recommendation: TradeRecommendation | None = None
    error: str = ""


@dataclass
class NewsWithMarkets:
    news: NewsItem
    affected_markets: list[AffectedMarket]
    analysis_time_ms: int


@dataclass
class MatchCandidate:
    kalshi: MarketQuote
    polymarket: MarketQuote
    similarity: float
    reasoning: str = ""

    @property
    def liquidity_sum(self) -> float:
        return self.kalshi.liquidity + self.polymarket.liquidity


@dataclass
class Misalignment:
    type: str      # one of MISALIGNMENT_TYPES
    severity: str  # one of SEVERITIES
    description: str


@dataclass
class VerificationResult:
    is_match: bool
    match_confidence: float
    risk_level: str
    recommendation: str
    misalignments: list[Misalignment] = field(default_factory=list)
    method: str = "heuristic"  # or "llm"

    @property
    def max_severity(self) -> str | None:
        if not self.misalignments:
            return None
        return max(self.misalignments, key=lambda m: severity_rank(m.severity)).severity


@dataclass
class MatchedPair:
    kalshi: MarketQuote
    polymarket: MarketQuote
    verification: VerificationResult
    price_spread: float  # cents
    arbitrage_opportunity: bool


@dataclass
class VerificationReport:
    topic: str
    timestamp: str
    matched_pairs: list[MatchedPair]
    summary: str
    statistics: dict


@dataclass
class ScanResult:
    headline: str
    analysis: HeadlineAnalysis
    timestamp: str
    signals: list[TradeRecommendation]
    summary: str
