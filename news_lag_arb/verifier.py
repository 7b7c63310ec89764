"""Cross-venue market equivalence — are a Kalshi and a Polymarket market the same bet?

Misalignment detection is pluggable (keyword heuristic, or an LLM when one is
configured). Turning misalignments into a recommendation is not: that table
is fixed here so two runs over the same findings always agree.

    any CRITICAL                        → AVOID
    match_confidence < 0.5              → MANUAL_REVIEW
    worst severity HIGH                 → PROCEED_WITH_CAUTION
    none/LOW, conf ≥ 0.8 and a match    → SAFE_TO_TRADE
    anything else                       → PROCEED_WITH_CAUTION
"""

import asyncio
import re
from datetime import date, datetime, timezone

from .config import get_config
from .errors import MalformedResponseError, TransportError
from .market_search import MarketSearch
from .models import (
    MISALIGNMENT_TYPES, SEVERITIES, MarketQuote, MatchCandidate,
    MatchedPair, Misalignment, VerificationReport, VerificationResult, severity_rank,
)
from .text_similarity import question_similarity

SAFE_CONFIDENCE = 0.8
REVIEW_CONFIDENCE = 0.5
ARB_MIN_SPREAD_CENTS = 3.0

# Value markers: $100,000 / 100k / 4.25% / 6,000 — bare small integers are days or ranks
THRESHOLD_RE = re.compile(
    r"(?<![\w.])(\$)?(\d{1,3}(?:,\d{3})+|\d+(?:\.\d+)?)\s*(%|k\b|m\b|bps\b|basis points)?",
    re.IGNORECASE,
)

COMPARATORS = [
    ("below", re.compile(r"\b(?:at or below|below|under|less than|at most|fall to)")),
    ("above", re.compile(r"\b(?:at or above|above|over|greater than|at least|exceed|higher than)")),
    ("reach", re.compile(r"\b(?:reach|hit|touch|cross)")),
]

RESOLUTION_SOURCES = {
    "BLS": re.compile(r"\bbls\b|bureau of labor statistics"),
    "BEA": re.compile(r"\bbea\b|bureau of economic analysis"),
    "NBER": re.compile(r"\bnber\b"),
    "Coinbase": re.compile(r"coinbase"),
    "Binance": re.compile(r"binance"),
    "CoinGecko": re.compile(r"coingecko"),
    "CME": re.compile(r"\bcme\b"),
    "AP": re.compile(r"associated press|\bap\b"),
}

EDGE_CASE_CLAUSES = {
    "emergency meeting": re.compile(r"emergency|intermeeting|unscheduled"),
    "postponement": re.compile(r"postpone|delay|reschedul"),
    "cancellation / void": re.compile(r"cancel|\bvoid\b|annul"),
    "data revision": re.compile(r"revis|preliminary|advance estimate"),
}

REGION_RE = re.compile(r"\bus\b|\bu\.s\.|united states|\bglobal\b|\bworld\b|\beu\b|\buk\b")

GENERIC_CATEGORIES = {"", "unknown", "general", "other"}

VERIFY_PROMPT = """Compare the resolution criteria of these two prediction markets.

KALSHI [{k_id}]
  Question: {k_question}
  Description: {k_description}
  Category: {k_category}
  Resolves: {k_end}

POLYMARKET [{p_id}]
  Question: {p_question}
  Description: {p_description}
  Category: {p_category}
  Resolves: {p_end}

List every difference that could make one resolve YES while the other resolves NO.
Output JSON:
{{"is_match": true, "match_confidence": 0.0-1.0,
  "misalignments": [{{"type": "RESOLUTION_DATE|RESOLUTION_SOURCE|SCOPE|THRESHOLD|DEFINITION|EDGE_CASE",
                     "severity": "LOW|MEDIUM|HIGH|CRITICAL", "description": "..."}}]}}"""

MATCH_PROMPT = """Topic: {topic}

KALSHI MARKETS:
{kalshi}

POLYMARKET MARKETS:
{polymarket}

Pair Kalshi and Polymarket markets that ask about the same underlying event.
similarity is 0.0-1.0. Only include pairs with similarity >= {min_similarity}.
Output JSON:
{{"matches": [{{"kalshi_id": "...", "polymarket_id": "...", "similarity": 0.9, "reasoning": "..."}}]}}"""


# --- Deterministic decision table ---------------------------------------

def derive_recommendation(is_match: bool, match_confidence: float,
                          misalignments: list[Misalignment]) -> str:
    worst = max((severity_rank(m.severity) for m in misalignments), default=-1)
    if worst == severity_rank("CRITICAL"):
        return "AVOID"
    if match_confidence < REVIEW_CONFIDENCE:
        return "MANUAL_REVIEW"
    if worst == severity_rank("HIGH"):
        return "PROCEED_WITH_CAUTION"
    if worst <= severity_rank("LOW") and match_confidence >= SAFE_CONFIDENCE and is_match:
        return "SAFE_TO_TRADE"
    return "PROCEED_WITH_CAUTION"


def derive_risk_level(is_match: bool, match_confidence: float,
                      misalignments: list[Misalignment]) -> str:
    """Worst misalignment severity; with none, how sure we are it's the same market."""
    if misalignments:
        return max(misalignments, key=lambda m: severity_rank(m.severity)).severity
    if not is_match:
        return "HIGH"
    if match_confidence >= SAFE_CONFIDENCE:
        return "LOW"
    if match_confidence >= REVIEW_CONFIDENCE:
        return "MEDIUM"
    return "HIGH"


def build_result(is_match: bool, match_confidence: float,
                 misalignments: list[Misalignment], method: str) -> VerificationResult:
    ordered = sorted(misalignments, key=lambda m: severity_rank(m.severity), reverse=True)
    return VerificationResult(
        is_match=is_match,
        match_confidence=round(match_confidence, 2),
        risk_level=derive_risk_level(is_match, match_confidence, ordered),
        recommendation=derive_recommendation(is_match, match_confidence, ordered),
        misalignments=ordered,
        method=method,
    )


# --- Heuristic misalignment detection -----------------------------------

def _parse_date(value: str) -> date | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value[:10]).date()
    except ValueError:
        return None


def extract_thresholds(text: str) -> set[float]:
    """Numeric thresholds a market resolves on; years and bare day numbers are skipped."""
    values = set()
    for m in THRESHOLD_RE.finditer(text):
        dollar, number, suffix = m.group(1), m.group(2), (m.group(3) or "").lower()
        has_marker = bool(dollar or suffix or "," in number or "." in number)
        value = float(number.replace(",", ""))
        if not has_marker:
            if 1900 <= value <= 2100 or value < 100:
                continue
        if suffix == "k":
            value *= 1_000
        elif suffix == "m":
            value *= 1_000_000
        values.add(value)
    return values


def extract_comparator(text: str) -> str | None:
    lowered = text.lower()
    for name, pattern in COMPARATORS:
        if pattern.search(lowered):
            return name
    return None


def _sources(text: str) -> set[str]:
    return {name for name, pattern in RESOLUTION_SOURCES.items() if pattern.search(text)}


def _clauses(text: str) -> set[str]:
    return {name for name, pattern in EDGE_CASE_CLAUSES.items() if pattern.search(text)}


def _date_misalignment(a: MarketQuote, b: MarketQuote) -> Misalignment | None:
    da, db = _parse_date(a.end_date), _parse_date(b.end_date)
    if da is None and db is None:
        return None
    if da is None or db is None:
        return Misalignment("RESOLUTION_DATE", "LOW",
                            "Only one market states a resolution date")
    gap = abs((da - db).days)
    if gap == 0:
        return None
    if gap <= 7:
        severity = "LOW"
    elif gap <= 31:
        severity = "HIGH"
    else:
        severity = "CRITICAL"
    return Misalignment("RESOLUTION_DATE", severity,
                        f"Resolution dates differ by {gap} days ({da} vs {db})")


def detect_misalignments(a: MarketQuote, b: MarketQuote) -> list[Misalignment]:
    """Keyword/structure comparison of two markets' resolution criteria."""
    found = []
    text_a = f"{a.question} {a.description}".lower()
    text_b = f"{b.question} {b.description}".lower()

    date_gap = _date_misalignment(a, b)
    if date_gap:
        found.append(date_gap)

    thresholds_a, thresholds_b = extract_thresholds(a.question), extract_thresholds(b.question)
    if thresholds_a and thresholds_b and thresholds_a != thresholds_b:
        severity = "MEDIUM" if thresholds_a & thresholds_b else "CRITICAL"
        found.append(Misalignment(
            "THRESHOLD", severity,
            f"Thresholds differ: {sorted(thresholds_a)} vs {sorted(thresholds_b)}"))
    elif bool(thresholds_a) != bool(thresholds_b):
        found.append(Misalignment("THRESHOLD", "HIGH",
                                  "Only one market resolves on a numeric threshold"))

    cmp_a, cmp_b = extract_comparator(a.question), extract_comparator(b.question)
    if cmp_a and cmp_b and cmp_a != cmp_b:
        opposite = {cmp_a, cmp_b} == {"above", "below"}
        found.append(Misalignment(
            "DEFINITION", "CRITICAL" if opposite else "MEDIUM",
            f'Markets resolve on different conditions ("{cmp_a}" vs "{cmp_b}")'))

    cat_a, cat_b = a.category.strip().lower(), b.category.strip().lower()
    if cat_a not in GENERIC_CATEGORIES and cat_b not in GENERIC_CATEGORIES and cat_a != cat_b:
        found.append(Misalignment("SCOPE", "MEDIUM",
                                  f"Listed under different categories ({a.category} vs {b.category})"))

    regions_a = set(REGION_RE.findall(a.question.lower()))
    regions_b = set(REGION_RE.findall(b.question.lower()))
    if regions_a != regions_b:
        found.append(Misalignment("SCOPE", "LOW", "Geographic scope is worded differently"))

    sources_a, sources_b = _sources(text_a), _sources(text_b)
    if sources_a and sources_b and not sources_a & sources_b:
        found.append(Misalignment(
            "RESOLUTION_SOURCE", "HIGH",
            f"Different resolution sources ({', '.join(sorted(sources_a))} vs "
            f"{', '.join(sorted(sources_b))})"))
    elif sources_a != sources_b:
        found.append(Misalignment("RESOLUTION_SOURCE", "LOW",
                                  "Only one market names its resolution source"))

    for clause in sorted(_clauses(text_a) ^ _clauses(text_b)):
        found.append(Misalignment("EDGE_CASE", "LOW",
                                  f"Only one market addresses {clause}"))

    return found


def heuristic_verify(a: MarketQuote, b: MarketQuote) -> VerificationResult:
    confidence = question_similarity(a.question, b.question)
    misalignments = detect_misalignments(a, b)
    is_match = (confidence >= REVIEW_CONFIDENCE
                and all(m.severity != "CRITICAL" for m in misalignments))
    return build_result(is_match, confidence, misalignments, "heuristic")


# --- LLM misalignment detection -----------------------------------------

def _clamp_unit(value, default: float) -> float:
    try:
        return max(0.0, min(1.0, float(value)))
    except (TypeError, ValueError):
        return default


def sanitize_misalignments(raw) -> list[Misalignment]:
    """Coerce LLM-reported misalignments into the closed type/severity sets."""
    if not isinstance(raw, list):
        return []
    cleaned = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        kind = str(item.get("type", "")).upper().strip()
        if kind not in MISALIGNMENT_TYPES:
            kind = "DEFINITION"
        severity = str(item.get("severity", "")).upper().strip()
        if severity not in SEVERITIES:
            severity = "MEDIUM"
        cleaned.append(Misalignment(kind, severity, str(item.get("description", "")).strip()))
    return cleaned


def parse_llm_verification(data) -> VerificationResult:
    if not isinstance(data, dict):
        raise MalformedResponseError("verification is not a JSON object")
    if "match_confidence" not in data and "matchConfidence" not in data:
        raise MalformedResponseError("verification has no match_confidence")
    confidence = _clamp_unit(data.get("match_confidence", data.get("matchConfidence")), 0.0)
    misalignments = sanitize_misalignments(data.get("misalignments"))
    is_match = bool(data.get("is_match", data.get("isMatch", False)))
    if any(m.severity == "CRITICAL" for m in misalignments):
        is_match = False
    return build_result(is_match, confidence, misalignments, "llm")


async def verify_pair(a: MarketQuote, b: MarketQuote, llm=None) -> VerificationResult:
    """Verify two markets resolve on the same event. Falls back to the heuristic on LLM failure."""
    if llm is None:
        return heuristic_verify(a, b)

    prompt = VERIFY_PROMPT.format(
        k_id=a.market_id, k_question=a.question, k_description=a.description or "n/a",
        k_category=a.category or "n/a", k_end=a.end_date or "n/a",
        p_id=b.market_id, p_question=b.question, p_description=b.description or "n/a",
        p_category=b.category or "n/a", p_end=b.end_date or "n/a",
    )
    try:
        data = await llm.complete_json(prompt)
        return parse_llm_verification(data)
    except (TransportError, MalformedResponseError) as e:
        print(f"[LLM] Verification failed, using heuristic: {e}")
        return heuristic_verify(a, b)


# --- Matching ------------------------------------------------------------

def rank_candidates(candidates: list[MatchCandidate], kalshi: list[MarketQuote],
                    polymarket: list[MarketQuote]) -> list[MatchCandidate]:
    """Score desc, then Kalshi listing order, then liquidity sum desc."""
    k_pos = {m.market_id: i for i, m in enumerate(kalshi)}
    p_pos = {m.market_id: i for i, m in enumerate(polymarket)}
    return sorted(candidates, key=lambda c: (
        -c.similarity,
        k_pos.get(c.kalshi.market_id, len(kalshi)),
        -c.liquidity_sum,
        p_pos.get(c.polymarket.market_id, len(polymarket)),
    ))


def heuristic_matches(kalshi: list[MarketQuote], polymarket: list[MarketQuote],
                      min_similarity: float) -> list[MatchCandidate]:
    matches = []
    for k in kalshi:
        for p in polymarket:
            score = question_similarity(k.question, p.question)
            if score >= min_similarity:
                matches.append(MatchCandidate(k, p, round(score, 2), "question wording"))
    return matches


def _format_markets(markets: list[MarketQuote]) -> str:
    return "\n".join(
        f"  [{m.market_id}] {m.question} | category: {m.category or 'n/a'} | ends: {m.end_date or 'n/a'}"
        for m in markets
    )


async def llm_matches(topic: str, kalshi: list[MarketQuote], polymarket: list[MarketQuote],
                      min_similarity: float, llm) -> list[MatchCandidate]:
    prompt = MATCH_PROMPT.format(topic=topic, kalshi=_format_markets(kalshi),
                                 polymarket=_format_markets(polymarket),
                                 min_similarity=min_similarity)
    data = await llm.complete_json(prompt)
    raw = data.get("matches") if isinstance(data, dict) else data
    if not isinstance(raw, list):
        raise MalformedResponseError("match response has no matches list")

    by_k = {m.market_id: m for m in kalshi}
    by_p = {m.market_id: m for m in polymarket}
    matches = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        k = by_k.get(str(item.get("kalshi_id", "")))
        p = by_p.get(str(item.get("polymarket_id", "")))
        if k is None or p is None:
            continue
        score = _clamp_unit(item.get("similarity"), 0.0)
        if score >= min_similarity:
            matches.append(MatchCandidate(k, p, score, str(item.get("reasoning", ""))))
    return matches


async def find_matching_markets(topic: str, kalshi: list[MarketQuote],
                                polymarket: list[MarketQuote], min_similarity: float = 0.6,
                                llm=None) -> list[MatchCandidate]:
    """Candidate cross-venue pairs scoring at least min_similarity, best first."""
    if not kalshi or not polymarket:
        return []
    matches = None
    if llm is not None:
        try:
            matches = await llm_matches(topic, kalshi, polymarket, min_similarity, llm)
        except (TransportError, MalformedResponseError) as e:
            print(f"[LLM] Market matching failed, using question similarity: {e}")
    if matches is None:
        matches = heuristic_matches(kalshi, polymarket, min_similarity)
    return rank_candidates(matches, kalshi, polymarket)


# --- Verification runs ---------------------------------------------------

def price_spread_cents(a: MarketQuote, b: MarketQuote) -> float:
    return round(abs(a.yes_price - b.yes_price) * 100, 2)


def is_arbitrage_opportunity(recommendation: str, spread_cents: float,
                             min_spread_cents: float = ARB_MIN_SPREAD_CENTS) -> bool:
    return recommendation == "SAFE_TO_TRADE" and spread_cents > min_spread_cents


def compute_statistics(pairs: list[MatchedPair], kalshi_count: int, polymarket_count: int) -> dict:
    def count(rec):
        return sum(1 for p in pairs if p.verification.recommendation == rec)

    return {
        "markets_scanned": {"kalshi": kalshi_count, "polymarket": polymarket_count},
        "matches_found": len(pairs),
        "safe_to_trade": count("SAFE_TO_TRADE"),
        "proceed_with_caution": count("PROCEED_WITH_CAUTION"),
        "avoid": count("AVOID"),
        "needs_review": count("MANUAL_REVIEW"),
    }


def summarize(topic: str, pairs: list[MatchedPair], stats: dict,
              min_spread_cents: float = ARB_MIN_SPREAD_CENTS) -> str:
    summary = f'Found {len(pairs)} potential market matches for "{topic}". '
    arbs = sorted((p for p in pairs if p.arbitrage_opportunity),
                  key=lambda p: p.price_spread, reverse=True)
    if arbs:
        best = arbs[0]
        summary += (f"{len(arbs)} verified arbitrage opportunities with >{min_spread_cents:g}¢ spread. "
                    f"Best: {best.kalshi.market_id} vs {best.polymarket.market_id} "
                    f"({round(best.price_spread)}¢ spread).")
    elif stats["safe_to_trade"]:
        summary += f"{stats['safe_to_trade']} pairs verified safe but spreads are tight."
    elif pairs:
        summary += "All matches have resolution criteria differences - review carefully."
    else:
        summary += "No equivalent market pairs found."
    return summary


async def run_verification(topic: str, search: MarketSearch | None = None, llm=None,
                           cfg=None) -> VerificationReport:
    """Search both venues, pair up markets and verify the best candidates."""
    cfg = cfg or get_config()
    search = search or MarketSearch(cfg)
    timestamp = datetime.now(timezone.utc).isoformat()

    kalshi, polymarket = await asyncio.gather(
        search.search_kalshi(topic, limit=cfg.venue_search_limit),
        search.search_polymarket(topic, limit=cfg.venue_search_limit),
    )

    if not kalshi and not polymarket:
        return VerificationReport(topic, timestamp, [], f'No markets found for topic: "{topic}"',
                                  compute_statistics([], 0, 0))

    candidates = await find_matching_markets(topic, kalshi, polymarket,
                                             cfg.min_match_similarity, llm)
    candidates = candidates[:cfg.max_pairs_to_verify]
    results = await asyncio.gather(*(verify_pair(c.kalshi, c.polymarket, llm) for c in candidates))

    pairs = []
    for candidate, verification in zip(candidates, results):
        spread = price_spread_cents(candidate.kalshi, candidate.polymarket)
        pairs.append(MatchedPair(
            kalshi=candidate.kalshi,
            polymarket=candidate.polymarket,
            verification=verification,
            price_spread=spread,
            arbitrage_opportunity=is_arbitrage_opportunity(
                verification.recommendation, spread, cfg.arb_min_spread_cents),
        ))

    stats = compute_statistics(pairs, len(kalshi), len(polymarket))
    return VerificationReport(topic, timestamp, pairs,
                              summarize(topic, pairs, stats, cfg.arb_min_spread_cents), stats)


def _find(markets: list[MarketQuote], identifier: str) -> MarketQuote | None:
    ident = identifier.lower()
    for m in markets:
        if m.market_id == identifier or ident in m.question.lower():
            return m
    return None


async def quick_verify(kalshi_ticker: str, polymarket_id: str,
                       search: MarketSearch | None = None, llm=None) -> dict:
    """Verify one known pair by identifier."""
    search = search or MarketSearch()
    kalshi, polymarket = await asyncio.gather(
        search.search_kalshi(kalshi_ticker, limit=5),
        search.search_polymarket(polymarket_id, limit=5),
    )
    k, p = _find(kalshi, kalshi_ticker), _find(polymarket, polymarket_id)
    if k is None or p is None:
        return {"verified": False, "confidence": 0.0,
                "recommendation": "Markets not found", "top_misalignment": None}

    result = await verify_pair(k, p, llm)
    return {
        "verified": result.is_match,
        "confidence": result.match_confidence,
        "recommendation": result.recommendation,
        "top_misalignment": result.misalignments[0].description if result.misalignments else None,
    }


async def get_verified_arbitrage_opportunities(topic: str, search: MarketSearch | None = None,
                                               llm=None, cfg=None) -> dict:
    """Tradeable pairs (safe or proceed-with-caution), widest spread first."""
    report = await run_verification(topic, search, llm, cfg)
    tradeable = [p for p in report.matched_pairs
                 if p.verification.recommendation in ("SAFE_TO_TRADE", "PROCEED_WITH_CAUTION")]
    tradeable.sort(key=lambda p: p.price_spread, reverse=True)
    return {
        "opportunities": [
            {
                "kalshi_ticker": p.kalshi.market_id,
                "polymarket_id": p.polymarket.market_id,
                "kalshi_price": p.kalshi.yes_price,
                "polymarket_price": p.polymarket.yes_price,
                "spread": p.price_spread,
                "verified": p.verification.is_match,
                "recommendation": p.verification.recommendation,
            }
            for p in tradeable
        ],
        "summary": report.summary,
    }
