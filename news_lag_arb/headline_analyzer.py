"""Headline classification — category, magnitude, direction and confidence.

Two paths: a fast keyword heuristic (no network) and an LLM analysis. The LLM
path never fails a tick: an unparseable answer becomes a neutral,
low-confidence analysis and a transport failure falls back to the heuristic.
"""

import re

from .errors import MalformedResponseError, TransportError
from .models import CATEGORIES, DIRECTIONS, HeadlineAnalysis, MAGNITUDE_VALUES, magnitude_label

# Checked in order — first match wins
CATEGORY_PATTERNS = [
    ("federal_reserve", re.compile(r"fed|fomc|rate|interest|powell")),
    ("crypto", re.compile(r"bitcoin|btc|crypto|ethereum|eth|etf")),
    ("politics", re.compile(r"trump|biden|election|president|congress")),
    ("inflation", re.compile(r"inflation|cpi|pce|prices")),
    ("economy", re.compile(r"recession|gdp|economy|jobs|unemployment")),
]

HIGH_IMPACT = re.compile(r"breaking|urgent|shock|crash|surge|plunge|record|emergency")
OFFICIAL = re.compile(r"announces|confirms|official|approved|passes")
HEDGED = re.compile(r"reports|expects|likely|may|could")

NEGATIVE = re.compile(r"cut|lower|drop|fall|crash|plunge|down|bear|sell")
POSITIVE = re.compile(r"raise|hike|surge|jump|up|bull|buy|approve|pass")

BASE_CONFIDENCE = 0.6
MIN_CONFIDENCE = 0.3
MAX_CONFIDENCE = 0.95

# Categories the LLM may answer with that fold into our closed set
CATEGORY_ALIASES = {
    "fed": "federal_reserve",
    "elections": "politics",
    "election": "politics",
    "geopolitics": "politics",
    "earnings": "economy",
    "economics": "economy",
    "other": "general",
}

ANALYSIS_SYSTEM_PROMPT = """You are a financial news analyst. Analyze the headline and return JSON with:
- category: federal_reserve | inflation | politics | crypto | economy | general
- magnitude: 0.0-1.0 (how impactful is this news)
- direction: positive | negative | neutral (for markets)
- confidence: 0.0-1.0 (confidence in analysis)
- summary: one-sentence summary

Return ONLY valid JSON."""


def analyze_headline(headline: str) -> HeadlineAnalysis:
    """Keyword heuristic — fast, deterministic, no network."""
    text = headline.lower()
    category = "general"
    magnitude = "MEDIUM"
    direction = "neutral"
    confidence = BASE_CONFIDENCE

    for name, pattern in CATEGORY_PATTERNS:
        if pattern.search(text):
            category = name
            confidence += 0.1
            break

    if HIGH_IMPACT.search(text) or OFFICIAL.search(text):
        magnitude = "HIGH"
        confidence += 0.15
    elif HEDGED.search(text):
        magnitude = "LOW"
        confidence -= 0.1

    if NEGATIVE.search(text):
        direction = "negative"
        confidence += 0.05
    elif POSITIVE.search(text):
        direction = "positive"
        confidence += 0.05

    confidence = max(MIN_CONFIDENCE, min(MAX_CONFIDENCE, confidence))

    return HeadlineAnalysis(
        category=category,
        magnitude=MAGNITUDE_VALUES[magnitude],
        direction=direction,
        confidence=round(confidence, 2),
        label=magnitude,
        method="heuristic",
    )


def neutral_analysis() -> HeadlineAnalysis:
    """Conservative stand-in when the LLM answer can't be used."""
    return HeadlineAnalysis(
        category="general",
        magnitude=0.5,
        direction="neutral",
        confidence=0.3,
        label="MEDIUM",
        method="llm",
    )


def _clamp_unit(value, default: float) -> float:
    try:
        return max(0.0, min(1.0, float(value)))
    except (TypeError, ValueError):
        return default


def parse_analysis(data) -> HeadlineAnalysis:
    """Coerce an LLM JSON answer into a HeadlineAnalysis."""
    if not isinstance(data, dict):
        raise MalformedResponseError("analysis is not a JSON object")

    category = str(data.get("category", "general")).lower().strip()
    category = CATEGORY_ALIASES.get(category, category)
    if category not in CATEGORIES:
        category = "general"

    direction = str(data.get("direction", "neutral")).lower().strip()
    if direction not in DIRECTIONS:
        direction = "neutral"

    magnitude = _clamp_unit(data.get("magnitude"), 0.5)
    return HeadlineAnalysis(
        category=category,
        magnitude=magnitude,
        direction=direction,
        confidence=_clamp_unit(data.get("confidence"), 0.3),
        label=magnitude_label(magnitude),
        method="llm",
    )


async def analyze_with_llm(headline: str, llm) -> HeadlineAnalysis:
    """LLM analysis with the fallbacks described in the module docstring."""
    try:
        data = await llm.complete_json(
            f'Analyze: "{headline}"',
            system=ANALYSIS_SYSTEM_PROMPT,
            live_search=True,
        )
        return parse_analysis(data)
    except MalformedResponseError as e:
        print(f"[LLM] Analysis not parseable, using neutral default: {e}")
        return neutral_analysis()
    except TransportError as e:
        print(f"[LLM] Analysis failed, using keyword heuristic: {e}")
        return analyze_headline(headline)


class HeadlineClassifier:
    """Picks the heuristic or LLM path once, then classifies headlines."""

    def __init__(self, llm=None, use_llm: bool = False):
        self.llm = llm
        self.use_llm = use_llm and llm is not None

    async def classify(self, headline: str) -> HeadlineAnalysis:
        if self.use_llm:
            return await analyze_with_llm(headline, self.llm)
        return analyze_headline(headline)
