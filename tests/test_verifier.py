"""Tests for verifier.py — decision table, misalignment detection, matching, runs."""

import asyncio

import pytest

from conftest import FakeLLM, FakeSearch, make_quote
from news_lag_arb.config import Config
from news_lag_arb.errors import MalformedResponseError, TransportError
from news_lag_arb.models import MatchCandidate, MatchedPair, Misalignment
from news_lag_arb.verifier import (
    build_result, derive_recommendation, derive_risk_level, detect_misalignments,
    extract_comparator, extract_thresholds, find_matching_markets,
    get_verified_arbitrage_opportunities, heuristic_verify, is_arbitrage_opportunity,
    parse_llm_verification, price_spread_cents, quick_verify, rank_candidates,
    run_verification, sanitize_misalignments, summarize, verify_pair,
)

FED_Q = "Will the Fed cut rates in January 2026?"
BTC_Q = "Will Bitcoin be above $100,000 in 2026?"
RECESSION_Q = "Will the US enter a recession in 2026?"
OTHER_Q = "Who wins the Super Bowl?"


def kalshi(market_id="K1", question=FED_Q, **kwargs):
    return make_quote("KALSHI", market_id, question, **kwargs)


def poly(market_id="P1", question=FED_Q, **kwargs):
    return make_quote("POLYMARKET", market_id, question, **kwargs)


def mis(severity, kind="DEFINITION"):
    return Misalignment(kind, severity, f"{severity} issue")


# ---------------------------------------------------------------------------
# Decision table
# ---------------------------------------------------------------------------

class TestRecommendation:

    def test_critical_always_avoids(self):
        assert derive_recommendation(True, 0.95, [mis("CRITICAL")]) == "AVOID"

    def test_critical_beats_low_confidence(self):
        assert derive_recommendation(False, 0.2, [mis("CRITICAL")]) == "AVOID"

    def test_low_confidence_needs_review(self):
        assert derive_recommendation(True, 0.4, []) == "MANUAL_REVIEW"
        assert derive_recommendation(True, 0.49, [mis("HIGH")]) == "MANUAL_REVIEW"

    def test_high_proceeds_with_caution(self):
        assert derive_recommendation(True, 0.95, [mis("HIGH"), mis("LOW")]) == "PROCEED_WITH_CAUTION"

    def test_medium_is_not_safe(self):
        assert derive_recommendation(True, 0.95, [mis("MEDIUM")]) == "PROCEED_WITH_CAUTION"

    def test_low_only_and_confident_is_safe(self):
        assert derive_recommendation(True, 0.8, [mis("LOW")]) == "SAFE_TO_TRADE"
        assert derive_recommendation(True, 0.85, []) == "SAFE_TO_TRADE"

    def test_confident_non_match_is_not_safe(self):
        assert derive_recommendation(False, 0.85, []) == "PROCEED_WITH_CAUTION"

    def test_middling_confidence(self):
        assert derive_recommendation(True, 0.7, []) == "PROCEED_WITH_CAUTION"


class TestRiskLevel:

    def test_worst_misalignment(self):
        assert derive_risk_level(True, 0.9, [mis("LOW"), mis("MEDIUM")]) == "MEDIUM"

    @pytest.mark.parametrize("confidence,expected", [(0.9, "LOW"), (0.6, "MEDIUM"), (0.3, "HIGH")])
    def test_by_confidence(self, confidence, expected):
        assert derive_risk_level(True, confidence, []) == expected

    def test_non_match(self):
        assert derive_risk_level(False, 0.9, []) == "HIGH"


def test_build_result_orders_by_severity():
    result = build_result(True, 0.876, [mis("LOW"), mis("CRITICAL"), mis("MEDIUM")], "heuristic")
    assert [m.severity for m in result.misalignments] == ["CRITICAL", "MEDIUM", "LOW"]
    assert result.match_confidence == 0.88
    assert result.max_severity == "CRITICAL"
    assert result.recommendation == "AVOID"


# ---------------------------------------------------------------------------
# Heuristic detection
# ---------------------------------------------------------------------------

class TestExtractors:

    def test_percent_threshold(self):
        assert extract_thresholds("Will Fed funds rate be at or below 4.25% by March 2026?") == {4.25}

    def test_dollar_and_suffix(self):
        assert extract_thresholds("Will BTC hit $100,000?") == {100000.0}
        assert extract_thresholds("Will BTC hit 100k?") == {100000.0}

    def test_years_and_days_skipped(self):
        assert extract_thresholds("Will it happen by January 31, 2026?") == set()

    @pytest.mark.parametrize("text,expected", [
        ("Will the rate be at or below 4%?", "below"),
        ("Will CPI exceed 3%?", "above"),
        ("Will Bitcoin hit $100k?", "reach"),
        ("Will the Fed cut rates?", None),
    ])
    def test_comparator(self, text, expected):
        assert extract_comparator(text) == expected


class TestDetectMisalignments:

    def test_identical_markets(self):
        a = kalshi(end_date="2026-01-31T23:59:59Z", category="Economics")
        b = poly(end_date="2026-01-31T23:59:59Z", category="Economics")
        assert detect_misalignments(a, b) == []

    def test_small_date_gap_is_low(self):
        found = detect_misalignments(kalshi(end_date="2026-01-31"), poly(end_date="2026-02-03"))
        assert [(m.type, m.severity) for m in found] == [("RESOLUTION_DATE", "LOW")]

    def test_month_gap_is_high(self):
        found = detect_misalignments(kalshi(end_date="2026-01-31"), poly(end_date="2026-02-28"))
        assert found[0].severity == "HIGH"

    def test_quarter_gap_is_critical(self):
        found = detect_misalignments(kalshi(end_date="2026-01-31"), poly(end_date="2026-03-31"))
        assert found[0].severity == "CRITICAL"
        assert "59 days" in found[0].description

    def test_disjoint_thresholds_critical(self):
        found = detect_misalignments(kalshi(question=BTC_Q),
                                     poly(question="Will Bitcoin be above $120,000 in 2026?"))
        assert ("THRESHOLD", "CRITICAL") in [(m.type, m.severity) for m in found]

    def test_opposite_comparators_critical(self):
        found = detect_misalignments(kalshi(question="Will CPI be above 3%?"),
                                     poly(question="Will CPI be below 3%?"))
        assert [(m.type, m.severity) for m in found] == [("DEFINITION", "CRITICAL")]

    def test_reach_versus_above_is_medium(self):
        found = detect_misalignments(kalshi(question="Will Bitcoin be above $100,000?"),
                                     poly(question="Will Bitcoin reach $100,000?"))
        assert [(m.type, m.severity) for m in found] == [("DEFINITION", "MEDIUM")]

    def test_region_wording(self):
        found = detect_misalignments(kalshi(question="Will CPI inflation be above 3% in Q1 2026?"),
                                     poly(question="Will US CPI inflation be above 3% in Q1 2026?"))
        assert [(m.type, m.severity) for m in found] == [("SCOPE", "LOW")]

    def test_category_mismatch(self):
        found = detect_misalignments(kalshi(category="Economics"), poly(category="Politics"))
        assert [(m.type, m.severity) for m in found] == [("SCOPE", "MEDIUM")]

    def test_generic_category_ignored(self):
        assert detect_misalignments(kalshi(category="Economics"), poly(category="General")) == []

    def test_different_sources(self):
        found = detect_misalignments(kalshi(description="Settles on the Coinbase BTC-USD price."),
                                     poly(description="Settles on the Binance BTC/USDT price."))
        assert [(m.type, m.severity) for m in found] == [("RESOLUTION_SOURCE", "HIGH")]

    def test_edge_case_clause_on_one_side(self):
        found = detect_misalignments(
            kalshi(), poly(description="An emergency meeting cut also counts."))
        assert [(m.type, m.severity) for m in found] == [("EDGE_CASE", "LOW")]


class TestHeuristicVerify:

    def test_same_market_is_safe(self):
        result = heuristic_verify(
            kalshi(), poly(question="Will the Federal Reserve cut interest rates in January 2026?"))
        assert result.is_match
        assert result.match_confidence == 1.0
        assert result.recommendation == "SAFE_TO_TRADE"
        assert result.risk_level == "LOW"
        assert result.method == "heuristic"

    def test_critical_gap_avoids_despite_confidence(self):
        result = heuristic_verify(kalshi(end_date="2026-01-31"), poly(end_date="2026-06-30"))
        assert result.match_confidence == 1.0
        assert not result.is_match
        assert result.recommendation == "AVOID"
        assert result.risk_level == "CRITICAL"

    def test_unrelated_questions_need_review(self):
        result = heuristic_verify(kalshi(), poly(question=OTHER_Q))
        assert not result.is_match
        assert result.recommendation == "MANUAL_REVIEW"


# ---------------------------------------------------------------------------
# LLM detection
# ---------------------------------------------------------------------------

class TestLLMVerification:

    def test_sanitize(self):
        cleaned = sanitize_misalignments([
            {"type": "threshold", "severity": "critical", "description": " 100k vs 120k "},
            {"type": "vibes", "severity": "extreme", "description": "?"},
            "junk",
        ])
        assert [(m.type, m.severity) for m in cleaned] == [
            ("THRESHOLD", "CRITICAL"), ("DEFINITION", "MEDIUM"),
        ]
        assert cleaned[0].description == "100k vs 120k"
        assert sanitize_misalignments("none") == []

    def test_critical_forces_non_match(self):
        result = parse_llm_verification({
            "is_match": True, "match_confidence": 0.92,
            "misalignments": [{"type": "THRESHOLD", "severity": "CRITICAL", "description": "x"}],
        })
        assert not result.is_match
        assert result.recommendation == "AVOID"
        assert result.method == "llm"

    def test_camel_case_keys(self):
        result = parse_llm_verification({"isMatch": True, "matchConfidence": 0.9, "misalignments": []})
        assert result.recommendation == "SAFE_TO_TRADE"

    def test_missing_confidence_is_malformed(self):
        with pytest.raises(MalformedResponseError):
            parse_llm_verification({"is_match": True})

    def test_verify_pair_uses_llm(self):
        llm = FakeLLM({"is_match": True, "match_confidence": 0.6,
                       "misalignments": [{"type": "SCOPE", "severity": "HIGH", "description": "y"}]})
        result = asyncio.run(verify_pair(kalshi(), poly(), llm))
        assert result.method == "llm"
        assert result.recommendation == "PROCEED_WITH_CAUTION"
        assert "K1" in llm.prompts[0] and "P1" in llm.prompts[0]

    @pytest.mark.parametrize("failure", [TransportError("down"), MalformedResponseError("prose")])
    def test_verify_pair_falls_back(self, failure, capsys):
        result = asyncio.run(verify_pair(kalshi(), poly(), FakeLLM(failure)))
        assert result.method == "heuristic"
        assert result.recommendation == "SAFE_TO_TRADE"
        assert "using heuristic" in capsys.readouterr().out


# ---------------------------------------------------------------------------
# Matching
# ---------------------------------------------------------------------------

class TestMatching:

    def test_rank_by_score_then_kalshi_order_then_liquidity(self):
        k1, k2 = kalshi("K1"), kalshi("K2")
        p_thin = poly("P1", liquidity=10)
        p_deep = poly("P2", liquidity=1_000_000)
        ranked = rank_candidates([
            MatchCandidate(k2, p_deep, 0.9),
            MatchCandidate(k1, p_thin, 0.9),
            MatchCandidate(k1, p_deep, 0.9),
            MatchCandidate(k2, p_thin, 0.95),
        ], [k1, k2], [p_thin, p_deep])
        assert [(c.kalshi.market_id, c.polymarket.market_id) for c in ranked] == [
            ("K2", "P1"), ("K1", "P2"), ("K1", "P1"), ("K2", "P2"),
        ]

    def test_empty_venue(self):
        assert asyncio.run(find_matching_markets("fed", [], [poly()])) == []

    def test_heuristic_threshold(self):
        matches = asyncio.run(find_matching_markets(
            "fed", [kalshi()], [poly("P1"), poly("P2", question=OTHER_Q)]))
        assert [(c.polymarket.market_id, c.similarity) for c in matches] == [("P1", 1.0)]

    def test_llm_matches_filtered(self):
        llm = FakeLLM({"matches": [
            {"kalshi_id": "K1", "polymarket_id": "P1", "similarity": 0.9, "reasoning": "same"},
            {"kalshi_id": "K9", "polymarket_id": "P1", "similarity": 0.99},
            {"kalshi_id": "K1", "polymarket_id": "P2", "similarity": 0.3},
        ]})
        matches = asyncio.run(find_matching_markets(
            "fed", [kalshi()], [poly("P1"), poly("P2", question=RECESSION_Q)], llm=llm))
        assert len(matches) == 1
        assert matches[0].reasoning == "same"

    def test_llm_failure_uses_question_similarity(self, capsys):
        matches = asyncio.run(find_matching_markets(
            "fed", [kalshi()], [poly()], llm=FakeLLM(TransportError("down"))))
        assert len(matches) == 1
        assert "using question similarity" in capsys.readouterr().out


# ---------------------------------------------------------------------------
# Arbitrage and reports
# ---------------------------------------------------------------------------

class TestArbitrage:

    def test_spread_cents(self):
        assert price_spread_cents(kalshi(yes_price=0.72), poly(yes_price=0.68)) == 4.0

    def test_needs_safe_and_wide_spread(self):
        assert is_arbitrage_opportunity("SAFE_TO_TRADE", 3.01)
        assert not is_arbitrage_opportunity("SAFE_TO_TRADE", 3.0)
        assert not is_arbitrage_opportunity("PROCEED_WITH_CAUTION", 10.0)


def _pair(recommendation, spread, arb=False):
    verification = build_result(True, 0.9, [], "heuristic")
    verification.recommendation = recommendation
    return MatchedPair(kalshi(), poly(), verification, spread, arb)


class TestSummarize:

    def test_safe_but_tight(self):
        pairs = [_pair("SAFE_TO_TRADE", 1.0)]
        stats = {"safe_to_trade": 1}
        assert "1 pairs verified safe but spreads are tight." in summarize("fed", pairs, stats)

    def test_all_misaligned(self):
        text = summarize("fed", [_pair("AVOID", 9.0)], {"safe_to_trade": 0})
        assert "review carefully" in text

    def test_nothing(self):
        text = summarize("fed", [], {"safe_to_trade": 0})
        assert text == 'Found 0 potential market matches for "fed". No equivalent market pairs found.'


STRICT = Config(min_match_similarity=0.95)


def _venues():
    k = [
        kalshi("FED-K", FED_Q, yes_price=0.72),
        kalshi("BTC-K", BTC_Q, yes_price=0.50, description="Settles on the Coinbase price."),
        kalshi("REC-K", RECESSION_Q, yes_price=0.30, end_date="2026-12-31"),
    ]
    p = [
        poly("FED-P", FED_Q, yes_price=0.68),
        poly("BTC-P", BTC_Q, yes_price=0.60, description="Settles on the Binance price."),
        poly("REC-P", RECESSION_Q, yes_price=0.20, end_date="2026-06-30"),
    ]
    return FakeSearch(kalshi=k, polymarket=p)


class TestRunVerification:

    def test_report(self):
        report = asyncio.run(run_verification("markets", _venues(), cfg=STRICT))
        by_id = {p.kalshi.market_id: p for p in report.matched_pairs}

        assert set(by_id) == {"FED-K", "BTC-K", "REC-K"}
        assert by_id["FED-K"].verification.recommendation == "SAFE_TO_TRADE"
        assert by_id["FED-K"].arbitrage_opportunity
        assert by_id["BTC-K"].verification.recommendation == "PROCEED_WITH_CAUTION"
        assert not by_id["BTC-K"].arbitrage_opportunity
        assert by_id["REC-K"].verification.recommendation == "AVOID"

        assert report.statistics == {
            "markets_scanned": {"kalshi": 3, "polymarket": 3},
            "matches_found": 3,
            "safe_to_trade": 1,
            "proceed_with_caution": 1,
            "avoid": 1,
            "needs_review": 0,
        }
        assert "1 verified arbitrage opportunities" in report.summary
        assert "FED-K vs FED-P (4¢ spread)" in report.summary

    def test_pair_cap(self):
        cfg = Config(min_match_similarity=0.95, max_pairs_to_verify=1)
        report = asyncio.run(run_verification("markets", _venues(), cfg=cfg))
        assert len(report.matched_pairs) == 1
        assert report.statistics["markets_scanned"] == {"kalshi": 3, "polymarket": 3}

    def test_no_markets(self):
        report = asyncio.run(run_verification("nothing", FakeSearch(), cfg=STRICT))
        assert report.matched_pairs == []
        assert report.summary == 'No markets found for topic: "nothing"'
        assert report.statistics["matches_found"] == 0


class TestQuickVerify:

    def test_found(self):
        result = asyncio.run(quick_verify("FED-K", "FED-P", _venues()))
        assert result == {"verified": True, "confidence": 1.0,
                          "recommendation": "SAFE_TO_TRADE", "top_misalignment": None}

    def test_top_misalignment_reported(self):
        result = asyncio.run(quick_verify("REC-K", "REC-P", _venues()))
        assert result["recommendation"] == "AVOID"
        assert "Resolution dates differ" in result["top_misalignment"]

    def test_not_found(self):
        result = asyncio.run(quick_verify("NOPE", "FED-P", _venues()))
        assert result["verified"] is False
        assert result["recommendation"] == "Markets not found"


def test_verified_opportunities_widest_spread_first():
    result = asyncio.run(get_verified_arbitrage_opportunities("markets", _venues(), cfg=STRICT))
    assert [o["kalshi_ticker"] for o in result["opportunities"]] == ["BTC-K", "FED-K"]
    assert result["opportunities"][0]["spread"] == 10.0
    assert result["opportunities"][0]["recommendation"] == "PROCEED_WITH_CAUTION"
    assert result["opportunities"][1] == {
        "kalshi_ticker": "FED-K", "polymarket_id": "FED-P",
        "kalshi_price": 0.72, "polymarket_price": 0.68, "spread": 4.0,
        "verified": True, "recommendation": "SAFE_TO_TRADE",
    }
    assert result["summary"].startswith('Found 3 potential market matches for "markets".')
