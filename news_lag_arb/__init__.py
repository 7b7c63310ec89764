"""News-lag arbitrage — breaking news → fair value edges on Kalshi and Polymarket."""

__version__ = "0.1.0"

from .dedup import HeadlineDeduplicator
from .fair_value import estimate_fair_value
from .risk_sizer import generate_trade_recommendation, size_position
from .verifier import (
    derive_recommendation, find_matching_markets, get_verified_arbitrage_opportunities,
    quick_verify, run_verification, verify_pair,
)
from .monitor import NewsMonitor, analyze_once
from .scanner import run_scan, main
