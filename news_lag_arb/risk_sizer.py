"""Position sizing and trade recommendations from a fair value edge.

The sizer acts on any |edge| above 3¢, looser than the 5¢ the fair value
engine needs before it calls buy/sell. The two thresholds apply at different
stages of the pipeline.
"""

import math
from dataclasses import dataclass

from .errors import ValidationError
from .models import TradeRecommendation

ACTION_EDGE = 0.03
DEFAULT_MAX_POSITION = 250.0
SIZE_STEP = 25.0

# Recommendation levels — the stop here is wider than the estimate's
ENTRY_OFFSET = 0.02
STOP_DISTANCE = 0.12


@dataclass
class PositionSize:
    action: str  # "BUY", "SELL", "HOLD"
    side: str    # "YES", "NO"
    suggested_size: float
    contracts: int
    expected_profit: float
    confidence: str  # "HIGH", "MEDIUM", "LOW"


def confidence_label(edge: float) -> str:
    edge_abs = abs(edge)
    if edge_abs > 0.15:
        return "HIGH"
    if edge_abs > 0.08:
        return "MEDIUM"
    return "LOW"


def action_for_edge(edge: float) -> str:
    if edge > ACTION_EDGE:
        return "BUY"
    if edge < -ACTION_EDGE:
        return "SELL"
    return "HOLD"


def suggested_size(edge: float, liquidity: float,
                   max_position_size: float = DEFAULT_MAX_POSITION) -> float:
    """Dollar size scaled down for thin edges and thin books, in $25 steps."""
    edge_abs = abs(edge)
    size = max_position_size

    if edge_abs < 0.05:
        size *= 0.5
    elif edge_abs < 0.10:
        size *= 0.75

    if liquidity < 20_000:
        size *= 0.5
    elif liquidity < 50_000:
        size *= 0.75

    size = math.floor(size / SIZE_STEP + 0.5) * SIZE_STEP
    return max(SIZE_STEP, min(max_position_size, size))


def size_position(edge: float, liquidity: float, current_price: float, fair_value: float,
                  max_position_size: float = DEFAULT_MAX_POSITION) -> PositionSize:
    """Size a trade on the side the edge points to.

    Prices are YES prices; a short is priced on the NO side (1 - YES).
    """
    if not (0.0 <= current_price <= 1.0) or not (0.0 <= fair_value <= 1.0):
        raise ValidationError("current_price and fair_value must be within [0, 1]")
    if liquidity < 0:
        raise ValidationError(f"liquidity must be >= 0, got {liquidity!r}")
    if max_position_size < SIZE_STEP:
        raise ValidationError(f"max_position_size must be at least {SIZE_STEP:.0f}")

    long = edge > 0
    size = suggested_size(edge, liquidity, max_position_size)

    entry_price = current_price if long else 1 - current_price
    exit_price = fair_value if long else 1 - fair_value
    contracts = math.floor(size / entry_price) if entry_price > 0 else 0
    expected_profit = contracts * (exit_price - entry_price)

    return PositionSize(
        action=action_for_edge(edge),
        side="YES" if long else "NO",
        suggested_size=size,
        contracts=contracts,
        expected_profit=round(expected_profit, 2),
        confidence=confidence_label(edge),
    )


def generate_trade_recommendation(
    current_price: float,
    fair_value: float,
    edge: float,
    liquidity: float,
    max_position_size: float = DEFAULT_MAX_POSITION,
    venue: str = "",
    market_id: str = "",
    question: str = "",
) -> TradeRecommendation:
    """Full recommendation: sizing plus entry limit, stop and take-profit."""
    sized = size_position(edge, liquidity, current_price, fair_value, max_position_size)
    long = edge > 0

    entry_limit = current_price + ENTRY_OFFSET if long else current_price - ENTRY_OFFSET
    stop_loss = current_price - STOP_DISTANCE if long else current_price + STOP_DISTANCE
    edge_percent = (edge / current_price) * 100 if current_price > 0 else 0.0

    reasoning = (
        f"{sized.confidence} confidence {sized.side} signal. "
        f"Edge of {round(edge * 100)}% detected. "
        f"Fair value estimated at {round(fair_value * 100)}¢ vs current {round(current_price * 100)}¢."
    )

    return TradeRecommendation(
        action=sized.action,
        side=sized.side,
        suggested_size=sized.suggested_size,
        contracts=sized.contracts,
        expected_profit=sized.expected_profit,
        entry_limit=round(entry_limit, 2),
        stop_loss=round(stop_loss, 2),
        take_profit=round(fair_value, 2),
        confidence=sized.confidence,
        reasoning=reasoning,
        venue=venue,
        market_id=market_id,
        question=question,
        current_price=current_price,
        fair_value=round(fair_value, 2),
        edge=round(edge, 2),
        edge_percent=round(edge_percent, 1),
    )
