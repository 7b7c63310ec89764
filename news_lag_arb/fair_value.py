"""Fair value estimation — how far breaking news should move a market's YES price.

The expected shift grows with news magnitude in three bands:

    magnitude > 0.8        → 0.15 + (m - 0.8) * 0.5     (15-25¢)
    0.5 < magnitude ≤ 0.8  → 0.05 + (m - 0.5) * 0.333   (5-15¢)
    magnitude ≤ 0.5        → m * 0.1                    (0-5¢)

Negative news flips the sign, neutral news keeps a fifth of it, and the
result is scaled by the analysis confidence. All arithmetic runs unrounded;
prices are rounded to the cent and percentages to one decimal only when the
estimate is built. The unrounded fair value and edge ride along for sizing.
"""

from .errors import ValidationError
from .models import DIRECTIONS, FairValueEstimate

MIN_FAIR_VALUE = 0.01
MAX_FAIR_VALUE = 0.99

MIN_LIQUIDITY = 10_000   # below this nothing is tradeable
MIN_CONFIDENCE = 0.5

STRONG_EDGE = 0.15
STRONG_CONFIDENCE = 0.7
MEDIUM_EDGE = 0.08
MEDIUM_CONFIDENCE = 0.6
MIN_EDGE = 0.05

ENTRY_OFFSET = 0.02    # chase at most 2¢ past the current price
ENTRY_CUSHION = 0.03   # leave 3¢ of edge between entry and fair value
STOP_DISTANCE = 0.10

NEUTRAL_DAMPING = 0.2


def _check_unit(name: str, value: float):
    if value is None or not (0.0 <= value <= 1.0):
        raise ValidationError(f"{name} must be within [0, 1], got {value!r}")


def calculate_base_shift(magnitude: float, direction: str) -> float:
    """Signed price shift for news of this magnitude and direction, before confidence."""
    if magnitude > 0.8:
        shift = 0.15 + (magnitude - 0.8) * 0.5
    elif magnitude > 0.5:
        shift = 0.05 + (magnitude - 0.5) * 0.333
    else:
        shift = magnitude * 0.1

    if direction == "negative":
        shift = -shift
    elif direction == "neutral":
        shift = shift * NEUTRAL_DAMPING
    return shift


def classify_signal(edge: float, confidence: float, liquidity: float) -> tuple[str, str]:
    """Return (signal, direction). Rules apply in priority order."""
    if liquidity < MIN_LIQUIDITY:
        return "hold", "hold"
    if confidence < MIN_CONFIDENCE:
        return "hold", "hold"

    edge_abs = abs(edge)
    direction = "long" if edge > 0 else "short" if edge < 0 else "hold"

    if edge_abs > STRONG_EDGE and confidence > STRONG_CONFIDENCE:
        return ("strong_buy" if edge > 0 else "strong_sell"), direction
    if edge_abs > MEDIUM_EDGE and confidence > MEDIUM_CONFIDENCE:
        return ("buy" if edge > 0 else "sell"), direction
    if edge_abs > MIN_EDGE:
        return ("buy" if edge > 0 else "sell"), direction
    return "hold", "hold"


def trade_levels(current_price: float, fair_value: float) -> tuple[float, float, float]:
    """(entry, target, stop) for the trade the edge points to; short mirrors long."""
    if fair_value > current_price:
        entry = min(current_price + ENTRY_OFFSET, fair_value - ENTRY_CUSHION)
        stop = current_price - STOP_DISTANCE
    else:
        entry = max(current_price - ENTRY_OFFSET, fair_value + ENTRY_CUSHION)
        stop = current_price + STOP_DISTANCE
    return entry, fair_value, stop


def generate_reasoning(question: str, headline: str, current_price: float,
                       fair_value: float, edge: float, signal: str) -> str:
    valuation = "undervalued" if edge > 0 else "overvalued"
    action = "BUY YES" if edge > 0 else "SELL YES / BUY NO"
    subject = f'Market "{question}"' if question else "Market"
    news = f' given news: "{headline}"' if headline else ""
    return (
        f"{subject} appears {valuation}{news}. "
        f"Current price {round(current_price * 100)}¢ vs fair value {round(fair_value * 100)}¢ "
        f"({round(edge * 100)}% edge). Signal: {signal.upper()}. Recommended action: {action}."
    )


def estimate_fair_value(
    current_price: float,
    magnitude: float,
    direction: str,
    confidence: float,
    liquidity: float = 50_000,
    market_question: str = "",
    headline: str = "",
) -> FairValueEstimate:
    """Estimate where a market should trade after the news, with a signal and levels.

    Raises ValidationError when any input is outside its contract.
    """
    _check_unit("current_price", current_price)
    _check_unit("magnitude", magnitude)
    _check_unit("confidence", confidence)
    if direction not in DIRECTIONS:
        raise ValidationError(f"direction must be one of {DIRECTIONS}, got {direction!r}")
    if liquidity is None or liquidity < 0:
        raise ValidationError(f"liquidity must be >= 0, got {liquidity!r}")

    shift = calculate_base_shift(magnitude, direction) * confidence
    fair_value = max(MIN_FAIR_VALUE, min(MAX_FAIR_VALUE, current_price + shift))

    edge = fair_value - current_price
    edge_percent = (edge / current_price) * 100 if current_price > 0 else 0.0

    signal, trade_direction = classify_signal(edge, confidence, liquidity)

    entry, target, stop = trade_levels(current_price, fair_value)
    risk = abs(entry - stop)
    risk_reward = abs(target - entry) / risk if risk > 0 else 0.0

    return FairValueEstimate(
        current_price=round(current_price, 2),
        fair_value=round(fair_value, 2),
        edge=round(edge, 2),
        edge_percent=round(edge_percent, 1),
        direction=trade_direction,
        signal=signal,
        confidence=confidence,
        entry_price=round(entry, 2),
        target_price=round(target, 2),
        stop_loss=round(stop, 2),
        risk_reward=round(risk_reward, 1),
        reasoning=generate_reasoning(market_question, headline, current_price,
                                     fair_value, edge, signal),
        raw_fair_value=fair_value,
        raw_edge=edge,
    )
