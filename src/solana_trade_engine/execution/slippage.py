"""Adaptive slippage tolerance from price impact and pool depth."""

from __future__ import annotations

from fractions import Fraction
from typing import Optional

from ..config.trade import UnifiedTradeConfig
from .amm import as_fraction
from .errors import InvalidAmount

# (price impact percent strictly above, slippage floor)
IMPACT_FLOORS = ((5, 50), (2, 45), (1, 40))
SHALLOW_POOL_FLOOR = 50
THIN_POOL_FLOOR = 45
THIN_POOL_MULTIPLIER = 4


def price_impact_percent(reserve_in: int, amount_in: int) -> Fraction:
    if reserve_in < 0 or amount_in < 0:
        raise InvalidAmount("reserve_in and amount_in must be non-negative")
    if reserve_in == 0:
        return Fraction(100) if amount_in else Fraction(0)
    return Fraction(100 * amount_in, reserve_in)


def _impact_floor(impact: Fraction) -> int:
    for threshold, floor in IMPACT_FLOORS:
        if impact > threshold:
            return floor
    return 0


def _depth_floor(depth: Optional[float], threshold: float) -> int:
    if depth is None:
        return 0
    if depth < threshold:
        return SHALLOW_POOL_FLOOR
    if depth < THIN_POOL_MULTIPLIER * threshold:
        return THIN_POOL_FLOOR
    return 0


def advise(
    reserve_in: int,
    amount_in: int,
    config: UnifiedTradeConfig,
    depth: Optional[float] = None,
    depth_threshold: Optional[float] = None,
) -> float:
    """Slippage percent for swapping ``amount_in`` against ``reserve_in``.

    The base tolerance is raised to the highest floor triggered by price
    impact or by shallow depth, then capped at ``config.slippage.max``. A
    user override replaces the computed value but is still capped.
    """

    settings = config.slippage
    if settings.user_override is not None:
        return min(settings.user_override, settings.max)
    threshold = config.liquidity.low_threshold if depth_threshold is None else depth_threshold
    impact = price_impact_percent(reserve_in, amount_in)
    advised = max(settings.base, _impact_floor(impact), _depth_floor(depth, threshold))
    return float(min(advised, settings.max))


def retry_slippage(initial: float, attempt: int, config: UnifiedTradeConfig) -> float:
    """Slippage for retry ``attempt``: widened by ``retry_bonus`` each time, capped at max."""

    if attempt < 0:
        raise InvalidAmount(f"attempt must be non-negative, got {attempt}")
    widened = as_fraction(initial) + attempt * as_fraction(config.slippage.retry_bonus)
    return float(min(widened, as_fraction(config.slippage.max)))


__all__ = ["advise", "price_impact_percent", "retry_slippage"]
