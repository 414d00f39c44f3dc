"""Priority-fee escalation and platform fee computation."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Tuple, Union

from solders.pubkey import Pubkey

from ..config.trade import PriorityFeeSettings, UnifiedTradeConfig, Venue
from ..utils.constants import FEE_DUST_THRESHOLD, MAESTRO_FEE_ACCOUNT, PLATFORM_FEE_WALLET
from .amm import as_fraction
from .errors import InvalidAmount

FeeConfig = Union[UnifiedTradeConfig, PriorityFeeSettings]


def _priority_settings(config: FeeConfig) -> PriorityFeeSettings:
    if isinstance(config, UnifiedTradeConfig):
        return config.priority_fees
    return config


def fee_for_attempt(attempt: int, config: FeeConfig) -> int:
    """Compute-unit price in micro-lamports for retry ``attempt`` (0-based).

    ``clamp(floor(base * multiplier ** attempt), min, max)``, evaluated with
    exact rationals so 1.5 ** n never picks up float error.
    """

    if attempt < 0:
        raise InvalidAmount(f"attempt must be non-negative, got {attempt}")
    settings = _priority_settings(config)
    scaled = settings.base * as_fraction(settings.retry_multiplier) ** attempt
    fee = scaled.numerator // scaled.denominator
    return max(settings.min, min(fee, settings.max))


def fee_schedule(config: FeeConfig, attempts: int) -> List[int]:
    return [fee_for_attempt(index, config) for index in range(max(attempts, 1))]


@dataclass(frozen=True, slots=True)
class TradeFees:
    """Platform and maestro fee amounts in the trade's SOL-side units."""

    platform: int = 0
    maestro: int = 0

    @property
    def total(self) -> int:
        return self.platform + self.maestro

    def transfers(self) -> List[Tuple[Pubkey, int]]:
        """Fee transfers worth sending; amounts under the dust floor are dropped."""

        pending = [(PLATFORM_FEE_WALLET, self.platform), (MAESTRO_FEE_ACCOUNT, self.maestro)]
        return [(recipient, amount) for recipient, amount in pending if amount >= FEE_DUST_THRESHOLD]


NO_FEES = TradeFees()


def _percent_of(amount: int, percentage: float) -> int:
    scaled = amount * as_fraction(percentage) / 100
    return scaled.numerator // scaled.denominator


def compute_trade_fees(amount: int, config: UnifiedTradeConfig, venue: Venue) -> TradeFees:
    """Fees owed on ``amount`` lamports of SOL-side volume.

    Launchpad A trades pay the flat maestro fee; every other venue pays a
    percentage.
    """

    if amount < 0:
        raise InvalidAmount(f"amount must be non-negative, got {amount}")
    platform = _percent_of(amount, config.fees.platform_percentage)
    if venue == Venue.BONDING_CURVE_A:
        maestro = config.fees.maestro_fixed if amount else 0
    else:
        maestro = _percent_of(amount, config.fees.maestro_percentage)
    return TradeFees(platform=platform, maestro=maestro)


__all__ = [
    "NO_FEES",
    "TradeFees",
    "compute_trade_fees",
    "fee_for_attempt",
    "fee_schedule",
]
