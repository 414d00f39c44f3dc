"""Unified trade configuration shared by every venue.

A trade's configuration is assembled once per request by layering
built-in defaults, a named preset, caller overrides and finally the
per-venue override, then validated as a whole. The resulting object is
frozen.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from ..execution.errors import ConfigurationError


class Venue(str, Enum):
    """Liquidity venues understood by the engine."""

    BONDING_CURVE_A = "bonding_curve_a"
    AMM_A = "amm_a"
    BONDING_CURVE_B = "bonding_curve_b"
    CPMM_GENERIC = "cpmm_generic"
    METEORA = "meteora"
    HEAVEN = "heaven"
    UNKNOWN = "unknown"


class TradePreset(str, Enum):
    """Named bundles of slippage, fee and retry settings."""

    CONSERVATIVE = "conservative"
    BALANCED = "balanced"
    AGGRESSIVE = "aggressive"
    ULTRA = "ultra"


class TransactionType(str, Enum):
    """Transaction categories with their own priority-fee profile."""

    BUY = "buy"
    SELL = "sell"
    ULTRA_FAST = "ultra_fast"
    TOKEN_CREATION = "token_creation"
    TRANSFER = "transfer"
    DEFAULT = "default"


class SlippageSettings(BaseModel):
    """Slippage percentages."""

    model_config = ConfigDict(frozen=True)

    base: float = 35.0
    max: float = 70.0
    retry_bonus: float = 10.0
    user_override: Optional[float] = None


class PriorityFeeSettings(BaseModel):
    """Compute-unit price schedule in micro-lamports."""

    model_config = ConfigDict(frozen=True)

    base: int = 1_500_000
    retry_multiplier: float = 1.5
    max: int = 12_000_000
    min: int = 300_000


class RetrySettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    max_attempts: int = 3
    delay_ms: int = 1_000


class FeeSettings(BaseModel):
    """Platform and secondary (maestro) trade fees."""

    model_config = ConfigDict(frozen=True)

    platform_percentage: float = 1.0
    maestro_percentage: float = 0.25
    maestro_fixed: int = 1_000_000


class LiquiditySettings(BaseModel):
    """Pool depth thresholds in whole SOL (or whole tokens on the token side)."""

    model_config = ConfigDict(frozen=True)

    low_threshold: float = 5.0
    medium_threshold: float = 20.0


class SlippageOverride(BaseModel):
    base: Optional[float] = None
    max: Optional[float] = None
    retry_bonus: Optional[float] = None
    user_override: Optional[float] = None


class PriorityFeeOverride(BaseModel):
    base: Optional[int] = None
    retry_multiplier: Optional[float] = None
    max: Optional[int] = None
    min: Optional[int] = None


class RetryOverride(BaseModel):
    max_attempts: Optional[int] = None
    delay_ms: Optional[int] = None


class FeeOverride(BaseModel):
    platform_percentage: Optional[float] = None
    maestro_percentage: Optional[float] = None
    maestro_fixed: Optional[int] = None


class LiquidityOverride(BaseModel):
    low_threshold: Optional[float] = None
    medium_threshold: Optional[float] = None


class TradeConfigOverride(BaseModel):
    """Partial configuration; unset fields keep the underlying value."""

    slippage: Optional[SlippageOverride] = None
    priority_fees: Optional[PriorityFeeOverride] = None
    retry: Optional[RetryOverride] = None
    fees: Optional[FeeOverride] = None
    liquidity: Optional[LiquidityOverride] = None


_Section = TypeVar("_Section", bound=BaseModel)


def _merge_section(section: _Section, override: Optional[BaseModel]) -> _Section:
    if override is None:
        return section
    changes = override.model_dump(exclude_none=True)
    if not changes:
        return section
    return section.model_copy(update=changes)


class VenueTradeParams(BaseModel):
    """Venue-specific view of a unified configuration."""

    model_config = ConfigDict(frozen=True)

    venue: Venue
    base_slippage: float
    max_slippage: float
    retry_slippage_bonus: float
    adaptive_slippage: bool
    max_retries: int
    retry_delay_ms: int
    platform_fee_percentage: float
    maestro_fee_percentage: float
    low_liquidity_threshold: float
    medium_liquidity_threshold: float


# Launchpad A and its AMM quote with the configured slippage as-is; the
# remaining venues widen it from pool depth and price impact.
_FIXED_SLIPPAGE_VENUES = frozenset({Venue.BONDING_CURVE_A, Venue.AMM_A})


class UnifiedTradeConfig(BaseModel):
    """Immutable, validated configuration for a single trade request."""

    model_config = ConfigDict(frozen=True)

    slippage: SlippageSettings = Field(default_factory=SlippageSettings)
    priority_fees: PriorityFeeSettings = Field(default_factory=PriorityFeeSettings)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    fees: FeeSettings = Field(default_factory=FeeSettings)
    liquidity: LiquiditySettings = Field(default_factory=LiquiditySettings)
    venue_overrides: Dict[Venue, TradeConfigOverride] = Field(default_factory=dict)

    def merge(self, override: Optional[TradeConfigOverride]) -> "UnifiedTradeConfig":
        """Return a copy with ``override`` applied field by field."""

        if override is None:
            return self
        return UnifiedTradeConfig(
            slippage=_merge_section(self.slippage, override.slippage),
            priority_fees=_merge_section(self.priority_fees, override.priority_fees),
            retry=_merge_section(self.retry, override.retry),
            fees=_merge_section(self.fees, override.fees),
            liquidity=_merge_section(self.liquidity, override.liquidity),
            venue_overrides=dict(self.venue_overrides),
        )

    def for_venue(self, venue: Optional[Venue]) -> "UnifiedTradeConfig":
        if venue is None:
            return self
        return self.merge(self.venue_overrides.get(venue))

    def effective_slippage(self) -> float:
        if self.slippage.user_override is not None:
            return self.slippage.user_override
        return self.slippage.base

    def to_venue_params(self, venue: Venue) -> VenueTradeParams:
        cfg = self.for_venue(venue)
        return VenueTradeParams(
            venue=venue,
            base_slippage=cfg.effective_slippage(),
            max_slippage=cfg.slippage.max,
            retry_slippage_bonus=cfg.slippage.retry_bonus,
            adaptive_slippage=venue not in _FIXED_SLIPPAGE_VENUES,
            max_retries=cfg.retry.max_attempts,
            retry_delay_ms=cfg.retry.delay_ms,
            platform_fee_percentage=cfg.fees.platform_percentage,
            maestro_fee_percentage=cfg.fees.maestro_percentage,
            low_liquidity_threshold=cfg.liquidity.low_threshold,
            medium_liquidity_threshold=cfg.liquidity.medium_threshold,
        )

    def to_priority_fee_config(
        self, transaction_type: Optional[TransactionType] = None
    ) -> PriorityFeeSettings:
        if transaction_type is None:
            return self.priority_fees
        return PRIORITY_FEE_PROFILES[transaction_type]


PRESETS: Dict[TradePreset, TradeConfigOverride] = {
    TradePreset.CONSERVATIVE: TradeConfigOverride(
        slippage=SlippageOverride(base=20, max=40, retry_bonus=5),
        priority_fees=PriorityFeeOverride(base=1_000_000, retry_multiplier=1.5, max=8_000_000, min=200_000),
        retry=RetryOverride(max_attempts=2, delay_ms=1_500),
    ),
    TradePreset.BALANCED: TradeConfigOverride(),
    TradePreset.AGGRESSIVE: TradeConfigOverride(
        slippage=SlippageOverride(base=50, max=80, retry_bonus=15),
        priority_fees=PriorityFeeOverride(base=2_000_000, retry_multiplier=1.5, max=15_000_000, min=500_000),
        retry=RetryOverride(max_attempts=4, delay_ms=800),
    ),
    TradePreset.ULTRA: TradeConfigOverride(
        slippage=SlippageOverride(base=70, max=95, retry_bonus=20),
        priority_fees=PriorityFeeOverride(base=3_000_000, retry_multiplier=1.5, max=25_000_000, min=1_000_000),
        retry=RetryOverride(max_attempts=5, delay_ms=500),
    ),
}

PRIORITY_FEE_PROFILES: Dict[TransactionType, PriorityFeeSettings] = {
    TransactionType.BUY: PriorityFeeSettings(base=1_500_000, retry_multiplier=1.5, max=12_000_000, min=300_000),
    TransactionType.SELL: PriorityFeeSettings(base=1_000_000, retry_multiplier=1.5, max=8_000_000, min=200_000),
    TransactionType.ULTRA_FAST: PriorityFeeSettings(base=3_000_000, retry_multiplier=2.0, max=25_000_000, min=1_000_000),
    TransactionType.TOKEN_CREATION: PriorityFeeSettings(
        base=2_000_000, retry_multiplier=1.5, max=15_000_000, min=500_000
    ),
    TransactionType.TRANSFER: PriorityFeeSettings(base=500_000, retry_multiplier=1.5, max=5_000_000, min=100_000),
    TransactionType.DEFAULT: PriorityFeeSettings(base=1_000_000, retry_multiplier=1.5, max=10_000_000, min=100_000),
}


@dataclass(frozen=True, slots=True)
class ConfigError:
    """Single violated configuration invariant."""

    field: str
    message: str

    def __str__(self) -> str:
        return f"{self.field}: {self.message}"


def _check_percentage(errors: List[ConfigError], field: str, value: Optional[float]) -> None:
    if value is not None and not 0 <= value <= 100:
        errors.append(ConfigError(field, "must be between 0 and 100"))


def validate_trade_config(config: UnifiedTradeConfig) -> List[ConfigError]:
    """Return every invariant ``config`` violates; an empty list means valid."""

    errors: List[ConfigError] = []
    slippage = config.slippage
    _check_percentage(errors, "slippage.base", slippage.base)
    _check_percentage(errors, "slippage.max", slippage.max)
    _check_percentage(errors, "slippage.user_override", slippage.user_override)
    if slippage.max < slippage.base:
        errors.append(ConfigError("slippage.max", "must be greater than or equal to slippage.base"))
    if slippage.retry_bonus < 0:
        errors.append(ConfigError("slippage.retry_bonus", "must be non-negative"))

    fees = config.priority_fees
    if fees.base < 0:
        errors.append(ConfigError("priority_fees.base", "must be non-negative"))
    if fees.max < fees.base:
        errors.append(ConfigError("priority_fees.max", "must be greater than or equal to priority_fees.base"))
    if fees.min > fees.base:
        errors.append(ConfigError("priority_fees.min", "must be less than or equal to priority_fees.base"))
    if fees.min < 0:
        errors.append(ConfigError("priority_fees.min", "must be non-negative"))
    if fees.retry_multiplier < 1:
        errors.append(ConfigError("priority_fees.retry_multiplier", "must be at least 1"))

    if config.retry.max_attempts < 0:
        errors.append(ConfigError("retry.max_attempts", "must be non-negative"))
    if config.retry.delay_ms < 0:
        errors.append(ConfigError("retry.delay_ms", "must be non-negative"))

    _check_percentage(errors, "fees.platform_percentage", config.fees.platform_percentage)
    _check_percentage(errors, "fees.maestro_percentage", config.fees.maestro_percentage)
    if config.fees.maestro_fixed < 0:
        errors.append(ConfigError("fees.maestro_fixed", "must be non-negative"))

    liquidity = config.liquidity
    if liquidity.low_threshold < 0:
        errors.append(ConfigError("liquidity.low_threshold", "must be non-negative"))
    if liquidity.medium_threshold < liquidity.low_threshold:
        errors.append(
            ConfigError("liquidity.medium_threshold", "must be greater than or equal to liquidity.low_threshold")
        )
    return errors


def build_trade_config(
    preset: Optional[TradePreset] = None,
    *overrides: Optional[TradeConfigOverride],
    venue: Optional[Venue] = None,
    venue_overrides: Optional[Dict[Venue, TradeConfigOverride]] = None,
) -> UnifiedTradeConfig:
    """Layer defaults, preset, caller overrides and venue override, then validate.

    Overrides apply left to right, so later entries win.
    """

    config = UnifiedTradeConfig(venue_overrides=dict(venue_overrides or {}))
    if preset is not None:
        config = config.merge(PRESETS[TradePreset(preset)])
    for override in overrides:
        config = config.merge(override)
    config = config.for_venue(venue)
    errors = validate_trade_config(config)
    if errors:
        raise ConfigurationError(errors)
    return config


__all__ = [
    "ConfigError",
    "FeeOverride",
    "FeeSettings",
    "LiquidityOverride",
    "LiquiditySettings",
    "PRESETS",
    "PRIORITY_FEE_PROFILES",
    "PriorityFeeOverride",
    "PriorityFeeSettings",
    "RetryOverride",
    "RetrySettings",
    "SlippageOverride",
    "SlippageSettings",
    "TradeConfigOverride",
    "TradePreset",
    "TransactionType",
    "UnifiedTradeConfig",
    "Venue",
    "VenueTradeParams",
    "build_trade_config",
    "validate_trade_config",
]
