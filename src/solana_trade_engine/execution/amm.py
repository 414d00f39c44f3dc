"""Integer swap math for constant-product pools and bonding curves.

Every function works on Python integers and floors after each division so
results match the on-chain programs unit for unit. Any divergence shows up
as a slippage-guard rejection at submission time.
"""

from __future__ import annotations

from fractions import Fraction
from typing import Union

from .errors import InvalidAmount, InvalidSlippage, PoolEmpty

BPS_DENOMINATOR = 10_000
Q64 = 1 << 64
Q128 = 1 << 128

Percent = Union[int, float, Fraction]


def _require_non_negative(**values: int) -> None:
    for name, value in values.items():
        if value < 0:
            raise InvalidAmount(f"{name} must be non-negative, got {value}")


def deduct_fee(amount: int, fee_bps: int) -> int:
    """Return ``amount`` minus a basis-point fee rounded down."""

    _require_non_negative(amount=amount, fee_bps=fee_bps)
    return amount - amount * fee_bps // BPS_DENOMINATOR


def quote_out(reserve_in: int, reserve_out: int, amount_in: int, fee_bps: int) -> int:
    """Constant-product output for ``amount_in`` after the pool fee."""

    _require_non_negative(reserve_in=reserve_in, reserve_out=reserve_out, amount_in=amount_in)
    if amount_in == 0:
        return 0
    if reserve_in == 0:
        raise PoolEmpty("Pool has no input-side reserve")
    amount_in_after_fee = deduct_fee(amount_in, fee_bps)
    return reserve_out - (reserve_in * reserve_out) // (reserve_in + amount_in_after_fee)


def quote_in(reserve_in: int, reserve_out: int, amount_out: int, fee_bps: int) -> int:
    """Smallest input that yields at least ``amount_out`` (exact-output swaps)."""

    _require_non_negative(reserve_in=reserve_in, reserve_out=reserve_out, amount_out=amount_out, fee_bps=fee_bps)
    if fee_bps >= BPS_DENOMINATOR:
        raise InvalidAmount(f"fee_bps must be below {BPS_DENOMINATOR}, got {fee_bps}")
    if amount_out == 0:
        return 0
    if reserve_in == 0 or amount_out >= reserve_out:
        raise PoolEmpty("Pool cannot supply the requested output")
    raw = -(-reserve_in * amount_out // (reserve_out - amount_out))
    return -(-raw * BPS_DENOMINATOR // (BPS_DENOMINATOR - fee_bps))


def as_fraction(value: Percent) -> Fraction:
    """Exact rational for a configured number; floats go through ``str``."""

    if isinstance(value, float):
        return Fraction(str(value))
    return Fraction(value)


def _check_slippage(slippage_percent: Percent) -> Fraction:
    value = as_fraction(slippage_percent)

    if not 0 <= value <= 100:
        raise InvalidSlippage(f"Slippage must be within [0, 100], got {slippage_percent}")
    return value


def apply_slippage(amount: int, slippage_percent: Percent) -> int:
    """Minimum acceptable output: ``floor(amount * (100 - slippage) / 100)``."""

    _require_non_negative(amount=amount)
    slippage = _check_slippage(slippage_percent)
    scaled = amount * (100 - slippage) / 100
    return scaled.numerator // scaled.denominator


def apply_slippage_ceiling(amount: int, slippage_percent: Percent) -> int:
    """Maximum acceptable input: ``floor(amount * (100 + slippage) / 100)``."""

    _require_non_negative(amount=amount)
    slippage = _check_slippage(slippage_percent)
    scaled = amount * (100 + slippage) / 100
    return scaled.numerator // scaled.denominator


def quote_bonding_curve_buy(
    amount_in: int,
    virtual_token_reserves: int,
    virtual_sol_reserves: int,
    real_token_reserves: int,
) -> int:
    """Tokens received for ``amount_in`` lamports on a virtual-reserve curve."""

    _require_non_negative(amount_in=amount_in)
    if amount_in == 0:
        return 0
    if virtual_sol_reserves <= 0 or virtual_token_reserves <= 0:
        raise PoolEmpty("Bonding curve has no virtual reserves")
    product = virtual_sol_reserves * virtual_token_reserves
    remaining = product // (virtual_sol_reserves + amount_in) + 1
    tokens_out = virtual_token_reserves - remaining
    return max(0, min(tokens_out, real_token_reserves))


def quote_bonding_curve_sell(
    amount_in: int,
    virtual_token_reserves: int,
    virtual_sol_reserves: int,
    fee_bps: int = 0,
) -> int:
    """Lamports received for selling ``amount_in`` tokens, net of ``fee_bps``."""

    _require_non_negative(amount_in=amount_in)
    if amount_in == 0:
        return 0
    if virtual_token_reserves <= 0:
        raise PoolEmpty("Bonding curve has no virtual reserves")
    gross = amount_in * virtual_sol_reserves // (virtual_token_reserves + amount_in)
    return deduct_fee(gross, fee_bps)


def quote_sqrt_price(amount_in: int, sqrt_price_x64: int, fee_bps: int, base_to_quote: bool) -> int:
    """Spot-price estimate from a Q64.64 square-root price.

    ``price = (sqrt_price / 2**64) ** 2`` quote units per base unit. Ignores
    curve movement within the swap, so callers widen slippage accordingly.
    """

    _require_non_negative(amount_in=amount_in, sqrt_price_x64=sqrt_price_x64)
    if amount_in == 0:
        return 0
    if sqrt_price_x64 == 0:
        raise PoolEmpty("Pool has no price")
    after_fee = deduct_fee(amount_in, fee_bps)
    price_x128 = sqrt_price_x64 * sqrt_price_x64
    if base_to_quote:
        return after_fee * price_x128 // Q128
    return after_fee * Q128 // price_x128


__all__ = [
    "BPS_DENOMINATOR",
    "apply_slippage",
    "apply_slippage_ceiling",
    "as_fraction",
    "deduct_fee",
    "quote_bonding_curve_buy",
    "quote_bonding_curve_sell",
    "quote_in",
    "quote_out",
    "quote_sqrt_price",
]
