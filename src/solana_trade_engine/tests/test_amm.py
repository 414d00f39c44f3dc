from __future__ import annotations

from fractions import Fraction

import pytest

from solana_trade_engine.execution.amm import (
    Q64,
    apply_slippage,
    as_fraction,
    deduct_fee,
    quote_bonding_curve_buy,
    quote_bonding_curve_sell,
    quote_in,
    quote_out,
    quote_sqrt_price,
)
from solana_trade_engine.execution.errors import InvalidAmount, InvalidSlippage, PoolEmpty


def test_quote_out_matches_integer_formula() -> None:
    # 1 SOL into a 30 SOL / 1e15 token pool at 25 bps
    reserve_in, reserve_out, amount_in = 30_000_000_000, 1_000_000_000_000_000, 1_000_000_000
    after_fee = amount_in - amount_in * 25 // 10_000
    expected = reserve_out - (reserve_in * reserve_out) // (reserve_in + after_fee)

    assert quote_out(reserve_in, reserve_out, amount_in, 25) == expected


def test_quote_out_hand_worked_example() -> None:
    # 10_000 - 25 = 9_975 in; 2e12 // 1_009_975 = 1_980_247
    assert quote_out(1_000_000, 2_000_000, 10_000, 25) == 19_753


def test_quote_out_handles_reserves_beyond_64_bits() -> None:
    big = (1 << 64) - 1
    out = quote_out(big, big, big, 0)
    assert out == big - (big * big) // (2 * big)
    assert 0 <= out < big


def test_quote_out_edge_cases() -> None:
    assert quote_out(100, 100, 0, 25) == 0
    assert quote_out(0, 100, 0, 25) == 0
    with pytest.raises(PoolEmpty):
        quote_out(0, 100, 10, 25)
    with pytest.raises(InvalidAmount):
        quote_out(100, 100, -1, 25)


def test_quote_out_is_monotone_and_bounded() -> None:
    reserve_in, reserve_out = 5_000_000, 9_000_000
    previous = 0
    for amount in range(0, 50_000_000, 1_250_000):
        out = quote_out(reserve_in, reserve_out, amount, 30)
        assert previous <= out < reserve_out
        previous = out


def test_deduct_fee_floors() -> None:
    assert deduct_fee(999, 25) == 997
    assert deduct_fee(10_000, 100) == 9_900


def test_quote_in_covers_requested_output() -> None:
    reserve_in, reserve_out, fee = 40_000_000_000, 800_000_000_000, 25
    wanted = 12_345_678_901
    needed = quote_in(reserve_in, reserve_out, wanted, fee)
    assert quote_out(reserve_in, reserve_out, needed, fee) >= wanted
    with pytest.raises(PoolEmpty):
        quote_in(reserve_in, reserve_out, reserve_out, fee)


@pytest.mark.parametrize("fee_bps", [10_000, 12_000, -1])
def test_quote_in_rejects_impossible_fee(fee_bps: int) -> None:
    with pytest.raises(InvalidAmount):
        quote_in(1_000_000, 2_000_000, 10_000, fee_bps)


def test_apply_slippage() -> None:
    assert apply_slippage(1_000, 0) == 1_000
    assert apply_slippage(1_000, 35) == 650
    assert apply_slippage(999, 33) == 999 * 67 // 100
    assert apply_slippage(1_000, 100) == 0
    # 12.5% of 1001 is 125.125; the floor keeps the guard on the safe side
    assert apply_slippage(1_001, 12.5) == 875


@pytest.mark.parametrize("slippage", [-0.1, 100.5, 250])
def test_apply_slippage_rejects_out_of_range(slippage: float) -> None:
    with pytest.raises(InvalidSlippage):
        apply_slippage(1_000, slippage)


def test_as_fraction_avoids_float_noise() -> None:
    assert as_fraction(1.1) == Fraction(11, 10)
    assert as_fraction(3) == Fraction(3)


def test_bonding_curve_buy_caps_at_real_reserves() -> None:
    vt, vs = 1_073_000_000_000_000, 30_000_000_000
    tokens = quote_bonding_curve_buy(1_000_000_000, vt, vs, 793_100_000_000_000)
    assert tokens == vt - (vs * vt // (vs + 1_000_000_000) + 1)
    assert quote_bonding_curve_buy(1_000_000_000, vt, vs, 5) == 5
    assert quote_bonding_curve_buy(0, vt, vs, 5) == 0


def test_bonding_curve_sell_applies_fee() -> None:
    vt, vs = 1_073_000_000_000_000, 30_000_000_000
    gross = 1_000_000_000 * vs // (vt + 1_000_000_000)
    assert quote_bonding_curve_sell(1_000_000_000, vt, vs) == gross
    assert quote_bonding_curve_sell(1_000_000_000, vt, vs, 100) == gross - gross // 100


def test_sqrt_price_quote_both_directions() -> None:
    # sqrt(4) in Q64.64 means 4 quote units per base unit
    sqrt_price = 2 * Q64
    assert quote_sqrt_price(1_000, sqrt_price, 0, base_to_quote=True) == 4_000
    assert quote_sqrt_price(4_000, sqrt_price, 0, base_to_quote=False) == 1_000
    assert quote_sqrt_price(10_000, sqrt_price, 100, base_to_quote=True) == 39_600
    with pytest.raises(PoolEmpty):
        quote_sqrt_price(1, 0, 0, base_to_quote=True)
