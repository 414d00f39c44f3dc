from __future__ import annotations

import pytest

from solana_trade_engine.config.trade import SlippageOverride, TradeConfigOverride, build_trade_config
from solana_trade_engine.execution.errors import InvalidAmount
from solana_trade_engine.execution.slippage import advise, price_impact_percent, retry_slippage

RESERVE = 100_000_000_000


def test_small_trade_in_deep_pool_uses_base() -> None:
    config = build_trade_config()
    assert advise(RESERVE, RESERVE // 1_000, config, depth=500.0) == 35.0


@pytest.mark.parametrize(
    ("amount_in", "expected"),
    [
        (RESERVE // 100, 35.0),  # exactly 1% impact does not trigger a floor
        (RESERVE * 3 // 200, 40.0),
        (RESERVE * 3 // 100, 45.0),
        (RESERVE // 10, 50.0),
    ],
)
def test_price_impact_floors(amount_in: int, expected: float) -> None:
    assert advise(RESERVE, amount_in, build_trade_config()) == expected


def test_depth_floors() -> None:
    config = build_trade_config()
    assert advise(RESERVE, 1, config, depth=4.0) == 50.0
    assert advise(RESERVE, 1, config, depth=19.0) == 45.0
    assert advise(RESERVE, 1, config, depth=20.0) == 35.0
    assert advise(RESERVE, 1, config, depth=3.0, depth_threshold=2.0) == 45.0


def test_advice_is_clamped_to_max() -> None:
    config = build_trade_config(
        None, TradeConfigOverride(slippage=SlippageOverride(base=10, max=42))
    )
    assert advise(RESERVE, RESERVE, config, depth=0.5) == 42.0


def test_advice_grows_with_amount() -> None:
    config = build_trade_config()
    values = [advise(RESERVE, RESERVE * step // 100, config) for step in range(0, 12)]
    assert values == sorted(values)
    assert all(config.slippage.base <= value <= config.slippage.max for value in values)


def test_user_override_replaces_advice_but_is_capped() -> None:
    low = build_trade_config(None, TradeConfigOverride(slippage=SlippageOverride(user_override=12)))
    high = build_trade_config(None, TradeConfigOverride(slippage=SlippageOverride(user_override=95)))

    assert advise(RESERVE, RESERVE // 10, low) == 12
    assert advise(RESERVE, 1, high) == 70


def test_retry_slippage_widens_up_to_max() -> None:
    config = build_trade_config()
    assert retry_slippage(35.0, 0, config) == 35.0
    assert retry_slippage(35.0, 2, config) == 55.0
    assert retry_slippage(35.0, 5, config) == 70.0
    with pytest.raises(InvalidAmount):
        retry_slippage(35.0, -1, config)


def test_price_impact_of_empty_pool() -> None:
    assert price_impact_percent(0, 0) == 0
    assert price_impact_percent(0, 5) == 100
