from __future__ import annotations

from typing import Callable, Dict

import pytest
from solders.compute_budget import ID as COMPUTE_BUDGET_ID
from solders.compute_budget import set_compute_unit_limit
from solders.pubkey import Pubkey
from spl.token.instructions import get_associated_token_address

from solana_trade_engine.config.trade import Venue
from solana_trade_engine.execution.errors import InvalidAmount, VenueNotSupported
from solana_trade_engine.execution.fees import NO_FEES, TradeFees
from solana_trade_engine.execution.models import TradeSide
from solana_trade_engine.execution.pools import (
    BondingCurvePool,
    BonkPool,
    CpmmPool,
    MeteoraPool,
    PoolState,
    PumpSwapPool,
)
from solana_trade_engine.execution.venues import SwapArgs, builder_for
from solana_trade_engine.execution.venues import bonk, cpmm, meteora, pumpfun, pumpswap
from solana_trade_engine.utils.constants import (
    PLATFORM_FEE_WALLET,
    SYSTEM_PROGRAM_ID,
    TOKEN_PROGRAM_ID,
    WSOL_MINT,
)

OWNER = Pubkey.new_unique()
MINT = Pubkey.new_unique()


def _common(**overrides) -> dict:
    fields = dict(
        address=Pubkey.new_unique(),
        base_mint=MINT,
        quote_mint=WSOL_MINT,
        base_vault=Pubkey.new_unique(),
        quote_vault=Pubkey.new_unique(),
        base_reserve=800_000_000_000_000,
        quote_reserve=40_000_000_000,
        fee_bps=25,
        token_decimals=6,
    )
    fields.update(overrides)
    return fields


POOLS: Dict[Venue, Callable[[], PoolState]] = {
    Venue.BONDING_CURVE_A: lambda: BondingCurvePool(
        **_common(fee_bps=100),
        virtual_token_reserves=1_073_000_000_000_000,
        virtual_sol_reserves=30_000_000_000,
        creator=Pubkey.new_unique(),
        complete=False,
    ),
    Venue.AMM_A: lambda: PumpSwapPool(
        **_common(), creator=Pubkey.new_unique(), coin_creator=Pubkey.new_unique(), lp_supply=1
    ),
    Venue.BONDING_CURVE_B: lambda: BonkPool(
        **_common(),
        status=0,
        virtual_base=1_073_000_000_000_000,
        virtual_quote=30_000_000_000,
        global_config=Pubkey.new_unique(),
        platform_config=Pubkey.new_unique(),
        creator=Pubkey.new_unique(),
    ),
    Venue.CPMM_GENERIC: lambda: CpmmPool(
        **_common(),
        amm_config=Pubkey.new_unique(),
        observation_key=Pubkey.new_unique(),
        base_token_program=TOKEN_PROGRAM_ID,
        quote_token_program=TOKEN_PROGRAM_ID,
        status=0,
        base_fees_owed=0,
        quote_fees_owed=0,
        open_time=0,
    ),
    Venue.METEORA: lambda: MeteoraPool(
        **_common(fee_bps=100), config=Pubkey.new_unique(), creator=Pubkey.new_unique(), sqrt_price=1 << 60
    ),
}

BUY_DISCRIMINATORS = {
    Venue.BONDING_CURVE_A: pumpfun.BUY_DISCRIMINATOR,
    Venue.AMM_A: pumpswap.BUY_DISCRIMINATOR,
    Venue.BONDING_CURVE_B: bonk.BUY_DISCRIMINATOR,
    Venue.CPMM_GENERIC: cpmm.SWAP_BASE_INPUT_DISCRIMINATOR,
    Venue.METEORA: meteora.SWAP_DISCRIMINATOR,
}
SELL_DISCRIMINATORS = {
    Venue.BONDING_CURVE_A: pumpfun.SELL_DISCRIMINATOR,
    Venue.AMM_A: pumpswap.SELL_DISCRIMINATOR,
    Venue.BONDING_CURVE_B: bonk.SELL_DISCRIMINATOR,
    Venue.CPMM_GENERIC: cpmm.SWAP_BASE_INPUT_DISCRIMINATOR,
    Venue.METEORA: meteora.SWAP_DISCRIMINATOR,
}
ACCOUNT_COUNTS = {
    (Venue.BONDING_CURVE_A, TradeSide.BUY): 16,
    (Venue.BONDING_CURVE_A, TradeSide.SELL): 14,
    (Venue.AMM_A, TradeSide.BUY): 19,
    (Venue.AMM_A, TradeSide.SELL): 19,
    (Venue.BONDING_CURVE_B, TradeSide.BUY): 15,
    (Venue.BONDING_CURVE_B, TradeSide.SELL): 15,
    (Venue.CPMM_GENERIC, TradeSide.BUY): 13,
    (Venue.CPMM_GENERIC, TradeSide.SELL): 13,
    (Venue.METEORA, TradeSide.BUY): 15,
    (Venue.METEORA, TradeSide.SELL): 15,
}


@pytest.mark.parametrize(("venue", "side"), list(ACCOUNT_COUNTS))
def test_swap_instruction_parses_back(venue: Venue, side: TradeSide) -> None:
    builder = builder_for(venue)
    instructions = builder.build(POOLS[venue](), OWNER, side, 123_456_789, 98_765, 1_500_000, NO_FEES)

    swap = builder.find_swap(instructions)
    discriminators = BUY_DISCRIMINATORS if side == TradeSide.BUY else SELL_DISCRIMINATORS

    assert builder.decode(swap) == SwapArgs(discriminators[venue], 123_456_789, 98_765)
    assert len(swap.accounts) == ACCOUNT_COUNTS[(venue, side)]
    assert instructions[0].program_id == COMPUTE_BUDGET_ID
    assert sum(1 for meta in swap.accounts if meta.is_signer) == 1


def test_exact_output_buy_packs_amount_then_limit() -> None:
    builder = builder_for(Venue.BONDING_CURVE_A)
    swap = builder.find_swap(
        builder.build(POOLS[Venue.BONDING_CURVE_A](), OWNER, TradeSide.BUY, 5_000, 777, 0, NO_FEES)
    )

    data = bytes(swap.data)
    assert int.from_bytes(data[8:16], "little") == 777
    assert int.from_bytes(data[16:24], "little") == 5_000


def test_compute_limits_per_venue() -> None:
    limit_400k = set_compute_unit_limit(cpmm.COMPUTE_LIMIT)
    cpmm_ixs = builder_for(Venue.CPMM_GENERIC).build(
        POOLS[Venue.CPMM_GENERIC](), OWNER, TradeSide.BUY, 1_000, 1, 10, NO_FEES
    )
    amm_sell = builder_for(Venue.AMM_A).build(POOLS[Venue.AMM_A](), OWNER, TradeSide.SELL, 1_000, 1, 10, NO_FEES)
    amm_buy = builder_for(Venue.AMM_A).build(POOLS[Venue.AMM_A](), OWNER, TradeSide.BUY, 1_000, 1, 10, NO_FEES)

    assert cpmm_ixs[1] == limit_400k
    assert amm_sell[1] == set_compute_unit_limit(pumpswap.SELL_COMPUTE_LIMIT)
    assert amm_buy[1].program_id != COMPUTE_BUDGET_ID


def test_wsol_buy_wraps_then_closes() -> None:
    wsol_account = get_associated_token_address(OWNER, WSOL_MINT)
    instructions = builder_for(Venue.BONDING_CURVE_B).build(
        POOLS[Venue.BONDING_CURVE_B](), OWNER, TradeSide.BUY, 250_000_000, 1, 10, NO_FEES
    )

    funding = [ix for ix in instructions if ix.program_id == SYSTEM_PROGRAM_ID]
    assert len(funding) == 1
    assert funding[0].accounts[1].pubkey == wsol_account
    assert int.from_bytes(bytes(funding[0].data)[4:12], "little") == 250_000_000
    closing = instructions[-1]
    assert closing.program_id == TOKEN_PROGRAM_ID
    assert closing.accounts[0].pubkey == wsol_account


def test_native_curve_buy_has_no_wsol_account() -> None:
    instructions = builder_for(Venue.BONDING_CURVE_A).build(
        POOLS[Venue.BONDING_CURVE_A](), OWNER, TradeSide.BUY, 250_000_000, 1, 10, NO_FEES
    )
    wsol_account = get_associated_token_address(OWNER, WSOL_MINT)

    assert all(meta.pubkey != wsol_account for ix in instructions for meta in ix.accounts)
    assert instructions[-1].program_id == builder_for(Venue.BONDING_CURVE_A).program_id


def test_sell_fee_transfers_skip_dust() -> None:
    fees = TradeFees(platform=50_000, maestro=999)
    instructions = builder_for(Venue.METEORA).build(
        POOLS[Venue.METEORA](), OWNER, TradeSide.SELL, 1_000_000, 10_000, 10, fees
    )
    fee_destination = get_associated_token_address(PLATFORM_FEE_WALLET, WSOL_MINT)

    transfers = [
        ix
        for ix in instructions
        if ix.program_id == TOKEN_PROGRAM_ID and any(meta.pubkey == fee_destination for meta in ix.accounts)
    ]
    assert len(transfers) == 1
    assert int.from_bytes(bytes(transfers[0].data)[1:9], "little") == 50_000


def test_native_curve_sell_pays_fees_with_system_transfers() -> None:
    fees = TradeFees(platform=20_000, maestro=1_000_000)
    instructions = builder_for(Venue.BONDING_CURVE_A).build(
        POOLS[Venue.BONDING_CURVE_A](), OWNER, TradeSide.SELL, 1_000_000, 10_000, 10, fees
    )

    transfers = [ix for ix in instructions if ix.program_id == SYSTEM_PROGRAM_ID]
    assert [ix.accounts[1].pubkey for ix in transfers][0] == PLATFORM_FEE_WALLET
    assert len(transfers) == 2


def test_cpmm_sell_reverses_vault_order() -> None:
    pool = POOLS[Venue.CPMM_GENERIC]()
    builder = builder_for(Venue.CPMM_GENERIC)

    buy = builder.find_swap(builder.build(pool, OWNER, TradeSide.BUY, 1_000, 1, 0, NO_FEES))
    sell = builder.find_swap(builder.build(pool, OWNER, TradeSide.SELL, 1_000, 1, 0, NO_FEES))

    assert buy.accounts[6].pubkey == pool.quote_vault
    assert sell.accounts[6].pubkey == pool.base_vault
    assert sell.accounts[10].pubkey == MINT


def test_heaven_has_no_builder() -> None:
    with pytest.raises(VenueNotSupported):
        builder_for(Venue.HEAVEN)


def test_rejects_mismatched_pool_and_bad_amounts() -> None:
    builder = builder_for(Venue.CPMM_GENERIC)
    with pytest.raises(VenueNotSupported):
        builder.build(POOLS[Venue.METEORA](), OWNER, TradeSide.BUY, 1_000, 1, 0, NO_FEES)
    with pytest.raises(InvalidAmount):
        builder.build(POOLS[Venue.CPMM_GENERIC](), OWNER, TradeSide.BUY, 0, 1, 0, NO_FEES)
