"""Bonding-curve buys and sells, settled in native SOL."""

from __future__ import annotations

from typing import List

from solders.instruction import Instruction
from solders.pubkey import Pubkey
from spl.token.instructions import get_associated_token_address

from ...config.trade import Venue
from ...utils.constants import SYSTEM_PROGRAM_ID, TOKEN_PROGRAM_ID
from ..errors import VenueNotSupported
from ..fees import TradeFees
from ..instructions import compute_budget, create_ata, fee_transfers, meta, pack_swap_data
from ..models import TradeSide
from ..pools.base import PoolState
from ..pools.pumpfun import (
    EVENT_AUTHORITY,
    FEE_CONFIG,
    GLOBAL_ACCOUNT,
    GLOBAL_VOLUME_ACCUMULATOR,
    PUMPFUN_FEE_PROGRAM,
    PUMPFUN_FEE_RECIPIENT,
    PUMPFUN_PROGRAM,
    BondingCurvePool,
    associated_bonding_curve,
    creator_vault,
    user_volume_accumulator,
)
from .base import SwapBuilder, validate_amounts

BUY_DISCRIMINATOR = bytes([102, 6, 61, 18, 1, 218, 235, 234])
SELL_DISCRIMINATOR = bytes([51, 230, 133, 164, 1, 127, 131, 173])


class PumpFunBuilder(SwapBuilder):
    """The curve program moves lamports directly, so no WSOL account is used.

    Buys are exact-output: the instruction carries the token amount to
    receive and the maximum SOL to spend.
    """

    venue = Venue.BONDING_CURVE_A
    program_id = PUMPFUN_PROGRAM
    buy_discriminator = BUY_DISCRIMINATOR
    sell_discriminator = SELL_DISCRIMINATOR
    exact_output_buy = True

    def swap_instruction(
        self, pool: PoolState, owner: Pubkey, side: TradeSide, amount_in: int, min_out: int
    ) -> Instruction:
        if not isinstance(pool, BondingCurvePool):
            raise VenueNotSupported(f"{type(pool).__name__} is not a bonding curve")
        mint = pool.token_mint
        head = [
            meta(GLOBAL_ACCOUNT),
            meta(PUMPFUN_FEE_RECIPIENT, writable=True),
            meta(mint),
            meta(pool.address, writable=True),
            meta(associated_bonding_curve(mint), writable=True),
            meta(get_associated_token_address(owner, mint), writable=True),
            meta(owner, signer=True, writable=True),
            meta(SYSTEM_PROGRAM_ID),
        ]
        if side == TradeSide.BUY:
            accounts = head + [
                meta(TOKEN_PROGRAM_ID),
                meta(creator_vault(pool.creator), writable=True),
                meta(EVENT_AUTHORITY),
                meta(PUMPFUN_PROGRAM),
                meta(GLOBAL_VOLUME_ACCUMULATOR, writable=True),
                meta(user_volume_accumulator(owner), writable=True),
                meta(FEE_CONFIG),
                meta(PUMPFUN_FEE_PROGRAM),
            ]
            data = pack_swap_data(BUY_DISCRIMINATOR, min_out, amount_in)
        else:
            accounts = head + [
                meta(creator_vault(pool.creator), writable=True),
                meta(TOKEN_PROGRAM_ID),
                meta(EVENT_AUTHORITY),
                meta(PUMPFUN_PROGRAM),
                meta(FEE_CONFIG),
                meta(PUMPFUN_FEE_PROGRAM),
            ]
            data = pack_swap_data(SELL_DISCRIMINATOR, amount_in, min_out)
        return Instruction(PUMPFUN_PROGRAM, data, accounts)

    def build(
        self,
        pool: PoolState,
        owner: Pubkey,
        side: TradeSide,
        amount_in: int,
        min_out: int,
        priority_fee: int,
        fees: TradeFees,
    ) -> List[Instruction]:
        validate_amounts(amount_in, min_out)
        swap = self.swap_instruction(pool, owner, side, amount_in, min_out)
        if side == TradeSide.BUY:
            return [*compute_budget(priority_fee), create_ata(owner, pool.token_mint), swap]
        return [
            *compute_budget(priority_fee),
            swap,
            *fee_transfers(owner, fees.transfers(), wsol=False),
        ]


__all__ = ["BUY_DISCRIMINATOR", "PumpFunBuilder", "SELL_DISCRIMINATOR"]
