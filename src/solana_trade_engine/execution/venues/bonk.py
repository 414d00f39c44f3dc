"""Launchpad bonding-curve swaps (exact input in both directions)."""

from __future__ import annotations

from solders.instruction import Instruction
from solders.pubkey import Pubkey
from spl.token.instructions import get_associated_token_address

from ...config.trade import Venue
from ...utils.constants import TOKEN_PROGRAM_ID
from ..errors import VenueNotSupported
from ..instructions import meta, pack_swap_data
from ..models import TradeSide
from ..pools.base import PoolState
from ..pools.bonk import BONK_AUTHORITY, BONK_EVENT_AUTHORITY, BONK_PROGRAM, BonkPool
from .base import SwapBuilder

BUY_DISCRIMINATOR = bytes([250, 234, 13, 123, 213, 156, 19, 236])
SELL_DISCRIMINATOR = bytes([149, 39, 222, 155, 211, 124, 152, 26])


class BonkBuilder(SwapBuilder):
    venue = Venue.BONDING_CURVE_B
    program_id = BONK_PROGRAM
    buy_discriminator = BUY_DISCRIMINATOR
    sell_discriminator = SELL_DISCRIMINATOR
    # amount_in, minimum_amount_out, share_fee_rate
    data_fields = 3

    def swap_instruction(
        self, pool: PoolState, owner: Pubkey, side: TradeSide, amount_in: int, min_out: int
    ) -> Instruction:
        if not isinstance(pool, BonkPool):
            raise VenueNotSupported(f"{type(pool).__name__} is not a launchpad pool")
        accounts = [
            meta(owner, signer=True, writable=True),
            meta(BONK_AUTHORITY),
            meta(pool.global_config),
            meta(pool.platform_config),
            meta(pool.address, writable=True),
            meta(get_associated_token_address(owner, pool.base_mint), writable=True),
            meta(get_associated_token_address(owner, pool.quote_mint), writable=True),
            meta(pool.base_vault, writable=True),
            meta(pool.quote_vault, writable=True),
            meta(pool.base_mint, writable=True),
            meta(pool.quote_mint, writable=True),
            meta(TOKEN_PROGRAM_ID),
            meta(TOKEN_PROGRAM_ID),
            meta(BONK_EVENT_AUTHORITY),
            meta(BONK_PROGRAM),
        ]
        discriminator = BUY_DISCRIMINATOR if side == TradeSide.BUY else SELL_DISCRIMINATOR
        return Instruction(BONK_PROGRAM, pack_swap_data(discriminator, amount_in, min_out, 0), accounts)


__all__ = ["BUY_DISCRIMINATOR", "BonkBuilder", "SELL_DISCRIMINATOR"]
