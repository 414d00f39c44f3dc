"""Swaps against the graduated-token AMM."""

from __future__ import annotations

from solders.instruction import Instruction
from solders.pubkey import Pubkey
from spl.token.instructions import get_associated_token_address

from ...config.trade import Venue
from ...utils.constants import ASSOCIATED_TOKEN_PROGRAM_ID, SYSTEM_PROGRAM_ID, TOKEN_PROGRAM_ID
from ..errors import VenueNotSupported
from ..instructions import meta, pack_swap_data
from ..models import TradeSide
from ..pools.base import PoolState
from ..pools.pumpswap import (
    PUMPSWAP_EVENT_AUTHORITY,
    PUMPSWAP_GLOBAL_CONFIG,
    PUMPSWAP_PROGRAM,
    PUMPSWAP_PROTOCOL_FEE_ATA,
    PUMPSWAP_PROTOCOL_FEE_RECIPIENT,
    PumpSwapPool,
    coin_creator_vault_authority,
)
from .base import SwapBuilder

BUY_DISCRIMINATOR = bytes([102, 6, 61, 18, 1, 218, 235, 234])
SELL_DISCRIMINATOR = bytes([51, 230, 133, 164, 1, 127, 131, 173])
SELL_COMPUTE_LIMIT = 151_591


class PumpSwapBuilder(SwapBuilder):
    """``buy`` takes base out for quote in; ``sell`` takes base in for quote out.

    With the usual token/WSOL pool a token purchase is ``buy`` and a token
    sale is ``sell``. Pools listed the other way round swap the two.
    """

    venue = Venue.AMM_A
    program_id = PUMPSWAP_PROGRAM
    buy_discriminator = BUY_DISCRIMINATOR
    sell_discriminator = SELL_DISCRIMINATOR
    compute_limit_sell = SELL_COMPUTE_LIMIT
    exact_output_buy = True

    def swap_instruction(
        self, pool: PoolState, owner: Pubkey, side: TradeSide, amount_in: int, min_out: int
    ) -> Instruction:
        if not isinstance(pool, PumpSwapPool):
            raise VenueNotSupported(f"{type(pool).__name__} is not an AMM pool")
        creator_authority = coin_creator_vault_authority(pool.coin_creator)
        accounts = [
            meta(pool.address, writable=True),
            meta(owner, signer=True, writable=True),
            meta(PUMPSWAP_GLOBAL_CONFIG),
            meta(pool.base_mint),
            meta(pool.quote_mint),
            meta(get_associated_token_address(owner, pool.base_mint), writable=True),
            meta(get_associated_token_address(owner, pool.quote_mint), writable=True),
            meta(pool.base_vault, writable=True),
            meta(pool.quote_vault, writable=True),
            meta(PUMPSWAP_PROTOCOL_FEE_RECIPIENT),
            meta(PUMPSWAP_PROTOCOL_FEE_ATA, writable=True),
            meta(TOKEN_PROGRAM_ID),
            meta(TOKEN_PROGRAM_ID),
            meta(SYSTEM_PROGRAM_ID),
            meta(ASSOCIATED_TOKEN_PROGRAM_ID),
            meta(PUMPSWAP_EVENT_AUTHORITY),
            meta(PUMPSWAP_PROGRAM),
            meta(get_associated_token_address(creator_authority, pool.quote_mint), writable=True),
            meta(creator_authority),
        ]
        receives_base = (side == TradeSide.BUY) != pool.sol_is_base
        if receives_base:
            data = pack_swap_data(BUY_DISCRIMINATOR, min_out, amount_in)
        else:
            data = pack_swap_data(SELL_DISCRIMINATOR, amount_in, min_out)
        return Instruction(PUMPSWAP_PROGRAM, data, accounts)


__all__ = ["BUY_DISCRIMINATOR", "PumpSwapBuilder", "SELL_COMPUTE_LIMIT", "SELL_DISCRIMINATOR"]
