"""Dynamic bonding curve swaps."""

from __future__ import annotations

from solders.instruction import Instruction
from solders.pubkey import Pubkey
from spl.token.instructions import get_associated_token_address

from ...config.trade import Venue
from ...utils.constants import TOKEN_PROGRAM_ID, WSOL_MINT
from ..errors import VenueNotSupported
from ..instructions import meta, pack_swap_data
from ..models import TradeSide
from ..pools.base import PoolState
from ..pools.meteora import (
    METEORA_DBC_PROGRAM,
    METEORA_EVENT_AUTHORITY,
    METEORA_POOL_AUTHORITY,
    METEORA_REFERRAL_ACCOUNT,
    MeteoraPool,
)
from .base import SwapBuilder

SWAP_DISCRIMINATOR = bytes.fromhex("f8c69e91e17587c8")


class MeteoraBuilder(SwapBuilder):
    """One ``swap`` instruction; direction follows the input/output accounts."""

    venue = Venue.METEORA
    program_id = METEORA_DBC_PROGRAM
    buy_discriminator = SWAP_DISCRIMINATOR
    sell_discriminator = SWAP_DISCRIMINATOR

    def swap_instruction(
        self, pool: PoolState, owner: Pubkey, side: TradeSide, amount_in: int, min_out: int
    ) -> Instruction:
        if not isinstance(pool, MeteoraPool):
            raise VenueNotSupported(f"{type(pool).__name__} is not a dynamic bonding curve pool")
        token_account = get_associated_token_address(owner, pool.token_mint)
        sol_account = get_associated_token_address(owner, WSOL_MINT)
        input_account, output_account = (
            (sol_account, token_account) if side == TradeSide.BUY else (token_account, sol_account)
        )
        accounts = [
            meta(METEORA_POOL_AUTHORITY),
            meta(pool.config),
            meta(pool.address, writable=True),
            meta(input_account, writable=True),
            meta(output_account, writable=True),
            meta(pool.base_vault, writable=True),
            meta(pool.quote_vault, writable=True),
            meta(pool.base_mint),
            meta(pool.quote_mint),
            meta(owner, signer=True, writable=True),
            meta(TOKEN_PROGRAM_ID),
            meta(TOKEN_PROGRAM_ID),
            meta(METEORA_REFERRAL_ACCOUNT, writable=True),
            meta(METEORA_EVENT_AUTHORITY),
            meta(METEORA_DBC_PROGRAM),
        ]
        data = pack_swap_data(SWAP_DISCRIMINATOR, amount_in, min_out)
        return Instruction(METEORA_DBC_PROGRAM, data, accounts)


__all__ = ["MeteoraBuilder", "SWAP_DISCRIMINATOR"]
