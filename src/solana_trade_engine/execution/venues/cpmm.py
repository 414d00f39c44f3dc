"""Constant-product swaps with per-side token programs."""

from __future__ import annotations

from solders.instruction import Instruction
from solders.pubkey import Pubkey
from spl.token.instructions import get_associated_token_address

from ...config.trade import Venue
from ..errors import VenueNotSupported
from ..instructions import meta, pack_swap_data
from ..models import TradeSide
from ..pools.base import PoolState
from ..pools.cpmm import CPMM_AUTHORITY, CPMM_PROGRAM, CpmmPool
from .base import SwapBuilder

SWAP_BASE_INPUT_DISCRIMINATOR = bytes([143, 190, 90, 218, 196, 30, 51, 222])
COMPUTE_LIMIT = 400_000


class CpmmBuilder(SwapBuilder):
    venue = Venue.CPMM_GENERIC
    program_id = CPMM_PROGRAM
    buy_discriminator = SWAP_BASE_INPUT_DISCRIMINATOR
    sell_discriminator = SWAP_BASE_INPUT_DISCRIMINATOR
    compute_limit_buy = COMPUTE_LIMIT
    compute_limit_sell = COMPUTE_LIMIT

    def token_program(self, pool: PoolState) -> Pubkey:
        if isinstance(pool, CpmmPool):
            return pool.quote_token_program if pool.sol_is_base else pool.base_token_program
        return super().token_program(pool)

    def swap_instruction(
        self, pool: PoolState, owner: Pubkey, side: TradeSide, amount_in: int, min_out: int
    ) -> Instruction:
        if not isinstance(pool, CpmmPool):
            raise VenueNotSupported(f"{type(pool).__name__} is not a CPMM pool")
        base_side = (pool.base_mint, pool.base_vault, pool.base_token_program)
        quote_side = (pool.quote_mint, pool.quote_vault, pool.quote_token_program)
        spends_base = (side == TradeSide.BUY) == pool.sol_is_base
        (in_mint, in_vault, in_program), (out_mint, out_vault, out_program) = (
            (base_side, quote_side) if spends_base else (quote_side, base_side)
        )
        accounts = [
            meta(owner, signer=True, writable=True),
            meta(CPMM_AUTHORITY, writable=True),
            meta(pool.amm_config, writable=True),
            meta(pool.address, writable=True),
            meta(get_associated_token_address(owner, in_mint, in_program), writable=True),
            meta(get_associated_token_address(owner, out_mint, out_program), writable=True),
            meta(in_vault, writable=True),
            meta(out_vault, writable=True),
            meta(in_program),
            meta(out_program),
            meta(in_mint, writable=True),
            meta(out_mint, writable=True),
            meta(pool.observation_key, writable=True),
        ]
        data = pack_swap_data(SWAP_BASE_INPUT_DISCRIMINATOR, amount_in, min_out)
        return Instruction(CPMM_PROGRAM, data, accounts)


__all__ = ["COMPUTE_LIMIT", "CpmmBuilder", "SWAP_BASE_INPUT_DISCRIMINATOR"]
