"""Generic constant-product pools (Raydium CPMM)."""

from __future__ import annotations

import dataclasses
import struct
from dataclasses import dataclass
from typing import ClassVar

from solders.pubkey import Pubkey

from ...config.trade import Venue
from ..errors import VenueNotSupported
from .base import PoolResolver, PoolState, read_pubkey

CPMM_PROGRAM = Pubkey.from_string("CPMMoo8L3F4NbTegBCKVNunggL7H1ZpdTHKxQB5qKP1C")
CPMM_AUTHORITY = Pubkey.from_string("GpMZbSM2GgvTKHJirzeGfMFoaZ8UR2X7F4v8vHTvxFbL")
CPMM_FEE_BPS = 25
CPMM_POOL_SIZE = 637

TOKEN_0_MINT_OFFSET = 168
TOKEN_1_MINT_OFFSET = 200

_AMM_CONFIG_OFFSET = 8
_TOKEN_0_VAULT_OFFSET = 72
_TOKEN_1_VAULT_OFFSET = 104
_TOKEN_0_PROGRAM_OFFSET = 232
_TOKEN_1_PROGRAM_OFFSET = 264
_OBSERVATION_OFFSET = 296
# auth_bump, status, lp/mint0/mint1 decimals, lp_supply, protocol fees 0/1,
# fund fees 0/1, open_time, recent_epoch
_TAIL = struct.Struct("<5B7Q")
_TAIL_OFFSET = 328


@dataclass(frozen=True, slots=True)
class CpmmPool(PoolState):
    venue: ClassVar[Venue] = Venue.CPMM_GENERIC

    amm_config: Pubkey
    observation_key: Pubkey
    base_token_program: Pubkey
    quote_token_program: Pubkey
    status: int
    base_fees_owed: int
    quote_fees_owed: int
    open_time: int


class CpmmResolver(PoolResolver):
    """Token 0 is treated as base and token 1 as quote, matching the account layout."""

    venue = Venue.CPMM_GENERIC
    program_id = CPMM_PROGRAM
    mint_offsets = (TOKEN_0_MINT_OFFSET, TOKEN_1_MINT_OFFSET)

    def decode(self, address: Pubkey, data: bytes) -> CpmmPool:
        if len(data) < CPMM_POOL_SIZE:
            raise ValueError(f"expected {CPMM_POOL_SIZE} bytes, got {len(data)}")
        (
            _bump,
            status,
            _lp_decimals,
            mint_0_decimals,
            mint_1_decimals,
            _lp_supply,
            protocol_fees_0,
            protocol_fees_1,
            fund_fees_0,
            fund_fees_1,
            open_time,
            _recent_epoch,
        ) = _TAIL.unpack_from(data, _TAIL_OFFSET)
        base_mint = read_pubkey(data, TOKEN_0_MINT_OFFSET)
        quote_mint = read_pubkey(data, TOKEN_1_MINT_OFFSET)
        pool = CpmmPool(
            address=address,
            base_mint=base_mint,
            quote_mint=quote_mint,
            base_vault=read_pubkey(data, _TOKEN_0_VAULT_OFFSET),
            quote_vault=read_pubkey(data, _TOKEN_1_VAULT_OFFSET),
            base_reserve=0,
            quote_reserve=0,
            fee_bps=CPMM_FEE_BPS,
            token_decimals=mint_0_decimals,
            amm_config=read_pubkey(data, _AMM_CONFIG_OFFSET),
            observation_key=read_pubkey(data, _OBSERVATION_OFFSET),
            base_token_program=read_pubkey(data, _TOKEN_0_PROGRAM_OFFSET),
            quote_token_program=read_pubkey(data, _TOKEN_1_PROGRAM_OFFSET),
            status=status,
            base_fees_owed=protocol_fees_0 + fund_fees_0,
            quote_fees_owed=protocol_fees_1 + fund_fees_1,
            open_time=open_time,
        )
        if pool.sol_is_base:
            pool = dataclasses.replace(pool, token_decimals=mint_1_decimals)
        return pool

    async def hydrate(self, pool: PoolState) -> PoolState:
        if not isinstance(pool, CpmmPool):
            raise VenueNotSupported(f"{type(pool).__name__} is not a CPMM pool")
        base, quote = await self.vault_balances(pool)
        return dataclasses.replace(
            pool,
            base_reserve=max(base - pool.base_fees_owed, 0),
            quote_reserve=max(quote - pool.quote_fees_owed, 0),
        )


__all__ = ["CPMM_AUTHORITY", "CPMM_PROGRAM", "CpmmPool", "CpmmResolver"]
