"""Meteora dynamic bonding curve (DBC) virtual pools."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from typing import ClassVar

from solders.pubkey import Pubkey

from ...config.trade import Venue
from ...utils.constants import WSOL_MINT
from ..amm import quote_sqrt_price
from ..models import TradeSide
from .base import DEFAULT_TOKEN_DECIMALS, PoolResolver, PoolState, read_pubkey, read_u128, read_u64

METEORA_DBC_PROGRAM = Pubkey.from_string("dbcij3LWUppWqq96dh6gJWwBifmcGfLSB5D4DuSMaqN")
METEORA_POOL_AUTHORITY = Pubkey.from_string("FhVo3mqL8PW5pH5U2CN4XE33DokiyZnUwuGpH2hmHLuM")
METEORA_REFERRAL_ACCOUNT = Pubkey.from_string("JNK45gwenyqjk85JN44XekEYytZFGRubTabSNSXgT9u")
METEORA_EVENT_AUTHORITY = Pubkey.find_program_address([b"__event_authority"], METEORA_DBC_PROGRAM)[0]
METEORA_FEE_BPS = 100
METEORA_POOL_SIZE = 424

BASE_MINT_OFFSET = 136
_CONFIG_OFFSET = 72
_CREATOR_OFFSET = 104
_BASE_VAULT_OFFSET = 168
_QUOTE_VAULT_OFFSET = 200
_BASE_RESERVE_OFFSET = 232
_QUOTE_RESERVE_OFFSET = 240
_SQRT_PRICE_OFFSET = 280


@dataclass(frozen=True, slots=True)
class MeteoraPool(PoolState):
    venue: ClassVar[Venue] = Venue.METEORA

    config: Pubkey
    creator: Pubkey
    sqrt_price: int

    def quote(self, side: TradeSide, amount_in: int) -> int:
        return quote_sqrt_price(amount_in, self.sqrt_price, self.fee_bps, base_to_quote=side == TradeSide.SELL)


class MeteoraResolver(PoolResolver):
    """Virtual pools are always quoted in SOL; only the base mint slot is scanned."""

    venue = Venue.METEORA
    program_id = METEORA_DBC_PROGRAM
    mint_offsets = (BASE_MINT_OFFSET,)
    data_size = METEORA_POOL_SIZE

    def decode(self, address: Pubkey, data: bytes) -> MeteoraPool:
        if len(data) < METEORA_POOL_SIZE:
            raise ValueError(f"expected {METEORA_POOL_SIZE} bytes, got {len(data)}")
        return MeteoraPool(
            address=address,
            base_mint=read_pubkey(data, BASE_MINT_OFFSET),
            quote_mint=WSOL_MINT,
            base_vault=read_pubkey(data, _BASE_VAULT_OFFSET),
            quote_vault=read_pubkey(data, _QUOTE_VAULT_OFFSET),
            base_reserve=read_u64(data, _BASE_RESERVE_OFFSET),
            quote_reserve=read_u64(data, _QUOTE_RESERVE_OFFSET),
            fee_bps=METEORA_FEE_BPS,
            token_decimals=DEFAULT_TOKEN_DECIMALS,
            config=read_pubkey(data, _CONFIG_OFFSET),
            creator=read_pubkey(data, _CREATOR_OFFSET),
            sqrt_price=read_u128(data, _SQRT_PRICE_OFFSET),
        )

    async def hydrate(self, pool: PoolState) -> PoolState:
        decimals = await self.mint_decimals(pool.base_mint)
        if decimals == pool.token_decimals:
            return pool
        return dataclasses.replace(pool, token_decimals=decimals)


__all__ = [
    "METEORA_DBC_PROGRAM",
    "METEORA_EVENT_AUTHORITY",
    "METEORA_POOL_AUTHORITY",
    "METEORA_REFERRAL_ACCOUNT",
    "MeteoraPool",
    "MeteoraResolver",
]
