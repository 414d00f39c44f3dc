"""Bonding-curve launchpad B (letsbonk / Raydium launchpad)."""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import ClassVar

from solders.pubkey import Pubkey

from ...config.trade import Venue
from .base import PoolResolver, PoolState, read_pubkey

BONK_PROGRAM = Pubkey.from_string("LanMV9sAd7wArD4vJFi2qDdfnVhFxYSUg6eADduJ3uj")
BONK_AUTHORITY = Pubkey.from_string("WLHv2UAZm6z4KyaaELi5pjdbJh6RESMva1Rnn8pJVVh")
BONK_GLOBAL_CONFIG = Pubkey.from_string("6s1xP3hpbAfFoNtUNF8mfHsjr2Bd97JxFJRWLbL6aHuX")
BONK_PLATFORM_CONFIG = Pubkey.from_string("FfYek5vEz23cMkWsdJwG2oa6EphsvXSHrGpdALN4g6W1")
BONK_EVENT_AUTHORITY = Pubkey.from_string("2DPAtwB8L12vrMRExbLuyGnC7n2J5LNoZQSejeQGpwkr")
BONK_FEE_BPS = 25
BONK_POOL_SIZE = 429

BASE_MINT_OFFSET = 205
QUOTE_MINT_OFFSET = 237

# discriminator, epoch, auth_bump, status, base/quote decimals, migrate_type,
# then supply .. migrate_fee as ten u64s.
_HEADER = struct.Struct("<QQ5B10Q")
_GLOBAL_CONFIG_OFFSET = 141
_BASE_VAULT_OFFSET = 269
_QUOTE_VAULT_OFFSET = 301
_CREATOR_OFFSET = 333

KNOWN_POOLS = {
    "2K2dBWwncM2ySZKMigXNpwgoarUJ5iJTHmqGmM87bonk": "H3tHKk7fWk1JAEkxF5D5anSQ4EG5XmkHTYhhDx7eWcNN",
    "24YQMHardsYbBgRJi5RDgNUi6VdVhMcfmmXWHEanbonk": "7uH5emw81YG6gMMSXkNJn9yFoYTBEM5ADWFEFY8VnLMC",
    "h3Sq2JCpcqzP9AudqJ4Vxy6M3TAaEhvZ9JPyDsobonk": "C7BhhvjmeQGX1XoqWHgmtuQ8SjKSXrJ4qMApUM9i7tZW",
}


@dataclass(frozen=True, slots=True)
class BonkPool(PoolState):
    venue: ClassVar[Venue] = Venue.BONDING_CURVE_B

    status: int
    virtual_base: int
    virtual_quote: int
    global_config: Pubkey
    platform_config: Pubkey
    creator: Pubkey


class BonkResolver(PoolResolver):
    venue = Venue.BONDING_CURVE_B
    program_id = BONK_PROGRAM
    mint_offsets = (BASE_MINT_OFFSET, QUOTE_MINT_OFFSET)
    known_pools = KNOWN_POOLS

    def decode(self, address: Pubkey, data: bytes) -> BonkPool:
        if len(data) < BONK_POOL_SIZE:
            raise ValueError(f"expected {BONK_POOL_SIZE} bytes, got {len(data)}")
        (
            _disc,
            _epoch,
            _bump,
            status,
            base_decimals,
            _quote_decimals,
            _migrate_type,
            _supply,
            _total_base_sell,
            virtual_base,
            virtual_quote,
            real_base,
            real_quote,
            *_fees,
        ) = _HEADER.unpack_from(data)
        return BonkPool(
            address=address,
            base_mint=read_pubkey(data, BASE_MINT_OFFSET),
            quote_mint=read_pubkey(data, QUOTE_MINT_OFFSET),
            base_vault=read_pubkey(data, _BASE_VAULT_OFFSET),
            quote_vault=read_pubkey(data, _QUOTE_VAULT_OFFSET),
            base_reserve=real_base,
            quote_reserve=real_quote,
            fee_bps=BONK_FEE_BPS,
            token_decimals=base_decimals,
            status=status,
            virtual_base=virtual_base,
            virtual_quote=virtual_quote,
            global_config=read_pubkey(data, _GLOBAL_CONFIG_OFFSET),
            platform_config=read_pubkey(data, _GLOBAL_CONFIG_OFFSET + 32),
            creator=read_pubkey(data, _CREATOR_OFFSET),
        )


__all__ = [
    "BONK_AUTHORITY",
    "BONK_EVENT_AUTHORITY",
    "BONK_GLOBAL_CONFIG",
    "BONK_PLATFORM_CONFIG",
    "BONK_PROGRAM",
    "BonkPool",
    "BonkResolver",
    "KNOWN_POOLS",
]
