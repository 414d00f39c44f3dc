"""Launchpad A's graduated AMM (PumpSwap)."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from typing import ClassVar

from solders.pubkey import Pubkey

from ...config.trade import Venue
from .base import DEFAULT_TOKEN_DECIMALS, PoolResolver, PoolState, read_pubkey, read_u64

PUMPSWAP_PROGRAM = Pubkey.from_string("pAMMBay6oceH9fJKBRHGP5D4bD4sWpmSwMn52FMfXEA")
PUMPSWAP_GLOBAL_CONFIG = Pubkey.from_string("ADyA8hdefvWN2dbGGWFotbzWxrAvLW83WG6QCVXvJKqw")
PUMPSWAP_PROTOCOL_FEE_RECIPIENT = Pubkey.from_string("FWsW1xNtWscwNmKv6wVsU1iTzRN6wmmk3MjxRP5tT7hz")
PUMPSWAP_PROTOCOL_FEE_ATA = Pubkey.from_string("7xQYoUjUJF1Kg6WVczoTAkaNhn5syQYcbvjmFrhjWpx")
PUMPSWAP_EVENT_AUTHORITY = Pubkey.from_string("GS4CU59F31iL7aR2Q8zVS8DRrcRnXX1yjQ66TqNVQnaR")
PUMPSWAP_FEE_BPS = 25

POOL_DISCRIMINATOR = bytes([241, 154, 109, 4, 17, 177, 109, 188])
_CREATOR_OFFSET = 11
BASE_MINT_OFFSET = 43
QUOTE_MINT_OFFSET = 75
_BASE_VAULT_OFFSET = 139
_QUOTE_VAULT_OFFSET = 171
_LP_SUPPLY_OFFSET = 203
_COIN_CREATOR_OFFSET = 211


def coin_creator_vault_authority(coin_creator: Pubkey) -> Pubkey:
    return Pubkey.find_program_address([b"creator_vault", bytes(coin_creator)], PUMPSWAP_PROGRAM)[0]


@dataclass(frozen=True, slots=True)
class PumpSwapPool(PoolState):
    venue: ClassVar[Venue] = Venue.AMM_A

    creator: Pubkey
    coin_creator: Pubkey
    lp_supply: int


class PumpSwapResolver(PoolResolver):
    venue = Venue.AMM_A
    program_id = PUMPSWAP_PROGRAM
    mint_offsets = (BASE_MINT_OFFSET, QUOTE_MINT_OFFSET)

    def decode(self, address: Pubkey, data: bytes) -> PumpSwapPool:
        if data[:8] != POOL_DISCRIMINATOR:
            raise ValueError("not a PumpSwap pool account")
        if len(data) >= _COIN_CREATOR_OFFSET + 32:
            coin_creator = read_pubkey(data, _COIN_CREATOR_OFFSET)
        else:
            coin_creator = Pubkey.default()
        return PumpSwapPool(
            address=address,
            base_mint=read_pubkey(data, BASE_MINT_OFFSET),
            quote_mint=read_pubkey(data, QUOTE_MINT_OFFSET),
            base_vault=read_pubkey(data, _BASE_VAULT_OFFSET),
            quote_vault=read_pubkey(data, _QUOTE_VAULT_OFFSET),
            base_reserve=0,
            quote_reserve=0,
            fee_bps=PUMPSWAP_FEE_BPS,
            token_decimals=DEFAULT_TOKEN_DECIMALS,
            creator=read_pubkey(data, _CREATOR_OFFSET),
            coin_creator=coin_creator,
            lp_supply=read_u64(data, _LP_SUPPLY_OFFSET),
        )

    async def hydrate(self, pool: PoolState) -> PoolState:
        base, quote = await self.vault_balances(pool)
        decimals = await self.mint_decimals(pool.token_mint)
        return dataclasses.replace(pool, base_reserve=base, quote_reserve=quote, token_decimals=decimals)


__all__ = [
    "PUMPSWAP_EVENT_AUTHORITY",
    "PUMPSWAP_GLOBAL_CONFIG",
    "PUMPSWAP_PROGRAM",
    "PUMPSWAP_PROTOCOL_FEE_ATA",
    "PUMPSWAP_PROTOCOL_FEE_RECIPIENT",
    "PumpSwapPool",
    "PumpSwapResolver",
    "coin_creator_vault_authority",
]
