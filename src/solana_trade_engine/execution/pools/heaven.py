"""Heaven DEX pools, recognised for detection only."""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar

from solders.pubkey import Pubkey

from ...config.trade import Venue
from ...utils.constants import WSOL_MINT
from ..errors import VenueNotSupported
from ..models import TradeSide
from .base import DEFAULT_TOKEN_DECIMALS, PoolResolver, PoolState, read_pubkey

HEAVEN_PROGRAM = Pubkey.from_string("HEAVENoP2qxoeuF8Dj2oT1GHEnu49U5mJYkdeC8BAX2o")
HEAVEN_POOL_SIZE = 2304
TOKEN_MINT_OFFSET = 792


@dataclass(frozen=True, slots=True)
class HeavenPool(PoolState):
    venue: ClassVar[Venue] = Venue.HEAVEN

    def quote(self, side: TradeSide, amount_in: int) -> int:
        raise VenueNotSupported("Heaven pools cannot be quoted")


class HeavenResolver(PoolResolver):
    venue = Venue.HEAVEN
    program_id = HEAVEN_PROGRAM
    mint_offsets = (TOKEN_MINT_OFFSET,)
    data_size = HEAVEN_POOL_SIZE

    def decode(self, address: Pubkey, data: bytes) -> HeavenPool:
        if len(data) != HEAVEN_POOL_SIZE:
            raise ValueError(f"expected {HEAVEN_POOL_SIZE} bytes, got {len(data)}")
        return HeavenPool(
            address=address,
            base_mint=read_pubkey(data, TOKEN_MINT_OFFSET),
            quote_mint=WSOL_MINT,
            base_vault=Pubkey.default(),
            quote_vault=Pubkey.default(),
            base_reserve=0,
            quote_reserve=0,
            fee_bps=0,
            token_decimals=DEFAULT_TOKEN_DECIMALS,
        )


__all__ = ["HEAVEN_PROGRAM", "HeavenPool", "HeavenResolver"]
