"""Launchpad A (pump.fun) bonding curves."""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import ClassVar, Optional, Tuple

from solders.pubkey import Pubkey
from spl.token.instructions import get_associated_token_address

from ...config.trade import Venue
from ...utils.constants import WSOL_MINT
from ..amm import quote_bonding_curve_buy, quote_bonding_curve_sell
from ..errors import CurveGraduated, PoolNotFound
from ..models import TradeSide
from .base import PoolResolver, PoolState, read_pubkey

PUMPFUN_PROGRAM = Pubkey.from_string("6EF8rrecthR5Dkzon8Nwu78hRvfCKubJ14M5uBEwF6P")
PUMPFUN_FEE_RECIPIENT = Pubkey.from_string("CebN5WGQ4jvEPvsVU4EoHEpgzq1VV7AbicfhtW4xC9iM")
PUMPFUN_FEE_PROGRAM = Pubkey.from_string("pfeeUxB6jkeY1Hxd7CsFCAjcbHA9rWtchMGdZ6VojVZ")
PUMPFUN_FEE_BPS = 100
PUMPFUN_TOKEN_DECIMALS = 6

BONDING_CURVE_DISCRIMINATOR = bytes([23, 183, 248, 55, 96, 216, 172, 96])
_CURVE_LAYOUT = struct.Struct("<8s5Q?")
_CREATOR_OFFSET = _CURVE_LAYOUT.size


def _pda(*seeds: bytes, program: Pubkey = PUMPFUN_PROGRAM) -> Pubkey:
    return Pubkey.find_program_address(list(seeds), program)[0]


def bonding_curve_address(mint: Pubkey) -> Pubkey:
    return _pda(b"bonding-curve", bytes(mint))


def associated_bonding_curve(mint: Pubkey) -> Pubkey:
    return get_associated_token_address(bonding_curve_address(mint), mint)


GLOBAL_ACCOUNT = _pda(b"global")
EVENT_AUTHORITY = _pda(b"__event_authority")
GLOBAL_VOLUME_ACCUMULATOR = _pda(b"global_volume_accumulator")
FEE_CONFIG = _pda(b"fee_config", bytes(PUMPFUN_PROGRAM), program=PUMPFUN_FEE_PROGRAM)


def creator_vault(creator: Pubkey) -> Pubkey:
    return _pda(b"creator-vault", bytes(creator))


def user_volume_accumulator(user: Pubkey) -> Pubkey:
    return _pda(b"user_volume_accumulator", bytes(user))


@dataclass(frozen=True, slots=True)
class BondingCurvePool(PoolState):
    venue: ClassVar[Venue] = Venue.BONDING_CURVE_A

    virtual_token_reserves: int
    virtual_sol_reserves: int
    creator: Pubkey
    complete: bool

    @property
    def sol_is_base(self) -> bool:
        return False

    def reserves(self, side: TradeSide) -> Tuple[int, int]:
        # Prices move along the virtual reserves; real reserves start at zero SOL.
        if side == TradeSide.BUY:
            return self.virtual_sol_reserves, self.virtual_token_reserves
        return self.virtual_token_reserves, self.virtual_sol_reserves

    def quote(self, side: TradeSide, amount_in: int) -> int:
        if side == TradeSide.BUY:
            return quote_bonding_curve_buy(
                amount_in,
                self.virtual_token_reserves,
                self.virtual_sol_reserves,
                self.base_reserve,
            )
        return quote_bonding_curve_sell(
            amount_in, self.virtual_token_reserves, self.virtual_sol_reserves, self.fee_bps
        )


def decode_bonding_curve(address: Pubkey, mint: Pubkey, data: bytes) -> BondingCurvePool:
    disc, virtual_token, virtual_sol, real_token, real_sol, _supply, complete = _CURVE_LAYOUT.unpack_from(data)
    if disc != BONDING_CURVE_DISCRIMINATOR:
        raise ValueError("not a bonding curve account")
    return BondingCurvePool(
        address=address,
        base_mint=mint,
        quote_mint=WSOL_MINT,
        base_vault=associated_bonding_curve(mint),
        quote_vault=address,
        base_reserve=real_token,
        quote_reserve=real_sol,
        fee_bps=PUMPFUN_FEE_BPS,
        token_decimals=PUMPFUN_TOKEN_DECIMALS,
        virtual_token_reserves=virtual_token,
        virtual_sol_reserves=virtual_sol,
        creator=read_pubkey(data, _CREATOR_OFFSET),
        complete=complete,
    )


class PumpFunResolver(PoolResolver):
    """Curves live at a PDA of the mint, so a single account read replaces the scan."""

    venue = Venue.BONDING_CURVE_A
    program_id = PUMPFUN_PROGRAM

    async def _scan(self, mint: Pubkey) -> PoolState:
        address = bonding_curve_address(mint)
        data = await self._rpc.get_account_data(address)
        if data is None:
            raise PoolNotFound(str(mint), self.venue.value)
        try:
            pool = decode_bonding_curve(address, mint, data)
        except (struct.error, ValueError) as exc:
            self._logger.warning("Bonding curve %s failed to decode: %s", address, exc)
            raise PoolNotFound(str(mint), self.venue.value) from exc
        if pool.complete:
            raise CurveGraduated(str(mint), self.venue.value)
        return pool

    async def _fetch_known(self, mint: Pubkey, address: Pubkey) -> Optional[PoolState]:
        # The curve address is derived, so the scan path is already a direct read.
        return None


__all__ = [
    "BondingCurvePool",
    "EVENT_AUTHORITY",
    "FEE_CONFIG",
    "GLOBAL_ACCOUNT",
    "GLOBAL_VOLUME_ACCUMULATOR",
    "PUMPFUN_FEE_PROGRAM",
    "PUMPFUN_FEE_RECIPIENT",
    "PUMPFUN_PROGRAM",
    "PumpFunResolver",
    "associated_bonding_curve",
    "bonding_curve_address",
    "creator_vault",
    "decode_bonding_curve",
    "user_volume_accumulator",
]
