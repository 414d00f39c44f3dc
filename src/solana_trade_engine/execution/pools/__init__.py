"""Per-venue pool resolvers and the table that selects them."""

from __future__ import annotations

from typing import Dict, Type

from ...config.trade import Venue
from .base import PoolResolver, PoolRpc, PoolState, ResolverCache
from .bonk import BonkPool, BonkResolver
from .cpmm import CpmmPool, CpmmResolver
from .heaven import HeavenPool, HeavenResolver
from .meteora import MeteoraPool, MeteoraResolver
from .pumpfun import BondingCurvePool, PumpFunResolver
from .pumpswap import PumpSwapPool, PumpSwapResolver

RESOLVERS: Dict[Venue, Type[PoolResolver]] = {
    Venue.BONDING_CURVE_A: PumpFunResolver,
    Venue.AMM_A: PumpSwapResolver,
    Venue.BONDING_CURVE_B: BonkResolver,
    Venue.CPMM_GENERIC: CpmmResolver,
    Venue.METEORA: MeteoraResolver,
    Venue.HEAVEN: HeavenResolver,
}


def build_resolvers(rpc: PoolRpc, cache: ResolverCache) -> Dict[Venue, PoolResolver]:
    return {venue: resolver_cls(rpc, cache) for venue, resolver_cls in RESOLVERS.items()}


__all__ = [
    "BondingCurvePool",
    "BonkPool",
    "CpmmPool",
    "HeavenPool",
    "MeteoraPool",
    "PoolResolver",
    "PoolState",
    "PumpSwapPool",
    "RESOLVERS",
    "ResolverCache",
    "build_resolvers",
]
