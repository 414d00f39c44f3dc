"""Transaction builders keyed by venue."""

from __future__ import annotations

from typing import Dict, Type

from ...config.trade import Venue
from ..errors import VenueNotSupported
from .base import SwapArgs, SwapBuilder, VenueBuilder
from .bonk import BonkBuilder
from .cpmm import CpmmBuilder
from .meteora import MeteoraBuilder
from .pumpfun import PumpFunBuilder
from .pumpswap import PumpSwapBuilder

VENUE_BUILDERS: Dict[Venue, Type[SwapBuilder]] = {
    Venue.BONDING_CURVE_A: PumpFunBuilder,
    Venue.AMM_A: PumpSwapBuilder,
    Venue.BONDING_CURVE_B: BonkBuilder,
    Venue.CPMM_GENERIC: CpmmBuilder,
    Venue.METEORA: MeteoraBuilder,
}

TRADABLE_VENUES = tuple(VENUE_BUILDERS)


def builder_for(venue: Venue) -> SwapBuilder:
    try:
        return VENUE_BUILDERS[venue]()
    except KeyError:
        raise VenueNotSupported(f"No transaction builder for {venue.value}") from None


__all__ = [
    "BonkBuilder",
    "CpmmBuilder",
    "MeteoraBuilder",
    "PumpFunBuilder",
    "PumpSwapBuilder",
    "SwapArgs",
    "SwapBuilder",
    "TRADABLE_VENUES",
    "VENUE_BUILDERS",
    "VenueBuilder",
    "builder_for",
]
