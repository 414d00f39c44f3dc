"""Classifies a token mint into the venue that currently trades it."""

from __future__ import annotations

import threading
from typing import Dict, Mapping, Optional, Protocol, Sequence

from solders.pubkey import Pubkey

from ..config.trade import Venue
from ..monitoring.logger import get_logger
from ..monitoring.metrics import METRICS
from .errors import PoolNotFound, classify_error
from .pools import PoolResolver

DETECTION_ORDER = (
    Venue.BONDING_CURVE_A,
    Venue.AMM_A,
    Venue.BONDING_CURVE_B,
    Venue.CPMM_GENERIC,
    Venue.METEORA,
    Venue.HEAVEN,
)


class PlatformCache(Protocol):
    """Detection results keyed by mint, kept for the life of the store."""

    def get(self, mint: Pubkey) -> Optional[Venue]:
        ...

    def set(self, mint: Pubkey, venue: Venue) -> None:
        ...

    def delete(self, mint: Pubkey) -> None:
        ...


class InMemoryPlatformCache:
    def __init__(self) -> None:
        self._entries: Dict[Pubkey, Venue] = {}
        self._lock = threading.Lock()

    def get(self, mint: Pubkey) -> Optional[Venue]:
        with self._lock:
            return self._entries.get(mint)

    def set(self, mint: Pubkey, venue: Venue) -> None:
        with self._lock:
            self._entries[mint] = venue

    def delete(self, mint: Pubkey) -> None:
        with self._lock:
            self._entries.pop(mint, None)


class PlatformDetector:
    """Tries each resolver in priority order; the first pool found wins.

    ``UNKNOWN`` is returned, never raised, when no venue has a pool. Unknown
    results are not cached so a later launch is picked up. A cached venue can
    go stale when a curve graduates; callers correct it with ``mark``.
    """

    def __init__(
        self,
        resolvers: Mapping[Venue, PoolResolver],
        cache: Optional[PlatformCache] = None,
        order: Sequence[Venue] = DETECTION_ORDER,
    ) -> None:
        self._resolvers = resolvers
        self._cache = cache or InMemoryPlatformCache()
        self._order = [venue for venue in order if venue in resolvers]
        self._logger = get_logger(__name__)

    async def detect(self, mint: Pubkey) -> Venue:
        cached = self._cache.get(mint)
        if cached is not None:
            METRICS.increment("detector.cache.hit")
            return cached
        for venue in self._order:
            try:
                await self._resolvers[venue].resolve(mint)
            except PoolNotFound:
                continue
            except Exception as exc:  # noqa: BLE001
                error = classify_error(exc)
                self._logger.warning(
                    "Venue lookup failed; treating as miss",
                    extra={"venue": venue.value, "mint": str(mint), "error": error.reason},
                )
                continue
            self._cache.set(mint, venue)
            METRICS.increment("detector.detected", venue=venue.value)
            return venue
        METRICS.increment("detector.unknown")
        return Venue.UNKNOWN

    def mark(self, mint: Pubkey, venue: Venue) -> None:
        """Record a venue learned elsewhere, e.g. a curve that just graduated."""

        previous = self._cache.get(mint)
        self._cache.set(mint, venue)
        if previous is not None and previous != venue:
            self._logger.info(
                "Token migrated venues",
                extra={"mint": str(mint), "from_venue": previous.value, "to_venue": venue.value},
            )

    def forget(self, mint: Pubkey) -> None:
        self._cache.delete(mint)


__all__ = ["DETECTION_ORDER", "InMemoryPlatformCache", "PlatformCache", "PlatformDetector"]
