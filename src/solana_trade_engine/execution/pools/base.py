"""Pool snapshots, the shared resolver cache and the resolver base class."""

from __future__ import annotations

import struct
import threading
import time
from dataclasses import dataclass
from typing import Callable, ClassVar, Dict, List, Mapping, Optional, Protocol, Sequence, Tuple

from cachetools import TTLCache
from solders.pubkey import Pubkey

from ...config.trade import Venue
from ...monitoring.logger import get_logger
from ...monitoring.metrics import METRICS
from ...utils.constants import LAMPORTS_PER_SOL, WSOL_MINT
from ..amm import quote_out
from ..errors import PoolNotFound
from ..models import TradeSide

# SPL mint account: decimals live after mint_authority option (36) and supply (8).
_MINT_DECIMALS_OFFSET = 44
DEFAULT_TOKEN_DECIMALS = 6


def read_pubkey(data: bytes, offset: int) -> Pubkey:
    if len(data) < offset + 32:
        raise ValueError(f"account data too short for pubkey at {offset}")
    return Pubkey.from_bytes(data[offset : offset + 32])


def read_u64(data: bytes, offset: int) -> int:
    return struct.unpack_from("<Q", data, offset)[0]


def read_u128(data: bytes, offset: int) -> int:
    low, high = struct.unpack_from("<QQ", data, offset)
    return low | (high << 64)


@dataclass(frozen=True, slots=True)
class PoolState:
    """Immutable snapshot of a venue's pool for one token.

    ``base_reserve``/``quote_reserve`` are the amounts the swap math runs on;
    bonding-curve variants add their real and virtual reserves.
    """

    venue: ClassVar[Venue] = Venue.UNKNOWN

    address: Pubkey
    base_mint: Pubkey
    quote_mint: Pubkey
    base_vault: Pubkey
    quote_vault: Pubkey
    base_reserve: int
    quote_reserve: int
    fee_bps: int
    token_decimals: int

    @property
    def sol_is_base(self) -> bool:
        return self.base_mint == WSOL_MINT

    @property
    def token_mint(self) -> Pubkey:
        return self.quote_mint if self.sol_is_base else self.base_mint

    @property
    def sol_reserve(self) -> int:
        return self.base_reserve if self.sol_is_base else self.quote_reserve

    @property
    def token_reserve(self) -> int:
        return self.quote_reserve if self.sol_is_base else self.base_reserve

    def reserves(self, side: TradeSide) -> Tuple[int, int]:
        """``(reserve_in, reserve_out)`` for a trade in ``side`` direction."""

        if side == TradeSide.BUY:
            return self.sol_reserve, self.token_reserve
        return self.token_reserve, self.sol_reserve

    def quote(self, side: TradeSide, amount_in: int) -> int:
        reserve_in, reserve_out = self.reserves(side)
        return quote_out(reserve_in, reserve_out, amount_in, self.fee_bps)

    def depth(self, side: TradeSide) -> float:
        """Input-side liquidity in whole SOL (buys) or whole tokens (sells)."""

        reserve_in, _ = self.reserves(side)
        scale = LAMPORTS_PER_SOL if side == TradeSide.BUY else 10 ** self.token_decimals
        return reserve_in / scale


class PoolRpc(Protocol):
    async def get_program_accounts(
        self,
        program_id: Pubkey,
        memcmp: Sequence[Tuple[int, Pubkey]] = (),
        *,
        data_size: Optional[int] = None,
    ) -> List[Tuple[Pubkey, bytes]]:
        ...

    async def get_account_data(self, address: Pubkey) -> Optional[bytes]:
        ...

    async def get_token_account_balance(self, address: Pubkey) -> int:
        ...


CacheKey = Tuple[Venue, Pubkey]


class ResolverCache:
    """Pool state TTL cache, process-lifetime known-pool map and mint decimals.

    One instance is owned by the engine and shared by every resolver; all
    access goes through a single lock so trades on worker threads are safe.
    """

    def __init__(
        self,
        ttl_seconds: float = 300.0,
        maxsize: int = 1_024,
        *,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        self._pools: TTLCache = TTLCache(maxsize=maxsize, ttl=ttl_seconds, timer=timer)
        self._known: Dict[CacheKey, Pubkey] = {}
        self._decimals: Dict[Pubkey, int] = {}
        self._lock = threading.Lock()

    def get(self, venue: Venue, mint: Pubkey) -> Optional[PoolState]:
        with self._lock:
            return self._pools.get((venue, mint))

    def put(self, venue: Venue, mint: Pubkey, pool: PoolState) -> None:
        with self._lock:
            self._pools[(venue, mint)] = pool
            self._known[(venue, mint)] = pool.address

    def known_pool(self, venue: Venue, mint: Pubkey) -> Optional[Pubkey]:
        with self._lock:
            return self._known.get((venue, mint))

    def seed_known(self, venue: Venue, pools: Mapping[str, str]) -> None:
        with self._lock:
            for mint, address in pools.items():
                self._known.setdefault((venue, Pubkey.from_string(mint)), Pubkey.from_string(address))

    def invalidate(self, venue: Venue, mint: Pubkey, *, forget_address: bool = False) -> None:
        with self._lock:
            self._pools.pop((venue, mint), None)
            if forget_address:
                self._known.pop((venue, mint), None)

    def decimals(self, mint: Pubkey) -> Optional[int]:
        with self._lock:
            return self._decimals.get(mint)

    def remember_decimals(self, mint: Pubkey, decimals: int) -> None:
        with self._lock:
            self._decimals[mint] = decimals

    def clear(self) -> None:
        with self._lock:
            self._pools.clear()
            self._known.clear()
            self._decimals.clear()


class PoolResolver:
    """Finds and decodes a venue's pool for a token mint.

    Lookup order: fresh TTL entry, then a direct fetch of the known pool
    address, then a filtered program-account scan with one memcmp per mint
    slot. Subclasses supply the layout via ``decode`` and may override
    ``hydrate`` to read vault balances.
    """

    venue: ClassVar[Venue] = Venue.UNKNOWN
    program_id: ClassVar[Pubkey]
    mint_offsets: ClassVar[Tuple[int, ...]] = ()
    data_size: ClassVar[Optional[int]] = None
    known_pools: ClassVar[Mapping[str, str]] = {}

    def __init__(self, rpc: PoolRpc, cache: ResolverCache) -> None:
        self._rpc = rpc
        self._cache = cache
        self._logger = get_logger(__name__)
        if self.known_pools:
            cache.seed_known(self.venue, self.known_pools)

    def decode(self, address: Pubkey, data: bytes) -> PoolState:
        raise NotImplementedError

    async def hydrate(self, pool: PoolState) -> PoolState:
        return pool

    async def resolve(self, mint: Pubkey) -> PoolState:
        cached = self._cache.get(self.venue, mint)
        if cached is not None:
            METRICS.increment("pool.cache.hit")
            return cached
        METRICS.increment("pool.cache.miss")

        known = self._cache.known_pool(self.venue, mint)
        if known is not None:
            pool = await self._fetch_known(mint, known)
            if pool is not None:
                METRICS.increment("pool.known.hit")
                self._cache.put(self.venue, mint, pool)
                return pool

        pool = await self._scan(mint)
        self._cache.put(self.venue, mint, pool)
        self._logger.info(
            "Resolved %s pool",
            self.venue.value,
            extra={"mint": str(mint), "pool": str(pool.address)},
        )
        return pool

    async def _fetch_known(self, mint: Pubkey, address: Pubkey) -> Optional[PoolState]:
        data = await self._rpc.get_account_data(address)
        if data is None:
            self._logger.warning("Known %s pool %s is gone; rescanning", self.venue.value, address)
            return None
        try:
            pool = self.decode(address, data)
        except (struct.error, ValueError) as exc:
            self._logger.warning("Known %s pool %s failed to decode: %s", self.venue.value, address, exc)
            return None
        if mint not in (pool.base_mint, pool.quote_mint):
            return None
        return await self.hydrate(pool)

    async def _candidates(self, mint: Pubkey) -> Dict[Pubkey, bytes]:
        found: Dict[Pubkey, bytes] = {}
        for offset in self.mint_offsets:
            METRICS.increment("pool.scan", venue=self.venue.value)
            accounts = await self._rpc.get_program_accounts(
                self.program_id, [(offset, mint)], data_size=self.data_size
            )
            for address, data in accounts:
                found.setdefault(address, data)
        return found

    async def _scan(self, mint: Pubkey) -> PoolState:
        for address, data in (await self._candidates(mint)).items():
            try:
                pool = self.decode(address, data)
            except (struct.error, ValueError) as exc:
                self._logger.warning("Skipping undecodable %s account %s: %s", self.venue.value, address, exc)
                continue
            if mint in (pool.base_mint, pool.quote_mint):
                return await self.hydrate(pool)
        raise PoolNotFound(str(mint), self.venue.value)

    async def vault_balances(self, pool: PoolState) -> Tuple[int, int]:
        base = await self._rpc.get_token_account_balance(pool.base_vault)
        quote = await self._rpc.get_token_account_balance(pool.quote_vault)
        return base, quote

    async def mint_decimals(self, mint: Pubkey) -> int:
        if mint == WSOL_MINT:
            return 9
        cached = self._cache.decimals(mint)
        if cached is not None:
            return cached
        data = await self._rpc.get_account_data(mint)
        if data is None or len(data) <= _MINT_DECIMALS_OFFSET:
            decimals = DEFAULT_TOKEN_DECIMALS
        else:
            decimals = data[_MINT_DECIMALS_OFFSET]
        self._cache.remember_decimals(mint, decimals)
        return decimals


__all__ = [
    "DEFAULT_TOKEN_DECIMALS",
    "PoolResolver",
    "PoolRpc",
    "PoolState",
    "ResolverCache",
    "read_pubkey",
    "read_u128",
    "read_u64",
]
