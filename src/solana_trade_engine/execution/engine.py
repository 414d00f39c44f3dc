"""Trade entry point: detect, resolve, check balances, then submit."""

from __future__ import annotations

import asyncio
import contextlib
import dataclasses
from collections import deque
from typing import Awaitable, Callable, Deque, List, Optional, Protocol, Sequence, Set

from solders.pubkey import Pubkey
from spl.token.instructions import get_associated_token_address

from ..config.settings import AppConfig, get_app_config
from ..config.trade import SlippageOverride, TradeConfigOverride, UnifiedTradeConfig, Venue, build_trade_config
from ..monitoring import bootstrap_observability
from ..monitoring.logger import correlation_scope, current_correlation_id, get_logger, wallet_scope
from ..monitoring.metrics import METRICS
from .amm import apply_slippage
from .coordinator import MultiWalletCoordinator
from .detector import PlatformCache, PlatformDetector
from .errors import (
    CurveGraduated,
    InsufficientBalance,
    InvalidAmount,
    PoolNotFound,
    TradeError,
    VenueNotSupported,
    classify_error,
)
from .fees import NO_FEES, TradeFees, compute_trade_fees, fee_for_attempt
from .instructions import compute_budget, fee_transfers
from .models import MultiWalletResult, TradeRequest, TradeResult, TradeSide, WalletAllocation, WalletOutcome
from .pools import PoolState, ResolverCache, build_resolvers
from .slippage import advise
from .solana_client import SolanaClient
from .submitter import AttemptContext, PlannedSwap, RetryingSubmitter, sign_instructions
from .venues import TRADABLE_VENUES, SwapBuilder, builder_for
from .wallet import Wallet

FeeHook = Callable[[TradeRequest, TradeFees], Awaitable[None]]

# Failures that mean "not on this venue" rather than "the trade failed".
_FALLBACK_ERRORS = (PoolNotFound, VenueNotSupported)


class EngineRpc(Protocol):
    async def get_program_accounts(self, program_id, memcmp=(), *, data_size=None):
        ...

    async def get_account_data(self, address):
        ...

    async def get_token_account_balance(self, address):
        ...

    async def get_token_balance(self, token_account: Pubkey) -> int:
        ...

    async def get_balance(self, owner: Pubkey) -> int:
        ...

    async def get_latest_blockhash(self):
        ...

    async def send_transaction(self, transaction) -> str:
        ...

    async def confirm_transaction(self, signature: str, last_valid_block_height: int) -> None:
        ...


class TradeEngine:
    """Executes buys and sells for one process.

    Owns the resolver cache, the platform detector and the submitter.
    ``buy``/``sell`` never raise; every outcome is a ``TradeResult``. Buy
    fees are collected after confirmation by a background task that is
    tracked so callers can ``drain()`` it.
    """

    def __init__(
        self,
        rpc: EngineRpc,
        *,
        config: Optional[AppConfig] = None,
        cache: Optional[ResolverCache] = None,
        platform_cache: Optional[PlatformCache] = None,
        fee_hook: Optional[FeeHook] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._rpc = rpc
        self._config = config or get_app_config()
        execution = self._config.execution
        self._cache = cache or ResolverCache(execution.pool_cache_ttl_seconds, execution.pool_cache_size)
        self._resolvers = build_resolvers(rpc, self._cache)
        self._detector = PlatformDetector(self._resolvers, platform_cache, order=execution.detection_order)
        self._submitter = RetryingSubmitter(rpc, dry_run=self._config.dry_run, sleep=sleep)
        self._coordinator = MultiWalletCoordinator(rpc, self._config.coordinator, sleep=sleep)
        if fee_hook is None and execution.collect_fees:
            fee_hook = self.collect_fees
        self._fee_hook = fee_hook
        self._tasks: Set[asyncio.Task] = set()
        self._logger = get_logger(__name__)

    @classmethod
    def from_config(cls, config: Optional[AppConfig] = None) -> "TradeEngine":
        cfg = config or get_app_config()
        bootstrap_observability(config=cfg)
        return cls(SolanaClient(cfg.rpc), config=cfg)

    @property
    def detector(self) -> PlatformDetector:
        return self._detector

    @property
    def cache(self) -> ResolverCache:
        return self._cache

    @property
    def coordinator(self) -> MultiWalletCoordinator:
        return self._coordinator

    async def close(self) -> None:
        await self.drain()
        close = getattr(self._rpc, "close", None)
        if close is not None:
            await close()

    async def buy(self, request: TradeRequest) -> TradeResult:
        if request.side != TradeSide.BUY:
            request = dataclasses.replace(request, side=TradeSide.BUY)
        return await self.trade(request)

    async def sell(self, request: TradeRequest) -> TradeResult:
        if request.side != TradeSide.SELL:
            request = dataclasses.replace(request, side=TradeSide.SELL)
        return await self.trade(request)

    async def trade(self, request: TradeRequest) -> TradeResult:
        inherited = current_correlation_id()
        with contextlib.ExitStack() as stack:
            stack.enter_context(correlation_scope(None if inherited == "-" else inherited))
            if request.label:
                stack.enter_context(wallet_scope(request.label))
            METRICS.increment("trades.requested", side=request.side.value)
            self._logger.info(
                "Trade requested",
                extra={
                    "side": request.side.value,
                    "mint": str(request.mint),
                    "amount": request.amount,
                    "owner": str(request.owner),
                },
            )
            try:
                result = await self._route(request)
            except Exception as exc:  # noqa: BLE001
                error = classify_error(exc)
                self._logger.error("Trade aborted: %s", error.reason, extra={"error_kind": error.kind})
                result = TradeResult.failure(request.venue or Venue.UNKNOWN, error)
            self._logger.info(
                "Trade finished",
                extra={
                    "success": result.success,
                    "venue": result.venue.value,
                    "signature": result.signature,
                    "attempts": result.attempts,
                    "error_kind": result.error_kind,
                },
            )
            return result

    async def _route(self, request: TradeRequest) -> TradeResult:
        if request.amount <= 0:
            raise InvalidAmount(f"amount must be positive, got {request.amount}")
        venue = request.venue
        if venue is None:
            venue = await self._detector.detect(request.mint)
        if venue == Venue.UNKNOWN:
            candidates = [v for v in self._config.execution.detection_order if v in TRADABLE_VENUES]
            self._logger.info(
                "Venue unknown; trying fallback chain", extra={"venues": [v.value for v in candidates]}
            )
        else:
            candidates = [venue]

        queue: Deque[Venue] = deque(candidates)
        tried: List[Venue] = []
        last_error: Optional[TradeError] = None
        while queue:
            current = queue.popleft()
            tried.append(current)
            try:
                return await self._trade_on(request, current)
            except CurveGraduated as exc:
                last_error = exc
                self._detector.mark(request.mint, Venue.AMM_A)
                if Venue.AMM_A not in tried and Venue.AMM_A not in queue:
                    queue.appendleft(Venue.AMM_A)
            except _FALLBACK_ERRORS as exc:
                last_error = exc
                if current == request.venue or len(candidates) == 1:
                    self._detector.forget(request.mint)
        if last_error is None:
            last_error = PoolNotFound(str(request.mint))
        return TradeResult.failure(tried[-1] if len(tried) == 1 else Venue.UNKNOWN, last_error)

    def trade_config(self, request: TradeRequest, venue: Venue) -> UnifiedTradeConfig:
        slippage = None
        if request.slippage_override is not None:
            slippage = TradeConfigOverride(slippage=SlippageOverride(user_override=request.slippage_override))
        section = self._config.trade
        return build_trade_config(
            section.preset,
            section.overrides,
            request.overrides,
            slippage,
            venue=venue,
            venue_overrides=section.venue_overrides,
        )

    async def _trade_on(self, request: TradeRequest, venue: Venue) -> TradeResult:
        builder = builder_for(venue)
        resolver = self._resolvers[venue]
        config = self.trade_config(request, venue)
        pool = await resolver.resolve(request.mint)

        if request.side == TradeSide.BUY:
            fees = compute_trade_fees(request.amount, config, venue)
            amount_in = request.amount - fees.total
            if amount_in <= 0:
                raise InvalidAmount(f"{request.amount} lamports does not cover {fees.total} in fees")
            await self._check_sol_balance(request, venue)
        else:
            fees = NO_FEES
            amount_in = request.amount
            await self._check_token_balance(request, builder, pool)

        slippage = self._initial_slippage(request, pool, config, amount_in)
        plan_fn = self._plan(request, builder, pool, config, amount_in)
        result = await self._submitter.submit(request, plan_fn, config, venue=venue, slippage=slippage)

        if not result.success:
            self._cache.invalidate(venue, request.mint)
        elif request.side == TradeSide.BUY and fees.total and self._fee_hook is not None:
            self._spawn_fee_hook(self._fee_hook, request, fees)
        return result

    @staticmethod
    def _initial_slippage(
        request: TradeRequest, pool: PoolState, config: UnifiedTradeConfig, amount_in: int
    ) -> float:
        if not config.to_venue_params(pool.venue).adaptive_slippage:
            return min(config.effective_slippage(), config.slippage.max)
        reserve_in, _ = pool.reserves(request.side)
        return advise(
            reserve_in,
            amount_in,
            config,
            depth=pool.depth(request.side),
            depth_threshold=config.liquidity.low_threshold,
        )

    def _plan(
        self,
        request: TradeRequest,
        builder: SwapBuilder,
        pool: PoolState,
        config: UnifiedTradeConfig,
        amount_in: int,
    ) -> Callable[[AttemptContext], PlannedSwap]:
        def plan(ctx: AttemptContext) -> PlannedSwap:
            expected = pool.quote(request.side, amount_in)
            if expected <= 0:
                raise InvalidAmount(f"{amount_in} in yields no output on {pool.venue.value}")
            min_out = apply_slippage(expected, ctx.slippage)
            fees = NO_FEES
            if request.side == TradeSide.SELL:
                fees = compute_trade_fees(min_out, config, pool.venue)
            instructions = builder.build(
                pool, request.owner, request.side, amount_in, min_out, ctx.priority_fee, fees
            )
            return PlannedSwap(instructions=instructions, expected_out=expected, min_out=min_out)

        return plan

    async def _check_sol_balance(self, request: TradeRequest, venue: Venue) -> None:
        balance = await self._rpc.get_balance(request.owner)
        required = request.amount + self._config.coordinator.fee_reserve_lamports(venue)
        if balance < required:
            raise InsufficientBalance(f"Wallet holds {balance} lamports; {required} required")

    async def _check_token_balance(self, request: TradeRequest, builder: SwapBuilder, pool: PoolState) -> None:
        account = get_associated_token_address(request.owner, request.mint, builder.token_program(pool))
        balance = await self._rpc.get_token_balance(account)
        if balance < request.amount:
            raise InsufficientBalance(f"Wallet holds {balance} tokens; {request.amount} requested")

    def _spawn_fee_hook(self, hook: FeeHook, request: TradeRequest, fees: TradeFees) -> None:
        task = asyncio.create_task(self._run_fee_hook(hook, request, fees))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run_fee_hook(self, hook: FeeHook, request: TradeRequest, fees: TradeFees) -> None:
        try:
            await hook(request, fees)
        except Exception as exc:  # noqa: BLE001
            METRICS.increment("fee_collection.failed")
            self._logger.warning(
                "Fee collection failed; trade unaffected",
                extra={"owner": str(request.owner), "fees": fees.total, "error": str(exc)},
            )
        else:
            METRICS.increment("fee_collection.completed")

    async def drain(self) -> None:
        """Wait for every outstanding fee-collection task."""

        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    async def collect_fees(self, request: TradeRequest, fees: TradeFees) -> None:
        """Default fee hook: pay platform and maestro fees as native transfers."""

        transfers = fees.transfers()
        if not transfers:
            return
        priority_fee = fee_for_attempt(0, self._config.trade_config())
        instructions = [*compute_budget(priority_fee), *fee_transfers(request.owner, transfers, wsol=False)]
        blockhash, _ = await self._rpc.get_latest_blockhash()
        transaction = sign_instructions(request.payer, instructions, blockhash)
        if self._config.dry_run:
            self._logger.info("Dry run: fee transfer signed, not sent")
            return
        signature = await self._rpc.send_transaction(transaction)
        self._logger.info("Fee transfer sent", extra={"signature": signature, "amount": fees.total})

    async def buy_many(
        self,
        wallets: Sequence[Wallet],
        mint: Pubkey,
        target_total: Optional[int] = None,
        venue: Optional[Venue] = None,
    ) -> MultiWalletResult:
        try:
            plan = await self._coordinator.build_plan(wallets, target_total, venue)
        except TradeError as exc:
            self._logger.error("Multi-wallet buy rejected: %s", exc.reason, extra={"error_kind": exc.kind})
            return MultiWalletResult.from_outcomes(
                [WalletOutcome(owner=wallet.public_key, amount=0, reason=exc.reason) for wallet in wallets]
            )

        async def buy_one(entry: WalletAllocation) -> TradeResult:
            return await self.buy(_wallet_request(entry, mint, TradeSide.BUY, venue))

        return await self._coordinator.execute(plan, buy_one)

    async def sell_all(
        self, wallets: Sequence[Wallet], mint: Pubkey, venue: Optional[Venue] = None
    ) -> MultiWalletResult:
        async def sell_one(entry: WalletAllocation) -> TradeResult:
            return await self.sell(_wallet_request(entry, mint, TradeSide.SELL, venue))

        return await self._coordinator.sell_all(wallets, mint, sell_one)


def _wallet_request(entry: WalletAllocation, mint: Pubkey, side: TradeSide, venue: Optional[Venue]) -> TradeRequest:
    return TradeRequest(
        mint=mint,
        payer=entry.payer,
        side=side,
        amount=entry.amount,
        venue=venue,
        label=entry.label,
    )


__all__ = ["EngineRpc", "FeeHook", "TradeEngine"]
