"""Fan one trade out across several wallets."""

from __future__ import annotations

import asyncio
import random
from typing import Awaitable, Callable, List, Optional, Protocol, Sequence, Union

from solders.pubkey import Pubkey
from spl.token.instructions import get_associated_token_address

from ..config.settings import CoordinatorConfig, get_app_config
from ..config.trade import Venue
from ..monitoring.logger import correlation_scope, get_logger, wallet_scope
from ..monitoring.metrics import METRICS
from .errors import InvalidAmount, TradeError, classify_error
from .models import (
    MultiWalletPlan,
    MultiWalletResult,
    SkippedWallet,
    TradeResult,
    WalletAllocation,
    WalletOutcome,
)
from .wallet import Wallet

TradeFn = Callable[[WalletAllocation], Awaitable[TradeResult]]
BalanceRead = Union[int, TradeError]


class BalanceRpc(Protocol):
    async def get_balance(self, owner: Pubkey) -> int:
        ...

    async def get_token_balance(self, token_account: Pubkey) -> int:
        ...


class MultiWalletCoordinator:
    """Plans per-wallet amounts and runs the wallets one after another.

    Each wallet keeps a reserve for transaction fees and account rent;
    wallets with nothing left after the reserve are skipped and reported as
    failures. Partial success is a normal result, not an error.
    """

    def __init__(
        self,
        rpc: BalanceRpc,
        config: Optional[CoordinatorConfig] = None,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._rpc = rpc
        self._config = config or get_app_config().coordinator
        self._sleep = sleep
        self._rng = rng or random.Random()
        self._logger = get_logger(__name__)

    async def build_plan(
        self,
        wallets: Sequence[Wallet],
        target_total: Optional[int] = None,
        venue: Optional[Venue] = None,
    ) -> MultiWalletPlan:
        """Allocate lamports per wallet.

        Without ``target_total`` every wallet spends its full remainder after
        the reserve. With it, wallets are filled in order until the target is
        met; wallets not needed are left out of the plan.
        """

        if target_total is not None and target_total <= 0:
            raise InvalidAmount(f"target_total must be positive, got {target_total}")
        reads = [self._rpc.get_balance(wallet.public_key) for wallet in wallets]
        balances = await self._read_balances(wallets, reads)
        reserve = self._config.fee_reserve_lamports(venue)
        remaining = target_total
        plan = MultiWalletPlan()
        for wallet, balance in zip(wallets, balances):
            if isinstance(balance, TradeError):
                plan.skipped.append(SkippedWallet(owner=wallet.public_key, balance=0, reason=balance.reason))
                continue
            spendable = balance - reserve
            if spendable <= 0:
                plan.skipped.append(
                    SkippedWallet(
                        owner=wallet.public_key,
                        balance=balance,
                        reason=f"balance {balance} does not cover the {reserve} lamport reserve",
                    )
                )
                continue
            if remaining is None:
                amount = spendable
            elif remaining <= 0:
                break
            else:
                amount = min(spendable, remaining)
                remaining -= amount
            plan.entries.append(
                WalletAllocation(payer=wallet.keypair, amount=amount, balance=balance, label=wallet.label)
            )
        if remaining:
            self._logger.warning("Wallets cover only %d of the %d lamport target", plan.total, target_total)
        return plan

    async def build_sell_plan(self, wallets: Sequence[Wallet], mint: Pubkey) -> MultiWalletPlan:
        """One entry per wallet holding ``mint``, each selling its whole balance."""

        accounts = [get_associated_token_address(wallet.public_key, mint) for wallet in wallets]
        reads = [self._rpc.get_token_balance(account) for account in accounts]
        balances = await self._read_balances(wallets, reads)
        plan = MultiWalletPlan()
        for wallet, balance in zip(wallets, balances):
            if isinstance(balance, TradeError):
                plan.skipped.append(SkippedWallet(owner=wallet.public_key, balance=0, reason=balance.reason))
                continue
            if balance <= 0:
                self._logger.info("Wallet %s holds no %s; skipping", wallet.public_key, mint)
                continue
            plan.entries.append(
                WalletAllocation(payer=wallet.keypair, amount=balance, balance=balance, label=wallet.label)
            )
        return plan

    async def _read_balances(
        self, wallets: Sequence[Wallet], reads: Sequence[Awaitable[int]]
    ) -> List[BalanceRead]:
        """Await every read; a failed read becomes that wallet's classified error."""

        results = await asyncio.gather(*reads, return_exceptions=True)
        balances: List[BalanceRead] = []
        for wallet, result in zip(wallets, results):
            if isinstance(result, Exception):
                error = classify_error(result)
                METRICS.increment("multi_wallet.balance_error")
                self._logger.warning("Balance read for %s failed: %s", wallet.public_key, error.reason)
                balances.append(error)
            elif isinstance(result, BaseException):
                raise result
            else:
                balances.append(int(result))
        return balances

    async def execute(self, plan: MultiWalletPlan, trade_fn: TradeFn) -> MultiWalletResult:
        outcomes: List[WalletOutcome] = [
            WalletOutcome(owner=skipped.owner, amount=0, reason=skipped.reason) for skipped in plan.skipped
        ]
        for index, entry in enumerate(plan.entries):
            if index:
                delay_ms = self._rng.uniform(self._config.min_delay_ms, self._config.max_delay_ms)
                await self._sleep(delay_ms / 1000)
            with correlation_scope(), wallet_scope(entry.label or str(entry.owner)):
                try:
                    result = await trade_fn(entry)
                except Exception as exc:  # noqa: BLE001
                    error = classify_error(exc)
                    self._logger.error("Wallet trade raised: %s", error.reason)
                    outcomes.append(WalletOutcome(owner=entry.owner, amount=entry.amount, reason=error.reason))
                    continue
            outcomes.append(
                WalletOutcome(owner=entry.owner, amount=entry.amount, result=result, reason=result.reason)
            )

        summary = MultiWalletResult.from_outcomes(outcomes)
        METRICS.increment("multi_wallet.success", summary.success_count)
        METRICS.increment("multi_wallet.failure", summary.failure_count)
        self._logger.info(
            "Multi-wallet run finished",
            extra={"succeeded": summary.success_count, "failed": summary.failure_count},
        )
        return summary

    async def sell_all(self, wallets: Sequence[Wallet], mint: Pubkey, trade_fn: TradeFn) -> MultiWalletResult:
        plan = await self.build_sell_plan(wallets, mint)
        return await self.execute(plan, trade_fn)


__all__ = ["BalanceRpc", "MultiWalletCoordinator", "TradeFn"]
