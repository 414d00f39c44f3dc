from __future__ import annotations

import asyncio
import random
from typing import List

import pytest
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from spl.token.instructions import get_associated_token_address

from solana_trade_engine.config.settings import CoordinatorConfig
from solana_trade_engine.config.trade import Venue
from solana_trade_engine.execution.coordinator import MultiWalletCoordinator
from solana_trade_engine.execution.errors import InvalidAmount, NetworkOrRpcError
from solana_trade_engine.execution.models import TradeResult, WalletAllocation
from solana_trade_engine.execution.wallet import Wallet
from solana_trade_engine.monitoring.logger import current_correlation_id


def _wallets(fake_rpc, balances: List[int]) -> List[Wallet]:
    wallets = [Wallet(keypair=Keypair(), label=f"w{index}") for index in range(len(balances))]
    for wallet, balance in zip(wallets, balances):
        fake_rpc.balances[wallet.public_key] = balance
    return wallets


class _Sleeps:
    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


def _coordinator(fake_rpc, sleeps=None, config=None) -> MultiWalletCoordinator:
    return MultiWalletCoordinator(
        fake_rpc,
        config or CoordinatorConfig(),
        sleep=sleeps or _Sleeps(),
        rng=random.Random(7),
    )


def test_plan_reserves_fees_and_skips_poor_wallets(fake_rpc) -> None:
    wallets = _wallets(fake_rpc, [5_000_000, 30_000_000, 100_000_000])

    plan = asyncio.run(_coordinator(fake_rpc).build_plan(wallets))

    assert [entry.amount for entry in plan.entries] == [12_000_000, 82_000_000]
    assert [entry.label for entry in plan.entries] == ["w1", "w2"]
    assert len(plan.skipped) == 1
    assert plan.skipped[0].owner == wallets[0].public_key
    assert plan.total == 94_000_000


def test_plan_fills_target_in_order(fake_rpc) -> None:
    wallets = _wallets(fake_rpc, [30_000_000, 100_000_000, 100_000_000])

    plan = asyncio.run(_coordinator(fake_rpc).build_plan(wallets, target_total=50_000_000))

    assert [entry.amount for entry in plan.entries] == [12_000_000, 38_000_000]
    assert plan.total == 50_000_000


def test_plan_uses_venue_reserve(fake_rpc) -> None:
    wallets = _wallets(fake_rpc, [30_000_000])
    config = CoordinatorConfig(venue_reserve_lamports={Venue.CPMM_GENERIC: 25_000_000})

    plan = asyncio.run(_coordinator(fake_rpc, config=config).build_plan(wallets, venue=Venue.CPMM_GENERIC))

    assert plan.entries[0].amount == 5_000_000


def test_plan_rejects_non_positive_target(fake_rpc) -> None:
    with pytest.raises(InvalidAmount):
        asyncio.run(_coordinator(fake_rpc).build_plan([], target_total=0))


def test_execute_reports_partial_success(fake_rpc) -> None:
    wallets = _wallets(fake_rpc, [1_000_000, 50_000_000, 50_000_000, 50_000_000])
    sleeps = _Sleeps()
    coordinator = _coordinator(fake_rpc, sleeps)
    seen: List[str] = []

    async def trade(entry: WalletAllocation) -> TradeResult:
        seen.append(current_correlation_id())
        if entry.label == "w2":
            raise ConnectionError("node went away")
        if entry.label == "w3":
            return TradeResult.failure(Venue.AMM_A, NetworkOrRpcError("blockhash expired"), 3)
        return TradeResult.ok(Venue.AMM_A, "sig", 10, 1)

    async def run():
        plan = await coordinator.build_plan(wallets)
        return await coordinator.execute(plan, trade)

    summary = asyncio.run(run())

    assert (summary.success_count, summary.failure_count) == (1, 3)
    assert summary.is_partial
    assert len(summary.results) == 4
    assert summary.results[0].reason is not None
    assert "node went away" in (summary.results[2].reason or "")
    assert len(sleeps.delays) == 2
    assert all(0.15 <= delay <= 0.22 for delay in sleeps.delays)
    assert len(set(seen)) == 3
    assert "-" not in seen


def test_sell_all_skips_empty_wallets(fake_rpc) -> None:
    mint = Pubkey.new_unique()
    wallets = _wallets(fake_rpc, [0, 0, 0])
    fake_rpc.token_balances[get_associated_token_address(wallets[0].public_key, mint)] = 700
    fake_rpc.token_balances[get_associated_token_address(wallets[2].public_key, mint)] = 300
    sold: List[int] = []

    async def trade(entry: WalletAllocation) -> TradeResult:
        sold.append(entry.amount)
        return TradeResult.ok(Venue.AMM_A, "sig", entry.amount, 1)

    summary = asyncio.run(_coordinator(fake_rpc).sell_all(wallets, mint, trade))

    assert sold == [700, 300]
    assert (summary.success_count, summary.failure_count) == (2, 0)
    assert not summary.is_partial


def test_failed_balance_read_skips_only_that_wallet(fake_rpc) -> None:
    wallets = _wallets(fake_rpc, [50_000_000, 50_000_000, 50_000_000])
    fake_rpc.read_errors[wallets[1].public_key] = NetworkOrRpcError("rpc down")

    plan = asyncio.run(_coordinator(fake_rpc).build_plan(wallets))

    assert [entry.label for entry in plan.entries] == ["w0", "w2"]
    assert len(plan.skipped) == 1
    assert plan.skipped[0].owner == wallets[1].public_key
    assert plan.skipped[0].reason == "rpc down"


def test_sell_plan_reports_unreadable_token_account(fake_rpc) -> None:
    mint = Pubkey.new_unique()
    wallets = _wallets(fake_rpc, [0, 0])
    fake_rpc.token_balances[get_associated_token_address(wallets[0].public_key, mint)] = 700
    fake_rpc.read_errors[get_associated_token_address(wallets[1].public_key, mint)] = ConnectionError("reset")
    sold: List[int] = []

    async def trade(entry: WalletAllocation) -> TradeResult:
        sold.append(entry.amount)
        return TradeResult.ok(Venue.AMM_A, "sig", entry.amount, 1)

    summary = asyncio.run(_coordinator(fake_rpc).sell_all(wallets, mint, trade))

    assert sold == [700]
    assert (summary.success_count, summary.failure_count) == (1, 1)
    assert summary.results[0].owner == wallets[1].public_key
    assert "reset" in (summary.results[0].reason or "")
