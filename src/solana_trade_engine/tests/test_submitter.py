from __future__ import annotations

import asyncio
from typing import List

import pytest
from solana.rpc.core import RPCException
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.system_program import TransferParams, transfer

from solana_trade_engine.config.trade import RetrySettings, UnifiedTradeConfig, Venue
from solana_trade_engine.execution.errors import InvalidAmount, NetworkOrRpcError
from solana_trade_engine.execution.models import TradeRequest, TradeSide
from solana_trade_engine.execution.submitter import (
    AttemptContext,
    Built,
    Confirmed,
    Errored,
    PlannedSwap,
    RetryingSubmitter,
    Sent,
    Signed,
    SubmitMachine,
    SubmitState,
    step,
)
from solana_trade_engine.monitoring.metrics import METRICS


def _config(max_attempts: int = 3) -> UnifiedTradeConfig:
    return UnifiedTradeConfig(retry=RetrySettings(max_attempts=max_attempts, delay_ms=250))


def _request() -> TradeRequest:
    return TradeRequest(mint=Pubkey.new_unique(), payer=Keypair(), side=TradeSide.BUY, amount=1_000_000)


class _Planner:
    def __init__(self, request: TradeRequest) -> None:
        self.contexts: List[AttemptContext] = []
        self._owner = request.owner

    def __call__(self, context: AttemptContext) -> PlannedSwap:
        self.contexts.append(context)
        instruction = transfer(TransferParams(from_pubkey=self._owner, to_pubkey=Pubkey.new_unique(), lamports=1))
        return PlannedSwap(instructions=[instruction], expected_out=5_000, min_out=3_000)


class _Sleeps:
    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


def test_happy_path_transitions() -> None:
    machine = SubmitMachine(max_attempts=3)
    for event, expected in (
        (Built(), SubmitState.BUILDING),
        (Signed(), SubmitState.SIGNED),
        (Sent(), SubmitState.SENT),
        (Confirmed(), SubmitState.CONFIRMED),
    ):
        machine = step(machine, event)
        assert machine.state == expected
    assert machine.terminal


def test_illegal_transitions_raise() -> None:
    with pytest.raises(ValueError):
        step(SubmitMachine(), Sent())
    with pytest.raises(ValueError):
        step(SubmitMachine(state=SubmitState.CONFIRMED), Built())


def test_retryable_error_loops_until_ceiling() -> None:
    error = NetworkOrRpcError("timeout")
    machine = step(SubmitMachine(state=SubmitState.SENT, max_attempts=2), Errored(error))
    assert (machine.state, machine.attempt, machine.last_error) == (SubmitState.BUILDING, 1, error)

    machine = step(machine, Errored(error))
    assert machine.state == SubmitState.EXHAUSTED


def test_non_retryable_error_fails_immediately() -> None:
    machine = step(SubmitMachine(max_attempts=5), Errored(InvalidAmount("zero")))
    assert machine.state == SubmitState.FAILED
    assert machine.attempt == 0


def test_zero_attempts_means_one() -> None:
    machine = step(SubmitMachine(max_attempts=0), Errored(NetworkOrRpcError("down")))
    assert machine.state == SubmitState.EXHAUSTED


def test_retry_refreshes_blockhash_fee_and_slippage(fake_rpc) -> None:
    fake_rpc.confirm_errors.append(asyncio.TimeoutError())
    sleeps = _Sleeps()
    request = _request()
    planner = _Planner(request)
    submitter = RetryingSubmitter(fake_rpc, sleep=sleeps)

    result = asyncio.run(submitter.submit(request, planner, _config(), venue=Venue.AMM_A, slippage=35.0))

    assert result.success
    assert result.attempts == 2
    assert result.amount_out == 5_000
    assert fake_rpc.calls["get_latest_blockhash"] == 2
    assert fake_rpc.calls["send_transaction"] == 2
    assert [context.slippage for context in planner.contexts] == [35.0, 45.0]
    assert [context.priority_fee for context in planner.contexts] == [1_500_000, 2_250_000]
    assert sleeps.delays == [0.25]
    assert METRICS.get("trade_retries") == 1


def test_exhaustion_reports_attempt_count(fake_rpc) -> None:
    fake_rpc.send_errors.extend(ConnectionError("reset") for _ in range(3))
    request = _request()
    submitter = RetryingSubmitter(fake_rpc, sleep=_Sleeps())

    result = asyncio.run(submitter.submit(request, _Planner(request), _config(), venue=Venue.METEORA, slippage=10.0))

    assert not result.success
    assert result.error_kind == "attempts_exhausted"
    assert result.attempts == 3
    assert "reset" in (result.reason or "")


def test_program_error_is_retried_with_wider_slippage(fake_rpc) -> None:
    fake_rpc.send_errors.append(RPCException("custom program error: 0x1771"))
    request = _request()
    planner = _Planner(request)
    submitter = RetryingSubmitter(fake_rpc, sleep=_Sleeps())

    report = asyncio.run(
        submitter.submit_with_report(request, planner, _config(), venue=Venue.AMM_A, slippage=40.0)
    )

    assert report.result.success
    assert report.attempts[0].reason is not None
    assert report.attempts[1].slippage == 50.0


def test_plan_failure_is_terminal_when_not_retryable(fake_rpc) -> None:
    request = _request()

    def plan(context: AttemptContext) -> PlannedSwap:
        raise InvalidAmount("quote rounds to zero")

    submitter = RetryingSubmitter(fake_rpc, sleep=_Sleeps())
    result = asyncio.run(submitter.submit(request, plan, _config(), venue=Venue.AMM_A, slippage=10.0))

    assert not result.success
    assert result.error_kind == "invalid_amount"
    assert result.attempts == 1
    assert fake_rpc.calls["send_transaction"] == 0


def test_dry_run_signs_without_sending(fake_rpc) -> None:
    request = _request()
    submitter = RetryingSubmitter(fake_rpc, dry_run=True, sleep=_Sleeps())

    result = asyncio.run(submitter.submit(request, _Planner(request), _config(), venue=Venue.AMM_A, slippage=10.0))

    assert result.success
    assert result.dry_run
    assert result.signature
    assert fake_rpc.calls["send_transaction"] == 0
    assert fake_rpc.sent == []
