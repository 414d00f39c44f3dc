"""Build, sign, send and confirm with fresh blockhash, fee and slippage per attempt."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Awaitable, Callable, List, Optional, Protocol, Sequence, Tuple, Union

from solders.hash import Hash
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.message import Message
from solders.transaction import VersionedTransaction

from ..config.trade import UnifiedTradeConfig, Venue
from ..monitoring.logger import get_logger
from ..monitoring.metrics import METRICS
from .errors import AttemptsExhausted, TradeError, classify_error
from .fees import fee_for_attempt
from .models import AttemptOutcome, TradeAttempt, TradeRequest, TradeResult
from .slippage import retry_slippage


class SubmitState(str, Enum):
    BUILDING = "building"
    SIGNED = "signed"
    SENT = "sent"
    CONFIRMED = "confirmed"
    FAILED = "failed"
    EXHAUSTED = "exhausted"


TERMINAL_STATES = frozenset({SubmitState.CONFIRMED, SubmitState.FAILED, SubmitState.EXHAUSTED})


@dataclass(frozen=True, slots=True)
class Built:
    pass


@dataclass(frozen=True, slots=True)
class Signed:
    pass


@dataclass(frozen=True, slots=True)
class Sent:
    pass


@dataclass(frozen=True, slots=True)
class Confirmed:
    pass


@dataclass(frozen=True, slots=True)
class Errored:
    error: TradeError


SubmitEvent = Union[Built, Signed, Sent, Confirmed, Errored]


@dataclass(frozen=True, slots=True)
class SubmitMachine:
    """Position of one trade in the submission lifecycle.

    ``max_attempts`` of zero is treated as a single attempt.
    """

    state: SubmitState = SubmitState.BUILDING
    attempt: int = 0
    max_attempts: int = 1
    last_error: Optional[TradeError] = None

    @property
    def attempt_ceiling(self) -> int:
        return max(self.max_attempts, 1)

    @property
    def terminal(self) -> bool:
        return self.state in TERMINAL_STATES


_FORWARD = {
    (SubmitState.BUILDING, Built): SubmitState.BUILDING,
    (SubmitState.BUILDING, Signed): SubmitState.SIGNED,
    (SubmitState.SIGNED, Sent): SubmitState.SENT,
    (SubmitState.SENT, Confirmed): SubmitState.CONFIRMED,
}


def step(machine: SubmitMachine, event: SubmitEvent) -> SubmitMachine:
    """Pure transition function; raises ``ValueError`` on an illegal event."""

    if machine.terminal:
        raise ValueError(f"{machine.state.value} is terminal; got {type(event).__name__}")
    if isinstance(event, Errored):
        error = event.error
        if not error.retryable:
            return replace(machine, state=SubmitState.FAILED, last_error=error)
        if machine.attempt + 1 < machine.attempt_ceiling:
            return replace(
                machine,
                state=SubmitState.BUILDING,
                attempt=machine.attempt + 1,
                last_error=error,
            )
        return replace(machine, state=SubmitState.EXHAUSTED, last_error=error)
    target = _FORWARD.get((machine.state, type(event)))
    if target is None:
        raise ValueError(f"{type(event).__name__} is not valid in state {machine.state.value}")
    return replace(machine, state=target)


@dataclass(frozen=True, slots=True)
class AttemptContext:
    """Per-attempt parameters handed to the plan function."""

    index: int
    slippage: float
    priority_fee: int


@dataclass(slots=True)
class PlannedSwap:
    instructions: List[Instruction]
    expected_out: int
    min_out: int


PlanFn = Callable[[AttemptContext], PlannedSwap]


class SubmitRpc(Protocol):
    async def get_latest_blockhash(self) -> Tuple[Hash, int]:
        ...

    async def send_transaction(self, transaction: VersionedTransaction) -> str:
        ...

    async def confirm_transaction(self, signature: str, last_valid_block_height: int) -> None:
        ...


def sign_instructions(payer: Keypair, instructions: Sequence[Instruction], blockhash: Hash) -> VersionedTransaction:
    message = Message.new_with_blockhash(list(instructions), payer.pubkey(), blockhash)
    return VersionedTransaction(message, [payer])


@dataclass(slots=True)
class SubmissionReport:
    result: TradeResult
    attempts: List[TradeAttempt] = field(default_factory=list)


class RetryingSubmitter:
    """Drives ``SubmitMachine`` against the network.

    Every failure is classified and fed back as an ``Errored`` event, so
    ``submit`` always returns a ``TradeResult`` and never raises.
    """

    def __init__(
        self,
        rpc: SubmitRpc,
        *,
        dry_run: bool = False,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._rpc = rpc
        self._dry_run = dry_run
        self._sleep = sleep
        self._logger = get_logger(__name__)

    async def submit(
        self,
        request: TradeRequest,
        plan_fn: PlanFn,
        config: UnifiedTradeConfig,
        *,
        venue: Venue,
        slippage: float,
    ) -> TradeResult:
        report = await self.submit_with_report(request, plan_fn, config, venue=venue, slippage=slippage)
        return report.result

    async def submit_with_report(
        self,
        request: TradeRequest,
        plan_fn: PlanFn,
        config: UnifiedTradeConfig,
        *,
        venue: Venue,
        slippage: float,
    ) -> SubmissionReport:
        machine = SubmitMachine(max_attempts=config.retry.max_attempts)
        report = SubmissionReport(result=TradeResult(success=False, venue=venue))
        METRICS.increment("trades_submitted", venue=venue.value)

        while not machine.terminal:
            if machine.attempt > 0:
                METRICS.increment("trade_retries")
                await self._sleep(config.retry.delay_ms / 1000)
            attempt = TradeAttempt(
                index=machine.attempt,
                slippage=retry_slippage(slippage, machine.attempt, config),
                expected_out=0,
                min_out=0,
                priority_fee=fee_for_attempt(machine.attempt, config),
            )
            report.attempts.append(attempt)
            METRICS.increment("trade_attempts")
            METRICS.observe("priority_fee_microlamports", attempt.priority_fee)
            try:
                machine = await self._run_attempt(machine, request, plan_fn, attempt)
            except Exception as exc:  # noqa: BLE001
                error = classify_error(exc)
                attempt.outcome = AttemptOutcome.FAILED
                attempt.reason = error.reason
                machine = step(machine, Errored(error))
                self._logger.warning(
                    "Attempt %d on %s failed: %s",
                    attempt.index + 1,
                    venue.value,
                    error.reason,
                    extra={"error_kind": error.kind, "retryable": error.retryable},
                )
                continue
            if self._dry_run and machine.state == SubmitState.SIGNED:
                attempt.outcome = AttemptOutcome.SUCCESS
                break

        report.result = self._result(machine, venue, report.attempts)
        return report

    async def _run_attempt(
        self,
        machine: SubmitMachine,
        request: TradeRequest,
        plan_fn: PlanFn,
        attempt: TradeAttempt,
    ) -> SubmitMachine:
        blockhash, last_valid_block_height = await self._rpc.get_latest_blockhash()
        planned = plan_fn(
            AttemptContext(index=attempt.index, slippage=attempt.slippage, priority_fee=attempt.priority_fee)
        )
        attempt.instructions = list(planned.instructions)
        attempt.expected_out = planned.expected_out
        attempt.min_out = planned.min_out
        machine = step(machine, Built())

        transaction = sign_instructions(request.payer, attempt.instructions, blockhash)
        attempt.signature = str(transaction.signatures[0])
        machine = step(machine, Signed())
        if self._dry_run:
            self._logger.info("Dry run: signed %s without sending", attempt.signature)
            return machine

        signature = await self._rpc.send_transaction(transaction)
        attempt.signature = signature
        machine = step(machine, Sent())
        self._logger.info("Sent attempt %d: %s", attempt.index + 1, signature)

        with METRICS.timer("confirm_seconds"):
            await self._rpc.confirm_transaction(signature, last_valid_block_height)
        attempt.outcome = AttemptOutcome.SUCCESS
        return step(machine, Confirmed())

    def _result(self, machine: SubmitMachine, venue: Venue, attempts: List[TradeAttempt]) -> TradeResult:
        count = len(attempts)
        last = attempts[-1] if attempts else None
        if machine.state in (SubmitState.CONFIRMED, SubmitState.SIGNED) and last is not None:
            METRICS.increment("trades_confirmed", venue=venue.value)
            return TradeResult.ok(
                venue,
                last.signature or "",
                last.expected_out,
                count,
                dry_run=machine.state == SubmitState.SIGNED,
            )
        METRICS.increment("trades_failed", venue=venue.value)
        error = machine.last_error
        if machine.state == SubmitState.EXHAUSTED:
            error = AttemptsExhausted(count, machine.last_error)
        if error is None:
            raise ValueError(f"{machine.state.value} finished without a recorded error")
        return TradeResult.failure(venue, error, count)


__all__ = [
    "AttemptContext",
    "Built",
    "Confirmed",
    "Errored",
    "PlanFn",
    "PlannedSwap",
    "RetryingSubmitter",
    "Sent",
    "Signed",
    "SubmissionReport",
    "SubmitMachine",
    "SubmitState",
    "TERMINAL_STATES",
    "sign_instructions",
    "step",
]
