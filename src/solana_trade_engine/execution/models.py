"""Request, attempt and result records passed between engine components."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence

from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from ..config.trade import TradeConfigOverride, Venue
from .errors import TradeError


class TradeSide(str, Enum):
    BUY = "buy"
    SELL = "sell"


class AttemptOutcome(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


@dataclass(slots=True)
class TradeRequest:
    """One wallet's intent to trade one mint.

    ``amount`` is lamports for buys and token base units for sells. The
    keypair is only borrowed for signing and is never logged or stored.
    """

    mint: Pubkey
    payer: Keypair = field(repr=False)
    side: TradeSide
    amount: int
    slippage_override: Optional[float] = None
    venue: Optional[Venue] = None
    overrides: Optional[TradeConfigOverride] = None
    label: Optional[str] = None

    @property
    def owner(self) -> Pubkey:
        return self.payer.pubkey()


@dataclass(slots=True)
class TradeAttempt:
    """Ephemeral record of a single build/sign/send/confirm pass."""

    index: int
    slippage: float
    expected_out: int
    min_out: int
    priority_fee: int
    instructions: List[Instruction] = field(default_factory=list)
    outcome: AttemptOutcome = AttemptOutcome.PENDING
    reason: Optional[str] = None
    signature: Optional[str] = None


@dataclass(slots=True)
class TradeResult:
    success: bool
    venue: Venue
    signature: Optional[str] = None
    amount_out: int = 0
    error_kind: Optional[str] = None
    reason: Optional[str] = None
    attempts: int = 0
    dry_run: bool = False

    @classmethod
    def ok(
        cls,
        venue: Venue,
        signature: str,
        amount_out: int,
        attempts: int,
        *,
        dry_run: bool = False,
    ) -> "TradeResult":
        return cls(
            success=True,
            venue=venue,
            signature=signature,
            amount_out=amount_out,
            attempts=attempts,
            dry_run=dry_run,
        )

    @classmethod
    def failure(cls, venue: Venue, error: TradeError, attempts: int = 0) -> "TradeResult":
        return cls(
            success=False,
            venue=venue,
            error_kind=error.kind,
            reason=error.reason,
            attempts=attempts,
        )


@dataclass(slots=True)
class WalletAllocation:
    """A wallet's share of a coordinated trade."""

    payer: Keypair = field(repr=False)
    amount: int
    balance: int
    label: Optional[str] = None

    @property
    def owner(self) -> Pubkey:
        return self.payer.pubkey()


@dataclass(slots=True)
class SkippedWallet:
    owner: Pubkey
    balance: int
    reason: str


@dataclass(slots=True)
class MultiWalletPlan:
    """Ordered allocations, consumed front to back without re-ordering."""

    entries: List[WalletAllocation] = field(default_factory=list)
    skipped: List[SkippedWallet] = field(default_factory=list)

    @property
    def total(self) -> int:
        return sum(entry.amount for entry in self.entries)


@dataclass(slots=True)
class WalletOutcome:
    owner: Pubkey
    amount: int
    result: Optional[TradeResult] = None
    reason: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.result is not None and self.result.success


@dataclass(slots=True)
class MultiWalletResult:
    success_count: int
    failure_count: int
    results: List[WalletOutcome]

    @property
    def is_partial(self) -> bool:
        return self.success_count > 0 and self.failure_count > 0

    @classmethod
    def from_outcomes(cls, outcomes: Sequence[WalletOutcome]) -> "MultiWalletResult":
        succeeded = sum(1 for outcome in outcomes if outcome.success)
        return cls(
            success_count=succeeded,
            failure_count=len(outcomes) - succeeded,
            results=list(outcomes),
        )


__all__ = [
    "AttemptOutcome",
    "MultiWalletPlan",
    "MultiWalletResult",
    "SkippedWallet",
    "TradeAttempt",
    "TradeRequest",
    "TradeResult",
    "TradeSide",
    "WalletAllocation",
    "WalletOutcome",
]
