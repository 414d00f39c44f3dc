"""Error taxonomy for trade execution."""

from __future__ import annotations

import asyncio
from typing import Iterable, Optional

import httpx
from solana.exceptions import SolanaRpcException
from solana.rpc.core import RPCException


class TradeError(Exception):
    """Base class for failures surfaced by the engine."""

    retryable: bool = False
    kind: str = "trade_error"

    @property
    def reason(self) -> str:
        return str(self) or self.kind


class PoolNotFound(TradeError):
    kind = "pool_not_found"

    def __init__(self, mint: str, venue: Optional[str] = None) -> None:
        where = f" on {venue}" if venue else ""
        super().__init__(f"No pool found for {mint}{where}")
        self.mint = mint
        self.venue = venue


class CurveGraduated(PoolNotFound):
    """The bonding curve completed; the token now trades on its AMM."""

    kind = "curve_graduated"


class PoolEmpty(TradeError):
    kind = "pool_empty"


class InvalidSlippage(TradeError):
    kind = "invalid_slippage"


class InvalidAmount(TradeError):
    kind = "invalid_amount"


class InsufficientBalance(TradeError):
    kind = "insufficient_balance"


class VenueNotSupported(TradeError):
    kind = "venue_not_supported"


class ProgramError(TradeError):
    """On-chain program rejected the transaction."""

    retryable = True
    kind = "program_error"


class SlippageExceeded(ProgramError):
    kind = "slippage_exceeded"


class NetworkOrRpcError(TradeError):
    retryable = True
    kind = "network_error"


class AttemptsExhausted(TradeError):
    kind = "attempts_exhausted"

    def __init__(self, attempts: int, last_error: Optional[TradeError]) -> None:
        detail = last_error.reason if last_error is not None else "unknown error"
        super().__init__(f"Gave up after {attempts} attempt(s): {detail}")
        self.attempts = attempts
        self.last_error = last_error


class ConfigurationError(ValueError):
    """Raised when a trade configuration violates its invariants."""

    def __init__(self, errors: Iterable[object]) -> None:
        self.errors = list(errors)
        super().__init__("; ".join(str(error) for error in self.errors))


# Custom program error codes and log fragments emitted by slippage guards
# across the supported programs.
_SLIPPAGE_MARKERS = (
    "slippage",
    "toomuchsolrequired",
    "toolittlesolreceived",
    "exceededslippage",
    "0x1771",
    "0x1772",
    "0x1773",
    "0x1775",
)


def classify_error(exc: BaseException) -> TradeError:
    """Map an exception raised during submission onto the taxonomy."""

    if isinstance(exc, TradeError):
        return exc
    if isinstance(exc, RPCException):
        text = str(exc)
        if any(marker in text.lower() for marker in _SLIPPAGE_MARKERS):
            return SlippageExceeded(text)
        return ProgramError(text)
    if isinstance(exc, (SolanaRpcException, httpx.HTTPError, asyncio.TimeoutError, ConnectionError, OSError)):
        return NetworkOrRpcError(str(exc) or type(exc).__name__)
    return NetworkOrRpcError(f"{type(exc).__name__}: {exc}")


def classify_program_error(err: object) -> ProgramError:
    """Classify the ``err`` field of a confirmed-but-failed transaction status."""

    text = str(err)
    if any(marker in text.lower() for marker in _SLIPPAGE_MARKERS):
        return SlippageExceeded(text)
    # Custom codes are reported as decimals in transaction statuses.
    for code in ("6001", "6002", "6003", "6005"):
        if f"Custom({code})" in text or f"custom: {code}" in text.lower():
            return SlippageExceeded(text)
    return ProgramError(text)


__all__ = [
    "AttemptsExhausted",
    "ConfigurationError",
    "CurveGraduated",
    "InsufficientBalance",
    "InvalidAmount",
    "InvalidSlippage",
    "NetworkOrRpcError",
    "PoolEmpty",
    "PoolNotFound",
    "ProgramError",
    "SlippageExceeded",
    "TradeError",
    "VenueNotSupported",
    "classify_error",
    "classify_program_error",
]
