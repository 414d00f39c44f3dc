"""Shared interface and the common WSOL swap flow for venue builders."""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar, List, Optional, Protocol, Sequence

from solders.instruction import Instruction
from solders.pubkey import Pubkey

from ...config.trade import Venue
from ...utils.constants import TOKEN_PROGRAM_ID, WSOL_MINT
from ..errors import InvalidAmount
from ..fees import TradeFees
from ..instructions import close_wsol, compute_budget, create_ata, fee_transfers, unpack_swap_data, wrap_sol
from ..models import TradeSide
from ..pools.base import PoolState


@dataclass(frozen=True, slots=True)
class SwapArgs:
    """Fields recovered from a built swap instruction, in input/output terms."""

    discriminator: bytes
    amount_in: int
    min_out: int


class VenueBuilder(Protocol):
    """Protocol implemented by every venue's transaction builder."""

    venue: Venue
    program_id: Pubkey

    def build(
        self,
        pool: PoolState,
        owner: Pubkey,
        side: TradeSide,
        amount_in: int,
        min_out: int,
        priority_fee: int,
        fees: TradeFees,
    ) -> List[Instruction]:
        """Return the full instruction list for one attempt; performs no I/O."""

    def decode(self, instruction: Instruction) -> SwapArgs:
        """Parse this venue's swap instruction back into its amounts."""


def validate_amounts(amount_in: int, min_out: int) -> None:
    if amount_in <= 0:
        raise InvalidAmount(f"amount_in must be positive, got {amount_in}")
    if min_out < 0:
        raise InvalidAmount(f"min_out must be non-negative, got {min_out}")


class SwapBuilder:
    """Builder for venues that settle the SOL leg in wrapped SOL.

    Buys wrap ``amount_in`` lamports, swap, then close the WSOL account.
    Sells open the WSOL account, swap, pay fees out of the WSOL proceeds and
    close it, which unwraps the remainder to the owner.
    """

    venue: ClassVar[Venue] = Venue.UNKNOWN
    program_id: ClassVar[Pubkey]
    buy_discriminator: ClassVar[bytes]
    sell_discriminator: ClassVar[bytes]
    compute_limit_buy: ClassVar[Optional[int]] = None
    compute_limit_sell: ClassVar[Optional[int]] = None
    data_fields: ClassVar[int] = 2
    # Buy instructions encode (amount_out, max_in) instead of (amount_in, min_out).
    exact_output_buy: ClassVar[bool] = False

    def swap_instruction(
        self, pool: PoolState, owner: Pubkey, side: TradeSide, amount_in: int, min_out: int
    ) -> Instruction:
        raise NotImplementedError

    def token_program(self, pool: PoolState) -> Pubkey:
        return TOKEN_PROGRAM_ID

    def build(
        self,
        pool: PoolState,
        owner: Pubkey,
        side: TradeSide,
        amount_in: int,
        min_out: int,
        priority_fee: int,
        fees: TradeFees,
    ) -> List[Instruction]:
        validate_amounts(amount_in, min_out)
        swap = self.swap_instruction(pool, owner, side, amount_in, min_out)
        if side == TradeSide.BUY:
            return [
                *compute_budget(priority_fee, self.compute_limit_buy),
                *wrap_sol(owner, amount_in),
                create_ata(owner, pool.token_mint, self.token_program(pool)),
                swap,
                close_wsol(owner),
            ]
        return [
            *compute_budget(priority_fee, self.compute_limit_sell),
            create_ata(owner, WSOL_MINT),
            swap,
            *fee_transfers(owner, fees.transfers(), wsol=True),
            close_wsol(owner),
        ]

    def decode(self, instruction: Instruction) -> SwapArgs:
        if instruction.program_id != self.program_id:
            raise ValueError(f"instruction is not for {self.venue.value}")
        discriminator, fields = unpack_swap_data(bytes(instruction.data), self.data_fields)
        if self.exact_output_buy and discriminator == self.buy_discriminator:
            return SwapArgs(discriminator=discriminator, amount_in=fields[1], min_out=fields[0])
        return SwapArgs(discriminator=discriminator, amount_in=fields[0], min_out=fields[1])

    def find_swap(self, instructions: Sequence[Instruction]) -> Instruction:
        for instruction in instructions:
            if instruction.program_id == self.program_id:
                return instruction
        raise ValueError(f"no {self.venue.value} swap instruction present")


__all__ = ["SwapArgs", "SwapBuilder", "VenueBuilder", "validate_amounts"]
