"""Instruction helpers shared by the venue builders."""

from __future__ import annotations

import struct
from typing import List, Optional, Sequence, Tuple

from solders.compute_budget import set_compute_unit_limit, set_compute_unit_price
from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey
from solders.system_program import TransferParams as SystemTransferParams
from solders.system_program import transfer as system_transfer
from spl.token.instructions import (
    CloseAccountParams,
    SyncNativeParams,
    TransferParams,
    close_account,
    create_idempotent_associated_token_account,
    get_associated_token_address,
    sync_native,
    transfer,
)

from ..utils.constants import TOKEN_PROGRAM_ID, WSOL_MINT

DISCRIMINATOR_SIZE = 8


def meta(pubkey: Pubkey, *, signer: bool = False, writable: bool = False) -> AccountMeta:
    return AccountMeta(pubkey=pubkey, is_signer=signer, is_writable=writable)


def pack_swap_data(discriminator: bytes, *amounts: int) -> bytes:
    return discriminator + b"".join(struct.pack("<Q", amount) for amount in amounts)


def unpack_swap_data(data: bytes, count: int) -> Tuple[bytes, Tuple[int, ...]]:
    fields = struct.unpack_from(f"<{count}Q", data, DISCRIMINATOR_SIZE)
    return bytes(data[:DISCRIMINATOR_SIZE]), fields


def compute_budget(priority_fee: int, compute_limit: Optional[int] = None) -> List[Instruction]:
    """Compute-unit price first, then the optional unit limit."""

    instructions = [set_compute_unit_price(priority_fee)]
    if compute_limit is not None:
        instructions.append(set_compute_unit_limit(compute_limit))
    return instructions


def create_ata(
    payer: Pubkey,
    mint: Pubkey,
    token_program: Pubkey = TOKEN_PROGRAM_ID,
    owner: Optional[Pubkey] = None,
) -> Instruction:
    return create_idempotent_associated_token_account(payer, owner or payer, mint, token_program)


def wrap_sol(owner: Pubkey, lamports: int) -> List[Instruction]:
    """Create the owner's WSOL account, fund it and sync the native balance."""

    wsol_ata = get_associated_token_address(owner, WSOL_MINT)
    return [
        create_ata(owner, WSOL_MINT),
        system_transfer(SystemTransferParams(from_pubkey=owner, to_pubkey=wsol_ata, lamports=lamports)),
        sync_native(SyncNativeParams(program_id=TOKEN_PROGRAM_ID, account=wsol_ata)),
    ]


def close_wsol(owner: Pubkey) -> Instruction:
    return close_account(
        CloseAccountParams(
            program_id=TOKEN_PROGRAM_ID,
            account=get_associated_token_address(owner, WSOL_MINT),
            dest=owner,
            owner=owner,
        )
    )


def fee_transfers(owner: Pubkey, transfers: Sequence[Tuple[Pubkey, int]], *, wsol: bool) -> List[Instruction]:
    """Pay each ``(recipient, amount)`` from WSOL proceeds or from native lamports."""

    instructions: List[Instruction] = []
    source = get_associated_token_address(owner, WSOL_MINT)
    for recipient, amount in transfers:
        if not wsol:
            instructions.append(
                system_transfer(SystemTransferParams(from_pubkey=owner, to_pubkey=recipient, lamports=amount))
            )
            continue
        instructions.append(create_ata(owner, WSOL_MINT, owner=recipient))
        instructions.append(
            transfer(
                TransferParams(
                    program_id=TOKEN_PROGRAM_ID,
                    source=source,
                    dest=get_associated_token_address(recipient, WSOL_MINT),
                    owner=owner,
                    amount=amount,
                )
            )
        )
    return instructions


__all__ = [
    "close_wsol",
    "compute_budget",
    "create_ata",
    "fee_transfers",
    "meta",
    "pack_swap_data",
    "unpack_swap_data",
    "wrap_sol",
]
