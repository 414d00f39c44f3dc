"""Shared constants for Solana trade execution."""

from solders.pubkey import Pubkey
from solders.system_program import ID as SYSTEM_PROGRAM_ID
from spl.token.constants import ASSOCIATED_TOKEN_PROGRAM_ID, TOKEN_PROGRAM_ID, WRAPPED_SOL_MINT

LAMPORTS_PER_SOL = 1_000_000_000

WSOL_MINT: Pubkey = WRAPPED_SOL_MINT

# Fee destinations for platform and secondary (maestro) trade fees.
PLATFORM_FEE_WALLET = Pubkey.from_string("C1QL4i1Dbt69eNfMRoxc1VZLsu4MgtmVKucrBDPg4Pop")
MAESTRO_FEE_ACCOUNT = Pubkey.from_string("5L2QKqDn5ukJSWGyqR4RPvFvwnBabKWqAqMzH4heaQNB")

# Fee transfers below this many base units are skipped.
FEE_DUST_THRESHOLD = 1_000

__all__ = [
    "LAMPORTS_PER_SOL",
    "WSOL_MINT",
    "SYSTEM_PROGRAM_ID",
    "TOKEN_PROGRAM_ID",
    "ASSOCIATED_TOKEN_PROGRAM_ID",
    "PLATFORM_FEE_WALLET",
    "MAESTRO_FEE_ACCOUNT",
    "FEE_DUST_THRESHOLD",
]
