from __future__ import annotations

from collections import Counter
from pathlib import Path
from typing import Callable, Dict, Iterator, List, Optional, Sequence, Tuple

import pytest
from solders.hash import Hash
from solders.pubkey import Pubkey
from solders.transaction import VersionedTransaction

from solana_trade_engine.config import settings
from solana_trade_engine.execution.pools.pumpfun import BONDING_CURVE_DISCRIMINATOR, _CURVE_LAYOUT
from solana_trade_engine.execution.pools.pumpswap import POOL_DISCRIMINATOR
from solana_trade_engine.monitoring.metrics import METRICS
from solana_trade_engine.utils.constants import WSOL_MINT


class FakeRpc:
    """In-memory stand-in for ``SolanaClient`` that counts every call."""

    def __init__(self) -> None:
        self.calls: Counter = Counter()
        self.accounts: Dict[Pubkey, bytes] = {}
        self.program_accounts: Dict[Pubkey, List[Tuple[Pubkey, bytes]]] = {}
        self.token_balances: Dict[Pubkey, int] = {}
        self.balances: Dict[Pubkey, int] = {}
        self.sent: List[VersionedTransaction] = []
        self.send_errors: List[BaseException] = []
        self.confirm_errors: List[BaseException] = []
        self.read_errors: Dict[Pubkey, BaseException] = {}
        self.blockhash = Hash.default()

    def add_program_account(self, program_id: Pubkey, address: Pubkey, data: bytes) -> None:
        self.program_accounts.setdefault(program_id, []).append((address, data))
        self.accounts[address] = data

    async def get_program_accounts(
        self,
        program_id: Pubkey,
        memcmp: Sequence[Tuple[int, Pubkey]] = (),
        *,
        data_size: Optional[int] = None,
    ) -> List[Tuple[Pubkey, bytes]]:
        self.calls["get_program_accounts"] += 1
        matches = []
        for address, data in self.program_accounts.get(program_id, []):
            if data_size is not None and len(data) != data_size:
                continue
            if all(data[offset : offset + 32] == bytes(key) for offset, key in memcmp):
                matches.append((address, data))
        return matches

    async def get_account_data(self, address: Pubkey) -> Optional[bytes]:
        self.calls["get_account_data"] += 1
        return self.accounts.get(address)

    async def get_token_account_balance(self, address: Pubkey) -> int:
        self.calls["get_token_account_balance"] += 1
        return self.token_balances.get(address, 0)

    async def get_token_balance(self, token_account: Pubkey) -> int:
        self.calls["get_token_balance"] += 1
        if token_account in self.read_errors:
            raise self.read_errors[token_account]
        return self.token_balances.get(token_account, 0)

    async def get_balance(self, owner: Pubkey) -> int:
        self.calls["get_balance"] += 1
        if owner in self.read_errors:
            raise self.read_errors[owner]
        return self.balances.get(owner, 0)

    async def get_latest_blockhash(self) -> Tuple[Hash, int]:
        self.calls["get_latest_blockhash"] += 1
        return self.blockhash, 1_000

    async def send_transaction(self, transaction: VersionedTransaction) -> str:
        self.calls["send_transaction"] += 1
        if self.send_errors:
            raise self.send_errors.pop(0)
        self.sent.append(transaction)
        return str(transaction.signatures[0])

    async def confirm_transaction(self, signature: str, last_valid_block_height: int) -> None:
        self.calls["confirm_transaction"] += 1
        if self.confirm_errors:
            raise self.confirm_errors.pop(0)


def pumpswap_pool_data(
    base_mint: Pubkey,
    base_vault: Pubkey,
    quote_vault: Pubkey,
    quote_mint: Pubkey = WSOL_MINT,
    coin_creator: Optional[Pubkey] = None,
) -> bytes:
    creator = Pubkey.new_unique()
    return (
        POOL_DISCRIMINATOR
        + bytes([255])
        + (0).to_bytes(2, "little")
        + bytes(creator)
        + bytes(base_mint)
        + bytes(quote_mint)
        + bytes(Pubkey.new_unique())
        + bytes(base_vault)
        + bytes(quote_vault)
        + (1_000_000).to_bytes(8, "little")
        + bytes(coin_creator or creator)
    )


def bonding_curve_data(
    virtual_token: int = 1_073_000_000_000_000,
    virtual_sol: int = 30_000_000_000,
    real_token: int = 793_100_000_000_000,
    real_sol: int = 0,
    complete: bool = False,
    creator: Optional[Pubkey] = None,
) -> bytes:
    packed = _CURVE_LAYOUT.pack(
        BONDING_CURVE_DISCRIMINATOR,
        virtual_token,
        virtual_sol,
        real_token,
        real_sol,
        1_000_000_000_000_000,
        complete,
    )
    return packed + bytes(creator or Pubkey.new_unique())


@pytest.fixture
def fake_rpc() -> FakeRpc:
    return FakeRpc()


@pytest.fixture
def pumpswap_data() -> Callable[..., bytes]:
    return pumpswap_pool_data


@pytest.fixture
def curve_data() -> Callable[..., bytes]:
    return bonding_curve_data


@pytest.fixture(autouse=True)
def _isolated_config(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Iterator[None]:
    monkeypatch.setenv("APP_CONFIG_FILE", str(tmp_path / "missing.toml"))
    monkeypatch.delenv("ENGINE_MODE", raising=False)
    settings.get_app_config.cache_clear()
    METRICS.reset()
    yield
    settings.get_app_config.cache_clear()
