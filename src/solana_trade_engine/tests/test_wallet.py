from __future__ import annotations

import json

import base58
import pytest
from solders.keypair import Keypair

from solana_trade_engine.config.settings import WalletConfig
from solana_trade_engine.execution.wallet import Wallet, keypair_from_file, load_wallet, load_wallets


def test_load_wallet_from_base58() -> None:
    keypair = Keypair()
    wallet = load_wallet(WalletConfig(private_key=base58.b58encode(bytes(keypair)).decode()))

    assert wallet.public_key == keypair.pubkey()
    assert wallet.label == "primary"


def test_load_wallet_from_json_file(tmp_path) -> None:
    keypair = Keypair()
    path = tmp_path / "id.json"
    path.write_text(json.dumps(list(bytes(keypair))))

    assert keypair_from_file(path).pubkey() == keypair.pubkey()
    assert load_wallet(WalletConfig(keypair_path=path)).public_key == keypair.pubkey()


def test_extra_wallets_are_deduplicated() -> None:
    primary, extra = Keypair(), Keypair()
    encode = lambda kp: base58.b58encode(bytes(kp)).decode()  # noqa: E731
    config = WalletConfig(private_key=encode(primary), extra_private_keys=[encode(extra), encode(primary)])

    wallets = load_wallets(config)

    assert [wallet.public_key for wallet in wallets] == [primary.pubkey(), extra.pubkey()]
    assert wallets[1].label == "extra-1"


def test_missing_wallet_config_raises() -> None:
    with pytest.raises(ValueError):
        load_wallet(WalletConfig())


def test_repr_hides_secret() -> None:
    keypair = Keypair()
    text = repr(Wallet(keypair=keypair, label="main"))

    assert str(keypair.pubkey()) in text
    assert base58.b58encode(bytes(keypair)).decode() not in text
