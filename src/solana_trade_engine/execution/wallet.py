"""Wallet helpers for loading signing keypairs."""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

import base58
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from ..config.settings import WalletConfig, get_app_config


@dataclass(slots=True)
class Wallet:
    """Wrapper around a Solana keypair; ``repr`` never shows the secret."""

    keypair: Keypair
    label: Optional[str] = None

    @property
    def public_key(self) -> Pubkey:
        return self.keypair.pubkey()

    def __repr__(self) -> str:
        return f"Wallet(label={self.label!r}, public_key={self.public_key})"


def keypair_from_base58(secret: str) -> Keypair:
    return Keypair.from_bytes(base58.b58decode(secret.strip()))


def keypair_from_file(path: Path) -> Keypair:
    with Path(path).expanduser().open("r", encoding="utf-8") as fh:
        data = json.load(fh)
    if not isinstance(data, list):
        raise ValueError(f"Keypair file {path} must contain a JSON array of bytes")
    return Keypair.from_bytes(bytes(data))


def load_wallet(config: Optional[WalletConfig] = None) -> Wallet:
    cfg = config or get_app_config().wallet
    if cfg.private_key:
        return Wallet(keypair=keypair_from_base58(cfg.private_key), label="primary")
    if cfg.keypair_path:
        return Wallet(keypair=keypair_from_file(cfg.keypair_path), label="primary")
    raise ValueError("Wallet configuration error - set WALLET__PRIVATE_KEY or WALLET__KEYPAIR_PATH")


def load_wallets(config: Optional[WalletConfig] = None) -> List[Wallet]:
    """Primary wallet followed by every extra key, deduplicated by address."""

    cfg = config or get_app_config().wallet
    wallets = [load_wallet(cfg)]
    seen = {wallets[0].public_key}
    for index, secret in enumerate(cfg.extra_private_keys, start=1):
        wallet = Wallet(keypair=keypair_from_base58(secret), label=f"extra-{index}")
        if wallet.public_key in seen:
            continue
        seen.add(wallet.public_key)
        wallets.append(wallet)
    return wallets


__all__ = ["Wallet", "keypair_from_base58", "keypair_from_file", "load_wallet", "load_wallets"]
