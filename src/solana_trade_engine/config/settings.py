"""Application configuration for the trade execution engine."""

from __future__ import annotations

import os
import tomllib
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple, cast

from pydantic import AnyHttpUrl, BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .trade import (
    TradeConfigOverride,
    TradePreset,
    UnifiedTradeConfig,
    Venue,
    build_trade_config,
)

DEFAULT_CONFIG_FILE = Path("config/engine.toml")
CONFIG_FILE_ENV_VAR = "APP_CONFIG_FILE"
MODE_ENV_VAR = "ENGINE_MODE"


class AppMode(str, Enum):
    """Supported runtime modes."""

    DRY_RUN = "dry_run"
    LIVE = "live"


def _resolve_config_path() -> Path:
    env_value = os.getenv(CONFIG_FILE_ENV_VAR)
    if env_value:
        candidate = Path(env_value)
        if not candidate.is_absolute():
            candidate = Path.cwd() / candidate
        return candidate
    return Path.cwd() / DEFAULT_CONFIG_FILE


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    result: Dict[str, Any] = {**base}
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(cast(Dict[str, Any], result[key]), value)
        else:
            result[key] = value
    return result


def _select_profile(data: Dict[str, Any]) -> Dict[str, Any]:
    if not data:
        return {}
    base_section = cast(Dict[str, Any], data.get("default", {}))
    requested_mode = os.getenv(MODE_ENV_VAR)
    if not requested_mode:
        mode_section = base_section.get("mode")
        if isinstance(mode_section, dict):
            requested_mode = cast(str, mode_section.get("active", AppMode.DRY_RUN.value))
        elif isinstance(mode_section, str):
            requested_mode = mode_section
    requested_mode = (requested_mode or AppMode.DRY_RUN.value).lower()

    if requested_mode in data and requested_mode != "default":
        return _deep_merge(base_section, cast(Dict[str, Any], data[requested_mode]))
    if base_section:
        return base_section
    return data


def _load_toml_config() -> Tuple[Dict[str, Any], Optional[Path]]:
    path = _resolve_config_path()
    if not path.exists():
        return {}, None
    with path.open("rb") as handle:
        payload = tomllib.load(handle)
    if not isinstance(payload, dict):
        return {}, path
    merged = dict(_select_profile(payload))
    mode_section = merged.get("mode")
    if isinstance(mode_section, dict):
        mode_section = dict(mode_section)
        mode_section.setdefault("config_file", str(path))
        merged["mode"] = mode_section
    else:
        merged["mode"] = {"config_file": str(path)}
    return merged, path


class RPCConfig(BaseModel):
    """RPC configuration for Solana endpoints."""

    primary_url: AnyHttpUrl = Field(default="https://api.mainnet-beta.solana.com")
    fallback_urls: List[AnyHttpUrl] = Field(default_factory=list)
    request_timeout: float = Field(default=12.0, ge=1.0, le=60.0)
    commitment: str = Field(default="confirmed")
    skip_preflight: bool = True
    confirm_timeout_seconds: float = Field(default=30.0, ge=1.0, le=180.0)
    confirm_poll_seconds: float = Field(default=0.5, ge=0.05, le=10.0)
    read_retry_attempts: int = Field(default=3, ge=1, le=10)

    @field_validator("fallback_urls", mode="before")
    @classmethod
    def _unique_urls(cls, value: Iterable[AnyHttpUrl]) -> List[AnyHttpUrl]:
        if isinstance(value, str):
            value = [item.strip() for item in value.split(",") if item.strip()]
        seen: set[str] = set()
        unique: List[AnyHttpUrl] = []
        for url in value:
            if str(url) not in seen:
                unique.append(url)
                seen.add(str(url))
        return unique


class ModeConfig(BaseModel):
    """Runtime mode."""

    active: AppMode = Field(default=AppMode.DRY_RUN)
    config_file: Optional[Path] = None


class TradeSection(BaseModel):
    """Process-wide trade defaults, refined per request."""

    preset: TradePreset = Field(default=TradePreset.BALANCED)
    overrides: TradeConfigOverride = Field(default_factory=TradeConfigOverride)
    venue_overrides: Dict[Venue, TradeConfigOverride] = Field(default_factory=dict)


class ExecutionConfig(BaseModel):
    """Pool resolution and post-trade behaviour."""

    pool_cache_ttl_seconds: int = Field(default=300, ge=0)
    pool_cache_size: int = Field(default=1_024, ge=1)
    detection_order: List[Venue] = Field(
        default_factory=lambda: [
            Venue.BONDING_CURVE_A,
            Venue.AMM_A,
            Venue.BONDING_CURVE_B,
            Venue.CPMM_GENERIC,
            Venue.METEORA,
            Venue.HEAVEN,
        ]
    )
    collect_fees: bool = True

    @field_validator("detection_order")
    @classmethod
    def _no_unknown(cls, value: List[Venue]) -> List[Venue]:
        ordered: List[Venue] = []
        for venue in value:
            if venue != Venue.UNKNOWN and venue not in ordered:
                ordered.append(venue)
        return ordered


class CoordinatorConfig(BaseModel):
    """Multi-wallet fan-out settings."""

    tx_fee_reserve_lamports: int = Field(default=16_000_000, ge=0)
    ata_reserve_lamports: int = Field(default=2_000_000, ge=0)
    venue_reserve_lamports: Dict[Venue, int] = Field(default_factory=dict)
    min_delay_ms: int = Field(default=150, ge=0)
    max_delay_ms: int = Field(default=220, ge=0)

    @model_validator(mode="after")
    def _ordered_delays(self) -> "CoordinatorConfig":
        if self.max_delay_ms < self.min_delay_ms:
            raise ValueError("max_delay_ms must be greater than or equal to min_delay_ms")
        return self

    def fee_reserve_lamports(self, venue: Optional[Venue] = None) -> int:
        if venue is not None and venue in self.venue_reserve_lamports:
            return self.venue_reserve_lamports[venue]
        return self.tx_fee_reserve_lamports + self.ata_reserve_lamports


class WalletConfig(BaseModel):
    """Wallet and signer configuration."""

    private_key: Optional[str] = None
    keypair_path: Optional[Path] = None
    extra_private_keys: List[str] = Field(default_factory=list)


class MonitoringConfig(BaseModel):
    """Logging configuration."""

    log_level: str = Field(default="INFO")


class AppConfig(BaseSettings):
    """Aggregated application configuration."""

    mode: ModeConfig = Field(default_factory=ModeConfig)
    rpc: RPCConfig = Field(default_factory=RPCConfig)
    trade: TradeSection = Field(default_factory=TradeSection)
    execution: ExecutionConfig = Field(default_factory=ExecutionConfig)
    coordinator: CoordinatorConfig = Field(default_factory=CoordinatorConfig)
    wallet: WalletConfig = Field(default_factory=WalletConfig)
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        def file_settings(_: Optional[BaseSettings] = None) -> Dict[str, Any]:
            payload, _ = _load_toml_config()
            return payload

        # Ensure runtime environment variables win over static config file defaults.
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            file_settings,
            file_secret_settings,
        )

    @model_validator(mode="after")
    def _apply_mode_override(self) -> "AppConfig":
        requested = os.getenv(MODE_ENV_VAR)
        if requested:
            self.mode.active = AppMode(requested.lower())
        return self

    @property
    def dry_run(self) -> bool:
        return self.mode.active == AppMode.DRY_RUN

    def trade_config(
        self,
        overrides: Optional[TradeConfigOverride] = None,
        *,
        venue: Optional[Venue] = None,
        preset: Optional[TradePreset] = None,
    ) -> UnifiedTradeConfig:
        """Build the per-request trade configuration from process defaults."""

        return build_trade_config(
            preset or self.trade.preset,
            self.trade.overrides,
            overrides,
            venue=venue,
            venue_overrides=self.trade.venue_overrides,
        )


@lru_cache(maxsize=1)
def get_app_config() -> AppConfig:
    """Create a cached application configuration object."""

    return AppConfig()


__all__ = [
    "AppConfig",
    "AppMode",
    "CoordinatorConfig",
    "ExecutionConfig",
    "ModeConfig",
    "MonitoringConfig",
    "RPCConfig",
    "TradeSection",
    "WalletConfig",
    "get_app_config",
]
