"""Logging and metrics shared by every engine component."""

from __future__ import annotations

from typing import Optional

from ..config.settings import AppConfig, get_app_config
from .logger import configure_logging, correlation_scope, get_logger, wallet_scope
from .metrics import METRICS, MetricsRegistry


def bootstrap_observability(*, config: Optional[AppConfig] = None) -> MetricsRegistry:
    """Install the JSON log handler and record the run mode as a gauge."""

    app_config = config or get_app_config()
    configure_logging(app_config.monitoring)
    METRICS.gauge("engine.dry_run", 1.0 if app_config.dry_run else 0.0)
    get_logger(__name__).info(
        "Observability ready",
        extra={"mode": app_config.mode.active.value, "log_level": app_config.monitoring.log_level},
    )
    return METRICS


__all__ = [
    "METRICS",
    "MetricsRegistry",
    "bootstrap_observability",
    "configure_logging",
    "correlation_scope",
    "get_logger",
    "wallet_scope",
]
