"""Leaseguard core: configuration and shared settings."""

from leaseguard.core.config import (
    LeaseguardConfig,
    MonitoringConfig,
    OrchestrationConfig,
    StoreConfig,
)

__all__ = [
    "LeaseguardConfig",
    "MonitoringConfig",
    "OrchestrationConfig",
    "StoreConfig",
]
