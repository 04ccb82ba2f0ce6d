"""
Leaseguard Configuration

Type-safe settings for the orchestration engine with:
- Environment-based configuration (LEASEGUARD_ prefix)
- Nested subsystem sections
- JSON file loading
"""

from __future__ import annotations

import json
from enum import Enum
from pathlib import Path
from typing import Any, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings


class LogLevel(str, Enum):
    """Logging levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class OrchestrationConfig(BaseModel):
    """Configuration for workflow orchestration."""
    default_approval_timeout_ms: int = 3_600_000  # 1 hour
    approval_requested_by: str = "orchestration_system"
    approver_recipients: List[str] = Field(default_factory=lambda: ["approvers"])
    admin_recipients: List[str] = Field(default_factory=lambda: ["admin"])
    notification_channels: List[str] = Field(default_factory=lambda: ["email", "teams"])
    default_ticket_assignee: str = "security-team"
    approval_poll_interval_ms: int = 5_000
    execution_list_limit: int = 100
    rollback_on_failure: bool = True


class StoreConfig(BaseModel):
    """Configuration for the document store."""
    backend: Literal["memory", "sqlite"] = "memory"
    path: Optional[Path] = None
    auto_persist: bool = True


class MonitoringConfig(BaseModel):
    """Configuration for logging."""
    log_level: LogLevel = LogLevel.INFO
    log_format: Literal["json", "text"] = "json"


class LeaseguardConfig(BaseSettings):
    """
    Main Leaseguard Configuration

    Loads configuration from environment variables and/or config files.
    Environment variables are prefixed with LEASEGUARD_
    (e.g., LEASEGUARD_MONITORING__LOG_LEVEL=DEBUG).
    """

    environment: Literal["development", "staging", "production"] = "development"

    orchestration: OrchestrationConfig = Field(default_factory=OrchestrationConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)

    data_dir: Path = Field(default=Path("./data"))

    model_config = {
        "env_prefix": "LEASEGUARD_",
        "env_nested_delimiter": "__",
        "case_sensitive": False,
    }

    @field_validator("data_dir", mode="before")
    @classmethod
    def ensure_path(cls, v: Any) -> Path:
        """Ensure value is converted to Path."""
        if isinstance(v, str):
            return Path(v)
        return v

    def store_path(self) -> Path:
        """Resolve where the document store keeps its data."""
        if self.store.path is not None:
            return self.store.path
        if self.store.backend == "sqlite":
            return self.data_dir / "leaseguard.db"
        return self.data_dir / "store"

    @classmethod
    def from_file(cls, config_path: Path) -> "LeaseguardConfig":
        """Load configuration from a JSON file."""
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")

        with open(config_path) as f:
            config_data = json.load(f)

        return cls(**config_data)

    def to_file(self, config_path: Path) -> None:
        """Save configuration to a JSON file."""
        config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, "w") as f:
            json.dump(self.model_dump(), f, indent=2, default=str)
