"""Configuration loading for bandwatch.

Settings live in a TOML file. The rule list has no built-in default: a
config without ``[[conditions]]`` is rejected before any scan starts.
E-mail credentials may come from the environment or a ``.env`` file.
"""

import os
from pathlib import Path
from typing import Literal, Optional

import toml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, model_validator

from bandwatch.conditions.definitions import (
    HOUR_MS,
    ConditionDefinition,
    OpenInterestTrendCondition,
)
from bandwatch.errors import ConfigurationError

DEFAULT_CONFIG_PATH = Path.home() / ".config" / "bandwatch" / "config.toml"
CONFIG_ENV_VAR = "BANDWATCH_CONFIG"

EMAIL_ENV = {
    "smtp_server": "EMAIL_SMTP_SERVER",
    "smtp_port": "EMAIL_SMTP_PORT",
    "username": "EMAIL_USERNAME",
    "password": "EMAIL_PASSWORD",
    "from_addr": "EMAIL_FROM",
    "to_addr": "EMAIL_TO",
}


class BinanceSettings(BaseModel):
    """Binance USDT-margined futures endpoint settings."""

    futures_base_url: str = Field(default="https://fapi.binance.com")
    request_timeout: float = Field(default=10.0, gt=0, description="Seconds per request")
    kline_limit: int = Field(default=1500, ge=1, le=1500, description="Max bars per request")

    model_config = {"frozen": True, "extra": "forbid"}


class CoinGeckoSettings(BaseModel):
    """CoinGecko market-cap ranking settings."""

    base_url: str = Field(default="https://api.coingecko.com/api/v3")
    top_n: int = Field(default=200, ge=1, description="Universe size")
    request_timeout: float = Field(default=15.0, gt=0)
    requests_per_minute: int = Field(default=30, ge=1)

    model_config = {"frozen": True, "extra": "forbid"}


class OpenInterestSettings(BaseModel):
    """Open interest history settings."""

    history_period: Literal["5m", "15m", "30m", "1h", "2h", "4h"] = Field(default="15m")
    retention_hours: float = Field(default=72.0, gt=0)

    model_config = {"frozen": True, "extra": "forbid"}


class ScanSettings(BaseModel):
    """Scan loop settings."""

    interval_minutes: int = Field(default=15, ge=1, description="Cycle cadence")
    workers: int = Field(default=5, ge=1, description="Concurrent instrument tasks")
    requests_per_minute: int = Field(default=300, ge=1, description="Outbound request budget")
    cycle_deadline_seconds: float = Field(default=600.0, gt=0)
    universe_refresh_cycles: int = Field(default=4, ge=1)
    heartbeat_cycles: int = Field(default=100, ge=0, description="0 disables heartbeats")

    model_config = {"frozen": True, "extra": "forbid"}

    @model_validator(mode="after")
    def _deadline_within_interval(self) -> "ScanSettings":
        if self.cycle_deadline_seconds > self.interval_minutes * 60:
            raise ValueError("cycle_deadline_seconds cannot exceed the scan interval")
        return self


class EmailSettings(BaseModel):
    """SMTP settings for e-mail alerts."""

    smtp_server: str = Field(default="smtp.163.com")
    smtp_port: int = Field(default=994, ge=1, le=65535)
    username: Optional[str] = None
    password: Optional[str] = None
    from_addr: Optional[str] = None
    to_addr: Optional[str] = None

    model_config = {"frozen": True, "extra": "forbid"}

    @model_validator(mode="after")
    def _credentials_all_or_nothing(self) -> "EmailSettings":
        credentials = {
            "username": self.username,
            "password": self.password,
            "from_addr": self.from_addr,
            "to_addr": self.to_addr,
        }
        missing = [name for name, value in credentials.items() if not value]
        if missing and len(missing) < len(credentials):
            raise ValueError(f"incomplete e-mail settings, missing {', '.join(missing)}")
        return self

    @property
    def enabled(self) -> bool:
        return all([self.username, self.password, self.from_addr, self.to_addr])


class Settings(BaseModel):
    """Complete bandwatch configuration."""

    rule_set_version: str = Field(default="1")
    binance: BinanceSettings = Field(default_factory=BinanceSettings)
    coingecko: CoinGeckoSettings = Field(default_factory=CoinGeckoSettings)
    open_interest: OpenInterestSettings = Field(default_factory=OpenInterestSettings)
    scan: ScanSettings = Field(default_factory=ScanSettings)
    email: EmailSettings = Field(default_factory=EmailSettings)
    conditions: list[ConditionDefinition] = Field(..., description="Ordered rule set")

    model_config = {"frozen": True, "extra": "forbid"}

    @model_validator(mode="after")
    def _unique_condition_ids(self) -> "Settings":
        seen = set()
        for condition in self.conditions:
            if condition.id in seen:
                raise ValueError(f"duplicate condition id '{condition.id}'")
            seen.add(condition.id)
        return self

    @property
    def oi_retention_ms(self) -> int:
        """Open interest retention, long enough for every OI condition."""
        windows = [
            c.window_ms for c in self.conditions if isinstance(c, OpenInterestTrendCondition)
        ]
        return max([int(self.open_interest.retention_hours * HOUR_MS), *windows])


def resolve_config_path(path: Optional[Path] = None) -> Path:
    """Explicit path, else $BANDWATCH_CONFIG, else the default location."""
    if path is not None:
        return Path(path)
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path)
    return DEFAULT_CONFIG_PATH


def _email_from_env(section: dict) -> dict:
    merged = dict(section)
    for field, var in EMAIL_ENV.items():
        value = os.environ.get(var)
        if value:
            merged[field] = value
    return merged


def _format_validation_error(error: ValidationError) -> str:
    lines = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"])
        lines.append(f"  {location}: {item['msg']}")
    return "\n".join(lines)


def parse_settings(data: dict) -> Settings:
    """Validate a raw config mapping.

    Raises:
        ConfigurationError: If the mapping is not a valid configuration.
    """
    if "conditions" not in data:
        raise ConfigurationError("No [[conditions]] configured; refusing to scan without rules")
    try:
        return Settings.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(
            f"Invalid configuration:\n{_format_validation_error(e)}"
        ) from e


def load_settings(path: Optional[Path] = None) -> Settings:
    """Load and validate settings from TOML.

    Args:
        path: Config file path; see ``resolve_config_path`` for fallbacks.

    Returns:
        Validated settings.

    Raises:
        ConfigurationError: If the file is missing, unreadable or invalid.
    """
    load_dotenv()
    config_path = resolve_config_path(path)

    if not config_path.exists():
        raise ConfigurationError(f"Configuration file not found: {config_path}")

    try:
        data = toml.load(config_path)
    except (toml.TomlDecodeError, OSError) as e:
        raise ConfigurationError(f"Cannot read {config_path}: {e}") from e

    data["email"] = _email_from_env(data.get("email", {}))
    return parse_settings(data)
