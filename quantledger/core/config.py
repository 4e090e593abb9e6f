"""quantledger.core.config

Two config surfaces only:
1) `config/default.yaml`
2) Environment variables (`QUANTLEDGER_` prefix, `__` for nesting)

Everything else is derived.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings

from quantledger.core.exceptions import ConfigError


class BacktestConfig(BaseModel):
    initial_capital: Decimal = Decimal("10000")
    fee_rate: Decimal = Decimal("0.001")
    risk_free_rate: Decimal = Decimal("0")  # annualized
    omega_threshold: Decimal = Decimal("0")  # per bar
    trading_ratio: Decimal = Decimal("1")

    @field_validator("initial_capital")
    @classmethod
    def capital_must_be_positive(cls, v: Decimal) -> Decimal:
        if v <= 0:
            raise ValueError("initial_capital must be > 0")
        return v

    @field_validator("fee_rate")
    @classmethod
    def fee_rate_in_range(cls, v: Decimal) -> Decimal:
        if v < 0 or v >= 1:
            raise ValueError("fee_rate must be in [0, 1)")
        return v

    @field_validator("trading_ratio")
    @classmethod
    def trading_ratio_in_range(cls, v: Decimal) -> Decimal:
        if v <= 0 or v > 1:
            raise ValueError("trading_ratio must be in (0, 1]")
        return v


class StrategyConfig(BaseModel):
    short_period: int = 5
    long_period: int = 20

    @model_validator(mode="after")
    def periods_must_be_ordered(self) -> StrategyConfig:
        if self.short_period < 1:
            raise ValueError("short_period must be >= 1")
        if self.short_period >= self.long_period:
            raise ValueError(f"short_period must be < long_period, got {self.short_period} >= {self.long_period}")
        return self


class LoggingConfig(BaseModel):
    level: str = "INFO"
    json_output: bool = False

    @field_validator("level")
    @classmethod
    def level_must_be_known(cls, v: str) -> str:
        name = v.strip().upper()
        if name not in logging.getLevelNamesMapping():
            raise ValueError(f"unknown log level: {v!r}")
        return name


class Config(BaseSettings):
    """Root configuration. Single source of truth."""

    backtest: BacktestConfig = Field(default_factory=BacktestConfig)
    strategy: StrategyConfig = Field(default_factory=StrategyConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"env_prefix": "QUANTLEDGER_", "env_nested_delimiter": "__"}

    @classmethod
    def from_yaml(cls, path: Path) -> Config:
        if not path.exists():
            raise ConfigError(f"Config file not found: {path}")

        raw: Any = yaml.safe_load(path.read_text()) or {}
        if not isinstance(raw, dict):
            raise ConfigError(f"Config root must be a mapping: {path}")

        try:
            return cls(**raw)
        except ValidationError as e:
            raise ConfigError(f"Invalid config {path}: {e}") from e

    @classmethod
    def from_repo_defaults(cls, repo_root: Path | None = None) -> Config:
        root = repo_root or Path.cwd()
        return cls.from_yaml(root / "config" / "default.yaml")
