"""Environment-driven service configuration.

Every setting has a default so the service starts with no environment at
all; only stock quotes need ``ALPHAVANTAGE_KEY``.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Mapping, Optional

from .fx import DEFAULT_FX_API_BASE
from .paper.fill_engine import DEFAULT_FEE_RATE
from .quotes import DEFAULT_ALPHAVANTAGE_API_BASE, DEFAULT_COINGECKO_API_BASE
from .stream.broadcast import DEFAULT_PERIOD_SECONDS


class ConfigError(ValueError):
    """Raised when an environment variable holds an unusable value."""


def _get_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from exc
    if value <= 0:
        raise ConfigError(f"{name} must be positive, got {raw!r}")
    return value


def _get_decimal(env: Mapping[str, str], name: str, default: Decimal) -> Decimal:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = Decimal(raw.strip())
    except InvalidOperation as exc:
        raise ConfigError(f"{name} must be a decimal, got {raw!r}") from exc
    if not value.is_finite() or value < 0:
        raise ConfigError(f"{name} must be a non-negative decimal, got {raw!r}")
    return value


def _get_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from exc


@dataclass(frozen=True)
class AppConfig:
    tick_seconds: float = DEFAULT_PERIOD_SECONDS
    fx_refresh_seconds: float = 60.0
    fx_default_rate: Decimal = Decimal("83.0")
    fee_rate: Decimal = DEFAULT_FEE_RATE
    alphavantage_key: str = ""
    coingecko_api_base: str = DEFAULT_COINGECKO_API_BASE
    alphavantage_api_base: str = DEFAULT_ALPHAVANTAGE_API_BASE
    fx_api_base: str = DEFAULT_FX_API_BASE
    http_timeout_seconds: float = 10.0
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 8080

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "AppConfig":
        env = os.environ if env is None else env
        return cls(
            tick_seconds=_get_float(env, "AUTOTRADER_TICK_SECONDS", DEFAULT_PERIOD_SECONDS),
            fx_refresh_seconds=_get_float(env, "AUTOTRADER_FX_REFRESH_SECONDS", 60.0),
            fx_default_rate=_get_decimal(env, "AUTOTRADER_FX_DEFAULT_RATE", Decimal("83.0")),
            fee_rate=_get_decimal(env, "AUTOTRADER_FEE_RATE", DEFAULT_FEE_RATE),
            alphavantage_key=env.get("ALPHAVANTAGE_KEY", "").strip(),
            coingecko_api_base=env.get("COINGECKO_API_BASE", DEFAULT_COINGECKO_API_BASE),
            alphavantage_api_base=env.get("ALPHAVANTAGE_API_BASE", DEFAULT_ALPHAVANTAGE_API_BASE),
            fx_api_base=env.get("FX_API_BASE", DEFAULT_FX_API_BASE),
            http_timeout_seconds=_get_float(env, "HTTP_TIMEOUT_SECONDS", 10.0),
            log_level=env.get("AUTOTRADER_LOG_LEVEL", "INFO").upper(),
            host=env.get("HOST", "0.0.0.0"),
            port=_get_int(env, "PORT", 8080),
        )
