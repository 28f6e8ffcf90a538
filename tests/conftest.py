from __future__ import annotations

import os

import pytest


_ISOLATED_ENV_VARS = (
    "AUTOTRADER_TICK_SECONDS",
    "AUTOTRADER_FX_REFRESH_SECONDS",
    "AUTOTRADER_FX_DEFAULT_RATE",
    "AUTOTRADER_FEE_RATE",
    "AUTOTRADER_LOG_LEVEL",
    "ALPHAVANTAGE_KEY",
    "COINGECKO_API_BASE",
    "ALPHAVANTAGE_API_BASE",
    "FX_API_BASE",
    "HTTP_TIMEOUT_SECONDS",
    "HOST",
    "PORT",
)

_PREVIOUS_ENV: dict[str, str | None] = {}


def pytest_configure(config: pytest.Config) -> None:
    """Run every test against default settings, whatever the shell exports."""
    global _PREVIOUS_ENV
    _PREVIOUS_ENV = {key: os.environ.get(key) for key in _ISOLATED_ENV_VARS}
    for key in _ISOLATED_ENV_VARS:
        os.environ.pop(key, None)


def pytest_unconfigure(config: pytest.Config) -> None:
    for key, value in _PREVIOUS_ENV.items():
        if value is None:
            os.environ.pop(key, None)
        else:
            os.environ[key] = value
