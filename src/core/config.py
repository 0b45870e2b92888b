from __future__ import annotations

import math
import os
import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Optional

from dotenv import load_dotenv

from src.core.errors import ConfigError


POLYGON_CHAIN_ID = 137

# Polygon mainnet defaults.
QUICKSWAP_ROUTER = "0xa5E0829CaCEd8fFDD4De3c43696c57F7D7A678ff"
SUSHISWAP_ROUTER = "0x1b02dA8Cb0d097eB8D57A175b88c7D8b47997506"
WETH_ADDRESS = "0x7ceB23fD6bC0adD59E62ac25578270cFf1b9f619"
USDC_ADDRESS = "0x2791Bca1f2de4661ED88A30C99A7a9449Aa84174"

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")


def _getenv_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _getenv_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        value = float(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from e
    if not math.isfinite(value):
        raise ConfigError(f"{name} must be finite, got {raw!r}")
    return value


def _getenv_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from e


def _getenv_decimal(name: str, default: str) -> Decimal:
    raw = os.getenv(name)
    if raw is None or raw == "":
        raw = default
    try:
        value = Decimal(raw.strip())
    except InvalidOperation as e:
        raise ConfigError(f"{name} must be a decimal number, got {raw!r}") from e
    if not value.is_finite():
        raise ConfigError(f"{name} must be finite, got {raw!r}")
    return value


@dataclass(frozen=True)
class MonitorConfig:
    """Startup configuration for the spread monitor, read from the environment."""

    rpc_url: str
    chain_id: int
    rpc_timeout_seconds: float

    quickswap_router: str
    sushiswap_router: str
    weth_address: str
    usdc_address: str

    trade_amount_wei: int
    min_profit_usdc: Decimal
    gas_estimate_usdc: Decimal
    quote_token_decimals: int

    check_interval_seconds: float

    database_url: str
    opportunity_log_path: str

    api_enabled: bool
    api_host: str
    api_port: int

    log_level: str
    log_dir: str
    mock_mode: bool

    @classmethod
    def load(cls, dotenv_path: Optional[str] = None) -> "MonitorConfig":
        load_dotenv(dotenv_path=dotenv_path)

        return cls(
            rpc_url=os.getenv("RPC_URL", ""),
            chain_id=_getenv_int("CHAIN_ID", POLYGON_CHAIN_ID),
            rpc_timeout_seconds=_getenv_float("RPC_TIMEOUT_SECONDS", 10.0),
            quickswap_router=os.getenv("QUICKSWAP_ROUTER", QUICKSWAP_ROUTER),
            sushiswap_router=os.getenv("SUSHISWAP_ROUTER", SUSHISWAP_ROUTER),
            weth_address=os.getenv("WETH_ADDRESS", WETH_ADDRESS),
            usdc_address=os.getenv("USDC_ADDRESS", USDC_ADDRESS),
            trade_amount_wei=_getenv_int("TRADE_AMOUNT_WEI", 10**18),
            min_profit_usdc=_getenv_decimal("MIN_PROFIT_USDC", "0.80"),
            gas_estimate_usdc=_getenv_decimal("GAS_ESTIMATE_USDC", "0.50"),
            quote_token_decimals=_getenv_int("QUOTE_TOKEN_DECIMALS", 6),
            check_interval_seconds=_getenv_float("CHECK_INTERVAL_SECONDS", 10.0),
            database_url=os.getenv("DATABASE_URL", "sqlite:///data/arbitrage.db"),
            opportunity_log_path=os.getenv("OPPORTUNITY_LOG_PATH", "arbitrage_opportunities.jsonl"),
            api_enabled=_getenv_bool("API_ENABLED", True),
            api_host=os.getenv("API_HOST", "127.0.0.1"),
            api_port=_getenv_int("API_PORT", 8081),
            log_level=os.getenv("LOG_LEVEL", "info"),
            log_dir=os.getenv("LOG_DIR", "logs"),
            mock_mode=_getenv_bool("MOCK_MODE", False),
        )

    def validate(self) -> None:
        if not self.mock_mode and not self.rpc_url:
            raise ConfigError("RPC_URL is required unless MOCK_MODE is enabled")
        if self.chain_id <= 0:
            raise ConfigError("CHAIN_ID must be > 0")
        if self.rpc_timeout_seconds <= 0:
            raise ConfigError("RPC_TIMEOUT_SECONDS must be > 0")

        for name, value in (
            ("QUICKSWAP_ROUTER", self.quickswap_router),
            ("SUSHISWAP_ROUTER", self.sushiswap_router),
            ("WETH_ADDRESS", self.weth_address),
            ("USDC_ADDRESS", self.usdc_address),
        ):
            if not _ADDRESS_RE.match(value):
                raise ConfigError(f"{name} is not a valid address: {value!r}")

        if self.quickswap_router.lower() == self.sushiswap_router.lower():
            raise ConfigError("QUICKSWAP_ROUTER and SUSHISWAP_ROUTER must differ")
        if self.trade_amount_wei <= 0:
            raise ConfigError("TRADE_AMOUNT_WEI must be > 0")
        if self.min_profit_usdc < 0:
            raise ConfigError("MIN_PROFIT_USDC must be >= 0")
        if self.gas_estimate_usdc < 0:
            raise ConfigError("GAS_ESTIMATE_USDC must be >= 0")
        if not (0 <= self.quote_token_decimals <= 36):
            raise ConfigError("QUOTE_TOKEN_DECIMALS must be between 0 and 36")
        if self.check_interval_seconds <= 0:
            raise ConfigError("CHECK_INTERVAL_SECONDS must be > 0")
        if not self.database_url:
            raise ConfigError("DATABASE_URL must not be empty")
        if not self.opportunity_log_path:
            raise ConfigError("OPPORTUNITY_LOG_PATH must not be empty")
        if not (0 < self.api_port < 65536):
            raise ConfigError("API_PORT must be between 1 and 65535")
        if self.log_level.strip().lower() not in {"debug", "info", "warning", "error"}:
            raise ConfigError("LOG_LEVEL must be one of debug, info, warning, error")
