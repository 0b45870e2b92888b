from __future__ import annotations

import asyncio
import os
import signal
import sys
from typing import Optional


if __package__ is None or __package__ == "":
    # Allow running via: python src/main.py
    sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from src.api.server import ApiServerThread, create_app
from src.connectors import chain
from src.connectors.router_price_source import RouterPriceSource
from src.core.config import MonitorConfig
from src.core.dual_fetcher import DualPriceFetcher
from src.core.errors import ArbitrageMonitorError, ConfigError
from src.core.opportunity_detector import DetectorConfig, OpportunityDetector
from src.logger.console_logger import ConsoleLogger
from src.logger.opportunity_journal import OpportunityJournal
from src.services.arbitrage_monitor import ArbitrageMonitorService
from src.storage.opportunity_store import OpportunityStore


def build_fetcher(cfg: MonitorConfig, logger: ConsoleLogger) -> DualPriceFetcher:
    w3 = None
    if not cfg.mock_mode:
        logger.log_info(f"Connecting to RPC: {cfg.rpc_url}")
        w3 = chain.connect(cfg.rpc_url, cfg.chain_id, timeout_seconds=cfg.rpc_timeout_seconds)
        logger.log_info(f"Connected (Chain ID: {cfg.chain_id})")

    quickswap = RouterPriceSource(
        name="QuickSwap",
        router_address=cfg.quickswap_router,
        base_token=cfg.weth_address,
        quote_token=cfg.usdc_address,
        w3=w3,
        quote_decimals=cfg.quote_token_decimals,
        mock=cfg.mock_mode,
        mock_seed=1337,
    )
    sushiswap = RouterPriceSource(
        name="SushiSwap",
        router_address=cfg.sushiswap_router,
        base_token=cfg.weth_address,
        quote_token=cfg.usdc_address,
        w3=w3,
        quote_decimals=cfg.quote_token_decimals,
        mock=cfg.mock_mode,
        mock_seed=7331,
    )

    return DualPriceFetcher(quickswap, sushiswap, amount_in=cfg.trade_amount_wei)


async def monitor_main(cfg: MonitorConfig, logger: ConsoleLogger) -> None:
    fetcher = build_fetcher(cfg, logger)
    store = OpportunityStore(cfg.database_url)
    journal = OpportunityJournal(cfg.opportunity_log_path)

    detector = OpportunityDetector(
        DetectorConfig(
            min_profit_threshold=cfg.min_profit_usdc,
            gas_cost_estimate=cfg.gas_estimate_usdc,
        ),
        logger=logger,
    )

    monitor = ArbitrageMonitorService(
        fetcher=fetcher,
        detector=detector,
        journal=journal,
        store=store,
        logger=logger,
        interval_seconds=cfg.check_interval_seconds,
    )

    logger.log_info("Monitoring WETH/USDC on QuickSwap vs SushiSwap")
    logger.log_info(
        f"Min profit threshold: {cfg.min_profit_usdc} USDC | gas estimate: {cfg.gas_estimate_usdc} USDC "
        f"| mock={cfg.mock_mode}"
    )

    api: Optional[ApiServerThread] = None
    if cfg.api_enabled:
        api = ApiServerThread(create_app(store, monitor.status), cfg.api_host, cfg.api_port, cfg.log_level)
        if api.start():
            logger.log_info(f"HTTP API listening on http://{cfg.api_host}:{cfg.api_port}")
        else:
            logger.log_error(f"HTTP API failed to start on {cfg.api_host}:{cfg.api_port}")
            api.stop()
            api = None

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, monitor.stop)
        except NotImplementedError:
            # add_signal_handler is not available on some platforms.
            pass

    try:
        # stop() lets the in-flight check finish before start() returns.
        await monitor.start()
    finally:
        if api is not None:
            api.stop()
        store.close()


def main() -> None:
    try:
        cfg = MonitorConfig.load(os.getenv("ENV_FILE"))
        cfg.validate()
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        raise SystemExit(1) from e

    logger = ConsoleLogger(log_dir=cfg.log_dir, log_level=cfg.log_level)

    try:
        asyncio.run(monitor_main(cfg, logger))
    except ArbitrageMonitorError as e:
        # Only startup failures (ChainMismatch, unreachable RPC, database init) escape the loop.
        logger.log_error(f"Startup failed: {e}")
        raise SystemExit(1) from e


if __name__ == "__main__":
    main()
