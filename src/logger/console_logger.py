from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from rich.console import Console
from rich.panel import Panel
from rich.text import Text

from src.models.opportunity import ArbitrageOpportunity, PriceQuote


_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def _ts() -> str:
    return datetime.now().strftime("%H:%M:%S")


def _usdc(x: object) -> str:
    return f"{float(x):,.6f} USDC"


@dataclass
class ConsoleLogger:
    log_dir: str = "logs"
    log_file: str = "monitor.log"
    log_level: str = "info"
    title: str = "POLYGON DEX SPREAD MONITOR"

    console: Console = field(default_factory=Console, init=False)
    file_logger: logging.Logger = field(default_factory=lambda: logging.getLogger("monitor"), init=False)
    _level: int = field(default=logging.INFO, init=False, repr=False)

    def __post_init__(self) -> None:
        os.makedirs(self.log_dir, exist_ok=True)
        self._level = _LEVELS.get(self.log_level.strip().lower(), logging.INFO)

        self.file_logger.setLevel(self._level)
        self.file_logger.propagate = False
        for handler in list(self.file_logger.handlers):
            handler.close()
        self.file_logger.handlers.clear()

        fh = logging.FileHandler(os.path.join(self.log_dir, self.log_file), encoding="utf-8")
        fh.setLevel(self._level)
        fh.setFormatter(logging.Formatter("%(asctime)s | %(levelname)s | %(message)s"))
        self.file_logger.addHandler(fh)

        self._print_header()

    def _print_header(self) -> None:
        self.console.print(Panel(Text(self.title, style="bold cyan"), expand=False, border_style="cyan"))

    def _log(self, level: int, message: str, *, style: Optional[str] = None) -> None:
        if level < self._level:
            return
        prefix = f"[{_ts()}] "
        if style:
            self.console.print(prefix + message, style=style, markup=False)
        else:
            self.console.print(prefix + message, markup=False)
        self.file_logger.log(level, message)

    def log_debug(self, message: str) -> None:
        self._log(logging.DEBUG, message, style="dim")

    def log_info(self, message: str) -> None:
        self._log(logging.INFO, message)

    def log_warning(self, message: str) -> None:
        self._log(logging.WARNING, f"⚠️ {message}", style="yellow")

    def log_error(self, message: str) -> None:
        self._log(logging.ERROR, f"❌ {message}", style="bold red")

    def log_prices(self, iteration: int, quote_a: PriceQuote, quote_b: PriceQuote) -> None:
        self._log(
            logging.INFO,
            f"📊 Check #{iteration}: {quote_a.venue}={_usdc(quote_a.price)} | {quote_b.venue}={_usdc(quote_b.price)}",
            style="bold",
        )

    def log_no_opportunity(self, iteration: int, price_difference: object) -> None:
        self._log(
            logging.INFO,
            f"🔍 Check #{iteration}: price diff {_usdc(price_difference)} (below threshold)",
            style="cyan",
        )

    def log_opportunity_detected(self, iteration: int, opp: ArbitrageOpportunity) -> None:
        self._log(
            logging.INFO,
            f"🎯 Check #{iteration}: ARBITRAGE OPPORTUNITY | buy {opp.buy_venue} @ {_usdc(opp.buy_price)} "
            f"sell {opp.sell_venue} @ {_usdc(opp.sell_price)} | profit={_usdc(opp.estimated_profit)} "
            f"({float(opp.profit_percentage):.4f}%)",
            style="bold green",
        )

    def log_tick_failure(self, iteration: int, stage: str, error: BaseException) -> None:
        self._log(logging.ERROR, f"❌ Check #{iteration}: {stage} failed: {error}", style="bold red")

    def log_summary(self, iterations: int, opportunities: int, failures: int) -> None:
        self._log(
            logging.INFO,
            f"📌 SUMMARY | checks={iterations} opportunities={opportunities} failed_checks={failures}",
            style="bold cyan",
        )
