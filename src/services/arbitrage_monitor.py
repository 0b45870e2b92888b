from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol, Tuple

from src.core.errors import SourceUnavailable
from src.core.opportunity_detector import OpportunityDetector
from src.models.opportunity import ArbitrageOpportunity, PriceQuote


class Logger(Protocol):
    def log_info(self, message: str) -> None: ...

    def log_error(self, message: str) -> None: ...

    def log_prices(self, iteration: int, quote_a: PriceQuote, quote_b: PriceQuote) -> None: ...

    def log_no_opportunity(self, iteration: int, price_difference: object) -> None: ...

    def log_opportunity_detected(self, iteration: int, opp: ArbitrageOpportunity) -> None: ...

    def log_tick_failure(self, iteration: int, stage: str, error: BaseException) -> None: ...

    def log_summary(self, iterations: int, opportunities: int, failures: int) -> None: ...


class Fetcher(Protocol):
    async def check(self) -> Tuple[PriceQuote, PriceQuote]: ...


class Journal(Protocol):
    def append(self, opportunity: ArbitrageOpportunity) -> None: ...


class Store(Protocol):
    def store(self, opportunity: ArbitrageOpportunity) -> None: ...


class MonitorState(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    DECIDING = "deciding"
    RECORDING = "recording"


@dataclass(frozen=True)
class TickResult:
    iteration: int
    quotes: Optional[Tuple[PriceQuote, PriceQuote]] = None
    opportunity: Optional[ArbitrageOpportunity] = None
    errors: Tuple[str, ...] = ()

    @property
    def ok(self) -> bool:
        return not self.errors


@dataclass
class ArbitrageMonitorService:
    fetcher: Fetcher
    detector: OpportunityDetector
    journal: Journal
    store: Store
    logger: Logger
    interval_seconds: float = 10.0

    state: MonitorState = field(default=MonitorState.IDLE, init=False)
    iterations: int = field(default=0, init=False)

    _running: bool = field(default=False, init=False)
    _stop_requested: bool = field(default=False, init=False)
    _opportunities_found: int = field(default=0, init=False)
    _failed_ticks: int = field(default=0, init=False)
    _last_check: Optional[datetime] = field(default=None, init=False)
    _last_error: Optional[str] = field(default=None, init=False)
    _stop_event: asyncio.Event | None = field(default=None, init=False, repr=False)

    async def start(self) -> None:
        """Run ticks until stop() is called.

        Ticks never overlap: a slow tick delays the next one instead. stop() is
        only observed between ticks, so an in-flight tick always completes.
        """
        if self._stop_requested:
            # stop() arrived before the loop started.
            self._stop_requested = False
            self.logger.log_info("Stop requested before start; monitoring loop not started")
            return

        self._running = True
        self._stop_event = asyncio.Event()

        self.logger.log_info(f"Starting monitoring loop | interval={self.interval_seconds}s")

        while self._running:
            started = time.monotonic()
            await self.run_check()
            elapsed = time.monotonic() - started

            if not self._running:
                break

            sleep_for = max(0.0, self.interval_seconds - elapsed)

            # Allow stop() to interrupt the sleep.
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=sleep_for)
            except asyncio.TimeoutError:
                pass

        self._stop_requested = False
        self.logger.log_summary(self.iterations, self._opportunities_found, self._failed_ticks)

    async def run_check(self) -> TickResult:
        self.iterations += 1
        iteration = self.iterations

        try:
            result = await self._tick(iteration)
        except Exception as e:
            # Never let one bad tick take the loop down.
            self.logger.log_tick_failure(iteration, "check", e)
            result = TickResult(iteration=iteration, errors=(f"unexpected: {e}",))
        finally:
            self.state = MonitorState.IDLE
            self._last_check = datetime.now(timezone.utc)

        if result.errors:
            self._failed_ticks += 1
            self._last_error = result.errors[-1]
        return result

    async def _tick(self, iteration: int) -> TickResult:
        self.state = MonitorState.FETCHING
        try:
            quote_a, quote_b = await self.fetcher.check()
        except SourceUnavailable as e:
            self.logger.log_tick_failure(iteration, "price fetch", e)
            return TickResult(iteration=iteration, errors=(f"fetch: {e}",))

        self.logger.log_prices(iteration, quote_a, quote_b)

        self.state = MonitorState.DECIDING
        opportunity = self.detector.evaluate(quote_a, quote_b)
        if opportunity is None:
            self.logger.log_no_opportunity(iteration, abs(quote_a.price - quote_b.price))
            return TickResult(iteration=iteration, quotes=(quote_a, quote_b))

        self._opportunities_found += 1
        self.logger.log_opportunity_detected(iteration, opportunity)

        self.state = MonitorState.RECORDING
        errors: List[str] = []

        # Audit log first, then durable storage; each failure is reported on its own.
        try:
            await asyncio.to_thread(self.journal.append, opportunity)
        except Exception as e:
            self.logger.log_tick_failure(iteration, "audit log write", e)
            errors.append(f"journal: {e}")

        try:
            await asyncio.to_thread(self.store.store, opportunity)
        except Exception as e:
            self.logger.log_tick_failure(iteration, "database write", e)
            errors.append(f"store: {e}")

        return TickResult(
            iteration=iteration,
            quotes=(quote_a, quote_b),
            opportunity=opportunity,
            errors=tuple(errors),
        )

    def stop(self) -> None:
        self._running = False
        self._stop_requested = True
        if self._stop_event is not None:
            self._stop_event.set()
        self.logger.log_info("Stopping monitor after the current check...")

    def is_running(self) -> bool:
        return self._running

    def status(self) -> Dict[str, Any]:
        return {
            "running": self._running,
            "state": self.state.value,
            "iterations": self.iterations,
            "last_check": self._last_check.isoformat() if self._last_check else None,
            "last_error": self._last_error,
            "opportunities_found": self._opportunities_found,
        }
