import asyncio
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional, Tuple

from src.core.errors import AuditLogError, SourceUnavailable, StorageError
from src.core.opportunity_detector import DetectorConfig, OpportunityDetector
from src.models.opportunity import ArbitrageOpportunity, PriceQuote
from src.services.arbitrage_monitor import ArbitrageMonitorService, MonitorState


@dataclass
class StubLogger:
    infos: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    events: List[str] = field(default_factory=list)

    def log_info(self, message: str) -> None:
        self.infos.append(message)

    def log_error(self, message: str) -> None:
        self.errors.append(message)

    def log_prices(self, iteration: int, quote_a: PriceQuote, quote_b: PriceQuote) -> None:
        self.events.append(f"prices:{iteration}")

    def log_no_opportunity(self, iteration: int, price_difference: object) -> None:
        self.events.append(f"none:{iteration}")

    def log_opportunity_detected(self, iteration: int, opp: ArbitrageOpportunity) -> None:
        self.events.append(f"opportunity:{iteration}")

    def log_tick_failure(self, iteration: int, stage: str, error: BaseException) -> None:
        self.errors.append(f"{iteration}:{stage}:{error}")

    def log_summary(self, iterations: int, opportunities: int, failures: int) -> None:
        self.infos.append(f"summary:{iterations}:{opportunities}:{failures}")


class ScriptedFetcher:
    """Plays back one outcome per tick: a (price_a, price_b) pair or an exception."""

    def __init__(self, outcomes: list):
        self._outcomes = list(outcomes)
        self.calls = 0

    async def check(self) -> Tuple[PriceQuote, PriceQuote]:
        self.calls += 1
        outcome = self._outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        a, b = outcome
        return PriceQuote("QuickSwap", Decimal(a)), PriceQuote("SushiSwap", Decimal(b))


@dataclass
class RecordingSink:
    order: List[str]
    label: str
    error: Optional[Exception] = None
    items: List[ArbitrageOpportunity] = field(default_factory=list)

    def _record(self, opportunity: ArbitrageOpportunity) -> None:
        self.order.append(self.label)
        if self.error is not None:
            raise self.error
        self.items.append(opportunity)

    def append(self, opportunity: ArbitrageOpportunity) -> None:
        self._record(opportunity)

    def store(self, opportunity: ArbitrageOpportunity) -> None:
        self._record(opportunity)


def _monitor(
    outcomes: list,
    journal_error: Optional[Exception] = None,
    store_error: Optional[Exception] = None,
    interval: float = 0.0,
):
    order: List[str] = []
    journal = RecordingSink(order, "journal", journal_error)
    store = RecordingSink(order, "store", store_error)
    logger = StubLogger()
    detector = OpportunityDetector(DetectorConfig(min_profit_threshold=Decimal("0.80"), gas_cost_estimate=Decimal("0.50")))
    monitor = ArbitrageMonitorService(
        fetcher=ScriptedFetcher(outcomes),
        detector=detector,
        journal=journal,
        store=store,
        logger=logger,
        interval_seconds=interval,
    )
    return monitor, journal, store, logger, order


def test_profitable_tick_records_journal_then_store() -> None:
    monitor, journal, store, logger, order = _monitor([("1800.50", "1802.10")])

    result = asyncio.run(monitor.run_check())

    assert result.ok
    assert result.opportunity is not None
    assert result.opportunity.buy_venue == "QuickSwap"
    assert result.opportunity.sell_venue == "SushiSwap"
    assert order == ["journal", "store"]
    assert journal.items == [result.opportunity]
    assert store.items == [result.opportunity]
    assert logger.events == ["prices:1", "opportunity:1"]
    assert monitor.state is MonitorState.IDLE


def test_unprofitable_tick_records_nothing() -> None:
    monitor, journal, store, logger, order = _monitor([("1800.00", "1800.30")])

    result = asyncio.run(monitor.run_check())

    assert result.ok
    assert result.opportunity is None
    assert result.quotes is not None
    assert order == []
    assert logger.events == ["prices:1", "none:1"]


def test_fetch_failure_is_reported_and_next_tick_proceeds() -> None:
    monitor, journal, store, logger, _ = _monitor(
        [
            SourceUnavailable("SushiSwap", "rpc timeout"),
            ("1800.50", "1802.10"),
        ]
    )

    async def _two_ticks():
        return await monitor.run_check(), await monitor.run_check()

    failed, healthy = asyncio.run(_two_ticks())

    assert not failed.ok
    assert failed.opportunity is None
    assert failed.quotes is None
    assert any("price fetch" in e for e in logger.errors)

    assert healthy.ok
    assert healthy.opportunity is not None
    assert len(store.items) == 1
    assert len(journal.items) == 1
    assert monitor.iterations == 2
    assert monitor.status()["last_error"].startswith("fetch:")


def test_journal_failure_still_attempts_store() -> None:
    monitor, journal, store, logger, order = _monitor(
        [("1800.50", "1802.10")],
        journal_error=AuditLogError("disk full"),
    )

    result = asyncio.run(monitor.run_check())

    assert order == ["journal", "store"]
    assert len(store.items) == 1
    assert result.opportunity is not None
    assert result.errors == ("journal: disk full",)
    assert any("audit log write" in e for e in logger.errors)


def test_store_failure_is_surfaced_without_crashing() -> None:
    monitor, journal, store, logger, order = _monitor(
        [("1800.50", "1802.10"), ("1800.00", "1800.30")],
        store_error=StorageError("database is locked"),
    )

    async def _two_ticks():
        return await monitor.run_check(), await monitor.run_check()

    first, second = asyncio.run(_two_ticks())

    assert first.errors == ("store: database is locked",)
    assert len(journal.items) == 1
    assert second.ok
    assert any("database write" in e for e in logger.errors)


def test_unexpected_errors_are_caught_at_the_tick_boundary() -> None:
    monitor, _, _, logger, _ = _monitor([RuntimeError("bug")])

    result = asyncio.run(monitor.run_check())

    assert not result.ok
    assert monitor.state is MonitorState.IDLE
    assert any("bug" in e for e in logger.errors)


def test_start_runs_ticks_in_order_until_stopped() -> None:
    outcomes = [("1800.50", "1802.10"), SourceUnavailable("QuickSwap", "down"), ("1800.00", "1805.00")]
    monitor, journal, store, logger, _ = _monitor(outcomes, interval=0.01)

    async def _run():
        task = asyncio.create_task(monitor.start())
        while monitor.iterations < 3:
            await asyncio.sleep(0.001)
        monitor.stop()
        await asyncio.wait_for(task, timeout=1.0)

    asyncio.run(_run())

    assert monitor.iterations == 3
    assert not monitor.is_running()
    assert [o.sell_price for o in store.items] == [Decimal("1802.10"), Decimal("1805.00")]
    assert [o.id for o in journal.items] == [o.id for o in store.items]
    assert logger.infos[-1] == "summary:3:2:1"


def test_stop_lets_the_in_flight_tick_finish() -> None:
    class SlowFetcher:
        def __init__(self, monitor_ref: list):
            self.monitor_ref = monitor_ref

        async def check(self) -> Tuple[PriceQuote, PriceQuote]:
            # Stop arrives while this tick is still fetching.
            self.monitor_ref[0].stop()
            await asyncio.sleep(0.01)
            return PriceQuote("QuickSwap", Decimal("1800.50")), PriceQuote("SushiSwap", Decimal("1802.10"))

    monitor, journal, store, logger, _ = _monitor([], interval=60.0)
    ref = [monitor]
    monitor.fetcher = SlowFetcher(ref)

    asyncio.run(asyncio.wait_for(monitor.start(), timeout=1.0))

    assert monitor.iterations == 1
    assert len(store.items) == 1
    assert len(journal.items) == 1


def test_stop_before_start_runs_no_ticks() -> None:
    monitor, journal, store, logger, _ = _monitor([("1800.50", "1802.10")], interval=0.0)

    monitor.stop()
    asyncio.run(asyncio.wait_for(monitor.start(), timeout=1.0))

    assert monitor.iterations == 0
    assert monitor.fetcher.calls == 0
    assert not monitor.is_running()
    assert store.items == []


def test_status_snapshot() -> None:
    monitor, _, _, _, _ = _monitor([("1800.50", "1802.10")])

    before = monitor.status()
    asyncio.run(monitor.run_check())
    after = monitor.status()

    assert before["iterations"] == 0
    assert before["last_check"] is None
    assert after["iterations"] == 1
    assert after["opportunities_found"] == 1
    assert after["state"] == "idle"
    assert after["last_check"] is not None
    assert after["last_error"] is None
