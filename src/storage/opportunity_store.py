from __future__ import annotations

import os
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, List

from sqlalchemy import Column, DateTime, Float, String, create_engine, func, select
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker

from src.core.errors import StorageError
from src.models.opportunity import ArbitrageOpportunity, OpportunityStats


Base = declarative_base()


class OpportunityTable(Base):
    __tablename__ = "arbitrage_opportunities"

    id = Column(String, primary_key=True)
    detected_at = Column(DateTime(timezone=True), nullable=False, index=True)
    buy_venue = Column(String, nullable=False)
    sell_venue = Column(String, nullable=False)
    buy_price = Column(Float, nullable=False)
    sell_price = Column(Float, nullable=False)
    price_difference = Column(Float, nullable=False)
    gas_cost_estimate = Column(Float, nullable=False)
    estimated_profit = Column(Float, nullable=False)
    profit_percentage = Column(Float, nullable=False)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))


def _dec(x: Any) -> Decimal:
    return Decimal(str(x))


def _as_utc(dt: datetime) -> datetime:
    # SQLite drops tzinfo on the way back.
    return dt if dt.tzinfo is not None else dt.replace(tzinfo=timezone.utc)


def _to_opportunity(row: OpportunityTable) -> ArbitrageOpportunity:
    return ArbitrageOpportunity(
        id=row.id,
        detected_at=_as_utc(row.detected_at),
        buy_venue=row.buy_venue,
        sell_venue=row.sell_venue,
        buy_price=_dec(row.buy_price),
        sell_price=_dec(row.sell_price),
        price_difference=_dec(row.price_difference),
        gas_cost_estimate=_dec(row.gas_cost_estimate),
        estimated_profit=_dec(row.estimated_profit),
        profit_percentage=_dec(row.profit_percentage),
    )


def _create_engine(database_url: str) -> Engine:
    url = make_url(database_url)
    connect_args: dict[str, Any] = {}

    if url.get_backend_name() == "sqlite":
        # The API thread reads while the monitor writes.
        connect_args["check_same_thread"] = False
        if url.database and url.database != ":memory:":
            parent = os.path.dirname(url.database)
            if parent:
                os.makedirs(parent, exist_ok=True)

    return create_engine(url, echo=False, connect_args=connect_args)


@dataclass
class OpportunityStore:
    """Durable store of detected opportunities.

    Writes are serialized with a lock so the store stays safe if more than one
    writer ever shares it; reads use short-lived sessions.
    """

    database_url: str = "sqlite:///data/arbitrage.db"

    engine: Engine = field(init=False, repr=False)
    _session: sessionmaker = field(init=False, repr=False)
    _write_lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def __post_init__(self) -> None:
        try:
            self.engine = _create_engine(self.database_url)
            self._session = sessionmaker(bind=self.engine, expire_on_commit=False)
            Base.metadata.create_all(self.engine)
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to initialize database {self.database_url}: {e}") from e

    def store(self, opportunity: ArbitrageOpportunity) -> None:
        record = OpportunityTable(
            id=opportunity.id,
            detected_at=opportunity.detected_at,
            buy_venue=opportunity.buy_venue,
            sell_venue=opportunity.sell_venue,
            buy_price=float(opportunity.buy_price),
            sell_price=float(opportunity.sell_price),
            price_difference=float(opportunity.price_difference),
            gas_cost_estimate=float(opportunity.gas_cost_estimate),
            estimated_profit=float(opportunity.estimated_profit),
            profit_percentage=float(opportunity.profit_percentage),
        )

        with self._write_lock:
            try:
                with self._session() as session:
                    session.add(record)
                    session.commit()
            except SQLAlchemyError as e:
                raise StorageError(f"Failed to store opportunity {opportunity.id}: {e}") from e

    def recent(self, limit: int = 50) -> List[ArbitrageOpportunity]:
        """Most recent opportunities, newest first."""
        if limit <= 0:
            return []

        stmt = (
            select(OpportunityTable)
            .order_by(OpportunityTable.detected_at.desc(), OpportunityTable.created_at.desc())
            .limit(limit)
        )
        try:
            with self._session() as session:
                return [_to_opportunity(row) for row in session.scalars(stmt)]
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to fetch recent opportunities: {e}") from e

    def aggregate_stats(self) -> OpportunityStats:
        stmt = select(
            func.count(OpportunityTable.id),
            func.avg(OpportunityTable.estimated_profit),
            func.max(OpportunityTable.estimated_profit),
        )
        try:
            with self._session() as session:
                count, avg_profit, max_profit = session.execute(stmt).one()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to fetch stats: {e}") from e

        return OpportunityStats(
            count=int(count or 0),
            average_profit=_dec(avg_profit or 0),
            max_profit=_dec(max_profit or 0),
        )

    def close(self) -> None:
        self.engine.dispose()
