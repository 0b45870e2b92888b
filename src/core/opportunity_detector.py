from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Optional, Protocol

from src.models.opportunity import ArbitrageOpportunity, PriceQuote


class LoggerProtocol(Protocol):
    def log_debug(self, message: str) -> None: ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True)
class DetectorConfig:
    min_profit_threshold: Decimal
    gas_cost_estimate: Decimal


@dataclass
class OpportunityDetector:
    config: DetectorConfig
    logger: Optional[LoggerProtocol] = None

    # Metadata only; never part of the yes/no decision.
    clock: Callable[[], datetime] = field(default=_utcnow, repr=False)
    id_factory: Callable[[], str] = field(default=_new_id, repr=False)

    def evaluate(self, quote_a: PriceQuote, quote_b: PriceQuote) -> Optional[ArbitrageOpportunity]:
        """Return an opportunity when the spread beats gas plus the profit threshold.

        The lower-priced venue is the buy side. On an exact tie ``quote_a`` is
        treated as the buy side, though with a non-negative threshold a zero
        spread never qualifies.
        """

        price_difference = abs(quote_a.price - quote_b.price)
        estimated_profit = price_difference - self.config.gas_cost_estimate

        if self.logger:
            self.logger.log_debug(
                f"Spread analysis | {quote_a.venue}={quote_a.price} {quote_b.venue}={quote_b.price} "
                f"diff={price_difference} gas={self.config.gas_cost_estimate} "
                f"profit={estimated_profit} min={self.config.min_profit_threshold}"
            )

        if estimated_profit <= self.config.min_profit_threshold:
            return None

        if quote_a.price <= quote_b.price:
            buy, sell = quote_a, quote_b
        else:
            buy, sell = quote_b, quote_a

        return ArbitrageOpportunity(
            id=self.id_factory(),
            detected_at=self.clock(),
            buy_venue=buy.venue,
            sell_venue=sell.venue,
            buy_price=buy.price,
            sell_price=sell.price,
            price_difference=price_difference,
            gas_cost_estimate=self.config.gas_cost_estimate,
            estimated_profit=estimated_profit,
            profit_percentage=estimated_profit / buy.price * 100,
        )
