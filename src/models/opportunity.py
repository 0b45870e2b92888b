from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any


@dataclass(frozen=True)
class PriceQuote:
    venue: str
    price: Decimal  # quote-token units received for the notional amount


@dataclass(frozen=True)
class ArbitrageOpportunity:
    id: str
    detected_at: datetime
    buy_venue: str
    sell_venue: str
    buy_price: Decimal
    sell_price: Decimal
    price_difference: Decimal
    gas_cost_estimate: Decimal
    estimated_profit: Decimal
    profit_percentage: Decimal

    def as_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.detected_at.isoformat(),
            "buy_venue": self.buy_venue,
            "sell_venue": self.sell_venue,
            "buy_price": float(self.buy_price),
            "sell_price": float(self.sell_price),
            "price_difference": float(self.price_difference),
            "gas_cost_estimate": float(self.gas_cost_estimate),
            "estimated_profit": float(self.estimated_profit),
            "profit_percentage": float(self.profit_percentage),
        }


@dataclass(frozen=True)
class OpportunityStats:
    count: int
    average_profit: Decimal
    max_profit: Decimal
