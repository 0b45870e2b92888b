from __future__ import annotations

import asyncio
from dataclasses import dataclass
from decimal import Decimal
from typing import Tuple

from src.connectors.router_price_source import PriceSource
from src.core.errors import SourceUnavailable
from src.models.opportunity import PriceQuote


@dataclass(frozen=True)
class DualPriceFetcher:
    """Quotes the same notional amount on two venues at once.

    Both legs must succeed; a single failing venue fails the whole check.
    """

    source_a: PriceSource
    source_b: PriceSource
    amount_in: int

    def __post_init__(self) -> None:
        if self.amount_in <= 0:
            raise ValueError("amount_in must be > 0")

    async def check(self) -> Tuple[PriceQuote, PriceQuote]:
        results = await asyncio.gather(
            self._quote(self.source_a),
            self._quote(self.source_b),
            return_exceptions=True,
        )

        # Report source_a first when both legs failed.
        for result in results:
            if isinstance(result, BaseException):
                raise result

        quote_a, quote_b = results
        return quote_a, quote_b

    async def _quote(self, source: PriceSource) -> PriceQuote:
        try:
            price = await source.quote(self.amount_in)
        except SourceUnavailable:
            raise
        except Exception as e:
            raise SourceUnavailable(source.name, str(e) or type(e).__name__) from e

        if not isinstance(price, Decimal) or not price.is_finite() or price <= 0:
            raise SourceUnavailable(source.name, f"non-positive or malformed price: {price!r}")

        return PriceQuote(venue=source.name, price=price)
