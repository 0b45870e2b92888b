from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, List, Optional, Protocol, Sequence

import requests
from web3 import Web3
from web3.exceptions import Web3Exception

from src.core.errors import SourceUnavailable


# Uniswap-V2 style router; QuickSwap and SushiSwap share this interface.
ROUTER_ABI: List[dict[str, Any]] = [
    {
        "inputs": [
            {"name": "amountIn", "type": "uint256"},
            {"name": "path", "type": "address[]"},
        ],
        "name": "getAmountsOut",
        "outputs": [{"name": "amounts", "type": "uint256[]"}],
        "stateMutability": "view",
        "type": "function",
    }
]

DEFAULT_QUOTE_DECIMALS = 6


class PriceSource(Protocol):
    name: str

    async def quote(self, amount_in: int) -> Decimal: ...


def to_token_units(raw_amount: int, decimals: int) -> Decimal:
    return Decimal(raw_amount) / (Decimal(10) ** decimals)


@dataclass
class RouterPriceSource:
    """Quotes base -> quote token through a router's ``getAmountsOut`` view call.

    One instance per venue; the venue is just the router address and a label.
    In mock mode no RPC is made and a seeded random walk is returned instead.
    """

    name: str
    router_address: str
    base_token: str
    quote_token: str
    w3: Optional[Web3] = None
    quote_decimals: int = DEFAULT_QUOTE_DECIMALS
    mock: bool = False

    # Mock-mode reference price for one whole base token (18 decimals).
    mock_base_price: Decimal = Decimal("1800")
    mock_seed: Optional[int] = None

    _router: Any = field(default=None, init=False, repr=False)
    _path: List[str] = field(default_factory=list, init=False, repr=False)
    _rng: random.Random = field(default_factory=random.Random, init=False, repr=False)
    _mock_price: Decimal = field(default=Decimal(0), init=False, repr=False)

    def __post_init__(self) -> None:
        self._path = [
            Web3.to_checksum_address(self.base_token),
            Web3.to_checksum_address(self.quote_token),
        ]

        if self.mock:
            self._rng = random.Random(self.mock_seed)
            self._mock_price = self.mock_base_price
            return

        if self.w3 is None:
            raise ValueError(f"{self.name}: a Web3 instance is required unless mock=True")

        self._router = self.w3.eth.contract(
            address=Web3.to_checksum_address(self.router_address),
            abi=ROUTER_ABI,
        )

    async def quote(self, amount_in: int) -> Decimal:
        if amount_in <= 0:
            raise ValueError("amount_in must be > 0")

        if self.mock:
            return self._mock_quote(amount_in)

        def _do() -> Any:
            return self._router.functions.getAmountsOut(amount_in, self._path).call()

        try:
            amounts = await asyncio.to_thread(_do)
        except (Web3Exception, requests.RequestException, ValueError, TypeError, OSError) as e:
            raise SourceUnavailable(self.name, f"getAmountsOut failed: {e}") from e

        return to_token_units(self._output_leg(amounts), self.quote_decimals)

    def _output_leg(self, amounts: Any) -> int:
        # Expect exactly [amount_in, amount_out] for the two-token path.
        if not isinstance(amounts, Sequence) or isinstance(amounts, (str, bytes)):
            raise SourceUnavailable(self.name, f"unexpected getAmountsOut result: {amounts!r}")
        if len(amounts) != 2:
            raise SourceUnavailable(self.name, f"expected 2 amounts, got {len(amounts)}")

        amount_out = amounts[1]
        if isinstance(amount_out, bool) or not isinstance(amount_out, int):
            raise SourceUnavailable(self.name, f"non-integer output amount: {amount_out!r}")
        return amount_out

    def _mock_quote(self, amount_in: int) -> Decimal:
        step = Decimal(str(round(self._rng.uniform(-0.0008, 0.0008), 6)))
        self._mock_price = self._mock_price * (1 + step)

        raw_out = int(self._mock_price * amount_in / Decimal(10**18) * (Decimal(10) ** self.quote_decimals))
        return to_token_units(raw_out, self.quote_decimals)
