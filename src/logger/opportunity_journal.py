from __future__ import annotations

import json
import os
import threading
from dataclasses import dataclass, field

from src.core.errors import AuditLogError
from src.models.opportunity import ArbitrageOpportunity


@dataclass
class OpportunityJournal:
    """Append-only JSON-lines audit log of detected opportunities."""

    path: str = "arbitrage_opportunities.jsonl"

    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def append(self, opportunity: ArbitrageOpportunity) -> None:
        line = json.dumps(opportunity.as_dict(), separators=(",", ":"))

        try:
            parent = os.path.dirname(self.path)
            if parent:
                os.makedirs(parent, exist_ok=True)
            with self._lock, open(self.path, "a", encoding="utf-8") as fh:
                fh.write(line + "\n")
        except OSError as e:
            raise AuditLogError(f"Failed to append to {self.path}: {e}") from e
