"""
Execution-layer types: fill options and the post-fill observer hook.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from orderdesk.errors import ValidationError
from orderdesk.ledger import LedgerUpdate
from orderdesk.order import Order


@dataclass(frozen=True)
class ExecutionOptions:
    """Paper fill model. Both values are percentages (0.1 = 0.1%)."""

    slippage_pct: float = 0.1
    fee_pct: float = 0.1

    def __post_init__(self) -> None:
        if self.slippage_pct < 0 or self.fee_pct < 0:
            raise ValidationError("Slippage and fee percentages must be >= 0", reason="invalid_execution_options")


class FillObserver(Protocol):
    """Post-fill callback: the filled order and what it did to the position."""

    def __call__(self, order: Order, update: LedgerUpdate) -> None:
        ...
