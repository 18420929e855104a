"""
Execution layer: paper fill simulation.

FillEngine fills paper orders (market now, limit/stop on trigger) and feeds
the position ledger; observers are called after every fill. Live orders are
validated and staged elsewhere; nothing here routes to an exchange.
"""

from orderdesk.execution.paper import FillEngine, limit_triggered, prices_from_frame, stop_triggered
from orderdesk.execution.types import ExecutionOptions, FillObserver

__all__ = [
    "ExecutionOptions",
    "FillEngine",
    "FillObserver",
    "limit_triggered",
    "prices_from_frame",
    "stop_triggered",
]
