"""
Error taxonomy for the order engine.

Every failure is a distinct exception type so callers can map it to a
response without matching on message text. ``reason`` is a short
machine-readable code (e.g. "kill_switch", "max_open_orders").
"""

from __future__ import annotations


class OrderDeskError(Exception):
    """Base class for all engine errors."""

    def __init__(self, message: str, *, reason: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.reason = reason


class ValidationError(OrderDeskError):
    """Malformed request: bad quantity, symbol format, missing price fields."""


class NotFoundError(OrderDeskError):
    """Unknown order, approval request, user or strategy."""


class StateConflictError(OrderDeskError):
    """Operation not allowed in the entity's current state."""


class EntitlementError(OrderDeskError):
    """Tier budget exceeded or feature not included in the user's tier."""


class ComplianceGateError(OrderDeskError):
    """Live-trading eligibility gate failed."""


class OwnershipError(OrderDeskError):
    """Acting on an entity owned by another user."""
