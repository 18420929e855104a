"""
orderdesk: multi-tenant order execution and position management.

Risk/entitlement/compliance gates, paper fills, weighted-average-cost
positions, and approval-gated live orders. No exchange routing.
"""

__version__ = "0.1.0"

from orderdesk.approvals import ApprovalRequest, ApprovalStatus, ApprovalWorkflow
from orderdesk.config import EngineConfig, TierFeatures
from orderdesk.engine import OrderEngine, RejectedOrderLog
from orderdesk.errors import (
    ComplianceGateError,
    EntitlementError,
    NotFoundError,
    OrderDeskError,
    OwnershipError,
    StateConflictError,
    ValidationError,
)
from orderdesk.order import Order, OrderMode, OrderParams, OrderStatus, OrderType, Side
from orderdesk.portfolio import PortfolioSummary, PositionSummary
from orderdesk.position import Position, PositionSide

__all__ = [
    "ApprovalRequest",
    "ApprovalStatus",
    "ApprovalWorkflow",
    "ComplianceGateError",
    "EngineConfig",
    "EntitlementError",
    "NotFoundError",
    "Order",
    "OrderDeskError",
    "OrderEngine",
    "OrderMode",
    "OrderParams",
    "OrderStatus",
    "OrderType",
    "OwnershipError",
    "PortfolioSummary",
    "Position",
    "PositionSide",
    "PositionSummary",
    "RejectedOrderLog",
    "Side",
    "StateConflictError",
    "TierFeatures",
    "ValidationError",
]
