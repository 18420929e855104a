"""
ApprovalWorkflow: staging of live orders for manual-execution strategies.

A staged request creates no order. Approving it re-runs the risk gate at
decision time (collaborator state may have changed since staging) and, if
the gate passes, materializes exactly one live order. A failed approval
leaves the request pending.
"""

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum

from orderdesk.config import EngineConfig
from orderdesk.errors import NotFoundError, OwnershipError, StateConflictError, ValidationError
from orderdesk.order import Order, OrderMode, OrderParams
from orderdesk.registry import OrderRegistry
from orderdesk.repository import KeyedLocks
from orderdesk.risk import validate_order_shape

logger = logging.getLogger(__name__)


class ApprovalStatus(Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


@dataclass(frozen=True)
class ApprovalRequest:
    id: str
    params: OrderParams
    status: ApprovalStatus
    created_at: datetime
    decided_at: datetime | None = None
    order_id: str | None = None

    @property
    def user_id(self) -> str:
        return self.params.user_id

    @property
    def strategy_id(self) -> str:
        return self.params.strategy_id


class ApprovalWorkflow:
    def __init__(
        self,
        registry: OrderRegistry,
        *,
        config: EngineConfig | None = None,
        locks: KeyedLocks | None = None,
    ) -> None:
        self.registry = registry
        self.config = config or EngineConfig()
        self.locks = locks or KeyedLocks()
        self._guard = threading.Lock()
        self._requests: dict[str, ApprovalRequest] = {}

    def create_approval_request(self, params: OrderParams) -> ApprovalRequest:
        """Stage a live order for approval. Only the order shape is checked here."""
        if params.mode is not OrderMode.LIVE:
            raise ValidationError("Approval requests are only supported for live orders", reason="not_live_order")
        validate_order_shape(params, self.config.symbol_separator)
        request = ApprovalRequest(
            id=str(uuid.uuid4()),
            params=params,
            status=ApprovalStatus.PENDING,
            created_at=datetime.now(timezone.utc),
        )
        with self._guard:
            self._requests[request.id] = request
        logger.info(
            "Approval requested: id=%s user=%s strategy=%s %s %s qty=%s",
            request.id,
            params.user_id,
            params.strategy_id,
            params.symbol,
            params.side.value,
            params.quantity,
        )
        return request

    def get(self, request_id: str) -> ApprovalRequest | None:
        return self._requests.get(request_id)

    def list_for_user(self, user_id: str, status: ApprovalStatus | str | None = None) -> list[ApprovalRequest]:
        wanted = ApprovalStatus(status) if status is not None else None
        with self._guard:
            requests = list(self._requests.values())
        return [r for r in requests if r.user_id == user_id and (wanted is None or r.status is wanted)]

    def _require_decidable(self, user_id: str, request_id: str) -> ApprovalRequest:
        request = self._requests.get(request_id)
        if request is None:
            raise NotFoundError("Approval request not found", reason="approval_not_found")
        if request.user_id != user_id:
            raise OwnershipError("Cannot modify another user's approval request", reason="not_owner")
        if request.status is not ApprovalStatus.PENDING:
            raise StateConflictError("Approval request is not pending", reason="approval_not_pending")
        return request

    def _store(self, request: ApprovalRequest) -> ApprovalRequest:
        with self._guard:
            self._requests[request.id] = request
        return request

    def approve_live_order(self, user_id: str, request_id: str) -> tuple[ApprovalRequest, Order]:
        """Re-validate and create the live order. Gate errors propagate; the request stays pending."""
        with self.locks.for_key(user_id):
            request = self._require_decidable(user_id, request_id)
            order = self.registry.create(request.params, allow_manual_live=True)
            approved = self._store(
                replace(
                    request,
                    status=ApprovalStatus.APPROVED,
                    decided_at=datetime.now(timezone.utc),
                    order_id=order.id,
                )
            )
        logger.info("Approval granted: id=%s order=%s", request_id, order.id)
        return approved, order

    def reject_approval(self, user_id: str, request_id: str) -> ApprovalRequest:
        with self.locks.for_key(user_id):
            request = self._require_decidable(user_id, request_id)
            rejected = self._store(
                replace(request, status=ApprovalStatus.REJECTED, decided_at=datetime.now(timezone.utc))
            )
        logger.info("Approval rejected: id=%s", request_id)
        return rejected
