"""Exception types for the billing replication pipeline.

Terminal skips and transient failures are deliberately separate: a
SkipReplication never leaves the orchestrator, while storage errors are
never caught so the event trigger can redeliver.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from shift_billing.services.isolation import AccessDecision


class BillingError(Exception):
    """Base class for billing pipeline errors."""


class SkipReplication(BillingError):
    """Raised when an event cannot produce a ledger line and must not be retried."""

    def __init__(self, reason: str, message: str, **detail: Any):
        self.reason = reason
        self.detail = detail
        super().__init__(message)


class InvalidContractError(BillingError):
    """Raised when a stored contract carries values outside the known policies."""

    def __init__(self, parent_id: str, sub_org_id: str, field: str, value: Any):
        self.parent_id = parent_id
        self.sub_org_id = sub_org_id
        self.field = field
        self.value = value
        super().__init__(
            f"Contract parents/{parent_id}/contracts/{sub_org_id} has invalid {field}: {value!r}"
        )


class ImmutableLedgerError(BillingError):
    """Raised when anything attempts to update or delete a ledger line."""

    def __init__(self, line_id: str, operation: str):
        self.line_id = line_id
        self.operation = operation
        super().__init__(
            f"Ledger line {line_id} is append-only; {operation} is not permitted. "
            "Post a reversal instead."
        )


class LedgerLineNotFoundError(BillingError):
    """Raised when a reversal targets a line that does not exist."""

    def __init__(self, parent_id: str, period_id: str, line_id: str):
        self.parent_id = parent_id
        self.period_id = period_id
        self.line_id = line_id
        super().__init__(
            f"Ledger line parents/{parent_id}/ledgers/{period_id}/lines/{line_id} not found"
        )


class AccessDenied(BillingError):
    """Raised by the isolation enforcer when a request is not allowed."""

    def __init__(self, decision: AccessDecision):
        self.decision = decision
        super().__init__(f"Access denied: {decision.reason}")
