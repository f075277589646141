"""Billing replication services."""

from shift_billing.services.contract_resolver import ContractResolver
from shift_billing.services.isolation import (
    AccessDecision,
    IsolationEnforcer,
    MemberPrincipal,
    Operation,
    ParentAdminPrincipal,
    SqlMembershipLookup,
    principal_from_claims,
)
from shift_billing.services.ledger_reader import LedgerReader
from shift_billing.services.ledger_writer import LedgerWriter, WriteOutcome, WriteResult, ledger_line_id
from shift_billing.services.replication import (
    AttendanceChange,
    ReplicationOrchestrator,
    ReplicationOutcome,
    ReplicationResult,
)

__all__ = [
    "AccessDecision",
    "AttendanceChange",
    "ContractResolver",
    "IsolationEnforcer",
    "LedgerReader",
    "LedgerWriter",
    "MemberPrincipal",
    "Operation",
    "ParentAdminPrincipal",
    "ReplicationOrchestrator",
    "ReplicationOutcome",
    "ReplicationResult",
    "SqlMembershipLookup",
    "WriteOutcome",
    "WriteResult",
    "ledger_line_id",
    "principal_from_claims",
]
