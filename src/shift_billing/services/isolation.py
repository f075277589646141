"""Tenant isolation policy for direct client access to storage.

The replication pipeline runs with server privileges; clients read (and for
attendance, write) the same storage directly. This policy re-derives the
invariants the pipeline relies on, independently of it:

- Members act only inside their own tenant (orgs/{orgId}/...), and only
  while a membership document exists for them. A missing membership
  document always denies.
- Parent admins may read ledgers and contracts under their own parentId
  only.
- No client may create, update or delete a ledger line, whatever its role.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Protocol, Union

from sqlalchemy.ext.asyncio import AsyncSession

from shift_billing.calculators.types import AttendanceStatus, parse_timestamp
from shift_billing.exceptions import AccessDenied
from shift_billing.models import OrgMembership

MANAGER_ROLES = frozenset({"admin", "manager"})


class Operation(str, Enum):
    READ = "read"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"

    @property
    def is_write(self) -> bool:
        return self != Operation.READ


@dataclass(frozen=True)
class MemberPrincipal:
    """A user acting as a member of one sub-organization."""

    uid: str
    org_id: str
    role: str


@dataclass(frozen=True)
class ParentAdminPrincipal:
    """A user holding the parentAdmin capability for one parent."""

    uid: str
    parent_id: str


Principal = Union[MemberPrincipal, ParentAdminPrincipal]


def principal_from_claims(claims: Mapping[str, Any]) -> Principal:
    """Build a principal from verified token claims.

    Accepts the tagged form ({"kind": "member" | "parentAdmin", ...}) and
    the flat custom-claims form ({"parentAdmin": true, "parentId": ...} or
    {"orgId": ..., "role": ...}).

    Raises:
        ValueError: If the claims fit neither shape.
    """
    uid = claims.get("uid") or claims.get("sub")
    if not uid:
        raise ValueError("claims carry no uid")

    kind = claims.get("kind")
    if kind is None:
        kind = "parentAdmin" if claims.get("parentAdmin") is True else "member"

    if kind == "parentAdmin":
        parent_id = claims.get("parentId")
        if not parent_id:
            raise ValueError("parentAdmin claims require parentId")
        return ParentAdminPrincipal(uid=str(uid), parent_id=str(parent_id))
    if kind == "member":
        org_id = claims.get("orgId")
        if not org_id:
            raise ValueError("member claims require orgId")
        return MemberPrincipal(uid=str(uid), org_id=str(org_id), role=str(claims.get("role") or "staff"))
    raise ValueError(f"Unknown principal kind: {kind!r}")


@dataclass(frozen=True)
class AccessDecision:
    allowed: bool
    reason: str


def _allow(reason: str) -> AccessDecision:
    return AccessDecision(True, reason)


def _deny(reason: str) -> AccessDecision:
    return AccessDecision(False, reason)


def _invalid_clock_times(data: Mapping[str, Any]) -> AccessDecision | None:
    """Deny unless clockIn is present and clockOut, when set, is not earlier."""
    try:
        clock_in = parse_timestamp(data.get("clockIn"))
        clock_out = parse_timestamp(data.get("clockOut"))
    except ValueError:
        return _deny("unreadable timestamps")
    if clock_in is None:
        return _deny("clockIn is required")
    if clock_out is not None and clock_out < clock_in:
        return _deny("clockOut precedes clockIn")
    return None


class MembershipLookup(Protocol):
    async def role_of(self, org_id: str, uid: str) -> str | None:
        """Role from orgs/{orgId}/members/{uid}, or None when the document is absent."""
        ...


class SqlMembershipLookup:
    """Membership lookup backed by the org_membership table."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def role_of(self, org_id: str, uid: str) -> str | None:
        membership = await self.session.get(OrgMembership, (org_id, uid))
        return membership.role if membership is not None else None


class IsolationEnforcer:
    """Decides whether a principal may perform an operation on a document path."""

    def __init__(self, memberships: MembershipLookup):
        self.memberships = memberships

    async def enforce(
        self,
        principal: Principal,
        path: str,
        operation: Operation,
        *,
        data: Mapping[str, Any] | None = None,
        existing: Mapping[str, Any] | None = None,
    ) -> AccessDecision:
        """Like authorize, but raises AccessDenied on deny."""
        decision = await self.authorize(principal, path, operation, data=data, existing=existing)
        if not decision.allowed:
            raise AccessDenied(decision)
        return decision

    async def authorize(
        self,
        principal: Principal,
        path: str,
        operation: Operation,
        *,
        data: Mapping[str, Any] | None = None,
        existing: Mapping[str, Any] | None = None,
    ) -> AccessDecision:
        """Evaluate one request.

        Args:
            principal: Verified caller.
            path: Document or collection path, e.g. parents/P1/ledgers/2025-W01/lines.
            operation: Requested operation.
            data: Document as it would be after a create/update.
            existing: Stored document before an update.
        """
        segments = [s for s in path.strip("/").split("/") if s]
        if len(segments) < 2:
            return _deny("root collections are not client accessible")

        root, owner_id, rest = segments[0], segments[1], segments[2:]
        if root == "parents":
            return self._authorize_parent_scope(principal, owner_id, rest, operation)
        if root == "orgs":
            return await self._authorize_org_scope(principal, owner_id, rest, operation, data, existing)
        return _deny(f"unknown collection {root!r}")

    def _authorize_parent_scope(
        self,
        principal: Principal,
        parent_id: str,
        rest: list[str],
        operation: Operation,
    ) -> AccessDecision:
        if rest and rest[0] == "ledgers" and operation.is_write:
            return _deny("ledger lines are written by the server only")
        if operation.is_write:
            return _deny("parent documents are server-managed")

        if isinstance(principal, ParentAdminPrincipal):
            if principal.parent_id != parent_id:
                return _deny("parent admin is bound to a different parent")
            if not rest or rest[0] in ("ledgers", "contracts"):
                return _allow("parent admin reading own parent scope")
            return _deny(f"parents/*/{rest[0]} is not readable by clients")
        if isinstance(principal, MemberPrincipal):
            return _deny("tenant members cannot read parent data")
        raise TypeError(f"Unhandled principal type: {type(principal).__name__}")

    async def _authorize_org_scope(
        self,
        principal: Principal,
        org_id: str,
        rest: list[str],
        operation: Operation,
        data: Mapping[str, Any] | None,
        existing: Mapping[str, Any] | None,
    ) -> AccessDecision:
        if isinstance(principal, ParentAdminPrincipal):
            return _deny("parent admins have no access to tenant documents")
        if not isinstance(principal, MemberPrincipal):
            raise TypeError(f"Unhandled principal type: {type(principal).__name__}")

        if principal.org_id != org_id:
            return _deny("member is bound to a different tenant")

        role = await self.memberships.role_of(org_id, principal.uid)
        if role is None:
            return _deny("no membership document")

        if not rest:
            if operation == Operation.READ:
                return _allow("member reading own org")
            return _deny("org documents are server-managed")

        if rest[0] == "attendance":
            return self._authorize_attendance(principal, role, operation, data, existing)

        if operation == Operation.READ:
            return _allow("member reading own tenant")
        if operation == Operation.DELETE and rest[0] == "members":
            return _deny("memberships are server-managed")
        if role in MANAGER_ROLES:
            return _allow("manager writing own tenant")
        return _deny("staff cannot write tenant documents")

    def _authorize_attendance(
        self,
        principal: MemberPrincipal,
        role: str,
        operation: Operation,
        data: Mapping[str, Any] | None,
        existing: Mapping[str, Any] | None,
    ) -> AccessDecision:
        if operation == Operation.READ:
            return _allow("member reading own tenant attendance")
        if operation == Operation.DELETE:
            return _deny("attendance records are never deleted")
        if data is None:
            return _deny("write carries no document")

        if operation == Operation.CREATE:
            if data.get("staffId") != principal.uid:
                return _deny("staff may only clock in for themselves")
            if data.get("status") != AttendanceStatus.PENDING.value:
                return _deny("new attendance must be pending")
            invalid = _invalid_clock_times(data)
            if invalid is not None:
                return invalid
            return _allow("staff creating own pending attendance")

        # update
        if role not in MANAGER_ROLES:
            return _deny("only admins and managers update attendance")
        if existing is None:
            return _deny("update target does not exist")
        if data.get("staffId") != existing.get("staffId"):
            return _deny("staffId is immutable")
        if data.get("status") not in {s.value for s in AttendanceStatus}:
            return _deny("unknown attendance status")
        invalid = _invalid_clock_times(data)
        if invalid is not None:
            return invalid
        return _allow("manager updating tenant attendance")
