"""Organization, membership and billing contract models.

Storage shapes:
    orgs/{orgId}                          -> Org (parent_id mapping)
    orgs/{orgId}/members/{uid}            -> OrgMembership
    parents/{parentId}/contracts/{subOrg} -> BillingContract
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, Numeric, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from shift_billing.models.base import Base, TimestampMixin


class Org(TimestampMixin, Base):
    """A sub-organization (tenant). parent_id is set when it bills through a parent."""

    __tablename__ = "org"

    org_id: Mapped[str] = mapped_column(Text, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False, server_default="")
    parent_id: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (Index("org_by_parent", "parent_id"),)

    @property
    def document_path(self) -> str:
        return f"orgs/{self.org_id}"


class OrgMembership(TimestampMixin, Base):
    """Membership of a user in one tenant."""

    __tablename__ = "org_membership"

    org_id: Mapped[str] = mapped_column(
        Text, ForeignKey("org.org_id", ondelete="CASCADE"), primary_key=True
    )
    uid: Mapped[str] = mapped_column(Text, primary_key=True)
    role: Mapped[str] = mapped_column(Text, nullable=False, server_default="staff")

    __table_args__ = (
        CheckConstraint(
            "role IN ('admin', 'manager', 'staff')", name="org_membership_role_ck"
        ),
    )

    @property
    def document_path(self) -> str:
        return f"orgs/{self.org_id}/members/{self.uid}"


class BillingContract(TimestampMixin, Base):
    """Billing terms between a parent and one sub-organization.

    Written only by trusted server-side processes. rounding and period are
    stored raw; the resolver validates them and applies defaults.
    """

    __tablename__ = "billing_contract"

    parent_id: Mapped[str] = mapped_column(Text, primary_key=True)
    sub_org_id: Mapped[str] = mapped_column(Text, primary_key=True)
    bill_rate: Mapped[Decimal] = mapped_column(
        Numeric(12, 4), nullable=False, server_default="0"
    )
    rounding: Mapped[str | None] = mapped_column(Text, nullable=True)
    period: Mapped[str | None] = mapped_column(Text, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        CheckConstraint("bill_rate >= 0", name="billing_contract_rate_ck"),
    )

    @property
    def document_path(self) -> str:
        return f"parents/{self.parent_id}/contracts/{self.sub_org_id}"
