"""Resolution of a sub-organization's parent and billing contract."""

from __future__ import annotations

from decimal import Decimal, InvalidOperation

from sqlalchemy.ext.asyncio import AsyncSession

from shift_billing.calculators.types import Contract, PeriodType, RoundingPolicy
from shift_billing.config import BillingConfig
from shift_billing.exceptions import InvalidContractError
from shift_billing.models import BillingContract, Org


class ContractResolver:
    """Looks up orgs/{orgId} -> parentId and parents/{parentId}/contracts/{subOrgId}.

    Missing rounding or period values fall back to the configured defaults.
    Values outside the known policies raise InvalidContractError rather than
    being guessed.
    """

    def __init__(self, session: AsyncSession, config: BillingConfig | None = None):
        self.session = session
        self.config = config or BillingConfig()

    async def parent_for_org(self, org_id: str) -> str | None:
        """Parent (billing) organization for a tenant, or None when unmapped."""
        org = await self.session.get(Org, org_id)
        if org is None or not org.parent_id:
            return None
        return org.parent_id

    async def contract_for(self, parent_id: str, sub_org_id: str) -> Contract | None:
        """Billing contract between parent and sub-org, or None when absent."""
        row = await self.session.get(BillingContract, (parent_id, sub_org_id))
        if row is None:
            return None

        try:
            rounding = RoundingPolicy(row.rounding) if row.rounding else self.config.default_rounding
        except ValueError:
            raise InvalidContractError(parent_id, sub_org_id, "rounding", row.rounding) from None

        try:
            period = PeriodType(row.period) if row.period else self.config.default_period
        except ValueError:
            raise InvalidContractError(parent_id, sub_org_id, "period", row.period) from None

        try:
            bill_rate = Decimal(str(row.bill_rate if row.bill_rate is not None else 0))
        except InvalidOperation:
            raise InvalidContractError(parent_id, sub_org_id, "bill_rate", row.bill_rate) from None
        if bill_rate < 0 or not bill_rate.is_finite():
            raise InvalidContractError(parent_id, sub_org_id, "bill_rate", row.bill_rate)

        return Contract(
            parent_id=parent_id,
            sub_org_id=sub_org_id,
            bill_rate=bill_rate,
            rounding=rounding,
            period=period,
        )
