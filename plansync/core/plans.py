"""Plan catalog — single source of truth for plan entitlements.

Built once from settings and never mutated afterwards. Lookups fail closed:
an unknown plan id resolves to ``None``, never to a default plan.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from functools import lru_cache
from types import MappingProxyType
from typing import Mapping

from plansync.core.config import Settings, get_settings
from plansync.core.errors import ConfigurationError


class PlanId(StrEnum):
    FREE = "free"
    PRO = "pro"
    BUSINESS = "business"


class BillingCycle(StrEnum):
    MONTHLY = "monthly"
    YEARLY = "yearly"


@dataclass(frozen=True)
class PlanDefinition:
    plan_id: PlanId
    name: str
    resource_limit: int | None  # None means unlimited
    fee_percent: float
    price_ids: Mapping[BillingCycle, str] = field(default_factory=dict)

    @property
    def is_free(self) -> bool:
        return self.plan_id == PlanId.FREE

    @property
    def is_unlimited(self) -> bool:
        return self.resource_limit is None


class PlanCatalog:
    """Immutable lookup table over the known plans (ordered cheapest first)."""

    def __init__(self, plans: list[PlanDefinition]) -> None:
        by_id = {p.plan_id: p for p in plans}
        if len(by_id) != len(plans):
            raise ConfigurationError("Duplicate plan id in catalog")
        if PlanId.FREE not in by_id:
            raise ConfigurationError("Plan catalog has no free plan")
        if by_id[PlanId.FREE].price_ids:
            raise ConfigurationError("The free plan cannot carry price ids")
        if sum(1 for p in plans if p.is_unlimited) > 1:
            raise ConfigurationError("At most one plan may be unlimited")

        self._order: tuple[PlanDefinition, ...] = tuple(plans)
        self._plans: Mapping[str, PlanDefinition] = MappingProxyType(
            {str(k): v for k, v in by_id.items()}
        )
        self._by_price: Mapping[str, PlanDefinition] = MappingProxyType(
            {price: p for p in plans for price in p.price_ids.values() if price}
        )

    def __iter__(self):
        return iter(self._order)

    def lookup(self, plan_id: str | None) -> PlanDefinition | None:
        if plan_id is None:
            return None
        return self._plans.get(str(plan_id))

    @property
    def free(self) -> PlanDefinition:
        return self._plans[PlanId.FREE]

    def price_id(self, plan_id: str, cycle: str) -> str | None:
        """Return the external price id for (plan, cycle), or None if unset."""
        plan = self.lookup(plan_id)
        if plan is None:
            return None
        try:
            return plan.price_ids.get(BillingCycle(cycle)) or None
        except ValueError:
            return None

    def plan_for_price(self, price_id: str | None) -> PlanDefinition | None:
        """Reverse lookup: which plan does this external price belong to."""
        if not price_id:
            return None
        return self._by_price.get(price_id)

    def lowest_paid(self) -> PlanDefinition:
        for plan in self._order:
            if not plan.is_free:
                return plan
        raise ConfigurationError("Plan catalog has no paid plan")


def build_catalog(settings: Settings) -> PlanCatalog:
    return PlanCatalog([
        PlanDefinition(
            plan_id=PlanId.FREE,
            name="Free",
            resource_limit=3,
            fee_percent=8.0,
        ),
        PlanDefinition(
            plan_id=PlanId.PRO,
            name="Pro",
            resource_limit=10,
            fee_percent=4.0,
            price_ids=MappingProxyType({
                BillingCycle.MONTHLY: settings.stripe_price_pro_monthly,
                BillingCycle.YEARLY: settings.stripe_price_pro_yearly,
            }),
        ),
        PlanDefinition(
            plan_id=PlanId.BUSINESS,
            name="Business",
            resource_limit=None,
            fee_percent=1.0,
            price_ids=MappingProxyType({
                BillingCycle.MONTHLY: settings.stripe_price_business_monthly,
                BillingCycle.YEARLY: settings.stripe_price_business_yearly,
            }),
        ),
    ])


@lru_cache
def get_catalog() -> PlanCatalog:
    return build_catalog(get_settings())
