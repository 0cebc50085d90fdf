"""Plan catalog construction and lookups."""

import pytest

from plansync.core.config import Settings
from plansync.core.errors import ConfigurationError
from plansync.core.plans import (
    BillingCycle,
    PlanCatalog,
    PlanDefinition,
    PlanId,
    build_catalog,
    get_catalog,
)
from plansync.services.fees import application_fee_cents, resolve_fee_percent


def test_catalog_entitlements():
    catalog = get_catalog()
    assert catalog.lookup("free").resource_limit == 3
    assert catalog.lookup("pro").resource_limit == 10
    assert catalog.lookup("business").is_unlimited
    assert [p.plan_id for p in catalog] == [PlanId.FREE, PlanId.PRO, PlanId.BUSINESS]


def test_lookup_unknown_plan_fails_closed():
    catalog = get_catalog()
    assert catalog.lookup("enterprise") is None
    assert catalog.lookup(None) is None


def test_price_id_resolution():
    catalog = get_catalog()
    assert catalog.price_id("pro", "monthly") == "price_pro_monthly"
    assert catalog.price_id("business", BillingCycle.YEARLY) == "price_business_yearly"
    assert catalog.price_id("free", "monthly") is None
    assert catalog.price_id("pro", "weekly") is None
    assert catalog.price_id("nope", "monthly") is None


def test_unset_price_resolves_to_none():
    catalog = build_catalog(Settings(stripe_price_pro_yearly=""))
    assert catalog.price_id("pro", "yearly") is None


def test_plan_for_price_reverse_lookup():
    catalog = get_catalog()
    assert catalog.plan_for_price("price_business_monthly").plan_id == PlanId.BUSINESS
    assert catalog.plan_for_price("price_unknown") is None
    assert catalog.plan_for_price(None) is None
    assert catalog.lowest_paid().plan_id == PlanId.PRO


def test_catalog_requires_free_plan():
    with pytest.raises(ConfigurationError):
        PlanCatalog([PlanDefinition(PlanId.PRO, "Pro", 10, 4.0)])


def test_catalog_rejects_priced_free_plan():
    with pytest.raises(ConfigurationError):
        PlanCatalog([
            PlanDefinition(PlanId.FREE, "Free", 3, 8.0, {BillingCycle.MONTHLY: "price_x"}),
        ])


def test_catalog_rejects_two_unlimited_plans():
    with pytest.raises(ConfigurationError):
        PlanCatalog([
            PlanDefinition(PlanId.FREE, "Free", 3, 8.0),
            PlanDefinition(PlanId.PRO, "Pro", None, 4.0),
            PlanDefinition(PlanId.BUSINESS, "Business", None, 1.0),
        ])


def test_fee_percent_per_plan():
    assert resolve_fee_percent("free") == 8.0
    assert resolve_fee_percent("pro") == 4.0
    assert resolve_fee_percent("business") == 1.0


def test_fee_unknown_plan_falls_back_to_free():
    assert resolve_fee_percent("legacy") == 8.0
    assert resolve_fee_percent(None) == 8.0


def test_application_fee_cents_rounds():
    assert application_fee_cents("pro", 10000) == 400
    assert application_fee_cents("business", 1250) == 12
    assert application_fee_cents("free", 0) == 0
