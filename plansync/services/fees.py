"""Platform fee calculation for product sales."""

import logging

from plansync.core.plans import get_catalog

logger = logging.getLogger(__name__)


def resolve_fee_percent(plan_id: str | None) -> float:
    """Fee percentage for a plan.

    An unknown plan falls back to the free tier's fee, the highest in the
    catalog, and logs the miss. This fallback lives here, not in the catalog.
    """
    catalog = get_catalog()
    plan = catalog.lookup(plan_id)
    if plan is None:
        logger.warning("Fee lookup for unknown plan %r; using free-tier fee", plan_id)
        return catalog.free.fee_percent
    return plan.fee_percent


def application_fee_cents(plan_id: str | None, amount_cents: int) -> int:
    """Fee in cents the platform keeps on a sale of ``amount_cents``."""
    return round(amount_cents * resolve_fee_percent(plan_id) / 100)
