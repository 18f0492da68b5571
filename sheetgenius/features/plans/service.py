"""
sheetgenius/features/plans/service.py

Plan resolution and quotas.

Handles:
- Price id -> plan mapping (webhook reconciliation)
- Plan -> price id mapping (checkout by plan name)
- Per-plan generation quotas
"""

from typing import Optional

from sheetgenius.core.config import Settings, settings as default_settings
from sheetgenius.models.plan import Plan


def plan_for_price(price_id: Optional[str], settings: Optional[Settings] = None) -> Plan:
    """
    Map a Stripe price id to a plan tier.

    Anything that is not the configured starter or pro price resolves to
    free, including a missing price id.
    """
    cfg = settings or default_settings
    if price_id and price_id == cfg.STRIPE_STARTER_PRICE_ID:
        return Plan.STARTER
    if price_id and price_id == cfg.STRIPE_PRO_PRICE_ID:
        return Plan.PRO
    return Plan.FREE


def price_for_plan(plan: str, settings: Optional[Settings] = None) -> Optional[str]:
    """Map a paid plan name to its configured Stripe price id."""
    cfg = settings or default_settings
    price_map = {
        Plan.STARTER.value: cfg.STRIPE_STARTER_PRICE_ID,
        Plan.PRO.value: cfg.STRIPE_PRO_PRICE_ID,
    }
    return price_map.get(plan)


def quota_for(plan: Plan, settings: Optional[Settings] = None) -> Optional[int]:
    """Generations allowed per billing month. None means unlimited."""
    cfg = settings or default_settings
    quotas = {
        Plan.FREE: cfg.FREE_PLAN_QUOTA,
        Plan.STARTER: cfg.STARTER_PLAN_QUOTA,
        Plan.PRO: cfg.PRO_PLAN_QUOTA,
    }
    return quotas[Plan(plan)]


def remaining_for(plan: Plan, usage_count: int, settings: Optional[Settings] = None) -> Optional[int]:
    limit = quota_for(plan, settings)
    if limit is None:
        return None
    return max(0, limit - usage_count)
