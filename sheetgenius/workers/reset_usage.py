"""Monthly usage reset job. Run at the start of each billing month."""
from datetime import datetime, timezone
import argparse
import logging
from typing import Optional

from sheetgenius.core.config import settings
from sheetgenius.core.logging import configure_logging
from sheetgenius.features.profiles.service import ProfileStore
from sheetgenius.models.plan import Plan

logger = logging.getLogger("sheetgenius.workers.reset_usage")


def reset_monthly_usage(
    *,
    plan: Optional[Plan] = None,
    store: Optional[ProfileStore] = None,
) -> dict:
    profiles = store or ProfileStore()
    started_at = datetime.now(timezone.utc)
    reset = profiles.reset_usage(plan)

    logger.info(
        "[reset_usage] usage counters reset",
        extra={"plan": plan.value if plan else "all", "profiles_reset": reset},
    )
    return {
        "plan": plan.value if plan else "all",
        "profiles_reset": reset,
        "timestamp": started_at.isoformat(),
    }


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Reset generation usage counters")
    parser.add_argument("--plan", choices=[p.value for p in Plan], default=None)
    args = parser.parse_args()
    configure_logging(settings.ENV)
    result = reset_monthly_usage(plan=Plan(args.plan) if args.plan else None)
    print(result)
