from datetime import datetime, timedelta
from typing import Optional

WEEKLY = "weekly"
DAILY = "daily"
SIX_HOUR = "six_hour"
ONE_HOUR = "one_hour"

PLANS = (WEEKLY, DAILY, SIX_HOUR, ONE_HOUR)
DEFAULT_PLAN = DAILY

PLAN_DURATIONS = {
    WEEKLY: timedelta(days=7),
    DAILY: timedelta(days=1),
    SIX_HOUR: timedelta(hours=6),
    ONE_HOUR: timedelta(hours=1),
}

# (minimum amount in KES, plan), highest tier first
AMOUNT_TIERS = (
    (1000, WEEKLY),
    (200, DAILY),
    (100, SIX_HOUR),
    (60, ONE_HOUR),
)


def plan_duration(plan: Optional[str]) -> timedelta:
    return PLAN_DURATIONS.get(plan, PLAN_DURATIONS[ONE_HOUR])


def add_plan_duration(base: datetime, plan: Optional[str]) -> datetime:
    """Expiry after one period of `plan` starting at `base`. Unknown plans buy one hour."""
    return base + plan_duration(plan)


def infer_plan_from_amount(amount: Optional[float]) -> Optional[str]:
    if amount is None:
        return None
    for minimum, plan in AMOUNT_TIERS:
        if amount >= minimum:
            return plan
    return None
