from datetime import datetime, timedelta, timezone

import pytest

from billing.plans import PLANS, add_plan_duration, infer_plan_from_amount, plan_duration

BASE = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "plan,delta",
    [
        ("weekly", timedelta(days=7)),
        ("daily", timedelta(days=1)),
        ("six_hour", timedelta(hours=6)),
        ("one_hour", timedelta(hours=1)),
        ("monthly", timedelta(hours=1)),
        (None, timedelta(hours=1)),
    ],
)
def test_add_plan_duration(plan, delta):
    assert add_plan_duration(BASE, plan) == BASE + delta


@pytest.mark.parametrize("plan", PLANS)
def test_repeated_application_equals_n_periods(plan):
    current = BASE
    for _ in range(5):
        current = add_plan_duration(current, plan)
    assert current == BASE + 5 * plan_duration(plan)


def test_add_plan_duration_does_not_mutate_base():
    base = BASE
    add_plan_duration(base, "weekly")
    assert base == BASE


@pytest.mark.parametrize(
    "amount,plan",
    [(5000, "weekly"), (1000, "weekly"), (999, "daily"), (200, "daily"), (199.99, "six_hour"),
     (100, "six_hour"), (60, "one_hour"), (59, None), (None, None)],
)
def test_amount_tiers(amount, plan):
    assert infer_plan_from_amount(amount) == plan
