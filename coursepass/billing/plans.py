"""
Default plan catalogue.

FREE carries the daily limits free users have always had; PREMIUM unlocks
unlimited learning; PRO adds unlimited content creation. Prices are in the
billing currency (ZMW).
"""

from __future__ import annotations

from decimal import Decimal

from coursepass.billing.constants import UNLIMITED
from coursepass.billing.constants import PlanCode
from coursepass.billing.constants import UsageType
from coursepass.billing.models import Plan

CREATION_TYPES = (
    UsageType.COURSE_CREATED,
    UsageType.LESSON_CREATED,
    UsageType.QUIZ_CREATED,
)
LEARNING_TYPES = (
    UsageType.QUIZ_TAKEN,
    UsageType.COURSE_ENROLLED,
    UsageType.VIDEO_WATCHED,
)

PLAN_CONFIG = {
    PlanCode.FREE: {
        "name": "Free",
        "description": "Try CoursePass with a few quizzes and videos a day.",
        "monthly_price": Decimal("0.00"),
        "yearly_price": Decimal("0.00"),
        "limits": {
            UsageType.QUIZ_TAKEN: 3,
            UsageType.COURSE_ENROLLED: 1,
            UsageType.VIDEO_WATCHED: 10,
            **{usage_type: 0 for usage_type in CREATION_TYPES},
        },
        "display_order": 0,
    },
    PlanCode.PREMIUM: {
        "name": "Premium",
        "description": "Unlimited quizzes, courses and videos.",
        "monthly_price": Decimal("9.99"),
        "yearly_price": Decimal("99.99"),
        "limits": {
            **{usage_type: UNLIMITED for usage_type in LEARNING_TYPES},
            **{usage_type: 0 for usage_type in CREATION_TYPES},
        },
        "display_order": 1,
    },
    PlanCode.PRO: {
        "name": "Pro",
        "description": "Everything in Premium, plus creating your own courses.",
        "monthly_price": Decimal("19.99"),
        "yearly_price": Decimal("199.99"),
        "limits": {usage_type: UNLIMITED for usage_type in UsageType.values},
        "display_order": 2,
    },
}


def _config_for(plan_code: str) -> dict:
    config = dict(PLAN_CONFIG[plan_code])
    # JSONField keys must be plain strings.
    config["limits"] = {str(k): v for k, v in config["limits"].items()}
    return config


def seed_default_plans(force_update: bool = False) -> list[tuple[Plan, str]]:
    """
    Create the default plans, optionally overwriting existing ones.

    Returns ``(plan, action)`` pairs where action is created, updated or
    exists.
    """
    results = []
    for plan_code in PLAN_CONFIG:
        config = _config_for(plan_code)
        plan, created = Plan.objects.get_or_create(code=plan_code, defaults=config)
        if created:
            results.append((plan, "created"))
        elif force_update:
            for field, value in config.items():
                setattr(plan, field, value)
            plan.save()
            results.append((plan, "updated"))
        else:
            results.append((plan, "exists"))
    return results
