"""
Billing constants for the subscription engine.

These enums define the plan codes, subscription lifecycle states, payment
states and metered usage types used throughout the billing and promotions
apps. PlanCode values serve as primary keys for the Plan lookup table.
"""

from django.db import models
from django.utils.translation import gettext_lazy as _


class PlanCode(models.TextChoices):
    """
    Plan codes used as primary key for Plan model.

    FREE is the default tier for users with no live subscription; it is
    never purchased.
    """

    FREE = "FREE", _("Free")
    PREMIUM = "PREMIUM", _("Premium")
    PRO = "PRO", _("Pro")


class SubscriptionStatus(models.TextChoices):
    """
    Subscription lifecycle states.

    Flow:
        (none) → ACTIVE (completed payment reconciled)
        ACTIVE → CANCELLED (user cancels; access kept until end_date)
        ACTIVE | CANCELLED → EXPIRED (now >= end_date)

    EXPIRED is derived at read time by lifecycle.derive_subscription_status
    and is never stored on a Subscription row.
    """

    ACTIVE = "active", _("Active")
    CANCELLED = "cancelled", _("Cancelled")
    EXPIRED = "expired", _("Expired")


class BillingCycle(models.TextChoices):
    MONTHLY = "monthly", _("Monthly")
    YEARLY = "yearly", _("Yearly")


class SubscriptionSource(models.TextChoices):
    """Where a subscription row (or view) came from."""

    GATEWAY = "gateway", _("Payment gateway")
    LEGACY_PROFILE = "legacy_profile", _("Legacy profile")
    REFERRAL_REWARD = "referral_reward", _("Referral reward")


class PaymentStatus(models.TextChoices):
    """
    Payment states.

    A payment is created PENDING at checkout and written exactly once to a
    terminal state by the reconciliation adapter.
    """

    PENDING = "pending", _("Pending")
    COMPLETED = "completed", _("Completed")
    FAILED = "failed", _("Failed")
    CANCELLED = "cancelled", _("Cancelled")


TERMINAL_PAYMENT_STATUSES = frozenset(
    {
        PaymentStatus.COMPLETED,
        PaymentStatus.FAILED,
        PaymentStatus.CANCELLED,
    },
)


class UsageType(models.TextChoices):
    """Metered actions. Limits are per user per calendar day."""

    QUIZ_TAKEN = "quiz_taken", _("Quiz taken")
    COURSE_ENROLLED = "course_enrolled", _("Course enrolled")
    VIDEO_WATCHED = "video_watched", _("Video watched")
    COURSE_CREATED = "course_created", _("Course created")
    LESSON_CREATED = "lesson_created", _("Lesson created")
    QUIZ_CREATED = "quiz_created", _("Quiz created")


# Limit value meaning "no cap".
UNLIMITED = -1


class GatewayStatusCode(models.IntegerChoices):
    """
    Transaction status codes as read from GetTransactionStatus.

    Note: Pesapal v3 documents 0 INVALID, 1 COMPLETED, 2 FAILED and
    3 REVERSED. This mapping (2 pending, 3 failed) is the one the mobile and
    web clients already shipped with, and it is kept so existing payment rows
    keep their meaning. Only 1 is treated as paid either way. Do not read
    this enum as the gateway contract when changing it.
    """

    COMPLETED = 1, _("Completed")
    PENDING = 2, _("Pending")
    FAILED = 3, _("Failed")
