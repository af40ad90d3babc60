"""Enums for discount codes and the referral program."""

from django.db import models
from django.utils.translation import gettext_lazy as _


class DiscountType(models.TextChoices):
    PERCENTAGE = "percentage", _("Percentage off")
    FIXED_AMOUNT = "fixed_amount", _("Fixed amount off")
    FREE_TRIAL = "free_trial", _("Free first period")


class RewardType(models.TextChoices):
    """
    How a referral reward is paid out.

    PERCENTAGE and FIXED_AMOUNT are account credits in the billing currency,
    FREE_MONTHS extends the recipient's subscription, POINTS credits the
    points ledger.
    """

    PERCENTAGE = "percentage", _("Percentage of payment")
    FIXED_AMOUNT = "fixed_amount", _("Fixed amount")
    FREE_MONTHS = "free_months", _("Free months")
    POINTS = "points", _("Points")


class ReferralStatus(models.TextChoices):
    """
    Referral states.

    Flow:
        PENDING (referee signed up) → COMPLETED (first paid payment)
        COMPLETED → REWARDED (rewards committed)

    Every transition is a compare-and-swap on the current status.
    """

    PENDING = "pending", _("Pending")
    COMPLETED = "completed", _("Completed")
    REWARDED = "rewarded", _("Rewarded")


class RejectionReason(models.TextChoices):
    """Why a discount code was not applied. Checked in this order."""

    NOT_FOUND = "not_found", _("This discount code does not exist.")
    INACTIVE = "inactive", _("This discount code is no longer active.")
    NOT_YET_VALID = "not_yet_valid", _("This discount code is not valid yet.")
    EXPIRED = "expired", _("This discount code has expired.")
    PLAN_NOT_APPLICABLE = (
        "plan_not_applicable",
        _("This discount code does not apply to the selected plan."),
    )
    BELOW_MINIMUM = "below_minimum", _("The order amount is below the minimum.")
    USAGE_LIMIT_REACHED = (
        "usage_limit_reached",
        _("This discount code has reached its usage limit."),
    )
    PER_USER_LIMIT_REACHED = (
        "per_user_limit_reached",
        _("You have already used this discount code."),
    )
    FIRST_PERIOD_ONLY = (
        "first_period_only",
        _("This offer is only available on your first subscription."),
    )


DISCOUNT_CODE_LENGTH = 8
