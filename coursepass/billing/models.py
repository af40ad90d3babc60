"""
Billing models for the CoursePass subscription engine.

Key design decisions:
- Plan is a lookup table (Free, Premium, Pro) and the single source of truth
  for entitlement limits
- Subscription rows are append-only history: every activation inserts a new
  row, and "expired" is derived at read time, never stored
- Payment.gateway_tracking_id is the reconciliation idempotency key; the
  one-to-one Subscription.payment link means a payment can activate at most
  one subscription
- UsageRecord is one row per (user, usage type, day), incremented with
  conditional updates

Relationship: User ──1:N── Subscription ──N:1── Plan
              User ──1:N── Payment ──1:1── Subscription
"""

from __future__ import annotations

import uuid
from decimal import Decimal

from django.conf import settings
from django.db import models
from model_utils.models import TimeStampedModel

from coursepass.billing.constants import TERMINAL_PAYMENT_STATUSES
from coursepass.billing.constants import BillingCycle
from coursepass.billing.constants import PaymentStatus
from coursepass.billing.constants import PlanCode
from coursepass.billing.constants import SubscriptionSource
from coursepass.billing.constants import SubscriptionStatus
from coursepass.billing.constants import UsageType

MONEY_MAX_DIGITS = 12
MONEY_DECIMAL_PLACES = 2


class Plan(models.Model):
    """
    Lookup table for plan pricing and entitlements.

    ``limits`` maps a UsageType value to a per-day cap. ``-1`` means
    unlimited; a usage type missing from the map is not permitted at all.

    Usage:
        plan.get_limit(UsageType.QUIZ_TAKEN)
        plan.price_for(BillingCycle.YEARLY)
    """

    code = models.CharField(
        max_length=20,
        choices=PlanCode.choices,
        primary_key=True,
        help_text="Unique plan identifier, also used as PK.",
    )
    name = models.CharField(max_length=50, help_text="Display name for the plan.")
    description = models.TextField(
        blank=True,
        help_text="Marketing description shown on the upgrade page.",
    )
    monthly_price = models.DecimalField(
        max_digits=MONEY_MAX_DIGITS,
        decimal_places=MONEY_DECIMAL_PLACES,
        default=Decimal("0.00"),
        help_text="Price charged per month on the monthly cycle.",
    )
    yearly_price = models.DecimalField(
        max_digits=MONEY_MAX_DIGITS,
        decimal_places=MONEY_DECIMAL_PLACES,
        default=Decimal("0.00"),
        help_text="Price charged per year on the yearly cycle.",
    )
    limits = models.JSONField(
        default=dict,
        blank=True,
        help_text="Daily limits keyed by usage type. -1 = unlimited.",
    )
    display_order = models.IntegerField(
        default=0,
        help_text="Order in which plans appear on the upgrade page.",
    )

    class Meta:
        ordering = ["display_order"]

    def __str__(self) -> str:
        return self.name

    @property
    def is_free(self) -> bool:
        return self.code == PlanCode.FREE

    def get_limit(self, usage_type: str) -> int:
        """Daily limit for a usage type; 0 when the plan does not list it."""
        return int(self.limits.get(str(usage_type), 0))

    def price_for(self, billing_cycle: str) -> Decimal:
        if billing_cycle == BillingCycle.YEARLY:
            return self.yearly_price
        return self.monthly_price


class Subscription(TimeStampedModel):
    """
    One period of paid (or rewarded) access for a user.

    Rows are never updated into an expired state and never deleted; the
    lifecycle manager picks the authoritative row at read time. Only
    ``status`` (active → cancelled), ``cancelled_at``, ``cancellation_reason``
    and ``end_date`` (reward extensions) change after insert.
    """

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="subscriptions",
    )
    plan = models.ForeignKey(
        Plan,
        on_delete=models.PROTECT,  # Never delete a plan with subscriptions
        related_name="subscriptions",
    )
    status = models.CharField(
        max_length=20,
        choices=SubscriptionStatus.choices,
        default=SubscriptionStatus.ACTIVE,
    )
    billing_cycle = models.CharField(
        max_length=10,
        choices=BillingCycle.choices,
        default=BillingCycle.MONTHLY,
    )
    start_date = models.DateTimeField()
    end_date = models.DateTimeField()
    source = models.CharField(
        max_length=20,
        choices=SubscriptionSource.choices,
        default=SubscriptionSource.GATEWAY,
    )
    payment = models.OneToOneField(
        "billing.Payment",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="subscription",
        help_text="The completed payment that activated this period.",
    )
    cancelled_at = models.DateTimeField(null=True, blank=True)
    cancellation_reason = models.TextField(blank=True)

    class Meta:
        indexes = [
            models.Index(
                fields=["user", "status", "created"],
                name="subscription_user_status_idx",
            ),
        ]
        constraints = [
            # Expiry is derived, never stored.
            models.CheckConstraint(
                condition=models.Q(
                    status__in=[
                        SubscriptionStatus.ACTIVE,
                        SubscriptionStatus.CANCELLED,
                    ],
                ),
                name="subscription_status_never_stored_expired",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.user} - {self.plan_id} ({self.status} until {self.end_date:%Y-%m-%d})"


class Payment(TimeStampedModel):
    """
    A checkout attempt and its gateway outcome.

    Created PENDING by the checkout service, then written once to a terminal
    status by the reconciliation adapter. The gateway tracking id is treated
    as opaque and is the key every callback is reconciled by.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="payments",
    )
    plan = models.ForeignKey(
        Plan,
        on_delete=models.PROTECT,
        related_name="payments",
    )
    billing_cycle = models.CharField(
        max_length=10,
        choices=BillingCycle.choices,
        default=BillingCycle.MONTHLY,
    )
    amount = models.DecimalField(
        max_digits=MONEY_MAX_DIGITS,
        decimal_places=MONEY_DECIMAL_PLACES,
        help_text="Amount charged after discounts.",
    )
    original_amount = models.DecimalField(
        max_digits=MONEY_MAX_DIGITS,
        decimal_places=MONEY_DECIMAL_PLACES,
        help_text="Plan price before discounts.",
    )
    currency = models.CharField(max_length=3, default="ZMW")
    status = models.CharField(
        max_length=20,
        choices=PaymentStatus.choices,
        default=PaymentStatus.PENDING,
    )

    merchant_reference = models.CharField(
        max_length=64,
        unique=True,
        help_text="Our order id, sent to the gateway as the merchant reference.",
    )
    gateway_tracking_id = models.CharField(
        max_length=100,
        unique=True,
        null=True,
        blank=True,
        help_text="Gateway OrderTrackingId. Reconciliation key.",
    )
    gateway_status_code = models.IntegerField(null=True, blank=True)
    gateway_status_description = models.CharField(max_length=255, blank=True)
    payment_method = models.CharField(max_length=255, blank=True)
    payment_account = models.CharField(max_length=255, blank=True)
    confirmation_code = models.CharField(max_length=255, blank=True)

    discount_code = models.ForeignKey(
        "promotions.DiscountCode",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="payments",
    )
    completed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created"]
        indexes = [
            models.Index(fields=["user", "status"], name="payment_user_status_idx"),
            models.Index(fields=["status", "created"], name="payment_status_created_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.merchant_reference} {self.amount} {self.currency} ({self.status})"

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_PAYMENT_STATUSES


class UsageRecord(TimeStampedModel):
    """
    Daily usage counter for one metered action.

    Keyed by natural identity (user, usage_type, usage_date). Counts only go
    up; yesterday's rows are inert history.
    """

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="usage_records",
    )
    usage_type = models.CharField(max_length=32, choices=UsageType.choices)
    usage_date = models.DateField()
    usage_count = models.PositiveIntegerField(default=0)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["user", "usage_type", "usage_date"],
                name="usage_record_unique_per_day",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.user}: {self.usage_type} {self.usage_date} = {self.usage_count}"
