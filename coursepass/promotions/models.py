"""
Promotions models: discount codes and the referral program.

Key design decisions:
- DiscountCode.current_usage is claimed with a conditional increment, never
  read-modify-write, so a code with usage_limit=N is redeemed at most N times
- DiscountRedemption is unique per payment
- Referral is unique per referee; its status only moves forward through
  compare-and-swap updates in the referral engine
- Points are an append-only ledger, summed on read

Relationship: DiscountCode ──1:N── DiscountRedemption ──1:1── Payment
              ReferralProgram ──1:N── Referral ──N:1── User (referrer)
"""

from __future__ import annotations

from decimal import Decimal

from django.conf import settings
from django.db import models
from django.db.models import Sum
from django.utils import timezone
from model_utils.models import TimeStampedModel

from coursepass.billing.models import MONEY_DECIMAL_PLACES
from coursepass.billing.models import MONEY_MAX_DIGITS
from coursepass.promotions.constants import DiscountType
from coursepass.promotions.constants import ReferralStatus
from coursepass.promotions.constants import RewardType


def _money(**kwargs):
    return models.DecimalField(
        max_digits=MONEY_MAX_DIGITS,
        decimal_places=MONEY_DECIMAL_PLACES,
        **kwargs,
    )


class DiscountCode(TimeStampedModel):
    """
    A promotional code applied at checkout.

    ``applicable_plans`` is a list of plan codes; an empty list means every
    plan. ``usage_limit`` of None means unlimited global redemptions.
    """

    code = models.CharField(
        max_length=32,
        unique=True,
        help_text="Code customers type at checkout. Stored upper-case.",
    )
    name = models.CharField(max_length=100)
    description = models.TextField(blank=True)

    discount_type = models.CharField(
        max_length=20,
        choices=DiscountType.choices,
        default=DiscountType.PERCENTAGE,
    )
    discount_value = _money(
        default=Decimal("0.00"),
        help_text="Percent (0-100) or amount, depending on discount type.",
    )
    applicable_plans = models.JSONField(
        default=list,
        blank=True,
        help_text="Plan codes this code applies to. Empty = all plans.",
    )
    minimum_amount = _money(default=Decimal("0.00"))
    maximum_discount = _money(
        null=True,
        blank=True,
        help_text="Cap on the discount for percentage codes.",
    )

    usage_limit = models.PositiveIntegerField(
        null=True,
        blank=True,
        help_text="Total redemptions allowed. Empty = unlimited.",
    )
    usage_limit_per_user = models.PositiveIntegerField(default=1)
    current_usage = models.PositiveIntegerField(default=0)

    valid_from = models.DateTimeField(default=timezone.now)
    valid_until = models.DateTimeField(null=True, blank=True)
    is_active = models.BooleanField(default=True)
    campaign_name = models.CharField(max_length=100, blank=True)

    class Meta:
        ordering = ["-created"]
        constraints = [
            models.CheckConstraint(
                condition=(
                    models.Q(usage_limit__isnull=True)
                    | models.Q(current_usage__lte=models.F("usage_limit"))
                ),
                name="discount_code_usage_within_limit",
            ),
        ]

    def __str__(self) -> str:
        return self.code

    def save(self, *args, **kwargs):
        self.code = self.code.strip().upper()
        super().save(*args, **kwargs)

    def applies_to_plan(self, plan_code: str) -> bool:
        return not self.applicable_plans or plan_code in self.applicable_plans


class DiscountRedemption(models.Model):
    """One use of a discount code against one payment."""

    code = models.ForeignKey(
        DiscountCode,
        on_delete=models.PROTECT,
        related_name="redemptions",
    )
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="discount_redemptions",
    )
    payment = models.OneToOneField(
        "billing.Payment",
        on_delete=models.CASCADE,
        related_name="discount_redemption",
    )
    discount_amount = _money()
    applied_at = models.DateTimeField(default=timezone.now)

    class Meta:
        indexes = [
            models.Index(fields=["code", "user"], name="redemption_code_user_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.code} → {self.user} ({self.discount_amount})"


class ReferralProgram(TimeStampedModel):
    """Reward terms for referrals made while the program is live."""

    name = models.CharField(max_length=100)
    description = models.TextField(blank=True)

    referrer_reward_type = models.CharField(
        max_length=20,
        choices=RewardType.choices,
        default=RewardType.PERCENTAGE,
    )
    referrer_reward_value = _money(default=Decimal("0.00"))
    referee_reward_type = models.CharField(
        max_length=20,
        choices=RewardType.choices,
        default=RewardType.PERCENTAGE,
    )
    referee_reward_value = _money(default=Decimal("0.00"))

    minimum_referee_payment = _money(
        default=Decimal("0.00"),
        help_text="Smallest first payment that earns a reward.",
    )
    reward_cap = _money(
        null=True,
        blank=True,
        help_text="Maximum reward per side. Empty = uncapped.",
    )

    valid_from = models.DateTimeField(default=timezone.now)
    valid_until = models.DateTimeField(null=True, blank=True)
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ["-created"]

    def __str__(self) -> str:
        return self.name

    def is_live(self, now=None) -> bool:
        now = now or timezone.now()
        if not self.is_active or now < self.valid_from:
            return False
        return self.valid_until is None or now < self.valid_until


class Referral(TimeStampedModel):
    """
    A referee signed up with a referrer's code.

    The program is captured at signup; later deactivating the program does
    not void referrals already made under it.
    """

    referrer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="referrals_made",
    )
    referee = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="referral",
    )
    program = models.ForeignKey(
        ReferralProgram,
        on_delete=models.PROTECT,
        related_name="referrals",
    )
    referral_code = models.CharField(max_length=16)
    status = models.CharField(
        max_length=20,
        choices=ReferralStatus.choices,
        default=ReferralStatus.PENDING,
    )
    qualifying_payment = models.OneToOneField(
        "billing.Payment",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="qualified_referral",
    )
    referrer_reward_amount = _money(default=Decimal("0.00"))
    referee_reward_amount = _money(default=Decimal("0.00"))

    referred_at = models.DateTimeField(default=timezone.now)
    completed_at = models.DateTimeField(null=True, blank=True)
    rewarded_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        indexes = [
            models.Index(fields=["referrer", "status"], name="referral_referrer_status_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=~models.Q(referrer=models.F("referee")),
                name="referral_not_self",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.referrer} → {self.referee} ({self.status})"


class PointsLedgerEntry(TimeStampedModel):
    """Append-only points credit."""

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="points_entries",
    )
    points = models.IntegerField()
    reason = models.CharField(max_length=100)
    referral = models.ForeignKey(
        Referral,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="points_entries",
    )

    class Meta:
        ordering = ["-created"]
        verbose_name_plural = "points ledger entries"

    def __str__(self) -> str:
        return f"{self.user}: {self.points:+d} ({self.reason})"

    @classmethod
    def balance_for(cls, user) -> int:
        return cls.objects.filter(user=user).aggregate(total=Sum("points"))["total"] or 0
