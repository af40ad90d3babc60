"""
Discount code engine.

Two phases:

1. ``validate_and_price`` is a read-only check used to show the customer a
   price. Checks run in a fixed order and the first failure wins.
2. ``redeem`` runs inside the checkout transaction. It locks the code row,
   re-runs every check, then claims one unit with a conditional increment
   guarded by ``current_usage < usage_limit``. A code with ``usage_limit=N``
   can therefore be redeemed at most N times no matter how many checkouts
   race for it.
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from decimal import ROUND_HALF_UP
from decimal import Decimal
from typing import TYPE_CHECKING

from django.db import transaction
from django.db.models import F
from django.utils import timezone

from coursepass.billing.constants import PaymentStatus
from coursepass.billing.constants import PlanCode
from coursepass.billing.exceptions import ConcurrencyConflictError
from coursepass.billing.exceptions import NotFoundError
from coursepass.billing.exceptions import ValidationError
from coursepass.billing.models import Payment
from coursepass.promotions.constants import DISCOUNT_CODE_LENGTH
from coursepass.promotions.constants import DiscountType
from coursepass.promotions.constants import RejectionReason
from coursepass.promotions.models import DiscountCode
from coursepass.promotions.models import DiscountRedemption
from coursepass.users.models import REFERRAL_CODE_CHARS

if TYPE_CHECKING:
    from datetime import datetime

    from coursepass.users.models import User

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

# Rejections that can only appear between validation and redemption because
# another checkout claimed the last unit.
RACE_REJECTIONS = frozenset(
    {
        RejectionReason.USAGE_LIMIT_REACHED,
        RejectionReason.PER_USER_LIMIT_REACHED,
    },
)


def quantize(amount: Decimal) -> Decimal:
    return Decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()


@dataclass(frozen=True)
class PricingResult:
    valid: bool
    original_amount: Decimal
    discounted_amount: Decimal
    discount_amount: Decimal
    rejection_reason: str | None = None
    discount_code: DiscountCode | None = None

    @property
    def message(self) -> str:
        if self.rejection_reason:
            return str(RejectionReason(self.rejection_reason).label)
        return ""


def apply_discount(discount_code: DiscountCode, amount: Decimal) -> tuple[Decimal, Decimal]:
    """Return ``(discounted_amount, discount_amount)`` for a valid code."""
    amount = quantize(amount)
    value = discount_code.discount_value

    if discount_code.discount_type == DiscountType.PERCENTAGE:
        discount = quantize(amount * value / Decimal(100))
        if discount_code.maximum_discount is not None:
            discount = min(discount, discount_code.maximum_discount)
        discounted = max(amount - discount, ZERO)
    elif discount_code.discount_type == DiscountType.FIXED_AMOUNT:
        discounted = max(amount - value, ZERO)
    else:
        discounted = ZERO

    discounted = quantize(discounted)
    return discounted, quantize(amount - discounted)


def _has_paid_before(user: User) -> bool:
    return (
        Payment.objects.filter(user=user, status=PaymentStatus.COMPLETED)
        .exclude(plan_id=PlanCode.FREE)
        .exists()
    )


def _rejection_reason(
    discount_code: DiscountCode,
    user: User,
    plan_code: str,
    amount: Decimal,
    now: datetime,
) -> str | None:
    if not discount_code.is_active:
        return RejectionReason.INACTIVE
    if now < discount_code.valid_from:
        return RejectionReason.NOT_YET_VALID
    if discount_code.valid_until is not None and now >= discount_code.valid_until:
        return RejectionReason.EXPIRED
    if not discount_code.applies_to_plan(plan_code):
        return RejectionReason.PLAN_NOT_APPLICABLE
    if amount < discount_code.minimum_amount:
        return RejectionReason.BELOW_MINIMUM
    if (
        discount_code.usage_limit is not None
        and discount_code.current_usage >= discount_code.usage_limit
    ):
        return RejectionReason.USAGE_LIMIT_REACHED

    used_by_user = DiscountRedemption.objects.filter(
        code=discount_code,
        user=user,
    ).count()
    if used_by_user >= discount_code.usage_limit_per_user:
        return RejectionReason.PER_USER_LIMIT_REACHED

    if discount_code.discount_type == DiscountType.FREE_TRIAL and _has_paid_before(user):
        return RejectionReason.FIRST_PERIOD_ONLY
    return None


def validate_and_price(
    code: str,
    user: User,
    plan_code: str,
    amount: Decimal,
    now: datetime | None = None,
) -> PricingResult:
    """
    Check a code against a prospective purchase and price it.

    Never mutates anything. A rejected code prices at the original amount.
    """
    now = now or timezone.now()
    amount = quantize(amount)

    discount_code = DiscountCode.objects.filter(code=normalize_code(code)).first()
    if discount_code is None:
        reason = RejectionReason.NOT_FOUND
    else:
        reason = _rejection_reason(discount_code, user, plan_code, amount, now)

    if reason:
        logger.info(
            "Discount code %r rejected for user=%s plan=%s: %s",
            code,
            user.pk,
            plan_code,
            reason,
        )
        return PricingResult(
            valid=False,
            original_amount=amount,
            discounted_amount=amount,
            discount_amount=ZERO,
            rejection_reason=str(reason),
            discount_code=discount_code,
        )

    discounted, discount = apply_discount(discount_code, amount)
    return PricingResult(
        valid=True,
        original_amount=amount,
        discounted_amount=discounted,
        discount_amount=discount,
        discount_code=discount_code,
    )


@transaction.atomic
def redeem(
    code: str,
    user: User,
    payment: Payment,
    now: datetime | None = None,
) -> DiscountRedemption:
    """
    Claim one use of a code for a payment.

    Raises:
        NotFoundError: If the code does not exist
        ConcurrencyConflictError: If the code ran out since it was validated
        ValidationError: If the code no longer applies for any other reason
    """
    now = now or timezone.now()
    try:
        discount_code = DiscountCode.objects.select_for_update().get(
            code=normalize_code(code),
        )
    except DiscountCode.DoesNotExist as exc:
        raise NotFoundError(
            str(RejectionReason.NOT_FOUND.label),
            code=RejectionReason.NOT_FOUND,
        ) from exc

    reason = _rejection_reason(
        discount_code,
        user,
        payment.plan_id,
        payment.original_amount,
        now,
    )
    if reason in RACE_REJECTIONS:
        logger.warning(
            "Discount code %s lost a redemption race for user=%s: %s",
            discount_code.code,
            user.pk,
            reason,
        )
        raise ConcurrencyConflictError
    if reason:
        raise ValidationError(str(RejectionReason(reason).label), code=reason)

    claim = DiscountCode.objects.filter(pk=discount_code.pk)
    if discount_code.usage_limit is not None:
        claim = claim.filter(current_usage__lt=F("usage_limit"))
    if not claim.update(current_usage=F("current_usage") + 1, modified=now):
        logger.warning(
            "Discount code %s usage limit reached at commit for user=%s",
            discount_code.code,
            user.pk,
        )
        raise ConcurrencyConflictError

    _discounted, discount = apply_discount(discount_code, payment.original_amount)
    redemption = DiscountRedemption.objects.create(
        code=discount_code,
        user=user,
        payment=payment,
        discount_amount=discount,
        applied_at=now,
    )
    logger.info(
        "Redeemed discount code %s for user=%s payment=%s (-%s)",
        discount_code.code,
        user.pk,
        payment.pk,
        discount,
    )
    return redemption


def set_code_active(code: str, is_active: bool) -> DiscountCode:
    updated = DiscountCode.objects.filter(code=normalize_code(code)).update(
        is_active=is_active,
        modified=timezone.now(),
    )
    if not updated:
        raise NotFoundError(
            str(RejectionReason.NOT_FOUND.label),
            code=RejectionReason.NOT_FOUND,
        )
    logger.info("Discount code %s is_active=%s", normalize_code(code), is_active)
    return DiscountCode.objects.get(code=normalize_code(code))


def generate_code(length: int = DISCOUNT_CODE_LENGTH) -> str:
    """Random unused code of upper-case letters and digits."""
    while True:
        code = "".join(secrets.choice(REFERRAL_CODE_CHARS) for _ in range(length))
        if not DiscountCode.objects.filter(code=code).exists():
            return code
