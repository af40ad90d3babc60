"""
Referral reward engine.

A referral moves ``pending → completed → rewarded``. Each step is a single
conditional UPDATE on the current status, so at most one writer ever moves a
referral forward. The reward step runs inside the reconciliation transaction
that completed the referee's first paid payment; if anything in it fails the
payment, the activation and the referral all roll back together.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING

from django.contrib.auth import get_user_model
from django.db import transaction
from django.db.models import Q
from django.utils import timezone

from coursepass.billing.constants import PaymentStatus
from coursepass.billing.exceptions import NotFoundError
from coursepass.billing.exceptions import RewardInvariantError
from coursepass.billing.exceptions import ValidationError
from coursepass.billing.lifecycle import extend_subscription
from coursepass.billing.models import Payment
from coursepass.promotions.constants import ReferralStatus
from coursepass.promotions.constants import RewardType
from coursepass.promotions.discounts import ZERO
from coursepass.promotions.discounts import normalize_code
from coursepass.promotions.discounts import quantize
from coursepass.promotions.models import PointsLedgerEntry
from coursepass.promotions.models import Referral
from coursepass.promotions.models import ReferralProgram

if TYPE_CHECKING:
    from datetime import datetime

    from coursepass.users.models import User

logger = logging.getLogger(__name__)

BELOW_MINIMUM_PAYMENT = "below_minimum_payment"


@dataclass(frozen=True)
class RewardResult:
    rewarded: bool
    referrer_amount: Decimal = ZERO
    referee_amount: Decimal = ZERO
    reason: str = ""


def compute_reward(
    reward_type: str,
    value: Decimal,
    payment_amount: Decimal,
    cap: Decimal | None,
) -> Decimal:
    """One side's reward, clamped to the program cap."""
    if reward_type == RewardType.PERCENTAGE:
        amount = quantize(payment_amount * value / Decimal(100))
    else:
        amount = quantize(value)
    if cap is not None:
        amount = min(amount, cap)
    return max(amount, ZERO)


def _pay_out(
    user: User,
    reward_type: str,
    amount: Decimal,
    referral: Referral,
    side: str,
    now: datetime,
) -> None:
    if amount <= 0:
        return
    if reward_type == RewardType.FREE_MONTHS:
        extend_subscription(user, int(amount), now=now)
    elif reward_type == RewardType.POINTS:
        PointsLedgerEntry.objects.create(
            user=user,
            points=int(amount),
            reason=f"referral_{side}",
            referral=referral,
        )
    # Percentage and fixed rewards are account credit recorded on the
    # referral row itself.
    logger.info(
        "Referral %s: %s user=%s earned %s %s",
        referral.pk,
        side,
        user.pk,
        amount,
        reward_type,
    )


@transaction.atomic
def try_reward(
    referral: Referral,
    payment: Payment,
    now: datetime | None = None,
) -> RewardResult:
    """
    Compute and commit both sides' rewards for a completed referral.

    Raises:
        RewardInvariantError: If the referral is not in the completed state,
            or another writer moved it between the check and the commit
    """
    now = now or timezone.now()

    if referral.status != ReferralStatus.COMPLETED:
        logger.critical(
            "Refusing to reward referral %s in status %s (payment=%s)",
            referral.pk,
            referral.status,
            payment.pk,
        )
        msg = f"Referral {referral.pk} is {referral.status}, not completed."
        raise RewardInvariantError(msg)

    # Terms are the ones captured at signup, even if the program has since
    # been switched off.
    program = referral.program
    if payment.amount < program.minimum_referee_payment:
        logger.info(
            "Referral %s not rewarded: payment %s below minimum %s",
            referral.pk,
            payment.amount,
            program.minimum_referee_payment,
        )
        return RewardResult(rewarded=False, reason=BELOW_MINIMUM_PAYMENT)

    referrer_amount = compute_reward(
        program.referrer_reward_type,
        program.referrer_reward_value,
        payment.amount,
        program.reward_cap,
    )
    referee_amount = compute_reward(
        program.referee_reward_type,
        program.referee_reward_value,
        payment.amount,
        program.reward_cap,
    )

    updated = Referral.objects.filter(
        pk=referral.pk,
        status=ReferralStatus.COMPLETED,
    ).update(
        status=ReferralStatus.REWARDED,
        referrer_reward_amount=referrer_amount,
        referee_reward_amount=referee_amount,
        rewarded_at=now,
        modified=now,
    )
    if not updated:
        logger.critical(
            "Referral %s was rewarded by another writer (payment=%s)",
            referral.pk,
            payment.pk,
        )
        msg = f"Referral {referral.pk} left the completed state before reward."
        raise RewardInvariantError(msg)

    referral.refresh_from_db()
    _pay_out(
        referral.referrer,
        program.referrer_reward_type,
        referrer_amount,
        referral,
        "referrer",
        now,
    )
    _pay_out(
        referral.referee,
        program.referee_reward_type,
        referee_amount,
        referral,
        "referee",
        now,
    )
    return RewardResult(
        rewarded=True,
        referrer_amount=referrer_amount,
        referee_amount=referee_amount,
    )


def complete_referral_for_payment(
    payment: Payment,
    now: datetime | None = None,
) -> RewardResult | None:
    """
    Advance the payer's pending referral on their first paid payment.

    Called from the reconciliation transaction right after the payment is
    marked completed. Returns None when there is nothing to advance.
    """
    now = now or timezone.now()
    if payment.amount <= 0:
        return None

    referral = Referral.objects.filter(
        referee_id=payment.user_id,
        status=ReferralStatus.PENDING,
    ).first()
    if referral is None:
        return None

    paid_before = (
        Payment.objects.filter(
            user_id=payment.user_id,
            status=PaymentStatus.COMPLETED,
            amount__gt=0,
        )
        .exclude(pk=payment.pk)
        .exists()
    )
    if paid_before:
        return None

    advanced = Referral.objects.filter(
        pk=referral.pk,
        status=ReferralStatus.PENDING,
    ).update(
        status=ReferralStatus.COMPLETED,
        qualifying_payment=payment,
        completed_at=now,
        modified=now,
    )
    if not advanced:
        logger.warning("Referral %s already advanced by another writer", referral.pk)
        return None

    referral.refresh_from_db()
    logger.info(
        "Referral %s completed by payment %s",
        referral.pk,
        payment.pk,
    )
    return try_reward(referral, payment, now=now)


def get_live_program(now: datetime | None = None) -> ReferralProgram | None:
    now = now or timezone.now()
    return (
        ReferralProgram.objects.filter(is_active=True, valid_from__lte=now)
        .filter(Q(valid_until__isnull=True) | Q(valid_until__gt=now))
        .order_by("-created")
        .first()
    )


def register_referral(
    referee: User,
    referral_code: str,
    now: datetime | None = None,
) -> Referral:
    """
    Record that ``referee`` signed up with someone's personal code.

    Raises:
        NotFoundError: If no user owns the code
        ValidationError: Self-referral, already referred, already paid, or
            no live referral program
    """
    now = now or timezone.now()
    code = normalize_code(referral_code)

    try:
        referrer = get_user_model().objects.get(referral_code=code)
    except get_user_model().DoesNotExist as exc:
        raise NotFoundError(
            "This referral code does not exist.",
            code="referral_code_not_found",
        ) from exc

    if referrer.pk == referee.pk:
        raise ValidationError("You cannot refer yourself.", code="self_referral")
    if Referral.objects.filter(referee=referee).exists():
        raise ValidationError(
            "You have already been referred.",
            code="already_referred",
        )
    if Payment.objects.filter(
        user=referee,
        status=PaymentStatus.COMPLETED,
        amount__gt=0,
    ).exists():
        raise ValidationError(
            "Referral codes only apply before your first payment.",
            code="already_paid",
        )

    program = get_live_program(now)
    if program is None:
        raise ValidationError(
            "The referral program has expired.",
            code="program_expired",
        )

    with transaction.atomic():
        # Re-check under the referee lock; a concurrent sign-up may have
        # landed since the read above.
        get_user_model().objects.select_for_update().get(pk=referee.pk)
        if Referral.objects.filter(referee=referee).exists():
            raise ValidationError(
                "You have already been referred.",
                code="already_referred",
            )
        referral = Referral.objects.create(
            referrer=referrer,
            referee=referee,
            program=program,
            referral_code=code,
            referred_at=now,
        )

    logger.info(
        "Registered referral %s: referrer=%s referee=%s program=%s",
        referral.pk,
        referrer.pk,
        referee.pk,
        program.pk,
    )
    return referral
