"""
Subscription lifecycle manager.

States and transitions:

    none ──(completed payment)──▶ active ──(user cancels)──▶ cancelled
                                    │                           │
                                    └──────(now >= end_date)────┴──▶ expired

- ``none → active`` happens only when the reconciliation adapter observes a
  completed payment (or a zero-amount checkout). Each activation inserts a
  new Subscription row, so re-entry from expired looks exactly like the first
  activation and history is preserved.
- ``active → cancelled`` is user-initiated, needs a reason, keeps end_date,
  and is idempotent.
- ``expired`` is never written. Every read goes through
  ``derive_subscription_status`` so a stale "active" row can never grant
  access past its end date.

Usage:
    effective = resolve_effective_subscription(user)
    if effective and effective.has_access:
        ...
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from dateutil.relativedelta import relativedelta
from django.contrib.auth import get_user_model
from django.db import transaction
from django.utils import timezone

from coursepass.billing.constants import BillingCycle
from coursepass.billing.constants import PlanCode
from coursepass.billing.constants import SubscriptionSource
from coursepass.billing.constants import SubscriptionStatus
from coursepass.billing.exceptions import NotFoundError
from coursepass.billing.exceptions import ValidationError
from coursepass.billing.models import Plan
from coursepass.billing.models import Subscription

if TYPE_CHECKING:
    from datetime import datetime

    from coursepass.billing.models import Payment
    from coursepass.users.models import User

logger = logging.getLogger(__name__)

LIVE_STATUSES = (SubscriptionStatus.ACTIVE, SubscriptionStatus.CANCELLED)


def derive_subscription_status(
    status: str,
    end_date: datetime | None,
    now: datetime,
) -> str:
    """
    Apply the temporal expiry rule to a stored status.

    This is the only place expiry is decided. A period with no end date has
    nothing to grant and reads as expired.
    """
    if status == SubscriptionStatus.EXPIRED:
        return SubscriptionStatus.EXPIRED
    if end_date is None or now >= end_date:
        return SubscriptionStatus.EXPIRED
    return status


def period_delta(billing_cycle: str) -> relativedelta:
    if billing_cycle == BillingCycle.YEARLY:
        return relativedelta(years=1)
    return relativedelta(months=1)


@dataclass(frozen=True)
class EffectiveSubscription:
    """
    Read-time view of a user's authoritative subscription.

    ``status`` is already derived: a row stored as active whose end date has
    passed shows up here as expired. ``subscription`` is None for views
    synthesized from the legacy profile fields.
    """

    user_id: int
    plan_code: str
    status: str
    billing_cycle: str
    start_date: datetime | None
    end_date: datetime | None
    source: str
    subscription: Subscription | None = None

    @property
    def has_access(self) -> bool:
        # Cancelled keeps access until end_date; the derivation already
        # turned anything past end_date into expired.
        return self.status in LIVE_STATUSES

    @property
    def is_cancelled(self) -> bool:
        return self.status == SubscriptionStatus.CANCELLED


def _view_from_row(row: Subscription, now: datetime) -> EffectiveSubscription:
    return EffectiveSubscription(
        user_id=row.user_id,
        plan_code=row.plan_id,
        status=derive_subscription_status(row.status, row.end_date, now),
        billing_cycle=row.billing_cycle,
        start_date=row.start_date,
        end_date=row.end_date,
        source=row.source,
        subscription=row,
    )


def _view_from_profile(user: User, now: datetime) -> EffectiveSubscription | None:
    """Synthesize a view for users billed before Subscription rows existed."""
    if user.subscription_tier == PlanCode.FREE or not user.subscription_end_date:
        return None
    return EffectiveSubscription(
        user_id=user.pk,
        plan_code=user.subscription_tier,
        status=derive_subscription_status(
            user.subscription_status or SubscriptionStatus.ACTIVE,
            user.subscription_end_date,
            now,
        ),
        billing_cycle=BillingCycle.MONTHLY,
        start_date=None,
        end_date=user.subscription_end_date,
        source=SubscriptionSource.LEGACY_PROFILE,
    )


def resolve_effective_subscription(
    user: User,
    now: datetime | None = None,
) -> EffectiveSubscription | None:
    """
    Pick the authoritative subscription for a user and derive its status.

    Preference order:
    1. the most recent active row still inside its period
    2. the most recent cancelled row still inside its period
    3. an expired view of the most recent active row (then cancelled row)
    4. the legacy profile fields
    Returns None for users on the free tier with no history.
    """
    now = now or timezone.now()

    rows = list(
        Subscription.objects.filter(user=user, status__in=LIVE_STATUSES)
        .select_related("plan")
        .order_by("-created", "-pk"),
    )
    if not rows:
        return _view_from_profile(user, now)

    def rank(row: Subscription) -> tuple[bool, bool]:
        expired = (
            derive_subscription_status(row.status, row.end_date, now)
            == SubscriptionStatus.EXPIRED
        )
        return (expired, row.status != SubscriptionStatus.ACTIVE)

    # sorted() is stable, so newest-first order survives within each rank.
    chosen = sorted(rows, key=rank)[0]
    return _view_from_row(chosen, now)


def get_effective_plan(user: User, now: datetime | None = None) -> Plan:
    """
    Plan whose entitlements apply to the user right now.

    Falls back to FREE when the user has no access. If the FREE plan has not
    been seeded an unsaved empty plan is returned, which permits nothing.
    """
    effective = resolve_effective_subscription(user, now)
    code = effective.plan_code if effective and effective.has_access else PlanCode.FREE
    plan = Plan.objects.filter(code=code).first()
    if plan is None:
        logger.warning("Plan %s not seeded; applying empty limits", code)
        plan = Plan(code=code, name=code.title(), limits={})
    return plan


def sync_profile(user: User, now: datetime | None = None) -> None:
    """
    Copy the resolved subscription onto the user's profile fast-path fields.

    Called after every transition. Users with no Subscription rows keep
    whatever legacy values they already have.
    """
    now = now or timezone.now()
    effective = resolve_effective_subscription(user, now)
    if effective is None or effective.source == SubscriptionSource.LEGACY_PROFILE:
        return

    tier = effective.plan_code if effective.has_access else PlanCode.FREE
    get_user_model().objects.filter(pk=user.pk).update(
        subscription_tier=tier,
        subscription_status=effective.status,
        subscription_end_date=effective.end_date,
    )
    user.subscription_tier = tier
    user.subscription_status = effective.status
    user.subscription_end_date = effective.end_date


@transaction.atomic
def activate_subscription(
    payment: Payment,
    now: datetime | None = None,
) -> Subscription:
    """
    Start a new subscription period for a completed payment.

    Must be called from inside the transaction that marks the payment
    completed. The one-to-one payment link makes a second activation for the
    same payment fail with an IntegrityError instead of granting twice.
    """
    start = now or timezone.now()
    subscription = Subscription.objects.create(
        user=payment.user,
        plan=payment.plan,
        status=SubscriptionStatus.ACTIVE,
        billing_cycle=payment.billing_cycle,
        start_date=start,
        end_date=start + period_delta(payment.billing_cycle),
        source=SubscriptionSource.GATEWAY,
        payment=payment,
    )
    sync_profile(payment.user, now=start)

    logger.info(
        "Activated subscription %s for user=%s plan=%s until %s (payment=%s)",
        subscription.pk,
        payment.user_id,
        payment.plan_id,
        subscription.end_date.isoformat(),
        payment.pk,
    )
    return subscription


@transaction.atomic
def cancel_subscription(
    user: User,
    reason: str,
    now: datetime | None = None,
) -> Subscription:
    """
    Cancel the user's current subscription at period end.

    Access is kept until end_date. Cancelling an already-cancelled
    subscription returns it unchanged.

    Raises:
        ValidationError: If no reason is given
        NotFoundError: If the user has nothing live to cancel
    """
    if not reason or not reason.strip():
        raise ValidationError(
            "Please provide a reason for cancellation.",
            code="reason_required",
        )

    now = now or timezone.now()
    effective = resolve_effective_subscription(user, now)
    if effective is None or effective.subscription is None or not effective.has_access:
        raise NotFoundError(
            "No active subscription found to cancel.",
            code="no_active_subscription",
        )

    subscription = Subscription.objects.select_for_update().get(
        pk=effective.subscription.pk,
    )
    if subscription.status == SubscriptionStatus.CANCELLED:
        logger.info(
            "Subscription %s for user=%s already cancelled; no-op",
            subscription.pk,
            user.pk,
        )
        return subscription

    subscription.status = SubscriptionStatus.CANCELLED
    subscription.cancelled_at = now
    subscription.cancellation_reason = reason.strip()
    subscription.save(
        update_fields=["status", "cancelled_at", "cancellation_reason", "modified"],
    )
    sync_profile(user, now=now)

    logger.info(
        "Cancelled subscription %s for user=%s; access until %s",
        subscription.pk,
        user.pk,
        subscription.end_date.isoformat(),
    )
    return subscription


@transaction.atomic
def extend_subscription(
    user: User,
    months: int,
    plan: Plan | None = None,
    now: datetime | None = None,
) -> Subscription | None:
    """
    Push the user's live subscription end date forward by whole months.

    Used for free-month referral rewards. Users with nothing live get a new
    reward period starting now on ``plan`` (their last plan, else PREMIUM).
    """
    if months <= 0:
        return None

    now = now or timezone.now()
    effective = resolve_effective_subscription(user, now)

    if effective and effective.subscription is not None and effective.has_access:
        subscription = Subscription.objects.select_for_update().get(
            pk=effective.subscription.pk,
        )
        subscription.end_date = subscription.end_date + relativedelta(months=months)
        subscription.save(update_fields=["end_date", "modified"])
    else:
        if plan is None:
            last_code = effective.plan_code if effective else PlanCode.PREMIUM
            plan = Plan.objects.get(code=last_code)
        subscription = Subscription.objects.create(
            user=user,
            plan=plan,
            status=SubscriptionStatus.ACTIVE,
            billing_cycle=BillingCycle.MONTHLY,
            start_date=now,
            end_date=now + relativedelta(months=months),
            source=SubscriptionSource.REFERRAL_REWARD,
        )

    sync_profile(user, now=now)
    logger.info(
        "Extended subscription %s for user=%s by %d month(s) to %s",
        subscription.pk,
        user.pk,
        months,
        subscription.end_date.isoformat(),
    )
    return subscription
