"""
Tests for the subscription lifecycle manager.

Covers the expiry derivation, effective-subscription resolution (including
the legacy profile fallback), activation, cancellation and reward
extensions.
"""

from datetime import UTC
from datetime import datetime
from datetime import timedelta

import pytest
from dateutil.relativedelta import relativedelta
from django.test import TestCase

from coursepass.billing.constants import BillingCycle
from coursepass.billing.constants import PaymentStatus
from coursepass.billing.constants import PlanCode
from coursepass.billing.constants import SubscriptionSource
from coursepass.billing.constants import SubscriptionStatus
from coursepass.billing.exceptions import NotFoundError
from coursepass.billing.exceptions import ValidationError
from coursepass.billing.lifecycle import activate_subscription
from coursepass.billing.lifecycle import cancel_subscription
from coursepass.billing.lifecycle import derive_subscription_status
from coursepass.billing.lifecycle import extend_subscription
from coursepass.billing.lifecycle import get_effective_plan
from coursepass.billing.lifecycle import resolve_effective_subscription
from coursepass.billing.lifecycle import sync_profile
from coursepass.billing.models import Subscription
from coursepass.billing.tests.factories import PaymentFactory
from coursepass.billing.tests.factories import SubscriptionFactory
from coursepass.billing.tests.factories import get_plan
from coursepass.users.tests.factories import UserFactory

NOW = datetime(2025, 3, 15, 12, 0, tzinfo=UTC)


class DeriveSubscriptionStatusTests(TestCase):
    """The expiry rule is a pure function of (status, end_date, now)."""

    def test_active_before_end_date_is_active(self):
        status = derive_subscription_status(
            SubscriptionStatus.ACTIVE,
            NOW + timedelta(days=1),
            NOW,
        )
        self.assertEqual(status, SubscriptionStatus.ACTIVE)

    def test_active_after_end_date_is_expired(self):
        status = derive_subscription_status(
            SubscriptionStatus.ACTIVE,
            NOW - timedelta(seconds=1),
            NOW,
        )
        self.assertEqual(status, SubscriptionStatus.EXPIRED)

    def test_end_date_boundary_is_expired(self):
        status = derive_subscription_status(SubscriptionStatus.ACTIVE, NOW, NOW)
        self.assertEqual(status, SubscriptionStatus.EXPIRED)

    def test_cancelled_before_end_date_stays_cancelled(self):
        status = derive_subscription_status(
            SubscriptionStatus.CANCELLED,
            NOW + timedelta(days=10),
            NOW,
        )
        self.assertEqual(status, SubscriptionStatus.CANCELLED)

    def test_cancelled_after_end_date_is_expired(self):
        status = derive_subscription_status(
            SubscriptionStatus.CANCELLED,
            NOW - timedelta(days=1),
            NOW,
        )
        self.assertEqual(status, SubscriptionStatus.EXPIRED)

    def test_missing_end_date_is_expired(self):
        status = derive_subscription_status(SubscriptionStatus.ACTIVE, None, NOW)
        self.assertEqual(status, SubscriptionStatus.EXPIRED)


@pytest.mark.django_db
class TestResolveEffectiveSubscription:
    def test_free_user_without_history_has_none(self, user):
        assert resolve_effective_subscription(user, now=NOW) is None
        assert get_effective_plan(user, now=NOW).code == PlanCode.FREE

    def test_stale_active_row_reads_as_expired(self, user):
        SubscriptionFactory(
            user=user,
            start_date=NOW - relativedelta(months=2),
            end_date=NOW - relativedelta(months=1),
        )

        effective = resolve_effective_subscription(user, now=NOW)

        assert effective.status == SubscriptionStatus.EXPIRED
        assert not effective.has_access
        assert get_effective_plan(user, now=NOW).code == PlanCode.FREE

    def test_prefers_active_over_cancelled(self, user):
        active = SubscriptionFactory(
            user=user,
            start_date=NOW - timedelta(days=5),
            end_date=NOW + timedelta(days=25),
        )
        SubscriptionFactory(
            user=user,
            status=SubscriptionStatus.CANCELLED,
            start_date=NOW - timedelta(days=1),
            end_date=NOW + timedelta(days=29),
        )

        effective = resolve_effective_subscription(user, now=NOW)

        assert effective.subscription == active
        assert effective.status == SubscriptionStatus.ACTIVE

    def test_live_cancelled_beats_expired_active(self, user):
        SubscriptionFactory(
            user=user,
            start_date=NOW - relativedelta(months=3),
            end_date=NOW - relativedelta(months=2),
        )
        cancelled = SubscriptionFactory(
            user=user,
            status=SubscriptionStatus.CANCELLED,
            start_date=NOW - timedelta(days=10),
            end_date=NOW + timedelta(days=20),
        )

        effective = resolve_effective_subscription(user, now=NOW)

        assert effective.subscription == cancelled
        assert effective.status == SubscriptionStatus.CANCELLED
        assert effective.has_access

    def test_newest_active_row_wins(self, user):
        SubscriptionFactory(
            user=user,
            plan=get_plan(PlanCode.PREMIUM),
            start_date=NOW - timedelta(days=5),
            end_date=NOW + timedelta(days=25),
        )
        newest = SubscriptionFactory(
            user=user,
            plan=get_plan(PlanCode.PRO),
            start_date=NOW - timedelta(days=1),
            end_date=NOW + timedelta(days=29),
        )

        effective = resolve_effective_subscription(user, now=NOW)

        assert effective.subscription == newest
        assert effective.plan_code == PlanCode.PRO

    def test_legacy_profile_fallback(self):
        user = UserFactory(
            subscription_tier=PlanCode.PREMIUM,
            subscription_status=SubscriptionStatus.ACTIVE,
            subscription_end_date=NOW + timedelta(days=3),
        )

        effective = resolve_effective_subscription(user, now=NOW)

        assert effective.source == SubscriptionSource.LEGACY_PROFILE
        assert effective.subscription is None
        assert effective.has_access
        assert get_effective_plan(user, now=NOW).code == PlanCode.PREMIUM

    def test_legacy_profile_fallback_still_expires(self):
        user = UserFactory(
            subscription_tier=PlanCode.PREMIUM,
            subscription_status=SubscriptionStatus.ACTIVE,
            subscription_end_date=NOW - timedelta(days=3),
        )

        effective = resolve_effective_subscription(user, now=NOW)

        assert effective.status == SubscriptionStatus.EXPIRED
        assert not effective.has_access


@pytest.mark.django_db
class TestActivateSubscription:
    def test_monthly_period_and_profile_sync(self, user):
        payment = PaymentFactory(user=user, status=PaymentStatus.COMPLETED)

        subscription = activate_subscription(payment, now=NOW)

        assert subscription.status == SubscriptionStatus.ACTIVE
        assert subscription.start_date == NOW
        assert subscription.end_date == NOW + relativedelta(months=1)
        assert subscription.payment == payment
        user.refresh_from_db()
        assert user.subscription_tier == PlanCode.PREMIUM
        assert user.subscription_status == SubscriptionStatus.ACTIVE
        assert user.subscription_end_date == subscription.end_date

    def test_yearly_period(self, user):
        payment = PaymentFactory(
            user=user,
            billing_cycle=BillingCycle.YEARLY,
            status=PaymentStatus.COMPLETED,
        )

        subscription = activate_subscription(payment, now=NOW)

        assert subscription.end_date == datetime(2026, 3, 15, 12, 0, tzinfo=UTC)

    def test_month_end_clamps(self, user):
        jan_31 = datetime(2025, 1, 31, 9, 0, tzinfo=UTC)
        payment = PaymentFactory(user=user, status=PaymentStatus.COMPLETED)

        subscription = activate_subscription(payment, now=jan_31)

        assert subscription.end_date == datetime(2025, 2, 28, 9, 0, tzinfo=UTC)

    def test_reentry_after_expiry_inserts_new_row(self, user):
        old = SubscriptionFactory(
            user=user,
            start_date=NOW - relativedelta(months=2),
            end_date=NOW - relativedelta(months=1),
        )
        payment = PaymentFactory(user=user, status=PaymentStatus.COMPLETED)

        new = activate_subscription(payment, now=NOW)

        assert new.pk != old.pk
        assert Subscription.objects.filter(user=user).count() == 2
        assert resolve_effective_subscription(user, now=NOW).subscription == new


class CancelSubscriptionTests(TestCase):
    @classmethod
    def setUpTestData(cls):
        from coursepass.billing.plans import seed_default_plans

        seed_default_plans()

    def setUp(self):
        self.user = UserFactory()
        self.subscription = SubscriptionFactory(
            user=self.user,
            start_date=NOW - timedelta(days=10),
            end_date=NOW + timedelta(days=20),
        )

    def test_blank_reason_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            cancel_subscription(self.user, "   ", now=NOW)
        self.assertEqual(exc_info.value.code, "reason_required")

    def test_no_subscription_raises_not_found(self):
        with pytest.raises(NotFoundError):
            cancel_subscription(UserFactory(), "Too expensive", now=NOW)

    def test_cancel_keeps_access_until_end_date(self):
        cancelled = cancel_subscription(self.user, "Too expensive", now=NOW)

        self.assertEqual(cancelled.status, SubscriptionStatus.CANCELLED)
        self.assertEqual(cancelled.end_date, self.subscription.end_date)
        self.assertEqual(cancelled.cancellation_reason, "Too expensive")

        before_end = resolve_effective_subscription(
            self.user,
            now=cancelled.end_date - timedelta(seconds=1),
        )
        self.assertTrue(before_end.has_access)
        self.assertEqual(before_end.status, SubscriptionStatus.CANCELLED)

        after_end = resolve_effective_subscription(self.user, now=cancelled.end_date)
        self.assertFalse(after_end.has_access)
        self.assertEqual(after_end.status, SubscriptionStatus.EXPIRED)

        self.user.refresh_from_db()
        self.assertEqual(self.user.subscription_status, SubscriptionStatus.CANCELLED)
        self.assertEqual(self.user.subscription_tier, PlanCode.PREMIUM)

    def test_cancel_twice_is_idempotent(self):
        first = cancel_subscription(self.user, "Too expensive", now=NOW)
        second = cancel_subscription(
            self.user,
            "Changed my mind again",
            now=NOW + timedelta(hours=1),
        )

        self.assertEqual(first.pk, second.pk)
        self.assertEqual(second.cancelled_at, NOW)
        self.assertEqual(second.cancellation_reason, "Too expensive")

    def test_cannot_cancel_expired_subscription(self):
        with pytest.raises(NotFoundError):
            cancel_subscription(
                self.user,
                "Too late",
                now=self.subscription.end_date + timedelta(days=1),
            )


@pytest.mark.django_db
class TestExtendSubscription:
    def test_extends_live_subscription(self, user):
        subscription = SubscriptionFactory(
            user=user,
            start_date=NOW - timedelta(days=10),
            end_date=NOW + timedelta(days=20),
        )

        extended = extend_subscription(user, 2, now=NOW)

        assert extended.pk == subscription.pk
        assert extended.end_date == subscription.end_date + relativedelta(months=2)
        user.refresh_from_db()
        assert user.subscription_end_date == extended.end_date

    def test_creates_reward_period_when_nothing_live(self, user):
        extended = extend_subscription(user, 1, now=NOW)

        assert extended.source == SubscriptionSource.REFERRAL_REWARD
        assert extended.plan_id == PlanCode.PREMIUM
        assert extended.start_date == NOW
        assert extended.end_date == NOW + relativedelta(months=1)
        assert resolve_effective_subscription(user, now=NOW).has_access

    def test_zero_months_is_noop(self, user):
        assert extend_subscription(user, 0, now=NOW) is None
        assert not Subscription.objects.filter(user=user).exists()


@pytest.mark.django_db
class TestSyncProfile:
    def test_expired_subscription_drops_profile_to_free(self, user):
        subscription = SubscriptionFactory(
            user=user,
            start_date=NOW - timedelta(days=40),
            end_date=NOW - timedelta(days=10),
        )

        sync_profile(user, now=NOW)

        user.refresh_from_db()
        assert user.subscription_tier == PlanCode.FREE
        assert user.subscription_status == SubscriptionStatus.EXPIRED
        assert user.subscription_end_date == subscription.end_date

    def test_legacy_users_are_left_alone(self):
        legacy_end = NOW + timedelta(days=5)
        user = UserFactory(
            subscription_tier=PlanCode.PRO,
            subscription_status=SubscriptionStatus.ACTIVE,
            subscription_end_date=legacy_end,
        )

        sync_profile(user, now=NOW)

        user.refresh_from_db()
        assert user.subscription_tier == PlanCode.PRO
        assert user.subscription_end_date == legacy_end
