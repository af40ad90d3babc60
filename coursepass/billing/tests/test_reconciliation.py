"""
Tests for the payment reconciliation adapter.

The gateway client is replaced by a mock returning ``TransactionStatus``
bodies, so these tests cover the state transitions and idempotency rather
than HTTP.
"""

from decimal import Decimal
from unittest.mock import Mock
from unittest.mock import patch

import pytest

from coursepass.billing.constants import PaymentStatus
from coursepass.billing.constants import PlanCode
from coursepass.billing.constants import SubscriptionStatus
from coursepass.billing.exceptions import GatewayUnavailableError
from coursepass.billing.exceptions import NotFoundError
from coursepass.billing.exceptions import RewardInvariantError
from coursepass.billing.gateway import TransactionStatus
from coursepass.billing.models import Payment
from coursepass.billing.models import Subscription
from coursepass.billing.reconciliation import _apply_terminal_status
from coursepass.billing.reconciliation import reconcile
from coursepass.billing.tests.factories import PaymentFactory
from coursepass.promotions.constants import ReferralStatus
from coursepass.promotions.constants import RewardType
from coursepass.promotions.models import PointsLedgerEntry
from coursepass.promotions.tests.factories import ReferralFactory
from coursepass.promotions.tests.factories import ReferralProgramFactory


def gateway_returning(status_code: int | None, **extra) -> Mock:
    client = Mock()
    client.get_transaction_status.return_value = TransactionStatus(
        status="200",
        status_code=status_code,
        payment_status_description=extra.pop("description", ""),
        **extra,
    )
    return client


@pytest.mark.django_db
class TestReconcile:
    def test_completed_payment_activates_subscription(self, user):
        payment = PaymentFactory(user=user)
        client = gateway_returning(
            1,
            description="Completed",
            payment_method="Airtel Money",
            confirmation_code="CONF-1",
            amount=Decimal("9.99"),
        )

        result = reconcile(payment.gateway_tracking_id, client=client)

        assert result.applied
        assert result.status == PaymentStatus.COMPLETED
        payment.refresh_from_db()
        assert payment.status == PaymentStatus.COMPLETED
        assert payment.completed_at is not None
        assert payment.payment_method == "Airtel Money"
        assert payment.confirmation_code == "CONF-1"
        assert payment.gateway_status_code == 1
        assert result.subscription.payment == payment
        assert result.subscription.status == SubscriptionStatus.ACTIVE
        user.refresh_from_db()
        assert user.subscription_tier == PlanCode.PREMIUM

    def test_reconcile_twice_is_idempotent(self, user):
        payment = PaymentFactory(user=user)
        client = gateway_returning(1)

        first = reconcile(payment.gateway_tracking_id, client=client)
        second = reconcile(payment.gateway_tracking_id, client=client)

        assert first.applied
        assert not second.applied
        assert second.status == PaymentStatus.COMPLETED
        assert client.get_transaction_status.call_count == 1
        assert Subscription.objects.filter(user=user).count() == 1

    def test_pending_leaves_payment_untouched(self, user):
        payment = PaymentFactory(user=user)

        result = reconcile(payment.gateway_tracking_id, client=gateway_returning(2))

        assert not result.applied
        payment.refresh_from_db()
        assert payment.status == PaymentStatus.PENDING
        assert not Subscription.objects.filter(user=user).exists()

    def test_unknown_status_code_treated_as_pending(self, user):
        payment = PaymentFactory(user=user)

        result = reconcile(payment.gateway_tracking_id, client=gateway_returning(7))

        assert result.status == PaymentStatus.PENDING
        assert not result.applied

    def test_failed_payment_grants_nothing(self, user):
        payment = PaymentFactory(user=user)

        result = reconcile(payment.gateway_tracking_id, client=gateway_returning(3))

        assert result.applied
        assert result.status == PaymentStatus.FAILED
        assert result.subscription is None
        payment.refresh_from_db()
        assert payment.status == PaymentStatus.FAILED
        assert payment.completed_at is None
        assert not Subscription.objects.filter(user=user).exists()

    def test_gateway_timeout_is_retryable(self, user):
        payment = PaymentFactory(user=user)
        client = Mock()
        client.get_transaction_status.side_effect = GatewayUnavailableError()

        with pytest.raises(GatewayUnavailableError):
            reconcile(payment.gateway_tracking_id, client=client)

        payment.refresh_from_db()
        assert payment.status == PaymentStatus.PENDING

    def test_unknown_tracking_id(self):
        with pytest.raises(NotFoundError):
            reconcile("does-not-exist", client=gateway_returning(1))

    def test_builds_and_closes_client_from_settings(self, user):
        payment = PaymentFactory(user=user)
        client = gateway_returning(2)

        with patch(
            "coursepass.billing.reconciliation.get_gateway_client",
            return_value=client,
        ):
            reconcile(payment.gateway_tracking_id)

        client.close.assert_called_once()

    def test_concurrent_finisher_makes_second_apply_a_noop(self, user):
        """Two reconciliations both saw pending; only the first applies."""
        payment = PaymentFactory(user=user)
        status = TransactionStatus(status="200", status_code=1)

        first = _apply_terminal_status(payment.pk, status, payment.created)
        second = _apply_terminal_status(payment.pk, status, payment.created)

        assert first.applied
        assert not second.applied
        assert Subscription.objects.filter(payment=payment).count() == 1

    def test_failure_mid_transaction_rolls_everything_back(self, user):
        payment = PaymentFactory(user=user)

        with (
            patch(
                "coursepass.billing.reconciliation.complete_referral_for_payment",
                side_effect=RewardInvariantError("boom"),
            ),
            pytest.raises(RewardInvariantError),
        ):
            reconcile(payment.gateway_tracking_id, client=gateway_returning(1))

        payment.refresh_from_db()
        assert payment.status == PaymentStatus.PENDING
        assert not Subscription.objects.filter(user=user).exists()


@pytest.mark.django_db
class TestReconcileReferrals:
    def test_first_paid_payment_rewards_referral(self):
        program = ReferralProgramFactory(
            referrer_reward_value=Decimal("20.00"),
            reward_cap=Decimal("15.00"),
        )
        referral = ReferralFactory(program=program)
        payment = PaymentFactory(user=referral.referee, amount=Decimal("100.00"))

        result = reconcile(payment.gateway_tracking_id, client=gateway_returning(1))

        assert result.reward.rewarded
        referral.refresh_from_db()
        assert referral.status == ReferralStatus.REWARDED
        assert referral.qualifying_payment == payment
        assert referral.referrer_reward_amount == Decimal("15.00")
        assert referral.referee_reward_amount == Decimal("10.00")

    def test_second_payment_does_not_refire(self):
        referral = ReferralFactory()
        first = PaymentFactory(user=referral.referee, amount=Decimal("100.00"))
        reconcile(first.gateway_tracking_id, client=gateway_returning(1))
        referral.refresh_from_db()
        rewarded_at = referral.rewarded_at

        second = PaymentFactory(user=referral.referee, amount=Decimal("100.00"))
        result = reconcile(second.gateway_tracking_id, client=gateway_returning(1))

        assert result.applied
        assert result.reward is None
        referral.refresh_from_db()
        assert referral.status == ReferralStatus.REWARDED
        assert referral.rewarded_at == rewarded_at
        assert referral.qualifying_payment == first

    def test_failed_payment_leaves_referral_pending(self):
        referral = ReferralFactory()
        payment = PaymentFactory(user=referral.referee)

        reconcile(payment.gateway_tracking_id, client=gateway_returning(3))

        referral.refresh_from_db()
        assert referral.status == ReferralStatus.PENDING

    def test_same_payment_reconciled_twice_pays_reward_once(self):
        program = ReferralProgramFactory(
            referrer_reward_type=RewardType.POINTS,
            referrer_reward_value=Decimal("50"),
            referee_reward_type=RewardType.PERCENTAGE,
            referee_reward_value=Decimal("10.00"),
        )
        referral = ReferralFactory(program=program)
        payment = PaymentFactory(user=referral.referee, amount=Decimal("100.00"))
        client = gateway_returning(1)

        first = reconcile(payment.gateway_tracking_id, client=client)
        referral.refresh_from_db()
        reward_amount = referral.referrer_reward_amount
        rewarded_at = referral.rewarded_at
        ledger_entries = PointsLedgerEntry.objects.filter(user=referral.referrer).count()

        second = reconcile(payment.gateway_tracking_id, client=client)

        assert first.reward.rewarded
        assert not second.applied
        assert second.reward is None
        assert ledger_entries == 1
        referral.refresh_from_db()
        assert referral.status == ReferralStatus.REWARDED
        assert referral.referrer_reward_amount == reward_amount
        assert referral.rewarded_at == rewarded_at
        assert PointsLedgerEntry.objects.filter(user=referral.referrer).count() == 1
        assert client.get_transaction_status.call_count == 1


@pytest.mark.django_db
class TestGatewayDetailFields:
    def test_long_gateway_text_is_stored_clipped(self, user):
        payment = PaymentFactory(user=user)
        long_description = "Completed via aggregator " + "x" * 400

        reconcile(
            payment.gateway_tracking_id,
            client=gateway_returning(1, description=long_description),
        )

        payment.refresh_from_db()
        assert payment.status == PaymentStatus.COMPLETED
        assert payment.gateway_status_description == long_description[:255]
        assert Payment._meta.get_field("gateway_status_description").max_length == 255
