"""
Tests for the billing API and the Pesapal notification endpoints.
"""

from datetime import timedelta
from decimal import Decimal
from unittest.mock import patch

import pytest
from django.urls import reverse
from django.utils import timezone
from rest_framework.test import APIClient

from coursepass.billing.checkout import CheckoutResult
from coursepass.billing.constants import PaymentStatus
from coursepass.billing.constants import PlanCode
from coursepass.billing.constants import SubscriptionStatus
from coursepass.billing.constants import UsageType
from coursepass.billing.exceptions import ConcurrencyConflictError
from coursepass.billing.exceptions import GatewayUnavailableError
from coursepass.billing.exceptions import NotFoundError
from coursepass.billing.reconciliation import ReconciliationResult
from coursepass.billing.tests.factories import PaymentFactory
from coursepass.billing.tests.factories import SubscriptionFactory


@pytest.fixture
def api_client(user) -> APIClient:
    client = APIClient()
    client.force_authenticate(user=user)
    return client


@pytest.mark.django_db
class TestSubscriptionViews:
    def test_requires_authentication(self):
        response = APIClient().get(reverse("api:billing-subscription"))
        assert response.status_code in (401, 403)

    def test_free_user(self, api_client):
        response = api_client.get(reverse("api:billing-subscription"))

        assert response.status_code == 200
        assert response.data == {"plan": PlanCode.FREE, "status": None, "has_access": False}

    def test_expired_row_reported_as_expired(self, api_client, user):
        SubscriptionFactory(
            user=user,
            start_date=timezone.now() - timedelta(days=40),
            end_date=timezone.now() - timedelta(days=10),
        )

        response = api_client.get(reverse("api:billing-subscription"))

        assert response.data["status"] == SubscriptionStatus.EXPIRED
        assert response.data["has_access"] is False

    def test_cancel(self, api_client, user):
        SubscriptionFactory(user=user)

        response = api_client.post(
            reverse("api:billing-subscription-cancel"),
            {"reason": "Exams are over"},
            format="json",
        )

        assert response.status_code == 200
        assert response.data["status"] == SubscriptionStatus.CANCELLED
        assert response.data["has_access"] is True

    def test_cancel_without_reason(self, api_client, user):
        SubscriptionFactory(user=user)

        response = api_client.post(
            reverse("api:billing-subscription-cancel"),
            {"reason": ""},
            format="json",
        )

        assert response.status_code == 400
        assert response.data["code"] == "reason_required"

    def test_cancel_without_subscription(self, api_client):
        response = api_client.post(
            reverse("api:billing-subscription-cancel"),
            {"reason": "Leaving"},
            format="json",
        )

        assert response.status_code == 404
        assert response.data["code"] == "no_active_subscription"


@pytest.mark.django_db
class TestUsageViews:
    def test_usage_summary(self, api_client):
        response = api_client.get(reverse("api:billing-usage"))

        assert response.status_code == 200
        assert response.data["plan"] == PlanCode.FREE
        assert response.data["usage"][UsageType.QUIZ_TAKEN]["limit"] == 3

    def test_consume_until_payment_required(self, api_client):
        url = reverse("api:billing-usage-consume")

        first = api_client.post(url, {"usage_type": UsageType.COURSE_ENROLLED}, format="json")
        second = api_client.post(url, {"usage_type": UsageType.COURSE_ENROLLED}, format="json")

        assert first.status_code == 200
        assert first.data["allowed"] is True
        assert first.data["remaining"] == 0
        assert second.status_code == 402
        assert second.data["code"] == "usage_limit_exceeded"
        assert second.data["limit"] == 1

    def test_consume_rejects_unknown_type(self, api_client):
        response = api_client.post(
            reverse("api:billing-usage-consume"),
            {"usage_type": "homework_submitted"},
            format="json",
        )

        assert response.status_code == 400


@pytest.mark.django_db
class TestCheckoutView:
    @patch("coursepass.billing.views.start_checkout")
    def test_checkout_returns_redirect(self, mock_checkout, api_client, user):
        payment = PaymentFactory(user=user, gateway_tracking_id="track-1")
        mock_checkout.return_value = CheckoutResult(
            payment=payment,
            redirect_url="https://pay.pesapal.test/iframe/track-1",
            tracking_id="track-1",
        )

        response = api_client.post(
            reverse("api:billing-checkout"),
            {"plan": PlanCode.PREMIUM, "billing_cycle": "yearly", "discount_code": "SAVE20"},
            format="json",
        )

        assert response.status_code == 201
        assert response.data["redirect_url"].endswith("track-1")
        assert response.data["payment"]["merchant_reference"] == payment.merchant_reference
        mock_checkout.assert_called_once_with(
            user,
            plan_code=PlanCode.PREMIUM,
            billing_cycle="yearly",
            discount_code="SAVE20",
        )

    @patch("coursepass.billing.views.start_checkout")
    def test_offer_no_longer_available_is_conflict(self, mock_checkout, api_client):
        mock_checkout.side_effect = ConcurrencyConflictError()

        response = api_client.post(
            reverse("api:billing-checkout"),
            {"plan": PlanCode.PREMIUM},
            format="json",
        )

        assert response.status_code == 409
        assert response.data["code"] == "offer_unavailable"

    @patch("coursepass.billing.views.start_checkout")
    def test_gateway_unavailable_is_503(self, mock_checkout, api_client):
        mock_checkout.side_effect = GatewayUnavailableError()

        response = api_client.post(
            reverse("api:billing-checkout"),
            {"plan": PlanCode.PREMIUM},
            format="json",
        )

        assert response.status_code == 503


@pytest.mark.django_db
class TestPesapalIPNView:
    url = "/billing/pesapal/ipn/"

    @patch("coursepass.billing.webhooks.reconcile")
    def test_ipn_acknowledges(self, mock_reconcile):
        payment = PaymentFactory(status=PaymentStatus.COMPLETED)
        mock_reconcile.return_value = ReconciliationResult(
            payment=payment,
            status=PaymentStatus.COMPLETED,
            applied=True,
        )

        response = APIClient().get(
            self.url,
            {
                "OrderTrackingId": payment.gateway_tracking_id,
                "OrderMerchantReference": payment.merchant_reference,
                "OrderNotificationType": "IPNCHANGE",
            },
        )

        assert response.status_code == 200
        assert response.data == {
            "orderNotificationType": "IPNCHANGE",
            "orderTrackingId": payment.gateway_tracking_id,
            "orderMerchantReference": payment.merchant_reference,
            "status": 200,
        }
        mock_reconcile.assert_called_once_with(payment.gateway_tracking_id)

    @patch("coursepass.billing.webhooks.reconcile")
    def test_ipn_ignores_client_supplied_status(self, mock_reconcile):
        payment = PaymentFactory()
        mock_reconcile.return_value = ReconciliationResult(
            payment=payment,
            status=PaymentStatus.PENDING,
            applied=False,
        )

        APIClient().post(
            self.url,
            {"OrderTrackingId": payment.gateway_tracking_id, "status": "COMPLETED"},
            format="json",
        )

        payment.refresh_from_db()
        assert payment.status == PaymentStatus.PENDING

    @patch("coursepass.billing.webhooks.reconcile")
    def test_ipn_asks_for_redelivery_when_gateway_down(self, mock_reconcile):
        mock_reconcile.side_effect = GatewayUnavailableError()

        response = APIClient().get(self.url, {"OrderTrackingId": "track-1"})

        assert response.status_code == 200
        assert response.data["status"] == 500

    @patch("coursepass.billing.webhooks.reconcile")
    def test_ipn_unknown_tracking_asks_for_redelivery(self, mock_reconcile):
        mock_reconcile.side_effect = NotFoundError()

        response = APIClient().get(self.url, {"OrderTrackingId": "nope"})

        assert response.data["status"] == 500

    def test_ipn_requires_tracking_id(self):
        response = APIClient().get(self.url)
        assert response.status_code == 400


@pytest.mark.django_db
class TestPesapalCallbackView:
    url = "/billing/pesapal/callback/"

    @patch("coursepass.billing.webhooks.reconcile")
    def test_callback_reports_status(self, mock_reconcile):
        payment = PaymentFactory(amount=Decimal("9.99"))
        mock_reconcile.return_value = ReconciliationResult(
            payment=payment,
            status=PaymentStatus.COMPLETED,
            applied=True,
        )

        response = APIClient().get(self.url, {"OrderTrackingId": payment.gateway_tracking_id})

        assert response.status_code == 200
        assert response.data["status"] == PaymentStatus.COMPLETED
        assert response.data["plan"] == PlanCode.PREMIUM

    @patch("coursepass.billing.webhooks.reconcile")
    def test_callback_gateway_down(self, mock_reconcile):
        mock_reconcile.side_effect = GatewayUnavailableError()

        response = APIClient().get(self.url, {"OrderTrackingId": "track-1"})

        assert response.status_code == 503
