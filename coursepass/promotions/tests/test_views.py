"""
Tests for the promotions API.
"""

from decimal import Decimal

import pytest
from django.urls import reverse
from rest_framework.test import APIClient

from coursepass.billing.constants import PlanCode
from coursepass.promotions.constants import ReferralStatus
from coursepass.promotions.constants import RejectionReason
from coursepass.promotions.models import DiscountCode
from coursepass.promotions.models import PointsLedgerEntry
from coursepass.promotions.tests.factories import DiscountCodeFactory
from coursepass.promotions.tests.factories import ReferralFactory
from coursepass.promotions.tests.factories import ReferralProgramFactory
from coursepass.users.tests.factories import UserFactory


@pytest.fixture
def api_client(user) -> APIClient:
    client = APIClient()
    client.force_authenticate(user=user)
    return client


@pytest.mark.django_db
class TestValidateDiscountView:
    @property
    def url(self):
        return reverse("api:promotions-discount-validate")

    def test_valid_code(self, api_client):
        DiscountCodeFactory(code="SAVE20", discount_value=Decimal("20"))

        response = api_client.post(
            self.url,
            {"code": "SAVE20", "plan": PlanCode.PRO, "billing_cycle": "yearly"},
            format="json",
        )

        assert response.status_code == 200
        assert response.data["valid"] is True
        assert response.data["original_amount"] == "199.99"
        assert response.data["discounted_amount"] == "159.99"
        assert response.data["discount_amount"] == "40.00"

    def test_rejected_code_is_not_an_error(self, api_client):
        DiscountCodeFactory(code="OLD", is_active=False)

        response = api_client.post(
            self.url,
            {"code": "OLD", "plan": PlanCode.PREMIUM},
            format="json",
        )

        assert response.status_code == 200
        assert response.data["valid"] is False
        assert response.data["rejection_reason"] == RejectionReason.INACTIVE
        assert response.data["discounted_amount"] == "9.99"

    def test_validation_does_not_redeem(self, api_client):
        DiscountCodeFactory(code="PEEK", usage_limit=1)

        api_client.post(self.url, {"code": "PEEK", "plan": PlanCode.PREMIUM}, format="json")

        assert DiscountCode.objects.get(code="PEEK").current_usage == 0

    def test_unknown_plan(self, api_client):
        response = api_client.post(
            self.url,
            {"code": "ANY", "plan": "platinum"},
            format="json",
        )

        assert response.status_code == 404
        assert response.data["code"] == "plan_not_found"


@pytest.mark.django_db
class TestReferralView:
    @property
    def url(self):
        return reverse("api:promotions-referrals")

    def test_summary(self, api_client, user):
        ReferralFactory(referrer=user, status=ReferralStatus.REWARDED)
        ReferralFactory(referrer=user)
        PointsLedgerEntry.objects.create(user=user, points=250, reason="referral_referrer")

        response = api_client.get(self.url)

        assert response.status_code == 200
        assert response.data["referral_code"] == user.referral_code
        assert response.data["points_balance"] == 250
        assert response.data["rewarded_count"] == 1
        assert len(response.data["referrals"]) == 2

    def test_register(self, api_client):
        ReferralProgramFactory(name="Spring referrals")
        referrer = UserFactory()

        response = api_client.post(
            self.url,
            {"referral_code": referrer.referral_code},
            format="json",
        )

        assert response.status_code == 201
        assert response.data["status"] == ReferralStatus.PENDING
        assert response.data["program"] == "Spring referrals"

    def test_register_own_code(self, api_client, user):
        ReferralProgramFactory()

        response = api_client.post(
            self.url,
            {"referral_code": user.referral_code},
            format="json",
        )

        assert response.status_code == 400
        assert response.data["code"] == "self_referral"

    def test_register_unknown_code(self, api_client):
        response = api_client.post(
            self.url,
            {"referral_code": "NOBODY00"},
            format="json",
        )

        assert response.status_code == 404
