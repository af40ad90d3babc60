"""
Promotions API views.

Routes (under /api/v1/promotions/):
- discounts/validate/  - Price a plan with a discount code (POST)
- referrals/           - My referral code and referrals (GET), or register
                         the code I signed up with (POST)
"""

from __future__ import annotations

from rest_framework import status
from rest_framework.response import Response

from coursepass.billing.exceptions import NotFoundError
from coursepass.billing.models import Plan
from coursepass.billing.views import BillingAPIView
from coursepass.promotions.constants import ReferralStatus
from coursepass.promotions.discounts import validate_and_price
from coursepass.promotions.models import PointsLedgerEntry
from coursepass.promotions.referrals import register_referral
from coursepass.promotions.serializers import PricingResultSerializer
from coursepass.promotions.serializers import ReferralSerializer
from coursepass.promotions.serializers import RegisterReferralSerializer
from coursepass.promotions.serializers import ValidateDiscountSerializer


class ValidateDiscountView(BillingAPIView):
    """
    Preview a discount code against a plan price.

    A rejected code is a normal 200 answer with ``valid=false`` and the
    rejection reason; nothing is redeemed here.
    """

    def post(self, request):
        serializer = ValidateDiscountSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        plan = Plan.objects.filter(code=data["plan"]).first()
        if plan is None:
            raise NotFoundError("This plan does not exist.", code="plan_not_found")

        pricing = validate_and_price(
            data["code"],
            request.user,
            plan.code,
            plan.price_for(data["billing_cycle"]),
        )
        return Response(PricingResultSerializer(pricing).data)


class ReferralView(BillingAPIView):
    def get(self, request):
        referrals = request.user.referrals_made.select_related("referee").order_by(
            "-referred_at",
        )
        return Response(
            {
                "referral_code": request.user.referral_code,
                "points_balance": PointsLedgerEntry.balance_for(request.user),
                "rewarded_count": referrals.filter(
                    status=ReferralStatus.REWARDED,
                ).count(),
                "referrals": ReferralSerializer(referrals, many=True).data,
            },
        )

    def post(self, request):
        serializer = RegisterReferralSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        referral = register_referral(
            request.user,
            serializer.validated_data["referral_code"],
        )
        return Response(
            {
                "id": referral.pk,
                "status": referral.status,
                "program": referral.program.name,
            },
            status=status.HTTP_201_CREATED,
        )
