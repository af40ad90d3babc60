from __future__ import annotations

from rest_framework import serializers

from coursepass.billing.constants import BillingCycle
from coursepass.promotions.models import Referral


class ValidateDiscountSerializer(serializers.Serializer):
    code = serializers.CharField(max_length=32)
    plan = serializers.CharField()
    billing_cycle = serializers.ChoiceField(
        choices=BillingCycle.choices,
        default=BillingCycle.MONTHLY,
    )


class PricingResultSerializer(serializers.Serializer):
    valid = serializers.BooleanField()
    original_amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    discounted_amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    discount_amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    rejection_reason = serializers.CharField(allow_null=True)
    message = serializers.CharField()


class RegisterReferralSerializer(serializers.Serializer):
    referral_code = serializers.CharField(max_length=16)


class ReferralSerializer(serializers.ModelSerializer):
    referee = serializers.CharField(source="referee.username", read_only=True)

    class Meta:
        model = Referral
        fields = [
            "id",
            "referee",
            "status",
            "referrer_reward_amount",
            "referred_at",
            "rewarded_at",
        ]
        read_only_fields = fields
