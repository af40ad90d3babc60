from __future__ import annotations

from rest_framework import serializers

from coursepass.billing.constants import BillingCycle
from coursepass.billing.constants import UsageType
from coursepass.billing.models import Payment
from coursepass.billing.models import Plan


class PlanSerializer(serializers.ModelSerializer):
    class Meta:
        model = Plan
        fields = [
            "code",
            "name",
            "description",
            "monthly_price",
            "yearly_price",
            "limits",
        ]


class EffectiveSubscriptionSerializer(serializers.Serializer):
    """
    Read-only view of ``lifecycle.EffectiveSubscription``.

    The status is the derived one, so an active row past its end date is
    reported as expired.
    """

    plan = serializers.CharField(source="plan_code")
    status = serializers.CharField()
    billing_cycle = serializers.CharField()
    start_date = serializers.DateTimeField(allow_null=True)
    end_date = serializers.DateTimeField(allow_null=True)
    source = serializers.CharField()
    has_access = serializers.BooleanField()
    is_cancelled = serializers.BooleanField()


class CancelSubscriptionSerializer(serializers.Serializer):
    # Blank reasons are rejected by the lifecycle manager with its own code.
    reason = serializers.CharField(allow_blank=True, required=False, default="")


class ConsumeUsageSerializer(serializers.Serializer):
    usage_type = serializers.ChoiceField(choices=UsageType.choices)


class CheckoutSerializer(serializers.Serializer):
    plan = serializers.CharField()
    billing_cycle = serializers.ChoiceField(
        choices=BillingCycle.choices,
        default=BillingCycle.MONTHLY,
    )
    discount_code = serializers.CharField(
        required=False,
        allow_blank=True,
        default="",
    )


class PaymentSerializer(serializers.ModelSerializer):
    plan = serializers.CharField(source="plan_id", read_only=True)

    class Meta:
        model = Payment
        fields = [
            "id",
            "plan",
            "billing_cycle",
            "amount",
            "original_amount",
            "currency",
            "status",
            "merchant_reference",
            "gateway_tracking_id",
            "created",
            "completed_at",
        ]
        read_only_fields = fields
