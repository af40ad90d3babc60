"""
Billing API views.

Routes (under /api/v1/billing/):
- plans/                 - Plan catalogue
- subscription/          - Effective subscription (derived status)
- subscription/cancel/   - Cancel at period end (POST)
- usage/                 - Today's usage against plan limits
- usage/consume/         - Consume one unit of a metered action (POST)
- checkout/              - Start a plan purchase (POST)

Service functions raise ``BillingError`` subclasses; ``BillingAPIView``
turns them into ``{"detail", "code"}`` responses.
"""

from __future__ import annotations

import logging

from django.db import transaction
from django.utils.decorators import method_decorator
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from coursepass.billing.checkout import start_checkout
from coursepass.billing.exceptions import BillingError
from coursepass.billing.exceptions import ConcurrencyConflictError
from coursepass.billing.exceptions import GatewayUnavailableError
from coursepass.billing.exceptions import NotFoundError
from coursepass.billing.exceptions import RewardInvariantError
from coursepass.billing.exceptions import UsageLimitError
from coursepass.billing.exceptions import ValidationError
from coursepass.billing.lifecycle import cancel_subscription
from coursepass.billing.lifecycle import get_effective_plan
from coursepass.billing.lifecycle import resolve_effective_subscription
from coursepass.billing.metering import UsageMeter
from coursepass.billing.models import Plan
from coursepass.billing.serializers import CancelSubscriptionSerializer
from coursepass.billing.serializers import CheckoutSerializer
from coursepass.billing.serializers import ConsumeUsageSerializer
from coursepass.billing.serializers import EffectiveSubscriptionSerializer
from coursepass.billing.serializers import PaymentSerializer
from coursepass.billing.serializers import PlanSerializer

logger = logging.getLogger(__name__)

ERROR_STATUS = [
    (UsageLimitError, status.HTTP_402_PAYMENT_REQUIRED),
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ConcurrencyConflictError, status.HTTP_409_CONFLICT),
    (GatewayUnavailableError, status.HTTP_503_SERVICE_UNAVAILABLE),
]


def billing_error_response(exc: BillingError) -> Response:
    for error_class, http_status in ERROR_STATUS:
        if isinstance(exc, error_class):
            break
    else:
        http_status = status.HTTP_400_BAD_REQUEST

    body = {"detail": exc.detail, "code": exc.code}
    if isinstance(exc, UsageLimitError):
        body["usage_type"] = exc.usage_type
        body["limit"] = exc.limit
    return Response(body, status=http_status)


class BillingAPIView(APIView):
    """APIView that renders domain errors as JSON instead of 500s."""

    def handle_exception(self, exc):
        # Invariant violations are programming errors and must surface.
        if isinstance(exc, BillingError) and not isinstance(exc, RewardInvariantError):
            logger.info(
                "%s for user=%s: %s",
                exc.code,
                getattr(self.request.user, "pk", None),
                exc.detail,
            )
            return billing_error_response(exc)
        return super().handle_exception(exc)


class PlanListView(BillingAPIView):
    def get(self, request):
        return Response(PlanSerializer(Plan.objects.all(), many=True).data)


class SubscriptionView(BillingAPIView):
    """Return the caller's effective subscription, or the free tier."""

    def get(self, request):
        effective = resolve_effective_subscription(request.user)
        if effective is None:
            return Response(
                {
                    "plan": get_effective_plan(request.user).code,
                    "status": None,
                    "has_access": False,
                },
            )
        return Response(EffectiveSubscriptionSerializer(effective).data)


class CancelSubscriptionView(BillingAPIView):
    def post(self, request):
        serializer = CancelSubscriptionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        cancel_subscription(request.user, serializer.validated_data["reason"])
        effective = resolve_effective_subscription(request.user)
        return Response(EffectiveSubscriptionSerializer(effective).data)


class UsageView(BillingAPIView):
    def get(self, request):
        return Response(
            {
                "plan": get_effective_plan(request.user).code,
                "usage": UsageMeter().get_usage(request.user),
            },
        )


class ConsumeUsageView(BillingAPIView):
    """
    Consume one unit of a metered action.

    Answers 402 with the limit message when the daily quota is used up.
    """

    def post(self, request):
        serializer = ConsumeUsageSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = UsageMeter().enforce(
            request.user,
            serializer.validated_data["usage_type"],
        )
        return Response(
            {
                "allowed": result.allowed,
                "current_usage": result.current_usage,
                "limit": result.limit,
                "remaining": result.remaining,
            },
        )


# Checkout commits its own short transaction before calling Pesapal; the
# request-wide transaction would otherwise hold the discount code lock across
# the gateway round trip.
@method_decorator(transaction.non_atomic_requests, name="dispatch")
class CheckoutView(BillingAPIView):
    """
    Start a plan purchase.

    Returns the gateway redirect URL the client should send the user to.
    For zero-amount checkouts the subscription is already active and
    ``redirect_url`` is null.
    """

    def post(self, request):
        serializer = CheckoutSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        result = start_checkout(
            request.user,
            plan_code=data["plan"],
            billing_cycle=data["billing_cycle"],
            discount_code=data["discount_code"] or None,
        )
        return Response(
            {
                "payment": PaymentSerializer(result.payment).data,
                "redirect_url": result.redirect_url,
                "tracking_id": result.tracking_id,
            },
            status=status.HTTP_201_CREATED,
        )
