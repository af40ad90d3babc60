"""
Checkout service.

Creates the pending Payment for a plan purchase, applies and redeems an
optional discount code, and submits the order to Pesapal.

The payment and the redemption commit together before Pesapal is called, so
no database lock is held across the token, IPN and order requests. If the
gateway refuses or times out, the payment is marked cancelled and the
redemption stays counted, the same as any other failed payment.

A checkout that prices to zero (a free-trial code) never touches the gateway.
The payment is recorded completed and the subscription is activated
directly. Such payments do not count as a first paid payment for referrals.
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from coursepass.billing.constants import BillingCycle
from coursepass.billing.constants import PaymentStatus
from coursepass.billing.exceptions import GatewayUnavailableError
from coursepass.billing.exceptions import NotFoundError
from coursepass.billing.exceptions import ValidationError
from coursepass.billing.gateway import get_gateway_client
from coursepass.billing.lifecycle import activate_subscription
from coursepass.billing.models import Payment
from coursepass.billing.models import Plan
from coursepass.promotions.discounts import redeem
from coursepass.promotions.discounts import validate_and_price

if TYPE_CHECKING:
    from datetime import datetime

    from coursepass.billing.gateway import OrderResponse
    from coursepass.billing.gateway import PesapalClient
    from coursepass.promotions.discounts import PricingResult
    from coursepass.users.models import User

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CheckoutResult:
    payment: Payment
    redirect_url: str | None
    tracking_id: str | None
    pricing: PricingResult | None = None

    @property
    def requires_redirect(self) -> bool:
        return self.redirect_url is not None


def generate_merchant_reference(user: User, plan: Plan, now: datetime) -> str:
    stamp = int(now.timestamp())
    return f"CP-{user.pk}-{plan.code}-{stamp}-{secrets.token_hex(3)}".upper()


def _billing_address(user: User) -> dict[str, str]:
    first, _sep, last = (user.name or user.username).partition(" ")
    return {
        "email_address": user.email,
        "country_code": settings.BILLING_COUNTRY_CODE,
        "first_name": first,
        "last_name": last,
    }


def _notification_id(client: PesapalClient) -> str:
    if settings.PESAPAL_IPN_ID:
        return settings.PESAPAL_IPN_ID
    logger.warning("PESAPAL_IPN_ID not configured; registering IPN on the fly")
    return client.register_ipn(settings.PESAPAL_IPN_URL)


def start_checkout(
    user: User,
    plan_code: str,
    billing_cycle: str = BillingCycle.MONTHLY,
    discount_code: str | None = None,
    client: PesapalClient | None = None,
    now: datetime | None = None,
) -> CheckoutResult:
    """
    Start a plan purchase.

    Raises:
        NotFoundError: Unknown plan or discount code
        ValidationError: Free plan, bad billing cycle, or a rejected code
        ConcurrencyConflictError: The code ran out during checkout
        GatewayUnavailableError: Pesapal could not accept the order; the
            payment is left cancelled
    """
    now = now or timezone.now()

    if billing_cycle not in BillingCycle.values:
        raise ValidationError(
            f"Unknown billing cycle '{billing_cycle}'.",
            code="invalid_billing_cycle",
        )
    try:
        plan = Plan.objects.get(code=plan_code)
    except Plan.DoesNotExist as exc:
        raise NotFoundError("This plan does not exist.", code="plan_not_found") from exc
    if plan.is_free:
        raise ValidationError(
            "The free plan cannot be purchased.",
            code="plan_not_purchasable",
        )

    original_amount = plan.price_for(billing_cycle)
    amount = original_amount
    pricing = None
    if discount_code:
        pricing = validate_and_price(discount_code, user, plan.code, original_amount, now)
        if not pricing.valid:
            raise ValidationError(pricing.message, code=pricing.rejection_reason)
        amount = pricing.discounted_amount

    owns_client = client is None and amount > 0
    if owns_client:
        client = get_gateway_client()
    try:
        payment = _record_payment(
            user,
            plan,
            billing_cycle,
            amount,
            original_amount,
            pricing,
            discount_code,
            now,
        )
        if payment.status == PaymentStatus.COMPLETED:
            return CheckoutResult(
                payment=payment,
                redirect_url=None,
                tracking_id=None,
                pricing=pricing,
            )
        order = _submit_order(payment, client)
    finally:
        if owns_client:
            client.close()

    return CheckoutResult(
        payment=payment,
        redirect_url=order.redirect_url,
        tracking_id=order.order_tracking_id,
        pricing=pricing,
    )


@transaction.atomic
def _record_payment(
    user: User,
    plan: Plan,
    billing_cycle: str,
    amount: Decimal,
    original_amount: Decimal,
    pricing: PricingResult | None,
    discount_code: str | None,
    now: datetime,
) -> Payment:
    """
    Create the payment and claim the discount code.

    Commits before the gateway is contacted, so the lock ``redeem`` takes on
    the code row is released without waiting on the network.
    """
    payment = Payment.objects.create(
        user=user,
        plan=plan,
        billing_cycle=billing_cycle,
        amount=amount,
        original_amount=original_amount,
        currency=settings.BILLING_CURRENCY,
        merchant_reference=generate_merchant_reference(user, plan, now),
        discount_code=pricing.discount_code if pricing else None,
    )
    if discount_code:
        redeem(discount_code, user, payment, now=now)

    if amount <= 0:
        payment.status = PaymentStatus.COMPLETED
        payment.completed_at = now
        payment.save(update_fields=["status", "completed_at", "modified"])
        activate_subscription(payment, now=now)
        logger.info(
            "Zero-amount checkout %s completed for user=%s plan=%s",
            payment.merchant_reference,
            user.pk,
            plan.code,
        )
    return payment


def _submit_order(payment: Payment, client: PesapalClient) -> OrderResponse:
    try:
        order = client.submit_order(
            merchant_reference=payment.merchant_reference,
            amount=payment.amount,
            currency=payment.currency,
            description=f"CoursePass {payment.plan.name} subscription ({payment.billing_cycle})",
            callback_url=settings.PESAPAL_CALLBACK_URL,
            notification_id=_notification_id(client),
            billing_address=_billing_address(payment.user),
        )
    except GatewayUnavailableError:
        Payment.objects.filter(pk=payment.pk, status=PaymentStatus.PENDING).update(
            status=PaymentStatus.CANCELLED,
            modified=timezone.now(),
        )
        payment.status = PaymentStatus.CANCELLED
        logger.warning(
            "Checkout %s cancelled: gateway did not accept the order",
            payment.merchant_reference,
        )
        raise

    payment.gateway_tracking_id = order.order_tracking_id
    payment.save(update_fields=["gateway_tracking_id", "modified"])
    logger.info(
        "Checkout %s started for user=%s plan=%s amount=%s %s",
        payment.merchant_reference,
        payment.user_id,
        payment.plan_id,
        payment.amount,
        payment.currency,
    )
    return order
