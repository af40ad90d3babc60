"""
Payment reconciliation gateway adapter.

Turns "the gateway says tracking id X changed" into our state. Callers (IPN,
browser callback, the ``reconcile_payments`` command) pass only the opaque
tracking id; the outcome always comes from querying the gateway, never from
client-supplied fields.

Idempotency comes from three layers:
1. A payment already in a terminal state is returned as-is without calling
   the gateway.
2. The terminal write happens under ``select_for_update`` with a re-check,
   so of two concurrent reconciliations only the first applies.
3. ``Subscription.payment`` is one-to-one, so even a bug that slipped past
   the first two could not activate twice.

Usage:
    result = reconcile(tracking_id)
    if result.applied and result.status == PaymentStatus.COMPLETED:
        ...
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from django.db import transaction
from django.utils import timezone

from coursepass.billing.constants import PaymentStatus
from coursepass.billing.exceptions import NotFoundError
from coursepass.billing.gateway import get_gateway_client
from coursepass.billing.lifecycle import activate_subscription
from coursepass.billing.models import Payment
from coursepass.promotions.referrals import complete_referral_for_payment

if TYPE_CHECKING:
    from datetime import datetime

    from coursepass.billing.gateway import PesapalClient
    from coursepass.billing.gateway import TransactionStatus
    from coursepass.billing.models import Subscription
    from coursepass.promotions.referrals import RewardResult

logger = logging.getLogger(__name__)

# Width of the free-text gateway columns on Payment.
GATEWAY_TEXT_MAX_LENGTH = 255


def _clip(value: str | None) -> str:
    return (value or "")[:GATEWAY_TEXT_MAX_LENGTH]


@dataclass(frozen=True)
class ReconciliationResult:
    payment: Payment
    status: str
    applied: bool
    subscription: Subscription | None = None
    reward: RewardResult | None = None


def reconcile(
    gateway_tracking_id: str,
    client: PesapalClient | None = None,
    now: datetime | None = None,
) -> ReconciliationResult:
    """
    Reconcile one payment against the gateway.

    Raises:
        NotFoundError: If no payment carries this tracking id
        GatewayUnavailableError: If the gateway could not be queried; the
            payment is left pending and the call can be retried
    """
    payment = Payment.objects.filter(gateway_tracking_id=gateway_tracking_id).first()
    if payment is None:
        raise NotFoundError(
            "No payment found for this tracking id.",
            code="payment_not_found",
        )

    if payment.is_terminal:
        logger.debug(
            "Payment %s already %s; skipping gateway query",
            payment.pk,
            payment.status,
        )
        return ReconciliationResult(payment=payment, status=payment.status, applied=False)

    owns_client = client is None
    client = client or get_gateway_client()
    try:
        gateway_status = client.get_transaction_status(gateway_tracking_id)
    finally:
        if owns_client:
            client.close()

    new_status = gateway_status.payment_status
    if new_status == PaymentStatus.PENDING:
        logger.info(
            "Payment %s still pending at gateway (code=%s)",
            payment.pk,
            gateway_status.status_code,
        )
        return ReconciliationResult(payment=payment, status=payment.status, applied=False)

    return _apply_terminal_status(payment.pk, gateway_status, now or timezone.now())


@transaction.atomic
def _apply_terminal_status(
    payment_pk,
    gateway_status: TransactionStatus,
    now: datetime,
) -> ReconciliationResult:
    payment = Payment.objects.select_for_update().get(pk=payment_pk)
    if payment.is_terminal:
        # A concurrent reconciliation finished first.
        logger.info("Payment %s reconciled concurrently; no-op", payment.pk)
        return ReconciliationResult(payment=payment, status=payment.status, applied=False)

    new_status = gateway_status.payment_status
    if gateway_status.amount is not None and gateway_status.amount != payment.amount:
        logger.warning(
            "Payment %s amount mismatch: expected %s, gateway reported %s",
            payment.pk,
            payment.amount,
            gateway_status.amount,
        )

    payment.status = new_status
    payment.gateway_status_code = gateway_status.status_code
    payment.gateway_status_description = _clip(gateway_status.payment_status_description)
    payment.payment_method = _clip(gateway_status.payment_method)
    payment.payment_account = _clip(gateway_status.payment_account)
    payment.confirmation_code = _clip(gateway_status.confirmation_code)
    if new_status == PaymentStatus.COMPLETED:
        payment.completed_at = now
    payment.save(
        update_fields=[
            "status",
            "gateway_status_code",
            "gateway_status_description",
            "payment_method",
            "payment_account",
            "confirmation_code",
            "completed_at",
            "modified",
        ],
    )

    subscription = None
    reward = None
    if new_status == PaymentStatus.COMPLETED:
        subscription = activate_subscription(payment, now=now)
        reward = complete_referral_for_payment(payment, now=now)

    logger.info(
        "Reconciled payment %s → %s (tracking=%s)",
        payment.pk,
        new_status,
        payment.gateway_tracking_id,
    )
    return ReconciliationResult(
        payment=payment,
        status=new_status,
        applied=True,
        subscription=subscription,
        reward=reward,
    )
