"""
Pesapal notification endpoints.

Two ways a payment outcome reaches us:
- IPN: Pesapal calls ``/billing/pesapal/ipn/`` server-to-server whenever a
  transaction changes, and retries until we acknowledge with status 200.
- Callback: the user's browser is redirected to
  ``/billing/pesapal/callback/`` after paying.

Both carry ``OrderTrackingId``. Neither is trusted for the outcome: the
tracking id is handed to ``reconcile``, which asks the gateway directly.
Whichever arrives first applies the result; the other is a no-op.

To test locally, point PESAPAL_IPN_URL at a tunnel (e.g. ngrok) and
register it with ``PesapalClient.register_ipn``.
"""

from __future__ import annotations

import logging

from rest_framework import status
from rest_framework.response import Response

from coursepass.billing.exceptions import GatewayUnavailableError
from coursepass.billing.exceptions import NotFoundError
from coursepass.billing.reconciliation import reconcile
from coursepass.billing.views import BillingAPIView

logger = logging.getLogger(__name__)

IPN_ACK_OK = 200
IPN_ACK_RETRY = 500


def _notification_params(request) -> dict[str, str]:
    source = request.query_params if request.method == "GET" else request.data
    return {
        "tracking_id": source.get("OrderTrackingId", ""),
        "merchant_reference": source.get("OrderMerchantReference", ""),
        "notification_type": source.get("OrderNotificationType", "IPNCHANGE"),
    }


class PesapalIPNView(BillingAPIView):
    """
    Handle Pesapal IPN notifications.

    Answers in the shape Pesapal expects. ``status`` 500 in the body asks
    Pesapal to redeliver, which we want when the gateway could not be
    queried or the payment is not committed yet.

    URL: /billing/pesapal/ipn/
    Methods: GET, POST
    Authentication: none (outcome is fetched from the gateway)
    """

    authentication_classes = []
    permission_classes = []

    def get(self, request):
        return self._handle(request)

    def post(self, request):
        return self._handle(request)

    def _handle(self, request):
        params = _notification_params(request)
        tracking_id = params["tracking_id"]
        if not tracking_id:
            logger.warning("Pesapal IPN without OrderTrackingId")
            return Response(
                {"detail": "OrderTrackingId is required.", "code": "invalid"},
                status=status.HTTP_400_BAD_REQUEST,
            )

        logger.info(
            "Pesapal IPN %s for tracking=%s ref=%s",
            params["notification_type"],
            tracking_id,
            params["merchant_reference"],
        )

        ack = IPN_ACK_OK
        try:
            reconcile(tracking_id)
        except NotFoundError:
            logger.warning("Pesapal IPN for unknown tracking=%s", tracking_id)
            ack = IPN_ACK_RETRY
        except GatewayUnavailableError:
            logger.warning("Gateway unavailable reconciling tracking=%s", tracking_id)
            ack = IPN_ACK_RETRY

        return Response(
            {
                "orderNotificationType": params["notification_type"],
                "orderTrackingId": tracking_id,
                "orderMerchantReference": params["merchant_reference"],
                "status": ack,
            },
        )


class PesapalCallbackView(BillingAPIView):
    """
    Handle the browser redirect after checkout.

    Reconciles and reports the resulting payment status so the client can
    show success, pending or failure.

    URL: /billing/pesapal/callback/
    Method: GET
    """

    authentication_classes = []
    permission_classes = []

    def get(self, request):
        tracking_id = request.query_params.get("OrderTrackingId", "")
        if not tracking_id:
            return Response(
                {"detail": "OrderTrackingId is required.", "code": "invalid"},
                status=status.HTTP_400_BAD_REQUEST,
            )

        result = reconcile(tracking_id)
        return Response(
            {
                "merchant_reference": result.payment.merchant_reference,
                "status": result.status,
                "plan": result.payment.plan_id,
            },
        )
