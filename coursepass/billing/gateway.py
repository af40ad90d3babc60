"""
Pesapal v3 gateway client.

A thin httpx wrapper around the four gateway endpoints the billing engine
needs: token, IPN registration, order submission and transaction status.
Responses are parsed into pydantic models; every transport failure, timeout,
non-2xx answer or gateway-level error body surfaces as
``GatewayUnavailableError`` so callers have exactly one retryable error to
handle. The one error body that is not a failure is the "Pending Payment"
answer to a status query, which comes back as a pending ``TransactionStatus``.

The client never decides payment outcomes. It reports what the gateway says
and the reconciliation adapter maps that onto our state.

Usage:
    client = get_gateway_client()
    status = client.get_transaction_status(tracking_id)
    status.payment_status  # PaymentStatus
"""

from __future__ import annotations

import logging
from datetime import timedelta
from decimal import Decimal
from typing import Any

import httpx
from django.conf import settings
from django.utils import timezone
from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field

from coursepass.billing.constants import GatewayStatusCode
from coursepass.billing.constants import PaymentStatus
from coursepass.billing.exceptions import GatewayUnavailableError

logger = logging.getLogger(__name__)

# Pesapal tokens live five minutes; refresh a little early.
TOKEN_TTL = timedelta(minutes=4)

GATEWAY_OK = "200"

# GetTransactionStatus answers with this error code (and a non-200 status)
# while the customer has not finished paying yet.
PENDING_PAYMENT_ERROR = "payment_details_not_found"


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class GatewayResponse(BaseModel):
    """Fields common to every Pesapal response body."""

    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    status: str | None = None
    message: str | None = None
    error: dict[str, Any] | None = None

    @property
    def error_code(self) -> str | None:
        return (self.error or {}).get("code")

    @property
    def has_error(self) -> bool:
        # Success bodies carry an error object whose fields are all null.
        error = self.error or {}
        return bool(error.get("code") or error.get("message"))

    @property
    def ok(self) -> bool:
        return self.status == GATEWAY_OK and not self.has_error


class TokenResponse(GatewayResponse):
    token: str | None = None
    expiry_date: str | None = Field(default=None, alias="expiryDate")


class IPNRegistration(GatewayResponse):
    url: str | None = None
    ipn_id: str | None = None


class OrderResponse(GatewayResponse):
    order_tracking_id: str | None = None
    merchant_reference: str | None = None
    redirect_url: str | None = None


class TransactionStatus(GatewayResponse):
    """GetTransactionStatus body. Only ``status_code`` drives state."""

    status_code: int | None = None
    payment_status_description: str | None = None
    payment_method: str | None = None
    payment_account: str | None = None
    confirmation_code: str | None = None
    merchant_reference: str | None = None
    amount: Decimal | None = None
    currency: str | None = None
    description: str | None = None

    @property
    def is_pending_payment(self) -> bool:
        return self.error_code == PENDING_PAYMENT_ERROR

    @property
    def payment_status(self) -> str:
        """
        Map the gateway status code onto our payment status.

        Anything other than completed or failed, including codes we do not
        recognise, is treated as pending so the next callback retries it.
        """
        if self.is_pending_payment:
            return PaymentStatus.PENDING
        if self.status_code == GatewayStatusCode.COMPLETED:
            return PaymentStatus.COMPLETED
        if self.status_code == GatewayStatusCode.FAILED:
            return PaymentStatus.FAILED
        return PaymentStatus.PENDING


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class PesapalClient:
    """
    Synchronous Pesapal client with bounded timeouts.

    Pass ``transport`` (e.g. ``httpx.MockTransport``) to stub the gateway in
    tests.
    """

    def __init__(
        self,
        base_url: str,
        consumer_key: str,
        consumer_secret: str,
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self.consumer_key = consumer_key
        self.consumer_secret = consumer_secret
        self._client = httpx.Client(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            transport=transport,
            headers={
                "Accept": "application/json",
                "Content-Type": "application/json",
            },
        )
        self._token: str | None = None
        self._token_expires_at = None

    @classmethod
    def from_settings(cls, transport: httpx.BaseTransport | None = None):
        return cls(
            base_url=settings.PESAPAL_BASE_URL,
            consumer_key=settings.PESAPAL_CONSUMER_KEY,
            consumer_secret=settings.PESAPAL_CONSUMER_SECRET,
            timeout=settings.PESAPAL_TIMEOUT_SECONDS,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

    # -- transport ----------------------------------------------------------

    def _request(
        self,
        method: str,
        path: str,
        *,
        json: dict | None = None,
        params: dict | None = None,
        authenticated: bool = True,
    ) -> dict[str, Any]:
        headers = {}
        if authenticated:
            headers["Authorization"] = f"Bearer {self.get_token()}"

        try:
            response = self._client.request(
                method,
                path,
                json=json,
                params=params,
                headers=headers,
            )
            response.raise_for_status()
            return response.json()
        except httpx.TimeoutException as exc:
            logger.warning("Pesapal %s %s timed out", method, path)
            raise GatewayUnavailableError(
                "The payment gateway timed out. Please try again.",
            ) from exc
        except httpx.HTTPError as exc:
            logger.warning("Pesapal %s %s failed: %s", method, path, exc)
            raise GatewayUnavailableError from exc
        except ValueError as exc:
            logger.warning("Pesapal %s %s returned a non-JSON body", method, path)
            raise GatewayUnavailableError from exc

    def _check(self, body: GatewayResponse, operation: str) -> None:
        if not body.ok:
            logger.warning(
                "Pesapal %s rejected: status=%s error=%s",
                operation,
                body.status,
                body.error or body.message,
            )
            raise GatewayUnavailableError(
                f"The payment gateway rejected the {operation} request.",
            )

    # -- endpoints ----------------------------------------------------------

    def get_token(self) -> str:
        """Return a cached bearer token, requesting a new one when stale."""
        now = timezone.now()
        if self._token and self._token_expires_at and now < self._token_expires_at:
            return self._token

        body = TokenResponse.model_validate(
            self._request(
                "POST",
                "/api/Auth/RequestToken",
                json={
                    "consumer_key": self.consumer_key,
                    "consumer_secret": self.consumer_secret,
                },
                authenticated=False,
            ),
        )
        if not body.ok or not body.token:
            self._check(body, "token")
            raise GatewayUnavailableError("The payment gateway returned no token.")

        self._token = body.token
        self._token_expires_at = now + TOKEN_TTL
        return self._token

    def register_ipn(self, url: str, notification_type: str = "GET") -> str:
        body = IPNRegistration.model_validate(
            self._request(
                "POST",
                "/api/URLSetup/RegisterIPN",
                json={"url": url, "ipn_notification_type": notification_type},
            ),
        )
        self._check(body, "IPN registration")
        logger.info("Registered Pesapal IPN %s for %s", body.ipn_id, url)
        return body.ipn_id

    def submit_order(
        self,
        *,
        merchant_reference: str,
        amount: Decimal,
        currency: str,
        description: str,
        callback_url: str,
        notification_id: str,
        billing_address: dict[str, str],
    ) -> OrderResponse:
        body = OrderResponse.model_validate(
            self._request(
                "POST",
                "/api/Transactions/SubmitOrderRequest",
                json={
                    "id": merchant_reference,
                    "currency": currency,
                    "amount": f"{amount:.2f}",
                    "description": description,
                    "callback_url": callback_url,
                    "notification_id": notification_id,
                    "billing_address": billing_address,
                },
            ),
        )
        self._check(body, "order")
        if not body.order_tracking_id or not body.redirect_url:
            raise GatewayUnavailableError(
                "The payment gateway did not return a tracking id.",
            )
        logger.info(
            "Submitted Pesapal order %s (tracking=%s)",
            merchant_reference,
            body.order_tracking_id,
        )
        return body

    def get_transaction_status(self, tracking_id: str) -> TransactionStatus:
        body = TransactionStatus.model_validate(
            self._request(
                "GET",
                "/api/Transactions/GetTransactionStatus",
                params={"orderTrackingId": tracking_id},
            ),
        )
        if body.is_pending_payment:
            logger.info("Pesapal reports %s as awaiting payment", tracking_id)
            return body
        self._check(body, "transaction status")
        return body


def get_gateway_client() -> PesapalClient:
    """Build a client from settings. Patched in tests."""
    return PesapalClient.from_settings()
