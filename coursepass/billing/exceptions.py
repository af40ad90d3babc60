"""
Exceptions raised by the billing and promotions engines.

Every error carries a human-readable ``detail`` and a stable machine ``code``
so API views can translate them without string matching:

- ValidationError: bad input or an offer that does not apply. Not retried.
- NotFoundError: unknown tracking id, code, or subscription.
- ConcurrencyConflictError: a commit-time re-check failed because another
  request got there first. Shown as "offer no longer available".
- GatewayUnavailableError: the payment gateway timed out or errored.
  Retryable; reconciliation is idempotent.
- UsageLimitError: the daily quota for a metered action is exhausted.
- RewardInvariantError: a single-writer gate was violated. This is a
  programming error, never a user-facing one.
"""

from __future__ import annotations


class BillingError(Exception):
    """Base exception for billing-related errors."""

    def __init__(self, detail: str, code: str = "billing_error"):
        self.detail = detail
        self.code = code
        super().__init__(detail)


class ValidationError(BillingError):
    def __init__(self, detail: str, code: str = "invalid"):
        super().__init__(detail, code=code)


class NotFoundError(BillingError):
    def __init__(self, detail: str = "Not found.", code: str = "not_found"):
        super().__init__(detail, code=code)


class ConcurrencyConflictError(BillingError):
    """Raised when a commit-time re-validation fails."""

    def __init__(
        self,
        detail: str = "This offer is no longer available.",
        code: str = "offer_unavailable",
    ):
        super().__init__(detail, code=code)


class GatewayUnavailableError(BillingError):
    """Raised when the payment gateway cannot be reached in time."""

    def __init__(
        self,
        detail: str = "The payment gateway is unavailable. Please try again.",
    ):
        super().__init__(detail, code="gateway_unavailable")


class UsageLimitError(BillingError):
    """Raised when a metered action's daily limit is reached."""

    def __init__(
        self,
        detail: str = "Daily limit reached.",
        usage_type: str = "",
        limit: int | None = None,
    ):
        self.usage_type = usage_type
        self.limit = limit
        super().__init__(detail, code="usage_limit_exceeded")


class RewardInvariantError(BillingError):
    """Raised when a referral would be rewarded outside the completed state."""

    def __init__(self, detail: str):
        super().__init__(detail, code="reward_invariant_violation")
