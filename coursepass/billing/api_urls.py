"""
API routes for the billing app, mounted at /api/v1/billing/.
"""

from django.urls import path

from coursepass.billing.views import CancelSubscriptionView
from coursepass.billing.views import CheckoutView
from coursepass.billing.views import ConsumeUsageView
from coursepass.billing.views import PlanListView
from coursepass.billing.views import SubscriptionView
from coursepass.billing.views import UsageView

urlpatterns = [
    path("plans/", PlanListView.as_view(), name="billing-plans"),
    path("subscription/", SubscriptionView.as_view(), name="billing-subscription"),
    path(
        "subscription/cancel/",
        CancelSubscriptionView.as_view(),
        name="billing-subscription-cancel",
    ),
    path("usage/", UsageView.as_view(), name="billing-usage"),
    path("usage/consume/", ConsumeUsageView.as_view(), name="billing-usage-consume"),
    path("checkout/", CheckoutView.as_view(), name="billing-checkout"),
]
