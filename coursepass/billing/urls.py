"""
URL configuration for gateway-facing billing endpoints.

Routes:
- /billing/pesapal/ipn/       - Pesapal IPN (GET or POST)
- /billing/pesapal/callback/  - Browser return after payment
"""

from django.urls import path

from coursepass.billing.webhooks import PesapalCallbackView
from coursepass.billing.webhooks import PesapalIPNView

app_name = "billing"

urlpatterns = [
    path(
        "pesapal/ipn/",
        PesapalIPNView.as_view(),
        name="pesapal-ipn",
    ),
    path(
        "pesapal/callback/",
        PesapalCallbackView.as_view(),
        name="pesapal-callback",
    ),
]
