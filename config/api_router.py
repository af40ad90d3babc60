"""
Public API router.

Billing and promotions endpoints consumed by the learning app. Gateway
notifications (Pesapal IPN and browser callback) are not API routes; they
live under /billing/ in config/urls.py because the gateway calls them
unauthenticated.
"""

from django.urls import include
from django.urls import path

app_name = "api"
urlpatterns = [
    path("billing/", include("coursepass.billing.api_urls")),
    path("promotions/", include("coursepass.promotions.urls")),
]
