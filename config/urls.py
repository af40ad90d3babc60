from django.conf import settings
from django.contrib import admin
from django.urls import include
from django.urls import path

urlpatterns = [
    # Django Admin, use {% url 'admin:index' %}
    path(settings.ADMIN_URL, admin.site.urls),
    # Gateway-facing endpoints (IPN + browser callback)
    path("billing/", include("coursepass.billing.urls", namespace="billing")),
]

# API URLS
urlpatterns += [
    # API base url
    path("api/v1/", include("config.api_router")),
]
