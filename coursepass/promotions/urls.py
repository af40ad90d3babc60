from django.urls import path

from coursepass.promotions.views import ReferralView
from coursepass.promotions.views import ValidateDiscountView

urlpatterns = [
    path(
        "discounts/validate/",
        ValidateDiscountView.as_view(),
        name="promotions-discount-validate",
    ),
    path("referrals/", ReferralView.as_view(), name="promotions-referrals"),
]
